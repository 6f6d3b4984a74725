"""Grid parameter sweep for window strategies.

Runs one full backtest per grid point, sequentially. Tick data is loaded
once and shared by every run.

Usage:
    python scripts/param_sweep.py --strategy late_favorite --start 2026-01-01 --end 2026-01-08 \
        --grid '{"entry_seconds": [30, 60, 120], "min_ask": [0.55, 0.65]}'
    python scripts/param_sweep.py --strategy late_favorite --start 2026-01-01 --end 2026-01-08 \
        --grid '{"spread_buffer": [0.0, 0.01]}' --sort-by return_pct
"""

import argparse
import asyncio
import json
import logging
import sys
import time
from datetime import datetime, timezone
from pathlib import Path

import pandas as pd

from updown.config import settings
from updown.services.backtest.config import BacktestConfig
from updown.services.backtest.sweep import run_parallel_sweep, sweep_summary_frame
from updown.services.data.loader import TickDataLoader
from updown.services.strategy import STRATEGY_MAP


def format_sweep_report(strategy_name: str, frame: pd.DataFrame, grid: dict, sort_by: str) -> str:
    """Format sweep results as markdown, best combination first."""
    lines = []
    lines.append(f"# Parameter Sweep: {strategy_name}")
    lines.append("")
    lines.append(f"Generated: {datetime.now(timezone.utc).strftime('%Y-%m-%d %H:%M UTC')}")
    lines.append(f"Grid: {json.dumps(grid)}")
    lines.append("")

    if frame.empty:
        lines.append("No results.")
        return "\n".join(lines)

    ranked = frame.sort_values(sort_by, ascending=False, kind="stable")
    lines.append("```")
    lines.append(ranked.to_string(index=False, float_format=lambda v: f"{v:.4f}"))
    lines.append("```")
    lines.append("")

    best = ranked.iloc[0]
    recommended = {k: best[k] for k in grid}
    lines.append("## Best Combination")
    lines.append("")
    lines.append(f"```json\n{json.dumps(recommended, indent=2, default=str)}\n```")

    return "\n".join(lines)


async def run_sweep(args: argparse.Namespace) -> None:
    """Run the grid sweep and save JSON + markdown results."""
    try:
        grid = json.loads(args.grid)
    except json.JSONDecodeError as e:
        print(f"Invalid --grid JSON: {e}", file=sys.stderr)
        sys.exit(1)

    start = pd.Timestamp(args.start, tz="UTC").to_pydatetime()
    end = pd.Timestamp(args.end, tz="UTC").to_pydatetime()
    symbols = [s.strip().lower() for s in args.symbols.split(",")] if args.symbols else None

    loader = TickDataLoader()
    windows = await loader.load_windows(start, end, symbols=symbols)
    if not windows:
        print(f"No windows between {args.start} and {args.end}", file=sys.stderr)
        sys.exit(1)
    data = await loader.load_all(start, end, symbols=symbols)

    def on_progress(done: int, total: int) -> None:
        print(f"  [{done}/{total}] combinations complete")

    t0 = time.time()
    results = await run_parallel_sweep(
        windows,
        STRATEGY_MAP[args.strategy],
        base_config=BacktestConfig(on_window_error="skip"),
        param_grid=grid,
        data=data,
        concurrency=args.concurrency,
        on_sweep_progress=on_progress,
    )
    frame = sweep_summary_frame(results)

    timestamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
    results_dir = Path("results")
    results_dir.mkdir(exist_ok=True)

    json_path = results_dir / f"sweep_{args.strategy}_{timestamp}.json"
    md_path = results_dir / f"sweep_{args.strategy}_{timestamp}.md"

    with open(json_path, "w") as f:
        json.dump({
            "strategy": args.strategy,
            "start": args.start,
            "end": args.end,
            "grid": grid,
            "timestamp": timestamp,
            "results": [{"params": r.params, **r.result.to_dict()["summary"]} for r in results],
        }, f, indent=2, default=str)

    report = format_sweep_report(args.strategy, frame, grid, args.sort_by)
    with open(md_path, "w") as f:
        f.write(report)

    print(f"\nJSON: {json_path}")
    print(f"Report: {md_path}")
    print()
    print(report)
    print(f"\nSweep complete in {time.time() - t0:.1f}s")


def main() -> None:
    logging.basicConfig(
        level=logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    parser = argparse.ArgumentParser(description="Grid parameter sweep for window strategies")
    parser.add_argument(
        "--strategy", required=True,
        choices=sorted(STRATEGY_MAP),
        help="Strategy to sweep",
    )
    parser.add_argument("--start", required=True, help="Start date (UTC)")
    parser.add_argument("--end", required=True, help="End date (UTC)")
    parser.add_argument(
        "--grid", required=True,
        help='Parameter grid as JSON, e.g. \'{"entry_seconds": [30, 60]}\'',
    )
    parser.add_argument("--symbols", default=None, help="Comma-separated symbols (default: all)")
    parser.add_argument(
        "--concurrency", type=int, default=settings.backtest_concurrency,
        help=f"Windows evaluated concurrently per run (default: {settings.backtest_concurrency})",
    )
    parser.add_argument(
        "--sort-by", default="total_pnl",
        choices=[
            "total_pnl", "return_pct", "win_rate", "final_capital", "sharpe_ratio", "profit_factor", "expectancy",
        ],
        help="Column to rank combinations by (default: total_pnl)",
    )
    args = parser.parse_args()

    asyncio.run(run_sweep(args))


if __name__ == "__main__":
    main()

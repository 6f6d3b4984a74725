"""CLI for backtesting window strategies against recorded tick history.

Usage:
    python scripts/backtest.py --strategy late_favorite --start 2026-01-01 --end 2026-01-08
    python scripts/backtest.py --strategy late_favorite --start 2026-01-01 --end 2026-01-08 --symbols btc,eth
    python scripts/backtest.py --strategy late_favorite --start 2026-01-01 --end 2026-01-02 --per-window
    python scripts/backtest.py --strategy late_favorite --start 2026-01-01 --end 2026-01-08 --json
"""

import argparse
import asyncio
import json
import logging
import sys

import pandas as pd

from updown.config import settings
from updown.services.backtest.config import BacktestConfig
from updown.services.backtest.engine import run_parallel_backtest
from updown.services.backtest.errors import WindowEvaluationError
from updown.services.backtest.result import AggregateResult
from updown.services.data.loader import TickDataLoader
from updown.services.strategy import STRATEGY_MAP


def format_report(result: AggregateResult) -> str:
    """Format backtest results as a readable console report."""
    lines = []
    sep = "=" * 68
    s = result.summary
    cfg = result.config

    lines.append(sep)
    lines.append("  Up/Down Window Backtest Report")
    lines.append(sep)
    lines.append(f"  Strategy:    {cfg.strategy_name:<16s}Config:  {json.dumps(cfg.strategy_config)}")
    lines.append(f"  Period:      {cfg.start_date} to {cfg.end_date} ({s.windows_processed} windows)")
    lines.append("-" * 68)

    lines.append("  PERFORMANCE")
    lines.append(f"  Starting Capital:       ${cfg.starting_capital:>12,.2f}")
    lines.append(f"  Final Capital:          ${s.final_capital:>12,.2f}")
    ret_sign = "+" if s.return_pct >= 0 else ""
    lines.append(f"  Total Return:           {ret_sign}{s.return_pct * 100:.2f}% (${s.total_pnl:+,.2f})")
    lines.append(f"  Max Drawdown:           -{s.max_drawdown * 100:.2f}%")
    lines.append(f"  Sharpe Ratio:           {s.sharpe_ratio:.2f}")
    lines.append(f"  Sortino Ratio:          {s.sortino_ratio:.2f}")
    lines.append(f"  Calmar Ratio:           {s.calmar_ratio:.2f}")

    lines.append("")

    lines.append("  TRADES")
    lines.append(f"  Total: {s.total_trades}   Win Rate: {s.win_rate * 100:.1f}%")
    lines.append(f"  Avg Win:                ${s.avg_win:>8,.4f}")
    lines.append(f"  Avg Loss:               ${s.avg_loss:>8,.4f}")
    lines.append(f"  Profit Factor:          {s.profit_factor:.2f}")
    lines.append(f"  Expectancy:             ${s.expectancy:>8,.4f}")
    lines.append(f"  Payoff Ratio:           {s.payoff_ratio:.2f}")

    if len(result.by_symbol) > 1:
        lines.append("")
        lines.append("  BY SYMBOL")
        lines.append(f"  {'Symbol':<8} {'Windows':>8} {'Trades':>7} {'Win %':>7} {'P&L':>11}")
        for symbol, b in result.by_symbol.items():
            lines.append(
                f"  {symbol:<8} {b['windows']:>8} {b['total_trades']:>7} "
                f"{b['win_rate'] * 100:>6.1f}% {b['total_pnl']:>+11.4f}"
            )

    lines.append("")

    lines.append("  RUN")
    lines.append(f"  Events Processed:       {s.events_processed:,}")
    lines.append(f"  Event Faults:           {s.faults}")
    lines.append(f"  Failed Windows:         {len(result.failed_windows)}")
    lines.append(f"  Elapsed:                {s.elapsed_seconds:.2f}s")

    if result.trades:
        lines.append("")
        lines.append("  RECENT TRADES (last 10)")
        lines.append(f"  {'Token':<12} {'Entry':>7} {'Exit':>7} {'Size':>8} {'P&L':>9} {'Reason':<12}")
        for t in result.trades[-10:]:
            lines.append(
                f"  {t.token:<12} {t.entry_price:>7.3f} {t.exit_price:>7.3f} "
                f"{t.size:>8.2f} {t.pnl:>+9.4f} {t.exit_reason:<12}"
            )

    lines.append(sep)
    return "\n".join(lines)


async def run_backtest(args: argparse.Namespace) -> None:
    """Load windows and ticks, run the parallel backtester, print results."""
    start = pd.Timestamp(args.start, tz="UTC").to_pydatetime()
    end = pd.Timestamp(args.end, tz="UTC").to_pydatetime()
    symbols = [s.strip().lower() for s in args.symbols.split(",")] if args.symbols else None

    loader = TickDataLoader()
    windows = await loader.load_windows(start, end, symbols=symbols)
    if not windows:
        print(f"No windows between {args.start} and {args.end}", file=sys.stderr)
        sys.exit(1)

    config = BacktestConfig(
        strategy_config=json.loads(args.params) if args.params else {},
        starting_capital=args.capital,
        concurrency=args.concurrency,
        on_window_error="skip" if args.skip_failed else "raise",
    )

    try:
        if args.per_window:
            result = await run_parallel_backtest(
                windows, STRATEGY_MAP[args.strategy], config=config, loader=loader
            )
        else:
            data = await loader.load_all(start, end, symbols=symbols)
            result = await run_parallel_backtest(
                windows, STRATEGY_MAP[args.strategy], config=config, data=data
            )
    except (ValueError, WindowEvaluationError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    if args.json:
        print(json.dumps(result.to_dict(), indent=2))
    else:
        print(format_report(result))


def main() -> None:
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    parser = argparse.ArgumentParser(
        description="Up/down window backtesting against recorded tick history"
    )
    parser.add_argument(
        "--strategy", required=True,
        choices=sorted(STRATEGY_MAP),
        help="Strategy to test",
    )
    parser.add_argument("--start", required=True, help="Start date (UTC), e.g. 2026-01-01")
    parser.add_argument("--end", required=True, help="End date (UTC), e.g. 2026-01-08")
    parser.add_argument(
        "--symbols", default=None,
        help="Comma-separated symbols to include (default: all)",
    )
    parser.add_argument(
        "--params", default=None,
        help='Strategy parameters as JSON, e.g. \'{"entry_seconds": 30}\'',
    )
    parser.add_argument(
        "--capital", type=float, default=settings.backtest_starting_capital,
        help=f"Starting capital per window (default: {settings.backtest_starting_capital})",
    )
    parser.add_argument(
        "--concurrency", type=int, default=settings.backtest_concurrency,
        help=f"Windows evaluated concurrently (default: {settings.backtest_concurrency})",
    )
    parser.add_argument(
        "--per-window", action="store_true",
        help="Query ticks per window instead of pre-loading the whole range",
    )
    parser.add_argument(
        "--skip-failed", action="store_true",
        help="Record failed windows and continue instead of aborting",
    )
    parser.add_argument(
        "--json", action="store_true",
        help="Output result as JSON instead of formatted report",
    )
    args = parser.parse_args()

    asyncio.run(run_backtest(args))


if __name__ == "__main__":
    main()

"""Exhaustive grid sweep over backtest and strategy parameters.

Each grid point is one full ``run_parallel_backtest``. Points run one after
another so peak memory and connection use stay those of a single run;
window-level concurrency inside each run is unchanged.
"""

import logging
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

import pandas as pd

from updown.services.backtest.config import BacktestConfig
from updown.services.backtest.data_source import WindowLoader
from updown.services.backtest.engine import run_parallel_backtest
from updown.services.backtest.result import AggregateResult
from updown.services.backtest.timeline import TickData
from updown.services.backtest.window import Window
from updown.services.strategy.base import strategy_factory

logger = logging.getLogger(__name__)

SweepProgressCallback = Callable[[int, int], Any]


@dataclass
class SweepResult:
    params: dict[str, Any]
    result: AggregateResult


def generate_param_combinations(param_grid: Mapping[str, Sequence[Any]]) -> list[dict[str, Any]]:
    """Cartesian product of ``param_grid``; later keys vary fastest.

    An empty grid yields one empty combination. A key with no values yields none.
    """
    combinations: list[dict[str, Any]] = [{}]
    for key, values in param_grid.items():
        combinations = [{**combo, key: value} for combo in combinations for value in values]
    return combinations


def apply_params(base_config: BacktestConfig, params: Mapping[str, Any]) -> BacktestConfig:
    """Overlay one grid point on ``base_config``.

    Keys naming a BacktestConfig field replace that field; every other key
    is merged into ``strategy_config``.
    """
    fields = set(BacktestConfig.model_fields) - {"strategy_config"}
    overrides = {k: v for k, v in params.items() if k in fields}
    strategy_params = {k: v for k, v in params.items() if k not in fields}
    # model_validate re-runs field validation; model_copy(update=...) would not
    return BacktestConfig.model_validate(
        {
            **{name: getattr(base_config, name) for name in BacktestConfig.model_fields},
            **overrides,
            "strategy_config": {**base_config.strategy_config, **strategy_params},
        }
    )


async def run_parallel_sweep(
    windows: Iterable[Window | Mapping[str, Any]],
    strategy: Any,
    base_config: BacktestConfig | None = None,
    param_grid: Mapping[str, Sequence[Any]] | None = None,
    data: TickData | None = None,
    loader: WindowLoader | None = None,
    concurrency: int | None = None,
    on_sweep_progress: SweepProgressCallback | None = None,
) -> list[SweepResult]:
    """Run one backtest per grid point, in enumeration order.

    ``data`` is passed unchanged to every run. ``concurrency`` overrides the
    per-run window concurrency of ``base_config``.
    """
    strategy_factory(strategy)
    base_config = base_config or BacktestConfig()
    if concurrency is not None:
        base_config = apply_params(base_config, {"concurrency": concurrency})

    window_list = list(windows)
    combinations = generate_param_combinations(param_grid or {})
    total = len(combinations)
    logger.info("Starting sweep: %d combinations over %d windows", total, len(window_list))

    results: list[SweepResult] = []
    for i, params in enumerate(combinations, start=1):
        config = apply_params(base_config, params)
        result = await run_parallel_backtest(
            window_list, strategy, config=config, data=data, loader=loader
        )
        results.append(SweepResult(params=dict(params), result=result))
        logger.info(
            "Sweep %d/%d %s: pnl %.4f, win rate %.1f%%",
            i, total, params, result.summary.total_pnl, result.summary.win_rate * 100,
        )
        if on_sweep_progress is not None:
            on_sweep_progress(i, total)

    return results


def sweep_summary_frame(results: Sequence[SweepResult]) -> pd.DataFrame:
    """One row per grid point: parameters plus headline statistics."""
    rows = []
    for sr in results:
        s = sr.result.summary
        rows.append(
            {
                **sr.params,
                "total_trades": s.total_trades,
                "win_rate": s.win_rate,
                "total_pnl": s.total_pnl,
                "return_pct": s.return_pct,
                "max_drawdown": s.max_drawdown,
                "sharpe_ratio": s.sharpe_ratio,
                "profit_factor": s.profit_factor,
                "expectancy": s.expectancy,
                "final_capital": s.final_capital,
                "windows_processed": s.windows_processed,
                "faults": s.faults,
            }
        )
    return pd.DataFrame(rows)

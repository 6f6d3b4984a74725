"""Parallel window backtester.

Every window is an independent unit of work: its ticks are fetched (or
sliced), merged into a timeline, and replayed against a fresh strategy
instance and a fresh simulator. Windows run concurrently through one shared
ConcurrencyLimiter and the results are re-ordered chronologically by the
aggregator.
"""

import asyncio
import copy
import logging
import time
from collections.abc import Iterable, Mapping
from typing import Any

from updown.services.backtest.config import BacktestConfig
from updown.services.backtest.data_source import (
    PerWindowDataSource,
    PreloadedDataSource,
    WindowDataSource,
    WindowLoader,
)
from updown.services.backtest.errors import WindowEvaluationError
from updown.services.backtest.evaluator import evaluate_window
from updown.services.backtest.limiter import ConcurrencyLimiter
from updown.services.backtest.metrics import aggregate_results
from updown.services.backtest.result import AggregateResult, FailedWindow, WindowResult
from updown.services.backtest.timeline import TickData, build_window_timeline
from updown.services.backtest.window import Window
from updown.services.strategy.base import strategy_defaults, strategy_factory, strategy_name

logger = logging.getLogger(__name__)


async def run_parallel_backtest(
    windows: Iterable[Window | Mapping[str, Any]],
    strategy: Any,
    config: BacktestConfig | None = None,
    data: TickData | None = None,
    loader: WindowLoader | None = None,
) -> AggregateResult:
    """Backtest ``strategy`` over ``windows`` and return the portfolio result.

    Exactly one of ``data`` (pre-loaded ticks for the whole range) or
    ``loader`` (per-window fetches) must be given. ``strategy`` may be a
    strategy class or an instance; each window gets its own copy.

    Raises ValueError before any window work if the strategy has no
    ``evaluate`` or the data mode is ambiguous. With
    ``config.on_window_error == "raise"`` the first failed window (in
    submission order) is raised as WindowEvaluationError once all windows
    have finished.
    """
    make_strategy = strategy_factory(strategy)
    config = config or BacktestConfig()
    source = _data_source(data, loader, config)
    window_list = [w if isinstance(w, Window) else Window.from_row(w) for w in windows]

    name = strategy_name(strategy)
    strategy_config = {**strategy_defaults(strategy), **config.strategy_config}
    total = len(window_list)
    concurrency = source.effective_concurrency(config.concurrency)

    logger.info(
        "Starting backtest: %s on %d windows (%s, concurrency %d)",
        name, total, source.mode, concurrency,
    )
    started = time.monotonic()

    limiter = ConcurrencyLimiter(concurrency)
    completed = 0

    def advance_progress(window: Window) -> None:
        nonlocal completed
        completed += 1
        if config.on_progress is None:
            return
        try:
            config.on_progress(completed, total)
        except Exception as exc:
            raise WindowEvaluationError(window, exc) from exc

    async def run_window(window: Window) -> WindowResult:
        try:
            tick_data = await source.fetch(window, config.window_duration_ms)
            timeline = build_window_timeline(tick_data)
            # nested parameter values must not be shared between concurrent windows
            result = evaluate_window(
                window, timeline, make_strategy(), config, strategy_config=copy.deepcopy(strategy_config)
            )
        except Exception as exc:
            try:
                advance_progress(window)
            except WindowEvaluationError as progress_error:
                logger.warning("Progress callback failed: %s", progress_error.cause)
            raise WindowEvaluationError(window, exc) from exc
        advance_progress(window)
        return result

    futures = [limiter.submit(lambda w=w: run_window(w)) for w in window_list]
    outcomes = await asyncio.gather(*futures, return_exceptions=True)

    window_results: list[WindowResult] = []
    failed: list[FailedWindow] = []
    for window, outcome in zip(window_list, outcomes):
        if isinstance(outcome, WindowResult):
            window_results.append(outcome)
            continue
        if not isinstance(outcome, WindowEvaluationError):
            raise outcome
        if config.on_window_error == "raise":
            raise outcome
        logger.warning("Skipping failed window: %s", outcome)
        failed.append(
            FailedWindow(
                window_close_time=window.close_time,
                symbol=window.symbol,
                error=f"{type(outcome.cause).__name__}: {outcome.cause}",
            )
        )

    elapsed = time.monotonic() - started
    result = aggregate_results(
        window_results,
        strategy_name=name,
        strategy_config=strategy_config,
        starting_capital=config.starting_capital,
        elapsed_seconds=elapsed,
        window_count=len(window_results),
        failed_windows=failed,
    )

    s = result.summary
    logger.info(
        "Backtest complete: %s, %d windows in %.2fs, %d trades, win rate %.1f%%, pnl %.4f%s",
        name, s.windows_processed, elapsed, s.total_trades, s.win_rate * 100, s.total_pnl,
        f", {len(failed)} failed" if failed else "",
    )
    return result


def _data_source(
    data: TickData | None,
    loader: WindowLoader | None,
    config: BacktestConfig,
) -> WindowDataSource:
    if data is not None and loader is not None:
        raise ValueError("pass either pre-loaded data or a loader, not both")
    if data is not None:
        return PreloadedDataSource(data)
    if loader is not None:
        return PerWindowDataSource(loader, config.per_window_concurrency_cap)
    raise ValueError("no data: pass pre-loaded data or a loader with load_window")


class BacktestEngine:
    """Convenience wrapper binding a strategy and config for repeated runs."""

    def __init__(
        self,
        strategy: Any,
        config: BacktestConfig | None = None,
        loader: WindowLoader | None = None,
    ) -> None:
        strategy_factory(strategy)
        self._strategy = strategy
        self._config = config or BacktestConfig()
        self._loader = loader

    @property
    def config(self) -> BacktestConfig:
        return self._config

    async def run(
        self,
        windows: Iterable[Window | Mapping[str, Any]],
        data: TickData | None = None,
    ) -> AggregateResult:
        return await run_parallel_backtest(
            windows,
            self._strategy,
            config=self._config,
            data=data,
            loader=None if data is not None else self._loader,
        )

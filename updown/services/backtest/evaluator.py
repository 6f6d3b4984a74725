"""Replay one window's timeline through a strategy and an execution simulator.

Phases, in order:

1. opening   - fresh MarketState and ExecutionSimulator, strategy open hook,
               ground truth resolved once
2. replaying - every event with open <= ts < close: update state, update the
               clock, ask the strategy, book filled signals
3. settling  - open positions pay out at 1.0 / 0.0 if ground truth is known
4. closed    - strategy close hook, WindowResult returned

Nothing here is shared with other windows, so any number of windows can be
evaluated concurrently on one event loop without locks. No wall clock and no
randomness: the same inputs always give the same result.
"""

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from updown.services.backtest.config import BacktestConfig
from updown.services.backtest.ground_truth import resolve_ground_truth
from updown.services.backtest.market_state import MarketState
from updown.services.backtest.result import WindowResult, WindowSummary
from updown.services.backtest.simulator import ExecutionSimulator
from updown.services.backtest.timeline import TimelineEvent
from updown.services.backtest.timeutil import to_iso
from updown.services.backtest.window import Window
from updown.services.strategy.base import BUY, SELL, Signal

logger = logging.getLogger(__name__)

# Fault messages kept per window; the count is always exact
MAX_FAULT_REASONS = 20


@dataclass(frozen=True)
class EventOutcome:
    """Result of replaying one event: either ok, or the error it raised."""

    ok: bool
    fills: int = 0
    error: str | None = None


def evaluate_window(
    window: Window,
    timeline: Sequence[TimelineEvent],
    strategy: Any,
    config: BacktestConfig,
    strategy_config: dict[str, Any] | None = None,
) -> WindowResult:
    """Evaluate ``window`` with a strategy instance owned by this call.

    ``strategy_config`` is the merged parameter dict passed to every strategy
    callback (strategy defaults overlaid with ``config.strategy_config``).
    """
    if strategy_config is None:
        strategy_config = {**getattr(strategy, "defaults", {}), **config.strategy_config}

    # ---- opening ----
    close_ms = window.close_ms
    open_ms = window.open_ms(config.window_duration_ms)

    state = MarketState()
    state.set_window(window, to_iso(open_ms))
    simulator = ExecutionSimulator(
        starting_capital=config.starting_capital,
        spread_buffer=config.spread_buffer,
        trading_fee=config.trading_fee,
    )

    on_open = getattr(strategy, "on_window_open", None)
    if callable(on_open):
        on_open(state, strategy_config)

    ground_truth = resolve_ground_truth(window)

    # ---- replaying ----
    events_processed = 0
    faults = 0
    fault_reasons: list[str] = []

    for event in timeline:
        if event.timestamp_ms < open_ms:
            continue
        if event.timestamp_ms >= close_ms:
            break

        outcome = _replay_event(event, state, simulator, strategy, strategy_config)
        events_processed += 1
        if not outcome.ok:
            faults += 1
            if len(fault_reasons) < MAX_FAULT_REASONS:
                fault_reasons.append(f"{event.timestamp}: {outcome.error}")
            logger.debug("Event fault in %s @ %s: %s", window.symbol, event.timestamp, outcome.error)

    # ---- settling ----
    if ground_truth is not None:
        simulator.resolve_window(direction=ground_truth.value, timestamp=window.close_time)

    # ---- closed ----
    stats = simulator.get_stats()
    trades = simulator.get_trades()
    resolved = ground_truth.value if ground_truth is not None else None

    on_close = getattr(strategy, "on_window_close", None)
    if callable(on_close):
        on_close(
            state,
            WindowSummary(
                window_close_time=window.close_time,
                symbol=window.symbol,
                strike=window.strike_price,
                close_price=window.chainlink_price_at_close,
                resolved_direction=resolved,
                pnl=stats.total_pnl,
                trades_in_window=len(trades),
            ),
            strategy_config,
        )

    if faults:
        logger.warning(
            "Window %s closing %s: %d of %d events faulted",
            window.symbol, window.close_time, faults, events_processed,
        )

    return WindowResult(
        window_close_time=window.close_time,
        close_ms=close_ms,
        symbol=window.symbol,
        strike=window.strike_price,
        close_price=window.chainlink_price_at_close,
        resolved_direction=resolved,
        pnl=stats.total_pnl,
        trades=tuple(trades),
        events_processed=events_processed,
        capital_after=stats.final_capital,
        win_rate=stats.win_rate,
        equity_curve=tuple(simulator.get_equity_curve()),
        faults=faults,
        fault_reasons=tuple(fault_reasons),
    )


def _replay_event(
    event: TimelineEvent,
    state: MarketState,
    simulator: ExecutionSimulator,
    strategy: Any,
    strategy_config: dict[str, Any],
) -> EventOutcome:
    """Update state, ask the strategy, book fills. Errors become an EventOutcome."""
    try:
        state.process_event(event)
        state.update_time_to_close(event.timestamp)

        fills = 0
        on_fill = getattr(strategy, "on_fill", None)
        for signal in _actionable(strategy.evaluate(state, strategy_config)):
            fill = simulator.execute(signal, state, strategy_config)
            if on_fill is not None:
                on_fill(signal, fill, state, strategy_config)
            if not fill.filled:
                continue
            if signal.action == BUY:
                simulator.buy_token(
                    token=signal.token,
                    price=fill.fill_price,
                    size=fill.fill_size,
                    timestamp=event.timestamp,
                    reason=signal.reason or "",
                )
            elif signal.action == SELL:
                simulator.sell_token(
                    token=signal.token,
                    price=fill.fill_price,
                    timestamp=event.timestamp,
                    reason=signal.reason or "strategy_sell",
                    size=fill.fill_size,
                )
            fills += 1
        return EventOutcome(ok=True, fills=fills)
    except Exception as exc:
        return EventOutcome(ok=False, error=f"{type(exc).__name__}: {exc}")


def _actionable(raw_signals: Any) -> list[Signal]:
    """Normalise strategy output; drop anything without a trade action and token."""
    if not raw_signals:
        return []
    if isinstance(raw_signals, (Signal, Mapping)):
        raw_signals = [raw_signals]
    signals = []
    for raw in raw_signals:
        if isinstance(raw, Mapping):
            raw = Signal.from_mapping(raw)
        if isinstance(raw, Signal) and raw.is_actionable:
            signals.append(raw)
    return signals

"""Fold per-window results into one chronological portfolio result."""

import math
from collections.abc import Sequence
from typing import Any

from updown.services.backtest.result import (
    AggregateResult,
    BacktestSummary,
    FailedWindow,
    RunInfo,
    Trade,
    WindowResult,
)

# Annualization factor for per-window return ratios
PERIODS_PER_YEAR = 252

# Stand-in for an unbounded ratio (no losing trades / no downside), keeps JSON output finite
RATIO_CAP = 9999.0


def aggregate_results(
    window_results: Sequence[WindowResult],
    strategy_name: str,
    strategy_config: dict[str, Any],
    starting_capital: float,
    elapsed_seconds: float = 0.0,
    window_count: int | None = None,
    failed_windows: Sequence[FailedWindow] = (),
) -> AggregateResult:
    """Compute portfolio statistics from window results in any completion order.

    Windows are re-ordered by close time (stable on ties) before the equity
    curve is walked, since concurrent evaluation finishes out of order.
    """
    ordered = sorted(window_results, key=lambda wr: wr.close_ms)

    trades: list[Trade] = []
    events_processed = 0
    faults = 0
    for wr in ordered:
        trades.extend(wr.trades)
        events_processed += wr.events_processed
        faults += wr.faults

    equity_curve = _equity_curve(starting_capital, [wr.pnl for wr in ordered])
    total_pnl = equity_curve[-1] - starting_capital
    return_pct = total_pnl / starting_capital if starting_capital > 0 else 0.0
    max_drawdown = _compute_max_drawdown(equity_curve)
    returns = _window_returns(equity_curve)
    trade_stats = _compute_trade_stats(trades)

    return AggregateResult(
        config=RunInfo(
            strategy_name=strategy_name,
            strategy_config=dict(strategy_config),
            starting_capital=starting_capital,
            start_date=ordered[0].window_close_time if ordered else None,
            end_date=ordered[-1].window_close_time if ordered else None,
        ),
        summary=BacktestSummary(
            total_trades=trade_stats["total_trades"],
            win_rate=trade_stats["win_rate"],
            total_pnl=total_pnl,
            return_pct=return_pct,
            max_drawdown=max_drawdown,
            final_capital=equity_curve[-1],
            avg_win=trade_stats["avg_win"],
            avg_loss=trade_stats["avg_loss"],
            events_processed=events_processed,
            windows_processed=window_count if window_count is not None else len(ordered),
            faults=faults,
            sharpe_ratio=_compute_sharpe(returns),
            sortino_ratio=_compute_sortino(returns),
            calmar_ratio=return_pct / max_drawdown if max_drawdown > 0 else 0.0,
            profit_factor=trade_stats["profit_factor"],
            expectancy=trade_stats["expectancy"],
            payoff_ratio=trade_stats["payoff_ratio"],
            elapsed_seconds=elapsed_seconds,
        ),
        trades=trades,
        equity_curve=equity_curve,
        window_results=[wr.summary() for wr in ordered],
        failed_windows=list(failed_windows),
        by_symbol=_compute_symbol_breakdown(ordered),
    )


def _equity_curve(starting_capital: float, pnls: Sequence[float]) -> list[float]:
    """Running capital after each window, starting capital first (len = windows + 1)."""
    curve = [starting_capital]
    running = starting_capital
    for pnl in pnls:
        running += pnl
        curve.append(running)
    return curve


def _window_returns(equity_curve: Sequence[float]) -> list[float]:
    """Fractional change per window. Steps from a non-positive balance are skipped."""
    returns = []
    for i in range(1, len(equity_curve)):
        prev = equity_curve[i - 1]
        if prev > 0:
            returns.append((equity_curve[i] - prev) / prev)
    return returns


def _compute_sharpe(returns: Sequence[float], periods_per_year: int = PERIODS_PER_YEAR) -> float:
    """Annualized Sharpe ratio from per-window returns.

    Sharpe = (mean_return / std_return) * sqrt(periods_per_year)
    Risk-free rate = 0.
    """
    if len(returns) < 2:
        return 0.0

    mean_ret = sum(returns) / len(returns)
    variance = sum((r - mean_ret) ** 2 for r in returns) / (len(returns) - 1)
    std_ret = math.sqrt(variance)

    if std_ret == 0:
        return 0.0

    return (mean_ret / std_ret) * math.sqrt(periods_per_year)


def _compute_sortino(returns: Sequence[float], periods_per_year: int = PERIODS_PER_YEAR) -> float:
    """Annualized Sortino ratio: like Sharpe, but only losing windows count as risk."""
    if len(returns) < 2:
        return 0.0

    mean_ret = sum(returns) / len(returns)
    downside = [r for r in returns if r < 0]
    if not downside:
        return RATIO_CAP if mean_ret > 0 else 0.0

    # downside deviation is scaled by the full sample, not just the losing windows
    downside_dev = math.sqrt(sum(r * r for r in downside) / len(returns))
    return (mean_ret / downside_dev) * math.sqrt(periods_per_year)


def _compute_max_drawdown(equity_curve: Sequence[float]) -> float:
    """Largest fractional decline from any earlier peak, clamped to [0, 1]."""
    if not equity_curve:
        return 0.0

    peak = equity_curve[0]
    max_dd = 0.0
    for equity in equity_curve:
        if equity > peak:
            peak = equity
        if peak > 0:
            dd = (peak - equity) / peak
            if dd > max_dd:
                max_dd = dd

    # independent windows can lose more than the running balance; the fraction caps at total loss
    return min(max_dd, 1.0)


def _compute_profit_factor(trades: Sequence[Trade]) -> float:
    """Gross profit over gross loss. Capped when nothing lost."""
    gross_profit = sum(t.pnl for t in trades if t.pnl > 0)
    gross_loss = abs(sum(t.pnl for t in trades if t.pnl < 0))
    if gross_loss > 0:
        return gross_profit / gross_loss
    return RATIO_CAP if gross_profit > 0 else 0.0


def _compute_expectancy(trades: Sequence[Trade]) -> float:
    """Expected pnl per trade: win_rate * avg_win - loss_rate * |avg_loss|."""
    if not trades:
        return 0.0
    return sum(t.pnl for t in trades) / len(trades)


def _compute_trade_stats(trades: Sequence[Trade]) -> dict:
    """Win rate, average win / loss, profit factor, expectancy, payoff. A win is pnl > 0."""
    if not trades:
        return {
            "total_trades": 0,
            "win_rate": 0.0,
            "avg_win": 0.0,
            "avg_loss": 0.0,
            "profit_factor": 0.0,
            "expectancy": 0.0,
            "payoff_ratio": 0.0,
        }

    wins = [t.pnl for t in trades if t.pnl > 0]
    losses = [t.pnl for t in trades if t.pnl <= 0]
    avg_win = sum(wins) / len(wins) if wins else 0.0
    avg_loss = sum(losses) / len(losses) if losses else 0.0

    return {
        "total_trades": len(trades),
        "win_rate": len(wins) / len(trades),
        "avg_win": avg_win,
        "avg_loss": avg_loss,
        "profit_factor": _compute_profit_factor(trades),
        "expectancy": _compute_expectancy(trades),
        "payoff_ratio": abs(avg_win / avg_loss) if avg_loss != 0 else 0.0,
    }


def _compute_symbol_breakdown(ordered: Sequence[WindowResult]) -> dict[str, dict]:
    """Per-symbol windows, trades and pnl, in first-seen order."""
    grouped: dict[str, list[WindowResult]] = {}
    for wr in ordered:
        grouped.setdefault(wr.symbol, []).append(wr)

    breakdown = {}
    for symbol, windows in grouped.items():
        trades = [t for wr in windows for t in wr.trades]
        stats = _compute_trade_stats(trades)
        breakdown[symbol] = {
            "windows": len(windows),
            "total_trades": stats["total_trades"],
            "win_rate": stats["win_rate"],
            "total_pnl": sum(wr.pnl for wr in windows),
            "profit_factor": stats["profit_factor"],
            "expectancy": stats["expectancy"],
        }
    return breakdown

"""Backtest result data structures. Money in dollars, prices as probabilities."""

from dataclasses import asdict, dataclass, field
from typing import Any


@dataclass(frozen=True)
class Trade:
    """A completed round trip on one outcome token (early sell or settlement)."""

    token: str
    side: str  # "up" / "down"
    entry_price: float  # average fill price per unit
    exit_price: float  # 1.0 / 0.0 at settlement
    size: float
    cost: float  # entry_price * size
    proceeds: float  # exit_price * size
    fees: float
    pnl: float  # proceeds - cost - fees
    entry_time: Any
    exit_time: Any
    entry_reason: str
    exit_reason: str  # "resolution", "strategy_sell" or the strategy's reason


@dataclass(frozen=True)
class WindowSummary:
    """Per-window line in the aggregate result; also handed to ``on_window_close``."""

    window_close_time: Any
    symbol: str
    strike: float | None
    close_price: float | None
    resolved_direction: str | None
    pnl: float
    trades_in_window: int


@dataclass(frozen=True)
class WindowResult:
    """Outcome of evaluating one window. Built once, never modified."""

    window_close_time: Any
    close_ms: int
    symbol: str
    strike: float | None
    close_price: float | None
    resolved_direction: str | None
    pnl: float
    trades: tuple[Trade, ...]
    events_processed: int
    capital_after: float
    win_rate: float
    equity_curve: tuple[float, ...]
    faults: int = 0
    fault_reasons: tuple[str, ...] = ()

    @property
    def trades_in_window(self) -> int:
        return len(self.trades)

    def summary(self) -> WindowSummary:
        return WindowSummary(
            window_close_time=self.window_close_time,
            symbol=self.symbol,
            strike=self.strike,
            close_price=self.close_price,
            resolved_direction=self.resolved_direction,
            pnl=self.pnl,
            trades_in_window=self.trades_in_window,
        )


@dataclass(frozen=True)
class FailedWindow:
    """A window skipped because loading or evaluation raised."""

    window_close_time: Any
    symbol: str
    error: str


@dataclass
class RunInfo:
    strategy_name: str
    strategy_config: dict[str, Any]
    starting_capital: float
    start_date: Any
    end_date: Any


@dataclass
class BacktestSummary:
    total_trades: int
    win_rate: float  # fraction 0..1
    total_pnl: float
    return_pct: float  # fraction of starting capital
    max_drawdown: float  # fraction 0..1
    final_capital: float
    avg_win: float
    avg_loss: float
    events_processed: int
    windows_processed: int
    faults: int
    sharpe_ratio: float = 0.0  # annualized, per-window returns
    sortino_ratio: float = 0.0
    calmar_ratio: float = 0.0  # return_pct / max_drawdown
    profit_factor: float = 0.0
    expectancy: float = 0.0  # mean pnl per trade
    payoff_ratio: float = 0.0  # |avg_win / avg_loss|
    elapsed_seconds: float = field(default=0.0, compare=False)


@dataclass
class AggregateResult:
    """Complete backtest output: summary, chronological trades and equity curve."""

    config: RunInfo
    summary: BacktestSummary
    trades: list[Trade] = field(default_factory=list)
    equity_curve: list[float] = field(default_factory=list)
    window_results: list[WindowSummary] = field(default_factory=list)
    failed_windows: list[FailedWindow] = field(default_factory=list)
    by_symbol: dict[str, dict] = field(default_factory=dict)

    def to_dict(self) -> dict:
        """Serialize to a JSON-safe dict."""
        s = self.summary
        return {
            "config": {
                "strategy_name": self.config.strategy_name,
                "strategy_config": self.config.strategy_config,
                "starting_capital": self.config.starting_capital,
                "start_date": _iso(self.config.start_date),
                "end_date": _iso(self.config.end_date),
            },
            "summary": {
                "total_trades": s.total_trades,
                "win_rate": round(s.win_rate, 4),
                "total_pnl": round(s.total_pnl, 4),
                "return_pct": round(s.return_pct, 4),
                "max_drawdown": round(s.max_drawdown, 4),
                "final_capital": round(s.final_capital, 4),
                "avg_win": round(s.avg_win, 4),
                "avg_loss": round(s.avg_loss, 4),
                "events_processed": s.events_processed,
                "windows_processed": s.windows_processed,
                "faults": s.faults,
                "sharpe_ratio": round(s.sharpe_ratio, 4),
                "sortino_ratio": round(s.sortino_ratio, 4),
                "calmar_ratio": round(s.calmar_ratio, 4),
                "profit_factor": round(s.profit_factor, 4),
                "expectancy": round(s.expectancy, 4),
                "payoff_ratio": round(s.payoff_ratio, 4),
                "elapsed_seconds": round(s.elapsed_seconds, 3),
            },
            "trades": [
                {**asdict(t), "entry_time": _iso(t.entry_time), "exit_time": _iso(t.exit_time)}
                for t in self.trades
            ],
            "equity_curve": [round(v, 4) for v in self.equity_curve],
            "window_results": [
                {**asdict(w), "window_close_time": _iso(w.window_close_time)}
                for w in self.window_results
            ],
            "failed_windows": [
                {**asdict(f), "window_close_time": _iso(f.window_close_time)}
                for f in self.failed_windows
            ],
            "by_symbol": {
                symbol: {k: round(v, 4) if isinstance(v, float) else v for k, v in stats.items()}
                for symbol, stats in self.by_symbol.items()
            },
        }


def _iso(value: Any) -> Any:
    return value.isoformat() if hasattr(value, "isoformat") else value

"""Per-run backtest configuration."""

from collections.abc import Callable
from typing import Any, Literal

from pydantic import BaseModel, Field

from updown.config import settings

ProgressCallback = Callable[[int, int], Any]


class BacktestConfig(BaseModel):
    """Validated configuration for one backtest run. Defaults come from ``settings``.

    ``on_window_error`` picks the failure policy: ``"raise"`` lets every window
    finish, then raises the first failure; ``"skip"`` drops failed windows
    from the statistics and lists them on the result.
    """

    model_config = {"arbitrary_types_allowed": True, "frozen": True}

    strategy_config: dict[str, Any] = Field(default_factory=dict)
    starting_capital: float = Field(default_factory=lambda: settings.backtest_starting_capital, gt=0)
    spread_buffer: float = Field(default_factory=lambda: settings.backtest_spread_buffer, ge=0)
    trading_fee: float = Field(default_factory=lambda: settings.backtest_trading_fee, ge=0)
    window_duration_ms: int = Field(default_factory=lambda: settings.backtest_window_duration_ms, gt=0)
    concurrency: int = Field(default_factory=lambda: settings.backtest_concurrency, ge=1)
    per_window_concurrency_cap: int = Field(
        default_factory=lambda: settings.backtest_per_window_concurrency_cap, ge=1
    )
    on_window_error: Literal["raise", "skip"] = "raise"
    on_progress: ProgressCallback | None = None

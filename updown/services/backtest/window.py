"""Window: one fixed-duration up/down market episode."""

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from updown.services.backtest.timeutil import to_ms

_COLUMNS = (
    "window_close_time",
    "symbol",
    "strike_price",
    "oracle_price_at_open",
    "chainlink_price_at_close",
    "gamma_resolved_direction",
    "onchain_resolved_direction",
    "resolved_direction",
    "window_open_time",
)


@dataclass(frozen=True)
class Window:
    """A window record as loaded from ``window_close_events``.

    Resolution fields are populated independently by separate backfills and
    any of them may be missing. ``open_time`` is optional; when absent the
    window opens ``window_duration_ms`` before ``close_time``.
    """

    symbol: str
    close_time: datetime | str
    strike_price: float | None = None
    oracle_price_at_open: float | None = None
    chainlink_price_at_close: float | None = None
    gamma_resolved_direction: str | None = None
    onchain_resolved_direction: str | None = None
    resolved_direction: str | None = None
    open_time: datetime | str | None = None
    extra: Mapping[str, Any] = field(default_factory=dict, compare=False)

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Window":
        """Build from a loader row mapping; unknown columns land in ``extra``."""
        if row.get("window_close_time") is None:
            raise ValueError("window row is missing window_close_time")
        return cls(
            symbol=str(row.get("symbol") or ""),
            close_time=row["window_close_time"],
            strike_price=_as_float(row.get("strike_price")),
            oracle_price_at_open=_as_float(row.get("oracle_price_at_open")),
            chainlink_price_at_close=_as_float(row.get("chainlink_price_at_close")),
            gamma_resolved_direction=row.get("gamma_resolved_direction"),
            onchain_resolved_direction=row.get("onchain_resolved_direction"),
            resolved_direction=row.get("resolved_direction"),
            open_time=row.get("window_open_time"),
            extra={k: v for k, v in row.items() if k not in _COLUMNS},
        )

    @property
    def close_ms(self) -> int:
        return to_ms(self.close_time)

    def open_ms(self, window_duration_ms: int) -> int:
        if self.open_time is not None:
            return to_ms(self.open_time)
        return self.close_ms - window_duration_ms

    @property
    def epoch(self) -> int:
        """Close time in whole unix seconds; book snapshots are tagged with it."""
        return self.close_ms // 1000


def _as_float(value: Any) -> float | None:
    if value is None:
        return None
    return float(value)

"""Per-window timeline: three tick sources merged into one time-ordered stream.

Every event carries a ``source`` tag telling the market state which part of
the book it updates:

- oracle-tier ticks: ``chainlink`` (slow, settles the market), ``poly_ref``
  (fast reference), ``rtds:<topic>`` for any other topic
- order-book snapshots: ``clob_down`` when the label mentions "down",
  otherwise ``clob_up``
- exchange ticks: ``exchange:<name>``

The merge is a stable sort on timestamp, so simultaneous events keep source
order (oracle, then book, then exchange) and replay is reproducible.
"""

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from updown.services.backtest.timeutil import to_ms

CHAINLINK_TOPIC = "crypto_prices_chainlink"
POLY_REF_TOPIC = "crypto_prices"

SOURCE_CHAINLINK = "chainlink"
SOURCE_POLY_REF = "poly_ref"
SOURCE_CLOB_UP = "clob_up"
SOURCE_CLOB_DOWN = "clob_down"
RTDS_PREFIX = "rtds:"
EXCHANGE_PREFIX = "exchange:"


@dataclass
class TickData:
    """The three raw tick collections, each sorted ascending by ``timestamp``."""

    rtds_ticks: Sequence[Mapping[str, Any]] = field(default_factory=list)
    clob_snapshots: Sequence[Mapping[str, Any]] = field(default_factory=list)
    exchange_ticks: Sequence[Mapping[str, Any]] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.rtds_ticks) + len(self.clob_snapshots) + len(self.exchange_ticks)


@dataclass(frozen=True)
class TimelineEvent:
    """One tagged tick. ``data`` is a read-only view of the raw row."""

    timestamp: Any
    timestamp_ms: int
    source: str
    data: Mapping[str, Any]

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)

    @property
    def exchange(self) -> str | None:
        if self.source.startswith(EXCHANGE_PREFIX):
            return self.source[len(EXCHANGE_PREFIX):]
        return None


def tag_rtds_tick(tick: Mapping[str, Any]) -> str:
    topic = tick.get("topic")
    if topic == CHAINLINK_TOPIC:
        return SOURCE_CHAINLINK
    if topic == POLY_REF_TOPIC:
        return SOURCE_POLY_REF
    return f"{RTDS_PREFIX}{topic or 'unknown'}"


def tag_clob_snapshot(snapshot: Mapping[str, Any]) -> str:
    label = snapshot.get("symbol")
    if isinstance(label, str) and "down" in label.lower():
        return SOURCE_CLOB_DOWN
    return SOURCE_CLOB_UP


def tag_exchange_tick(tick: Mapping[str, Any]) -> str:
    return f"{EXCHANGE_PREFIX}{tick.get('exchange') or 'unknown'}"


def _event(row: Mapping[str, Any], source: str) -> TimelineEvent:
    return TimelineEvent(
        timestamp=row.get("timestamp"),
        timestamp_ms=to_ms(row.get("timestamp")),
        source=source,
        data=MappingProxyType(dict(row)),
    )


def build_window_timeline(window_data: TickData) -> list[TimelineEvent]:
    """Tag and merge one window's ticks into a single ascending timeline."""
    timeline = [_event(t, tag_rtds_tick(t)) for t in window_data.rtds_ticks]
    timeline.extend(_event(s, tag_clob_snapshot(s)) for s in window_data.clob_snapshots)
    timeline.extend(_event(t, tag_exchange_tick(t)) for t in window_data.exchange_ticks)
    # list.sort is stable: ties keep oracle -> book -> exchange order
    timeline.sort(key=lambda e: e.timestamp_ms)
    return timeline

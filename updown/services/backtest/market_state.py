"""Strategy-visible market state, rebuilt from the tagged timeline.

One instance per window. It is a pure accumulator: every ``process_event``
overwrites the latest view of whichever feed the event came from.
"""

import statistics
from dataclasses import dataclass
from typing import Any

from updown.services.backtest.timeline import (
    EXCHANGE_PREFIX,
    RTDS_PREFIX,
    SOURCE_CHAINLINK,
    SOURCE_CLOB_DOWN,
    SOURCE_CLOB_UP,
    SOURCE_POLY_REF,
    TimelineEvent,
)
from updown.services.backtest.timeutil import to_ms
from updown.services.backtest.window import Window


@dataclass
class PricePoint:
    price: float
    ts: Any


@dataclass
class BookTop:
    """Top of book for one outcome token. Prices are probabilities in [0, 1]."""

    best_bid: float | None
    best_ask: float | None
    mid: float | None
    spread: float | None
    bid_size: float | None
    ask_size: float | None
    ts: Any


@dataclass
class ExchangePrice:
    exchange: str
    price: float
    bid: float | None
    ask: float | None
    ts: Any


@dataclass
class WindowContext:
    symbol: str
    open_time: Any
    close_time: Any
    close_ms: int
    strike: float | None
    time_to_close_ms: int | None = None


@dataclass
class ExchangeSpread:
    min: float
    max: float
    range: float
    range_pct: float


def _num(value: Any) -> float | None:
    return None if value is None else float(value)


class MarketState:
    """Latest oracle, reference, order-book and exchange prices for one window."""

    def __init__(self) -> None:
        self.reset()

    def reset(self) -> None:
        self.chainlink: PricePoint | None = None
        self.poly_ref: PricePoint | None = None
        self.clob_up: BookTop | None = None
        self.clob_down: BookTop | None = None
        self.raw_feeds: dict[str, PricePoint] = {}
        self._exchanges: dict[str, ExchangePrice] = {}
        self.strike: float | None = None
        self.window: WindowContext | None = None
        self.timestamp: Any = None
        self._tick_count = 0

    def set_window(self, window: Window, open_time: Any = None) -> None:
        """Bind the state to ``window``. The realized outcome is deliberately not exposed."""
        self.window = WindowContext(
            symbol=window.symbol,
            open_time=open_time,
            close_time=window.close_time,
            close_ms=window.close_ms,
            strike=window.strike_price,
        )
        self.strike = window.strike_price

    def process_event(self, event: TimelineEvent) -> None:
        source = event.source
        if source == SOURCE_CHAINLINK:
            self.chainlink = PricePoint(price=float(event.get("price")), ts=event.timestamp)
        elif source == SOURCE_POLY_REF:
            self.poly_ref = PricePoint(price=float(event.get("price")), ts=event.timestamp)
        elif source in (SOURCE_CLOB_UP, SOURCE_CLOB_DOWN):
            book = BookTop(
                best_bid=_num(event.get("best_bid")),
                best_ask=_num(event.get("best_ask")),
                mid=_num(event.get("mid_price")),
                spread=_num(event.get("spread")),
                bid_size=_num(event.get("bid_size_top")),
                ask_size=_num(event.get("ask_size_top")),
                ts=event.timestamp,
            )
            if source == SOURCE_CLOB_UP:
                self.clob_up = book
            else:
                self.clob_down = book
        elif source.startswith(EXCHANGE_PREFIX):
            name = source[len(EXCHANGE_PREFIX):]
            self._exchanges[name] = ExchangePrice(
                exchange=name,
                price=float(event.get("price")),
                bid=_num(event.get("bid")),
                ask=_num(event.get("ask")),
                ts=event.timestamp,
            )
        elif source.startswith(RTDS_PREFIX) and event.get("price") is not None:
            self.raw_feeds[source[len(RTDS_PREFIX):]] = PricePoint(
                price=float(event.get("price")), ts=event.timestamp
            )

        self.timestamp = event.timestamp
        self._tick_count += 1

    def update_time_to_close(self, timestamp: Any) -> None:
        if self.window is None:
            return
        self.window.time_to_close_ms = max(0, self.window.close_ms - to_ms(timestamp))

    # ---------- read helpers for strategies ----------

    def get_tick_count(self) -> int:
        return self._tick_count

    def get_exchange(self, name: str) -> ExchangePrice | None:
        return self._exchanges.get(name)

    def get_all_exchanges(self) -> list[ExchangePrice]:
        return list(self._exchanges.values())

    def get_exchange_median(self) -> float | None:
        if not self._exchanges:
            return None
        return statistics.median(e.price for e in self._exchanges.values())

    def get_exchange_spread(self) -> ExchangeSpread | None:
        """Cross-exchange dispersion; needs at least two venues."""
        if len(self._exchanges) < 2:
            return None
        prices = [e.price for e in self._exchanges.values()]
        lo, hi = min(prices), max(prices)
        return ExchangeSpread(
            min=lo, max=hi, range=hi - lo, range_pct=(hi - lo) / lo if lo else 0.0
        )

    def get_chainlink_deficit(self) -> float | None:
        """strike - chainlink. Positive means the oracle sits below strike (DOWN bias)."""
        if self.strike is None or self.chainlink is None:
            return None
        return self.strike - self.chainlink.price

    def get_ref_to_strike_gap(self) -> float | None:
        if self.strike is None or self.poly_ref is None:
            return None
        return self.strike - self.poly_ref.price

    def book_for_token(self, token: str) -> BookTop | None:
        """The order book a token trades on: ``*down*`` tokens use the DOWN book."""
        if "down" in token.lower():
            return self.clob_down
        return self.clob_up

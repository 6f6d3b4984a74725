"""Where a window's ticks come from.

Two implementations, chosen once per run:

- ``PreloadedDataSource``: the whole date range is already in memory; each
  window binary-search slices the shared, read-only arrays.
- ``PerWindowDataSource``: every window fetches its own ticks from a loader.
  The fetches share the loader's connection pool, so concurrency is capped
  well below the pre-loaded level.
"""

import logging
from typing import Protocol

from updown.services.backtest.slicing import filter_by_symbol, slice_by_time, timestamp_keys
from updown.services.backtest.timeline import TickData
from updown.services.backtest.window import Window

logger = logging.getLogger(__name__)


class WindowLoader(Protocol):
    """Anything that can fetch one window's ticks (see ``TickDataLoader``)."""

    async def load_window(self, window: Window, window_duration_ms: int) -> TickData: ...


class WindowDataSource(Protocol):
    mode: str

    def effective_concurrency(self, requested: int) -> int: ...

    async def fetch(self, window: Window, window_duration_ms: int) -> TickData: ...


class PreloadedDataSource:
    """Slices per-window ticks out of one bulk-loaded dataset. Never mutates it."""

    mode = "preloaded"

    def __init__(self, data: TickData) -> None:
        self._data = data
        self._rtds_keys = timestamp_keys(data.rtds_ticks)
        self._clob_keys = timestamp_keys(data.clob_snapshots)
        self._exchange_keys = timestamp_keys(data.exchange_ticks)
        logger.info(
            "Pre-loaded data: %d oracle ticks, %d book snapshots, %d exchange ticks",
            len(data.rtds_ticks), len(data.clob_snapshots), len(data.exchange_ticks),
        )

    @property
    def data(self) -> TickData:
        return self._data

    def effective_concurrency(self, requested: int) -> int:
        return requested

    async def fetch(self, window: Window, window_duration_ms: int) -> TickData:
        return self.slice(window, window_duration_ms)

    def slice(self, window: Window, window_duration_ms: int) -> TickData:
        close_ms = window.close_ms
        open_ms = window.open_ms(window_duration_ms)
        d = self._data
        rtds = slice_by_time(d.rtds_ticks, open_ms, close_ms, self._rtds_keys)
        clob = slice_by_time(d.clob_snapshots, open_ms, close_ms, self._clob_keys)
        exchange = slice_by_time(d.exchange_ticks, open_ms, close_ms, self._exchange_keys)
        return TickData(
            rtds_ticks=filter_by_symbol(rtds, window.symbol, keep_unlabelled=True),
            # book snapshots are tagged with the close epoch of the window they quote
            clob_snapshots=filter_by_symbol(clob, window.symbol, epoch=window.epoch),
            exchange_ticks=filter_by_symbol(exchange, window.symbol, exact=True),
        )


class PerWindowDataSource:
    """Fetches each window's ticks on demand through ``loader``."""

    mode = "per-window"

    def __init__(self, loader: WindowLoader, concurrency_cap: int) -> None:
        if not callable(getattr(loader, "load_window", None)):
            raise ValueError("loader must have a load_window coroutine")
        if concurrency_cap < 1:
            raise ValueError(f"concurrency_cap must be >= 1, got {concurrency_cap}")
        self._loader = loader
        self._cap = concurrency_cap

    def effective_concurrency(self, requested: int) -> int:
        return min(requested, self._cap)

    async def fetch(self, window: Window, window_duration_ms: int) -> TickData:
        return await self._loader.load_window(window, window_duration_ms)

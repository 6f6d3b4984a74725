"""Reads tick history and window close events from PostgreSQL.

Rows come back as plain dicts ordered by timestamp, which is what the
backtest slicer and timeline builder expect.
"""

import asyncio
import logging
from collections.abc import Callable, Sequence
from datetime import datetime
from typing import Any

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from updown.database import async_session
from updown.models.ticks import ClobPriceSnapshot, ExchangeTick, RtdsTick
from updown.models.window import WindowCloseEvent
from updown.services.backtest.timeline import CHAINLINK_TOPIC, POLY_REF_TOPIC, TickData
from updown.services.backtest.timeutil import to_datetime
from updown.services.backtest.window import Window

logger = logging.getLogger(__name__)

ORACLE_TOPICS = (CHAINLINK_TOPIC, POLY_REF_TOPIC)

RTDS_COLUMNS = (RtdsTick.timestamp, RtdsTick.topic, RtdsTick.symbol, RtdsTick.price, RtdsTick.received_at)
CLOB_COLUMNS = (
    ClobPriceSnapshot.timestamp,
    ClobPriceSnapshot.symbol,
    ClobPriceSnapshot.token_id,
    ClobPriceSnapshot.best_bid,
    ClobPriceSnapshot.best_ask,
    ClobPriceSnapshot.mid_price,
    ClobPriceSnapshot.spread,
    ClobPriceSnapshot.bid_size_top,
    ClobPriceSnapshot.ask_size_top,
    ClobPriceSnapshot.window_epoch,
)
EXCHANGE_COLUMNS = (
    ExchangeTick.timestamp,
    ExchangeTick.exchange,
    ExchangeTick.symbol,
    ExchangeTick.price,
    ExchangeTick.bid,
    ExchangeTick.ask,
)
WINDOW_COLUMNS = (
    WindowCloseEvent.window_close_time,
    WindowCloseEvent.symbol,
    WindowCloseEvent.strike_price,
    WindowCloseEvent.oracle_price_at_open,
    WindowCloseEvent.chainlink_price_at_close,
    WindowCloseEvent.oracle_price_at_close,
    WindowCloseEvent.binance_price_at_close,
    WindowCloseEvent.pyth_price_at_close,
    WindowCloseEvent.gamma_resolved_direction,
    WindowCloseEvent.onchain_resolved_direction,
    WindowCloseEvent.resolved_direction,
    WindowCloseEvent.market_consensus_direction,
    WindowCloseEvent.market_consensus_confidence,
)


class TickDataLoader:
    """Loads backtest inputs, either for a whole date range or one window at a time.

    Usage:
        loader = TickDataLoader()
        windows = await loader.load_windows(start, end, symbols=["btc"])
        data = await loader.load_all(start, end)
    """

    def __init__(self, session_factory: Callable[[], AsyncSession] = async_session) -> None:
        self._session_factory = session_factory

    async def _fetch(self, stmt) -> list[dict[str, Any]]:
        # one session per query so the three tick queries can run concurrently
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return [dict(row) for row in result.mappings().all()]

    async def load_all(
        self,
        start: datetime | None,
        end: datetime | None,
        symbols: Sequence[str] | None = None,
    ) -> TickData:
        """Every oracle tick, book snapshot and exchange tick in [start, end]."""
        if start is None or end is None:
            raise ValueError("start and end are required")

        rtds_stmt = (
            select(*RTDS_COLUMNS)
            .where(RtdsTick.timestamp >= start, RtdsTick.timestamp <= end)
            .where(RtdsTick.topic.in_(ORACLE_TOPICS))
            .order_by(RtdsTick.timestamp.asc(), RtdsTick.id.asc())
        )
        clob_stmt = (
            select(*CLOB_COLUMNS)
            .where(ClobPriceSnapshot.timestamp >= start, ClobPriceSnapshot.timestamp <= end)
            .order_by(ClobPriceSnapshot.timestamp.asc(), ClobPriceSnapshot.id.asc())
        )
        exchange_stmt = (
            select(*EXCHANGE_COLUMNS)
            .where(ExchangeTick.timestamp >= start, ExchangeTick.timestamp <= end)
            .order_by(ExchangeTick.timestamp.asc(), ExchangeTick.id.asc())
        )
        if symbols:
            exchange_stmt = exchange_stmt.where(ExchangeTick.symbol.in_([s.lower() for s in symbols]))

        rtds, clob, exchange = await asyncio.gather(
            self._fetch(rtds_stmt), self._fetch(clob_stmt), self._fetch(exchange_stmt)
        )
        logger.info(
            "Loaded %d oracle ticks, %d book snapshots, %d exchange ticks from %s to %s",
            len(rtds), len(clob), len(exchange), start, end,
        )
        return TickData(rtds_ticks=rtds, clob_snapshots=clob, exchange_ticks=exchange)

    async def load_window(self, window: Window, window_duration_ms: int) -> TickData:
        """Ticks for one window, open <= timestamp < close."""
        close_ms = window.close_ms
        open_at = to_datetime(window.open_ms(window_duration_ms))
        close_at = to_datetime(close_ms)
        symbol = (window.symbol or "btc").lower()

        rtds_stmt = (
            select(*RTDS_COLUMNS)
            .where(RtdsTick.timestamp >= open_at, RtdsTick.timestamp < close_at)
            .where(RtdsTick.topic.in_(ORACLE_TOPICS))
            # same rule as the pre-loaded slicer: symbol prefix, unlabelled ticks kept
            .where(
                or_(
                    RtdsTick.symbol.ilike(f"{symbol}%"),
                    RtdsTick.symbol.is_(None),
                    RtdsTick.symbol == "",
                )
            )
            .order_by(RtdsTick.timestamp.asc(), RtdsTick.id.asc())
        )
        clob_stmt = (
            select(*CLOB_COLUMNS)
            .where(ClobPriceSnapshot.timestamp >= open_at, ClobPriceSnapshot.timestamp < close_at)
            .where(ClobPriceSnapshot.symbol.like(f"{symbol}%"))
            # snapshots from the previous window's market quote the wrong contract
            .where(ClobPriceSnapshot.window_epoch == window.epoch)
            .order_by(ClobPriceSnapshot.timestamp.asc(), ClobPriceSnapshot.id.asc())
        )
        exchange_stmt = (
            select(*EXCHANGE_COLUMNS)
            .where(ExchangeTick.timestamp >= open_at, ExchangeTick.timestamp < close_at)
            .where(ExchangeTick.symbol == symbol)
            .order_by(ExchangeTick.timestamp.asc(), ExchangeTick.id.asc())
        )

        rtds, clob, exchange = await asyncio.gather(
            self._fetch(rtds_stmt), self._fetch(clob_stmt), self._fetch(exchange_stmt)
        )
        return TickData(rtds_ticks=rtds, clob_snapshots=clob, exchange_ticks=exchange)

    async def load_windows(
        self,
        start: datetime | None,
        end: datetime | None,
        symbols: Sequence[str] | None = None,
    ) -> list[Window]:
        """Window close events in [start, end] with all ground-truth columns."""
        if start is None or end is None:
            raise ValueError("start and end are required")

        stmt = (
            select(*WINDOW_COLUMNS)
            .where(WindowCloseEvent.window_close_time >= start)
            .where(WindowCloseEvent.window_close_time <= end)
            .order_by(WindowCloseEvent.window_close_time.asc())
        )
        if symbols:
            stmt = stmt.where(WindowCloseEvent.symbol.in_([s.lower() for s in symbols]))

        rows = await self._fetch(stmt)
        logger.info("Loaded %d windows from %s to %s", len(rows), start, end)
        return [Window.from_row(row) for row in rows]

    async def get_tick_date_range(self) -> dict[str, datetime | None]:
        """Earliest and latest oracle tick timestamps."""
        stmt = select(
            func.min(RtdsTick.timestamp).label("earliest"),
            func.max(RtdsTick.timestamp).label("latest"),
        )
        rows = await self._fetch(stmt)
        row = rows[0] if rows else {}
        return {"earliest": row.get("earliest"), "latest": row.get("latest")}

    async def get_available_symbols(self) -> list[str]:
        stmt = select(RtdsTick.symbol).distinct().order_by(RtdsTick.symbol)
        rows = await self._fetch(stmt)
        return [row["symbol"] for row in rows]

"""Tick tables: oracle-tier feed, order-book snapshots, exchange prices."""

from datetime import datetime

from sqlalchemy import BigInteger, DateTime, Float, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from updown.database import Base


class RtdsTick(Base):
    """Oracle-tier price tick (chainlink aggregator or Polymarket reference feed)."""

    __tablename__ = "rtds_ticks"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    topic: Mapped[str] = mapped_column(String(64), nullable=False)  # crypto_prices, crypto_prices_chainlink
    symbol: Mapped[str | None] = mapped_column(String(20), nullable=True)  # some feeds leave it unset
    price: Mapped[float] = mapped_column(Float, nullable=False)
    received_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("ix_rtds_ticks_ts", "timestamp"),
        Index("ix_rtds_ticks_topic_ts", "topic", "timestamp"),
    )


class ClobPriceSnapshot(Base):
    """Top-of-book snapshot for one outcome token (e.g. ``btc-up`` / ``btc-down``)."""

    __tablename__ = "clob_price_snapshots"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    symbol: Mapped[str] = mapped_column(String(32), nullable=False)
    token_id: Mapped[str] = mapped_column(String(100), nullable=False)
    best_bid: Mapped[float | None] = mapped_column(Float, nullable=True)
    best_ask: Mapped[float | None] = mapped_column(Float, nullable=True)
    mid_price: Mapped[float | None] = mapped_column(Float, nullable=True)
    spread: Mapped[float | None] = mapped_column(Float, nullable=True)
    bid_size_top: Mapped[float | None] = mapped_column(Float, nullable=True)
    ask_size_top: Mapped[float | None] = mapped_column(Float, nullable=True)
    window_epoch: Mapped[int | None] = mapped_column(Integer, nullable=True)  # window close, unix seconds

    __table_args__ = (
        Index("ix_clob_snapshots_ts", "timestamp"),
        Index("ix_clob_snapshots_symbol_epoch", "symbol", "window_epoch"),
    )


class ExchangeTick(Base):
    """Spot price from an external exchange (binance, coinbase, kraken, ...)."""

    __tablename__ = "exchange_ticks"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    exchange: Mapped[str] = mapped_column(String(20), nullable=False)
    symbol: Mapped[str] = mapped_column(String(20), nullable=False)
    price: Mapped[float] = mapped_column(Float, nullable=False)
    bid: Mapped[float | None] = mapped_column(Float, nullable=True)
    ask: Mapped[float | None] = mapped_column(Float, nullable=True)

    __table_args__ = (
        Index("ix_exchange_ticks_symbol_ts", "symbol", "timestamp"),
    )

"""Window close events: one row per settled up/down window."""

from datetime import datetime

from sqlalchemy import DateTime, Float, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from updown.database import Base


class WindowCloseEvent(Base):
    """Ground-truth record for one window. Resolution columns are filled independently."""

    __tablename__ = "window_close_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    window_close_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    symbol: Mapped[str] = mapped_column(String(20), nullable=False)
    strike_price: Mapped[float | None] = mapped_column(Float, nullable=True)
    oracle_price_at_open: Mapped[float | None] = mapped_column(Float, nullable=True)
    chainlink_price_at_close: Mapped[float | None] = mapped_column(Float, nullable=True)
    oracle_price_at_close: Mapped[float | None] = mapped_column(Float, nullable=True)
    binance_price_at_close: Mapped[float | None] = mapped_column(Float, nullable=True)
    pyth_price_at_close: Mapped[float | None] = mapped_column(Float, nullable=True)

    # Resolution sources, highest trust first
    gamma_resolved_direction: Mapped[str | None] = mapped_column(String(4), nullable=True)
    onchain_resolved_direction: Mapped[str | None] = mapped_column(String(4), nullable=True)
    resolved_direction: Mapped[str | None] = mapped_column(String(4), nullable=True)

    market_consensus_direction: Mapped[str | None] = mapped_column(String(4), nullable=True)
    market_consensus_confidence: Mapped[float | None] = mapped_column(Float, nullable=True)

    __table_args__ = (
        Index("ix_window_close_events_symbol_time", "symbol", "window_close_time", unique=True),
    )

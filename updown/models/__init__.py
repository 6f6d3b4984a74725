"""SQLAlchemy models for the recorded tick history."""

from updown.models.ticks import ClobPriceSnapshot, ExchangeTick, RtdsTick
from updown.models.window import WindowCloseEvent

__all__ = ["ClobPriceSnapshot", "ExchangeTick", "RtdsTick", "WindowCloseEvent"]

"""Database access for recorded ticks and window close events."""

from updown.services.data.loader import TickDataLoader

__all__ = ["TickDataLoader"]

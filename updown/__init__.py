"""updown: parallel window backtester for binary up/down prediction markets."""

__version__ = "0.3.0"

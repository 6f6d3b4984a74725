"""Shared test fixtures."""

from datetime import datetime, timedelta, timezone

import pytest

from updown.services.backtest.config import BacktestConfig
from updown.services.backtest.window import Window

BASE_TIME = datetime(2026, 1, 1, tzinfo=timezone.utc)


def at(minutes: float = 0, seconds: float = 0) -> datetime:
    """Absolute UTC time offset from BASE_TIME."""
    return BASE_TIME + timedelta(minutes=minutes, seconds=seconds)


@pytest.fixture
def make_window():
    """Factory for windows closing ``close_minutes`` after BASE_TIME (5-minute windows)."""

    def _make(close_minutes: float = 5, **kwargs) -> Window:
        defaults = {
            "symbol": "btc",
            "close_time": at(close_minutes),
            "strike_price": 100_000.0,
            "oracle_price_at_open": 100_000.0,
            "chainlink_price_at_close": 100_050.0,
        }
        defaults.update(kwargs)
        return Window(**defaults)

    return _make


@pytest.fixture
def config() -> BacktestConfig:
    """Zero-friction config: no spread buffer, no fee, $100 per window."""
    return BacktestConfig(
        starting_capital=100.0,
        spread_buffer=0.0,
        trading_fee=0.0,
        window_duration_ms=300_000,
        concurrency=50,
    )

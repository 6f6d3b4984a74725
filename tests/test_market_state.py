"""Tests for MarketState accumulation and read helpers."""

from types import MappingProxyType

import pytest

from updown.services.backtest.market_state import MarketState
from updown.services.backtest.timeline import TimelineEvent


def make_event(source: str, ts: int = 1_000, **data) -> TimelineEvent:
    return TimelineEvent(timestamp=ts, timestamp_ms=ts, source=source, data=MappingProxyType(data))


class TestProcessEvent:
    def test_oracle_feeds(self):
        state = MarketState()
        state.process_event(make_event("chainlink", price=100.0))
        state.process_event(make_event("poly_ref", ts=2_000, price=101.0))
        assert state.chainlink.price == 100.0
        assert state.poly_ref.price == 101.0
        assert state.timestamp == 2_000
        assert state.get_tick_count() == 2

    def test_other_rtds_topics_land_in_raw_feeds(self):
        state = MarketState()
        state.process_event(make_event("rtds:pyth", price=99.5))
        assert state.raw_feeds["pyth"].price == 99.5

    def test_books(self):
        state = MarketState()
        state.process_event(make_event("clob_up", best_bid=0.58, best_ask=0.60, ask_size_top=250))
        state.process_event(make_event("clob_down", best_bid=0.39, best_ask=0.41))
        assert state.clob_up.best_ask == 0.60
        assert state.clob_up.ask_size == 250.0
        assert state.clob_down.best_bid == 0.39
        assert state.book_for_token("btc_down") is state.clob_down
        assert state.book_for_token("btc_up") is state.clob_up

    def test_latest_value_wins(self):
        state = MarketState()
        state.process_event(make_event("clob_up", best_ask=0.60))
        state.process_event(make_event("clob_up", ts=2_000, best_ask=0.65))
        assert state.clob_up.best_ask == 0.65


class TestExchanges:
    def _state(self, prices: dict[str, float]) -> MarketState:
        state = MarketState()
        for name, price in prices.items():
            state.process_event(make_event(f"exchange:{name}", price=price))
        return state

    def test_median_and_lookup(self):
        state = self._state({"binance": 100.0, "coinbase": 102.0, "kraken": 110.0})
        assert state.get_exchange_median() == 102.0
        assert state.get_exchange("kraken").price == 110.0
        assert len(state.get_all_exchanges()) == 3

    def test_spread_needs_two_venues(self):
        assert self._state({"binance": 100.0}).get_exchange_spread() is None
        spread = self._state({"binance": 100.0, "kraken": 101.0}).get_exchange_spread()
        assert spread.range == pytest.approx(1.0)
        assert spread.range_pct == pytest.approx(0.01)

    def test_empty(self):
        assert MarketState().get_exchange_median() is None


class TestWindowContext:
    def test_time_to_close_clamps_at_zero(self, make_window):
        window = make_window()
        state = MarketState()
        state.set_window(window, open_time="2026-01-01T00:00:00.000+00:00")
        state.update_time_to_close(window.close_ms - 30_000)
        assert state.window.time_to_close_ms == 30_000
        state.update_time_to_close(window.close_ms + 5_000)
        assert state.window.time_to_close_ms == 0

    def test_realized_outcome_not_exposed(self, make_window):
        state = MarketState()
        state.set_window(make_window(resolved_direction="UP"))
        assert not hasattr(state.window, "resolved_direction")

    def test_strike_gaps(self, make_window):
        state = MarketState()
        state.set_window(make_window(strike_price=100.0))
        assert state.get_chainlink_deficit() is None
        state.process_event(make_event("chainlink", price=98.0))
        state.process_event(make_event("poly_ref", price=101.0))
        assert state.get_chainlink_deficit() == pytest.approx(2.0)
        assert state.get_ref_to_strike_gap() == pytest.approx(-1.0)

    def test_reset_clears_everything(self, make_window):
        state = MarketState()
        state.set_window(make_window())
        state.process_event(make_event("chainlink", price=98.0))
        state.reset()
        assert state.chainlink is None
        assert state.window is None
        assert state.get_tick_count() == 0

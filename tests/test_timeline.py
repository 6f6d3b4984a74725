"""Tests for source tagging and the per-window timeline merge."""

import pytest

from updown.services.backtest.timeline import (
    TickData,
    build_window_timeline,
    tag_clob_snapshot,
    tag_exchange_tick,
    tag_rtds_tick,
)


class TestTagging:
    @pytest.mark.parametrize(
        "topic, expected",
        [
            ("crypto_prices_chainlink", "chainlink"),
            ("crypto_prices", "poly_ref"),
            ("pyth_prices", "rtds:pyth_prices"),
            (None, "rtds:unknown"),
        ],
    )
    def test_rtds_topics(self, topic, expected):
        assert tag_rtds_tick({"topic": topic, "price": 1.0}) == expected

    @pytest.mark.parametrize(
        "label, expected",
        [("btc-up", "clob_up"), ("BTC-DOWN", "clob_down"), ("btc", "clob_up"), (None, "clob_up")],
    )
    def test_clob_labels(self, label, expected):
        assert tag_clob_snapshot({"symbol": label}) == expected

    def test_exchange_name(self):
        assert tag_exchange_tick({"exchange": "binance"}) == "exchange:binance"
        assert tag_exchange_tick({}) == "exchange:unknown"


class TestBuildTimeline:
    def test_merges_sources_in_time_order(self):
        data = TickData(
            rtds_ticks=[
                {"timestamp": 100, "topic": "crypto_prices_chainlink", "price": 1.0},
                {"timestamp": 400, "topic": "crypto_prices", "price": 2.0},
            ],
            clob_snapshots=[{"timestamp": 200, "symbol": "btc-up", "best_ask": 0.5}],
            exchange_ticks=[{"timestamp": 300, "exchange": "kraken", "price": 3.0}],
        )
        timeline = build_window_timeline(data)
        assert [e.timestamp_ms for e in timeline] == [100, 200, 300, 400]
        assert [e.source for e in timeline] == ["chainlink", "clob_up", "exchange:kraken", "poly_ref"]

    def test_ties_keep_source_order(self):
        data = TickData(
            rtds_ticks=[{"timestamp": 500, "topic": "crypto_prices", "price": 1.0}],
            clob_snapshots=[
                {"timestamp": 500, "symbol": "btc-up"},
                {"timestamp": 500, "symbol": "btc-down"},
            ],
            exchange_ticks=[{"timestamp": 500, "exchange": "binance", "price": 1.0}],
        )
        timeline = build_window_timeline(data)
        assert [e.source for e in timeline] == ["poly_ref", "clob_up", "clob_down", "exchange:binance"]

    def test_length_is_sum_of_inputs(self):
        data = TickData(
            rtds_ticks=[{"timestamp": i, "topic": "crypto_prices"} for i in range(3)],
            clob_snapshots=[{"timestamp": i, "symbol": "btc-up"} for i in range(4)],
            exchange_ticks=[{"timestamp": i, "exchange": "okx"} for i in range(5)],
        )
        assert len(build_window_timeline(data)) == len(data) == 12

    def test_empty(self):
        assert build_window_timeline(TickData()) == []

    def test_event_payload_is_read_only(self):
        data = TickData(exchange_ticks=[{"timestamp": 1, "exchange": "okx", "price": 5.0}])
        event = build_window_timeline(data)[0]
        assert event.get("price") == 5.0
        assert event.exchange == "okx"
        with pytest.raises(TypeError):
            event.data["price"] = 6.0

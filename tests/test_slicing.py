"""Tests for binary-search slicing and symbol filtering."""

import pytest

from updown.services.backtest.slicing import (
    filter_by_symbol,
    lower_bound,
    slice_by_time,
    timestamp_keys,
    upper_bound,
)


def _records(timestamps: list[int]) -> list[dict]:
    return [{"timestamp": ts, "i": i} for i, ts in enumerate(timestamps)]


TIMESTAMPS = [100, 200, 200, 200, 300, 450, 450, 600, 1000]


class TestBounds:
    def test_lower_bound_first_at_or_after(self):
        records = _records(TIMESTAMPS)
        assert lower_bound(records, 200) == 1
        assert lower_bound(records, 201) == 4
        assert lower_bound(records, 0) == 0
        assert lower_bound(records, 5000) == len(records)

    def test_upper_bound_first_after(self):
        records = _records(TIMESTAMPS)
        assert upper_bound(records, 200) == 4
        assert upper_bound(records, 99) == 0
        assert upper_bound(records, 1000) == len(records)

    def test_precomputed_keys_agree(self):
        records = _records(TIMESTAMPS)
        keys = timestamp_keys(records)
        for target in range(0, 1100, 25):
            assert lower_bound(records, target, keys) == lower_bound(records, target)
            assert upper_bound(records, target, keys) == upper_bound(records, target)

    def test_iso_timestamps(self):
        records = [
            {"timestamp": "2026-01-01T00:00:00Z"},
            {"timestamp": "2026-01-01T00:00:01Z"},
            {"timestamp": "2026-01-01T00:00:02Z"},
        ]
        base = 1767225600000  # 2026-01-01T00:00:00Z
        assert slice_by_time(records, base + 1000, base + 2000) == [records[1]]


class TestSliceByTime:
    def test_half_open_interval(self):
        records = _records(TIMESTAMPS)
        sliced = slice_by_time(records, 200, 450)
        assert [r["timestamp"] for r in sliced] == [200, 200, 200, 300]

    def test_round_trip_reconstructs_array(self):
        records = _records(TIMESTAMPS)
        points = sorted({0, 99, 100, 150, 200, 201, 300, 449, 450, 451, 600, 999, 1000, 1001})
        for start in points:
            for end in points:
                if end <= start:
                    continue
                before = slice_by_time(records, -1, start)
                inside = slice_by_time(records, start, end)
                after = slice_by_time(records, end, 10_000)
                assert before + inside + after == records

    def test_empty_when_end_not_after_start(self):
        records = _records(TIMESTAMPS)
        assert slice_by_time(records, 300, 300) == []
        assert slice_by_time(records, 400, 300) == []

    def test_empty_input(self):
        assert slice_by_time([], 0, 100) == []

    def test_does_not_mutate_source(self):
        records = _records(TIMESTAMPS)
        snapshot = list(records)
        sliced = slice_by_time(records, 200, 600)
        sliced.clear()
        assert records == snapshot


class TestFilterBySymbol:
    def test_prefix_match_is_case_insensitive(self):
        records = [{"symbol": "BTC-up"}, {"symbol": "btc-down"}, {"symbol": "eth-up"}]
        assert filter_by_symbol(records, "btc") == records[:2]

    def test_exact_match(self):
        records = [{"symbol": "btc"}, {"symbol": "btcusdt"}]
        assert filter_by_symbol(records, "btc", exact=True) == [records[0]]

    def test_epoch_must_agree_when_present(self):
        records = [
            {"symbol": "btc-up", "window_epoch": 1000},
            {"symbol": "btc-up", "window_epoch": 700},
            {"symbol": "btc-up", "window_epoch": None},
        ]
        assert filter_by_symbol(records, "btc", epoch=1000) == [records[0], records[2]]

    @pytest.mark.parametrize("keep, expected", [(True, 2), (False, 1)])
    def test_unlabelled_records(self, keep, expected):
        records = [{"symbol": "btc"}, {"price": 1.0}]
        assert len(filter_by_symbol(records, "btc", keep_unlabelled=keep)) == expected

    def test_no_symbol_keeps_everything(self):
        records = [{"symbol": "btc"}, {"symbol": "eth"}]
        assert filter_by_symbol(records, None) == records

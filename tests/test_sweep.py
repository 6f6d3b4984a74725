"""Tests for grid enumeration and the sequential sweep runner."""

import pytest

from updown.services.backtest.config import BacktestConfig
from updown.services.backtest.sweep import (
    apply_params,
    generate_param_combinations,
    run_parallel_sweep,
    sweep_summary_frame,
)
from updown.services.backtest.timeline import TickData
from updown.services.strategy.base import BUY, FunctionStrategy, Signal


class TestGenerateCombinations:
    def test_later_keys_vary_fastest(self):
        combos = generate_param_combinations({"a": [1, 2], "b": ["x", "y", "z"]})
        assert combos == [
            {"a": 1, "b": "x"},
            {"a": 1, "b": "y"},
            {"a": 1, "b": "z"},
            {"a": 2, "b": "x"},
            {"a": 2, "b": "y"},
            {"a": 2, "b": "z"},
        ]

    def test_empty_grid_is_one_empty_combination(self):
        assert generate_param_combinations({}) == [{}]

    def test_empty_dimension_yields_nothing(self):
        assert generate_param_combinations({"a": [1, 2], "b": []}) == []

    def test_count_is_product(self):
        grid = {"a": [1, 2, 3], "b": [1, 2], "c": [1, 2, 3, 4]}
        assert len(generate_param_combinations(grid)) == 24


class TestApplyParams:
    def test_config_fields_override_and_rest_merge(self):
        base = BacktestConfig(strategy_config={"size": 5.0, "entry_seconds": 60})
        cfg = apply_params(base, {"spread_buffer": 0.02, "entry_seconds": 30})
        assert cfg.spread_buffer == 0.02
        assert cfg.strategy_config == {"size": 5.0, "entry_seconds": 30}
        assert base.strategy_config == {"size": 5.0, "entry_seconds": 60}

    def test_invalid_override_is_rejected(self):
        with pytest.raises(ValueError):
            apply_params(BacktestConfig(), {"starting_capital": -1})


# ---------- sweep runs ----------


def _size_strategy() -> FunctionStrategy:
    def evaluate(state, config):
        if state.clob_up is None:
            return []
        return [Signal(action=BUY, token="btc_up", size=config["size"])]

    return FunctionStrategy("sized", evaluate, defaults={"size": 1.0})


def _data(window) -> TickData:
    return TickData(
        clob_snapshots=[
            {"timestamp": window.close_ms - 60_000, "symbol": "btc-up", "best_ask": 0.5, "window_epoch": window.epoch}
        ]
    )


class TestRunSweep:
    @pytest.mark.asyncio
    async def test_results_in_enumeration_order(self, make_window, config):
        window = make_window(resolved_direction="UP")
        progress = []

        results = await run_parallel_sweep(
            [window],
            _size_strategy(),
            base_config=config,
            param_grid={"size": [10.0, 20.0], "spread_buffer": [0.0, 0.1]},
            data=_data(window),
            on_sweep_progress=lambda done, total: progress.append((done, total)),
        )

        assert [r.params for r in results] == [
            {"size": 10.0, "spread_buffer": 0.0},
            {"size": 10.0, "spread_buffer": 0.1},
            {"size": 20.0, "spread_buffer": 0.0},
            {"size": 20.0, "spread_buffer": 0.1},
        ]
        # pnl = size * (1 - (0.5 + buffer))
        assert [r.result.summary.total_pnl for r in results] == pytest.approx([5.0, 4.0, 10.0, 8.0])
        assert progress == [(1, 4), (2, 4), (3, 4), (4, 4)]

    @pytest.mark.asyncio
    async def test_preloaded_data_is_shared_unchanged(self, make_window, config):
        window = make_window(resolved_direction="UP")
        data = _data(window)
        before = [dict(s) for s in data.clob_snapshots]

        await run_parallel_sweep(
            [window], _size_strategy(), base_config=config, param_grid={"size": [1.0, 2.0, 3.0]}, data=data
        )

        assert [dict(s) for s in data.clob_snapshots] == before

    @pytest.mark.asyncio
    async def test_concurrency_override(self, make_window, config):
        seen = []

        class Loader:
            async def load_window(self, window, window_duration_ms):
                seen.append(window.close_ms)
                return TickData()

        results = await run_parallel_sweep(
            [make_window(5 * i) for i in range(1, 4)],
            _size_strategy(),
            base_config=config,
            param_grid={"size": [1.0]},
            loader=Loader(),
            concurrency=2,
        )
        assert len(results) == 1
        assert len(seen) == 3

    @pytest.mark.asyncio
    async def test_invalid_strategy_fails_fast(self, make_window, config):
        with pytest.raises(ValueError):
            await run_parallel_sweep([make_window()], object(), base_config=config, param_grid={}, data=TickData())

    @pytest.mark.asyncio
    async def test_summary_frame(self, make_window, config):
        window = make_window(resolved_direction="UP")
        results = await run_parallel_sweep(
            [window], _size_strategy(), base_config=config, param_grid={"size": [10.0, 20.0]}, data=_data(window)
        )
        frame = sweep_summary_frame(results)
        assert list(frame["size"]) == [10.0, 20.0]
        assert list(frame["total_pnl"]) == pytest.approx([5.0, 10.0])
        assert frame["total_trades"].tolist() == [1, 1]
        assert {"sharpe_ratio", "profit_factor", "expectancy"} <= set(frame.columns)
        assert list(frame["expectancy"]) == pytest.approx([5.0, 10.0])

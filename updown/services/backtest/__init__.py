"""Parallel backtester for 5-minute up/down windows.

Each window is replayed independently against its own strategy instance and
simulator; windows run concurrently on one event loop and are folded back
into a single chronological portfolio result.
"""

from updown.services.backtest.config import BacktestConfig
from updown.services.backtest.engine import BacktestEngine, run_parallel_backtest
from updown.services.backtest.errors import WindowEvaluationError
from updown.services.backtest.result import AggregateResult, Trade, WindowResult
from updown.services.backtest.sweep import SweepResult, generate_param_combinations, run_parallel_sweep
from updown.services.backtest.timeline import TickData
from updown.services.backtest.window import Window

__all__ = [
    "AggregateResult",
    "BacktestConfig",
    "BacktestEngine",
    "SweepResult",
    "TickData",
    "Trade",
    "Window",
    "WindowEvaluationError",
    "WindowResult",
    "generate_param_combinations",
    "run_parallel_backtest",
    "run_parallel_sweep",
]

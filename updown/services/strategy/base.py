"""Strategy contract for the window backtester.

A strategy sees the market state after every event and answers with zero or
more signals. It may keep memory between events of one window; the engine
hands every window its own instance, so nothing leaks across windows.
"""

import copy
from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

BUY = "buy"
SELL = "sell"
HOLD = "hold"
TRADE_ACTIONS = (BUY, SELL)


@dataclass
class Signal:
    """A strategy's trading intention for the current event."""

    action: str  # "buy", "sell" or "hold"
    token: str | None = None  # e.g. "btc_up" / "btc_down"
    side: str | None = None  # "up" / "down"
    size: float = 0.0
    reason: str = ""
    confidence: float | None = None
    diagnostics: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> "Signal":
        known = {"action", "token", "side", "size", "reason", "confidence"}
        return cls(
            action=raw.get("action") or "",
            token=raw.get("token"),
            side=raw.get("side"),
            size=float(raw.get("size") or 0.0),
            reason=raw.get("reason") or "",
            confidence=raw.get("confidence"),
            diagnostics={k: v for k, v in raw.items() if k not in known},
        )

    @property
    def is_actionable(self) -> bool:
        """Recognised trade action with a token to trade."""
        return self.action in TRADE_ACTIONS and bool(self.token)


class BaseStrategy(ABC):
    """Abstract base for window strategies.

    ``evaluate`` is called once per timeline event. The optional hooks run
    once when the window opens and once after it settles. ``on_fill`` reports
    whether each returned signal was filled.
    """

    defaults: dict[str, Any] = {}

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable strategy identifier."""

    @abstractmethod
    def evaluate(self, state: Any, config: dict[str, Any]) -> list[Signal]:
        """Signals for the current event, oldest state first. Empty list = do nothing."""

    def on_window_open(self, state: Any, config: dict[str, Any]) -> None:
        return None

    def on_fill(self, signal: Signal, fill: Any, state: Any, config: dict[str, Any]) -> None:
        """Called with the simulator's decision for each signal, filled or rejected."""
        return None

    def on_window_close(self, state: Any, summary: Any, config: dict[str, Any]) -> None:
        return None


class FunctionStrategy(BaseStrategy):
    """Adapts plain functions to the strategy contract."""

    def __init__(
        self,
        name: str,
        evaluate: Callable[[Any, dict], list],
        on_window_open: Callable[[Any, dict], None] | None = None,
        on_window_close: Callable[[Any, Any, dict], None] | None = None,
        defaults: dict[str, Any] | None = None,
    ) -> None:
        self._name = name
        self._evaluate = evaluate
        self._on_open = on_window_open
        self._on_close = on_window_close
        self.defaults = dict(defaults or {})

    @property
    def name(self) -> str:
        return self._name

    def evaluate(self, state, config):
        return self._evaluate(state, config)

    def on_window_open(self, state, config):
        if self._on_open is not None:
            self._on_open(state, config)

    def on_window_close(self, state, summary, config):
        if self._on_close is not None:
            self._on_close(state, summary, config)


def strategy_factory(strategy: Any) -> Callable[[], Any]:
    """Return a callable producing a fresh, unshared strategy for each window.

    Accepts a strategy class (instantiated with no arguments) or an instance
    (deep-copied). Raises ValueError if there is no callable ``evaluate``.
    """
    if strategy is None or not callable(getattr(strategy, "evaluate", None)):
        raise ValueError("strategy must have an evaluate function")
    if isinstance(strategy, type):
        return strategy
    return lambda: copy.deepcopy(strategy)


def strategy_name(strategy: Any) -> str:
    """Declared ``name`` of a strategy class or instance, else its class name."""
    cls = strategy if isinstance(strategy, type) else type(strategy)
    name = getattr(strategy, "name", None)
    if isinstance(name, str):
        return name
    if isinstance(strategy, type) and isinstance(getattr(cls, "name", None), property):
        name = getattr(strategy(), "name", None)
        if isinstance(name, str):
            return name
    return cls.__name__


def strategy_defaults(strategy: Any) -> dict[str, Any]:
    return dict(getattr(strategy, "defaults", None) or {})

"""Strategy interface and reference strategies."""

from updown.services.strategy.base import (
    BaseStrategy,
    FunctionStrategy,
    Signal,
    strategy_factory,
)
from updown.services.strategy.late_favorite import LateFavoriteStrategy

STRATEGY_MAP: dict[str, type[BaseStrategy]] = {
    "late_favorite": LateFavoriteStrategy,
}

__all__ = [
    "BaseStrategy",
    "FunctionStrategy",
    "LateFavoriteStrategy",
    "STRATEGY_MAP",
    "Signal",
    "strategy_factory",
]

"""Ground-truth resolution for a window.

Several sources record how a window settled and they do not always agree.
Sources are consulted in descending order of trust:

1. ``gamma_resolved_direction`` - audited resolution from the market's API
2. ``onchain_resolved_direction`` - settlement read from the chain
3. ``resolved_direction`` - the collector's own resolution field
4. chainlink close vs. oracle open: ``close >= open`` is UP, else DOWN

The result depends only on the window's fields.
"""

import logging
from enum import Enum

from updown.services.backtest.window import Window

logger = logging.getLogger(__name__)


class Direction(str, Enum):
    UP = "UP"
    DOWN = "DOWN"


RESOLUTION_FIELDS = (
    "gamma_resolved_direction",
    "onchain_resolved_direction",
    "resolved_direction",
)


def normalize_direction(value: object) -> Direction | None:
    """``"up"``, ``"Up "``, ``Direction.UP`` -> ``Direction.UP``; anything else -> None."""
    if value is None:
        return None
    text = str(value.value if isinstance(value, Direction) else value).strip().upper()
    if text == "UP":
        return Direction.UP
    if text == "DOWN":
        return Direction.DOWN
    return None


def resolve_ground_truth(window: Window) -> Direction | None:
    """Best available realized direction for ``window``, or None if unknowable."""
    for name in RESOLUTION_FIELDS:
        raw = getattr(window, name)
        if raw is None or raw == "":
            continue
        direction = normalize_direction(raw)
        if direction is not None:
            return direction
        logger.debug("Ignoring unrecognised %s=%r for %s", name, raw, window.symbol)

    close = window.chainlink_price_at_close
    open_ = window.oracle_price_at_open
    if close and open_:
        return Direction.UP if close >= open_ else Direction.DOWN
    return None

"""Late favorite: buy the side the book already favours, close to expiry."""

import logging

from updown.services.strategy.base import BUY, BaseStrategy, Signal

logger = logging.getLogger(__name__)


class LateFavoriteStrategy(BaseStrategy):
    """Enter once per window on the favoured outcome and hold to settlement.

    Entry (BUY): time to close <= entry_seconds AND the favourite's ask is
    between min_ask and max_ask. The favourite is the side with the higher ask.
    No exits: the position settles at 1.0 or 0.0. A rejected entry (for
    example not enough capital at that ask) is retried on later events.
    """

    defaults = {"entry_seconds": 60, "min_ask": 0.60, "max_ask": 0.90, "size": 10.0}

    def __init__(self) -> None:
        self._entered = False

    @property
    def name(self) -> str:
        return "late_favorite"

    def on_window_open(self, state, config):
        self._entered = False

    def on_fill(self, signal, fill, state, config):
        if signal.action != BUY:
            return
        if fill.filled:
            self._entered = True
            logger.debug("Entered %s at %.3f x %.2f", signal.token, fill.fill_price, fill.fill_size)
        else:
            logger.debug("Entry on %s rejected (%s), will retry", signal.token, fill.reason)

    def evaluate(self, state, config) -> list[Signal]:
        if self._entered or state.window is None or state.window.time_to_close_ms is None:
            return []
        if state.window.time_to_close_ms > config["entry_seconds"] * 1000:
            return []
        if state.clob_up is None or state.clob_down is None:
            return []

        up_ask, down_ask = state.clob_up.best_ask, state.clob_down.best_ask
        if up_ask is None or down_ask is None:
            return []

        side, ask = ("up", up_ask) if up_ask >= down_ask else ("down", down_ask)
        if not config["min_ask"] <= ask <= config["max_ask"]:
            return []

        symbol = state.window.symbol.lower()
        return [
            Signal(
                action=BUY,
                token=f"{symbol}_{side}",
                side=side,
                size=config["size"],
                reason=f"favorite_{side}@{ask:.2f}",
                confidence=ask,
            )
        ]

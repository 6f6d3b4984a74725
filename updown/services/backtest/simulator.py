"""Simulated execution for binary outcome tokens. Handles fills, fees, settlement.

Tokens pay 1.0 per unit if their side wins and 0.0 otherwise. Buys fill at
the best ask plus a spread buffer, sells at the best bid minus it. Fees are
a rate on notional, charged on entry and on early exit (never on settlement).
"""

import logging
from dataclasses import dataclass
from typing import Any

from updown.services.backtest.result import Trade
from updown.services.strategy.base import BUY, SELL, Signal

logger = logging.getLogger(__name__)

# Capital comparisons tolerate float dust from repeated fills
_EPSILON = 1e-9


@dataclass(frozen=True)
class Fill:
    """Execution decision for one signal."""

    filled: bool
    fill_price: float = 0.0
    fill_size: float = 0.0
    reason: str = ""


@dataclass(frozen=True)
class SimulatorStats:
    starting_capital: float
    final_capital: float
    total_pnl: float
    trade_count: int
    win_count: int
    loss_count: int
    win_rate: float
    avg_win: float
    avg_loss: float
    total_fees: float
    open_positions: int


class _Position:
    """Internal holding of one outcome token."""

    __slots__ = ("token", "side", "entry_price", "size", "entry_fees", "entry_time", "entry_reason")

    def __init__(
        self,
        token: str,
        side: str,
        entry_price: float,
        size: float,
        entry_fees: float,
        entry_time: Any,
        entry_reason: str,
    ) -> None:
        self.token = token
        self.side = side
        self.entry_price = entry_price
        self.size = size
        self.entry_fees = entry_fees
        self.entry_time = entry_time
        self.entry_reason = entry_reason

    @property
    def cost(self) -> float:
        return self.entry_price * self.size


def token_side(token: str) -> str:
    """``btc_down`` -> ``down``; every other token trades the UP book."""
    return "down" if "down" in token.lower() else "up"


class ExecutionSimulator:
    """Per-window execution ledger.

    Rules:
    - One position per token; repeat buys extend it at a weighted-average price
    - Sells reduce or close the position at the simulator's bid-side price
    - Buys are rejected when cost plus fee exceeds available capital
    - ``resolve_window`` settles whatever is still open at binary payout
    """

    def __init__(
        self,
        starting_capital: float = 100.0,
        spread_buffer: float = 0.005,
        trading_fee: float = 0.0,
    ) -> None:
        self.starting_capital = starting_capital
        self.capital = starting_capital
        self.spread_buffer = spread_buffer
        self.trading_fee = trading_fee
        self.total_fees = 0.0
        self._positions: dict[str, _Position] = {}
        self._trades: list[Trade] = []
        self._equity_curve: list[float] = [starting_capital]

    # ---------- fill decision ----------

    def execute(self, signal: Signal, state: Any, config: dict | None = None) -> Fill:
        """Decide whether ``signal`` fills against the current book, and at what price/size.

        Does not change the ledger; the caller books filled signals through
        ``buy_token`` / ``sell_token``.
        """
        config = config or {}
        book = state.book_for_token(signal.token)
        if book is None:
            return Fill(filled=False, reason="no_clob_data")

        if signal.action == BUY:
            if book.best_ask is None:
                return Fill(filled=False, reason="no_clob_data")
            price = book.best_ask + self.spread_buffer
            if price >= 1.0:
                return Fill(filled=False, reason="price_at_payout")
            size = signal.size
            if config.get("respect_book_depth") and book.ask_size is not None:
                size = min(size, book.ask_size)
            if size <= 0:
                return Fill(filled=False, reason="invalid_size")
            cost = price * size
            if cost * (1 + self.trading_fee) > self.capital + _EPSILON:
                return Fill(filled=False, reason="insufficient_capital")
            return Fill(filled=True, fill_price=price, fill_size=size)

        if signal.action == SELL:
            position = self._positions.get(signal.token)
            if position is None:
                return Fill(filled=False, reason="no_position")
            if book.best_bid is None:
                return Fill(filled=False, reason="no_clob_data")
            price = max(book.best_bid - self.spread_buffer, 0.0)
            size = min(signal.size, position.size) if signal.size > 0 else position.size
            return Fill(filled=True, fill_price=price, fill_size=size)

        return Fill(filled=False, reason="unsupported_action")

    # ---------- ledger mutations ----------

    def buy_token(
        self,
        token: str,
        price: float,
        size: float,
        timestamp: Any,
        reason: str = "",
    ) -> _Position:
        """Open a position, or add to the existing one at a weighted-average price."""
        cost = price * size
        fee = cost * self.trading_fee
        self.capital -= cost + fee
        self.total_fees += fee

        pos = self._positions.get(token)
        if pos is None:
            pos = _Position(
                token=token,
                side=token_side(token),
                entry_price=price,
                size=size,
                entry_fees=fee,
                entry_time=timestamp,
                entry_reason=reason,
            )
            self._positions[token] = pos
            return pos

        new_size = pos.size + size
        pos.entry_price = (pos.entry_price * pos.size + price * size) / new_size
        pos.size = new_size
        pos.entry_fees += fee
        logger.debug(
            "Added to %s: +%.4f @ %.4f, avg entry %.4f, size %.4f",
            token, size, price, pos.entry_price, pos.size,
        )
        return pos

    def sell_token(
        self,
        token: str,
        price: float,
        timestamp: Any,
        reason: str = "strategy_sell",
        size: float | None = None,
    ) -> Trade | None:
        """Sell ``size`` units (all if None) before expiry. None if nothing is held."""
        pos = self._positions.get(token)
        if pos is None:
            return None

        size = pos.size if size is None else min(size, pos.size)
        if size <= 0:
            return None

        proceeds = price * size
        exit_fee = proceeds * self.trading_fee
        self.capital += proceeds - exit_fee
        self.total_fees += exit_fee
        return self._book_trade(pos, size, price, exit_fee, timestamp, reason)

    def resolve_window(self, direction: str, timestamp: Any) -> list[Trade]:
        """Settle every open position: 1.0 per unit on the winning side, 0.0 otherwise."""
        winner = str(direction).lower()
        settled = []
        for pos in list(self._positions.values()):
            payout = 1.0 if pos.side == winner else 0.0
            self.capital += payout * pos.size
            settled.append(self._book_trade(pos, pos.size, payout, 0.0, timestamp, "resolution"))
        return settled

    def _book_trade(
        self,
        pos: _Position,
        size: float,
        exit_price: float,
        exit_fee: float,
        timestamp: Any,
        reason: str,
    ) -> Trade:
        share = size / pos.size
        entry_fee = pos.entry_fees * share
        cost = pos.entry_price * size
        proceeds = exit_price * size
        trade = Trade(
            token=pos.token,
            side=pos.side,
            entry_price=pos.entry_price,
            exit_price=exit_price,
            size=size,
            cost=cost,
            proceeds=proceeds,
            fees=entry_fee + exit_fee,
            pnl=proceeds - cost - entry_fee - exit_fee,
            entry_time=pos.entry_time,
            exit_time=timestamp,
            entry_reason=pos.entry_reason,
            exit_reason=reason,
        )
        self._trades.append(trade)

        pos.size -= size
        pos.entry_fees -= entry_fee
        if pos.size <= _EPSILON:
            del self._positions[pos.token]

        self._equity_curve.append(self.capital)
        return trade

    # ---------- read-only views ----------

    @property
    def has_position(self) -> bool:
        return bool(self._positions)

    def get_open_positions(self) -> list[_Position]:
        return list(self._positions.values())

    def get_trades(self) -> list[Trade]:
        return list(self._trades)

    def get_equity_curve(self) -> list[float]:
        return list(self._equity_curve)

    def get_stats(self) -> SimulatorStats:
        wins = [t for t in self._trades if t.pnl > 0]
        losses = [t for t in self._trades if t.pnl <= 0]
        count = len(self._trades)
        return SimulatorStats(
            starting_capital=self.starting_capital,
            final_capital=self.capital,
            total_pnl=sum(t.pnl for t in self._trades),
            trade_count=count,
            win_count=len(wins),
            loss_count=len(losses),
            win_rate=len(wins) / count if count else 0.0,
            avg_win=sum(t.pnl for t in wins) / len(wins) if wins else 0.0,
            avg_loss=sum(t.pnl for t in losses) / len(losses) if losses else 0.0,
            total_fees=self.total_fees,
            open_positions=len(self._positions),
        )

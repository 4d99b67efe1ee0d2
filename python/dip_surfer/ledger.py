"""Position and performance bookkeeping.

Holds at most one position. Every close compounds the equity curve, which
starts at 1.0, and updates peak equity, max drawdown and win/loss counts.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from .cost_model import RoundTripCostModel
from .types import EXIT_REASONS, CloseResult, Position, TradeRecord

logger = logging.getLogger(__name__)


class InvalidStateError(RuntimeError):
    """Open while already in a position, or close while flat."""


def _iso(ts: float) -> str:
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()


@dataclass
class LedgerStats:
    total_trades: int = 0
    total_wins: int = 0
    total_pnl_pct: float = 0.0  # sum of net returns
    equity: float = 1.0
    peak_equity: float = 1.0
    max_drawdown: float = 0.0


class PositionLedger:
    def __init__(self, cost_model: RoundTripCostModel, cooldown_bars: int, symbol: str = ""):
        self.cost_model = cost_model
        self.cooldown_bars = max(0, int(cooldown_bars))
        self.symbol = symbol

        self.position: Optional[Position] = None
        self.cooldown_remaining = 0
        self.stats = LedgerStats()

    @property
    def in_position(self) -> bool:
        return self.position is not None

    def tick_cooldown(self) -> None:
        if self.cooldown_remaining > 0:
            self.cooldown_remaining -= 1

    def open(
        self,
        price: float,
        quantity: float,
        cost_basis: float,
        execution_ref: Optional[str],
        bar_index: int,
        timestamp: int,
    ) -> Position:
        if self.position is not None:
            raise InvalidStateError("a position is already open")

        self.position = Position(
            entry_price=float(price),
            entry_bar_index=int(bar_index),
            entry_timestamp=int(timestamp),
            high_since_entry=float(price),
            quantity=float(quantity),
            cost_basis=float(cost_basis),
            execution_ref=execution_ref,
        )
        logger.info(
            "ENTRY %s @ %.4f | %.4f tokens | %.2f USDC | ref=%s",
            self.symbol,
            price,
            quantity,
            cost_basis,
            execution_ref,
        )
        return self.position

    def close(self, exit_price: float, reason: str, bar_count: int, exit_time: float) -> CloseResult:
        if self.position is None:
            raise InvalidStateError("no position to close")
        if reason not in EXIT_REASONS:
            raise ValueError(f"unknown exit reason: {reason!r}")

        pos = self.position
        pnl_pct = (exit_price - pos.entry_price) / pos.entry_price
        pnl_net = self.cost_model.net_return(pnl_pct)
        bars_held = bar_count - 1 - pos.entry_bar_index

        st = self.stats
        st.equity *= 1.0 + pnl_net
        st.peak_equity = max(st.peak_equity, st.equity)
        st.max_drawdown = max(st.max_drawdown, (st.peak_equity - st.equity) / st.peak_equity)
        st.total_trades += 1
        if pnl_net > 0:
            st.total_wins += 1
        st.total_pnl_pct += pnl_net

        logger.info(
            "EXIT %s @ %.4f | reason=%s | pnl=%.2f%% net=%.2f%% | held=%d bars | equity=%.4f | %d trades, %dW/%dL",
            self.symbol,
            exit_price,
            reason,
            pnl_pct * 100,
            pnl_net * 100,
            bars_held,
            st.equity,
            st.total_trades,
            st.total_wins,
            st.total_trades - st.total_wins,
        )

        trade = TradeRecord(
            entry_time=_iso(pos.entry_timestamp),
            exit_time=_iso(exit_time),
            entry_price=pos.entry_price,
            exit_price=float(exit_price),
            reason=reason,
            pnl_pct=pnl_pct,
            pnl_net=pnl_net,
            bars_held=bars_held,
            equity_after=st.equity,
        )

        self.position = None
        self.cooldown_remaining = self.cooldown_bars
        return CloseResult(pnl_pct=pnl_pct, pnl_net=pnl_net, trade=trade)

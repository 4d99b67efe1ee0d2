"""Shared types for the dip surfer.

The guiding principle is to keep the runtime objects small and explicit.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

EXIT_REASONS = ("tp1", "tp2", "trail", "sl", "timeout")


@dataclass(frozen=True)
class Bar:
    """OHLC bar.

    ``timestamp`` is the bar start in unix seconds.
    """

    timestamp: int
    open: float
    high: float
    low: float
    close: float


@dataclass(frozen=True)
class IndicatorSnapshot:
    """Latest indicator values, derived from the incremental series."""

    ema_fast: float
    ema_slow: float
    atr: float
    slope: float  # (ema_fast - ema_slow) / ema_slow
    buy_zone_top: float  # ema_fast - zone * atr
    ready: bool


@dataclass
class Position:
    """The single open position.

    Only ``high_since_entry`` changes after creation.
    """

    entry_price: float
    entry_bar_index: int
    entry_timestamp: int
    high_since_entry: float
    quantity: float
    cost_basis: float  # USDC spent
    execution_ref: Optional[str] = None  # tx signature or "shadow"

    def __post_init__(self) -> None:
        if not self.entry_price > 0:
            raise ValueError("entry_price must be positive")
        if not self.quantity > 0:
            raise ValueError("quantity must be positive")


@dataclass(frozen=True)
class EntrySignal:
    price: float
    ema_fast: float
    ema_slow: float
    atr: float
    slope: float
    zone_depth: float  # distance below zone top, in ATR units


@dataclass(frozen=True)
class ExitSignal:
    reason: str  # one of EXIT_REASONS
    pnl_pct: float
    bars_held: int


@dataclass(frozen=True)
class TradeRecord:
    """A closed round trip, appended to the trade log."""

    entry_time: str  # ISO-8601 UTC
    exit_time: str
    entry_price: float
    exit_price: float
    reason: str
    pnl_pct: float
    pnl_net: float
    bars_held: int
    equity_after: float


@dataclass(frozen=True)
class CloseResult:
    pnl_pct: float
    pnl_net: float
    trade: TradeRecord


@dataclass(frozen=True)
class StepResult:
    """Decisions taken for one tick (or one replayed bar)."""

    bar: Optional[Bar] = None
    exit_signal: Optional[ExitSignal] = None
    entry_signal: Optional[EntrySignal] = None


@dataclass
class PersistedState:
    """Everything besides bars and trades needed to resume after a restart."""

    position: Optional[Position]
    cooldown_remaining: int
    total_trades: int
    total_wins: int
    total_pnl_pct: float
    equity: float
    peak_equity: float
    max_drawdown: float
    last_save_time: str = ""


@dataclass(frozen=True)
class QuoteResult:
    """Venue quote reduced to the fields the bot acts on.

    ``raw`` is the upstream payload, passed back to the venue unchanged
    when building the swap transaction.
    """

    price_usdc_per_token: float
    in_amount: int
    out_amount: int
    price_impact_pct: float
    raw: Mapping[str, Any] = field(default_factory=dict, repr=False, compare=False)

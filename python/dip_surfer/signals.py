"""Entry/exit decision rules.

Entry buys a pullback of ``zone_atr_mult`` ATRs below EMA(fast), but only
while EMA(fast) sits at least ``min_ema_slope`` above EMA(slow). The slope
gate is the whole trend filter; there is no separate regime classifier.

Exit rules are checked in a fixed priority: tp2, tp1 (or trailing stop once
tp1 is reached), stop loss, timeout.
"""

from __future__ import annotations

from typing import Optional

from .config import StrategyConfig
from .types import EntrySignal, ExitSignal, IndicatorSnapshot, Position


def evaluate_entry(
    ind: IndicatorSnapshot,
    price: float,
    in_position: bool,
    cooldown_remaining: int,
    cfg: StrategyConfig,
) -> Optional[EntrySignal]:
    if not ind.ready:
        return None
    if in_position:
        return None
    if cooldown_remaining > 0:
        return None

    # slope gate: only in an uptrend
    if ind.slope < cfg.min_ema_slope:
        return None

    # zone gate: price must have dipped into the buy zone
    if price > ind.buy_zone_top:
        return None

    if ind.atr <= 0:
        return None

    return EntrySignal(
        price=price,
        ema_fast=ind.ema_fast,
        ema_slow=ind.ema_slow,
        atr=ind.atr,
        slope=ind.slope,
        zone_depth=(ind.buy_zone_top - price) / ind.atr,
    )


def evaluate_exit(
    pos: Optional[Position],
    price: float,
    bar_count: int,
    cfg: StrategyConfig,
) -> Optional[ExitSignal]:
    """Decide whether the open position should be closed at ``price``.

    Raises ``pos.high_since_entry`` to ``price`` as a side effect, whether or
    not an exit fires.
    """
    if pos is None:
        return None

    bars_held = bar_count - 1 - pos.entry_bar_index
    pnl_pct = (price - pos.entry_price) / pos.entry_price

    if price > pos.high_since_entry:
        pos.high_since_entry = price

    if cfg.tp2_pct > 0 and pnl_pct >= cfg.tp2_pct:
        return ExitSignal(reason="tp2", pnl_pct=pnl_pct, bars_held=bars_held)

    if pnl_pct >= cfg.tp1_pct:
        if cfg.trail_pct > 0:
            drawdown_from_high = (pos.high_since_entry - price) / pos.high_since_entry
            if drawdown_from_high >= cfg.trail_pct:
                return ExitSignal(reason="trail", pnl_pct=pnl_pct, bars_held=bars_held)
            # tp1 reached, trail not triggered: let it run
            return None
        return ExitSignal(reason="tp1", pnl_pct=pnl_pct, bars_held=bars_held)

    if pnl_pct <= -cfg.sl_pct:
        return ExitSignal(reason="sl", pnl_pct=pnl_pct, bars_held=bars_held)

    if bars_held >= cfg.max_bars_in_position:
        return ExitSignal(reason="timeout", pnl_pct=pnl_pct, bars_held=bars_held)

    return None

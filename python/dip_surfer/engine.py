"""Signal-and-position engine for one traded token.

Composition root for the bar aggregator, the indicator engine and the
ledger. The engine does no I/O: it takes prices or bars and hands back
decisions; the caller executes them and reports back through
``open_position`` / ``close_position``.

Sequencing contract (enforced by ``step`` / ``step_bar``):
1. aggregate the tick; append a bar when the bucket rolls over
   (appending ticks the cooldown)
2. check exit on every tick while in position
3. check entry only on a freshly completed bar, only when flat and only
   if no exit fired in the same step

The engine is not thread-safe; callers sharing it across threads must
serialise access.
"""

from __future__ import annotations

import time
from bisect import bisect_right
from dataclasses import replace
from typing import Any, Dict, List, Optional

from .bar_aggregator import BarAggregator
from .config import CostConfig, IndicatorConfig, StrategyConfig
from .cost_model import RoundTripCostModel
from .indicators import IndicatorEngine
from .ledger import LedgerStats, PositionLedger
from .signals import evaluate_entry, evaluate_exit
from .types import (
    Bar,
    CloseResult,
    EntrySignal,
    ExitSignal,
    IndicatorSnapshot,
    PersistedState,
    Position,
    StepResult,
)


class SurferEngine:
    def __init__(
        self,
        ind_cfg: IndicatorConfig = IndicatorConfig(),
        strat_cfg: StrategyConfig = StrategyConfig(),
        cost_cfg: CostConfig = CostConfig(),
        bar_ms: int = 3_600_000,
        symbol: str = "SOL",
    ):
        self.symbol = symbol
        self.ind_cfg = ind_cfg
        self.strat_cfg = strat_cfg

        self.aggregator = BarAggregator(bar_ms)
        self.indicator_engine = IndicatorEngine(ind_cfg, zone_atr_mult=strat_cfg.zone_atr_mult)
        self.ledger = PositionLedger(RoundTripCostModel(cost_cfg), strat_cfg.cooldown_bars, symbol=symbol)
        self.bars: List[Bar] = []

    # ---------- convenience views ----------

    @property
    def position(self) -> Optional[Position]:
        return self.ledger.position

    @property
    def cooldown_remaining(self) -> int:
        return self.ledger.cooldown_remaining

    @property
    def stats(self) -> LedgerStats:
        return self.ledger.stats

    def bars_held(self) -> int:
        pos = self.ledger.position
        if pos is None:
            return 0
        return len(self.bars) - 1 - pos.entry_bar_index

    # ---------- public API ----------

    def observe(self, price: float, now_ms: int) -> Optional[Bar]:
        """Aggregate a tick. Returns the completed bar, if any; does not append it."""
        return self.aggregator.observe(price, now_ms)

    def add_bar(self, bar: Bar) -> Bar:
        """Append a bar (clamped if spiked), update indicators, tick cooldown."""
        accepted = self.indicator_engine.update(bar)
        self.bars.append(accepted)
        self.ledger.tick_cooldown()
        return accepted

    def indicators(self) -> IndicatorSnapshot:
        return self.indicator_engine.snapshot()

    def check_entry(self, price: float) -> Optional[EntrySignal]:
        return evaluate_entry(
            self.indicators(),
            price,
            in_position=self.ledger.in_position,
            cooldown_remaining=self.ledger.cooldown_remaining,
            cfg=self.strat_cfg,
        )

    def check_exit(self, price: float) -> Optional[ExitSignal]:
        return evaluate_exit(self.ledger.position, price, len(self.bars), self.strat_cfg)

    def open_position(
        self,
        price: float,
        quantity: float,
        cost_basis: float,
        execution_ref: Optional[str] = None,
    ) -> Position:
        ts = self.bars[-1].timestamp if self.bars else int(time.time())
        return self.ledger.open(
            price,
            quantity,
            cost_basis,
            execution_ref,
            bar_index=len(self.bars) - 1,
            timestamp=ts,
        )

    def close_position(self, exit_price: float, reason: str, exit_time: Optional[float] = None) -> CloseResult:
        return self.ledger.close(
            exit_price,
            reason,
            bar_count=len(self.bars),
            exit_time=time.time() if exit_time is None else exit_time,
        )

    def step(self, price: float, now_ms: int) -> StepResult:
        """Run one live tick in the fixed observe -> exit -> entry order."""
        bar = self.observe(price, now_ms)
        if bar is not None:
            self.add_bar(bar)
        return self._decide(price, bar)

    def step_bar(self, bar: Bar) -> StepResult:
        """Replay one completed bar, deciding at its close."""
        accepted = self.add_bar(bar)
        return self._decide(accepted.close, accepted)

    def _decide(self, price: float, bar: Optional[Bar]) -> StepResult:
        if self.ledger.in_position:
            exit_signal = self.check_exit(price)
            if exit_signal is not None:
                return StepResult(bar=bar, exit_signal=exit_signal)
            return StepResult(bar=bar)
        if bar is None:
            return StepResult()
        return StepResult(bar=bar, entry_signal=self.check_entry(price))

    # ---------- persistence ----------

    def snapshot_state(self, last_save_time: str = "") -> PersistedState:
        st = self.ledger.stats
        pos = self.ledger.position
        return PersistedState(
            position=replace(pos) if pos is not None else None,
            cooldown_remaining=self.ledger.cooldown_remaining,
            total_trades=st.total_trades,
            total_wins=st.total_wins,
            total_pnl_pct=st.total_pnl_pct,
            equity=st.equity,
            peak_equity=st.peak_equity,
            max_drawdown=st.max_drawdown,
            last_save_time=last_save_time,
        )

    def restore_state(self, state: PersistedState) -> None:
        """Load persisted position and stats on top of the replayed bars.

        ``entry_bar_index`` is re-anchored on ``entry_timestamp``: the replayed
        bar list is trimmed and may be extended with older backfill, so the
        saved index no longer points at the entry bar.
        """
        pos = replace(state.position) if state.position is not None else None
        if pos is not None:
            pos.entry_bar_index = self._bar_index_at(pos.entry_timestamp)
        self.ledger.position = pos
        self.ledger.cooldown_remaining = max(0, int(state.cooldown_remaining))
        self.ledger.stats = LedgerStats(
            total_trades=int(state.total_trades),
            total_wins=int(state.total_wins),
            total_pnl_pct=float(state.total_pnl_pct),
            equity=float(state.equity),
            peak_equity=float(state.peak_equity),
            max_drawdown=float(state.max_drawdown),
        )

    def _bar_index_at(self, timestamp: int) -> int:
        """Index of the bar containing ``timestamp``.

        Negative when it predates the first bar held, counted in whole bars.
        """
        if not self.bars:
            return -1
        first = self.bars[0].timestamp
        if timestamp < first:
            bar_s = max(1, self.aggregator.bar_ms // 1000)
            return -((first - timestamp) // bar_s)
        times = [b.timestamp for b in self.bars]
        return bisect_right(times, timestamp) - 1

    # ---------- reporting ----------

    def get_state(self) -> Dict[str, Any]:
        """Reporting view of indicators, position and stats. No side effects."""
        ind = self.indicators()
        st = self.ledger.stats
        pos = self.ledger.position

        indicators = None
        if ind.ready:
            indicators = {
                "ema_fast": round(ind.ema_fast, 6),
                "ema_slow": round(ind.ema_slow, 6),
                "atr": round(ind.atr, 6),
                "atr_pct": round(ind.atr / (ind.ema_fast or 1.0), 6),
                "slope": round(ind.slope, 6),
                "slope_above_threshold": ind.slope >= self.strat_cfg.min_ema_slope,
                "buy_zone_top": round(ind.buy_zone_top, 6),
            }

        position = None
        if pos is not None:
            last_close = self.bars[-1].close if self.bars else None
            position = {
                "entry_price": pos.entry_price,
                "entry_timestamp": pos.entry_timestamp,
                "bars_held": self.bars_held(),
                "high_since_entry": pos.high_since_entry,
                "quantity": pos.quantity,
                "cost_basis": pos.cost_basis,
                "execution_ref": pos.execution_ref,
                "current_pnl_pct": (
                    (last_close - pos.entry_price) / pos.entry_price if last_close is not None else None
                ),
            }

        return {
            "token": self.symbol,
            "bars_loaded": len(self.bars),
            "warmup_complete": ind.ready,
            "indicators": indicators,
            "position": position,
            "cooldown_remaining": self.ledger.cooldown_remaining,
            "stats": {
                "total_trades": st.total_trades,
                "wins": st.total_wins,
                "win_rate": st.total_wins / st.total_trades if st.total_trades > 0 else None,
                "total_pnl_pct": st.total_pnl_pct,
                "equity": st.equity,
                "peak_equity": st.peak_equity,
                "max_drawdown": st.max_drawdown,
            },
        }

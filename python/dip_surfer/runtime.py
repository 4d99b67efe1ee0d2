"""Live runtime: poll loop, trade execution and persistence.

One ``tick`` per sample interval:
1. poll the venue price
2. ``engine.step`` (bar roll-over, exit check, entry check)
3. execute the decided swap (or simulate it in shadow mode)
4. persist after every trade

All engine mutation goes through ``self.lock`` so the HTTP admin endpoints
can run on other threads.
"""

from __future__ import annotations

import logging
import threading
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from .config import RuntimeConfig
from .data_provider import merge_bars
from .engine import SurferEngine
from .state_store import JsonStateStore
from .types import Bar, CloseResult
from .venue import JupiterClient, VenueError, Wallet

logger = logging.getLogger(__name__)

SHADOW_REF = "shadow"
MIN_POSITION_USDC = 1.0
DUST_TOKEN_BALANCE = 0.001


def _utc_now_iso() -> str:
    return datetime.now(tz=timezone.utc).isoformat()


class SurferRuntime:
    def __init__(
        self,
        engine: SurferEngine,
        venue: JupiterClient,
        store: JsonStateStore,
        rt_cfg: RuntimeConfig,
        wallet: Optional[Wallet] = None,
        backfill: Optional[Callable[[], List[Bar]]] = None,
    ):
        self.engine = engine
        self.venue = venue
        self.store = store
        self.cfg = rt_cfg
        self.wallet = wallet
        self.backfill = backfill

        self.lock = threading.RLock()
        self.started_at = time.time()
        self.last_price = 0.0
        self.last_price_time = 0.0
        self.loop_count = 0
        self.price_errors = 0
        self.last_signal = ""
        self._bars_since_save = 0

    @property
    def armed(self) -> bool:
        return self.cfg.swaps_armed

    # ---------- startup ----------

    def initialise(self) -> None:
        """Restore bars and state from disk, backfilling history when short."""
        if self.armed and self.wallet is None:
            raise ValueError("a wallet is required when swaps are armed")
        if self.wallet is None:
            logger.info("No wallet configured: running in shadow mode")

        bars = self.store.load_bars()
        if bars:
            logger.info("Restoring %d bars from disk", len(bars))

        if len(bars) < self.cfg.min_backfill_bars and self.backfill is not None:
            history = self.backfill()
            before = len(bars)
            bars = merge_bars(bars, history)
            logger.info("Backfill added %d bars (total: %d)", len(bars) - before, len(bars))

        with self.lock:
            for bar in bars:
                self.engine.add_bar(bar)

            state = self.store.load_state()
            if state is not None:
                logger.info("Restoring state: %d trades, equity=%.4f", state.total_trades, state.equity)
                self.engine.restore_state(state)

        logger.info(
            "Ready. %d bars loaded. Warmup: %s",
            len(self.engine.bars),
            "complete" if self.engine.indicators().ready else "pending",
        )

    # ---------- loop ----------

    def poll_price(self) -> Optional[float]:
        try:
            price = self.venue.get_token_price()
        except VenueError as exc:
            self.price_errors += 1
            if self.price_errors % 10 == 1:
                logger.warning("Price error #%d: %s", self.price_errors, exc)
            return None
        self.last_price = price
        self.last_price_time = time.time()
        return price

    def tick(self, now_ms: Optional[int] = None) -> None:
        self.loop_count += 1
        price = self.poll_price()
        if price is None:
            return
        now_ms = int(time.time() * 1000) if now_ms is None else int(now_ms)

        with self.lock:
            result = self.engine.step(price, now_ms)
            if result.bar is not None:
                self._bars_since_save += 1
                if self._bars_since_save >= self.cfg.bars_save_every:
                    self.store.save_bars(self.engine.bars, self.cfg.max_saved_bars)
                    self._bars_since_save = 0

            if result.exit_signal is not None:
                sig = result.exit_signal
                self.last_signal = f"EXIT: {sig.reason} pnl={sig.pnl_pct * 100:.2f}%"
                self.execute_sell(sig.reason)
                return

            pos = self.engine.position
            if pos is not None:
                pnl = (price - pos.entry_price) / pos.entry_price * 100
                self.last_signal = f"HOLD: pnl={pnl:.2f}% bars={self.engine.bars_held()}"
                return

            if result.bar is None:
                return

            ind = self.engine.indicators()
            if not ind.ready:
                self.last_signal = f"warmup ({len(self.engine.bars)} bars)"
            elif result.entry_signal is not None:
                sig = result.entry_signal
                self.last_signal = f"ENTRY: slope={sig.slope:.4f} depth={sig.zone_depth:.2f}xATR"
                self.execute_buy(price)
            elif ind.slope < self.engine.strat_cfg.min_ema_slope:
                self.last_signal = f"IDLE: slope={ind.slope:.4f} < {self.engine.strat_cfg.min_ema_slope} (downtrend)"
            elif price > ind.buy_zone_top:
                self.last_signal = f"WAIT: {price:.4f} above zone {ind.buy_zone_top:.4f}"
            elif self.engine.cooldown_remaining > 0:
                self.last_signal = f"COOL: {self.engine.cooldown_remaining} bars remaining"

    def run_forever(self, stop_event: Optional[threading.Event] = None) -> None:
        stop_event = stop_event or threading.Event()
        interval = self.cfg.sample_interval_ms / 1000.0
        last_save = time.time()
        logger.info("Loop starting (interval: %.0fs)", interval)
        while not stop_event.is_set():
            try:
                self.tick()
            except Exception:
                # keep the loop alive; the next tick retries
                logger.exception("Unhandled error in poll loop")
            if time.time() - last_save >= self.cfg.state_save_interval_s:
                self.persist()
                last_save = time.time()
            stop_event.wait(interval)

    # ---------- execution ----------

    def execute_buy(self, price: float) -> bool:
        with self.lock:
            if not self.armed:
                size = self.cfg.shadow_usdc * self.cfg.trade_pct_usdc
                logger.info("SHADOW would BUY %s @ %.4f (swaps disarmed)", self.engine.symbol, price)
                self.engine.open_position(price, size / price, size, SHADOW_REF)
                self.persist()
                return True

            try:
                usdc = self.wallet.usdc_balance()
                size = usdc * self.cfg.trade_pct_usdc
                if size < MIN_POSITION_USDC:
                    logger.warning("BUY skipped: insufficient USDC %.2f", usdc)
                    return False

                quote = self.venue.get_buy_quote(size)
                if quote.price_impact_pct > self.venue.cfg.max_price_impact_pct:
                    logger.warning("BUY skipped: price impact %.2f%% too high", quote.price_impact_pct)
                    return False

                sig = self.venue.submit_trade(quote, self.wallet)
            except VenueError as exc:
                logger.error("BUY failed: %s", exc)
                return False

            tokens = quote.out_amount / self.venue.cfg.token_unit
            self.engine.open_position(quote.price_usdc_per_token, tokens, size, sig)
            self.persist()
            return True

    def mark_price(self) -> Optional[float]:
        """Last polled price, else the last bar close; None when neither exists."""
        if self.last_price > 0:
            return self.last_price
        if self.engine.bars:
            return self.engine.bars[-1].close
        return None

    def execute_sell(self, reason: str) -> bool:
        with self.lock:
            pos = self.engine.position
            if pos is None:
                return False

            if not self.armed or pos.execution_ref == SHADOW_REF:
                mark = self.mark_price()
                if mark is None:
                    logger.warning("SELL refused: no price to close %s at", self.engine.symbol)
                    return False
                self._record_close(mark, reason)
                return True

            try:
                balance = self.wallet.token_balance()
                if balance < DUST_TOKEN_BALANCE:
                    mark = self.mark_price()
                    if mark is None:
                        logger.warning("SELL refused: no %s balance and no price", self.engine.symbol)
                        return False
                    # nothing left to sell; drop the position at the mark
                    logger.warning("SELL: no %s balance, closing position on paper", self.engine.symbol)
                    self._record_close(mark, reason)
                    return False

                quote = self.venue.get_sell_quote(balance)
                sig = self.venue.submit_trade(quote, self.wallet)
            except VenueError as exc:
                logger.error("SELL failed: %s", exc)
                return False

            self._record_close(quote.price_usdc_per_token, reason)
            logger.info("SELL @ %.4f | %s | %s", quote.price_usdc_per_token, reason, sig)
            return True

    def _record_close(self, exit_price: float, reason: str) -> CloseResult:
        result = self.engine.close_position(exit_price, reason)
        self.store.append_trade(result.trade)
        self.persist()
        return result

    def force_close(self) -> bool:
        """Close the open position now (admin action)."""
        with self.lock:
            if self.engine.position is None:
                return False
            return self.execute_sell("timeout")

    # ---------- persistence / reporting ----------

    def persist(self) -> None:
        with self.lock:
            self.store.save_state(self.engine.snapshot_state(last_save_time=_utc_now_iso()))
            self.store.save_bars(self.engine.bars, self.cfg.max_saved_bars)

    def health(self) -> Dict[str, Any]:
        now = time.time()
        with self.lock:
            state = self.engine.get_state()
        return {
            "status": "ok",
            "bot": self.cfg.bot_name,
            "uptime": int(now - self.started_at),
            "swaps_armed": self.armed,
            "last_price": self.last_price if self.last_price > 0 else None,
            "last_price_age_s": int(now - self.last_price_time) if self.last_price_time > 0 else None,
            "last_signal": self.last_signal,
            "loop_count": self.loop_count,
            "price_errors": self.price_errors,
            **state,
        }

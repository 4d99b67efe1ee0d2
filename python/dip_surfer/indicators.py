"""Indicator computation.

Two flavours of the same recurrences:
- ``IndicatorEngine`` updates EMA(fast), EMA(slow) and ATR one bar at a time
  for the live loop;
- ``ema`` / ``atr`` compute them over a whole OHLC frame with pandas, for
  reports and cross-checks.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime, timezone
from typing import List, Optional

import numpy as np
import pandas as pd

from .config import IndicatorConfig, StrategyConfig
from .types import Bar, IndicatorSnapshot

logger = logging.getLogger(__name__)

# A bar beyond these multiples of the previous close is treated as corrupted.
SPIKE_MAX_MULT = 3.0
SPIKE_MIN_MULT = 0.33


def true_range(bar: Bar, prev_close: Optional[float]) -> float:
    if prev_close is None:
        return bar.high - bar.low
    return max(bar.high - bar.low, abs(bar.high - prev_close), abs(bar.low - prev_close))


def sanitize_bar(bar: Bar, prev_close: Optional[float]) -> Bar:
    """Clamp a spiked bar into [0.33, 3] x previous close.

    The bar is kept (clamped, not dropped) so warmup and the indicator series
    never lose a bar to bad data.
    """
    if prev_close is None:
        return bar
    hi = prev_close * SPIKE_MAX_MULT
    lo = prev_close * SPIKE_MIN_MULT
    if bar.high <= hi and bar.low >= lo and bar.open <= hi and bar.close <= hi:
        return bar

    logger.warning(
        "SPIKE clamped bar %s: O=%s H=%s L=%s C=%s (prev.c=%.6f)",
        datetime.fromtimestamp(bar.timestamp, tz=timezone.utc).isoformat(),
        bar.open,
        bar.high,
        bar.low,
        bar.close,
        prev_close,
    )

    def clamp(x: float) -> float:
        return min(max(x, lo), hi)

    return replace(bar, open=clamp(bar.open), high=clamp(bar.high), low=clamp(bar.low), close=clamp(bar.close))


class IndicatorEngine:
    """Incremental EMA(fast), EMA(slow) and ATR over accepted bars."""

    def __init__(self, ind_cfg: IndicatorConfig, zone_atr_mult: float = StrategyConfig.zone_atr_mult):
        self.cfg = ind_cfg
        self.zone_atr_mult = float(zone_atr_mult)

        self.ema_fast: List[float] = []
        self.ema_slow: List[float] = []
        self.atr: List[float] = []

        self._k_fast = 2.0 / (ind_cfg.ema_fast_len + 1)
        self._k_slow = 2.0 / (ind_cfg.ema_slow_len + 1)
        self._prev_close: Optional[float] = None
        self._tr_sum = 0.0  # only used while i < atr_len

    def __len__(self) -> int:
        return len(self.atr)

    @property
    def prev_close(self) -> Optional[float]:
        return self._prev_close

    def update(self, bar: Bar) -> Bar:
        """Append one bar and return it as accepted (clamped if spiked)."""
        bar = sanitize_bar(bar, self._prev_close)
        i = len(self.atr)
        c = bar.close

        if i == 0:
            self.ema_fast.append(c)
            self.ema_slow.append(c)
        else:
            k = self._k_fast
            self.ema_fast.append(c * k + self.ema_fast[-1] * (1.0 - k))
            k = self._k_slow
            self.ema_slow.append(c * k + self.ema_slow[-1] * (1.0 - k))

        tr = true_range(bar, self._prev_close)
        n_atr = self.cfg.atr_len
        if i < n_atr:
            # simple mean over everything seen so far (no Wilder during warmup)
            self._tr_sum += tr
            self.atr.append(self._tr_sum / (i + 1))
        else:
            self.atr.append((self.atr[-1] * (n_atr - 1) + tr) / n_atr)

        self._prev_close = c
        return bar

    def snapshot(self) -> IndicatorSnapshot:
        n = len(self.atr)
        if n == 0:
            return IndicatorSnapshot(ema_fast=0.0, ema_slow=0.0, atr=0.0, slope=0.0, buy_zone_top=0.0, ready=False)

        ema_fast = self.ema_fast[-1]
        ema_slow = self.ema_slow[-1]
        atr_ = self.atr[-1]
        slope = (ema_fast - ema_slow) / ema_slow if ema_slow > 0 else 0.0
        return IndicatorSnapshot(
            ema_fast=ema_fast,
            ema_slow=ema_slow,
            atr=atr_,
            slope=slope,
            buy_zone_top=ema_fast - atr_ * self.zone_atr_mult,
            ready=n >= self.cfg.warmup_bars,
        )


def ema(series: pd.Series, span: int) -> pd.Series:
    """Exponential moving average seeded with the first sample.

    Uses pandas ewm with adjust=False (recursive form), which is the same
    recurrence ``IndicatorEngine`` runs bar by bar.
    """
    if span <= 0:
        raise ValueError("span must be positive")
    return series.ewm(span=span, adjust=False, min_periods=1).mean()


def atr(df: pd.DataFrame, window: int) -> pd.Series:
    """Average True Range: running mean for the first ``window`` bars, Wilder after."""
    if window <= 0:
        raise ValueError("window must be positive")
    high = df["High"].astype(float)
    low = df["Low"].astype(float)
    close = df["Close"].astype(float)
    prev_close = close.shift(1)
    tr = pd.concat(
        [
            (high - low).abs(),
            (high - prev_close).abs(),
            (low - prev_close).abs(),
        ],
        axis=1,
    ).max(axis=1)

    trs = tr.to_numpy()
    out = np.empty(len(trs), dtype=float)
    head = min(window, len(trs))
    out[:head] = np.cumsum(trs[:head]) / np.arange(1, head + 1)
    for i in range(head, len(trs)):
        out[i] = (out[i - 1] * (window - 1) + trs[i]) / window
    return pd.Series(out, index=df.index, name="atr")

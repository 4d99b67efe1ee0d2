"""Fold polled prices into fixed-duration OHLC bars."""

from __future__ import annotations

from typing import Optional

from .types import Bar


class BarAggregator:
    """Accumulates ticks for the current time bucket.

    ``observe`` must be called with non-decreasing ``now_ms``.
    """

    def __init__(self, bar_ms: int):
        if bar_ms <= 0:
            raise ValueError("bar_ms must be positive")
        self.bar_ms = int(bar_ms)

        self.bucket_start: Optional[int] = None  # ms
        self.open = 0.0
        self.high = float("-inf")
        self.low = float("inf")
        self.close = 0.0

    def observe(self, price: float, now_ms: int) -> Optional[Bar]:
        """Add one tick; return the previous bucket as a Bar when it rolls over."""
        bucket = (int(now_ms) // self.bar_ms) * self.bar_ms

        if bucket == self.bucket_start:
            self.high = max(self.high, price)
            self.low = min(self.low, price)
            self.close = price
            return None

        completed = None
        if self.bucket_start is not None:
            completed = Bar(
                timestamp=self.bucket_start // 1000,
                open=self.open,
                high=self.high,
                low=self.low,
                close=self.close,
            )

        self.bucket_start = bucket
        self.open = price
        self.high = price
        self.low = price
        self.close = price
        return completed

"""Tests for the incremental indicator engine and its pandas counterparts."""

import logging

import pandas as pd
import pytest

from dip_surfer.config import IndicatorConfig
from dip_surfer.indicators import IndicatorEngine, atr, ema, sanitize_bar, true_range
from dip_surfer.types import Bar


def _feed(engine, bars):
    for b in bars:
        engine.update(b)
    return engine


class TestIndicatorEngine:
    def test_empty_snapshot_is_zero_and_not_ready(self):
        snap = IndicatorEngine(IndicatorConfig()).snapshot()
        assert snap.ready is False
        assert (snap.ema_fast, snap.ema_slow, snap.atr, snap.slope, snap.buy_zone_top) == (0.0, 0.0, 0.0, 0.0, 0.0)

    def test_first_bar_seeds_ema_and_atr(self):
        eng = IndicatorEngine(IndicatorConfig())
        eng.update(Bar(timestamp=0, open=10.0, high=12.0, low=9.0, close=11.0))
        assert eng.ema_fast == [11.0]
        assert eng.ema_slow == [11.0]
        assert eng.atr == [3.0]

    def test_ema_recurrence(self):
        cfg = IndicatorConfig(ema_fast_len=3, ema_slow_len=5, atr_len=2)
        eng = IndicatorEngine(cfg)
        closes = [10.0, 11.0, 13.0]
        for i, c in enumerate(closes):
            eng.update(Bar(timestamp=i, open=c, high=c, low=c, close=c))

        k = 2 / 4
        expected = 10.0
        for c in closes[1:]:
            expected = c * k + expected * (1 - k)
        assert eng.ema_fast[-1] == pytest.approx(expected)

    def test_atr_is_running_mean_during_warmup_then_wilder(self):
        cfg = IndicatorConfig(ema_fast_len=2, ema_slow_len=3, atr_len=3)
        eng = IndicatorEngine(cfg)
        bars = [
            Bar(timestamp=0, open=10, high=11, low=9, close=10),  # tr 2
            Bar(timestamp=1, open=10, high=14, low=10, close=13),  # tr 4
            Bar(timestamp=2, open=13, high=13, low=12, close=12),  # tr 1
            Bar(timestamp=3, open=12, high=20, low=12, close=19),  # tr 8
        ]
        _feed(eng, bars)

        assert eng.atr[0] == pytest.approx(2.0)
        assert eng.atr[1] == pytest.approx(3.0)
        assert eng.atr[2] == pytest.approx(7.0 / 3.0)
        assert eng.atr[3] == pytest.approx((7.0 / 3.0 * 2 + 8.0) / 3.0)

    def test_true_range_uses_previous_close(self):
        bar = Bar(timestamp=0, open=10, high=10.5, low=9.5, close=10)
        assert true_range(bar, None) == pytest.approx(1.0)
        assert true_range(bar, 12.0) == pytest.approx(2.5)
        assert true_range(bar, 8.0) == pytest.approx(2.5)

    def test_constant_close_converges(self):
        eng = IndicatorEngine(IndicatorConfig())
        bars = [Bar(timestamp=i, open=80, high=80, low=80, close=80) for i in range(10)]
        bars += [Bar(timestamp=10 + i, open=50, high=50, low=50, close=50) for i in range(400)]
        _feed(eng, bars)
        snap = eng.snapshot()
        assert snap.ema_fast == pytest.approx(50.0)
        assert snap.ema_slow == pytest.approx(50.0)
        assert snap.atr == pytest.approx(0.0, abs=1e-6)

    def test_flat_bars_have_zero_atr(self, flat_bars):
        eng = _feed(IndicatorEngine(IndicatorConfig()), flat_bars(100, 25.0))
        assert eng.snapshot().atr == 0.0

    @pytest.mark.parametrize("n,ready", [(1, False), (54, False), (55, True), (80, True)])
    def test_warmup_boundary(self, uptrend_bars, n, ready):
        cfg = IndicatorConfig(ema_fast_len=14, ema_slow_len=50, atr_len=14)
        eng = _feed(IndicatorEngine(cfg), uptrend_bars(n))
        assert eng.snapshot().ready is ready

    def test_slope_and_zone(self, uptrend_bars):
        eng = _feed(IndicatorEngine(IndicatorConfig(), zone_atr_mult=0.5), uptrend_bars(60))
        snap = eng.snapshot()
        assert snap.slope == pytest.approx((snap.ema_fast - snap.ema_slow) / snap.ema_slow)
        assert snap.buy_zone_top == pytest.approx(snap.ema_fast - 0.5 * snap.atr)
        assert snap.slope > 0.03


class TestSpikeClamp:
    def test_spiked_bar_is_clamped_and_still_appended(self, caplog):
        eng = IndicatorEngine(IndicatorConfig())
        eng.update(Bar(timestamp=0, open=100, high=100, low=100, close=100))

        with caplog.at_level(logging.WARNING, logger="dip_surfer.indicators"):
            accepted = eng.update(Bar(timestamp=3600, open=100, high=400, low=20, close=150))

        assert accepted.high == pytest.approx(300.0)
        assert accepted.low == pytest.approx(33.0)
        assert accepted.open == 100
        assert accepted.close == 150
        assert len(eng) == 2
        assert len(eng.ema_fast) == len(eng.ema_slow) == len(eng.atr) == 2
        assert "SPIKE" in caplog.text

    def test_close_spike_clamps_close(self):
        bar = sanitize_bar(Bar(timestamp=1, open=100, high=500, low=90, close=450), 100.0)
        assert bar.close == pytest.approx(300.0)
        assert bar.high == pytest.approx(300.0)
        assert bar.low == 90

    def test_normal_bar_untouched(self):
        bar = Bar(timestamp=1, open=100, high=120, low=80, close=110)
        assert sanitize_bar(bar, 100.0) is bar
        assert sanitize_bar(bar, None) is bar

    def test_indicators_use_clamped_values(self):
        eng = IndicatorEngine(IndicatorConfig())
        eng.update(Bar(timestamp=0, open=100, high=100, low=100, close=100))
        eng.update(Bar(timestamp=1, open=100, high=1000, low=100, close=1000))
        assert eng.prev_close == pytest.approx(300.0)
        assert eng.atr[-1] == pytest.approx((0.0 + 200.0) / 2)


class TestVectorisedIndicators:
    def test_pandas_versions_match_incremental_engine(self, random_walk_bars, bars_to_frame):
        cfg = IndicatorConfig(ema_fast_len=14, ema_slow_len=50, atr_len=14)
        bars = random_walk_bars(300)
        eng = _feed(IndicatorEngine(cfg), bars)
        df = bars_to_frame(bars).df

        assert ema(df["Close"], 14).tolist() == pytest.approx(eng.ema_fast, rel=1e-12)
        assert ema(df["Close"], 50).tolist() == pytest.approx(eng.ema_slow, rel=1e-12)
        assert atr(df, 14).tolist() == pytest.approx(eng.atr, rel=1e-12)

    def test_invalid_windows(self):
        with pytest.raises(ValueError):
            ema(pd.Series([1.0, 2.0]), 0)
        with pytest.raises(ValueError):
            atr(pd.DataFrame({"High": [1.0], "Low": [1.0], "Close": [1.0]}), 0)

"""Shared test fixtures.

Bars are synthetic: a steady 1%-per-bar uptrend is enough to put the
default EMA(14)/EMA(50) slope well above the entry threshold once warmup
is over.
"""

import numpy as np
import pandas as pd
import pytest

from dip_surfer.config import CostConfig, IndicatorConfig, StrategyConfig
from dip_surfer.data_provider import OhlcvFrame
from dip_surfer.engine import SurferEngine
from dip_surfer.types import Bar

HOUR = 3600
T0 = 1_700_000_000 - (1_700_000_000 % HOUR)


def _uptrend(n, start=100.0, growth=0.01, t0=T0, step=HOUR):
    bars = []
    prev = start
    for i in range(n):
        close = start * (1.0 + growth) ** i
        bars.append(
            Bar(
                timestamp=t0 + i * step,
                open=prev,
                high=close * 1.005,
                low=close * 0.995,
                close=close,
            )
        )
        prev = close
    return bars


def _flat(n, price, t0=T0, step=HOUR):
    return [Bar(timestamp=t0 + i * step, open=price, high=price, low=price, close=price) for i in range(n)]


def _random_walk(n, seed=3, start=100.0, vol=0.01, t0=T0, step=HOUR):
    rng = np.random.RandomState(seed)
    closes = start * np.exp(np.cumsum(rng.normal(0.0005, vol, size=n)))
    bars = []
    prev = start
    for i, c in enumerate(closes):
        hi = max(prev, c) * (1 + abs(rng.normal(0, vol / 2)))
        lo = min(prev, c) * (1 - abs(rng.normal(0, vol / 2)))
        bars.append(Bar(timestamp=t0 + i * step, open=float(prev), high=float(hi), low=float(lo), close=float(c)))
        prev = c
    return bars


@pytest.fixture
def uptrend_bars():
    return _uptrend


@pytest.fixture
def flat_bars():
    return _flat


@pytest.fixture
def random_walk_bars():
    return _random_walk


@pytest.fixture
def bars_to_frame():
    def _to_frame(bars, symbol="SOL-USD"):
        idx = pd.to_datetime([b.timestamp for b in bars], unit="s", utc=True)
        df = pd.DataFrame(
            {
                "Open": [b.open for b in bars],
                "High": [b.high for b in bars],
                "Low": [b.low for b in bars],
                "Close": [b.close for b in bars],
                "Volume": 0.0,
            },
            index=idx,
        )
        return OhlcvFrame(df=df, symbol=symbol)

    return _to_frame


@pytest.fixture
def make_engine():
    def _make(strat_cfg=None, cost_cfg=None, ind_cfg=None, bar_ms=HOUR * 1000):
        return SurferEngine(
            ind_cfg or IndicatorConfig(),
            strat_cfg or StrategyConfig(),
            cost_cfg or CostConfig(),
            bar_ms=bar_ms,
            symbol="SOL",
        )

    return _make


@pytest.fixture
def warm_engine(make_engine, uptrend_bars):
    """Engine fed 60 uptrend bars: ready, flat, slope far above threshold."""
    engine = make_engine()
    for bar in uptrend_bars(60):
        engine.add_bar(bar)
    return engine

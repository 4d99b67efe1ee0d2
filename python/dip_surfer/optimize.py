"""Very small random-search optimizer over the strategy knobs.

Scores each candidate as ``cagr - dd_penalty * max_drawdown`` on the
backtest equity curve. For anything serious, replace this with a mature
library and walk-forward validation.
"""

from __future__ import annotations

import random
from dataclasses import asdict, dataclass
from pathlib import Path

import pandas as pd

from .backtest import run_backtest
from .config import CostConfig, IndicatorConfig, StrategyConfig
from .data_provider import OhlcvFrame
from .metrics import cagr, max_drawdown


@dataclass(frozen=True)
class OptResult:
    score: float
    cagr: float
    max_dd: float
    trades: int
    params: StrategyConfig


def _score_equity(eq: pd.Series, dd_penalty: float) -> tuple[float, float, float]:
    mdd = max_drawdown(eq)
    g = cagr(eq)
    if not (pd.notna(g) and pd.notna(mdd)):
        return float("-inf"), float("nan"), float("nan")
    return float(g - dd_penalty * mdd), float(g), float(mdd)


def random_search(
    frame: OhlcvFrame,
    n_evals: int = 200,
    seed: int = 7,
    dd_penalty: float = 0.5,
    output_dir: str | Path | None = "outputs_opt",
    ind_cfg: IndicatorConfig = IndicatorConfig(),
    cost_cfg: CostConfig = CostConfig(),
) -> list[OptResult]:
    """Random search over a small hand-picked grid. Best result first."""
    rng = random.Random(seed)

    zone_mult = [0.25, 0.5, 0.75, 1.0, 1.5]
    min_slope = [0.0, 0.01, 0.02, 0.03, 0.05]
    tp1 = [0.03, 0.05, 0.08, 0.12]
    sl = [0.02, 0.03, 0.04, 0.06]
    trail = [0.0, 0.02, 0.03]
    max_bars = [6, 12, 24, 48]
    cooldown = [0, 3, 6]

    results: list[OptResult] = []
    for _ in range(int(n_evals)):
        cfg = StrategyConfig(
            zone_atr_mult=rng.choice(zone_mult),
            min_ema_slope=rng.choice(min_slope),
            tp1_pct=rng.choice(tp1),
            sl_pct=rng.choice(sl),
            trail_pct=rng.choice(trail),
            max_bars_in_position=rng.choice(max_bars),
            cooldown_bars=rng.choice(cooldown),
        )
        bt = run_backtest(frame, ind_cfg, cfg, cost_cfg)
        score, g, mdd = _score_equity(bt.equity, dd_penalty=dd_penalty)
        results.append(OptResult(score=score, cagr=g, max_dd=mdd, trades=len(bt.trades), params=cfg))

    results.sort(key=lambda r: r.score, reverse=True)

    if output_dir is not None:
        out_dir = Path(output_dir)
        out_dir.mkdir(parents=True, exist_ok=True)
        rows = []
        for r in results:
            d = asdict(r.params)
            d.update({"score": r.score, "cagr": r.cagr, "max_dd": r.max_dd, "trades": r.trades})
            rows.append(d)
        pd.DataFrame(rows).to_csv(out_dir / "opt_results.csv", index=False, encoding="utf-8")

    return results

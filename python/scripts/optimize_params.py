"""Random-search the strategy knobs on a train window and check them on a validation window.

Example:
    python -m scripts.optimize_params --symbol SOL-USD \
      --train_start 2024-09-01 --train_end 2025-03-31 \
      --valid_start 2025-04-01 --valid_end 2025-08-31 --n 100
"""

from __future__ import annotations

import argparse
import json
from dataclasses import asdict
from pathlib import Path

from dip_surfer.backtest import run_backtest
from dip_surfer.config import CostConfig, IndicatorConfig
from dip_surfer.data_provider import OhlcvFrame, YfinanceProvider
from dip_surfer.metrics import cagr, max_drawdown
from dip_surfer.optimize import random_search


def main() -> None:
    p = argparse.ArgumentParser()
    p.add_argument("--symbol", type=str, default="SOL-USD")
    p.add_argument("--interval", type=str, default="1h")
    p.add_argument("--train_start", type=str, default="2024-09-01")
    p.add_argument("--train_end", type=str, default="2025-03-31")
    p.add_argument("--valid_start", type=str, default="2025-04-01")
    p.add_argument("--valid_end", type=str, default="2025-08-31")
    p.add_argument("--n", type=int, default=100)
    p.add_argument("--seed", type=int, default=7)
    p.add_argument("--out", type=str, default="outputs_opt")
    args = p.parse_args()

    frame = YfinanceProvider().fetch(args.symbol, start=args.train_start, end=args.valid_end, interval=args.interval)
    df = frame.df
    train = OhlcvFrame(df=df.loc[args.train_start:args.train_end], symbol=frame.symbol)
    valid = OhlcvFrame(df=df.loc[args.valid_start:args.valid_end], symbol=frame.symbol)

    results = random_search(
        frame=train,
        n_evals=args.n,
        seed=args.seed,
        output_dir=args.out,
        ind_cfg=IndicatorConfig(),
        cost_cfg=CostConfig(),
    )
    best = results[0].params
    print("Best params (train):", best)

    bt = run_backtest(valid, IndicatorConfig(), best, CostConfig())
    print("VALID CAGR:", cagr(bt.equity))
    print("VALID MaxDD:", max_drawdown(bt.equity))
    print("VALID trades:", len(bt.trades))

    out = Path(args.out)
    (out / "best_params.json").write_text(json.dumps(asdict(best), indent=2), encoding="utf-8")
    print("Saved outputs to:", out)


if __name__ == "__main__":
    main()

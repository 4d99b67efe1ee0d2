"""Backtest the dip strategy on yfinance or CSV bars.

Example:
    python -m scripts.run_backtest --symbol SOL-USD --start 2025-01-01 --end 2025-06-30
    python -m scripts.run_backtest --csv sol_1h.csv --symbol SOL
"""

from __future__ import annotations

import argparse
import json

import pandas as pd

from dip_surfer.backtest import run_backtest_from_csv, run_backtest_from_yfinance
from dip_surfer.config import CostConfig, IndicatorConfig, StrategyConfig
from dip_surfer.metrics import cagr, max_drawdown, summarize_trades


def main() -> None:
    p = argparse.ArgumentParser()
    p.add_argument("--symbol", type=str, default="SOL-USD")
    p.add_argument("--start", type=str, default="2025-01-01")
    p.add_argument("--end", type=str, default="2025-06-30")
    p.add_argument("--interval", type=str, default="1h")
    p.add_argument("--output_dir", type=str, default="outputs")
    p.add_argument("--csv", type=str, default=None, help="OHLC CSV path (Date,Open,High,Low,Close[,Volume]).")
    p.add_argument("--params", type=str, default=None, help="JSON file with StrategyConfig fields.")
    p.add_argument("--fee", type=float, default=CostConfig.round_trip_fee_pct, help="Round-trip fee fraction.")
    args = p.parse_args()

    strat_cfg = StrategyConfig()
    if args.params:
        with open(args.params, encoding="utf-8") as fh:
            strat_cfg = StrategyConfig(**json.load(fh))
    cost_cfg = CostConfig(round_trip_fee_pct=float(args.fee))
    ind_cfg = IndicatorConfig()

    if args.csv:
        paths = run_backtest_from_csv(args.csv, args.symbol, args.output_dir, ind_cfg, strat_cfg, cost_cfg)
    else:
        paths = run_backtest_from_yfinance(
            symbol=args.symbol,
            start=args.start,
            end=args.end,
            interval=args.interval,
            output_dir=args.output_dir,
            ind_cfg=ind_cfg,
            strat_cfg=strat_cfg,
            cost_cfg=cost_cfg,
        )

    eq = pd.read_csv(paths["equity"], parse_dates=["Date"]).set_index("Date")["Equity"]
    trades = pd.read_csv(paths["trades"])
    print("Final equity:", float(eq.iloc[-1]) if len(eq) else float("nan"))
    print("CAGR:", cagr(eq))
    print("MaxDD:", max_drawdown(eq))
    for k, v in summarize_trades(trades).items():
        print(f"{k}: {v}")
    print(paths["equity"])
    print(paths["trades"])


if __name__ == "__main__":
    main()

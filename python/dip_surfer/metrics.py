"""Performance metrics."""

from __future__ import annotations

import numpy as np
import pandas as pd


def max_drawdown(equity: pd.Series) -> float:
    """Maximum drawdown (as positive fraction)."""
    x = equity.astype(float).to_numpy()
    if len(x) == 0:
        return float("nan")
    peak = np.maximum.accumulate(x)
    dd = 1.0 - (x / np.maximum(peak, np.finfo(float).tiny))
    return float(np.nanmax(dd))


def cagr(equity: pd.Series) -> float:
    """CAGR from first to last point using elapsed calendar time.

    Crypto trades around the clock, so the horizon is measured in fractional
    days rather than dates.
    """
    if len(equity) < 2:
        return float("nan")
    days = (equity.index[-1] - equity.index[0]) / pd.Timedelta(days=1)
    if days <= 0:
        return float("nan")
    total = float(equity.iloc[-1] / equity.iloc[0])
    if total <= 0:
        return -1.0
    return total ** (365.0 / days) - 1.0


def summarize_trades(trades: pd.DataFrame) -> dict:
    """Count, win rate, net pnl and profit factor of a trade log frame."""
    if trades is None or trades.empty:
        return {
            "trades": 0,
            "wins": 0,
            "win_rate": float("nan"),
            "total_pnl_net": 0.0,
            "mean_pnl_net": float("nan"),
            "profit_factor": float("nan"),
        }
    net = trades["pnl_net"].astype(float)
    gains = float(net[net > 0].sum())
    losses = float(-net[net < 0].sum())
    wins = int((net > 0).sum())
    return {
        "trades": int(len(net)),
        "wins": wins,
        "win_rate": wins / len(net),
        "total_pnl_net": float(net.sum()),
        "mean_pnl_net": float(net.mean()),
        "profit_factor": gains / losses if losses > 0 else float("inf"),
    }

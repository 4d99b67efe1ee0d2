"""Backtest runner: replay historical bars through the live engine.

Fills happen at the bar close, the same price the engine decides on.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Optional

import pandas as pd

from .config import CostConfig, IndicatorConfig, StrategyConfig
from .data_provider import CsvProvider, OhlcvFrame, YfinanceProvider, frame_to_bars
from .engine import SurferEngine
from .types import TradeRecord

BACKTEST_REF = "backtest"


@dataclass(frozen=True)
class BacktestResult:
    equity: pd.Series  # closed-trade equity marked to the bar close
    trades: pd.DataFrame


def run_backtest(
    frame: OhlcvFrame,
    ind_cfg: IndicatorConfig = IndicatorConfig(),
    strat_cfg: StrategyConfig = StrategyConfig(),
    cost_cfg: CostConfig = CostConfig(),
    notional: float = 1.0,
) -> BacktestResult:
    engine = SurferEngine(ind_cfg, strat_cfg, cost_cfg, symbol=frame.symbol)
    trades = []
    points = []

    for bar in frame_to_bars(frame):
        res = engine.step_bar(bar)
        price = res.bar.close

        if res.exit_signal is not None:
            closed = engine.close_position(price, res.exit_signal.reason, exit_time=bar.timestamp)
            trades.append(asdict(closed.trade))
        elif res.entry_signal is not None:
            engine.open_position(price, notional / price, notional, BACKTEST_REF)

        equity = engine.stats.equity
        pos = engine.position
        if pos is not None:
            equity *= price / pos.entry_price
        points.append((pd.Timestamp(bar.timestamp, unit="s", tz="UTC"), equity))

    eq = pd.DataFrame(points, columns=["Date", "Equity"]).set_index("Date")["Equity"]
    columns = [f.name for f in fields(TradeRecord)]
    return BacktestResult(equity=eq, trades=pd.DataFrame(trades, columns=columns))


def run_backtest_to_csv(
    frame: OhlcvFrame,
    output_dir: str | Path = "outputs",
    ind_cfg: IndicatorConfig = IndicatorConfig(),
    strat_cfg: StrategyConfig = StrategyConfig(),
    cost_cfg: CostConfig = CostConfig(),
    start_dt: Optional[pd.Timestamp] = None,
) -> dict[str, Path]:
    """Run a backtest and write equity/trades CSVs.

    ``start_dt`` trims the outputs so the indicator warmup segment is not
    reported.
    """
    out_dir = Path(output_dir)
    out_dir.mkdir(parents=True, exist_ok=True)

    result = run_backtest(frame, ind_cfg, strat_cfg, cost_cfg)
    eq = result.equity.to_frame()
    trades = result.trades
    if start_dt is not None:
        start_dt = pd.Timestamp(start_dt)
        if start_dt.tzinfo is None:
            start_dt = start_dt.tz_localize("UTC")
        eq = eq.loc[eq.index >= start_dt]
        if not trades.empty:
            trades = trades.loc[pd.to_datetime(trades["entry_time"], utc=True) >= start_dt]

    stem = frame.symbol.replace(".", "_").replace("/", "_")
    eq_path = out_dir / f"equity_{stem}.csv"
    tr_path = out_dir / f"trades_{stem}.csv"
    eq.to_csv(eq_path, encoding="utf-8")
    trades.to_csv(tr_path, index=False, encoding="utf-8")
    return {"equity": eq_path, "trades": tr_path}


def run_backtest_from_csv(
    csv_path: str | Path,
    symbol: str,
    output_dir: str | Path = "outputs",
    ind_cfg: IndicatorConfig = IndicatorConfig(),
    strat_cfg: StrategyConfig = StrategyConfig(),
    cost_cfg: CostConfig = CostConfig(),
) -> dict[str, Path]:
    frame = CsvProvider().fetch(csv_path=csv_path, symbol=symbol)
    return run_backtest_to_csv(frame, output_dir, ind_cfg, strat_cfg, cost_cfg)


def run_backtest_from_yfinance(
    symbol: str,
    start: str,
    end: str,
    interval: str = "1h",
    output_dir: str | Path = "outputs",
    ind_cfg: IndicatorConfig = IndicatorConfig(),
    strat_cfg: StrategyConfig = StrategyConfig(),
    cost_cfg: CostConfig = CostConfig(),
    include_warmup: bool = True,
) -> dict[str, Path]:
    """Convenience runner using yfinance (e.g. ``SOL-USD`` hourly)."""
    start_dt = pd.Timestamp(start, tz="UTC")
    fetch_start = start_dt
    if include_warmup:
        # fetch enough extra bars before `start` for indicators to warm up
        bar = pd.Timedelta(interval.replace("m", "min") if interval.endswith("m") else interval)
        fetch_start = start_dt - bar * ind_cfg.warmup_bars

    frame = YfinanceProvider().fetch(symbol, start=str(fetch_start.date()), end=end, interval=interval)
    return run_backtest_to_csv(frame, output_dir, ind_cfg, strat_cfg, cost_cfg, start_dt=start_dt)

"""Data providers (CoinGecko / yfinance / CSV) and a standardized OHLC schema.

Used to backfill the live engine at startup and to feed backtests.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional

import pandas as pd
import requests

from .types import Bar

logger = logging.getLogger(__name__)

COINGECKO_OHLC_URL = "https://api.coingecko.com/api/v3/coins/{coin_id}/ohlc"


@dataclass(frozen=True)
class OhlcvFrame:
    """Standard OHLC dataframe wrapper."""

    df: pd.DataFrame  # columns: Open, High, Low, Close, Volume; index: UTC datetime
    symbol: str


_COLUMN_ALIASES = {
    "open": "Open",
    "o": "Open",
    "high": "High",
    "h": "High",
    "low": "Low",
    "l": "Low",
    "close": "Close",
    "c": "Close",
    "price": "Close",
    "volume": "Volume",
    "v": "Volume",
}
_OHLC = ["Open", "High", "Low", "Close"]


def _standardize_ohlcv_columns(df: pd.DataFrame) -> pd.DataFrame:
    """Map provider columns onto Open/High/Low/Close/Volume with a UTC index."""
    if isinstance(df.columns, pd.MultiIndex):
        # yfinance returns (field, ticker) columns; keep the first ticker
        first = df.columns.get_level_values(-1)[0]
        df = df.xs(first, axis=1, level=-1)

    renamed = {}
    for col in df.columns:
        target = _COLUMN_ALIASES.get(str(col).strip().lower())
        if target is not None and target not in renamed.values():
            renamed[col] = target
    df = df.rename(columns=renamed)

    missing = [c for c in _OHLC if c not in df.columns]
    if missing:
        raise ValueError(f"Missing required OHLC columns: {missing}")

    out = df[_OHLC].astype(float)
    # CoinGecko OHLC has no volume
    out["Volume"] = df["Volume"].astype(float) if "Volume" in df.columns else 0.0

    idx = pd.DatetimeIndex(out.index)
    out.index = idx.tz_localize("UTC") if idx.tz is None else idx.tz_convert("UTC")
    return out[~out.index.duplicated(keep="last")].sort_index()


def frame_to_bars(frame: OhlcvFrame) -> List[Bar]:
    """Convert a standardized frame into Bars (timestamps in unix seconds)."""
    df = frame.df.dropna(subset=["Open", "High", "Low", "Close"])
    seconds = (df.index - pd.Timestamp(0, tz="UTC")) // pd.Timedelta(seconds=1)
    return [
        Bar(timestamp=int(t), open=float(o), high=float(h), low=float(l), close=float(c))
        for t, o, h, l, c in zip(seconds, df["Open"], df["High"], df["Low"], df["Close"])
    ]


def merge_bars(*sequences: List[Bar]) -> List[Bar]:
    """Merge bar sequences by timestamp; later sequences lose on duplicates."""
    by_ts = {}
    for seq in reversed(sequences):
        for b in seq:
            by_ts[b.timestamp] = b
    return [by_ts[t] for t in sorted(by_ts)]


class CoinGeckoProvider:
    """Fetch OHLC candles from CoinGecko's public API.

    Notes:
    - granularity is chosen by CoinGecko from ``days`` (hourly-ish for 2-30 days
      on paid plans, 4h on the free tier)
    """

    def __init__(self, session: Optional[requests.Session] = None, timeout: float = 20.0):
        self.session = session or requests.Session()
        self.timeout = timeout

    def fetch(self, coin_id: str, days: int = 14, vs_currency: str = "usd") -> OhlcvFrame:
        url = COINGECKO_OHLC_URL.format(coin_id=coin_id)
        r = self.session.get(url, params={"vs_currency": vs_currency, "days": int(days)}, timeout=self.timeout)
        r.raise_for_status()
        rows = r.json()
        if not rows:
            raise RuntimeError(f"CoinGecko returned empty data for {coin_id}")

        # rows are [timestamp_ms, open, high, low, close]
        df = pd.DataFrame(rows, columns=["Timestamp", "Open", "High", "Low", "Close"])
        df["Timestamp"] = pd.to_datetime(df["Timestamp"], unit="ms", utc=True)
        df = df.set_index("Timestamp")
        return OhlcvFrame(df=_standardize_ohlcv_columns(df), symbol=coin_id)


class YfinanceProvider:
    """Fetch data from yfinance.

    Notes:
    - crypto pairs use Yahoo tickers such as ``SOL-USD``
    - intraday (interval < 1d) has a limited lookback (about 730 days for 1h)
    """

    def fetch(
        self,
        symbol: str,
        start: Optional[str] = None,
        end: Optional[str] = None,
        interval: str = "1h",
        period: Optional[str] = None,
    ) -> OhlcvFrame:
        import yfinance as yf  # local import to keep dependency optional in some environments

        kwargs = {"tickers": symbol, "interval": interval, "auto_adjust": False, "progress": False}
        if period:
            kwargs["period"] = period
        else:
            kwargs["start"] = start
            kwargs["end"] = end
        df = yf.download(**kwargs)
        if df is None or len(df) == 0:
            raise RuntimeError(f"yfinance returned empty data for symbol={symbol}")

        df = _standardize_ohlcv_columns(df)
        return OhlcvFrame(df=df, symbol=symbol)


class CsvProvider:
    """Load OHLC bars from a CSV export.

    The time column may hold ISO strings or unix epochs (seconds, or
    milliseconds as exchanges and CoinGecko export them).
    """

    TIME_COLUMNS = ("Date", "Datetime", "datetime", "timestamp", "Timestamp", "time", "t")

    def fetch(self, csv_path: str | Path, symbol: str, datetime_col: Optional[str] = None) -> OhlcvFrame:
        path = Path(csv_path)
        if not path.exists():
            raise FileNotFoundError(str(path))

        df = pd.read_csv(path)
        candidates = [datetime_col] if datetime_col else self.TIME_COLUMNS
        time_col = next((c for c in candidates if c in df.columns), None)
        if time_col is None:
            raise ValueError(f"{path.name}: no time column (looked for {', '.join(candidates)})")

        raw = df.pop(time_col)
        if pd.api.types.is_numeric_dtype(raw):
            unit = "ms" if raw.abs().max() > 1e11 else "s"
            df.index = pd.to_datetime(raw, unit=unit, utc=True)
        else:
            df.index = pd.to_datetime(raw, utc=True)
        return OhlcvFrame(df=_standardize_ohlcv_columns(df), symbol=symbol)


def fetch_backfill(fetch: Callable[[], OhlcvFrame]) -> List[Bar]:
    """Run a provider call; any failure degrades to an empty backfill."""
    try:
        return frame_to_bars(fetch())
    except (requests.RequestException, RuntimeError, ValueError, KeyError) as exc:
        logger.warning("Backfill failed: %s. Continuing without history.", exc)
        return []

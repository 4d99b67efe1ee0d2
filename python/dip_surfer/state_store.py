"""JSON persistence for bars, engine state and the trade log.

Files live under ``data_dir`` and are named after the token symbol. Every
write goes to a temp file first and is renamed into place.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict
from pathlib import Path
from typing import Any, List, Optional, Sequence

from .types import Bar, PersistedState, Position, TradeRecord

logger = logging.getLogger(__name__)


def _atomic_write(path: Path, payload: Any, indent: Optional[int] = 2) -> None:
    tmp = path.with_name(path.name + ".tmp")
    tmp.write_text(json.dumps(payload, indent=indent), encoding="utf-8")
    os.replace(tmp, path)


def state_to_dict(state: PersistedState) -> dict:
    return asdict(state)


def state_from_dict(d: dict) -> PersistedState:
    pos = d.get("position")
    return PersistedState(
        position=Position(**pos) if pos else None,
        cooldown_remaining=int(d.get("cooldown_remaining", 0)),
        total_trades=int(d.get("total_trades", 0)),
        total_wins=int(d.get("total_wins", 0)),
        total_pnl_pct=float(d.get("total_pnl_pct", 0.0)),
        equity=float(d.get("equity", 1.0)),
        peak_equity=float(d.get("peak_equity", 1.0)),
        max_drawdown=float(d.get("max_drawdown", 0.0)),
        last_save_time=str(d.get("last_save_time", "")),
    )


class JsonStateStore:
    def __init__(self, data_dir: str | Path, symbol: str):
        self.data_dir = Path(data_dir)
        stem = symbol.lower()
        self.state_path = self.data_dir / f"{stem}-state.json"
        self.bars_path = self.data_dir / f"{stem}-bars.json"
        self.trades_path = self.data_dir / f"{stem}-trades.json"

    def _ensure_dir(self) -> None:
        self.data_dir.mkdir(parents=True, exist_ok=True)

    def _read(self, path: Path, what: str) -> Any:
        if not path.exists():
            return None
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning("Failed to load %s from %s: %s. Starting fresh.", what, path, exc)
            return None

    # ---------- state ----------

    def save_state(self, state: PersistedState) -> None:
        self._ensure_dir()
        _atomic_write(self.state_path, state_to_dict(state))

    def load_state(self) -> Optional[PersistedState]:
        raw = self._read(self.state_path, "state")
        if raw is None:
            return None
        try:
            return state_from_dict(raw)
        except (TypeError, ValueError) as exc:
            logger.warning("Malformed state file %s: %s. Starting fresh.", self.state_path, exc)
            return None

    # ---------- bars ----------

    def save_bars(self, bars: Sequence[Bar], max_bars: int = 500) -> None:
        """Keep only the newest ``max_bars`` bars."""
        self._ensure_dir()
        keep = list(bars)[-max_bars:] if max_bars > 0 else []
        _atomic_write(self.bars_path, [asdict(b) for b in keep], indent=None)

    def load_bars(self) -> List[Bar]:
        raw = self._read(self.bars_path, "bars")
        if not raw:
            return []
        try:
            return [Bar(**b) for b in raw]
        except TypeError as exc:
            logger.warning("Malformed bars file %s: %s. Starting fresh.", self.bars_path, exc)
            return []

    # ---------- trades ----------

    def _read_trades(self) -> List[dict]:
        raw = self._read(self.trades_path, "trades")
        if raw is None:
            return []
        if not isinstance(raw, list):
            logger.warning("Malformed trades file %s: expected a list. Starting fresh.", self.trades_path)
            return []
        return raw

    def append_trade(self, trade: TradeRecord) -> None:
        self._ensure_dir()
        trades = self._read_trades()
        trades.append(asdict(trade))
        _atomic_write(self.trades_path, trades)

    def load_trades(self) -> List[TradeRecord]:
        try:
            return [TradeRecord(**t) for t in self._read_trades()]
        except TypeError as exc:
            logger.warning("Malformed trades file %s: %s. Starting fresh.", self.trades_path, exc)
            return []

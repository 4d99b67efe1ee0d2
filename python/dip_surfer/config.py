"""Configuration objects.

Style rules:
- keep signatures stable (no alias chaos)
- prefer explicit field names
- every knob can be overridden from the environment via ``from_env``
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields
from typing import Mapping, Optional


def _coerce(raw: str, default):
    if isinstance(default, bool):
        return raw.strip().lower() in {"true", "1"}
    if isinstance(default, int):
        return int(float(raw))
    if isinstance(default, float):
        return float(raw)
    return raw


def _from_env(cls, mapping: dict, env: Optional[Mapping[str, str]]):
    """Build ``cls`` from environment variables listed in ``mapping``.

    Values are coerced using the type of the field default. Missing keys keep
    the default.
    """
    env = os.environ if env is None else env
    defaults = {f.name: f.default for f in fields(cls)}
    kwargs = {}
    for key, name in mapping.items():
        raw = env.get(key)
        if raw is None or raw == "":
            continue
        kwargs[name] = _coerce(raw, defaults[name])
    return cls(**kwargs)


@dataclass(frozen=True)
class IndicatorConfig:
    """Indicator window configuration."""

    ema_fast_len: int = 14
    ema_slow_len: int = 50
    atr_len: int = 14
    # extra bars on top of the longest window before signals are trusted
    warmup_margin: int = 5

    def __post_init__(self) -> None:
        for name in ("ema_fast_len", "ema_slow_len", "atr_len"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive")

    @property
    def warmup_bars(self) -> int:
        return max(self.ema_slow_len, self.atr_len) + self.warmup_margin

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "IndicatorConfig":
        mapping = {
            "EMA_FAST_LEN": "ema_fast_len",
            "EMA_SLOW_LEN": "ema_slow_len",
            "ATR_LEN": "atr_len",
            "WARMUP_MARGIN": "warmup_margin",
        }
        return _from_env(cls, mapping, env)


@dataclass(frozen=True)
class StrategyConfig:
    """Entry zone and exit profile."""

    # entry: price must sit zone_atr_mult * ATR below EMA(fast) ...
    zone_atr_mult: float = 0.5
    # ... while (emaFast - emaSlow) / emaSlow is at least this
    min_ema_slope: float = 0.03
    cooldown_bars: int = 3

    # exits (fractions of entry price). tp2/trail are disabled at 0.
    tp1_pct: float = 0.08
    tp2_pct: float = 0.0
    sl_pct: float = 0.04
    trail_pct: float = 0.0
    max_bars_in_position: int = 12

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "StrategyConfig":
        mapping = {
            "ZONE_ATR_MULT": "zone_atr_mult",
            "MIN_EMA_SLOPE": "min_ema_slope",
            "COOLDOWN_BARS": "cooldown_bars",
            "TP1_FIXED_PCT": "tp1_pct",
            "TP2_FIXED_PCT": "tp2_pct",
            "SL_MAX_PCT": "sl_pct",
            "TRAIL_FIXED_PCT": "trail_pct",
            "MAX_BARS_IN_POSITION": "max_bars_in_position",
        }
        return _from_env(cls, mapping, env)


@dataclass(frozen=True)
class CostConfig:
    """Venue costs."""

    # Aggregate round-trip fee (~4 bps through the aggregator), subtracted
    # once from the gross return of every closed trade.
    round_trip_fee_pct: float = 0.0004

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "CostConfig":
        return _from_env(cls, {"ROUND_TRIP_FEE_PCT": "round_trip_fee_pct"}, env)


@dataclass(frozen=True)
class VenueConfig:
    """Token identity and swap venue endpoints."""

    token_symbol: str = "SOL"
    token_mint: str = "So11111111111111111111111111111111111111112"
    token_decimals: int = 9
    usdc_mint: str = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"
    usdc_decimals: int = 6

    # quote and swap endpoints hang off this base
    api_url: str = "https://api.jup.ag/swap/v1"
    api_key: str = ""

    # raw token units quoted to sample the spot price
    price_sample_amount: int = 1_000_000
    price_sample_slippage_bps: int = 50
    max_slippage_bps: int = 75
    max_price_impact_pct: float = 1.0
    request_timeout_s: float = 10.0

    coingecko_id: str = "solana"

    @property
    def quote_url(self) -> str:
        return self.api_url.rstrip("/") + "/quote"

    @property
    def swap_url(self) -> str:
        return self.api_url.rstrip("/") + "/swap"

    @property
    def token_unit(self) -> int:
        return 10 ** self.token_decimals

    @property
    def usdc_unit(self) -> int:
        return 10 ** self.usdc_decimals

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "VenueConfig":
        mapping = {
            "TOKEN_SYMBOL": "token_symbol",
            "TOKEN_MINT": "token_mint",
            "TOKEN_DECIMALS": "token_decimals",
            "USDC_MINT": "usdc_mint",
            "JUPITER_API_URL": "api_url",
            "JUPITER_API_KEY": "api_key",
            "PRICE_PROBE_AMOUNT": "price_sample_amount",
            "MAX_SLIPPAGE_BPS": "max_slippage_bps",
            "MAX_PRICE_IMPACT_PCT": "max_price_impact_pct",
            "REQUEST_TIMEOUT_S": "request_timeout_s",
            "COINGECKO_ID": "coingecko_id",
        }
        return _from_env(cls, mapping, env)


@dataclass(frozen=True)
class RuntimeConfig:
    """Poll loop, execution sizing, persistence and HTTP settings."""

    token_symbol: str = "SOL"

    bar_ms: int = 3_600_000  # 1h bars
    sample_interval_ms: int = 15_000

    # fraction of the USDC balance committed per entry
    trade_pct_usdc: float = 0.30
    # notional balance assumed in shadow mode
    shadow_usdc: float = 100.0

    # Swap arming needs all three.
    enable_swaps: bool = False
    allow_mainnet_swaps: bool = False
    solana_cluster: str = "devnet"
    # empty: public endpoint of solana_cluster
    rpc_url: str = ""
    # secret key as a JSON byte array (solana-keygen format)
    keypair_json: str = field(default="", repr=False)
    # lamports kept back for fees when the traded token is native SOL
    min_sol_reserve_lamports: int = 20_000_000

    data_dir: str = "/data"
    max_saved_bars: int = 500
    bars_save_every: int = 10
    state_save_interval_s: int = 300

    min_backfill_bars: int = 60
    backfill_days: int = 14

    port: int = 8080
    admin_token: str = ""

    @property
    def swaps_armed(self) -> bool:
        return self.enable_swaps and self.allow_mainnet_swaps and self.solana_cluster == "mainnet-beta"

    @property
    def solana_rpc_url(self) -> str:
        if self.rpc_url:
            return self.rpc_url
        if self.solana_cluster == "mainnet-beta":
            return "https://api.mainnet-beta.solana.com"
        return f"https://api.{self.solana_cluster}.solana.com"

    @property
    def bot_name(self) -> str:
        return f"{self.token_symbol} Surfer"

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "RuntimeConfig":
        mapping = {
            "TOKEN_SYMBOL": "token_symbol",
            "BAR_MS": "bar_ms",
            "SAMPLE_INTERVAL_MS": "sample_interval_ms",
            "TRADE_PCT_USDC": "trade_pct_usdc",
            "SHADOW_USDC": "shadow_usdc",
            "ENABLE_SWAPS": "enable_swaps",
            "ALLOW_MAINNET_SWAPS": "allow_mainnet_swaps",
            "SOLANA_CLUSTER": "solana_cluster",
            "DATA_DIR": "data_dir",
            "MAX_SAVED_BARS": "max_saved_bars",
            "MIN_BACKFILL_BARS": "min_backfill_bars",
            "BACKFILL_DAYS": "backfill_days",
            "PORT": "port",
            "ADMIN_TOKEN": "admin_token",
            "SOLANA_RPC_URL": "rpc_url",
            "AGENT_KEYPAIR_JSON": "keypair_json",
            "MIN_SOL_RESERVE_LAMPORTS": "min_sol_reserve_lamports",
        }
        return _from_env(cls, mapping, env)


def describe_config(
    ind_cfg: IndicatorConfig,
    strat_cfg: StrategyConfig,
    venue_cfg: VenueConfig,
    rt_cfg: RuntimeConfig,
) -> list[str]:
    """Human-readable configuration summary, one line per knob."""

    def pct(x: float) -> str:
        return f"{x * 100:.1f}%" if x > 0 else "disabled"

    return [
        f"{rt_cfg.bot_name} configuration",
        f"Token:     {venue_cfg.token_symbol} ({venue_cfg.token_mint[:8]}...) decimals={venue_cfg.token_decimals}",
        f"Bar size:  {rt_cfg.bar_ms // 60_000}m, poll every {rt_cfg.sample_interval_ms / 1000:.0f}s",
        f"EMA:       {ind_cfg.ema_fast_len}/{ind_cfg.ema_slow_len}  ATR: {ind_cfg.atr_len}  warmup: {ind_cfg.warmup_bars} bars",
        f"Zone:      {strat_cfg.zone_atr_mult} ATR  slope min: {strat_cfg.min_ema_slope}",
        f"TP1: {pct(strat_cfg.tp1_pct)}  TP2: {pct(strat_cfg.tp2_pct)}  SL: {pct(strat_cfg.sl_pct)}  Trail: {pct(strat_cfg.trail_pct)}",
        f"Max bars:  {strat_cfg.max_bars_in_position}  cooldown: {strat_cfg.cooldown_bars} bars",
        f"Size:      {rt_cfg.trade_pct_usdc * 100:.0f}% of USDC  slippage: {venue_cfg.max_slippage_bps} bps",
        f"Cluster:   {rt_cfg.solana_cluster}  swaps {'ARMED' if rt_cfg.swaps_armed else 'DISARMED'}",
        f"Jupiter:   {venue_cfg.api_url}",
        f"API key:   {'set' if venue_cfg.api_key else 'not set'}",
        f"Wallet:    {'configured' if rt_cfg.keypair_json else 'none (shadow)'}  RPC: {'custom' if rt_cfg.rpc_url else rt_cfg.solana_rpc_url}",
    ]

"""Run the live bot: poll loop in a background thread, status API in the foreground.

All settings come from the environment (see ``dip_surfer.config``).

Example:
    DATA_DIR=./data TOKEN_SYMBOL=SOL COINGECKO_ID=solana AGENT_KEYPAIR_JSON="$(cat id.json)" \
      python -m scripts.run_live --log-level INFO
"""

from __future__ import annotations

import argparse
import logging
import threading

import uvicorn

from dip_surfer.api import create_app
from dip_surfer.config import (
    CostConfig,
    IndicatorConfig,
    RuntimeConfig,
    StrategyConfig,
    VenueConfig,
    describe_config,
)
from dip_surfer.data_provider import CoinGeckoProvider, fetch_backfill
from dip_surfer.engine import SurferEngine
from dip_surfer.runtime import SurferRuntime
from dip_surfer.state_store import JsonStateStore
from dip_surfer.venue import JupiterClient
from dip_surfer.wallet import SolanaWallet

logger = logging.getLogger("dip_surfer.live")


def main() -> None:
    p = argparse.ArgumentParser()
    p.add_argument("--host", type=str, default="0.0.0.0")
    p.add_argument("--log-level", type=str, default="INFO")
    args = p.parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    ind_cfg = IndicatorConfig.from_env()
    strat_cfg = StrategyConfig.from_env()
    cost_cfg = CostConfig.from_env()
    venue_cfg = VenueConfig.from_env()
    rt_cfg = RuntimeConfig.from_env()
    for line in describe_config(ind_cfg, strat_cfg, venue_cfg, rt_cfg):
        logger.info(line)

    engine = SurferEngine(ind_cfg, strat_cfg, cost_cfg, bar_ms=rt_cfg.bar_ms, symbol=venue_cfg.token_symbol)
    provider = CoinGeckoProvider()
    runtime = SurferRuntime(
        engine=engine,
        venue=JupiterClient(venue_cfg),
        store=JsonStateStore(rt_cfg.data_dir, venue_cfg.token_symbol),
        rt_cfg=rt_cfg,
        # None without AGENT_KEYPAIR_JSON: shadow mode
        wallet=SolanaWallet.from_config(venue_cfg, rt_cfg),
        backfill=lambda: fetch_backfill(lambda: provider.fetch(venue_cfg.coingecko_id, rt_cfg.backfill_days)),
    )
    runtime.initialise()

    stop = threading.Event()
    loop = threading.Thread(target=runtime.run_forever, args=(stop,), name="poll-loop", daemon=True)
    loop.start()
    try:
        uvicorn.run(create_app(runtime), host=args.host, port=rt_cfg.port, log_level=args.log_level.lower())
    finally:
        stop.set()
        loop.join(timeout=5)
        runtime.persist()


if __name__ == "__main__":
    main()

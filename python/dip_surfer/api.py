"""FastAPI status/admin app for a running ``SurferRuntime``.

Endpoints:
- GET  /, /health   full runtime + engine state
- GET  /trades      closed trade log
- GET  /metrics     compact summary
- POST /admin/save  force a state save
- POST /admin/close force-close the open position

Admin endpoints require the configured admin token (``x-admin-token``
header or ``token`` query parameter) when one is set.
"""

from __future__ import annotations

import logging
from dataclasses import asdict
from typing import Optional

from fastapi import FastAPI, Header, HTTPException, Query

from .runtime import SurferRuntime

logger = logging.getLogger(__name__)


def create_app(runtime: SurferRuntime) -> FastAPI:
    app = FastAPI(title=runtime.cfg.bot_name)

    def _require_admin(header_token: Optional[str], query_token: Optional[str]) -> None:
        expected = runtime.cfg.admin_token
        if not expected:
            return
        if (header_token or query_token) != expected:
            raise HTTPException(status_code=403, detail="unauthorized")

    @app.get("/")
    @app.get("/health")
    def health() -> dict:
        return runtime.health()

    @app.get("/trades")
    def trades() -> dict:
        records = runtime.store.load_trades()
        return {"count": len(records), "trades": [asdict(t) for t in records]}

    @app.get("/metrics")
    def metrics() -> dict:
        with runtime.lock:
            state = runtime.engine.get_state()
        return {
            "bot": runtime.cfg.bot_name,
            "price": runtime.last_price,
            "signal": runtime.last_signal,
            "bars": state["bars_loaded"],
            **state["stats"],
            "position": "open" if state["position"] else "none",
        }

    @app.post("/admin/save")
    def admin_save(
        x_admin_token: Optional[str] = Header(default=None),
        token: Optional[str] = Query(default=None),
    ) -> dict:
        _require_admin(x_admin_token, token)
        runtime.persist()
        return {"saved": True}

    @app.post("/admin/close")
    def admin_close(
        x_admin_token: Optional[str] = Header(default=None),
        token: Optional[str] = Query(default=None),
    ) -> dict:
        _require_admin(x_admin_token, token)
        if runtime.engine.position is None:
            return {"message": "no position to close"}
        logger.info("Admin force-close requested")
        closed = runtime.force_close()
        with runtime.lock:
            state = runtime.engine.get_state()
        return {"message": "position closed" if closed else "close failed", **state}

    return app

"""Jupiter swap venue: spot price, buy/sell quotes and swap submission.

Signing and sending the swap transaction is delegated to a ``Wallet``
supplied by the deployment; this module never touches key material.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional, Protocol

import requests

from .config import VenueConfig
from .types import QuoteResult

logger = logging.getLogger(__name__)


class VenueError(RuntimeError):
    """Any failure talking to the venue or the chain."""


class Wallet(Protocol):
    public_key: str

    def usdc_balance(self) -> float:
        ...

    def token_balance(self) -> float:
        ...

    def sign_and_send(self, swap_tx_b64: str) -> str:
        """Sign the base64 transaction, send it, wait for confirmation.

        Returns the transaction signature; raises VenueError on failure.
        """
        ...


class JupiterClient:
    def __init__(self, cfg: VenueConfig, session: Optional[requests.Session] = None):
        self.cfg = cfg
        self.session = session or requests.Session()
        if cfg.api_key:
            self.session.headers.update({"x-api-key": cfg.api_key})

    def _get_quote(self, input_mint: str, output_mint: str, amount: int, slippage_bps: int) -> Mapping[str, Any]:
        params = {
            "inputMint": input_mint,
            "outputMint": output_mint,
            "amount": str(int(amount)),
            "slippageBps": str(int(slippage_bps)),
        }
        try:
            r = self.session.get(self.cfg.quote_url, params=params, timeout=self.cfg.request_timeout_s)
        except requests.RequestException as exc:
            raise VenueError(f"quote request failed: {exc}") from exc
        if not r.ok:
            raise VenueError(f"quote failed: {r.status_code} {r.reason}")
        try:
            data = r.json()
            int(data["inAmount"])
            int(data["outAmount"])
        except (ValueError, KeyError, TypeError) as exc:
            raise VenueError(f"malformed quote payload: {exc}") from exc
        return data

    def get_token_price(self) -> float:
        """USDC per token, from a small TOKEN -> USDC sample quote."""
        data = self._get_quote(
            self.cfg.token_mint,
            self.cfg.usdc_mint,
            self.cfg.price_sample_amount,
            self.cfg.price_sample_slippage_bps,
        )
        in_amt = int(data["inAmount"]) / self.cfg.token_unit
        out_amt = int(data["outAmount"]) / self.cfg.usdc_unit
        if in_amt <= 0 or out_amt <= 0:
            raise VenueError(f"non-positive sample quote: in={in_amt} out={out_amt}")
        return out_amt / in_amt

    def get_buy_quote(self, usdc_amount: float) -> QuoteResult:
        """Quote USDC -> TOKEN."""
        raw_usdc = int(usdc_amount * self.cfg.usdc_unit)
        data = self._get_quote(self.cfg.usdc_mint, self.cfg.token_mint, raw_usdc, self.cfg.max_slippage_bps)
        tokens_out = int(data["outAmount"]) / self.cfg.token_unit
        if tokens_out <= 0:
            raise VenueError("buy quote returned zero output")
        return QuoteResult(
            price_usdc_per_token=usdc_amount / tokens_out,
            in_amount=int(data["inAmount"]),
            out_amount=int(data["outAmount"]),
            price_impact_pct=float(data.get("priceImpactPct") or 0.0),
            raw=data,
        )

    def get_sell_quote(self, token_amount: float) -> QuoteResult:
        """Quote TOKEN -> USDC."""
        if token_amount <= 0:
            raise ValueError("token_amount must be positive")
        raw_token = int(token_amount * self.cfg.token_unit)
        data = self._get_quote(self.cfg.token_mint, self.cfg.usdc_mint, raw_token, self.cfg.max_slippage_bps)
        usdc_out = int(data["outAmount"]) / self.cfg.usdc_unit
        return QuoteResult(
            price_usdc_per_token=usdc_out / token_amount,
            in_amount=int(data["inAmount"]),
            out_amount=int(data["outAmount"]),
            price_impact_pct=float(data.get("priceImpactPct") or 0.0),
            raw=data,
        )

    def get_swap_transaction(self, quote: QuoteResult, user_public_key: str) -> str:
        """Serialized (base64) swap transaction for the quote, ready to sign."""
        body = {
            "quoteResponse": dict(quote.raw),
            "userPublicKey": user_public_key,
            "wrapAndUnwrapSol": True,
            "dynamicComputeUnitLimit": True,
            "prioritizationFeeLamports": "auto",
        }
        try:
            r = self.session.post(self.cfg.swap_url, json=body, timeout=self.cfg.request_timeout_s)
        except requests.RequestException as exc:
            raise VenueError(f"swap request failed: {exc}") from exc
        if not r.ok:
            raise VenueError(f"swap failed: {r.status_code} {r.text}")
        try:
            return str(r.json()["swapTransaction"])
        except (ValueError, KeyError) as exc:
            raise VenueError(f"malformed swap payload: {exc}") from exc

    def submit_trade(self, quote: QuoteResult, wallet: Wallet) -> str:
        """Build, sign and send the swap for ``quote``. Returns the signature."""
        swap_tx = self.get_swap_transaction(quote, wallet.public_key)
        sig = wallet.sign_and_send(swap_tx)
        logger.info("Swap confirmed: %s", sig)
        return sig

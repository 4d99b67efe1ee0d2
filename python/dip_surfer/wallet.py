"""Solana keypair wallet for live swaps.

Reads balances over JSON-RPC and signs, sends and confirms the swap
transactions the venue builds. Implements ``venue.Wallet``.
"""

from __future__ import annotations

import base64
import json
import logging
from typing import Optional

from solana.exceptions import SolanaRpcException
from solana.rpc.api import Client
from solana.rpc.commitment import Confirmed
from solana.rpc.core import RPCException, UnconfirmedTxError
from solana.rpc.types import TokenAccountOpts, TxOpts
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.transaction import VersionedTransaction

from .config import RuntimeConfig, VenueConfig
from .venue import VenueError

logger = logging.getLogger(__name__)

NATIVE_SOL_MINT = "So11111111111111111111111111111111111111112"
LAMPORTS_PER_SOL = 1_000_000_000

_RPC_ERRORS = (RPCException, SolanaRpcException, UnconfirmedTxError)


def load_keypair(keypair_json: str) -> Keypair:
    """Parse a solana-keygen style JSON byte array."""
    try:
        return Keypair.from_bytes(bytes(json.loads(keypair_json)))
    except (TypeError, ValueError) as exc:
        raise ValueError(f"failed to parse AGENT_KEYPAIR_JSON: {exc}") from exc


class SolanaWallet:
    def __init__(
        self,
        keypair: Keypair,
        venue_cfg: VenueConfig,
        client: Client,
        sol_reserve_lamports: int = 20_000_000,
    ):
        self.keypair = keypair
        self.public_key = str(keypair.pubkey())
        self.cfg = venue_cfg
        self.client = client
        self.sol_reserve_lamports = int(sol_reserve_lamports)

    @classmethod
    def from_config(cls, venue_cfg: VenueConfig, rt_cfg: RuntimeConfig) -> Optional["SolanaWallet"]:
        """Wallet from ``AGENT_KEYPAIR_JSON``, or None when no key is configured."""
        if not rt_cfg.keypair_json:
            return None
        keypair = load_keypair(rt_cfg.keypair_json)
        client = Client(rt_cfg.solana_rpc_url, commitment=Confirmed, timeout=venue_cfg.request_timeout_s)
        logger.info("Wallet: %s", keypair.pubkey())
        return cls(keypair, venue_cfg, client, rt_cfg.min_sol_reserve_lamports)

    def _token_account_balance(self, mint: str) -> float:
        try:
            resp = self.client.get_token_accounts_by_owner_json_parsed(
                self.keypair.pubkey(),
                TokenAccountOpts(mint=Pubkey.from_string(mint)),
            )
        except _RPC_ERRORS as exc:
            raise VenueError(f"balance lookup for {mint} failed: {exc}") from exc
        if not resp.value:
            return 0.0
        amount = resp.value[0].account.data.parsed["info"]["tokenAmount"]
        return float(amount.get("uiAmount") or 0.0)

    def usdc_balance(self) -> float:
        return self._token_account_balance(self.cfg.usdc_mint)

    def token_balance(self) -> float:
        if self.cfg.token_mint != NATIVE_SOL_MINT:
            return self._token_account_balance(self.cfg.token_mint)
        # swaps wrap and unwrap SOL, so the native balance is what can be sold
        try:
            lamports = self.client.get_balance(self.keypair.pubkey()).value
        except _RPC_ERRORS as exc:
            raise VenueError(f"SOL balance lookup failed: {exc}") from exc
        return max(0, lamports - self.sol_reserve_lamports) / LAMPORTS_PER_SOL

    def sign_and_send(self, swap_tx_b64: str) -> str:
        try:
            unsigned = VersionedTransaction.from_bytes(base64.b64decode(swap_tx_b64))
            signed = VersionedTransaction(unsigned.message, [self.keypair])
        except ValueError as exc:
            raise VenueError(f"cannot sign swap transaction: {exc}") from exc

        try:
            sig = self.client.send_raw_transaction(
                bytes(signed),
                opts=TxOpts(skip_preflight=True, max_retries=3),
            ).value
            logger.info("Tx sent: %s", sig)
            conf = self.client.confirm_transaction(sig, commitment=Confirmed)
        except _RPC_ERRORS as exc:
            raise VenueError(f"swap transaction failed: {exc}") from exc

        status = conf.value[0] if conf.value else None
        if status is not None and status.err is not None:
            raise VenueError(f"swap transaction {sig} failed: {status.err}")
        return str(sig)

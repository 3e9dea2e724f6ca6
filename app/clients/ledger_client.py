"""Solana JSON-RPC client for the custodial account.

Provides balance queries, single-instruction SOL transfers and confirmation
polling. Read-only calls retry on connection failures (tenacity);
``sendTransaction`` is attempted exactly once so a retry can never produce a
second transfer.
"""

from __future__ import annotations

import asyncio
import base64
import itertools
import time
from typing import Any

import base58
import httpx
import structlog
from solders.hash import Hash
from solders.keypair import Keypair
from solders.message import Message
from solders.pubkey import Pubkey
from solders.system_program import TransferParams, transfer
from solders.transaction import Transaction
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from app.core.config import LedgerConfig
from app.core.errors import LedgerError
from app.core.metrics import escrow_ledger_rpc_failures_total, escrow_ledger_rpc_latency_seconds
from app.core.tracing import get_tracing_headers

logger = structlog.get_logger(__name__)

COMMITMENT_RANK: dict[str, int] = {"processed": 0, "confirmed": 1, "finalized": 2}
_KEYPAIR_LENGTH = 64


def load_custodial_keypair(secret: str) -> Keypair:
    """Decode a base58 64-byte secret into a keypair.

    Raises:
        ValueError: if the secret is not valid base58 or has the wrong length.
    """
    raw = base58.b58decode(secret.strip())
    if len(raw) != _KEYPAIR_LENGTH:
        raise ValueError(f"Expected a {_KEYPAIR_LENGTH}-byte keypair, got {len(raw)} bytes")
    return Keypair.from_bytes(raw)


def build_transfer_transaction(
    payer: Keypair,
    recipient: Pubkey,
    lamports: int,
    blockhash: Hash,
) -> Transaction:
    """Signed single-instruction system transfer."""
    instruction = transfer(
        TransferParams(from_pubkey=payer.pubkey(), to_pubkey=recipient, lamports=lamports)
    )
    message = Message.new_with_blockhash([instruction], payer.pubkey(), blockhash)
    return Transaction([payer], message, blockhash)


class LedgerClient:
    """Async JSON-RPC client for a Solana cluster."""

    def __init__(self, config: LedgerConfig) -> None:
        self._rpc_url = config.rpc_url
        self._timeout = config.request_timeout_seconds
        self._commitment = config.commitment
        self._confirm_timeout = config.confirm_timeout_seconds
        self._poll_interval = config.confirm_poll_interval_seconds
        self._client: httpx.AsyncClient | None = None
        self._ids = itertools.count(1)

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def get_balance(self, pubkey: Pubkey) -> int:
        """Balance in lamports at the configured commitment."""
        result = await self._rpc("getBalance", [str(pubkey), {"commitment": self._commitment}])
        return int(result["value"])

    async def get_latest_blockhash(self) -> Hash:
        result = await self._rpc("getLatestBlockhash", [{"commitment": self._commitment}])
        return Hash.from_string(result["value"]["blockhash"])

    async def send_transaction(self, transaction: Transaction) -> str:
        """Submit a signed transaction once; returns its signature."""
        encoded = base64.b64encode(bytes(transaction)).decode("ascii")
        result = await self._rpc(
            "sendTransaction",
            [encoded, {"encoding": "base64", "preflightCommitment": self._commitment}],
            retryable=False,
        )
        return str(result)

    async def get_signature_status(self, signature: str) -> dict[str, Any] | None:
        result = await self._rpc(
            "getSignatureStatuses",
            [[signature], {"searchTransactionHistory": False}],
        )
        statuses = result.get("value") or [None]
        return statuses[0]

    async def confirm_transaction(self, signature: str) -> None:
        """Poll until the signature reaches the configured commitment.

        Raises:
            LedgerError: on an on-chain error or when the wait times out.
        """
        target = COMMITMENT_RANK.get(self._commitment, COMMITMENT_RANK["confirmed"])
        try:
            async with asyncio.timeout(self._confirm_timeout):
                while True:
                    status = await self.get_signature_status(signature)
                    if status is not None:
                        if status.get("err") is not None:
                            raise LedgerError(
                                f"Transaction failed on-chain: {status['err']}",
                                details={"signature": signature},
                            )
                        level = COMMITMENT_RANK.get(status.get("confirmationStatus") or "", -1)
                        if level >= target:
                            return
                    await asyncio.sleep(self._poll_interval)
        except TimeoutError as exc:
            raise LedgerError(
                f"Transaction was not {self._commitment} within {self._confirm_timeout:g}s",
                details={"signature": signature},
            ) from exc

    async def transfer(self, payer: Keypair, recipient: Pubkey, lamports: int) -> str:
        """Build, sign, submit and confirm a transfer; returns the signature."""
        blockhash = await self.get_latest_blockhash()
        transaction = build_transfer_transaction(payer, recipient, lamports, blockhash)
        signature = await self.send_transaction(transaction)
        logger.info("Transfer submitted", signature=signature, lamports=lamports)
        await self.confirm_transaction(signature)
        return signature

    async def health_check(self) -> bool:
        """True if the RPC node reports itself healthy."""
        try:
            return await self._rpc("getHealth", []) == "ok"
        except LedgerError:
            return False

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _rpc(self, method: str, params: list[Any], *, retryable: bool = True) -> Any:
        """Make one JSON-RPC call with metrics and error normalization."""
        client = await self._get_client()
        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
        headers = get_tracing_headers()
        started = time.perf_counter()

        try:
            if retryable:
                response = await self._post_with_retry(client, payload, headers)
            else:
                response = await client.post(self._rpc_url, json=payload, headers=headers)
            response.raise_for_status()
            body = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            escrow_ledger_rpc_failures_total.labels(method=method).inc()
            logger.error("Ledger RPC transport failure", method=method, error=str(exc))
            raise LedgerError(
                f"Ledger RPC {method} failed: {type(exc).__name__}: {exc}",
                details={"method": method},
            ) from exc
        finally:
            escrow_ledger_rpc_latency_seconds.labels(method=method).observe(
                time.perf_counter() - started
            )

        if not isinstance(body, dict):
            escrow_ledger_rpc_failures_total.labels(method=method).inc()
            raise LedgerError(f"Ledger RPC {method} returned a malformed body")

        if error := body.get("error"):
            escrow_ledger_rpc_failures_total.labels(method=method).inc()
            message = error.get("message") if isinstance(error, dict) else str(error)
            logger.error("Ledger RPC error", method=method, error=message)
            raise LedgerError(
                f"Ledger RPC {method} error: {message}",
                details={"method": method, "rpc_error": error},
            )

        return body.get("result")

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=5),
        retry=retry_if_exception_type((httpx.ConnectError, httpx.ConnectTimeout)),
        reraise=True,
    )
    async def _post_with_retry(
        self,
        client: httpx.AsyncClient,
        payload: dict[str, Any],
        headers: dict[str, str],
    ) -> httpx.Response:
        """POST with tenacity retry on connection failures."""
        return await client.post(self._rpc_url, json=payload, headers=headers)

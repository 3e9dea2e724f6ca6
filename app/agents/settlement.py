"""Settlement authority - conditional, balance-guarded payment release.

The only component with an irreversible external effect. ``settle`` always
returns a terminal outcome; ledger problems become ``FAILED`` and never
discard the verdict they were settling.
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import Awaitable, Callable

import structlog
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from app.clients.ledger_client import LedgerClient
from app.core.config import LAMPORTS_PER_SOL, LedgerConfig
from app.core.errors import InsufficientFundsError, LedgerError
from app.core.metrics import escrow_settlements_total
from app.schemas.v1.audit import SettlementOutcome, Verdict
from app.schemas.v1.common import PaymentStatus, VerdictStatus

logger = structlog.get_logger(__name__)


def ephemeral_recipient() -> Pubkey:
    """Freshly generated recipient; stands in for a seller address."""
    return Keypair().pubkey()


class BalanceReservations:
    """In-process ledger of transfers that are checked but not yet confirmed.

    Concurrent requests subtract each other's pending amounts from the
    observed balance, so two checks cannot both spend the same lamports.
    Transfers from other processes are still arbitrated only by the network.
    """

    def __init__(self) -> None:
        self._pending: dict[str, int] = {}
        self._lock = asyncio.Lock()

    @property
    def pending_total(self) -> int:
        return sum(self._pending.values())

    async def reserve(
        self,
        key: str,
        lamports: int,
        required: int,
        read_balance: Callable[[], Awaitable[int]],
    ) -> int:
        """Atomically read the balance and reserve ``lamports`` under ``key``.

        Returns the balance observed on-chain.

        Raises:
            InsufficientFundsError: when balance minus pending reservations
                is below ``required``.
        """
        async with self._lock:
            balance = await read_balance()
            available = balance - self.pending_total
            if available < required:
                raise InsufficientFundsError(
                    "Insufficient funds in vault wallet",
                    balance_lamports=balance,
                    required_lamports=required,
                    details={"pending_lamports": self.pending_total},
                )
            self._pending[key] = lamports
            return balance

    async def release(self, key: str) -> None:
        async with self._lock:
            self._pending.pop(key, None)


class SettlementAuthority:
    """Releases the fixed payment for an authorized verdict."""

    def __init__(
        self,
        ledger: LedgerClient,
        custodian: Keypair,
        config: LedgerConfig,
        reservations: BalanceReservations | None = None,
        recipient_factory: Callable[[], Pubkey] = ephemeral_recipient,
    ) -> None:
        self._ledger = ledger
        self._custodian = custodian
        self._config = config
        self._reservations = reservations or BalanceReservations()
        self._recipient_factory = recipient_factory

    @property
    def custodian_pubkey(self) -> Pubkey:
        return self._custodian.pubkey()

    @property
    def transfer_lamports(self) -> int:
        return self._config.transfer_amount_lamports

    async def settle(self, verdict: Verdict, request_id: str) -> SettlementOutcome:
        if not verdict.payment_authorized:
            status = (
                PaymentStatus.FROZEN
                if verdict.status == VerdictStatus.CRITICAL
                else PaymentStatus.SKIPPED
            )
            logger.info("Payment not authorized based on analysis", payment_status=status.value)
            escrow_settlements_total.labels(status=status.value).inc()
            return SettlementOutcome(status=status)

        amount = self.transfer_lamports
        required = amount + self._config.fee_reserve_lamports
        recipient = self._recipient_factory()
        logger.info(
            "Payment authorized; processing transfer",
            request_id=request_id,
            recipient=str(recipient),
            lamports=amount,
        )

        # Client-supplied request ids may repeat; reservations need a unique key.
        reservation = uuid.uuid4().hex
        try:
            balance = await self._reservations.reserve(
                reservation,
                amount,
                required,
                lambda: self._ledger.get_balance(self.custodian_pubkey),
            )
            logger.info("Vault balance", balance_sol=balance / LAMPORTS_PER_SOL)
            try:
                signature = await self._ledger.transfer(self._custodian, recipient, amount)
            finally:
                await self._reservations.release(reservation)
        except LedgerError as exc:
            return self._failed(exc.message, exc.details)
        except Exception as exc:
            logger.exception("Unexpected settlement failure")
            return self._failed(f"{type(exc).__name__}: {exc}", None)

        explorer = self._config.explorer_url(signature)
        logger.info("Payment successful", signature=signature, explorer_url=explorer)
        escrow_settlements_total.labels(status=PaymentStatus.PAID.value).inc()
        return SettlementOutcome(
            status=PaymentStatus.PAID,
            transaction_reference=signature,
            explorer_link=explorer,
        )

    def _failed(self, reason: str, details: dict | None) -> SettlementOutcome:
        logger.error("Blockchain settlement failed", reason=reason, details=details or {})
        escrow_settlements_total.labels(status=PaymentStatus.FAILED.value).inc()
        return SettlementOutcome(status=PaymentStatus.FAILED, failure_reason=reason)

"""Audit service - orchestrates evidence, verdict and settlement for one request.

Stages: RECEIVED -> VALIDATED -> VERDICT_OBTAINED -> SETTLED -> CLEANED_UP ->
RESPONDED, with ERRORED reachable from any stage. Staged evidence is purged on
every path.
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass
from enum import StrEnum

import structlog
from opentelemetry import trace

from app.agents.evidence_store import EvidenceSet, EvidenceStore
from app.agents.request_builder import build_verdict_request
from app.agents.settlement import SettlementAuthority
from app.agents.verdict_core import FallbackVerdict, apply_authorization_guard
from app.agents.verdict_interpreter import VerdictInterpreter
from app.core.config import PolicyConfig
from app.core.errors import EscrowError, InternalError, MissingEvidenceError
from app.core.metrics import escrow_audit_latency_seconds, escrow_audit_requests_total
from app.core.tracing import get_request_id
from app.schemas.v1.audit import AuditResponse
from app.schemas.v1.common import EvidenceRole, PaymentStatus
from app.utils.clock import utc_timestamp
from app.utils.idempotency import IdempotencyCache, compute_audit_key

logger = structlog.get_logger(__name__)
tracer = trace.get_tracer(__name__)


class AuditStage(StrEnum):
    RECEIVED = "RECEIVED"
    VALIDATED = "VALIDATED"
    VERDICT_OBTAINED = "VERDICT_OBTAINED"
    SETTLED = "SETTLED"
    CLEANED_UP = "CLEANED_UP"
    RESPONDED = "RESPONDED"
    ERRORED = "ERRORED"


@dataclass(frozen=True, slots=True)
class EvidenceUpload:
    """One uploaded file as received at the HTTP boundary."""

    role: EvidenceRole
    filename: str
    media_type: str
    data: bytes


class AuditService:
    """Runs the verdict-to-payment pipeline."""

    def __init__(
        self,
        store: EvidenceStore,
        interpreter: VerdictInterpreter,
        settlement: SettlementAuthority,
        policy: PolicyConfig,
        idempotency: IdempotencyCache | None = None,
        required_role: EvidenceRole = EvidenceRole.PRIMARY_VISUAL,
    ) -> None:
        self.store = store
        self.interpreter = interpreter
        self.settlement = settlement
        self.policy = policy
        self.idempotency = idempotency or IdempotencyCache(policy.idempotency_ttl_seconds)
        self.required_role = required_role

    async def run_audit(
        self,
        uploads: list[EvidenceUpload],
        idempotency_key: str | None = None,
    ) -> AuditResponse:
        request_id = get_request_id() or str(uuid.uuid4())
        cache_key = compute_audit_key(idempotency_key) if idempotency_key else None
        if cache_key is not None:
            cached = self.idempotency.begin(cache_key)
            if cached is not None:
                logger.info("Replaying audit for repeated Idempotency-Key")
                escrow_audit_requests_total.labels(outcome="replayed").inc()
                return cached

        started = time.perf_counter()
        try:
            response = await self._run(uploads, request_id)
        except BaseException:
            if cache_key is not None:
                self.idempotency.abandon(cache_key)
            raise
        finally:
            escrow_audit_latency_seconds.observe(time.perf_counter() - started)

        if cache_key is not None:
            self.idempotency.complete(cache_key, response)
        escrow_audit_requests_total.labels(outcome="responded").inc()
        return response

    async def _run(self, uploads: list[EvidenceUpload], request_id: str) -> AuditResponse:
        stage = AuditStage.RECEIVED
        evidence = EvidenceSet()
        logger.info(
            "Audit request received",
            uploads=[{"role": u.role.value, "filename": u.filename} for u in uploads],
        )

        try:
            with tracer.start_as_current_span("audit.run") as span:
                span.set_attribute("request_id", request_id)

                for upload in uploads:
                    evidence.add(
                        self.store.stage(upload.role, upload.data, upload.media_type, upload.filename)
                    )
                if self.required_role not in evidence:
                    raise MissingEvidenceError(
                        "No photo uploaded. Please upload a machine photo.",
                        details={"required_role": self.required_role.value},
                    )
                stage = self._advance(stage, AuditStage.VALIDATED)

                request = build_verdict_request(evidence, self.store.read_all)
                interpreted = await self.interpreter.interpret(request)
                verdict = interpreted.verdict
                if self.policy.enforce_authorization_guard:
                    verdict = apply_authorization_guard(verdict, self.policy.authorization_threshold)
                stage = self._advance(stage, AuditStage.VERDICT_OBTAINED)
                span.set_attribute("verdict_source", interpreted.source.value)
                span.set_attribute("status", verdict.status.value)

                outcome = await self.settlement.settle(verdict, request_id)
                if outcome.status == PaymentStatus.FAILED:
                    verdict = verdict.with_note(
                        f"Payment processing failed - {outcome.failure_reason}"
                    )
                stage = self._advance(stage, AuditStage.SETTLED)
                span.set_attribute("payment_status", outcome.status.value)
        except EscrowError:
            escrow_audit_requests_total.labels(outcome="rejected").inc()
            raise
        except Exception as exc:
            failed_at = stage
            stage = AuditStage.ERRORED
            logger.exception("Audit pipeline failed", stage=failed_at.value, error=str(exc))
            escrow_audit_requests_total.labels(outcome="errored").inc()
            raise InternalError(
                "Internal Server Error", details={"failed_after": failed_at.value}
            ) from exc
        finally:
            self.store.purge(evidence)
            if stage != AuditStage.ERRORED:
                stage = self._advance(stage, AuditStage.CLEANED_UP)

        response = AuditResponse(
            status=verdict.status,
            confidence=verdict.confidence,
            analysis=verdict.analysis,
            payment_authorized=verdict.payment_authorized,
            payment_status=outcome.status,
            tx_signature=outcome.transaction_reference,
            explorer_url=outcome.explorer_link,
            verdict_source=interpreted.source,
            fallback_reason=(
                interpreted.reason if isinstance(interpreted, FallbackVerdict) else None
            ),
            timestamp=utc_timestamp(),
        )
        self._advance(stage, AuditStage.RESPONDED)
        logger.info(
            "Audit completed",
            status=response.status.value,
            payment_status=response.payment_status.value,
            verdict_source=response.verdict_source.value,
        )
        return response

    @staticmethod
    def _advance(current: AuditStage, target: AuditStage) -> AuditStage:
        logger.debug("Audit stage transition", from_stage=current.value, to_stage=target.value)
        return target

"""Common schemas: enums and error responses."""

from enum import StrEnum

from pydantic import BaseModel


class EvidenceRole(StrEnum):
    PRIMARY_VISUAL = "primary-visual"
    SECONDARY_AUDIO = "secondary-audio"
    BENCHMARK_REPORT = "benchmark-report"


# Stable order in which evidence parts are attached to an inference request.
EVIDENCE_ROLE_ORDER: tuple[EvidenceRole, ...] = (
    EvidenceRole.PRIMARY_VISUAL,
    EvidenceRole.SECONDARY_AUDIO,
    EvidenceRole.BENCHMARK_REPORT,
)


class VerdictStatus(StrEnum):
    HEALTHY = "HEALTHY"
    CRITICAL = "CRITICAL"


class PaymentStatus(StrEnum):
    SKIPPED = "SKIPPED"
    PAID = "PAID"
    FAILED = "FAILED"
    FROZEN = "FROZEN"


class VerdictSource(StrEnum):
    INFERENCE = "inference"
    FALLBACK = "fallback"


class ErrorResponse(BaseModel):
    error: str
    message: str | None = None
    timestamp: str | None = None

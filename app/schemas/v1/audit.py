"""Audit verdict, settlement and response envelope schemas."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.schemas.v1.common import PaymentStatus, VerdictSource, VerdictStatus


class Verdict(BaseModel):
    """Health/payment decision for one set of evidence.

    Accepts both ``paymentAuthorized`` (wire form) and ``payment_authorized``.
    In benchmark delta mode the inference service reports its explanation
    under ``deviation_detected``; that is folded into ``analysis``.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    status: VerdictStatus
    confidence: int = Field(ge=0, le=100)
    analysis: str
    payment_authorized: bool = Field(alias="paymentAuthorized")

    @field_validator("status", mode="before")
    @classmethod
    def normalize_status(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip().upper()
        return v

    @field_validator("confidence", mode="before")
    @classmethod
    def coerce_confidence(cls, v: Any) -> Any:
        if isinstance(v, bool):
            raise ValueError("confidence must be numeric")
        if isinstance(v, str):
            v = v.strip().rstrip("%")
        try:
            return int(round(float(v)))
        except (TypeError, ValueError, OverflowError):
            return v

    @field_validator("payment_authorized", mode="before")
    @classmethod
    def strict_bool(cls, v: Any) -> Any:
        # "false" must never coerce into an authorization.
        if not isinstance(v, bool):
            raise ValueError("paymentAuthorized must be a JSON boolean")
        return v

    @classmethod
    def from_reply(cls, payload: dict[str, Any]) -> Verdict:
        """Build a verdict from a parsed inference reply."""
        data = dict(payload)
        if "analysis" not in data and "deviation_detected" in data:
            deviation = data["deviation_detected"]
            data["analysis"] = deviation if isinstance(deviation, str) else str(deviation)
        return cls.model_validate(data)

    def with_note(self, note: str) -> Verdict:
        return self.model_copy(update={"analysis": f"{self.analysis} (Note: {note})"})


class SettlementOutcome(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: PaymentStatus
    transaction_reference: str | None = None
    explorer_link: str | None = None
    failure_reason: str | None = None


class AuditResponse(BaseModel):
    """Externally observed result of one audit run."""

    model_config = ConfigDict(populate_by_name=True)

    status: VerdictStatus
    confidence: int
    analysis: str
    payment_authorized: bool = Field(alias="paymentAuthorized")
    payment_status: PaymentStatus = Field(alias="paymentStatus")
    tx_signature: str | None = Field(default=None, alias="txSignature")
    explorer_url: str | None = Field(default=None, alias="explorerUrl")
    verdict_source: VerdictSource = Field(alias="verdictSource")
    fallback_reason: str | None = Field(default=None, alias="fallbackReason")
    timestamp: str

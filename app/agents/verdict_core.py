"""Pure verdict logic: reply parsing, offline fallback, authorization guard.

No I/O here; ``verdict_interpreter`` wires these to the inference call.
"""

from __future__ import annotations

import json
import re
from collections.abc import Iterable
from dataclasses import dataclass
from typing import ClassVar

from pydantic import ValidationError as PydanticValidationError

from app.core.config import FallbackMode
from app.schemas.v1.audit import Verdict
from app.schemas.v1.common import VerdictSource, VerdictStatus

OFFLINE_TAG = "[OFFLINE FALLBACK]"

_FENCE_RE = re.compile(r"```(?:json)?", flags=re.IGNORECASE)

DEMO_PASS = Verdict(
    status=VerdictStatus.HEALTHY,
    confidence=96,
    analysis=(
        f"{OFFLINE_TAG} DEMO VERIFIED: Machine matches maintenance records. No visible rust, "
        "leaks, or wear detected on the primary components. "
        "(Backup: Filename trigger 'Healthy')"
    ),
    payment_authorized=True,
)

DEMO_FAIL = Verdict(
    status=VerdictStatus.CRITICAL,
    confidence=89,
    analysis=(
        f"{OFFLINE_TAG} DEMO ALERT: Safety hazard detected. Severe corrosion visible on the "
        "hydraulic casing. Immediate maintenance required. Payment suspended. "
        "(Backup: Filename trigger 'Fail')"
    ),
    payment_authorized=False,
)

GENERIC_DEGRADED = Verdict(
    status=VerdictStatus.HEALTHY,
    confidence=85,
    analysis=(
        f"{OFFLINE_TAG} Degraded mode: the inference service was unavailable, "
        "so a default healthy assessment was issued without inspecting the evidence."
    ),
    payment_authorized=True,
)


class VerdictParseError(ValueError):
    """The inference reply could not be turned into a verdict."""


@dataclass(frozen=True, slots=True)
class ParsedVerdict:
    verdict: Verdict
    source: ClassVar[VerdictSource] = VerdictSource.INFERENCE


@dataclass(frozen=True, slots=True)
class FallbackVerdict:
    verdict: Verdict
    reason: str
    source: ClassVar[VerdictSource] = VerdictSource.FALLBACK


InterpretedVerdict = ParsedVerdict | FallbackVerdict


def extract_json_span(raw: str) -> str:
    """Strip code fences, then slice from the first ``{`` to the last ``}``."""
    cleaned = _FENCE_RE.sub("", raw).strip()
    first = cleaned.find("{")
    last = cleaned.rfind("}")
    if first != -1 and last > first:
        cleaned = cleaned[first : last + 1]
    return cleaned


def parse_verdict(raw: str) -> Verdict:
    """Parse a free-form inference reply into a strict verdict.

    Raises:
        VerdictParseError: on non-JSON, non-object or incomplete replies.
    """
    candidate = extract_json_span(raw or "")
    try:
        payload = json.loads(candidate)
    except json.JSONDecodeError as exc:
        raise VerdictParseError(f"Reply is not valid JSON: {exc.msg}") from exc

    if not isinstance(payload, dict):
        raise VerdictParseError(f"Reply JSON is a {type(payload).__name__}, not an object")

    try:
        return Verdict.from_reply(payload)
    except PydanticValidationError as exc:
        fields = sorted({".".join(str(p) for p in err["loc"]) for err in exc.errors()})
        raise VerdictParseError(f"Reply is missing or has invalid fields: {fields}") from exc


def has_trigger_token(name: str | None, tokens: Iterable[str]) -> bool:
    lowered = (name or "").lower()
    return any(token in lowered for token in tokens)


def fallback_verdict(
    mode: FallbackMode,
    primary_name: str | None,
    trigger_tokens: Iterable[str],
) -> Verdict:
    """Deterministic offline verdict used when inference cannot complete."""
    if mode == FallbackMode.GENERIC:
        return GENERIC_DEGRADED
    if has_trigger_token(primary_name, trigger_tokens):
        return DEMO_FAIL
    return DEMO_PASS


def apply_authorization_guard(verdict: Verdict, threshold: int) -> Verdict:
    """Withdraw authorization the status/confidence pair does not support."""
    if not verdict.payment_authorized:
        return verdict
    if verdict.status == VerdictStatus.HEALTHY and verdict.confidence > threshold:
        return verdict
    guarded = verdict.with_note(
        f"payment authorization withdrawn - requires HEALTHY status and confidence above "
        f"{threshold}, got {verdict.status.value} at {verdict.confidence}"
    )
    return guarded.model_copy(update={"payment_authorized": False})

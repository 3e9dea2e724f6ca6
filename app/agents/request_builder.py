"""Verdict request builder - instruction plus evidence blobs."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from app.agents.evidence_store import EvidenceSet, StagedFile
from app.core.errors import MissingEvidenceError
from app.llm.prompts.machine_audit_v1 import MACHINE_AUDIT_V1
from app.llm.prompts.machine_audit_v2 import MACHINE_AUDIT_V2
from app.llm.prompts.templates import PromptRegistry, PromptTemplate
from app.schemas.v1.common import EvidenceRole

AUDIT_TEMPLATE_NAME = "machine_audit"

PROMPTS = PromptRegistry()
PROMPTS.register(MACHINE_AUDIT_V1)
PROMPTS.register(MACHINE_AUDIT_V2)


@dataclass(frozen=True, slots=True)
class EvidencePart:
    role: EvidenceRole
    media_type: str
    data: bytes


@dataclass(frozen=True, slots=True)
class VerdictRequest:
    """One instruction block followed by evidence parts in stable order."""

    instruction: str
    parts: tuple[EvidencePart, ...]
    template_version: str
    explanation_field: str
    primary_name: str | None = None


def select_template(evidence: EvidenceSet) -> PromptTemplate:
    """Delta-comparison policy when a benchmark report is present."""
    version = "2" if EvidenceRole.BENCHMARK_REPORT in evidence else "1"
    template = PROMPTS.get(AUDIT_TEMPLATE_NAME, version)
    if template is None:
        raise LookupError(f"No {AUDIT_TEMPLATE_NAME} template registered for version {version}")
    return template


def build_verdict_request(
    evidence: EvidenceSet,
    read: Callable[[StagedFile], bytes],
    template: PromptTemplate | None = None,
) -> VerdictRequest:
    """Assemble the inference request for a staged evidence set.

    ``read`` loads a staged file's bytes (normally ``EvidenceStore.read_all``).
    """
    if len(evidence) == 0:
        raise MissingEvidenceError("No evidence uploaded. Please upload a machine photo.")

    active = template or select_template(evidence)
    parts = tuple(
        EvidencePart(role=staged.role, media_type=staged.media_type, data=read(staged))
        for staged in evidence.ordered()
    )
    primary = evidence.primary
    return VerdictRequest(
        instruction=active.instruction,
        parts=parts,
        template_version=active.version,
        explanation_field=active.explanation_field,
        primary_name=primary.original_name if primary else None,
    )

"""Evidence store - ephemeral staging of uploaded evidence files.

Uploads are validated against a media-type allow-list and a per-file size cap,
then written under the staging directory as ``<epoch-ms>-<nonce>-<name>``.
Every staged file is deleted by ``purge`` at the end of the request.
"""

from __future__ import annotations

import re
import time
import uuid
from dataclasses import dataclass, field
from pathlib import Path

import structlog

from app.core.config import EvidenceConfig
from app.core.errors import InvalidMediaTypeError, PayloadTooLargeError
from app.core.metrics import escrow_evidence_bytes_total
from app.schemas.v1.common import EVIDENCE_ROLE_ORDER, EvidenceRole

logger = structlog.get_logger(__name__)

_UNSAFE_NAME_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def _safe_name(original_name: str) -> str:
    # Drop any client-supplied directory components.
    base = Path(original_name.replace("\\", "/")).name
    cleaned = _UNSAFE_NAME_CHARS.sub("_", base).strip("._")
    return cleaned or "evidence"


@dataclass(frozen=True, slots=True)
class StagedFile:
    role: EvidenceRole
    path: Path
    original_name: str
    media_type: str
    size: int


@dataclass(slots=True)
class EvidenceSet:
    """Staged evidence for one request, at most one file per role."""

    files: dict[EvidenceRole, StagedFile] = field(default_factory=dict)
    purged: bool = False

    def add(self, staged: StagedFile) -> None:
        self.files[staged.role] = staged

    def get(self, role: EvidenceRole) -> StagedFile | None:
        return self.files.get(role)

    @property
    def primary(self) -> StagedFile | None:
        return self.files.get(EvidenceRole.PRIMARY_VISUAL)

    def ordered(self) -> list[StagedFile]:
        """Staged files in attachment order (primary, audio, report)."""
        return [self.files[role] for role in EVIDENCE_ROLE_ORDER if role in self.files]

    def __contains__(self, role: object) -> bool:
        return role in self.files

    def __len__(self) -> int:
        return len(self.files)


class EvidenceStore:
    """Validates and stages evidence uploads on the local filesystem."""

    def __init__(self, config: EvidenceConfig) -> None:
        self._root = Path(config.upload_dir)
        self._max_bytes = config.max_file_size_bytes
        self._allowed = frozenset(media_type.lower() for media_type in config.allowed_media_types)

    @property
    def root(self) -> Path:
        return self._root

    @property
    def max_file_size_bytes(self) -> int:
        return self._max_bytes

    def validate(self, role: EvidenceRole, media_type: str, size: int) -> None:
        """Reject disallowed media types and oversized payloads."""
        normalized = (media_type or "").split(";", 1)[0].strip().lower()
        if normalized not in self._allowed:
            raise InvalidMediaTypeError(
                "Invalid file type. Only "
                + ", ".join(sorted(self._allowed))
                + " are allowed.",
                details={"role": role.value, "media_type": media_type},
            )
        if size > self._max_bytes:
            raise PayloadTooLargeError(
                f"File exceeds the {self._max_bytes} byte limit",
                details={"role": role.value, "size": size, "max_bytes": self._max_bytes},
            )

    def stage(
        self,
        role: EvidenceRole,
        data: bytes,
        media_type: str,
        original_name: str,
    ) -> StagedFile:
        """Validate and persist one upload; returns the staged handle."""
        self.validate(role, media_type, len(data))

        self._root.mkdir(parents=True, exist_ok=True)
        unique = f"{time.time_ns() // 1_000_000}-{uuid.uuid4().hex[:8]}-{_safe_name(original_name)}"
        path = self._root / unique
        path.write_bytes(data)

        escrow_evidence_bytes_total.labels(role=role.value).inc(len(data))
        logger.info(
            "Evidence staged",
            role=role.value,
            original_name=original_name,
            media_type=media_type,
            size=len(data),
            path=str(path),
        )
        return StagedFile(
            role=role,
            path=path,
            original_name=original_name,
            media_type=media_type.split(";", 1)[0].strip().lower(),
            size=len(data),
        )

    def read_all(self, staged: StagedFile) -> bytes:
        return staged.path.read_bytes()

    def purge(self, evidence: EvidenceSet) -> int:
        """Best-effort delete of every staged file. Never raises.

        Returns the number of files actually removed.
        """
        removed = 0
        for staged in evidence.files.values():
            try:
                staged.path.unlink()
                removed += 1
                logger.info("Evidence deleted", role=staged.role.value, path=str(staged.path))
            except FileNotFoundError:
                logger.warning(
                    "Evidence already removed", role=staged.role.value, path=str(staged.path)
                )
            except OSError as exc:
                logger.error(
                    "Evidence cleanup failed",
                    role=staged.role.value,
                    path=str(staged.path),
                    error=str(exc),
                )
        evidence.purged = True
        return removed

"""Machine audit intake route."""

from fastapi import APIRouter, File, Header, UploadFile

from app.core.dependencies import AuditServiceDep
from app.schemas.v1.audit import AuditResponse
from app.schemas.v1.common import EvidenceRole
from app.services.audit_service import EvidenceUpload

router = APIRouter(tags=["audit"])

# Multipart field name -> evidence role.
FIELD_ROLES: dict[str, EvidenceRole] = {
    "photo": EvidenceRole.PRIMARY_VISUAL,
    "audio": EvidenceRole.SECONDARY_AUDIO,
    "report": EvidenceRole.BENCHMARK_REPORT,
}


async def _to_upload(field: str, upload: UploadFile, max_bytes: int) -> EvidenceUpload:
    # One byte past the cap is enough for the store to reject an oversized file.
    return EvidenceUpload(
        role=FIELD_ROLES[field],
        filename=upload.filename or field,
        media_type=upload.content_type or "application/octet-stream",
        data=await upload.read(max_bytes + 1),
    )


@router.post("/audit-machine", response_model=AuditResponse, response_model_by_alias=True)
async def audit_machine(
    service: AuditServiceDep,
    photo: UploadFile | None = File(default=None),
    audio: UploadFile | None = File(default=None),
    report: UploadFile | None = File(default=None),
    idempotency_key: str | None = Header(default=None, alias="Idempotency-Key"),
):
    """Audit uploaded machine evidence and release payment if authorized."""
    max_bytes = service.store.max_file_size_bytes
    uploads = [
        await _to_upload(field, upload, max_bytes)
        for field, upload in (("photo", photo), ("audio", audio), ("report", report))
        if upload is not None
    ]
    return await service.run_audit(uploads, idempotency_key=idempotency_key)

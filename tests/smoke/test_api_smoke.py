"""Smoke tests for API endpoints."""

import pytest
from fastapi.testclient import TestClient

from app.agents.evidence_store import EvidenceStore
from app.agents.settlement import SettlementAuthority
from app.agents.verdict_interpreter import VerdictInterpreter
from app.core.config import get_settings, reload_settings
from app.core.dependencies import get_audit_service, get_ledger_client, get_settlement_authority
from app.core.errors import StartupConfigurationError
from app.services.audit_service import AuditService

PHOTO = ("Pump_A.jpg", b"\xff\xd8\xff\xe0jpeg", "image/jpeg")


@pytest.fixture
def fakes(fake_model, fake_ledger, custodian, evidence_config, policy):
    settings = get_settings()
    settlement = SettlementAuthority(fake_ledger, custodian, settings.ledger)
    service = AuditService(
        store=EvidenceStore(evidence_config),
        interpreter=VerdictInterpreter(fake_model, policy),
        settlement=settlement,
        policy=policy,
    )
    return service, settlement, fake_ledger


@pytest.fixture
def client(fakes):
    """Test client with the lifespan run and collaborators swapped for fakes."""
    from app.main import create_app

    service, settlement, ledger = fakes
    app = create_app()
    app.dependency_overrides[get_audit_service] = lambda: service
    app.dependency_overrides[get_settlement_authority] = lambda: settlement
    app.dependency_overrides[get_ledger_client] = lambda: ledger
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client


# --- Health ---


def test_health_endpoint(client, custodian):
    response = client.get("/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "OK"
    assert body["wallet"] == str(custodian.pubkey())
    assert body["timestamp"].endswith("Z")


def test_ready_endpoint(client, fake_ledger):
    assert client.get("/health/ready").json()["status"] == "ready"

    fake_ledger.healthy = False
    body = client.get("/health/ready").json()
    assert body["status"] == "degraded"
    assert body["dependencies"] == {"ledger_rpc": False}


def test_request_id_is_echoed(client):
    response = client.get("/health", headers={"X-Request-ID": "req-smoke-1"})
    assert response.headers["X-Request-ID"] == "req-smoke-1"
    assert response.headers["X-Content-Type-Options"] == "nosniff"


# --- Audit ---


def test_audit_machine_pays_for_healthy_verdict(client, fake_ledger):
    response = client.post("/api/audit-machine", files={"photo": PHOTO})

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "HEALTHY"
    assert body["paymentAuthorized"] is True
    assert body["paymentStatus"] == "PAID"
    assert body["txSignature"] == fake_ledger.signature
    assert body["explorerUrl"] == (
        f"https://explorer.solana.com/tx/{fake_ledger.signature}?cluster=devnet"
    )
    assert body["verdictSource"] == "inference"
    assert set(body) >= {"confidence", "analysis", "timestamp"}


def test_audit_machine_accepts_all_three_roles(client, fake_model):
    response = client.post(
        "/api/audit-machine",
        files={
            "photo": PHOTO,
            "audio": ("hum.mp3", b"ID3", "audio/mpeg"),
            "report": ("benchmark.pdf", b"%PDF-1.7", "application/pdf"),
        },
    )

    assert response.status_code == 200
    assert len(fake_model.requests[0].parts) == 3


def test_audit_machine_without_photo_is_400(client, fake_model, fake_ledger):
    response = client.post("/api/audit-machine", files={"audio": ("hum.mp3", b"ID3", "audio/mpeg")})

    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "No photo uploaded. Please upload a machine photo."
    assert body["code"] == "ESCROW_MISSING_EVIDENCE"
    assert fake_model.requests == []
    assert fake_ledger.transfers == []


def test_audit_machine_rejects_disallowed_type(client):
    response = client.post(
        "/api/audit-machine",
        files={"photo": ("notes.txt", b"hello", "text/plain")},
    )

    assert response.status_code == 400
    assert response.json()["error"].startswith("Invalid file type")


def test_audit_machine_replays_idempotent_request(client, fake_ledger):
    headers = {"Idempotency-Key": "order-123"}
    first = client.post("/api/audit-machine", files={"photo": PHOTO}, headers=headers)
    second = client.post("/api/audit-machine", files={"photo": PHOTO}, headers=headers)

    assert first.json()["txSignature"] == second.json()["txSignature"]
    assert len(fake_ledger.transfers) == 1


# --- Metrics ---


def test_metrics_endpoint(client):
    client.post("/api/audit-machine", files={"photo": PHOTO})
    response = client.get("/metrics", headers={"X-Metrics-Token": "test-metrics-token"})
    assert response.status_code == 200
    assert "escrow_audit_requests_total" in response.text
    assert "escrow_settlements_total" in response.text


def test_metrics_endpoint_rejects_wrong_token(client):
    response = client.get("/metrics", headers={"X-Metrics-Token": "nope"})
    assert response.status_code == 403


# --- Startup ---


def test_startup_refuses_without_credentials(monkeypatch):
    from app.main import create_app

    for name in ("LLM_API_KEY", "GEMINI_API_KEY", "LEDGER_PRIVATE_KEY", "SOLANA_PRIVATE_KEY"):
        monkeypatch.delenv(name, raising=False)
    reload_settings()
    try:
        with pytest.raises(StartupConfigurationError) as exc_info:
            with TestClient(create_app()):
                pass
        assert exc_info.value.details == {"missing": ["GEMINI_API_KEY", "SOLANA_PRIVATE_KEY"]}
    finally:
        monkeypatch.undo()
        reload_settings()


def test_startup_rejects_malformed_custodial_secret(monkeypatch):
    from app.main import create_app

    monkeypatch.setenv("LEDGER_PRIVATE_KEY", "not-a-keypair")
    reload_settings()
    try:
        with pytest.raises(StartupConfigurationError):
            with TestClient(create_app()):
                pass
    finally:
        monkeypatch.undo()
        reload_settings()


def test_oversized_request_is_rejected(monkeypatch):
    from app.main import create_app

    monkeypatch.setenv("SECURITY_MAX_REQUEST_SIZE_BYTES", "64")
    reload_settings()
    try:
        with TestClient(create_app()) as small_client:
            response = small_client.post(
                "/api/audit-machine",
                files={"photo": ("big.jpg", b"x" * 1024, "image/jpeg")},
            )
        assert response.status_code == 413
        assert response.json()["error"] == "File upload error"
    finally:
        monkeypatch.undo()
        reload_settings()


def test_oversized_file_is_rejected_by_the_store(fake_model, fake_ledger, custodian, policy, tmp_path):
    from app.core.config import EvidenceConfig
    from app.main import create_app

    service = AuditService(
        store=EvidenceStore(EvidenceConfig(upload_dir=str(tmp_path), max_file_size_bytes=16)),
        interpreter=VerdictInterpreter(fake_model, policy),
        settlement=SettlementAuthority(fake_ledger, custodian, get_settings().ledger),
        policy=policy,
    )
    app = create_app()
    app.dependency_overrides[get_audit_service] = lambda: service
    with TestClient(app) as small_client:
        response = small_client.post(
            "/api/audit-machine",
            files={"photo": ("big.jpg", b"x" * 4096, "image/jpeg")},
        )

    assert response.status_code == 413
    assert response.json()["code"] == "ESCROW_PAYLOAD_TOO_LARGE"
    assert fake_model.requests == []
    assert list(tmp_path.iterdir()) == []

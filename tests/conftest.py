"""Root conftest for tests."""

import os
import tempfile

import base58
import pytest
from solders.keypair import Keypair

if os.getenv("APP_ENV", "").strip().lower() == "prod":
    raise RuntimeError("Refusing to run tests with APP_ENV=prod")

os.environ["APP_ENV"] = "test"
os.environ.setdefault("SERVER_PORT", "8003")
os.environ.setdefault("METRICS_TOKEN", "test-metrics-token")
os.environ.setdefault("LLM_API_KEY", "test-gemini-key")
os.environ.setdefault("LEDGER_PRIVATE_KEY", base58.b58encode(bytes(Keypair())).decode())
os.environ.setdefault("EVIDENCE_UPLOAD_DIR", tempfile.mkdtemp(prefix="escrow-uploads-"))
os.environ.setdefault("OTEL_LOG_RECORD_FORMAT", "console")

from app.agents.request_builder import VerdictRequest  # noqa: E402
from app.core.config import EvidenceConfig, LedgerConfig, PolicyConfig  # noqa: E402
from app.core.errors import InferenceError  # noqa: E402
from app.llm.provider import LLMResponse  # noqa: E402

HEALTHY_REPLY = (
    '```json\n{"status": "HEALTHY", "confidence": 92, '
    '"analysis": "Casing intact, no leaks.", "paymentAuthorized": true}\n```'
)
CRITICAL_REPLY = (
    '{"status": "CRITICAL", "confidence": 88, '
    '"analysis": "Severe corrosion on the hydraulic casing.", "paymentAuthorized": false}'
)


def pytest_collection_modifyitems(items: list[pytest.Item]) -> None:
    """Auto-apply markers based on test directory structure."""
    dir_marker_map = {
        "unit": pytest.mark.unit,
        "smoke": pytest.mark.smoke,
    }
    for item in items:
        test_path = str(item.fspath)
        for dir_name, marker in dir_marker_map.items():
            if f"/{dir_name}/" in test_path or f"\\{dir_name}\\" in test_path:
                item.add_marker(marker)
                break


class FakeInferenceModel:
    """Inference model double: returns ``reply`` or raises ``error``."""

    model = "fake-vision"

    def __init__(self, reply: str = HEALTHY_REPLY, error: Exception | None = None):
        self.reply = reply
        self.error = error
        self.requests: list[VerdictRequest] = []

    async def generate(self, request: VerdictRequest) -> LLMResponse:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return LLMResponse(content=self.reply, model=self.model, latency_ms=1.0)


class FakeLedger:
    """Ledger double recording balance reads and transfers."""

    def __init__(
        self,
        balance: int = 2_000_000_000,
        signature: str = "5sigFakeTransferSignature",
        transfer_error: Exception | None = None,
    ):
        self.balance = balance
        self.signature = signature
        self.transfer_error = transfer_error
        self.balance_reads = 0
        self.transfers: list[tuple[object, object, int]] = []
        self.healthy = True

    async def get_balance(self, pubkey) -> int:
        self.balance_reads += 1
        return self.balance

    async def transfer(self, payer, recipient, lamports: int) -> str:
        self.transfers.append((payer.pubkey(), recipient, lamports))
        if self.transfer_error is not None:
            raise self.transfer_error
        self.balance -= lamports
        return self.signature

    async def health_check(self) -> bool:
        return self.healthy

    async def close(self) -> None:
        return None


@pytest.fixture
def fake_model():
    return FakeInferenceModel()


@pytest.fixture
def failing_model():
    return FakeInferenceModel(error=InferenceError("Inference request failed: quota exceeded"))


@pytest.fixture
def fake_ledger():
    return FakeLedger()


@pytest.fixture
def custodian():
    return Keypair()


@pytest.fixture
def ledger_config():
    return LedgerConfig(private_key="unused", confirm_poll_interval_seconds=0.0)


@pytest.fixture
def policy():
    return PolicyConfig()


@pytest.fixture
def evidence_config(tmp_path):
    return EvidenceConfig(upload_dir=str(tmp_path / "uploads"))

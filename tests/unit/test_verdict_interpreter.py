"""Unit tests for the verdict interpreter."""

import pytest

from app.agents.request_builder import EvidencePart, VerdictRequest
from app.agents.verdict_core import DEMO_FAIL, DEMO_PASS, GENERIC_DEGRADED, FallbackVerdict, ParsedVerdict
from app.agents.verdict_interpreter import VerdictInterpreter
from app.core.config import PolicyConfig
from app.schemas.v1.common import EvidenceRole, VerdictSource, VerdictStatus


def _request(primary_name="pump.jpg"):
    return VerdictRequest(
        instruction="Assess the machine.",
        parts=(EvidencePart(EvidenceRole.PRIMARY_VISUAL, "image/jpeg", b"img"),),
        template_version="1",
        explanation_field="analysis",
        primary_name=primary_name,
    )


@pytest.mark.asyncio
async def test_interpret_parses_model_reply(fake_model, policy):
    interpreter = VerdictInterpreter(fake_model, policy)

    result = await interpreter.interpret(_request())

    assert isinstance(result, ParsedVerdict)
    assert result.source == VerdictSource.INFERENCE
    assert result.verdict.status == VerdictStatus.HEALTHY
    assert result.verdict.confidence == 92
    assert len(fake_model.requests) == 1


@pytest.mark.asyncio
async def test_interpret_falls_back_on_inference_error(failing_model, policy):
    interpreter = VerdictInterpreter(failing_model, policy)

    result = await interpreter.interpret(_request("Pump_A.jpg"))

    assert isinstance(result, FallbackVerdict)
    assert result.verdict == DEMO_PASS
    assert "quota exceeded" in result.reason


@pytest.mark.asyncio
async def test_interpret_fallback_honors_filename_trigger(failing_model, policy):
    interpreter = VerdictInterpreter(failing_model, policy)

    result = await interpreter.interpret(_request("Pump_BROKEN_2.jpg"))

    assert result.verdict == DEMO_FAIL
    assert result.verdict.payment_authorized is False


@pytest.mark.asyncio
async def test_interpret_falls_back_on_prose_reply(fake_model, policy):
    fake_model.reply = "The machine appears to be in good condition."
    interpreter = VerdictInterpreter(fake_model, policy)

    result = await interpreter.interpret(_request())

    assert isinstance(result, FallbackVerdict)
    assert result.reason.startswith("unparseable reply")


@pytest.mark.asyncio
async def test_interpret_falls_back_on_unexpected_exception(fake_model, policy):
    fake_model.error = RuntimeError("socket closed")
    interpreter = VerdictInterpreter(fake_model, policy)

    result = await interpreter.interpret(_request())

    assert isinstance(result, FallbackVerdict)
    assert "RuntimeError" in result.reason


@pytest.mark.asyncio
async def test_interpret_generic_mode(failing_model):
    interpreter = VerdictInterpreter(failing_model, PolicyConfig(fallback_mode="generic"))

    result = await interpreter.interpret(_request("broken.jpg"))

    assert result.verdict == GENERIC_DEGRADED


@pytest.mark.asyncio
async def test_disabled_interpreter_never_calls_model(fake_model, policy):
    interpreter = VerdictInterpreter(fake_model, policy, enabled=False)

    result = await interpreter.interpret(_request())

    assert isinstance(result, FallbackVerdict)
    assert result.reason == "inference disabled"
    assert fake_model.requests == []


@pytest.mark.asyncio
async def test_interpret_treats_infinite_confidence_as_unparseable(fake_model, policy):
    fake_model.reply = (
        '{"status": "HEALTHY", "confidence": 1e999, "analysis": "ok", "paymentAuthorized": true}'
    )
    interpreter = VerdictInterpreter(fake_model, policy)

    result = await interpreter.interpret(_request())

    assert isinstance(result, FallbackVerdict)
    assert result.reason.startswith("unparseable reply")

"""Verdict interpreter - inference call with deterministic offline fallback."""

from __future__ import annotations

import time

import structlog

from app.agents.request_builder import VerdictRequest
from app.agents.verdict_core import (
    FallbackVerdict,
    InterpretedVerdict,
    ParsedVerdict,
    VerdictParseError,
    fallback_verdict,
    has_trigger_token,
    parse_verdict,
)
from app.core.config import FallbackMode, PolicyConfig
from app.core.errors import InferenceError
from app.core.metrics import escrow_inference_calls_total, escrow_inference_latency_seconds
from app.llm.provider import InferenceModel

logger = structlog.get_logger(__name__)


class VerdictInterpreter:
    """Turns a verdict request into a verdict. ``interpret`` never raises."""

    def __init__(
        self,
        model: InferenceModel | None,
        policy: PolicyConfig,
        enabled: bool = True,
    ) -> None:
        self.model = model
        self.policy = policy
        self.enabled = enabled and model is not None

    async def interpret(self, request: VerdictRequest) -> InterpretedVerdict:
        if not self.enabled:
            escrow_inference_calls_total.labels(status="disabled").inc()
            return self._fallback(request, "inference disabled")

        logger.info(
            "Requesting verdict from inference service",
            model=self.model.model,
            template_version=request.template_version,
            parts=len(request.parts),
        )
        started = time.perf_counter()
        try:
            response = await self.model.generate(request)
            logger.debug("Raw inference reply", preview=response.content[:100])
            verdict = parse_verdict(response.content)
        except VerdictParseError as exc:
            reason = f"unparseable reply: {exc}"
        except InferenceError as exc:
            reason = f"inference call failed: {exc.message}"
        except Exception as exc:
            # Anything the SDK raises outside its documented error types.
            logger.exception("Unexpected inference failure")
            reason = f"inference call failed: {type(exc).__name__}: {exc}"
        else:
            escrow_inference_latency_seconds.observe(time.perf_counter() - started)
            escrow_inference_calls_total.labels(status="success").inc()
            logger.info(
                "Inference verdict parsed",
                status=verdict.status.value,
                confidence=verdict.confidence,
                payment_authorized=verdict.payment_authorized,
            )
            return ParsedVerdict(verdict=verdict)

        escrow_inference_calls_total.labels(status="fallback").inc()
        return self._fallback(request, reason)

    def _fallback(self, request: VerdictRequest, reason: str) -> FallbackVerdict:
        mode = self.policy.fallback_mode
        logger.warning(
            "Inference unavailable; switching to offline fallback",
            reason=reason,
            fallback_mode=mode.value,
        )
        if mode == FallbackMode.FILENAME_TRIGGER:
            logger.info(
                "Checking filename trigger",
                filename=(request.primary_name or "").lower(),
                triggered=has_trigger_token(request.primary_name, self.policy.trigger_tokens),
            )
        verdict = fallback_verdict(mode, request.primary_name, self.policy.trigger_tokens)
        return FallbackVerdict(verdict=verdict, reason=reason)

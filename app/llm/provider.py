"""Gemini multimodal model adapter used by the verdict interpreter.

A single provider path: instruction text plus inline evidence bytes go to
``generate_content``; the reply text comes back untouched for parsing.
The call is made exactly once per request, without retries.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Protocol

import httpx
import structlog
from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from app.agents.request_builder import VerdictRequest
from app.core.config import Settings, get_settings
from app.core.errors import InferenceError

logger = structlog.get_logger(__name__)


@dataclass(slots=True)
class LLMResponse:
    content: str
    model: str
    latency_ms: float
    usage: dict[str, int] = field(default_factory=dict)


class InferenceModel(Protocol):
    model: str

    async def generate(self, request: VerdictRequest) -> LLMResponse: ...


def _usage(response: Any) -> dict[str, int]:
    meta = getattr(response, "usage_metadata", None)
    if meta is None:
        return {}
    prompt = int(getattr(meta, "prompt_token_count", 0) or 0)
    completion = int(getattr(meta, "candidates_token_count", 0) or 0)
    return {
        "input_tokens": prompt,
        "output_tokens": completion,
        "total_tokens": prompt + completion,
    }


def to_contents(request: VerdictRequest) -> list[Any]:
    """Instruction first, then each evidence part as inline bytes."""
    contents: list[Any] = [request.instruction]
    contents.extend(
        types.Part.from_bytes(data=part.data, mime_type=part.media_type)
        for part in request.parts
    )
    return contents


class GeminiVisionModel:
    """Async Gemini adapter exposing ``generate``."""

    def __init__(
        self,
        api_key: str,
        model: str,
        timeout_seconds: int,
        client: genai.Client | None = None,
    ) -> None:
        self.model = model
        self._client = client or genai.Client(
            api_key=api_key,
            http_options=types.HttpOptions(timeout=timeout_seconds * 1000),
        )

    async def generate(self, request: VerdictRequest) -> LLMResponse:
        started = time.perf_counter()
        try:
            response = await self._client.aio.models.generate_content(
                model=self.model,
                contents=to_contents(request),
            )
        except (genai_errors.APIError, httpx.HTTPError, OSError, ValueError) as exc:
            raise InferenceError(
                f"Inference request failed: {type(exc).__name__}: {exc}",
                details={"model": self.model},
            ) from exc

        latency_ms = (time.perf_counter() - started) * 1000
        text = response.text
        if not text or not text.strip():
            raise InferenceError(
                "Inference service returned an empty reply",
                details={"model": self.model},
            )

        logger.debug(
            "Inference reply received",
            model=self.model,
            latency_ms=round(latency_ms, 1),
            content_length=len(text),
        )
        return LLMResponse(
            content=text,
            model=self.model,
            latency_ms=latency_ms,
            usage=_usage(response),
        )

    def list_generate_models(self) -> list[dict[str, str]]:
        """Models that support ``generateContent``."""
        models: list[dict[str, str]] = []
        for model in self._client.models.list():
            actions = getattr(model, "supported_actions", None) or []
            if "generateContent" not in actions:
                continue
            models.append(
                {
                    "name": (model.name or "").removeprefix("models/"),
                    "display_name": model.display_name or "",
                }
            )
        return models


def get_inference_model(settings: Settings | None = None) -> GeminiVisionModel:
    """Return the configured Gemini adapter."""
    active = settings or get_settings()
    return GeminiVisionModel(
        api_key=active.llm.api_key.get_secret_value(),
        model=active.llm.model,
        timeout_seconds=active.llm.timeout_seconds,
    )

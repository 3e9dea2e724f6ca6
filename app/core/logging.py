"""Logging configuration using structlog."""

import logging
import sys
from typing import Any

import structlog

from app.core.config import get_settings

NOISY_LOGGERS = ("httpx", "httpcore", "google_genai")

# Event keys whose values must never reach a log sink.
SENSITIVE_KEYS = frozenset({"api_key", "private_key", "secret", "authorization", "x-metrics-token"})
REDACTED = "[REDACTED]"


def redact_sensitive(_logger: Any, _method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """structlog processor masking credential-bearing keys."""
    for key in event_dict.keys() & SENSITIVE_KEYS:
        event_dict[key] = REDACTED
    return event_dict


def setup_logging() -> None:
    """Configure structlog and the stdlib root logger for the service."""
    settings = get_settings()
    log_level = settings.app.log_level.value
    level = getattr(logging, log_level)

    # Analysis text from the inference service is not always ASCII.
    if hasattr(sys.stdout, "reconfigure"):
        try:
            sys.stdout.reconfigure(encoding="utf-8", errors="replace")
        except (OSError, ValueError):
            pass

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)

    # RPC URLs may embed provider API keys; httpx logs every request URL at INFO.
    for noisy in NOISY_LOGGERS:
        logging.getLogger(noisy).setLevel(max(logging.WARNING, level))

    renderer = (
        structlog.processors.JSONRenderer()
        if settings.observability.log_record_format == "json"
        else structlog.dev.ConsoleRenderer()
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            redact_sensitive,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

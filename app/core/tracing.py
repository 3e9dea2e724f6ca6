"""Request-scoped correlation context.

The request id set by the HTTP middleware is kept in a contextvar and bound
into structlog's contextvars so every log line of one audit run carries it.
It also keys the in-process balance reservations made during settlement.
"""

import uuid
from contextvars import ContextVar

import structlog

request_id_ctx: ContextVar[str | None] = ContextVar("request_id", default=None)


def get_request_id() -> str | None:
    """Get the current request ID from context."""
    return request_id_ctx.get()


def set_request_id(value: str | None) -> str:
    """Set (or generate) the request ID and bind it for logging."""
    if not value:
        value = str(uuid.uuid4())
    request_id_ctx.set(value)
    structlog.contextvars.bind_contextvars(request_id=value)
    return value


def clear_tracing_context() -> None:
    """Clear request-scoped context after request completion."""
    request_id_ctx.set(None)
    structlog.contextvars.clear_contextvars()


def get_tracing_headers() -> dict[str, str]:
    """Headers propagated on outbound HTTP calls."""
    headers: dict[str, str] = {}
    if rid := request_id_ctx.get():
        headers["X-Request-ID"] = rid
    return headers

"""Idempotency keys for audit submissions.

A client that retries an audit with the same ``Idempotency-Key`` gets the
first run's envelope back instead of triggering a second transfer. State is
in-process only; it does not survive restarts or span workers.
"""

from __future__ import annotations

import hashlib
import time
from typing import Any

from app.core.errors import ConflictError


def compute_audit_key(client_key: str) -> str:
    """Hash the client-supplied key so raw values never sit in memory maps."""
    return hashlib.sha256(client_key.strip().encode()).hexdigest()


class IdempotencyCache:
    """TTL cache of completed envelopes plus the set of keys in flight."""

    def __init__(self, ttl_seconds: int) -> None:
        self._ttl = ttl_seconds
        self._completed: dict[str, tuple[float, Any]] = {}
        self._in_flight: set[str] = set()

    def _evict_expired(self) -> None:
        now = time.monotonic()
        expired = [key for key, (stored, _) in self._completed.items() if now - stored >= self._ttl]
        for key in expired:
            del self._completed[key]

    def begin(self, key: str) -> Any | None:
        """Return a cached result, or mark ``key`` in flight and return None.

        Raises:
            ConflictError: if another request with the same key is running.
        """
        self._evict_expired()
        if key in self._completed:
            return self._completed[key][1]
        if key in self._in_flight:
            raise ConflictError(
                "An audit with this Idempotency-Key is already in progress",
                details={"idempotency_key": key[:12]},
            )
        self._in_flight.add(key)
        return None

    def complete(self, key: str, result: Any) -> None:
        self._in_flight.discard(key)
        self._completed[key] = (time.monotonic(), result)

    def abandon(self, key: str) -> None:
        """Forget an in-flight key whose run did not produce an envelope."""
        self._in_flight.discard(key)

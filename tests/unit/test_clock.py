"""Unit tests for clock helpers."""

from datetime import UTC, datetime
from unittest.mock import patch

from app.utils.clock import utc_now, utc_timestamp


def test_utc_now_is_timezone_aware():
    assert utc_now().tzinfo is UTC


def test_utc_timestamp_has_millis_and_z_suffix():
    fixed = datetime(2026, 3, 1, 12, 30, 45, 123456, tzinfo=UTC)
    with patch("app.utils.clock.utc_now", return_value=fixed):
        assert utc_timestamp() == "2026-03-01T12:30:45.123Z"

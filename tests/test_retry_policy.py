from datetime import UTC, datetime

from fastapi import HTTPException

from ams_actions.worker.retry import backoff_seconds, retry_at_iso, sanitize_error


def test_backoff_seconds_schedule() -> None:
    assert backoff_seconds(0) == 60
    assert backoff_seconds(1) == 60
    assert backoff_seconds(2) == 300
    assert backoff_seconds(3) == 900
    assert backoff_seconds(4) == 3600
    assert backoff_seconds(5) == 21600
    assert backoff_seconds(9) == 21600


def test_retry_at_iso_uses_backoff_for_attempt() -> None:
    now = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)
    assert retry_at_iso(1, now=now) == "2026-03-01T12:01:00Z"
    assert retry_at_iso(3, now=now) == "2026-03-01T12:15:00Z"


def test_sanitize_error_redacts_sensitive_values() -> None:
    exc = ValueError("Authorization: Bearer secret-token-abc password=hunter2")
    error_text = sanitize_error(exc, default_message="failed")
    assert "secret-token-abc" not in error_text
    assert "hunter2" not in error_text
    assert "[redacted]" in error_text


def test_sanitize_error_prefers_http_detail_and_caps_length() -> None:
    assert (
        sanitize_error(HTTPException(status_code=502, detail="Failed to insert notification in Supabase."), default_message="x")
        == "Failed to insert notification in Supabase."
    )
    assert sanitize_error(RuntimeError(""), default_message="worker error") == "worker error"
    assert len(sanitize_error(RuntimeError("e" * 2000), default_message="x")) == 500

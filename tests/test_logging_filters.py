"""Tests for sensitive data filtering in logs."""

from __future__ import annotations

import json
import logging
from io import StringIO

from app.core.logging import JsonFormatter, SensitiveDataFilter, sensitive_keys_for


def _capture(name: str, sensitive_keys: set[str] | None = None) -> tuple[logging.Logger, StringIO]:
    logger = logging.getLogger(name)
    logger.setLevel(logging.INFO)
    logger.handlers.clear()
    logger.propagate = False

    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.addFilter(SensitiveDataFilter(sensitive_keys))
    handler.setFormatter(JsonFormatter(sensitive_keys=sensitive_keys))
    logger.addHandler(handler)
    return logger, stream


def test_sensitive_filter_redacts_secrets_and_tokens():
    """Ensure signing secrets and history token parts are redacted."""

    logger, stream = _capture("test_redaction")

    logger.info(
        "test_event",
        extra={
            "secret": "hmac-secret-123",
            "signature": "a" * 64,
            "payload": "eJwz1DPQMzQ",
            "safe_field": "visible",
        },
    )

    output = stream.getvalue()

    assert "hmac-secret-123" not in output
    assert "a" * 64 not in output
    assert "eJwz1DPQMzQ" not in output
    assert "[REDACTED]" in output
    assert "visible" in output


def test_sensitive_filter_redacts_client_addresses():
    """Raw client addresses never reach the log line; key hashes do."""

    logger, stream = _capture("test_client_ip")

    logger.info(
        "rate_limit.allowed",
        extra={
            "client_ip": "203.0.113.9",
            "key_hash": "3f2a9c0d1e4b5a6f",
            "tiers_checked": 2,
        },
    )

    data = json.loads(stream.getvalue())

    assert data["client_ip"] == "[REDACTED]"
    assert data["key_hash"] == "3f2a9c0d1e4b5a6f"
    assert data["tiers_checked"] == 2
    assert data["message"] == "rate_limit.allowed"


def test_configured_cookie_names_are_redacted():
    """Deployment-specific cookie names join the default sensitive keys."""

    keys = sensitive_keys_for(("My_History", "my_sig"))
    logger, stream = _capture("test_cookie_names", keys)

    logger.info(
        "cookies_seen",
        extra={"cookies": {"my_history": "payload-value", "my_sig": "sig-value", "theme": "dark"}},
    )

    output = stream.getvalue()

    assert "my_history" in keys
    assert "payload-value" not in output
    assert "sig-value" not in output
    assert "dark" in output


def test_sensitive_filter_allows_safe_fields():
    """Verify safe fields pass through unmodified."""

    logger, stream = _capture("test_safe_fields")

    logger.info(
        "safe_event",
        extra={
            "request_id": "req-123",
            "route": "/v1/power-usage",
            "status": 200,
            "duration_ms": 150.5,
        },
    )

    output = stream.getvalue()

    assert "req-123" in output
    assert "/v1/power-usage" in output
    assert "200" in output
    assert "[REDACTED]" not in output


def test_sensitive_filter_redacts_nested_dicts():
    """Ensure nested sensitive fields are redacted."""

    logger, stream = _capture("test_nested")

    logger.info(
        "nested_event",
        extra={
            "headers": {
                "cookie": "rl_history=abc; rl_signature=def",
                "x-forwarded-for": "198.51.100.7",
                "user-agent": "pytest",
            },
            "safe_data": {
                "count": 5,
                "type": "test",
            },
        },
    )

    output = stream.getvalue()

    assert "rl_history=abc" not in output
    assert "198.51.100.7" not in output
    assert "[REDACTED]" in output
    assert "pytest" in output
    assert "test" in output


def test_exception_is_included_in_json():
    logger, stream = _capture("test_exc")

    try:
        raise RuntimeError("disk on fire")
    except RuntimeError:
        logger.exception("store_failed")

    data = json.loads(stream.getvalue())

    assert data["level"] == "error"
    assert "disk on fire" in data["exception"]


def test_client_identity_hash_is_short_and_stable():
    from app.core.logging import hash_client_identity

    first = hash_client_identity("ip:203.0.113.9")

    assert first == hash_client_identity("ip:203.0.113.9")
    assert first != hash_client_identity("ip:203.0.113.10")
    assert len(first) == 16
    assert "203.0.113.9" not in first

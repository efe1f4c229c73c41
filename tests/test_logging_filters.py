"""Tests for sensitive data filtering in logs."""

from __future__ import annotations

import json
import logging
from io import StringIO

from app.core.logging import JsonFormatter, SensitiveDataFilter, digest


def _capture(name: str) -> tuple[logging.Logger, StringIO]:
    logger = logging.getLogger(name)
    logger.setLevel(logging.INFO)
    logger.handlers.clear()
    logger.propagate = False

    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.addFilter(SensitiveDataFilter())
    handler.setFormatter(JsonFormatter())
    logger.addHandler(handler)
    return logger, stream


def test_sensitive_filter_redacts_api_keys():
    logger, stream = _capture("test_redaction")

    logger.info(
        "test_event",
        extra={
            "api_key": "sk-secret-123",
            "x-api-key": "another-secret",
            "safe_field": "visible",
        },
    )

    output = stream.getvalue()

    assert "sk-secret-123" not in output
    assert "another-secret" not in output
    assert "[REDACTED]" in output
    assert "visible" in output


def test_identifiers_are_hashed_not_dropped():
    """Caller identifiers stay correlatable across log lines."""
    logger, stream = _capture("test_identifier_hashing")

    logger.info("rate_limit.exceeded", extra={"identifier": "user-42", "client_ip": "10.0.0.7"})
    logger.info("rate_limit.exceeded", extra={"identifier": "user-42"})

    first, second = (json.loads(line) for line in stream.getvalue().splitlines())

    assert "user-42" not in stream.getvalue()
    assert "10.0.0.7" not in stream.getvalue()
    assert first["identifier"] == digest("user-42")
    assert first["identifier"] == second["identifier"]
    assert first["identifier"].startswith("sha256:")


def test_sensitive_filter_allows_safe_fields():
    logger, stream = _capture("test_safe_fields")

    logger.info(
        "rate_limit.allowed",
        extra={
            "request_id": "req-123",
            "endpoint": "files:upload",
            "remaining": 4,
            "department_id": "dept-7",
        },
    )

    output = stream.getvalue()

    assert "req-123" in output
    assert "files:upload" in output
    assert "dept-7" in output
    assert "[REDACTED]" not in output


def test_sensitive_filter_redacts_nested_dicts():
    logger, stream = _capture("test_nested")

    logger.info(
        "nested_event",
        extra={
            "headers": {
                "x-api-key": "secret-key",
                "x-forwarded-for": "203.0.113.9",
                "user-agent": "pytest",
            },
        },
    )

    output = stream.getvalue()

    assert "secret-key" not in output
    assert "203.0.113.9" not in output
    assert "[REDACTED]" in output
    assert "pytest" in output


def test_digest_is_stable_and_short():
    assert digest("user-1") == digest("user-1")
    assert digest("user-1") != digest("user-2")
    assert len(digest("user-1")) == len("sha256:") + 16

"""Tests for sensitive data filtering in logs."""

from __future__ import annotations

import json
import logging
from io import StringIO

import pytest

from app.core.logging import (
    JsonFormatter,
    RequestIdFilter,
    SensitiveDataFilter,
    clear_request_id,
    fingerprint,
    set_request_id,
)


@pytest.fixture
def log_stream():
    """Return (logger, stream) with the redaction filter and JSON formatter."""
    logger = logging.getLogger("test_redaction")
    logger.setLevel(logging.INFO)
    logger.handlers.clear()
    logger.propagate = False

    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.addFilter(RequestIdFilter())
    handler.addFilter(SensitiveDataFilter())
    handler.setFormatter(JsonFormatter())
    logger.addHandler(handler)

    yield logger, stream

    logger.handlers.clear()
    clear_request_id()


def test_sensitive_filter_redacts_api_keys(log_stream):
    logger, stream = log_stream

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


def test_sensitive_filter_redacts_client_addresses(log_stream):
    logger, stream = log_stream

    logger.warning(
        "rate_limit.exceeded",
        extra={
            "tier": "strict",
            "client_ip": "203.0.113.5",
            "headers": {"X-Forwarded-For": "203.0.113.5, 10.0.0.1", "X-Real-IP": "198.51.100.7"},
            "key_hash": "0123456789abcdef",
        },
    )

    record = json.loads(stream.getvalue())
    assert "203.0.113.5" not in stream.getvalue()
    assert "198.51.100.7" not in stream.getvalue()
    assert record["tier"] == "strict"
    assert record["key_hash"] == "0123456789abcdef"
    assert record["headers"]["X-Forwarded-For"] == "[REDACTED]"


def test_safe_fields_pass_through(log_stream):
    logger, stream = log_stream

    logger.info(
        "request.completed",
        extra={"path": "/v1/rate-limits/purge", "status_code": 200, "duration_ms": 1.5},
    )

    record = json.loads(stream.getvalue())
    assert record["message"] == "request.completed"
    assert record["path"] == "/v1/rate-limits/purge"
    assert record["status_code"] == 200
    assert "[REDACTED]" not in stream.getvalue()


def test_request_id_from_context(log_stream):
    logger, stream = log_stream
    set_request_id("req-123")

    logger.info("with_context")

    assert json.loads(stream.getvalue())["request_id"] == "req-123"


def test_exception_rendered_as_text(log_stream):
    logger, stream = log_stream

    try:
        raise RuntimeError("store exploded")
    except RuntimeError:
        logger.exception("rate_limit.cleanup_failed")

    record = json.loads(stream.getvalue())
    assert record["level"] == "error"
    assert "RuntimeError: store exploded" in record["exception"]


def test_fingerprint_is_stable_and_opaque():
    tag = fingerprint("general:203.0.113.5")

    assert tag == fingerprint("general:203.0.113.5")
    assert tag != fingerprint("general:203.0.113.6")
    assert len(tag) == 16
    assert "203.0.113.5" not in tag

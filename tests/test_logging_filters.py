"""Tests for sensitive data filtering and request correlation in logs."""

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
    redact,
    set_request_id,
)


@pytest.fixture
def capture():
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


def test_client_identifier_is_redacted(capture):
    logger, stream = capture

    logger.info("rate_limit.allowed", extra={"user_id": "alice@example.com", "key_hash": "abc123"})

    output = stream.getvalue()
    assert "alice@example.com" not in output
    assert "[REDACTED]" in output
    assert "abc123" in output


def test_nested_sensitive_fields_are_redacted(capture):
    logger, stream = capture

    logger.info(
        "nested_event",
        extra={
            "headers": {"Authorization": "Bearer t0k3n", "user-agent": "pytest"},
            "store": {"redis_url": "redis://:pw@host:6379/0", "backend": "redis"},
        },
    )

    output = stream.getvalue()
    assert "t0k3n" not in output
    assert ":pw@host" not in output
    assert "pytest" in output
    assert "redis" in output


def test_safe_fields_pass_through(capture):
    logger, stream = capture

    logger.info("http.request", extra={"path": "/v1/ping", "status": 429, "duration_ms": 1.5})

    payload = json.loads(stream.getvalue())
    assert payload["message"] == "http.request"
    assert payload["level"] == "info"
    assert payload["path"] == "/v1/ping"
    assert payload["status"] == 429
    assert "[REDACTED]" not in stream.getvalue()


def test_request_id_from_context_is_attached(capture):
    logger, stream = capture

    set_request_id("req-42")
    logger.warning("rate_limit.rejected")

    assert json.loads(stream.getvalue())["request_id"] == "req-42"


def test_redact_preserves_sequence_types():
    value = redact({"items": [{"token": "x"}, {"ok": 1}], "pair": ("a", {"secret": "s"})})

    assert value == {"items": [{"token": "[REDACTED]"}, {"ok": 1}], "pair": ("a", {"secret": "[REDACTED]"})}

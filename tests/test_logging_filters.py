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


def test_redacts_tokens_and_authorization(capture):
    logger, stream = capture

    logger.info(
        "discogs.request",
        extra={
            "discogs_token": "abcDEF123",
            "authorization": "Discogs token=abcDEF123",
            "path": "releases/1",
        },
    )

    output = stream.getvalue()
    assert "abcDEF123" not in output
    assert "[REDACTED]" in output
    assert "releases/1" in output


def test_redacts_forwarded_addresses_in_nested_headers(capture):
    logger, stream = capture

    logger.warning(
        "rate_limit.exceeded",
        extra={
            "headers": {"X-Forwarded-For": "198.51.100.1", "user-agent": "pytest"},
            "client_hash": "0f1e2d3c4b5a6978",
        },
    )

    output = stream.getvalue()
    assert "198.51.100.1" not in output
    assert "pytest" in output
    assert "0f1e2d3c4b5a6978" in output


def test_safe_fields_pass_through(capture):
    logger, stream = capture

    logger.info(
        "rate_limit.allowed",
        extra={"route_group": "/api/stripe", "limit": 20, "remaining": 19},
    )

    payload = json.loads(stream.getvalue())
    assert payload["message"] == "rate_limit.allowed"
    assert payload["level"] == "info"
    assert payload["route_group"] == "/api/stripe"
    assert payload["remaining"] == 19
    assert "[REDACTED]" not in stream.getvalue()


def test_request_id_from_context(capture):
    logger, stream = capture
    set_request_id("req-123")

    logger.info("discogs.proxy.request")

    assert json.loads(stream.getvalue())["request_id"] == "req-123"

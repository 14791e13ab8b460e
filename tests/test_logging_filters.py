"""Tests for sensitive data filtering in logs."""

from __future__ import annotations

import json
import logging
from io import StringIO

import pytest

from companion.core.logging import (
    JsonFormatter,
    RequestIdFilter,
    SensitiveDataFilter,
    clear_request_id,
    mask_email,
    set_request_id,
)


@pytest.fixture
def capture():
    """Logger wired like production: redaction filter plus JSON formatter."""
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


def test_redacts_credentials(capture):
    logger, stream = capture

    logger.info(
        "auth.login_succeeded",
        extra={
            "password": "motdepasse-solide",
            "access_token": "eyJhbGciOi.payload.sig",
            "stripe_secret_key": "sk_live_123",
            "user_id": "user-1",
        },
    )

    output = stream.getvalue()
    assert "motdepasse-solide" not in output
    assert "eyJhbGciOi" not in output
    assert "sk_live_123" not in output
    assert "[REDACTED]" in output
    assert "user-1" in output


def test_redacts_document_and_chat_content(capture):
    logger, stream = capture

    logger.info(
        "documents.compared",
        extra={
            "content_1": "Le locataire Jean Martin verse 800 euros",
            "extracted_text": "Clause confidentielle",
            "line_count": 12,
        },
    )

    output = stream.getvalue()
    assert "Jean Martin" not in output
    assert "Clause confidentielle" not in output
    assert "line_count" in output


def test_safe_fields_pass_through(capture):
    logger, stream = capture

    logger.info(
        "http.request",
        extra={"route": "/v1/projects", "status": 200, "duration_ms": 15.5},
    )

    record = json.loads(stream.getvalue())
    assert record["message"] == "http.request"
    assert record["route"] == "/v1/projects"
    assert record["status"] == 200
    assert "[REDACTED]" not in stream.getvalue()


def test_redacts_nested_dicts(capture):
    logger, stream = capture

    logger.info(
        "stripe.request",
        extra={
            "headers": {"Authorization": "Bearer secret-key", "user-agent": "pytest"},
            "safe_data": {"count": 5},
        },
    )

    output = stream.getvalue()
    assert "secret-key" not in output
    assert "pytest" in output


def test_request_id_from_context(capture):
    logger, stream = capture
    set_request_id("req-123")
    try:
        logger.info("projects.created")
    finally:
        clear_request_id()

    assert json.loads(stream.getvalue())["request_id"] == "req-123"


def test_email_fields_are_masked_not_redacted(capture):
    logger, stream = capture

    logger.warning(
        "member.invite_failed",
        extra={"email": "claire.dupont@cabinet.fr", "context": {"invitee_email": "jean@cabinet.fr"}},
    )

    line = json.loads(stream.getvalue())
    assert line["email"] == "c***@cabinet.fr"
    assert line["context"] == {"invitee_email": "j***@cabinet.fr"}


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("avocat@cabinet-dupont.fr", "a***@cabinet-dupont.fr"),
        ("a***@cabinet-dupont.fr", "a***@cabinet-dupont.fr"),
        ("not-an-email", "not-an-email"),
        (None, None),
    ],
)
def test_mask_email(value, expected):
    assert mask_email(value) == expected

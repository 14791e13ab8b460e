from __future__ import annotations

from companion.core.errors import NotFoundAppError


def test_preserves_incoming_request_id_header(client):
    incoming_id = "test-request-id-123"
    resp = client.get("/health", headers={"X-Request-ID": incoming_id})

    assert resp.status_code == 200
    assert resp.headers.get("X-Request-ID") == incoming_id


def test_generates_request_id_when_missing(client):
    resp = client.get("/health")

    assert resp.status_code == 200
    assert resp.headers.get("X-Request-ID")
    assert resp.headers.get("X-Request-Duration-ms") is not None


def test_error_body_carries_request_id(client, headers):
    resp = client.get("/v1/projects/unknown", headers={**headers, "X-Request-ID": "req-abc"})

    assert resp.status_code == 404
    assert resp.json()["error"]["request_id"] == "req-abc"
    assert resp.headers["X-Request-ID"] == "req-abc"


def test_not_found_error_type_is_used(client, headers):
    # Unknown projects surface through the domain error, not FastAPI's default 404
    resp = client.get("/v1/projects/unknown", headers=headers)

    assert resp.json()["error"]["code"] == "project_not_found"
    assert NotFoundAppError.__name__ not in resp.text

from __future__ import annotations

from fastapi import FastAPI, HTTPException
from fastapi.testclient import TestClient
from pydantic import BaseModel
from sqlalchemy.exc import OperationalError

from salon_backend.errors import (
    AuthorizationError,
    INTERNAL_ERROR_MESSAGE,
    LockoutError,
    RateLimitError,
    SalonError,
    ValidationError,
    register_exception_handlers,
)


class _Payload(BaseModel):
    name: str
    count: int


def _client() -> TestClient:
    app = FastAPI()
    register_exception_handlers(app)

    @app.get("/validation")
    def validation():
        raise ValidationError("Bad input", details=[{"field": "name", "message": "required"}])

    @app.get("/forbidden")
    def forbidden():
        raise AuthorizationError()

    @app.get("/locked")
    def locked():
        raise LockoutError(retry_after=120)

    @app.get("/throttled")
    def throttled():
        raise RateLimitError(retry_after=0)

    @app.get("/http")
    def http_error():
        raise HTTPException(status_code=418, detail="teapot")

    @app.get("/database")
    def database():
        raise OperationalError("SELECT 1", {}, Exception("connection refused password=hunter2"))

    @app.get("/salon-error")
    def salon_error():
        raise SalonError()

    @app.get("/crash")
    def crash():
        raise RuntimeError("internal detail that must not leak")

    @app.post("/body")
    def body(payload: _Payload):
        return payload

    return TestClient(app, raise_server_exceptions=False)


def test_domain_errors_use_the_envelope():
    client = _client()

    validation = client.get("/validation")
    forbidden = client.get("/forbidden")

    assert validation.status_code == 400
    assert validation.json() == {
        "success": False,
        "message": "Bad input",
        "details": [{"field": "name", "message": "required"}],
    }
    assert forbidden.status_code == 403
    assert forbidden.json() == {"success": False, "message": "Insufficient permissions"}


def test_retry_after_is_in_body_and_header():
    client = _client()

    locked = client.get("/locked")
    throttled = client.get("/throttled")

    assert locked.status_code == 401
    assert locked.json()["retry_after"] == 120
    assert locked.headers["Retry-After"] == "120"
    assert "WWW-Authenticate" not in locked.headers
    assert throttled.status_code == 429
    assert throttled.json()["retry_after"] == 1


def test_request_validation_lists_fields():
    response = _client().post("/body", json={"count": "many"})

    assert response.status_code == 400
    body = response.json()
    assert body["message"] == "Validation error"
    assert {item["field"] for item in body["details"]} == {"name", "count"}


def test_http_exception_keeps_status():
    response = _client().get("/http")

    assert response.status_code == 418
    assert response.json() == {"success": False, "message": "teapot"}


def test_unexpected_errors_do_not_leak_internals():
    client = _client()

    for path in ("/database", "/crash", "/salon-error"):
        response = client.get(path)
        assert response.status_code == 500
        assert response.json() == {"success": False, "message": INTERNAL_ERROR_MESSAGE}

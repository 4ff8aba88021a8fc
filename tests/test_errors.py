"""Shared error handlers on a bare FastAPI app."""

import logging

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from packages.shared.errors import NotFoundError, RateLimitError, UnauthorizedError
from packages.shared.errors.middleware import register_exception_handlers


@pytest.fixture
def client():
    app = FastAPI()
    register_exception_handlers(app)

    @app.get("/missing")
    async def missing():
        raise NotFoundError("Cart not found", details={"cart_id": "c1"})

    @app.get("/throttled")
    async def throttled():
        raise RateLimitError("Slow down", retry_after=2)

    @app.get("/bad-token")
    async def bad_token():
        raise UnauthorizedError("Storefront token rejected")

    with TestClient(app) as c:
        yield c


def test_storefront_error_keeps_its_status(client):
    r = client.get("/missing", headers={"X-Request-ID": "req-9"})
    assert r.status_code == 404
    error = r.json()["error"]
    assert error["code"] == "SF_404"
    assert error["message"] == "Cart not found"
    assert error["request_id"] == "req-9"


def test_throttled_error_sets_retry_after(client):
    r = client.get("/throttled")
    assert r.status_code == 429
    assert r.headers["Retry-After"] == "2"


def test_rejected_token_is_bad_gateway(client):
    assert client.get("/bad-token").status_code == 502


def test_storefront_error_is_logged_with_message(client, caplog):
    with caplog.at_level(logging.WARNING, logger="packages.shared.errors.middleware"):
        client.get("/missing")
    record = next(r for r in caplog.records if r.getMessage() == "Storefront exception")
    assert record.context["error_message"] == "Cart not found"
    assert record.context["error_code"] == "SF_404"

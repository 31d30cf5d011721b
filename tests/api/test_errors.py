"""Tests for api/errors.py - global exception handlers."""

import pytest
from fastapi import FastAPI
from starlette.testclient import TestClient

from api.errors import register_error_handlers
from auth.exceptions import NotAuthenticatedError, RateLimitedError
from auth.messages import NOT_LOGGED_IN, provider_error_message
from clients.document_store import DocumentStoreError
from clients.identity_client import CredentialStoreError


@pytest.fixture
def client():
    app = FastAPI()
    register_error_handlers(app)

    errors = {
        "credential": CredentialStoreError("EMAIL_EXISTS"),
        "network": CredentialStoreError("NETWORK_ERROR"),
        "anonymous": NotAuthenticatedError(),
        "throttled": RateLimitedError(retry_after_seconds=30),
        "database": DocumentStoreError("connection refused"),
        "missing": ValueError("Profile not found"),
        "bad": ValueError("Bad input"),
        "crash": RuntimeError("boom"),
    }

    @app.get("/raise/{name}")
    async def raise_error(name: str):
        raise errors[name]

    @app.get("/typed")
    async def typed(limit: int):
        return {"limit": limit}

    return TestClient(app, raise_server_exceptions=False)


class TestErrorHandlers:
    def test_credential_store_error_keeps_provider_code(self, client):
        response = client.get("/raise/credential")

        assert response.status_code == 400
        assert response.json()["error"] == {
            "code": "EMAIL_EXISTS",
            "message": provider_error_message("EMAIL_EXISTS"),
        }

    def test_unreachable_provider_is_503(self, client):
        assert client.get("/raise/network").status_code == 503

    def test_not_authenticated(self, client):
        response = client.get("/raise/anonymous")

        assert response.status_code == 401
        assert response.json()["error"]["message"] == NOT_LOGGED_IN

    def test_rate_limited_sets_retry_after(self, client):
        response = client.get("/raise/throttled")

        assert response.status_code == 429
        assert response.headers["Retry-After"] == "30"
        assert response.json()["error"]["code"] == "RATE_LIMITED"

    def test_document_store_error_hides_details(self, client):
        response = client.get("/raise/database")

        assert response.status_code == 503
        assert "connection refused" not in response.text

    def test_value_error_not_found(self, client):
        assert client.get("/raise/missing").status_code == 404

    def test_value_error_bad_request(self, client):
        response = client.get("/raise/bad")

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INVALID_REQUEST"

    def test_validation_error(self, client):
        response = client.get("/typed", params={"limit": "many"})

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    def test_unhandled_error(self, client):
        response = client.get("/raise/crash")

        assert response.status_code == 500
        assert response.json()["error"]["code"] == "INTERNAL_ERROR"

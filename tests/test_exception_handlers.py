"""Tests for global exception handlers.

Validates that all exception types are rendered in the shared error
envelope with proper HTTP status codes and no information leakage.
"""

import asyncio
import json
from unittest.mock import AsyncMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.core.errors import (
    AppError,
    AuthenticationAppError,
    ConfigurationAppError,
    NotFoundAppError,
    RateLimitExceededError,
    StoreUnavailableError,
    ValidationAppError,
)
from app.core.exception_handlers import (
    general_exception_handler,
    setup_exception_handlers,
    status_code_for,
)


@pytest.fixture
def app_with_handlers() -> FastAPI:
    """Create FastAPI app with exception handlers registered."""
    app = FastAPI()
    setup_exception_handlers(app)
    return app


@pytest.fixture
def client(app_with_handlers: FastAPI) -> TestClient:
    return TestClient(app_with_handlers, raise_server_exceptions=False)


class TestAppErrorHandler:
    """Test handler for AppError and subclasses."""

    @pytest.mark.parametrize(
        ("error_type", "status_code"),
        [
            (ValidationAppError, 400),
            (AuthenticationAppError, 403),
            (NotFoundAppError, 404),
            (StoreUnavailableError, 503),
            (ConfigurationAppError, 500),
            (AppError, 400),
        ],
    )
    def test_status_mapping(self, error_type: type[AppError], status_code: int) -> None:
        assert status_code_for(error_type(code="X", message="x")) == status_code

    def test_envelope_shape(self, client: TestClient, app_with_handlers: FastAPI):
        @app_with_handlers.get("/test-not-found")
        async def test_endpoint():
            raise NotFoundAppError(
                code="RATE_LIMIT_RECORD_NOT_FOUND",
                message="No live rate limit record for this client",
                details={"tier": "api"},
            )

        response = client.get("/test-not-found")

        assert response.status_code == 404
        data = response.json()
        assert data["success"] is False
        assert data["error"]["code"] == "RATE_LIMIT_RECORD_NOT_FOUND"
        assert data["error"]["details"] == {"tier": "api"}
        assert "request_id" in data["error"]
        assert data["timestamp"].endswith("Z")

    def test_details_omitted_when_absent(self, client: TestClient, app_with_handlers: FastAPI):
        @app_with_handlers.get("/test-auth")
        async def test_endpoint():
            raise AuthenticationAppError(code="INVALID_API_KEY", message="Invalid or missing API key")

        data = client.get("/test-auth").json()

        assert "details" not in data["error"]

    def test_rate_limit_error_carries_headers(self, client: TestClient, app_with_handlers: FastAPI):
        @app_with_handlers.get("/test-429")
        async def test_endpoint():
            raise RateLimitExceededError(
                code="RATE_LIMIT_EXCEEDED",
                message="Too many requests, please try again later",
                details={"retryAfter": 42},
                headers={"Retry-After": "42", "X-RateLimit-Remaining": "0"},
            )

        response = client.get("/test-429")

        assert response.status_code == 429
        assert response.headers["Retry-After"] == "42"
        assert response.headers["X-RateLimit-Remaining"] == "0"
        assert response.json()["error"]["details"]["retryAfter"] == 42

    def test_request_validation_uses_envelope(self, client: TestClient, app_with_handlers: FastAPI):
        @app_with_handlers.get("/test-query")
        async def test_endpoint(limit: int):
            return {"limit": limit}

        response = client.get("/test-query", params={"limit": "many"})

        assert response.status_code == 400
        data = response.json()
        assert data["error"]["code"] == "VALIDATION_ERROR"
        assert data["error"]["details"][0]["field"] == "query.limit"


class TestHTTPExceptionHandler:
    def test_unknown_path_uses_envelope(self, client: TestClient):
        response = client.get("/no-such-route")

        assert response.status_code == 404
        data = response.json()
        assert data["success"] is False
        assert data["error"]["code"] == "NOT_FOUND"

    def test_wrong_method_uses_envelope(self, client: TestClient, app_with_handlers: FastAPI):
        @app_with_handlers.get("/only-get")
        async def test_endpoint():
            return {}

        response = client.post("/only-get")

        assert response.status_code == 405
        assert response.json()["error"]["code"] == "METHOD_NOT_ALLOWED"


class TestGeneralExceptionHandler:
    """Test fallback handler for unexpected exceptions."""

    def test_unexpected_exception_returns_500(self, client: TestClient, app_with_handlers: FastAPI):
        @app_with_handlers.get("/test-boom")
        async def test_endpoint():
            raise RuntimeError("database connection failed")

        response = client.get("/test-boom")

        assert response.status_code == 500
        data = response.json()
        assert data["error"]["code"] == "INTERNAL_SERVER_ERROR"
        assert "database connection" not in data["error"]["message"]

    def test_general_exception_handler_never_leaks_stack_trace(self):
        request = AsyncMock()
        request.url.path = "/test"
        request.method = "GET"

        exc = ValueError("Test error with details")
        response = asyncio.run(general_exception_handler(request, exc))

        response_text = bytes(response.body).decode()
        data = json.loads(response_text)
        assert data["success"] is False
        assert "Traceback" not in response_text
        assert "ValueError" not in response_text
        assert "Test error with details" not in response_text


def test_setup_exception_handlers_registers_handlers(app_with_handlers: FastAPI):
    assert AppError in app_with_handlers.exception_handlers
    assert Exception in app_with_handlers.exception_handlers

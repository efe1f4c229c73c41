"""Tests for global exception handlers.

Validates that all exception types are handled consistently with
proper HTTP status codes, error format, and no information leakage.
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
    CounterStoreUnavailable,
    DepartmentNotFoundError,
    InvalidConfigurationError,
    QuotaExceededAppError,
    RateLimitedAppError,
    ServiceUnavailableAppError,
    ValidationAppError,
)
from app.core.exception_handlers import general_exception_handler, setup_exception_handlers


@pytest.fixture
def app_with_handlers() -> FastAPI:
    """Create FastAPI app with exception handlers registered."""
    app = FastAPI()
    setup_exception_handlers(app)
    return app


@pytest.fixture
def client(app_with_handlers: FastAPI) -> TestClient:
    return TestClient(app_with_handlers, raise_server_exceptions=False)


def _raise_on(app: FastAPI, path: str, exc: Exception) -> None:
    @app.get(path)
    async def _endpoint():
        raise exc


class TestAppErrorHandler:
    """Test handler for AppError and subclasses."""

    @pytest.mark.parametrize(
        "exc, expected_status",
        [
            (ValidationAppError(code="bad_input", message="bad"), 400),
            (InvalidConfigurationError(code="invalid_configuration", message="bad"), 400),
            (AuthenticationAppError(code="invalid_api_key", message="no"), 403),
            (DepartmentNotFoundError(code="department_not_found", message="gone"), 404),
            (QuotaExceededAppError(code="quota_exceeded", message="full"), 413),
            (ServiceUnavailableAppError(code="quota_unavailable", message="down"), 503),
            (CounterStoreUnavailable(code="counter_store_unavailable", message="down"), 503),
        ],
    )
    def test_status_mapping(
        self, client: TestClient, app_with_handlers: FastAPI, exc: AppError, expected_status: int
    ) -> None:
        _raise_on(app_with_handlers, "/boom", exc)

        response = client.get("/boom")

        assert response.status_code == expected_status
        assert response.json()["error"]["code"] == exc.code

    def test_details_are_included(self, client: TestClient, app_with_handlers: FastAPI) -> None:
        _raise_on(
            app_with_handlers,
            "/quota",
            QuotaExceededAppError(
                code="quota_exceeded",
                message="Upload would exceed department storage quota",
                details={"current": 4_800_000, "allocated": 5_000_000, "required": 300_000},
            ),
        )

        data = client.get("/quota").json()

        assert data["error"]["details"]["current"] == 4_800_000
        assert data["error"]["details"]["required"] == 300_000

    def test_rate_limited_sets_headers(self, client: TestClient, app_with_handlers: FastAPI) -> None:
        _raise_on(
            app_with_handlers,
            "/limited",
            RateLimitedAppError(
                code="rate_limited",
                message="Too many requests. Please try again later.",
                details={"limit": 5, "remaining": 0, "reset_at": 1_700_000_060, "retry_after": 42},
            ),
        )

        response = client.get("/limited")

        assert response.status_code == 429
        assert response.headers["Retry-After"] == "42"
        assert response.headers["X-RateLimit-Limit"] == "5"
        assert response.headers["X-RateLimit-Remaining"] == "0"
        assert response.headers["X-RateLimit-Reset"] == "1700000060"

    def test_other_errors_carry_no_rate_limit_headers(
        self, client: TestClient, app_with_handlers: FastAPI
    ) -> None:
        _raise_on(
            app_with_handlers,
            "/quota-headers",
            QuotaExceededAppError(code="quota_exceeded", message="full", details={"limit": 1}),
        )

        response = client.get("/quota-headers")

        assert "X-RateLimit-Limit" not in response.headers

    def test_error_response_format_is_consistent(
        self, client: TestClient, app_with_handlers: FastAPI
    ) -> None:
        _raise_on(app_with_handlers, "/format", ValidationAppError(code="test", message="test"))

        data = client.get("/format").json()

        assert set(data["error"]) == {"code", "message", "request_id"}


class TestGeneralExceptionHandler:
    """Test fallback handler for unexpected exceptions."""

    def test_unexpected_exception_returns_500(
        self, client: TestClient, app_with_handlers: FastAPI
    ) -> None:
        _raise_on(app_with_handlers, "/crash", RuntimeError("database connection failed"))

        response = client.get("/crash")

        assert response.status_code == 500
        assert response.json()["error"]["code"] == "internal_server_error"

    def test_general_exception_handler_never_leaks_details(self) -> None:
        request = AsyncMock()
        request.url.path = "/test"
        request.method = "GET"

        exc = ValueError("Unexpected error: database connection failed")
        response = asyncio.run(general_exception_handler(request, exc))

        body = bytes(response.body).decode()
        data = json.loads(body)
        assert response.status_code == 500
        assert "database connection" not in data["error"]["message"]
        assert "Traceback" not in body
        assert "ValueError" not in body


def test_setup_exception_handlers_registers_handlers(app_with_handlers: FastAPI) -> None:
    assert AppError in app_with_handlers.exception_handlers
    assert Exception in app_with_handlers.exception_handlers

"""Tests for the error envelope and exception handlers."""

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from storefront.core.errors import (
    AccountLinkingBlockedError,
    APIError,
    ConflictError,
    ErrorKind,
    ExternalServiceError,
    InternalError,
    InvalidTokenError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)
from storefront.main import create_app


class TestErrorClasses:
    @pytest.mark.parametrize(
        ("error", "status", "code", "kind"),
        [
            (ValidationError("bad"), 400, "VALIDATION_ERROR", ErrorKind.VALIDATION),
            (UnauthorizedError(), 401, "UNAUTHORIZED", ErrorKind.AUTHENTICATION),
            (NotFoundError("Order"), 404, "NOT_FOUND", ErrorKind.NOT_FOUND),
            (
                ConflictError(code="EMAIL_ALREADY_EXISTS", message="taken"),
                400,
                "EMAIL_ALREADY_EXISTS",
                ErrorKind.CONFLICT,
            ),
            (InvalidTokenError(), 400, "INVALID_TOKEN", ErrorKind.AUTHENTICATION),
            (
                ExternalServiceError("down"),
                502,
                "EXTERNAL_SERVICE_ERROR",
                ErrorKind.EXTERNAL_DEPENDENCY,
            ),
            (InternalError(), 500, "INTERNAL_ERROR", ErrorKind.INTERNAL),
            (
                AccountLinkingBlockedError(),
                403,
                "ACCOUNT_LINKING_BLOCKED",
                ErrorKind.AUTHORIZATION,
            ),
        ],
    )
    def test_status_code_and_kind(self, error: APIError, status, code, kind):
        assert error.status_code == status
        assert error.code == code
        assert error.kind is kind

    def test_not_found_message(self):
        assert NotFoundError("Order", "abc").message == "Order with id 'abc' not found"
        assert NotFoundError("Order").message == "Order not found"


class TestHandlers:
    @pytest_asyncio.fixture
    async def app_client(self):
        app = create_app()

        @app.get("/boom/api")
        async def api_boom():
            raise NotFoundError("Thing")

        @app.get("/boom/unhandled")
        async def unhandled_boom():
            raise RuntimeError("secret internals")

        transport = ASGITransport(app=app, raise_app_exceptions=False)
        async with AsyncClient(transport=transport, base_url="http://test") as ac:
            yield ac

    async def test_api_error_envelope(self, app_client: AsyncClient):
        response = await app_client.get("/boom/api")

        assert response.status_code == 404
        assert response.json() == {
            "error": {
                "code": "NOT_FOUND",
                "kind": "not_found",
                "message": "Thing not found",
                "details": None,
            }
        }

    async def test_unhandled_exception_is_generic(self, app_client: AsyncClient):
        response = await app_client.get("/boom/unhandled")

        assert response.status_code == 500
        body = response.json()
        assert body["error"]["code"] == "INTERNAL_ERROR"
        assert body["error"]["kind"] == "internal"
        assert body["error"]["message"] == "An unexpected error occurred"
        assert "secret internals" not in response.text

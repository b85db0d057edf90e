"""Tests for the authentication endpoints and session dependencies.

Covers the error envelope, signup/verify/reset flows over HTTP, login
cookies, and session revocation via token_invalidated_before.
"""

from datetime import UTC, datetime, timedelta

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.config import settings
from storefront.core.email import TemplateKind
from storefront.core.rate_limiting import limiter
from storefront.models import User
from tests.conftest import (
    TEST_PASSWORD,
    FakeNotificationSink,
    auth_cookies,
    create_test_jwt,
    make_user,
)

_COOKIE = settings.auth_cookie_name


def _token_from(notifier: FakeNotificationSink, template: TemplateKind) -> str:
    return notifier.of(template)[-1].parameters["url"].split("token=", 1)[1]


class TestSignupEndpoint:
    async def test_signup_created(
        self, client: AsyncClient, notifier: FakeNotificationSink
    ):
        response = await client.post(
            "/api/v1/auth/signup",
            json={"name": "Alice", "email": "alice@example.com", "password": TEST_PASSWORD},
        )

        assert response.status_code == 201
        assert "message" in response.json()["data"]
        assert len(notifier.of(TemplateKind.VERIFICATION)) == 1

    async def test_invalid_email_envelope(
        self, client: AsyncClient, notifier: FakeNotificationSink
    ):
        response = await client.post(
            "/api/v1/auth/signup",
            json={"name": "A", "email": "bad-email", "password": TEST_PASSWORD},
        )

        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "VALIDATION_ERROR"
        assert error["kind"] == "validation"
        assert notifier.sent == []

    @pytest.mark.parametrize("email", ["a..b@example.com", "user@exa_mple.com"])
    async def test_signup_rejects_what_login_rejects(
        self, client: AsyncClient, notifier: FakeNotificationSink, email: str
    ):
        signup = await client.post(
            "/api/v1/auth/signup",
            json={"name": "Alice", "email": email, "password": TEST_PASSWORD},
        )
        login = await client.post(
            "/api/v1/auth/login", json={"email": email, "password": TEST_PASSWORD}
        )

        assert signup.status_code == 400
        assert signup.json()["error"]["code"] == "VALIDATION_ERROR"
        assert login.status_code == 400
        assert login.json()["error"]["code"] == "VALIDATION_ERROR"
        assert notifier.sent == []

    async def test_duplicate_email(self, client: AsyncClient, verified_user: User):
        response = await client.post(
            "/api/v1/auth/signup",
            json={"name": "Dup", "email": verified_user.email, "password": TEST_PASSWORD},
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "EMAIL_ALREADY_EXISTS"
        assert response.json()["error"]["kind"] == "conflict"

    async def test_send_failure_is_502(
        self, client: AsyncClient, notifier: FakeNotificationSink
    ):
        notifier.fail = True

        response = await client.post(
            "/api/v1/auth/signup",
            json={"name": "Alice", "email": "alice@example.com", "password": TEST_PASSWORD},
        )

        assert response.status_code == 502
        assert response.json()["error"]["kind"] == "external_dependency"

    async def test_unknown_field_rejected(self, client: AsyncClient):
        response = await client.post(
            "/api/v1/auth/signup",
            json={
                "name": "Alice",
                "email": "alice@example.com",
                "password": TEST_PASSWORD,
                "is_admin": True,
            },
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"


class TestVerifyEndpoint:
    async def test_signup_verify_login(
        self, client: AsyncClient, notifier: FakeNotificationSink
    ):
        await client.post(
            "/api/v1/auth/signup",
            json={"name": "Alice", "email": "alice@example.com", "password": TEST_PASSWORD},
        )
        credentials = {"email": "alice@example.com", "password": TEST_PASSWORD}

        before = await client.post("/api/v1/auth/login", json=credentials)
        verified = await client.post(
            "/api/v1/auth/verify-email",
            json={"token": _token_from(notifier, TemplateKind.VERIFICATION)},
        )
        after = await client.post("/api/v1/auth/login", json=credentials)

        assert before.status_code == 401
        assert verified.status_code == 200
        assert verified.json()["data"]["redirect_to"] == "/login?verified=true"
        assert after.status_code == 200
        assert after.json()["data"]["email_verified"] is True

    async def test_invalid_token_is_generic(self, client: AsyncClient):
        response = await client.post(
            "/api/v1/auth/verify-email", json={"token": "0" * 64}
        )

        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "INVALID_TOKEN"
        assert error["message"] == "Invalid or expired token"


class TestPasswordResetEndpoints:
    async def test_request_is_identical_for_unknown_email(
        self,
        client: AsyncClient,
        notifier: FakeNotificationSink,
        verified_user: User,
    ):
        known = await client.post(
            "/api/v1/auth/password-reset/request", json={"email": verified_user.email}
        )
        unknown = await client.post(
            "/api/v1/auth/password-reset/request", json={"email": "ghost@example.com"}
        )

        assert known.status_code == unknown.status_code == 200
        assert known.json() == unknown.json()
        assert len(notifier.of(TemplateKind.RESET)) == 1

    async def test_confirm_revokes_existing_sessions(
        self,
        client: AsyncClient,
        notifier: FakeNotificationSink,
        verified_user: User,
    ):
        old_session = create_test_jwt(
            verified_user.id, iat=datetime.now(UTC) - timedelta(minutes=5)
        )
        client.cookies.set(_COOKIE, old_session)
        assert (await client.get("/api/v1/auth/me")).status_code == 200

        await client.post(
            "/api/v1/auth/password-reset/request", json={"email": verified_user.email}
        )
        confirmed = await client.post(
            "/api/v1/auth/password-reset/confirm",
            json={
                "token": _token_from(notifier, TemplateKind.RESET),
                "password": "N3w!Password",
            },
        )

        assert confirmed.status_code == 200
        assert confirmed.json()["data"]["redirect_to"] == "/login"
        assert (await client.get("/api/v1/auth/me")).status_code == 401

        client.cookies.clear()
        old_password = await client.post(
            "/api/v1/auth/login",
            json={"email": verified_user.email, "password": TEST_PASSWORD},
        )
        new_password = await client.post(
            "/api/v1/auth/login",
            json={"email": verified_user.email, "password": "N3w!Password"},
        )
        assert old_password.status_code == 401
        assert new_password.status_code == 200

        client.cookies.clear()
        client.cookies.set(_COOKIE, new_password.cookies[_COOKIE])
        assert (await client.get("/api/v1/auth/me")).status_code == 200


class TestLoginEndpoint:
    async def test_sets_http_only_cookie(self, client: AsyncClient, verified_user: User):
        response = await client.post(
            "/api/v1/auth/login",
            json={"email": verified_user.email, "password": TEST_PASSWORD},
        )

        assert response.status_code == 200
        assert response.json()["data"]["id"] == str(verified_user.id)
        assert _COOKIE in response.cookies
        set_cookie = response.headers["set-cookie"].lower()
        assert "httponly" in set_cookie
        assert "samesite=lax" in set_cookie

    async def test_failures_share_one_message(
        self, client: AsyncClient, db_session: AsyncSession, verified_user: User
    ):
        await make_user(db_session, "pending@example.com", verified=False)

        responses = [
            await client.post("/api/v1/auth/login", json=body)
            for body in (
                {"email": verified_user.email, "password": "Wr0ng!Pass"},
                {"email": "ghost@example.com", "password": TEST_PASSWORD},
                {"email": "pending@example.com", "password": TEST_PASSWORD},
            )
        ]

        assert {r.status_code for r in responses} == {401}
        assert {r.json()["error"]["message"] for r in responses} == {
            "Incorrect email or password"
        }

    async def test_logout_clears_cookie(self, client: AsyncClient):
        response = await client.post("/api/v1/auth/logout")

        assert response.status_code == 200
        assert f"{_COOKIE}=" in response.headers["set-cookie"]

    async def test_rate_limited(self, client: AsyncClient, verified_user: User):
        limiter.reset()
        limiter.enabled = True
        try:
            responses = [
                await client.post(
                    "/api/v1/auth/login",
                    json={"email": verified_user.email, "password": "Wr0ng!Pass"},
                )
                for _ in range(6)
            ]
        finally:
            limiter.enabled = False
            limiter.reset()

        assert [r.status_code for r in responses[:5]] == [401] * 5
        assert responses[5].status_code == 429
        error = responses[5].json()["error"]
        assert error["code"] == "RATE_LIMITED"
        assert error["kind"] == "rate_limited"


class TestSessionDependency:
    async def test_me_requires_session(self, client: AsyncClient):
        response = await client.get("/api/v1/auth/me")

        assert response.status_code == 401
        assert response.json()["error"]["kind"] == "authentication"

    async def test_valid_session(self, client: AsyncClient, verified_user: User):
        client.cookies.update(auth_cookies(verified_user.id))

        response = await client.get("/api/v1/auth/me")

        assert response.status_code == 200
        assert response.json()["data"]["email"] == verified_user.email

    async def test_wrong_secret_rejected(self, client: AsyncClient, verified_user: User):
        client.cookies.update(
            auth_cookies(verified_user.id, secret="another-secret-that-is-32-chars-long!!")
        )
        assert (await client.get("/api/v1/auth/me")).status_code == 401

    async def test_expired_session_rejected(
        self, client: AsyncClient, verified_user: User
    ):
        client.cookies.update(
            auth_cookies(
                verified_user.id,
                iat=datetime.now(UTC) - timedelta(hours=2),
                expires_delta=timedelta(seconds=-60),
            )
        )
        assert (await client.get("/api/v1/auth/me")).status_code == 401

    async def test_deleted_user_rejected(
        self, client: AsyncClient, verified_user: User
    ):
        client.cookies.update(auth_cookies(verified_user.id))
        assert (await client.delete("/api/v1/account")).status_code == 200

        client.cookies.update(auth_cookies(verified_user.id))
        assert (await client.get("/api/v1/auth/me")).status_code == 401

    async def test_email_check(self, client: AsyncClient, verified_user: User):
        taken = await client.post(
            "/api/v1/auth/email/check", json={"email": verified_user.email}
        )
        free = await client.post(
            "/api/v1/auth/email/check", json={"email": "free@example.com"}
        )

        assert taken.json()["data"] == {"exists": True}
        assert free.json()["data"] == {"exists": False}


async def test_health(client: AsyncClient):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.headers["X-Frame-Options"] == "DENY"

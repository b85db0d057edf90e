"""Authentication endpoints.

Signup, email verification, password reset, login/logout and the
signup-form email check.

Security considerations:
- login: constant-time comparison via DUMMY_HASH prevents user enumeration,
  and every failure has the same message
- password-reset/request: same response whether or not the account exists
- every token failure is the same "Invalid or expired token" error
"""

from fastapi import APIRouter, Request, Response
from pydantic import BaseModel, ConfigDict, EmailStr, Field

from storefront.api.deps import Accounts, CurrentUser
from storefront.core.auth import (
    PASSWORD_MAX_LENGTH,
    clear_auth_cookie,
    create_jwt,
    set_auth_cookie,
)
from storefront.core.config import settings
from storefront.core.rate_limiting import limiter
from storefront.core.responses import DataResponse
from storefront.models import User

router = APIRouter()

_RESET_REQUESTED_MESSAGE = (
    "If an account exists for this email, a password reset link has been sent."
)


# ===================================================================
# Request models
# ===================================================================


class SignupRequest(BaseModel):
    """Request body for POST /auth/signup.

    Only shape is checked here; the name/email/password policy lives in
    AccountService so every entry point enforces it.
    """

    model_config = ConfigDict(extra="forbid")

    name: str = Field(max_length=255)
    email: str = Field(max_length=320)
    password: str = Field(max_length=256)


class LoginRequest(BaseModel):
    """Request body for POST /auth/login."""

    model_config = ConfigDict(extra="forbid")

    email: EmailStr
    password: str = Field(min_length=1, max_length=PASSWORD_MAX_LENGTH)


class TokenRequest(BaseModel):
    """Request body for POST /auth/verify-email."""

    model_config = ConfigDict(extra="forbid")

    token: str = Field(min_length=1, max_length=255)


class EmailRequest(BaseModel):
    """Request body for endpoints that take just an email."""

    model_config = ConfigDict(extra="forbid")

    email: EmailStr


class ResetConfirmRequest(BaseModel):
    """Request body for POST /auth/password-reset/confirm."""

    model_config = ConfigDict(extra="forbid")

    token: str = Field(min_length=1, max_length=255)
    password: str = Field(max_length=256)


def _user_data(user: User) -> dict:
    return {
        "id": str(user.id),
        "email": user.email,
        "name": user.name,
        "image": user.image,
        "email_verified": user.email_verified is not None,
    }


# ===================================================================
# POST /auth/signup
# ===================================================================


@router.post("/signup", status_code=201)
@limiter.limit(lambda: settings.rate_limit_signup)
async def signup(
    request: Request,  # noqa: ARG001 - required by @limiter.limit()
    body: SignupRequest,
    accounts: Accounts,
) -> DataResponse[dict]:
    """Create an account and send the verification email.

    Guest purchases made with this email are claimed by the new account.
    """
    await accounts.sign_up(body.name, body.email, body.password)
    return DataResponse(
        data={
            "message": (
                "Account created. Check your inbox for a link to verify "
                "your email address."
            )
        }
    )


# ===================================================================
# POST /auth/verify-email
# ===================================================================


@router.post("/verify-email")
async def verify_email(body: TokenRequest, accounts: Accounts) -> DataResponse[dict]:
    """Redeem a verification token."""
    await accounts.verify_email(body.token)
    return DataResponse(
        data={
            "message": "Email address verified. You can now sign in.",
            "redirect_to": "/login?verified=true",
        }
    )


# ===================================================================
# Password reset
# ===================================================================


@router.post("/password-reset/request")
@limiter.limit(lambda: settings.rate_limit_password_reset)
async def request_password_reset(
    request: Request,  # noqa: ARG001 - required by @limiter.limit()
    body: EmailRequest,
    accounts: Accounts,
) -> DataResponse[dict]:
    """Send a reset link. Response is identical whether or not the user exists."""
    await accounts.request_password_reset(body.email)
    return DataResponse(data={"message": _RESET_REQUESTED_MESSAGE})


@router.post("/password-reset/confirm")
async def confirm_password_reset(
    body: ResetConfirmRequest,
    accounts: Accounts,
) -> DataResponse[dict]:
    """Set a new password with a reset token. Existing sessions are revoked."""
    await accounts.confirm_password_reset(body.token, body.password)
    return DataResponse(
        data={
            "message": "Password updated. Please sign in with your new password.",
            "redirect_to": "/login",
        }
    )


# ===================================================================
# POST /auth/email/check
# ===================================================================


@router.post("/email/check")
async def check_email(body: EmailRequest, accounts: Accounts) -> DataResponse[dict]:
    """Whether an account already uses this email (signup form hint)."""
    return DataResponse(data={"exists": await accounts.check_email(body.email)})


# ===================================================================
# Session
# ===================================================================


@router.post("/login")
@limiter.limit(lambda: settings.rate_limit_login)
async def login(
    request: Request,  # noqa: ARG001 - required by @limiter.limit()
    body: LoginRequest,
    response: Response,
    accounts: Accounts,
) -> DataResponse[dict]:
    """Verify email + password and issue the session cookie.

    Unverified and deleted accounts are rejected with the same generic
    message as a wrong password.
    """
    user = await accounts.authenticate(body.email, body.password)
    token = create_jwt(
        user_id=str(user.id),
        secret=settings.auth_secret.get_secret_value(),
    )
    set_auth_cookie(response, token)
    return DataResponse(data=_user_data(user))


@router.post("/logout")
async def logout(response: Response) -> DataResponse[dict]:
    """Clear the session cookie."""
    clear_auth_cookie(response)
    return DataResponse(data={"message": "Signed out"})


@router.get("/me")
async def me(user: CurrentUser) -> DataResponse[dict]:
    return DataResponse(data=_user_data(user))

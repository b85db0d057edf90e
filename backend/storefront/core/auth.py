"""Authentication helpers for sessions, password hashing and input policy.

Shared utilities used by the account service and auth endpoints.

Pipeline:
- create_jwt / decode_jwt / set_auth_cookie: session issuance for successful login
- hash_password / check_password: bcrypt with configurable cost
- validate_name / validate_email / validate_password_strength: format rules
- DUMMY_HASH: Timing-safe constant for user enumeration defense
"""

import re
from datetime import UTC, datetime, timedelta
from typing import Any

import bcrypt
import jwt
from email_validator import EmailNotValidError
from email_validator import validate_email as check_email_syntax
from fastapi import Response

from storefront.core.config import settings
from storefront.core.errors import ValidationError

_JWT_AUDIENCE = "model-storefront"

# Pre-computed bcrypt hash for timing-safe comparison on user-not-found.
# Security: prevents user enumeration via response time differences.
DUMMY_HASH = b"$2b$12$ZP2PVB8yI35X.mkRqcUPUuSzJA1CNRt4dZ7X3cyrfJu.2S3w.Qen2"

NAME_MAX_LENGTH = 30
EMAIL_MAX_LENGTH = 254
PASSWORD_MIN_LENGTH = 8
PASSWORD_MAX_LENGTH = 128


def normalize_email(email: str) -> str:
    """Trim and lowercase an email address for storage and lookups."""
    return email.strip().lower()


def create_jwt(
    *,
    user_id: str,
    secret: str,
    expires_delta: timedelta | None = None,
) -> str:
    """Create a signed JWT with standard claims.

    Args:
        user_id: User UUID string for the sub claim.
        secret: HMAC signing secret.
        expires_delta: Time until expiration. Defaults to the session TTL.

    Returns:
        Encoded JWT string.
    """
    now = datetime.now(UTC)
    payload = {
        "sub": user_id,
        "aud": _JWT_AUDIENCE,
        "iss": settings.auth_issuer,
        "exp": now + (expires_delta or timedelta(hours=settings.session_ttl_hours)),
        "iat": now,
    }
    return jwt.encode(payload, secret, algorithm="HS256")


def decode_jwt(token: str) -> dict[str, Any]:
    """Decode and verify a session JWT.

    Raises:
        jwt.InvalidTokenError: On bad signature, expiry, audience or issuer.
    """
    return jwt.decode(
        token,
        settings.auth_secret.get_secret_value(),
        algorithms=["HS256"],
        audience=_JWT_AUDIENCE,
        issuer=settings.auth_issuer,
    )


def set_auth_cookie(response: Response, token: str) -> None:
    """Set httpOnly JWT cookie on response.

    Args:
        response: FastAPI response object.
        token: JWT token string.
    """
    response.set_cookie(
        key=settings.auth_cookie_name,
        value=token,
        httponly=True,
        secure=settings.auth_cookie_secure,
        samesite=settings.auth_cookie_samesite,
        path="/",
        max_age=settings.session_ttl_hours * 3600,
        domain=settings.auth_cookie_domain or None,
    )


def clear_auth_cookie(response: Response) -> None:
    """Delete the session cookie. Attributes must match set_auth_cookie()."""
    response.delete_cookie(
        key=settings.auth_cookie_name,
        path="/",
        httponly=True,
        secure=settings.auth_cookie_secure,
        samesite=settings.auth_cookie_samesite,
        domain=settings.auth_cookie_domain or None,
    )


def hash_password(password: str) -> str:
    """Hash a password with bcrypt at the configured cost factor."""
    return bcrypt.hashpw(
        password.encode(), bcrypt.gensalt(rounds=settings.bcrypt_rounds)
    ).decode()


def check_password(password: str, password_hash: str | None) -> bool:
    """Compare a password against a stored hash.

    Always performs a bcrypt comparison, against DUMMY_HASH when no hash is
    stored, so response time does not reveal whether an account exists.
    """
    if not password_hash:
        bcrypt.checkpw(password.encode(), DUMMY_HASH)
        return False
    return bcrypt.checkpw(password.encode(), password_hash.encode())


def validate_name(name: str) -> str:
    """Validate a display name and return it trimmed.

    Raises:
        ValidationError: If the name is empty or longer than NAME_MAX_LENGTH.
    """
    trimmed = name.strip()
    if not trimmed:
        raise ValidationError("Name must not be empty")
    if len(trimmed) > NAME_MAX_LENGTH:
        raise ValidationError(
            f"Name must be at most {NAME_MAX_LENGTH} characters"
        )
    return trimmed


def validate_email(email: str) -> str:
    """Validate an email address and return it normalized.

    Raises:
        ValidationError: If the address is empty, too long or malformed.
    """
    normalized = normalize_email(email)
    if not normalized:
        raise ValidationError("Email must not be empty")
    if len(normalized) > EMAIL_MAX_LENGTH:
        raise ValidationError("Email is too long")
    try:
        validated = check_email_syntax(normalized, check_deliverability=False)
    except EmailNotValidError as exc:
        raise ValidationError("Enter a valid email address") from exc
    # Same normal form EmailStr gives the login and reset endpoints
    return normalize_email(validated.normalized)


def validate_password_strength(password: str) -> None:
    """Validate password meets strength requirements.

    8-128 chars with at least one lowercase letter, one uppercase letter,
    one number and one special character.

    Args:
        password: Plain-text password to validate.

    Raises:
        ValidationError: If password doesn't meet requirements.
    """
    if len(password) < PASSWORD_MIN_LENGTH:
        raise ValidationError(
            f"Password must be at least {PASSWORD_MIN_LENGTH} characters"
        )
    if len(password) > PASSWORD_MAX_LENGTH:
        raise ValidationError(
            f"Password must be at most {PASSWORD_MAX_LENGTH} characters"
        )
    if not re.search(r"[a-z]", password):
        raise ValidationError("Password must contain at least one lowercase letter")
    if not re.search(r"[A-Z]", password):
        raise ValidationError("Password must contain at least one uppercase letter")
    if not re.search(r"\d", password):
        raise ValidationError("Password must contain at least one number")
    if not re.search(r"[^a-zA-Z\d]", password):
        raise ValidationError("Password must contain at least one special character")

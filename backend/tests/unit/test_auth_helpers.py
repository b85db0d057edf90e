"""Tests for auth helper functions.

JWT creation and decoding, cookie attributes, bcrypt hashing and the
name/email/password input policy.
"""

from datetime import timedelta
from unittest.mock import patch

import jwt
import pytest
from fastapi import Response
from pydantic import SecretStr

from storefront.core.auth import (
    DUMMY_HASH,
    NAME_MAX_LENGTH,
    check_password,
    clear_auth_cookie,
    create_jwt,
    decode_jwt,
    hash_password,
    normalize_email,
    set_auth_cookie,
    validate_email,
    validate_name,
    validate_password_strength,
)
from storefront.core.config import settings
from storefront.core.errors import ValidationError

# Test-only secret for JWT tests
_TEST_SECRET = "test-secret-key-that-is-at-least-32-characters-long"  # nosec B105  # gitleaks:allow
_USER_ID = "00000000-0000-0000-0000-000000000001"


class TestCreateJwt:
    """Tests for create_jwt() and decode_jwt()."""

    def test_contains_required_claims(self):
        """JWT has sub, aud, iss, exp, iat claims."""
        token = create_jwt(user_id=_USER_ID, secret=_TEST_SECRET)
        payload = jwt.decode(
            token,
            _TEST_SECRET,
            algorithms=["HS256"],
            audience="model-storefront",
            issuer=settings.auth_issuer,
        )
        assert payload["sub"] == _USER_ID
        assert {"sub", "aud", "iss", "exp", "iat"} <= set(payload)

    def test_default_expiry_is_session_ttl(self):
        token = create_jwt(user_id=_USER_ID, secret=_TEST_SECRET)
        payload = jwt.decode(token, options={"verify_signature": False})
        assert payload["exp"] - payload["iat"] == settings.session_ttl_hours * 3600

    def test_decode_round_trip(self):
        with patch.object(settings, "auth_secret", SecretStr(_TEST_SECRET)):
            token = create_jwt(user_id=_USER_ID, secret=_TEST_SECRET)
            assert decode_jwt(token)["sub"] == _USER_ID

    def test_decode_rejects_expired(self):
        with patch.object(settings, "auth_secret", SecretStr(_TEST_SECRET)):
            token = create_jwt(
                user_id=_USER_ID,
                secret=_TEST_SECRET,
                expires_delta=timedelta(seconds=-1),
            )
            with pytest.raises(jwt.ExpiredSignatureError):
                decode_jwt(token)

    def test_decode_rejects_other_secret(self):
        with patch.object(settings, "auth_secret", SecretStr(_TEST_SECRET)):
            token = create_jwt(user_id=_USER_ID, secret="x" * 40)
            with pytest.raises(jwt.InvalidSignatureError):
                decode_jwt(token)


class TestCookies:
    def test_set_auth_cookie_attributes(self):
        response = Response()
        set_auth_cookie(response, "jwt-value")

        header = response.headers["set-cookie"]
        assert header.startswith(f"{settings.auth_cookie_name}=jwt-value")
        assert "HttpOnly" in header
        assert "Path=/" in header
        assert f"Max-Age={settings.session_ttl_hours * 3600}" in header

    def test_clear_auth_cookie_expires(self):
        response = Response()
        clear_auth_cookie(response)

        header = response.headers["set-cookie"]
        assert "Max-Age=0" in header
        assert "HttpOnly" in header


class TestPasswordHashing:
    def test_hash_and_check(self):
        hashed = hash_password("Str0ng!Pass")
        assert hashed.startswith("$2b$")
        assert check_password("Str0ng!Pass", hashed)
        assert not check_password("str0ng!pass", hashed)

    def test_missing_hash_still_runs_bcrypt(self):
        with patch("storefront.core.auth.bcrypt.checkpw", return_value=True) as checkpw:
            assert check_password("anything", None) is False
        checkpw.assert_called_once_with(b"anything", DUMMY_HASH)


class TestValidateName:
    def test_trims(self):
        assert validate_name("  Alice  ") == "Alice"

    def test_max_length_inclusive(self):
        assert validate_name("x" * NAME_MAX_LENGTH) == "x" * NAME_MAX_LENGTH

    @pytest.mark.parametrize("name", ["", "   ", "x" * (NAME_MAX_LENGTH + 1)])
    def test_rejects(self, name):
        with pytest.raises(ValidationError):
            validate_name(name)


class TestValidateEmail:
    def test_normalizes(self):
        assert validate_email("  Alice@Example.COM ") == "alice@example.com"
        assert normalize_email(" A@B.C ") == "a@b.c"

    @pytest.mark.parametrize(
        "email",
        [
            "",
            "bad-email",
            "no-at.example.com",
            "a@b",
            "a b@example.com",
            "a@@example.com",
            "a..b@example.com",
            "user@exa_mple.com",
        ],
    )
    def test_rejects(self, email):
        with pytest.raises(ValidationError):
            validate_email(email)

    def test_rejects_too_long(self):
        with pytest.raises(ValidationError, match="too long"):
            validate_email("a" * 250 + "@example.com")


class TestValidatePasswordStrength:
    def test_accepts_strong(self):
        validate_password_strength("Str0ng!Pass")

    @pytest.mark.parametrize(
        ("password", "message"),
        [
            ("S0!a", "at least 8"),
            ("S0!a" * 33, "at most 128"),
            ("STR0NG!PASS", "lowercase"),
            ("str0ng!pass", "uppercase"),
            ("Strong!Pass", "number"),
            ("Str0ngPass", "special"),
        ],
    )
    def test_rejects(self, password, message):
        with pytest.raises(ValidationError, match=message):
            validate_password_strength(password)

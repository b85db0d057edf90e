"""Application configuration loaded from environment variables.

Settings for database, API, session cookies, email delivery, payments and
object storage. Uses pydantic-settings for validation and .env file support.
"""

from typing import Literal

from pydantic import SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Known insecure default password that must not be used in production
# Security: Runtime check in check_production_security() prevents use in production
_INSECURE_DEFAULT_PASSWORD = "storefront_dev_password"  # nosec B105

# Minimum length for AUTH_SECRET in production (256 bits = 32 bytes)
_MIN_AUTH_SECRET_LENGTH = 32


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Database
    database_host: str = "localhost"
    database_port: int = 5432
    database_name: str = "storefront"
    database_user: str = "storefront_user"
    database_password: str = _INSECURE_DEFAULT_PASSWORD
    # Full SQLAlchemy URL; overrides the host/port/name fields when set
    database_url_override: str = ""

    # API
    api_host: str = "0.0.0.0"  # nosec B104
    api_port: int = 8000

    # CORS (Security)
    # CRITICAL: Never set to ["*"] when allow_credentials=True
    allowed_origins: list[str] = ["http://localhost:3000"]

    # Application
    environment: str = "development"
    log_level: str = "INFO"

    # Session cookie (JWT, HS256)
    auth_secret: SecretStr = SecretStr("")
    auth_issuer: str = "model-storefront"
    auth_cookie_name: str = "storefront.session-token"
    auth_cookie_secure: bool = True
    auth_cookie_samesite: Literal["lax", "strict", "none"] = "lax"
    auth_cookie_domain: str = ""
    session_ttl_hours: int = 12
    bcrypt_rounds: int = 12

    # Email (Resend)
    email_from: str = "noreply@model-storefront.example"
    resend_api_key: SecretStr = SecretStr("")

    # Frontend URL (base for verification, reset, download and signup links)
    frontend_url: str = "http://localhost:3000"

    # Payments (Stripe)
    stripe_secret_key: SecretStr = SecretStr("")
    stripe_webhook_secret: SecretStr = SecretStr("")

    # Object storage (S3-compatible) for downloadable model archives
    s3_bucket: str = "storefront-models"
    s3_region: str = "ap-northeast-1"
    s3_endpoint: str = ""
    s3_access_key: SecretStr = SecretStr("")
    s3_secret_key: SecretStr = SecretStr("")
    download_url_ttl_seconds: int = 3600

    # Rate Limiting (Security)
    # Format: "count/period" (e.g., "5/15minute", "3/hour")
    rate_limit_login: str = "5/15minute"
    rate_limit_signup: str = "3/hour"
    rate_limit_password_reset: str = "5/hour"
    rate_limit_enabled: bool = True  # Disable for testing

    @property
    def database_url(self) -> str:
        """Async database URL for SQLAlchemy."""
        if self.database_url_override:
            return self.database_url_override
        return (
            f"postgresql+asyncpg://{self.database_user}:{self.database_password}"
            f"@{self.database_host}:{self.database_port}/{self.database_name}"
        )

    @property
    def database_url_sync(self) -> str:
        """Sync database URL for Alembic."""
        if self.database_url_override:
            return self.database_url_override.replace("+asyncpg", "").replace(
                "+aiosqlite", ""
            )
        return (
            f"postgresql://{self.database_user}:{self.database_password}"
            f"@{self.database_host}:{self.database_port}/{self.database_name}"
        )

    @model_validator(mode="after")
    def check_production_security(self) -> "Settings":
        """Validate production security requirements.

        Checks:
        - SameSite=None requires Secure flag (all environments)
        - CORS must not use wildcard origin (all environments)
        - Database password must not be the default in production
        - AUTH_SECRET must be set and >= 32 chars in production
        """
        if self.auth_cookie_samesite == "none" and not self.auth_cookie_secure:
            msg = (
                "AUTH_COOKIE_SECURE must be true when AUTH_COOKIE_SAMESITE=none. "
                "Browsers reject SameSite=None cookies without the Secure flag."
            )
            raise ValueError(msg)

        if "*" in self.allowed_origins:
            msg = (
                "ALLOWED_ORIGINS must not contain '*' (wildcard). "
                "This application uses credentials (cookies) which are "
                "incompatible with wildcard CORS origins."
            )
            raise ValueError(msg)

        if self.session_ttl_hours <= 0:
            msg = f"SESSION_TTL_HOURS must be positive. Got: {self.session_ttl_hours}"
            raise ValueError(msg)

        if self.environment == "production":
            if (
                not self.database_url_override
                and self.database_password == _INSECURE_DEFAULT_PASSWORD
            ):
                msg = (
                    "Cannot use default database password in production. "
                    "Set DATABASE_PASSWORD environment variable to a secure value."
                )
                raise ValueError(msg)

            secret_value = self.auth_secret.get_secret_value()
            if not secret_value:
                msg = (
                    "AUTH_SECRET must be set in production. "
                    'Generate with: python -c "import secrets; '
                    'print(secrets.token_hex(32))"'
                )
                raise ValueError(msg)
            if len(secret_value) < _MIN_AUTH_SECRET_LENGTH:
                msg = (
                    f"AUTH_SECRET must be at least {_MIN_AUTH_SECRET_LENGTH} "
                    "characters for adequate security."
                )
                raise ValueError(msg)

        return self


settings = Settings()

"""Rate limiting configuration using slowapi.

Security: Throttles credential stuffing on login and abuse of the
endpoints that send email (signup, password reset).

Authenticated requests are keyed on the JWT subject so users behind a
shared IP don't throttle each other; everything else is keyed on the
client IP.

Usage in routers:
    from storefront.core.rate_limiting import limiter

    @router.post("/login")
    @limiter.limit(lambda: settings.rate_limit_login)
    async def login(request: Request, ...):
        ...
"""

import jwt
from fastapi import Request, Response
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.responses import JSONResponse

from storefront.core.auth import decode_jwt
from storefront.core.config import settings
from storefront.core.errors import ErrorKind


def _rate_limit_key_func(request: Request) -> str:
    """Get rate limit key from request.

    Key format:
    - Valid session JWT: "user:{sub}"
    - No/invalid JWT: "unauth:{ip}"

    Args:
        request: The incoming request.

    Returns:
        Rate limit key string.
    """
    # No iat/revocation check here: rate limiting only needs the sub
    # claim for keying. Full auth validation happens in deps.py.
    token = request.cookies.get(settings.auth_cookie_name)
    if token:
        try:
            sub = decode_jwt(token)["sub"]
            # sub must look like a UUID (36 chars)
            if len(sub) <= 36:
                return f"user:{sub}"
        except (jwt.InvalidTokenError, KeyError):
            pass

    return f"unauth:{get_remote_address(request)}"


# Global limiter instance
# Configured with in-memory storage (suitable for single-instance deployment)
# For multi-instance, configure Redis storage via RATELIMIT_STORAGE_URL
limiter = Limiter(
    key_func=_rate_limit_key_func,
    enabled=settings.rate_limit_enabled,
)


def rate_limit_exceeded_handler(
    _request: Request,
    exc: RateLimitExceeded,
) -> Response:
    """Handle rate limit exceeded errors.

    Returns 429 Too Many Requests with the standard error envelope.

    Args:
        request: The incoming request.
        exc: The rate limit exception.

    Returns:
        JSONResponse with 429 status and retry-after header.
    """
    # Parse retry-after from exception detail (e.g., "5 per 15 minute")
    # Fallback to 60 seconds if parsing fails
    try:
        retry_after = str(exc.detail.split()[-1])
        int(retry_after.rstrip("s"))
    except (ValueError, AttributeError, IndexError):
        retry_after = "60"

    return JSONResponse(
        status_code=429,
        content={
            "error": {
                "code": "RATE_LIMITED",
                "kind": ErrorKind.RATE_LIMITED.value,
                "message": "Too many requests. Please try again later.",
                "details": None,
            }
        },
        headers={"Retry-After": retry_after},
    )

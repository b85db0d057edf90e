"""Shared dependencies for API endpoints.

Caller identity comes from the session JWT in an httpOnly cookie and is
passed to services as a plain user id. Collaborators (notification sink,
signed-URL issuer, payment gateway, clock) are resolved here so tests can
swap them through ``app.dependency_overrides``.
"""

import uuid
from typing import Annotated

import jwt
from fastapi import Depends, Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.auth import decode_jwt
from storefront.core.config import settings
from storefront.core.database import get_db
from storefront.core.email import NotificationSink, get_notification_sink
from storefront.core.errors import UnauthorizedError
from storefront.core.payments import StripeGateway, get_payment_gateway
from storefront.core.storage import SignedUrlIssuer, get_signed_url_issuer
from storefront.models import User
from storefront.services.account_service import AccountService
from storefront.services.entitlement_service import EntitlementService
from storefront.services.purchase_service import PurchaseService
from storefront.services.token_service import Clock, TokenService, utc_now


def get_clock() -> Clock:
    """Time source for token expiry. Overridden in tests."""
    return utc_now


async def _resolve_session_user_id(request: Request, db: AsyncSession) -> uuid.UUID | None:
    """Validate the session cookie and return its user id, or None.

    Validation steps:
    1. Read JWT from cookie
    2. Decode + verify signature (HS256), exp, aud, iss
    3. Extract sub as UUID
    4. Reject deleted users and JWTs issued before token_invalidated_before
    """
    token = request.cookies.get(settings.auth_cookie_name)
    if not token:
        return None

    try:
        payload = decode_jwt(token)
        user_id = uuid.UUID(payload["sub"])
    except (jwt.InvalidTokenError, KeyError, ValueError):
        return None

    # Security: iat is required for revocation check. A JWT without iat
    # would bypass token_invalidated_before entirely.
    iat = payload.get("iat")
    if iat is None:
        return None

    result = await db.execute(
        select(User.is_deleted, User.token_invalidated_before).where(User.id == user_id)
    )
    row = result.one_or_none()
    if row is None or row.is_deleted:
        return None
    if (
        row.token_invalidated_before is not None
        and iat < row.token_invalidated_before.timestamp()
    ):
        return None

    return user_id


async def get_current_user_id(
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> uuid.UUID:
    """Authenticated caller's user id.

    Raises:
        UnauthorizedError: For any auth failure. Security: never says why.
    """
    user_id = await _resolve_session_user_id(request, db)
    if user_id is None:
        raise UnauthorizedError()
    return user_id


async def get_optional_user_id(
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> uuid.UUID | None:
    """Caller's user id if a valid session is present, else None."""
    return await _resolve_session_user_id(request, db)


async def get_current_user(
    user_id: Annotated[uuid.UUID, Depends(get_current_user_id)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> User:
    """Get full User object for current user.

    Raises:
        UnauthorizedError: If the user no longer exists.
    """
    user = await db.get(User, user_id)
    if user is None:
        raise UnauthorizedError()
    return user


# Reusable type aliases for dependency injection
CurrentUserId = Annotated[uuid.UUID, Depends(get_current_user_id)]
OptionalUserId = Annotated[uuid.UUID | None, Depends(get_optional_user_id)]
CurrentUser = Annotated[User, Depends(get_current_user)]
DbSession = Annotated[AsyncSession, Depends(get_db)]
Notifier = Annotated[NotificationSink, Depends(get_notification_sink)]
UrlIssuer = Annotated[SignedUrlIssuer, Depends(get_signed_url_issuer)]
PaymentGateway = Annotated[StripeGateway, Depends(get_payment_gateway)]
ClockDep = Annotated[Clock, Depends(get_clock)]


def get_token_service(db: DbSession, clock: ClockDep) -> TokenService:
    return TokenService(db, clock=clock)


Tokens = Annotated[TokenService, Depends(get_token_service)]


def get_account_service(
    db: DbSession, notifier: Notifier, tokens: Tokens
) -> AccountService:
    return AccountService(db, notifier=notifier, tokens=tokens)


def get_purchase_service(
    db: DbSession, notifier: Notifier, tokens: Tokens
) -> PurchaseService:
    return PurchaseService(db, notifier=notifier, tokens=tokens)


def get_entitlement_service(
    db: DbSession, tokens: Tokens, url_issuer: UrlIssuer
) -> EntitlementService:
    return EntitlementService(db, tokens=tokens, url_issuer=url_issuer)


Accounts = Annotated[AccountService, Depends(get_account_service)]
Purchases = Annotated[PurchaseService, Depends(get_purchase_service)]
Entitlements = Annotated[EntitlementService, Depends(get_entitlement_service)]

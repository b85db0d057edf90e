"""Token service - issue, verify and redeem single-use credentials.

State machine per token: ISSUED -> CONSUMED (row deleted) or
ISSUED -> EXPIRED (detected lazily, swept by purge_expired). Nothing in
this module commits; every call runs inside the caller's transaction so
token changes are atomic with the effect they authorize.

Every failure is the same InvalidTokenError. Security: callers must not
learn whether a secret was unknown, expired, consumed or of another type.
"""

import logging
import secrets
import uuid
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.errors import InvalidTokenError
from storefront.models.token import Token, TokenType
from storefront.repositories.token_repository import TokenRepository

logger = logging.getLogger(__name__)

TOKEN_TTLS: dict[TokenType, timedelta] = {
    TokenType.VERIFICATION: timedelta(hours=24),
    TokenType.RESET: timedelta(hours=1),
    TokenType.DOWNLOAD: timedelta(days=7),
}

# 32 bytes -> 256 bits of entropy, 64 hex characters.
_SECRET_BYTES = 32

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(UTC)


class TokenService:
    """Issues and redeems tokens against the tokens table.

    Args:
        db: Async database session. The caller owns commit/rollback.
        clock: Source of the current time. Tests pass a controllable clock.
    """

    def __init__(self, db: AsyncSession, *, clock: Clock = utc_now) -> None:
        self._db = db
        self._clock = clock

    def now(self) -> datetime:
        return self._clock()

    async def issue(
        self,
        type: TokenType,
        *,
        subject_email: str | None = None,
        user_id: uuid.UUID | None = None,
        order_id: uuid.UUID | None = None,
    ) -> Token:
        """Mint and persist a new token.

        Args:
            type: Credential purpose; determines the TTL.
            subject_email: Email the token authenticates.
            user_id: Owning user, if already known.
            order_id: Purchase the token grants access to (DOWNLOAD only).

        Returns:
            The persisted Token. ``token.secret`` is the value to deliver.

        Raises:
            ValueError: If a DOWNLOAD token lacks order_id, or a
                VERIFICATION/RESET token lacks subject_email.
        """
        if type is TokenType.DOWNLOAD and order_id is None:
            raise ValueError("DOWNLOAD tokens require an order_id")
        if type is not TokenType.DOWNLOAD and not subject_email:
            raise ValueError(f"{type} tokens require a subject_email")

        token = await TokenRepository.create(
            self._db,
            type=type,
            secret=secrets.token_hex(_SECRET_BYTES),
            expires_at=self.now() + TOKEN_TTLS[type],
            subject_email=subject_email,
            user_id=user_id,
            order_id=order_id,
        )
        logger.info(
            "Token issued",
            extra={"token_type": str(type), "token_id": str(token.id)},
        )
        return token

    async def verify(self, secret: str, type: TokenType) -> Token:
        """Return the live token for ``secret`` without changing state.

        Raises:
            InvalidTokenError: If absent, expired or of a different type.
        """
        if not secret:
            raise InvalidTokenError()
        token = await TokenRepository.get_valid(
            self._db, secret=secret, type=type, now=self.now()
        )
        if token is None:
            raise InvalidTokenError()
        return token

    async def consume(self, secret: str, type: TokenType) -> None:
        """Delete the token if it is still live.

        Two concurrent calls for the same secret yield exactly one success;
        the loser sees the row already gone and gets InvalidTokenError.

        Raises:
            InvalidTokenError: If no live row was deleted.
        """
        if not secret:
            raise InvalidTokenError()
        deleted = await TokenRepository.delete_valid(
            self._db, secret=secret, type=type, now=self.now()
        )
        if not deleted:
            raise InvalidTokenError()

    async def redeem(self, secret: str, type: TokenType) -> Token:
        """Verify then consume in one step, returning the redeemed token.

        Raises:
            InvalidTokenError: If the token is not live or was consumed
                concurrently.
        """
        token = await self.verify(secret, type)
        await self.consume(secret, type)
        return token

    async def revoke_for_user(
        self,
        user_id: uuid.UUID,
        *,
        type: TokenType | None = None,
        subject_email: str | None = None,
    ) -> int:
        """Delete a user's outstanding tokens, optionally of one type."""
        return await TokenRepository.delete_for_user(
            self._db, user_id, type=type, subject_email=subject_email
        )

    async def attach_download_tokens(
        self, *, subject_email: str, user_id: uuid.UUID
    ) -> int:
        """Attach guest DOWNLOAD tokens for an email to a user."""
        return await TokenRepository.attach_download_tokens(
            self._db, subject_email=subject_email, user_id=user_id
        )

    async def purge_expired(self) -> int:
        """Delete every expired token. Returns the number removed."""
        count = await TokenRepository.delete_expired(self._db, now=self.now())
        logger.info("Expired tokens purged", extra={"count": count})
        return count

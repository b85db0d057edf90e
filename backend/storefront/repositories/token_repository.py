"""Repository for Token CRUD operations.

Expiry is always evaluated in SQL against a caller-supplied ``now`` so the
token service's clock is the single source of time.
"""

import uuid
from datetime import datetime

from sqlalchemy import delete, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.models.token import Token, TokenType


class TokenRepository:
    """Stateless repository for Token table operations.

    All methods are static; no instance state.
    """

    @staticmethod
    async def create(
        db: AsyncSession,
        *,
        type: TokenType,
        secret: str,
        expires_at: datetime,
        subject_email: str | None = None,
        user_id: uuid.UUID | None = None,
        order_id: uuid.UUID | None = None,
    ) -> Token:
        """Store a new token.

        Args:
            db: Async database session.
            type: Credential purpose.
            secret: Opaque secret value.
            expires_at: Absolute expiry.
            subject_email: Email the token authenticates.
            user_id: Owning user, if any.
            order_id: Purchase for DOWNLOAD tokens.

        Returns:
            Created Token.

        Raises:
            sqlalchemy.exc.IntegrityError: If the secret collides.
        """
        token = Token(
            type=type,
            secret=secret,
            expires_at=expires_at,
            subject_email=subject_email,
            user_id=user_id,
            order_id=order_id,
        )
        db.add(token)
        await db.flush()
        return token

    @staticmethod
    async def get_valid(
        db: AsyncSession,
        *,
        secret: str,
        type: TokenType,
        now: datetime,
    ) -> Token | None:
        """Look up an unexpired token by secret and type.

        Args:
            db: Async database session.
            secret: Opaque secret value.
            type: Expected credential purpose.
            now: Current time.

        Returns:
            Token if present and unexpired, None otherwise.
        """
        stmt = select(Token).where(
            Token.secret == secret,
            Token.type == type,
            Token.expires_at > now,
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def delete_valid(
        db: AsyncSession,
        *,
        secret: str,
        type: TokenType,
        now: datetime,
    ) -> bool:
        """Delete an unexpired token if it is still present.

        The affected-row count decides the winner when two redemptions race.

        Args:
            db: Async database session.
            secret: Opaque secret value.
            type: Expected credential purpose.
            now: Current time.

        Returns:
            True if exactly one row was deleted.
        """
        stmt = (
            delete(Token)
            .where(
                Token.secret == secret,
                Token.type == type,
                Token.expires_at > now,
            )
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(stmt)
        return result.rowcount == 1  # type: ignore[attr-defined]

    @staticmethod
    async def delete_for_user(
        db: AsyncSession,
        user_id: uuid.UUID,
        *,
        type: TokenType | None = None,
        subject_email: str | None = None,
    ) -> int:
        """Delete a user's tokens.

        Args:
            db: Async database session.
            user_id: Owning user.
            type: Restrict to one credential purpose.
            subject_email: Also match tokens issued to this email that
                were never attached to the user.

        Returns:
            Number of deleted rows.
        """
        owner = Token.user_id == user_id
        if subject_email is not None:
            owner = or_(owner, Token.subject_email == subject_email)
        stmt = delete(Token).where(owner)
        if type is not None:
            stmt = stmt.where(Token.type == type)
        result = await db.execute(stmt.execution_options(synchronize_session=False))
        row_count: int = result.rowcount  # type: ignore[attr-defined]
        return row_count

    @staticmethod
    async def attach_download_tokens(
        db: AsyncSession,
        *,
        subject_email: str,
        user_id: uuid.UUID,
    ) -> int:
        """Attach unowned DOWNLOAD tokens issued to an email to a user.

        Args:
            db: Async database session.
            subject_email: Email the tokens were issued to.
            user_id: New owner.

        Returns:
            Number of re-parented tokens.
        """
        stmt = (
            update(Token)
            .where(
                Token.type == TokenType.DOWNLOAD,
                Token.subject_email == subject_email,
                Token.user_id.is_(None),
            )
            .values(user_id=user_id)
        )
        result = await db.execute(stmt)
        row_count: int = result.rowcount  # type: ignore[attr-defined]
        return row_count

    @staticmethod
    async def delete_expired(db: AsyncSession, *, now: datetime) -> int:
        """Delete all expired tokens (periodic cleanup).

        Args:
            db: Async database session.
            now: Current time.

        Returns:
            Number of deleted rows.
        """
        stmt = delete(Token).where(Token.expires_at <= now)
        result = await db.execute(stmt.execution_options(synchronize_session=False))
        row_count: int = result.rowcount  # type: ignore[attr-defined]
        return row_count

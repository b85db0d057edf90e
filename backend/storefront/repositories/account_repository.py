"""Repository for Account CRUD operations.

Follows the repository pattern established by UserRepository.
"""

import uuid

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.models.account import Account


class AccountRepository:
    """Stateless repository for Account table operations.

    All methods are static; no instance state. Pass an AsyncSession
    for every call so the caller controls transaction boundaries.
    """

    @staticmethod
    async def create(
        db: AsyncSession,
        *,
        user_id: uuid.UUID,
        type: str,
        provider: str,
        provider_account_id: str,
    ) -> Account:
        """Create a new account record linking a provider to a user.

        Args:
            db: Async database session.
            user_id: FK to users table.
            type: Account type ("oauth").
            provider: Provider name ("google", etc.).
            provider_account_id: Provider's unique user identifier.

        Returns:
            Created Account with database-generated fields populated.

        Raises:
            sqlalchemy.exc.IntegrityError: If provider+account_id already exists.
        """
        account = Account(
            user_id=user_id,
            type=type,
            provider=provider,
            provider_account_id=provider_account_id,
        )
        db.add(account)
        await db.flush()
        await db.refresh(account)
        return account

    @staticmethod
    async def get_by_provider_and_account_id(
        db: AsyncSession,
        provider: str,
        provider_account_id: str,
    ) -> Account | None:
        """Find an account by provider name and provider's user ID.

        Used to identify returning users: if the provider + account ID
        already exists, we know which user this is (regardless of email).

        Args:
            db: Async database session.
            provider: Provider name (e.g., "google").
            provider_account_id: Provider's unique user identifier.

        Returns:
            Account if found, None otherwise.
        """
        stmt = select(Account).where(
            Account.provider == provider,
            Account.provider_account_id == provider_account_id,
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def delete_for_user(db: AsyncSession, user_id: uuid.UUID) -> int:
        """Unlink every external identity of a user.

        Args:
            db: Async database session.
            user_id: UUID of the user.

        Returns:
            Number of deleted rows.
        """
        stmt = delete(Account).where(Account.user_id == user_id)
        result = await db.execute(stmt)
        row_count: int = result.rowcount  # type: ignore[attr-defined]
        return row_count

"""Repository for User CRUD operations."""

import uuid
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.models.user import User

# Fields that may be updated via UserRepository.update().
# Security: Never add 'id', 'email', 'is_deleted' or the timestamps.
# Anonymization goes through anonymize() so it cannot happen piecemeal.
_UPDATABLE_FIELDS: frozenset[str] = frozenset(
    {
        "name",
        "email_verified",
        "image",
        "password_hash",
        "token_invalidated_before",
    }
)


class UserRepository:
    """Stateless repository for User table operations.

    All methods are static; no instance state. Pass an AsyncSession
    for every call so the caller controls transaction boundaries.
    """

    @staticmethod
    async def get_by_id(db: AsyncSession, user_id: uuid.UUID) -> User | None:
        """Fetch a user by primary key.

        Args:
            db: Async database session.
            user_id: UUID primary key.

        Returns:
            User if found, None otherwise.
        """
        return await db.get(User, user_id)

    @staticmethod
    async def get_by_email(db: AsyncSession, email: str) -> User | None:
        """Fetch an active (not deleted) user by email address.

        Args:
            db: Async database session.
            email: Email address to look up. Compared lowercased.

        Returns:
            User if found, None otherwise.
        """
        stmt = select(User).where(
            User.email == email.lower(),
            User.is_deleted.is_(False),
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def create(
        db: AsyncSession,
        *,
        email: str,
        name: str | None = None,
        password_hash: str | None = None,
        email_verified: datetime | None = None,
        image: str | None = None,
    ) -> User:
        """Create a new user.

        Email is normalized to lowercase before storage.

        Args:
            db: Async database session.
            email: User email address.
            name: Display name.
            password_hash: bcrypt hash (None for OAuth-only users).
            email_verified: Timestamp when email was verified.
            image: Profile picture URL.

        Returns:
            Created User with database-generated fields populated.

        Raises:
            sqlalchemy.exc.IntegrityError: If email already exists.
        """
        user = User(
            email=email.lower(),
            name=name,
            password_hash=password_hash,
            email_verified=email_verified,
            image=image,
        )
        db.add(user)
        await db.flush()
        await db.refresh(user)
        return user

    @staticmethod
    async def update(
        db: AsyncSession,
        user_id: uuid.UUID,
        **kwargs: str | datetime | None,
    ) -> User | None:
        """Update user fields.

        Only fields in _UPDATABLE_FIELDS are allowed. Unknown field names
        raise ValueError.

        Args:
            db: Async database session.
            user_id: UUID of the user to update.
            **kwargs: Field names and values to update.

        Returns:
            Updated User if found, None if user does not exist.

        Raises:
            ValueError: If an unknown field name is passed.
        """
        unknown = set(kwargs) - _UPDATABLE_FIELDS
        if unknown:
            msg = f"Unknown fields: {', '.join(sorted(unknown))}"
            raise ValueError(msg)

        user = await db.get(User, user_id)
        if user is None:
            return None

        for field, value in kwargs.items():
            setattr(user, field, value)

        await db.flush()
        await db.refresh(user)
        return user

    @staticmethod
    async def anonymize(
        db: AsyncSession,
        user: User,
        *,
        placeholder_email: str,
        placeholder_name: str,
        deleted_at: datetime,
    ) -> User:
        """Scrub identifying fields and mark the user deleted.

        Args:
            db: Async database session.
            user: User to anonymize.
            placeholder_email: Unique non-deliverable address.
            placeholder_name: Fixed display name.
            deleted_at: Deletion timestamp.

        Returns:
            The anonymized User.
        """
        user.email = placeholder_email
        user.name = placeholder_name
        user.password_hash = None
        user.image = None
        user.is_deleted = True
        user.deleted_at = deleted_at
        await db.flush()
        return user

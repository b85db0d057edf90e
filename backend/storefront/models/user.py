"""User model - credentials and OAuth accounts.

Users are never hard-deleted while orders reference them; deletion
anonymizes the row (see AccountService.delete_account).
"""

import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, String, Text, Uuid, false
from sqlalchemy.orm import Mapped, mapped_column, relationship

from storefront.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from storefront.models.account import Account

_CASCADE_ALL_DELETE_ORPHAN = "all, delete-orphan"


class User(Base, TimestampMixin):
    """Storefront customer account.

    Attributes:
        id: UUID primary key.
        email: Unique email address. Replaced by a placeholder on deletion.
        name: Display name.
        email_verified: Timestamp when email was verified. NULL = unverified,
            which blocks credentials login.
        image: Avatar URL from the OAuth provider.
        password_hash: bcrypt hash. NULL for OAuth-only users.
        is_deleted: Whether the account has been anonymized.
        deleted_at: When the account was anonymized.
        token_invalidated_before: Session JWTs issued before this are rejected.
    """

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=uuid.uuid4,
    )
    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
    )
    name: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )
    email_verified: Mapped[datetime | None] = mapped_column(
        nullable=True,
    )
    image: Mapped[str | None] = mapped_column(
        Text(),
        nullable=True,
    )
    password_hash: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )
    is_deleted: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        server_default=false(),
        default=False,
    )
    deleted_at: Mapped[datetime | None] = mapped_column(
        nullable=True,
    )
    token_invalidated_before: Mapped[datetime | None] = mapped_column(
        nullable=True,
    )

    # Relationships
    accounts: Mapped[list["Account"]] = relationship(
        "Account",
        back_populates="user",
        cascade=_CASCADE_ALL_DELETE_ORPHAN,
    )

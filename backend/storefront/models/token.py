"""Token model - single-use, typed, time-bounded credentials.

One table for all three credential kinds. A token is valid while
``expires > now`` and the row exists; redemption deletes the row.
"""

import enum
import uuid
from datetime import datetime

from sqlalchemy import CheckConstraint, Enum, ForeignKey, Index, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from storefront.models.base import Base


class TokenType(enum.StrEnum):
    """Closed set of credential purposes."""

    VERIFICATION = "VERIFICATION"
    RESET = "RESET"
    DOWNLOAD = "DOWNLOAD"


class Token(Base):
    """Opaque credential row.

    VERIFICATION and RESET tokens always carry ``identifier`` (the subject
    email). DOWNLOAD tokens always carry ``order_id``; their scope is every
    item of that order.

    Attributes:
        id: UUID primary key.
        type: Credential purpose.
        secret: 64 hex chars (256 bits) from ``secrets.token_hex``. Unique.
        expires_at: Absolute expiry. Column ``expires``.
        subject_email: Email the token authenticates. Column ``identifier``.
        user_id: Owning user, set once the credential is attached to an account.
        order_id: Purchase a DOWNLOAD token grants access to.
    """

    __tablename__ = "tokens"
    __table_args__ = (
        Index("ix_tokens_identifier_type", "identifier", "type"),
        Index("ix_tokens_expires", "expires"),
        CheckConstraint(
            "type <> 'DOWNLOAD' OR order_id IS NOT NULL",
            name="ck_tokens_download_order",
        ),
        CheckConstraint(
            "type = 'DOWNLOAD' OR identifier IS NOT NULL",
            name="ck_tokens_subject_email",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=uuid.uuid4,
    )
    type: Mapped[TokenType] = mapped_column(
        Enum(TokenType, native_enum=False, length=20, name="token_type"),
        nullable=False,
    )
    secret: Mapped[str] = mapped_column(
        String(64),
        unique=True,
        nullable=False,
    )
    expires_at: Mapped[datetime] = mapped_column(
        "expires",
        nullable=False,
    )
    subject_email: Mapped[str | None] = mapped_column(
        "identifier",
        String(255),
        nullable=True,
    )
    user_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    order_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(),
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )

"""Order and OrderItem models - completed purchases.

Orders are financial records: never deleted, ``is_paid`` never reverts,
and item name/price are frozen at purchase time.
"""

import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, ForeignKey, Integer, String, Uuid, false
from sqlalchemy.orm import Mapped, mapped_column, relationship

from storefront.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from storefront.models.product import Product

_CASCADE_ALL_DELETE_ORPHAN = "all, delete-orphan"


class Order(Base, TimestampMixin):
    """A paid purchase, owned by a user or attributed to a guest email.

    Attributes:
        id: UUID primary key.
        order_number: Human-facing unique code (``ORD...``).
        user_id: Owning user. NULL for guest purchases until claimed.
        order_email: Email the purchase is attributed to.
        is_paid: Payment captured.
        paid_at: When payment was captured.
        total_amount: Total charged, in yen.
        payment_session_id: Provider checkout session id. Unique; the
            idempotency key for payment confirmations.
        payment_intent_id: Provider payment reference.
        items: Captured line items.
    """

    __tablename__ = "orders"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=uuid.uuid4,
    )
    order_number: Mapped[str] = mapped_column(
        String(32),
        unique=True,
        nullable=False,
    )
    user_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(),
        ForeignKey("users.id"),
        nullable=True,
        index=True,
    )
    order_email: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        index=True,
    )
    is_paid: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        server_default=false(),
        default=False,
    )
    paid_at: Mapped[datetime | None] = mapped_column(
        nullable=True,
    )
    total_amount: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )
    payment_session_id: Mapped[str | None] = mapped_column(
        String(255),
        unique=True,
        nullable=True,
    )
    payment_intent_id: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )

    # Relationships
    items: Mapped[list["OrderItem"]] = relationship(
        "OrderItem",
        back_populates="order",
        cascade=_CASCADE_ALL_DELETE_ORPHAN,
        lazy="selectin",
    )


class OrderItem(Base, TimestampMixin):
    """Line item snapshot.

    Attributes:
        id: UUID primary key.
        order_id: FK to orders table.
        product_id: Catalog product. NULL if the product was removed.
        name: Product name at purchase time.
        name_en: English product name at purchase time.
        price: Price charged at purchase time, in yen.
    """

    __tablename__ = "order_items"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=uuid.uuid4,
    )
    order_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    product_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(),
        ForeignKey("products.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    name_en: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    price: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )

    # Relationships
    order: Mapped["Order"] = relationship(
        "Order",
        back_populates="items",
    )
    product: Mapped["Product"] = relationship(
        "Product",
        lazy="selectin",
    )

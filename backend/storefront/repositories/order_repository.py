"""Repository for Order and OrderItem operations.

Orders are never deleted; the only mutations after creation are claiming
(user_id null -> user) and anonymizing order_email.
"""

import uuid
from collections.abc import Iterable
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from storefront.models.order import Order, OrderItem


class OrderRepository:
    """Stateless repository for Order table operations.

    All methods are static; no instance state. Pass an AsyncSession
    for every call so the caller controls transaction boundaries.
    """

    @staticmethod
    async def create_paid(
        db: AsyncSession,
        *,
        order_number: str,
        order_email: str,
        total_amount: int,
        paid_at: datetime,
        items: list[OrderItem],
        user_id: uuid.UUID | None = None,
        payment_session_id: str | None = None,
        payment_intent_id: str | None = None,
    ) -> Order:
        """Create a paid order with its captured line items.

        Args:
            db: Async database session.
            order_number: Human-facing unique code.
            order_email: Email the purchase is attributed to.
            total_amount: Total charged, in yen.
            paid_at: Payment capture time.
            items: Unsaved OrderItem snapshots.
            user_id: Owning user, None for guests.
            payment_session_id: Provider session id (idempotency key).
            payment_intent_id: Provider payment reference.

        Returns:
            Created Order with items loaded.

        Raises:
            sqlalchemy.exc.IntegrityError: If the order number or payment
                session id already exists.
        """
        order = Order(
            order_number=order_number,
            user_id=user_id,
            order_email=order_email,
            is_paid=True,
            paid_at=paid_at,
            total_amount=total_amount,
            payment_session_id=payment_session_id,
            payment_intent_id=payment_intent_id,
            items=items,
        )
        db.add(order)
        await db.flush()
        await db.refresh(order)
        return order

    @staticmethod
    async def get_by_payment_session_id(
        db: AsyncSession, payment_session_id: str
    ) -> Order | None:
        """Find the order created for a provider checkout session."""
        stmt = select(Order).where(Order.payment_session_id == payment_session_id)
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def order_number_exists(db: AsyncSession, order_number: str) -> bool:
        stmt = select(Order.id).where(Order.order_number == order_number)
        result = await db.execute(stmt)
        return result.first() is not None

    @staticmethod
    async def get_item(
        db: AsyncSession, order_item_id: uuid.UUID
    ) -> OrderItem | None:
        """Fetch an order item with its parent order and catalog product.

        Args:
            db: Async database session.
            order_item_id: OrderItem primary key.

        Returns:
            OrderItem if found, None otherwise.
        """
        stmt = (
            select(OrderItem)
            .where(OrderItem.id == order_item_id)
            .options(
                selectinload(OrderItem.order),
                selectinload(OrderItem.product),
            )
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def claim_guest_orders(
        db: AsyncSession,
        *,
        order_email: str,
        user_id: uuid.UUID,
    ) -> int:
        """Attach unowned orders placed with an email to a user.

        Already-claimed orders are left untouched, so repeated calls are
        no-ops.

        Args:
            db: Async database session.
            order_email: Email the orders were placed with.
            user_id: New owner.

        Returns:
            Number of claimed orders.
        """
        stmt = (
            update(Order)
            .where(
                Order.order_email == order_email,
                Order.user_id.is_(None),
            )
            .values(user_id=user_id)
        )
        result = await db.execute(stmt)
        row_count: int = result.rowcount  # type: ignore[attr-defined]
        return row_count

    @staticmethod
    async def anonymize_order_email(
        db: AsyncSession,
        *,
        user_id: uuid.UUID,
        placeholder_email: str,
    ) -> int:
        """Rewrite order_email on every order owned by a user.

        Returns:
            Number of rewritten orders.
        """
        stmt = (
            update(Order)
            .where(Order.user_id == user_id)
            .values(order_email=placeholder_email)
        )
        result = await db.execute(stmt)
        row_count: int = result.rowcount  # type: ignore[attr-defined]
        return row_count

    @staticmethod
    async def list_paid_for_user(
        db: AsyncSession, user_id: uuid.UUID
    ) -> list[Order]:
        """List a user's paid orders with items, newest first."""
        stmt = (
            select(Order)
            .where(Order.user_id == user_id, Order.is_paid.is_(True))
            .order_by(Order.paid_at.desc(), Order.order_number.desc())
        )
        result = await db.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def purchased_product_ids(
        db: AsyncSession,
        *,
        user_id: uuid.UUID,
        candidate_ids: Iterable[uuid.UUID],
    ) -> set[uuid.UUID]:
        """Return the candidates the user holds a paid order item for.

        Args:
            db: Async database session.
            user_id: Purchasing user.
            candidate_ids: Product ids to test.

        Returns:
            Subset of candidate_ids.
        """
        ids = set(candidate_ids)
        if not ids:
            return set()
        stmt = (
            select(OrderItem.product_id)
            .join(Order, OrderItem.order_id == Order.id)
            .where(
                Order.user_id == user_id,
                Order.is_paid.is_(True),
                OrderItem.product_id.in_(ids),
            )
            .distinct()
        )
        result = await db.execute(stmt)
        return {product_id for product_id in result.scalars().all() if product_id}

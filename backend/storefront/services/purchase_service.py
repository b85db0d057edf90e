"""Purchase completion - turn a confirmed payment into an order.

Payment confirmations arrive at least once and in any order. The provider
session id is the idempotency key: a repeat delivery returns the order the
first delivery created and has no other effect.

The order and its DOWNLOAD token commit together; the confirmation message
is sent only after commit. A failed send is logged at ERROR and never
undoes the order, because payment has already been captured.
"""

import logging
import secrets
import uuid
from urllib.parse import urlencode

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.auth import normalize_email
from storefront.core.config import settings
from storefront.core.email import Notification, NotificationSink, TemplateKind
from storefront.core.errors import ValidationError
from storefront.core.payments import PaymentConfirmation
from storefront.models.order import Order, OrderItem
from storefront.models.token import Token, TokenType
from storefront.repositories.order_repository import OrderRepository
from storefront.repositories.product_repository import ProductRepository
from storefront.repositories.user_repository import UserRepository
from storefront.services.token_service import Clock, TokenService, utc_now

logger = logging.getLogger(__name__)

_ORDER_NUMBER_ATTEMPTS = 5


def generate_order_number(clock: Clock = utc_now) -> str:
    """``ORD`` + last six digits of the millisecond clock + three random digits."""
    millis = int(clock().timestamp() * 1000)
    return f"ORD{millis % 1_000_000:06d}{secrets.randbelow(1000):03d}"


class PurchaseService:
    """Purchase completion handler and purchase history.

    Args:
        db: Async database session.
        notifier: Sink for order confirmation messages.
        tokens: Token service bound to the same session.
        link_base_url: Base URL for links in messages.
    """

    def __init__(
        self,
        db: AsyncSession,
        *,
        notifier: NotificationSink,
        tokens: TokenService | None = None,
        link_base_url: str | None = None,
    ) -> None:
        self._db = db
        self._notifier = notifier
        self._tokens = tokens or TokenService(db)
        self._link_base_url = (link_base_url or settings.frontend_url).rstrip("/")

    async def _new_order_number(self) -> str:
        for _ in range(_ORDER_NUMBER_ATTEMPTS):
            order_number = generate_order_number(self._tokens.now)
            if not await OrderRepository.order_number_exists(self._db, order_number):
                return order_number
        raise RuntimeError("Could not allocate a unique order number")

    async def _resolve_payer(self, payer_user_id: uuid.UUID | None) -> uuid.UUID | None:
        if payer_user_id is None:
            return None
        user = await UserRepository.get_by_id(self._db, payer_user_id)
        if user is None or user.is_deleted:
            logger.warning(
                "Payment references unknown user, recording as guest order",
                extra={"user_id": str(payer_user_id)},
            )
            return None
        return user.id

    async def on_payment_confirmed(self, confirmation: PaymentConfirmation) -> Order:
        """Create the paid order and its DOWNLOAD token, then notify.

        Args:
            confirmation: Provider-neutral payment confirmation.

        Returns:
            The created Order, or the existing one on a repeat delivery.

        Raises:
            ValidationError: No line items, or a line item references a
                product missing from the catalog.
        """
        existing = await OrderRepository.get_by_payment_session_id(
            self._db, confirmation.external_session_id
        )
        if existing is not None:
            logger.info(
                "Duplicate payment confirmation ignored",
                extra={
                    "session_id": confirmation.external_session_id,
                    "order_id": str(existing.id),
                },
            )
            return existing

        if not confirmation.line_items:
            raise ValidationError("Payment confirmation has no line items")

        payer_email = normalize_email(confirmation.payer_email)
        try:
            products = await ProductRepository.get_many(
                self._db, (item.product_id for item in confirmation.line_items)
            )
            unknown = [
                str(item.product_id)
                for item in confirmation.line_items
                if item.product_id not in products
            ]
            if unknown:
                raise ValidationError(
                    "Payment references unknown products",
                    details=[{"field": "product_id", "value": pid} for pid in unknown],
                )

            payer_user_id = await self._resolve_payer(confirmation.payer_user_id)
            order = await OrderRepository.create_paid(
                self._db,
                order_number=await self._new_order_number(),
                order_email=payer_email,
                total_amount=confirmation.total_amount,
                paid_at=self._tokens.now(),
                user_id=payer_user_id,
                payment_session_id=confirmation.external_session_id,
                payment_intent_id=confirmation.external_payment_id,
                # Snapshot: later catalog edits must not change the receipt
                items=[
                    OrderItem(
                        product_id=item.product_id,
                        name=item.captured_name,
                        name_en=products[item.product_id].name_en,
                        price=item.captured_price,
                    )
                    for item in confirmation.line_items
                ],
            )
            token = await self._tokens.issue(
                TokenType.DOWNLOAD,
                subject_email=payer_email,
                user_id=payer_user_id,
                order_id=order.id,
            )
            await self._db.commit()
        except IntegrityError:
            await self._db.rollback()
            # A concurrent delivery of the same session committed first
            existing = await OrderRepository.get_by_payment_session_id(
                self._db, confirmation.external_session_id
            )
            if existing is None:
                raise
            logger.info(
                "Duplicate payment confirmation ignored",
                extra={
                    "session_id": confirmation.external_session_id,
                    "order_id": str(existing.id),
                },
            )
            return existing
        except Exception:
            await self._db.rollback()
            raise

        logger.info(
            "Order created",
            extra={"order_id": str(order.id), "session_id": confirmation.external_session_id},
        )
        await self._send_confirmation(order, token)
        return order

    async def _send_confirmation(self, order: Order, token: Token) -> None:
        parameters = {
            "order_number": order.order_number,
            "items": [{"name": item.name, "price": item.price} for item in order.items],
            "total_amount": order.total_amount,
            "download_url": f"{self._link_base_url}/download/{token.secret}",
        }
        if order.user_id is None:
            parameters["signup_url"] = (
                f"{self._link_base_url}/signup?{urlencode({'email': order.order_email})}"
            )
        notification = Notification(
            recipient_email=order.order_email,
            template=TemplateKind.ORDER_CONFIRMATION,
            parameters=parameters,
        )

        log_extra = {
            "order_id": str(order.id),
            "session_id": order.payment_session_id,
        }
        try:
            sent = await self._notifier.send(notification)
        except Exception:
            logger.exception("Order confirmation email failed", extra=log_extra)
            return
        if not sent:
            logger.error("Order confirmation email failed", extra=log_extra)

    async def list_purchases(self, user_id: uuid.UUID) -> list[Order]:
        """Paid orders of a user with items, newest first."""
        return await OrderRepository.list_paid_for_user(self._db, user_id)

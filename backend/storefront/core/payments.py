"""Payment confirmation intake from Stripe Checkout.

Stripe delivers ``checkout.session.completed`` webhooks at least once and
in no particular order. This module verifies the signature and turns a
completed session into a provider-neutral PaymentConfirmation; creating the
order is the purchase service's job.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass
from functools import lru_cache

import stripe

from storefront.core.config import settings
from storefront.core.errors import ExternalServiceError, ValidationError

logger = logging.getLogger(__name__)

CHECKOUT_COMPLETED = "checkout.session.completed"


@dataclass(frozen=True)
class LineItem:
    """One purchased product as the payment provider reported it.

    Attributes:
        product_id: Catalog product UUID (from Stripe product metadata).
        captured_name: Product name shown at checkout.
        captured_price: Amount charged for this line, in yen.
    """

    product_id: uuid.UUID
    captured_name: str
    captured_price: int


@dataclass(frozen=True)
class PaymentConfirmation:
    """A confirmed payment, independent of the provider's wire format.

    Attributes:
        external_session_id: Provider session id. Idempotency key.
        payer_email: Email the purchase is attributed to.
        line_items: Purchased products.
        total_amount: Total charged, in yen.
        payer_user_id: Authenticated payer's user id, None for guests.
        external_payment_id: Provider payment reference, if any.
    """

    external_session_id: str
    payer_email: str
    line_items: list[LineItem]
    total_amount: int
    payer_user_id: uuid.UUID | None = None
    external_payment_id: str | None = None


def _parse_uuid(value: str | None) -> uuid.UUID | None:
    if not value:
        return None
    try:
        return uuid.UUID(value)
    except ValueError:
        return None


class StripeGateway:
    """Thin wrapper over the Stripe SDK calls the webhook needs.

    Args:
        api_key: Stripe secret key.
        webhook_secret: Endpoint signing secret.
    """

    def __init__(self, *, api_key: str, webhook_secret: str) -> None:
        self._api_key = api_key
        self._webhook_secret = webhook_secret

    def construct_event(self, payload: bytes, signature: str | None) -> stripe.Event:
        """Verify the webhook signature and parse the event.

        Raises:
            ValidationError: Missing/invalid signature or malformed payload.
        """
        if not signature:
            logger.warning("Stripe webhook missing signature header")
            raise ValidationError("Missing webhook signature")
        try:
            return stripe.Webhook.construct_event(
                payload, signature, self._webhook_secret
            )
        except ValueError as exc:
            logger.warning("Stripe webhook invalid payload")
            raise ValidationError("Invalid webhook payload") from exc
        except stripe.SignatureVerificationError as exc:
            logger.warning("Stripe webhook signature verification failed")
            raise ValidationError("Invalid webhook signature") from exc

    async def fetch_payer_email(self, session_id: str) -> str | None:
        """Email the payer entered at checkout, for the success page.

        Raises:
            ExternalServiceError: Unknown session or Stripe unreachable.
        """
        try:
            session = await asyncio.to_thread(
                stripe.checkout.Session.retrieve, session_id, api_key=self._api_key
            )
        except stripe.StripeError as exc:
            logger.error(
                "Failed to retrieve Stripe checkout session",
                extra={"session_id": session_id},
            )
            raise ExternalServiceError("Could not load checkout session") from exc

        customer_details = getattr(session, "customer_details", None)
        return getattr(customer_details, "email", None) or None

    async def fetch_confirmation(self, session_id: str) -> PaymentConfirmation:
        """Retrieve a completed Checkout session with its line items.

        Args:
            session_id: Checkout session id from the event.

        Returns:
            PaymentConfirmation built from the session.

        Raises:
            ValidationError: If the session lacks a payer email or a line
                item lacks a catalog product id.
            ExternalServiceError: If Stripe could not be reached.
        """
        try:
            session = await asyncio.to_thread(
                stripe.checkout.Session.retrieve,
                session_id,
                expand=["line_items.data.price.product"],
                api_key=self._api_key,
            )
        except stripe.StripeError as exc:
            logger.error(
                "Failed to retrieve Stripe checkout session",
                extra={"session_id": session_id},
            )
            raise ExternalServiceError("Payment provider unavailable") from exc

        customer_details = getattr(session, "customer_details", None)
        payer_email = getattr(customer_details, "email", None)
        if not payer_email:
            raise ValidationError("Customer email not found")

        line_items: list[LineItem] = []
        for item in session.line_items.data:
            product = item.price.product
            try:
                product_id = _parse_uuid(product.metadata["productId"])
            except KeyError:
                product_id = None
            if product_id is None:
                raise ValidationError("Line item is missing a catalog product id")
            line_items.append(
                LineItem(
                    product_id=product_id,
                    captured_name=product.name,
                    captured_price=item.amount_total or 0,
                )
            )

        payment_intent = getattr(session, "payment_intent", None)
        return PaymentConfirmation(
            external_session_id=session.id,
            payer_email=payer_email,
            line_items=line_items,
            total_amount=getattr(session, "amount_total", None) or 0,
            payer_user_id=_parse_uuid(getattr(session, "client_reference_id", None)),
            external_payment_id=payment_intent if isinstance(payment_intent, str) else None,
        )


@lru_cache(maxsize=1)
def get_payment_gateway() -> StripeGateway:
    """Build the production Stripe gateway from settings."""
    return StripeGateway(
        api_key=settings.stripe_secret_key.get_secret_value(),
        webhook_secret=settings.stripe_webhook_secret.get_secret_value(),
    )

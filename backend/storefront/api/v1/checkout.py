"""Payment webhook.

Stripe calls this after Checkout completes. Only
``checkout.session.completed`` creates orders; other event types are
acknowledged so Stripe stops retrying them.
"""

import logging

from fastapi import APIRouter, Request

from storefront.api.deps import PaymentGateway, Purchases
from storefront.core.payments import CHECKOUT_COMPLETED
from storefront.core.responses import DataResponse

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/webhook")
async def stripe_webhook(
    request: Request,
    gateway: PaymentGateway,
    purchases: Purchases,
) -> DataResponse[dict]:
    """Verify the event signature and complete the purchase.

    Repeat deliveries of the same session return the original order.
    """
    payload = await request.body()
    event = gateway.construct_event(payload, request.headers.get("stripe-signature"))

    if event["type"] != CHECKOUT_COMPLETED:
        logger.info("Ignoring Stripe event", extra={"event_type": event["type"]})
        return DataResponse(data={"received": True})

    confirmation = await gateway.fetch_confirmation(event["data"]["object"]["id"])
    order = await purchases.on_payment_confirmed(confirmation)
    return DataResponse(data={"received": True, "order_number": order.order_number})

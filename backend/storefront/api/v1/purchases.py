"""Purchase endpoints: history, already-purchased check, downloads and
the checkout-success lookup.

Downloads accept either credential: the session of the order's owner or a
DOWNLOAD token from the confirmation email (``?token=``).
"""

import uuid

from fastapi import APIRouter, Query
from pydantic import BaseModel, ConfigDict, Field

from storefront.api.deps import (
    CurrentUserId,
    Entitlements,
    OptionalUserId,
    PaymentGateway,
    Purchases,
)
from storefront.core.errors import ValidationError
from storefront.core.responses import DataResponse
from storefront.models.order import Order

router = APIRouter()

# Upper bound on product ids per check request
_MAX_CHECK_IDS = 100


class PurchaseCheckRequest(BaseModel):
    """Request body for POST /purchases/check."""

    model_config = ConfigDict(extra="forbid")

    product_ids: list[uuid.UUID] = Field(max_length=_MAX_CHECK_IDS)


def _order_data(order: Order) -> dict:
    return {
        "id": str(order.id),
        "order_number": order.order_number,
        "total_amount": order.total_amount,
        "paid_at": order.paid_at.isoformat() if order.paid_at else None,
        "items": [
            {
                "id": str(item.id),
                "product_id": str(item.product_id) if item.product_id else None,
                "name": item.name,
                "name_en": item.name_en,
                "price": item.price,
            }
            for item in order.items
        ],
    }


@router.get("")
async def list_purchases(
    user_id: CurrentUserId,
    purchases: Purchases,
) -> DataResponse[list[dict]]:
    """Paid orders of the caller, newest first."""
    orders = await purchases.list_purchases(user_id)
    return DataResponse(data=[_order_data(order) for order in orders])


@router.post("/check")
async def check_purchased(
    body: PurchaseCheckRequest,
    user_id: OptionalUserId,
    entitlements: Entitlements,
) -> DataResponse[dict]:
    """Which of the given products the caller already bought.

    Anonymous callers get an empty result.
    """
    if not body.product_ids:
        raise ValidationError("product_ids must not be empty")
    if user_id is None:
        return DataResponse(data={"purchased_product_ids": []})
    purchased = await entitlements.list_purchased_product_ids(user_id, body.product_ids)
    return DataResponse(
        data={"purchased_product_ids": sorted(str(pid) for pid in purchased)}
    )


@router.get("/items/{order_item_id}/download")
async def download_item(
    order_item_id: uuid.UUID,
    user_id: OptionalUserId,
    entitlements: Entitlements,
    token: str | None = None,
) -> DataResponse[dict]:
    """Signed URL for an order item's archive."""
    link = await entitlements.get_download(
        order_item_id, user_id=user_id, download_token=token
    )
    return DataResponse(
        data={
            "url": link.url,
            "product": {
                "name_en": link.product_name_en,
                "image_url": link.product_image_url,
            },
        }
    )


@router.get("/downloads/{token}")
async def order_for_download_token(
    token: str,
    entitlements: Entitlements,
) -> DataResponse[dict]:
    """The order a DOWNLOAD token grants access to (download page)."""
    order = await entitlements.get_order_for_download_token(token)
    return DataResponse(data=_order_data(order))


@router.get("/session")
async def checkout_session(
    gateway: PaymentGateway,
    session_id: str = Query(min_length=1, max_length=255),
) -> DataResponse[dict]:
    """Payer email of a Checkout session, shown on the success page."""
    email = await gateway.fetch_payer_email(session_id)
    return DataResponse(data={"customer_email": email})

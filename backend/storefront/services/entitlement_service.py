"""Entitlement resolver - who may download what.

An order item is downloadable by (a) the authenticated owner of its order
or (b) the holder of a live DOWNLOAD token for its order. Token scope is
the whole order, and tokens are not revoked when a guest order is later
claimed by an account.
"""

import logging
import uuid
from collections.abc import Iterable
from dataclasses import dataclass
from enum import StrEnum

from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.errors import InvalidTokenError, NotFoundError, UnauthorizedError
from storefront.core.storage import SignedUrlIssuer
from storefront.models.order import Order, OrderItem
from storefront.models.token import TokenType
from storefront.repositories.order_repository import OrderRepository
from storefront.services.token_service import TokenService

logger = logging.getLogger(__name__)


class DownloadDecision(StrEnum):
    ALLOW = "allow"
    DENY = "deny"


@dataclass(frozen=True)
class DownloadLink:
    """Signed URL plus the product metadata shown next to it."""

    url: str
    product_name_en: str
    product_image_url: str | None


def archive_key(product_name_en: str) -> str:
    """Object-storage key of a product's model archive."""
    return f"{product_name_en}.zip"


class EntitlementService:
    """Resolves purchase entitlements for users and download-token holders.

    Args:
        db: Async database session.
        tokens: Token service used to check DOWNLOAD tokens.
        url_issuer: Signed-URL issuer. Only needed by get_download().
    """

    def __init__(
        self,
        db: AsyncSession,
        *,
        tokens: TokenService,
        url_issuer: SignedUrlIssuer | None = None,
    ) -> None:
        self._db = db
        self._tokens = tokens
        self._url_issuer = url_issuer

    async def list_purchased_product_ids(
        self,
        user_id: uuid.UUID,
        candidate_product_ids: Iterable[uuid.UUID],
    ) -> set[uuid.UUID]:
        """Subset of candidates the user holds a paid order for."""
        return await OrderRepository.purchased_product_ids(
            self._db, user_id=user_id, candidate_ids=candidate_product_ids
        )

    async def decide(
        self,
        item: OrderItem,
        *,
        user_id: uuid.UUID | None = None,
        download_token: str | None = None,
    ) -> DownloadDecision:
        """The access-control decision for one order item.

        Args:
            item: Order item with its order loaded.
            user_id: Authenticated caller, if any.
            download_token: DOWNLOAD token secret presented, if any.

        Returns:
            ALLOW if either credential passes, DENY otherwise (including
            when neither is supplied).
        """
        # (a) account ownership of the parent order
        if user_id is not None and item.order.user_id == user_id:
            return DownloadDecision.ALLOW

        # (b) live DOWNLOAD token scoped to the parent order
        if download_token:
            try:
                token = await self._tokens.verify(download_token, TokenType.DOWNLOAD)
            except InvalidTokenError:
                return DownloadDecision.DENY
            if token.order_id == item.order_id:
                return DownloadDecision.ALLOW

        return DownloadDecision.DENY

    async def authorize_download(
        self,
        order_item_id: uuid.UUID,
        *,
        user_id: uuid.UUID | None = None,
        download_token: str | None = None,
    ) -> DownloadDecision:
        """Decide whether an order item may be downloaded.

        Raises:
            NotFoundError: If the order item does not exist.
        """
        item = await OrderRepository.get_item(self._db, order_item_id)
        if item is None:
            raise NotFoundError("Order item")
        return await self.decide(item, user_id=user_id, download_token=download_token)

    async def get_download(
        self,
        order_item_id: uuid.UUID,
        *,
        user_id: uuid.UUID | None = None,
        download_token: str | None = None,
    ) -> DownloadLink:
        """Authorize and issue a signed URL for an order item's archive.

        Raises:
            UnauthorizedError: No credential supplied, or access denied.
            NotFoundError: Order item or its catalog product is missing.
            ExternalServiceError: The signed URL could not be issued.
        """
        if user_id is None and not download_token:
            raise UnauthorizedError()

        item = await OrderRepository.get_item(self._db, order_item_id)
        if item is None:
            raise NotFoundError("Order item")
        if item.product is None:
            raise NotFoundError("Product")

        decision = await self.decide(
            item, user_id=user_id, download_token=download_token
        )
        if decision is DownloadDecision.DENY:
            logger.info(
                "Download denied",
                extra={"order_item_id": str(order_item_id)},
            )
            raise UnauthorizedError("Not authorized to download this item")

        if self._url_issuer is None:
            raise RuntimeError("EntitlementService needs a url_issuer to issue downloads")
        url = self._url_issuer.issue(archive_key(item.product.name_en))
        return DownloadLink(
            url=url,
            product_name_en=item.product.name_en,
            product_image_url=item.product.image_url,
        )

    async def get_order_for_download_token(self, download_token: str) -> Order:
        """Resolve the order a DOWNLOAD token grants access to.

        Raises:
            InvalidTokenError: If the token is not live.
        """
        token = await self._tokens.verify(download_token, TokenType.DOWNLOAD)
        order = await self._db.get(Order, token.order_id)
        if order is None:
            raise InvalidTokenError()
        return order

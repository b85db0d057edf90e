"""Repository for Product lookups. The catalog is read-only here."""

import uuid
from collections.abc import Iterable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.models.product import Product


class ProductRepository:
    """Stateless repository for Product table reads."""

    @staticmethod
    async def get_by_id(db: AsyncSession, product_id: uuid.UUID) -> Product | None:
        return await db.get(Product, product_id)

    @staticmethod
    async def get_many(
        db: AsyncSession, product_ids: Iterable[uuid.UUID]
    ) -> dict[uuid.UUID, Product]:
        """Fetch products by id.

        Args:
            db: Async database session.
            product_ids: Ids to fetch. Duplicates are fine.

        Returns:
            Mapping of id to Product for the ids that exist.
        """
        ids = set(product_ids)
        if not ids:
            return {}
        stmt = select(Product).where(Product.id.in_(ids))
        result = await db.execute(stmt)
        return {product.id: product for product in result.scalars().all()}

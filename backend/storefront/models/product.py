"""Product model - catalog entry for a downloadable 3D model."""

import uuid

from sqlalchemy import Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from storefront.models.base import Base, TimestampMixin


class Product(Base, TimestampMixin):
    """Catalog product.

    The catalog is managed outside this service; orders only snapshot
    name and price from it.

    Attributes:
        id: UUID primary key. Referenced by Stripe product metadata.
        name: Display name.
        name_en: English name; also the archive's object-storage stem.
        price: Price in yen.
        image_url: Preview image URL.
    """

    __tablename__ = "products"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=uuid.uuid4,
    )
    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    name_en: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
    )
    price: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )
    image_url: Mapped[str | None] = mapped_column(
        Text(),
        nullable=True,
    )

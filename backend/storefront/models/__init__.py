"""SQLAlchemy ORM models for the storefront.

All models are exported from this module for convenient imports:
    from storefront.models import User, Order, Token, ...

Models are organized by domain:
- user.py: User
- account.py: Account (OAuth identities)
- token.py: Token, TokenType (verification / reset / download credentials)
- product.py: Product (catalog, read-only here)
- order.py: Order, OrderItem
"""

from storefront.models.account import Account
from storefront.models.base import Base, TimestampMixin, TZDateTime
from storefront.models.order import Order, OrderItem
from storefront.models.product import Product
from storefront.models.token import Token, TokenType
from storefront.models.user import User

__all__ = [
    "Account",
    "Base",
    "Order",
    "OrderItem",
    "Product",
    "TZDateTime",
    "TimestampMixin",
    "Token",
    "TokenType",
    "User",
]

"""API v1 router aggregator.

All v1 endpoint routers are included here.
"""

from fastapi import APIRouter

from storefront.api.v1 import account, auth, checkout, purchases

router = APIRouter()

# =============================================================================
# Authentication
# =============================================================================

router.include_router(auth.router, prefix="/auth", tags=["auth"])
router.include_router(account.router, prefix="/account", tags=["account"])

# =============================================================================
# Purchases
# =============================================================================

router.include_router(purchases.router, prefix="/purchases", tags=["purchases"])
router.include_router(checkout.router, prefix="/checkout", tags=["checkout"])

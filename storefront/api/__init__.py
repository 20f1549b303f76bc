"""API layer module.

Contains FastAPI routers and request/response schemas.
"""

from storefront.api.admin import router as admin_router
from storefront.api.health import router as health_router
from storefront.api.orders import router as orders_router
from storefront.api.shipping import router as shipping_router
from storefront.api.webhooks import router as webhooks_router

__all__ = [
    "admin_router",
    "health_router",
    "orders_router",
    "shipping_router",
    "webhooks_router",
]

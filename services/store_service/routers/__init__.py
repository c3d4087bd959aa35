"""Store service routers package."""

from services.store_service.routers.admin import router as admin_router
from services.store_service.routers.orders import router as orders_router

__all__ = [
    "admin_router",
    "orders_router",
]

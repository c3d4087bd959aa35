"""Payments service routers."""

from services.payments_service.routers.admin import router as admin_router
from services.payments_service.routers.checkout import router as checkout_router

__all__ = [
    "admin_router",
    "checkout_router",
]

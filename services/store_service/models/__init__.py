"""Store Service models package."""

from services.store_service.models.catalog import Product
from services.store_service.models.commerce import (
    Order,
    OrderItem,
    PendingCheckout,
    RefundRequest,
)
from services.store_service.models.enums import (
    CheckoutStatus,
    DeliveryMethod,
    OrderStatus,
    RefundRequestStatus,
)

__all__ = [
    "CheckoutStatus",
    "DeliveryMethod",
    "Order",
    "OrderItem",
    "OrderStatus",
    "PendingCheckout",
    "Product",
    "RefundRequest",
    "RefundRequestStatus",
]

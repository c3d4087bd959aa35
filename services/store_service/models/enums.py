"""Enums for the Store Service models."""

import enum


def enum_values(enum_cls):
    """Return persistent DB values for SAEnum mappings."""
    return [member.value for member in enum_cls]


class DeliveryMethod(str, enum.Enum):
    PICKUP = "pickup"
    DELIVERY = "delivery"


class OrderStatus(str, enum.Enum):
    PROCESSING = "processing"
    DISPATCHED = "dispatched"
    DELIVERED = "delivered"


class CheckoutStatus(str, enum.Enum):
    OPEN = "open"
    COMPLETED = "completed"
    ABANDONED = "abandoned"


class RefundRequestStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"

"""Payments Service models package."""

from services.payments_service.models.core import Payment
from services.payments_service.models.enums import PaymentProvider, PaymentStatus

__all__ = [
    "Payment",
    "PaymentProvider",
    "PaymentStatus",
]

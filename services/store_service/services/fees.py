"""Delivery fee and order total calculation.

Pure functions. Every figure is rounded to cents at each summation step so a
total re-derived later always equals the stored one.
"""

from decimal import Decimal
from typing import Iterable, Optional, Protocol

from libs.common.config import get_settings
from libs.common.money import ZERO, to_money
from services.store_service.models import DeliveryMethod
from services.store_service.services.types import CartLine


class FeeSubject(Protocol):
    free_delivery: bool


def delivery_fee(
    user: Optional[FeeSubject],
    delivery_method: DeliveryMethod,
    waived: bool = False,
) -> Decimal:
    """Flat delivery fee unless pickup, waived by an admin, or the account has free delivery."""
    if DeliveryMethod(delivery_method) != DeliveryMethod.DELIVERY:
        return ZERO
    if waived or (user is not None and user.free_delivery):
        return ZERO
    return to_money(get_settings().DELIVERY_FEE)


def items_total(lines: Iterable[CartLine]) -> Decimal:
    total = ZERO
    for line in lines:
        total = to_money(total + to_money(line.unit_price) * line.quantity)
    return total


def compute_totals(lines: Iterable[CartLine], fee: Decimal) -> tuple[Decimal, Decimal]:
    """Return ``(items_total, total)`` for the given lines and delivery fee."""
    subtotal = items_total(lines)
    return subtotal, to_money(subtotal + to_money(fee))

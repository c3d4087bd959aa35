"""Pending checkout context: the server-held cart snapshot awaiting payment."""

from decimal import Decimal
from typing import Iterable, Optional

from libs.common import errors
from libs.common.logging import get_logger
from services.members_service.models import User
from services.store_service.models import (
    CheckoutStatus,
    DeliveryMethod,
    PendingCheckout,
    Product,
)
from services.store_service.services.fees import compute_totals, delivery_fee
from services.store_service.services.types import MAX_ADDRESS_LENGTH, CartLine, DeliveryOptions
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)


def resolve_delivery_address(
    method: DeliveryMethod, requested: Optional[str], fallback: Optional[str]
) -> Optional[str]:
    """Address for a delivery order: the requested one, else the account address."""
    if method != DeliveryMethod.DELIVERY:
        return None
    address = (requested or fallback or "").strip()[:MAX_ADDRESS_LENGTH]
    if not address:
        raise errors.ValidationError("Delivery address is required")
    return address


async def start_checkout(
    db: AsyncSession,
    *,
    user_id: int,
    items: Iterable[tuple[int, int]],
    delivery_method: DeliveryMethod,
    delivery_address: Optional[str] = None,
) -> tuple[PendingCheckout, Decimal]:
    """
    Price the cart from current product rows and store it as an open checkout.

    ``items`` are ``(product_id, quantity)`` pairs; prices always come from the
    catalog, never from the client. Returns the checkout and its items total.
    Older open checkouts for the user are abandoned.
    """
    items = list(items)
    if not items:
        raise errors.ValidationError("Cart is empty")
    for product_id, quantity in items:
        if quantity <= 0:
            raise errors.ValidationError(f"Invalid quantity for product {product_id}")

    user = await db.get(User, user_id)
    if user is None:
        raise errors.NotFound("User not found")

    result = await db.execute(
        select(Product).where(Product.id.in_({product_id for product_id, _ in items}))
    )
    products = {product.id: product for product in result.scalars().all()}

    lines: list[CartLine] = []
    for product_id, quantity in items:
        product = products.get(product_id)
        if product is None:
            raise errors.NotFound(f"Product {product_id} not found")
        lines.append(
            CartLine(
                product_id=product.id,
                quantity=quantity,
                unit_price=product.effective_price,
                product_name=product.name,
            )
        )

    method = DeliveryMethod(delivery_method)
    address = resolve_delivery_address(method, delivery_address, user.address)
    fee = delivery_fee(user, method)
    subtotal, total = compute_totals(lines, fee)

    try:
        await db.execute(
            update(PendingCheckout)
            .where(
                PendingCheckout.user_id == user_id,
                PendingCheckout.status == CheckoutStatus.OPEN,
            )
            .values(status=CheckoutStatus.ABANDONED)
            .execution_options(synchronize_session=False)
        )
        checkout = PendingCheckout(
            user_id=user_id,
            lines=[line.to_snapshot() for line in lines],
            delivery_method=method,
            delivery_address=address,
            delivery_fee=fee,
            expected_total=total,
        )
        db.add(checkout)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info(
        "Started checkout %s for user %s: %s line(s), total=%s, method=%s",
        checkout.id,
        user_id,
        len(lines),
        total,
        method.value,
    )
    return checkout, subtotal


async def get_checkout(
    db: AsyncSession, checkout_id: int, user_id: int, *, for_update: bool = False
) -> PendingCheckout:
    query = select(PendingCheckout).where(
        PendingCheckout.id == checkout_id, PendingCheckout.user_id == user_id
    )
    if for_update:
        query = query.with_for_update().execution_options(populate_existing=True)
    checkout = (await db.execute(query)).scalar_one_or_none()
    if checkout is None:
        raise errors.NotFound("Checkout not found")
    return checkout


def checkout_lines(checkout: PendingCheckout) -> list[CartLine]:
    return [CartLine.from_snapshot(line) for line in checkout.lines or []]


def checkout_delivery(checkout: PendingCheckout) -> DeliveryOptions:
    return DeliveryOptions(
        method=checkout.delivery_method,
        address=checkout.delivery_address,
        fee=checkout.delivery_fee,
    )


def expected_total(checkout: PendingCheckout) -> Decimal:
    """Re-derive the total from the snapshot lines and stored fee."""
    _, total = compute_totals(checkout_lines(checkout), checkout.delivery_fee)
    return total

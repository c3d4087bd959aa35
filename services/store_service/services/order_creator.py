"""Stock-safe order creation.

``place_order`` does the work inside the caller's transaction; wallet debits
and provider settlements compose it with their own writes and commit once.
``create_order`` is the standalone, self-committing variant.
"""

from collections import OrderedDict
from decimal import Decimal
from typing import Sequence

from libs.common import errors
from libs.common.logging import get_logger
from libs.common.money import to_money
from services.store_service.models import DeliveryMethod, Order, OrderItem, Product
from services.store_service.services.fees import compute_totals
from services.store_service.services.types import (
    MAX_ADDRESS_LENGTH,
    CartLine,
    DeliveryOptions,
    OrderResult,
)
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)


def validate_order_request(lines: Sequence[CartLine], delivery: DeliveryOptions) -> None:
    if not lines:
        raise errors.ValidationError("Cart is empty")
    for line in lines:
        if isinstance(line.quantity, bool) or not isinstance(line.quantity, int) or line.quantity <= 0:
            raise errors.ValidationError(f"Invalid quantity for product {line.product_id}")
        if to_money(line.unit_price) < 0:
            raise errors.ValidationError(f"Invalid price for product {line.product_id}")

    method = DeliveryMethod(delivery.method)
    if method == DeliveryMethod.DELIVERY and not (delivery.address or "").strip():
        raise errors.ValidationError("Delivery address is required")
    if method == DeliveryMethod.DELIVERY and len(delivery.address.strip()) > MAX_ADDRESS_LENGTH:
        raise errors.ValidationError(
            f"Delivery address is longer than {MAX_ADDRESS_LENGTH} characters"
        )
    if to_money(delivery.fee) < 0:
        raise errors.ValidationError("Delivery fee cannot be negative")


def aggregate_quantities(lines: Sequence[CartLine]) -> "OrderedDict[int, int]":
    """Requested quantity per distinct product, summing duplicate lines."""
    totals: "OrderedDict[int, int]" = OrderedDict()
    for line in lines:
        totals[line.product_id] = totals.get(line.product_id, 0) + line.quantity
    return totals


def order_total(lines: Sequence[CartLine], delivery: DeliveryOptions) -> Decimal:
    _, total = compute_totals(lines, delivery.fee)
    return total


async def lock_products(db: AsyncSession, product_ids) -> dict[int, Product]:
    """``SELECT ... FOR UPDATE`` on the products, always in ascending id order."""
    ids = sorted(set(product_ids))
    if not ids:
        return {}
    result = await db.execute(
        select(Product)
        .where(Product.id.in_(ids))
        .order_by(Product.id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return {product.id: product for product in result.scalars().all()}


def _line_name(lines: Sequence[CartLine], product_id: int) -> str:
    for line in lines:
        if line.product_id == product_id and line.product_name:
            return line.product_name
    return f"product {product_id}"


async def place_order(
    db: AsyncSession,
    *,
    user_id: int,
    lines: Sequence[CartLine],
    delivery: DeliveryOptions,
) -> Order:
    """
    Lock stock, write the order and its items, decrement stock.

    Runs inside the caller's transaction and does not commit. Raises
    ``InsufficientStock`` before any write when a product is short.
    """
    validate_order_request(lines, delivery)
    requested = aggregate_quantities(lines)

    products = await lock_products(db, requested.keys())
    for product_id, quantity in requested.items():
        product = products.get(product_id)
        on_hand = product.quantity if product is not None else 0
        if on_hand < quantity:
            name = product.name if product is not None else _line_name(lines, product_id)
            raise errors.InsufficientStock(name)

    method = DeliveryMethod(delivery.method)
    fee = to_money(delivery.fee)
    _, total = compute_totals(lines, fee)

    order = Order(
        user_id=user_id,
        total=total,
        delivery_method=method,
        delivery_address=delivery.address.strip() if method == DeliveryMethod.DELIVERY else None,
        delivery_fee=fee,
        items=[
            OrderItem(
                product_id=line.product_id,
                product_name=line.product_name or products[line.product_id].name,
                quantity=line.quantity,
                price=to_money(line.unit_price),
            )
            for line in lines
        ],
    )
    # Order row first, then its items
    db.add(order)
    await db.flush()

    for product_id, quantity in requested.items():
        result = await db.execute(
            update(Product)
            .where(Product.id == product_id, Product.quantity >= quantity)
            .values(quantity=Product.quantity - quantity)
            .execution_options(synchronize_session="fetch")
        )
        if result.rowcount == 0:
            raise errors.InsufficientStock(products[product_id].name)

    await db.flush()
    return order


async def create_order(
    db: AsyncSession,
    *,
    user_id: int,
    lines: Sequence[CartLine],
    delivery: DeliveryOptions,
) -> OrderResult:
    """Create an order atomically. Nothing persists unless every step succeeds."""
    try:
        order = await place_order(db, user_id=user_id, lines=lines, delivery=delivery)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info(
        "Created order %s for user %s: total=%s method=%s",
        order.id,
        user_id,
        order.total,
        order.delivery_method.value,
    )
    return to_order_result(order)


def to_order_result(order: Order, wallet_balance: Decimal | None = None) -> OrderResult:
    return OrderResult(
        order_id=order.id,
        total=to_money(order.total),
        delivery_method=order.delivery_method,
        delivery_address=order.delivery_address,
        delivery_fee=to_money(order.delivery_fee),
        wallet_balance=wallet_balance,
    )

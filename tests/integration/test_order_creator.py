"""Integration tests for stock-safe order creation."""

from decimal import Decimal

import pytest
from libs.common import errors
from services.store_service.models import DeliveryMethod, Order, OrderStatus, Product
from services.store_service.services.order_creator import create_order
from services.store_service.services.types import CartLine, DeliveryOptions
from sqlalchemy import func, select
from tests.factories import ProductFactory, persist, reload

PICKUP = DeliveryOptions()


def _lines(*pairs):
    return [
        CartLine(
            product_id=product.id,
            quantity=quantity,
            unit_price=product.effective_price,
            product_name=product.name,
        )
        for product, quantity in pairs
    ]


async def _order_count(db) -> int:
    return (await db.execute(select(func.count()).select_from(Order))).scalar_one()


@pytest.mark.asyncio
@pytest.mark.integration
async def test_create_order_decrements_stock(db_session, shopper, products):
    """Two drinks at S$2.00 and one snack at S$3.00 make a S$7.00 pickup order."""
    drink, snack = products

    result = await create_order(
        db_session, user_id=shopper.id, lines=_lines((drink, 2), (snack, 1)), delivery=PICKUP
    )

    assert result.total == Decimal("7.00")
    assert result.delivery_fee == Decimal("0.00")
    assert result.delivery_method == DeliveryMethod.PICKUP

    order = await reload(db_session, Order, result.order_id)
    assert order.status == OrderStatus.PROCESSING
    assert [(item.product_name, item.quantity, item.price) for item in order.items] == [
        ("Kopi", 2, Decimal("2.00")),
        ("Kaya Toast", 1, Decimal("3.00")),
    ]
    assert (await reload(db_session, Product, drink.id)).quantity == 8
    assert (await reload(db_session, Product, snack.id)).quantity == 4


@pytest.mark.asyncio
@pytest.mark.integration
async def test_delivery_order_adds_fee(db_session, shopper, products):
    drink, _ = products
    delivery = DeliveryOptions(
        method=DeliveryMethod.DELIVERY, address="  10 Bayfront Ave  ", fee=Decimal("1.50")
    )

    result = await create_order(
        db_session, user_id=shopper.id, lines=_lines((drink, 1)), delivery=delivery
    )

    assert result.total == Decimal("3.50")
    assert result.delivery_address == "10 Bayfront Ave"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_shortage_rolls_back_everything(db_session, shopper, products):
    drink, snack = products
    drink_id, snack_id = drink.id, snack.id
    lines = _lines((drink, 2), (snack, 6))

    with pytest.raises(errors.InsufficientStock, match="Kaya Toast"):
        await create_order(db_session, user_id=shopper.id, lines=lines, delivery=PICKUP)

    # rollback expired the fixtures; read the rows back by id
    assert await _order_count(db_session) == 0
    assert (await reload(db_session, Product, drink_id)).quantity == 10
    assert (await reload(db_session, Product, snack_id)).quantity == 5


@pytest.mark.asyncio
@pytest.mark.integration
async def test_duplicate_lines_checked_against_combined_quantity(db_session, shopper, products):
    """6 + 5 of a product with 10 on hand is short even though each line fits."""
    drink, _ = products
    drink_id, user_id = drink.id, shopper.id
    too_many = _lines((drink, 6), (drink, 5))
    just_enough = _lines((drink, 4), (drink, 6))

    with pytest.raises(errors.InsufficientStock):
        await create_order(db_session, user_id=user_id, lines=too_many, delivery=PICKUP)
    assert (await reload(db_session, Product, drink_id)).quantity == 10

    result = await create_order(db_session, user_id=user_id, lines=just_enough, delivery=PICKUP)
    assert result.total == Decimal("20.00")
    assert (await reload(db_session, Product, drink_id)).quantity == 0


@pytest.mark.asyncio
@pytest.mark.integration
async def test_missing_product_counts_as_out_of_stock(db_session, shopper):
    lines = [CartLine(product_id=9999, quantity=1, unit_price=Decimal("1.00"), product_name="Ghost")]

    with pytest.raises(errors.InsufficientStock, match="Ghost"):
        await create_order(db_session, user_id=shopper.id, lines=lines, delivery=PICKUP)


@pytest.mark.asyncio
@pytest.mark.integration
async def test_sold_out_product(db_session, shopper):
    sold_out = await persist(db_session, ProductFactory.create(name="Milo", quantity=0))
    lines = _lines((sold_out, 1))

    with pytest.raises(errors.InsufficientStock, match="Milo"):
        await create_order(db_session, user_id=shopper.id, lines=lines, delivery=PICKUP)
    assert await _order_count(db_session) == 0

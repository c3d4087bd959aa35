"""Integration tests for delivery updates, order history and refund requests."""

from decimal import Decimal

import pytest
from fastapi import HTTPException
from libs.common import errors
from services.store_service.models import DeliveryMethod, OrderStatus, RefundRequestStatus
from services.store_service.services.delivery import update_delivery
from services.payments_service.models import Payment, PaymentProvider, PaymentStatus
from services.store_service.services.history import (
    get_order_for_user,
    list_all_orders,
    list_orders_for_user,
)
from services.store_service.services.order_creator import create_order
from services.store_service.services.refund_requests import (
    list_refund_requests,
    resolve_refund_request,
    submit_refund_request,
)
from services.store_service.services.types import CartLine, DeliveryOptions
from tests.factories import UserFactory, auth_user_for, persist


async def _order(db, user, product, method=DeliveryMethod.PICKUP) -> int:
    """One S$2.00 item; delivery orders go to the account address with the S$1.50 fee."""
    if method == DeliveryMethod.DELIVERY:
        delivery = DeliveryOptions(method=method, address=user.address, fee=Decimal("1.50"))
    else:
        delivery = DeliveryOptions()
    line = CartLine(product_id=product.id, quantity=1, unit_price=product.effective_price, product_name=product.name)
    result = await create_order(db, user_id=user.id, lines=[line], delivery=delivery)
    return result.order_id


# ---------------------------------------------------------------------------
# Delivery updates
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_shopper_changes_delivery_address(db_session, shopper, products):
    order_id = await _order(db_session, shopper, products[0], DeliveryMethod.DELIVERY)

    order = await update_delivery(
        db_session, order_id=order_id, actor=auth_user_for(shopper), address=" 5 New Address "
    )

    assert order.delivery_address == "5 New Address"
    assert order.delivery_fee == Decimal("1.50")
    assert order.total == Decimal("3.50")


@pytest.mark.asyncio
@pytest.mark.integration
async def test_shopper_cannot_change_method_or_fee(db_session, shopper, products):
    order_id = await _order(db_session, shopper, products[0], DeliveryMethod.DELIVERY)
    actor = auth_user_for(shopper)

    with pytest.raises(HTTPException) as exc_info:
        await update_delivery(db_session, order_id=order_id, actor=actor, method=DeliveryMethod.PICKUP)
    assert exc_info.value.status_code == 403

    with pytest.raises(HTTPException):
        await update_delivery(db_session, order_id=order_id, actor=actor, waive_fee=True)


@pytest.mark.asyncio
@pytest.mark.integration
async def test_shopper_cannot_edit_pickup_or_dispatched_orders(db_session, shopper, admin, products):
    actor = auth_user_for(shopper)
    pickup_id = await _order(db_session, shopper, products[0])
    delivery_id = await _order(db_session, shopper, products[0], DeliveryMethod.DELIVERY)
    await update_delivery(
        db_session, order_id=delivery_id, actor=auth_user_for(admin), order_status=OrderStatus.DISPATCHED
    )

    with pytest.raises(errors.ValidationError, match="Pickup"):
        await update_delivery(db_session, order_id=pickup_id, actor=actor, address="1 Road")
    with pytest.raises(errors.ValidationError, match="no longer"):
        await update_delivery(db_session, order_id=delivery_id, actor=actor, address="1 Road")


@pytest.mark.asyncio
@pytest.mark.integration
async def test_admin_switches_to_delivery_and_waives_fee(db_session, shopper, admin, products):
    order_id = await _order(db_session, shopper, products[0])
    actor = auth_user_for(admin)

    order = await update_delivery(db_session, order_id=order_id, actor=actor, method=DeliveryMethod.DELIVERY)
    assert order.delivery_address == shopper.address
    assert order.delivery_fee == Decimal("1.50")
    assert order.total == Decimal("3.50")

    order = await update_delivery(db_session, order_id=order_id, actor=actor, waive_fee=True)
    assert order.delivery_fee == Decimal("0.00")
    assert order.total == Decimal("2.00")

    order = await update_delivery(db_session, order_id=order_id, actor=actor, method=DeliveryMethod.PICKUP)
    assert order.delivery_address is None
    assert order.total == Decimal("2.00")


@pytest.mark.asyncio
@pytest.mark.integration
async def test_free_delivery_account_pays_no_fee(db_session, admin, products):
    member = await persist(db_session, UserFactory.create(free_delivery=True))
    order_id = await _order(db_session, member, products[0])

    order = await update_delivery(
        db_session, order_id=order_id, actor=auth_user_for(admin), method=DeliveryMethod.DELIVERY
    )

    assert order.delivery_fee == Decimal("0.00")
    assert order.total == Decimal("2.00")


@pytest.mark.asyncio
@pytest.mark.integration
async def test_other_shoppers_order_is_hidden(db_session, shopper, products):
    order_id = await _order(db_session, shopper, products[0], DeliveryMethod.DELIVERY)
    other = await persist(db_session, UserFactory.create())

    with pytest.raises(errors.NotFound):
        await update_delivery(db_session, order_id=order_id, actor=auth_user_for(other), address="x")
    with pytest.raises(errors.NotFound):
        await get_order_for_user(db_session, order_id, other.id)

    order, payment = await get_order_for_user(db_session, order_id, other.id, is_admin=True)
    assert order.id == order_id
    assert payment is None


@pytest.mark.asyncio
@pytest.mark.integration
async def test_order_history_newest_first(db_session, shopper, products):
    first = await _order(db_session, shopper, products[0])
    second = await _order(db_session, shopper, products[1])

    rows = await list_orders_for_user(db_session, shopper.id)

    assert [order.id for order, _ in rows] == [second, first]
    assert rows[0][0].items[0].product_name == "Kaya Toast"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_all_orders_listed_newest_first_with_owner_and_payment(db_session, shopper, products):
    other = await persist(db_session, UserFactory.create(username="neighbour", contact="98765432"))
    mine = await _order(db_session, shopper, products[0], DeliveryMethod.DELIVERY)
    theirs = await _order(db_session, other, products[1])
    await persist(
        db_session,
        Payment(
            order_id=mine,
            provider=PaymentProvider.PAYPAL,
            status=PaymentStatus.PAID,
            amount=Decimal("3.50"),
            currency="SGD",
            provider_ref="CAP-HISTORY",
        ),
    )

    rows = await list_all_orders(db_session)

    assert [order.id for order, _, _ in rows] == [theirs, mine]
    assert [owner.username for _, _, owner in rows] == ["neighbour", shopper.username]
    assert rows[0][1] is None
    assert rows[1][1].provider_ref == "CAP-HISTORY"
    assert rows[1][0].delivery_address == shopper.address
    assert rows[0][0].items[0].product_name == "Kaya Toast"

    assert len(await list_all_orders(db_session, order_status=OrderStatus.PROCESSING)) == 2
    assert await list_all_orders(db_session, order_status=OrderStatus.DISPATCHED) == []


# ---------------------------------------------------------------------------
# Refund requests
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_refund_request_lifecycle(db_session, shopper, admin, products):
    order_id = await _order(db_session, shopper, products[0])

    request = await submit_refund_request(
        db_session, user_id=shopper.id, order_id=order_id, reason="  Drink was spilled  "
    )
    assert request.status == RefundRequestStatus.PENDING
    assert request.reason == "Drink was spilled"

    with pytest.raises(errors.AlreadyProcessed):
        await submit_refund_request(db_session, user_id=shopper.id, order_id=order_id, reason="again")

    resolved = await resolve_refund_request(
        db_session, request_id=request.id, approve=True, resolved_by=admin.id
    )
    assert resolved.status == RefundRequestStatus.APPROVED
    assert resolved.resolved_by == admin.id
    assert resolved.resolved_at is not None

    with pytest.raises(errors.AlreadyProcessed):
        await resolve_refund_request(db_session, request_id=request.id, approve=False, resolved_by=admin.id)

    # A new request may follow once the earlier one is resolved
    await submit_refund_request(db_session, user_id=shopper.id, order_id=order_id, reason="still spilled")
    pending = await list_refund_requests(db_session, request_status=RefundRequestStatus.PENDING)
    mine = await list_refund_requests(db_session, user_id=shopper.id)
    assert len(pending) == 1
    assert len(mine) == 2


@pytest.mark.asyncio
@pytest.mark.integration
async def test_refund_request_validation(db_session, shopper, products):
    order_id = await _order(db_session, shopper, products[0])
    other = await persist(db_session, UserFactory.create())

    with pytest.raises(errors.ValidationError):
        await submit_refund_request(db_session, user_id=shopper.id, order_id=order_id, reason="   ")
    with pytest.raises(errors.ValidationError):
        await submit_refund_request(db_session, user_id=shopper.id, order_id=order_id, reason="x" * 1001)
    with pytest.raises(errors.NotFound):
        await submit_refund_request(db_session, user_id=other.id, order_id=order_id, reason="not mine")
    with pytest.raises(errors.NotFound):
        await resolve_refund_request(db_session, request_id=999, approve=True, resolved_by=shopper.id)

"""Post-order delivery changes: address edits, admin fee waivers, status."""

from typing import Optional

from fastapi import HTTPException, status
from libs.auth.models import AuthUser
from libs.common import errors
from libs.common.logging import get_logger
from libs.common.money import to_money
from services.members_service.models import User
from services.store_service.models import DeliveryMethod, Order, OrderStatus
from services.store_service.services.checkout import resolve_delivery_address
from services.store_service.services.fees import delivery_fee
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)


async def update_delivery(
    db: AsyncSession,
    *,
    order_id: int,
    actor: AuthUser,
    method: Optional[DeliveryMethod] = None,
    address: Optional[str] = None,
    waive_fee: bool = False,
    order_status: Optional[OrderStatus] = None,
) -> Order:
    """
    Change how an order is fulfilled.

    Shoppers may only edit the address of their own delivery order while it
    is still processing. Admins may also switch the method, waive the fee and
    move the status. The fee is re-derived and ``total`` adjusted by the
    difference.
    """
    order = (
        await db.execute(
            select(Order)
            .where(Order.id == order_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
    ).scalar_one_or_none()
    if order is None or (not actor.is_admin and order.user_id != actor.user_id):
        raise errors.NotFound("Order not found")

    if not actor.is_admin:
        if method is not None or waive_fee or order_status is not None:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Admin privileges required",
            )
        if order.status != OrderStatus.PROCESSING:
            raise errors.ValidationError("Order can no longer be changed")
        if order.delivery_method != DeliveryMethod.DELIVERY:
            raise errors.ValidationError("Pickup orders have no delivery address")

    owner = await db.get(User, order.user_id)
    new_method = DeliveryMethod(method) if method is not None else order.delivery_method
    new_address = resolve_delivery_address(
        new_method,
        address if address is not None else order.delivery_address,
        owner.address if owner else None,
    )

    old_fee = to_money(order.delivery_fee)
    if actor.is_admin:
        new_fee = delivery_fee(owner, new_method, waived=waive_fee)
    else:
        new_fee = old_fee

    try:
        order.delivery_method = new_method
        order.delivery_address = new_address
        order.delivery_fee = new_fee
        order.total = to_money(to_money(order.total) - old_fee + new_fee)
        if order_status is not None:
            order.status = OrderStatus(order_status)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info(
        "Order %s delivery updated by %s: method=%s fee %s -> %s status=%s",
        order.id,
        actor.user_id,
        new_method.value,
        old_fee,
        new_fee,
        order.status.value,
    )
    return order

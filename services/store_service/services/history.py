from typing import Optional

from libs.common import errors
from services.members_service.models import User
from services.payments_service.models import Payment
from services.store_service.models import Order, OrderStatus
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload


async def list_orders_for_user(
    db: AsyncSession, user_id: int
) -> list[tuple[Order, Optional[Payment]]]:
    """Newest first, items loaded, paired with the order's payment if any."""
    result = await db.execute(
        select(Order, Payment)
        .outerjoin(Payment, Payment.order_id == Order.id)
        .where(Order.user_id == user_id)
        .options(selectinload(Order.items))
        .order_by(Order.created_at.desc(), Order.id.desc())
    )
    return [(order, payment) for order, payment in result.all()]


async def get_order_for_user(
    db: AsyncSession, order_id: int, user_id: int, *, is_admin: bool = False
) -> tuple[Order, Optional[Payment]]:
    result = await db.execute(
        select(Order, Payment)
        .outerjoin(Payment, Payment.order_id == Order.id)
        .where(Order.id == order_id)
        .options(selectinload(Order.items))
    )
    row = result.first()
    if row is None or (not is_admin and row[0].user_id != user_id):
        raise errors.NotFound("Order not found")
    return row[0], row[1]


async def list_all_orders(
    db: AsyncSession, *, order_status: Optional[OrderStatus] = None
) -> list[tuple[Order, Optional[Payment], User]]:
    """Every order for the admin deliveries view, newest first, with payment and owner."""
    query = (
        select(Order, Payment, User)
        .join(User, User.id == Order.user_id)
        .outerjoin(Payment, Payment.order_id == Order.id)
        .options(selectinload(Order.items))
        .order_by(Order.created_at.desc(), Order.id.desc())
    )
    if order_status is not None:
        query = query.where(Order.status == order_status)
    result = await db.execute(query)
    return [(order, payment, user) for order, payment, user in result.all()]

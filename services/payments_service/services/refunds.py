"""Admin refunds: credit the shopper's wallet, then mark the payment refunded."""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from libs.common import errors
from libs.common.datetime_utils import utc_now
from libs.common.logging import get_logger
from libs.common.money import to_money
from services.payments_service.models import Payment, PaymentStatus
from services.store_service.models import Order
from services.wallet_service.models import TransactionType
from services.wallet_service.services.wallet_ops import credit_with_type
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)


@dataclass
class RefundResult:
    order_id: int
    user_id: int
    amount: Decimal
    new_balance: Decimal
    refunded_at: datetime


def refund_reference(order_id: int) -> str:
    return f"refund:order:{order_id}"


async def refund_payment(db: AsyncSession, *, order_id: int, performed_by: int) -> RefundResult:
    """
    Move a payment from ``paid`` to ``refunded``, crediting the order owner's wallet.

    The credit is idempotent on ``refund:order:<id>``. If it lands but the
    status update then fails, ``InconsistentState`` is raised and nothing is
    retried; an operator re-running the refund is safe.
    """
    payment = (
        await db.execute(select(Payment).where(Payment.order_id == order_id))
    ).scalar_one_or_none()
    if payment is None:
        raise errors.NotFound("Payment not found")
    if payment.status == PaymentStatus.REFUNDED:
        raise errors.AlreadyProcessed("Payment already refunded")

    order = await db.get(Order, order_id)
    if order is None:
        raise errors.NotFound("Order not found")

    payment_id = payment.id
    user_id = order.user_id
    amount = to_money(payment.amount)

    txn = await credit_with_type(
        db,
        user_id=user_id,
        amount=amount,
        transaction_type=TransactionType.REFUND,
        reference=refund_reference(order_id),
    )

    refunded_at = utc_now()
    try:
        locked = (
            await db.execute(
                select(Payment)
                .where(Payment.id == payment_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
        ).scalar_one()
        locked.status = PaymentStatus.REFUNDED
        locked.refunded_at = refunded_at
        await db.commit()
    except SQLAlchemyError:
        await db.rollback()
        logger.exception(
            "Refund for order %s credited %s to user %s but the payment could not be marked refunded",
            order_id,
            amount,
            user_id,
        )
        raise errors.InconsistentState(
            f"Wallet credited for order {order_id} but payment status was not updated"
        )

    logger.info(
        "Refunded order %s: %s to user %s by admin %s (balance=%s)",
        order_id,
        amount,
        user_id,
        performed_by,
        txn.balance_after,
    )
    return RefundResult(
        order_id=order_id,
        user_id=user_id,
        amount=amount,
        new_balance=to_money(txn.balance_after),
        refunded_at=refunded_at,
    )

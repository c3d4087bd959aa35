"""Admin payment routes."""

from fastapi import APIRouter, Depends
from libs.auth.dependencies import require_admin
from libs.auth.models import AuthUser
from libs.db.session import get_async_db
from services.payments_service.schemas import RefundResponse
from services.payments_service.services.refunds import refund_payment
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(tags=["admin-payments"])


@router.post("/orders/{order_id}/refund", response_model=RefundResponse)
async def refund_order(
    order_id: int,
    admin: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    """Refund a paid order to the shopper's wallet."""
    result = await refund_payment(db, order_id=order_id, performed_by=admin.user_id)
    return RefundResponse(
        order_id=result.order_id,
        user_id=result.user_id,
        amount=result.amount,
        new_balance=result.new_balance,
        refunded_at=result.refunded_at,
    )

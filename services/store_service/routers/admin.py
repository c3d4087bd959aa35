"""Admin store routes: deliveries overview and refund request review."""

from typing import Optional

from fastapi import APIRouter, Depends
from libs.auth.dependencies import require_admin
from libs.auth.models import AuthUser
from libs.db.session import get_async_db
from services.store_service.models import OrderStatus, RefundRequestStatus
from services.store_service.schemas import (
    AdminOrderResponse,
    OrderOwnerSummary,
    OrderPaymentSummary,
    OrderResponse,
    RefundRequestResolve,
    RefundRequestResponse,
)
from services.store_service.services.history import list_all_orders
from services.store_service.services.refund_requests import (
    list_refund_requests,
    resolve_refund_request,
)
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(tags=["admin-store"])


@router.get("/orders", response_model=list[AdminOrderResponse])
async def list_deliveries(
    status: Optional[OrderStatus] = None,
    _admin: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    """All orders, newest first, with items, payment and the shopper's contact details."""
    rows = await list_all_orders(db, order_status=status)
    responses = []
    for order, payment, owner in rows:
        response = AdminOrderResponse(
            **OrderResponse.model_validate(order).model_dump(),
            owner=OrderOwnerSummary.model_validate(owner),
        )
        if payment is not None:
            response.payment = OrderPaymentSummary.model_validate(payment)
        responses.append(response)
    return responses


@router.get("/refund-requests", response_model=list[RefundRequestResponse])
async def list_all_refund_requests(
    status: Optional[RefundRequestStatus] = None,
    _admin: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    return await list_refund_requests(db, request_status=status)


@router.post("/refund-requests/{request_id}/resolve", response_model=RefundRequestResponse)
async def resolve_request(
    request_id: int,
    request: RefundRequestResolve,
    admin: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    return await resolve_refund_request(
        db, request_id=request_id, approve=request.approve, resolved_by=admin.user_id
    )

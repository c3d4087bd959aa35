"""Store orders router: checkout start, order history, delivery changes, refund requests."""

from typing import Optional

from fastapi import APIRouter, Depends, status
from libs.auth.dependencies import get_current_user, require_shopper
from libs.auth.models import AuthUser
from libs.db.session import get_async_db
from services.payments_service.models import Payment
from services.store_service.models import Order
from services.store_service.schemas import (
    CheckoutLineResponse,
    CheckoutStartRequest,
    CheckoutStartResponse,
    DeliveryUpdateRequest,
    OrderPaymentSummary,
    OrderResponse,
    RefundRequestCreate,
    RefundRequestResponse,
)
from services.store_service.services.checkout import checkout_lines, start_checkout
from services.store_service.services.delivery import update_delivery
from services.store_service.services.history import get_order_for_user, list_orders_for_user
from services.store_service.services.refund_requests import (
    list_refund_requests,
    submit_refund_request,
)
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(tags=["store"])


def _order_response(order: Order, payment: Optional[Payment]) -> OrderResponse:
    response = OrderResponse.model_validate(order)
    if payment is not None:
        response.payment = OrderPaymentSummary.model_validate(payment)
    return response


# ============================================================================
# CHECKOUT
# ============================================================================


@router.post("/checkout/start", response_model=CheckoutStartResponse)
async def start_checkout_endpoint(
    request: CheckoutStartRequest,
    current_user: AuthUser = Depends(require_shopper),
    db: AsyncSession = Depends(get_async_db),
):
    """Price the cart on the server and hold it until payment is confirmed."""
    checkout, items_total = await start_checkout(
        db,
        user_id=current_user.user_id,
        items=[(item.product_id, item.quantity) for item in request.items],
        delivery_method=request.delivery_method,
        delivery_address=request.delivery_address,
    )
    return CheckoutStartResponse(
        checkout_id=checkout.id,
        status=checkout.status,
        lines=[
            CheckoutLineResponse(
                product_id=line.product_id,
                product_name=line.product_name,
                quantity=line.quantity,
                unit_price=line.unit_price,
            )
            for line in checkout_lines(checkout)
        ],
        items_total=items_total,
        delivery_method=checkout.delivery_method,
        delivery_address=checkout.delivery_address,
        delivery_fee=checkout.delivery_fee,
        total=checkout.expected_total,
    )


# ============================================================================
# ORDERS
# ============================================================================


@router.get("/orders", response_model=list[OrderResponse])
async def list_my_orders(
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    rows = await list_orders_for_user(db, current_user.user_id)
    return [_order_response(order, payment) for order, payment in rows]


@router.get("/orders/{order_id}", response_model=OrderResponse)
async def get_order(
    order_id: int,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    order, payment = await get_order_for_user(
        db, order_id, current_user.user_id, is_admin=current_user.is_admin
    )
    return _order_response(order, payment)


@router.patch("/orders/{order_id}/delivery", response_model=OrderResponse)
async def update_order_delivery(
    order_id: int,
    request: DeliveryUpdateRequest,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    await update_delivery(
        db,
        order_id=order_id,
        actor=current_user,
        method=request.delivery_method,
        address=request.delivery_address,
        waive_fee=request.waive_fee,
        order_status=request.status,
    )
    order, payment = await get_order_for_user(db, order_id, current_user.user_id, is_admin=True)
    return _order_response(order, payment)


# ============================================================================
# REFUND REQUESTS
# ============================================================================


@router.post(
    "/orders/{order_id}/refund-requests",
    response_model=RefundRequestResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_refund_request(
    order_id: int,
    request: RefundRequestCreate,
    current_user: AuthUser = Depends(require_shopper),
    db: AsyncSession = Depends(get_async_db),
):
    return await submit_refund_request(
        db,
        user_id=current_user.user_id,
        order_id=order_id,
        reason=request.reason,
        evidence_path=request.evidence_path,
    )


@router.get("/refund-requests", response_model=list[RefundRequestResponse])
async def list_my_refund_requests(
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    return await list_refund_requests(db, user_id=current_user.user_id)

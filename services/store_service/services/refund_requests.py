"""Shopper refund requests. Review only; money moves through the payments refund."""

from typing import Optional

from libs.common import errors
from libs.common.datetime_utils import utc_now
from libs.common.logging import get_logger
from services.store_service.models import Order, RefundRequest, RefundRequestStatus
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)

MAX_REASON_LENGTH = 1000


async def submit_refund_request(
    db: AsyncSession,
    *,
    user_id: int,
    order_id: int,
    reason: str,
    evidence_path: Optional[str] = None,
) -> RefundRequest:
    reason = (reason or "").strip()
    if not reason:
        raise errors.ValidationError("A reason is required")
    if len(reason) > MAX_REASON_LENGTH:
        raise errors.ValidationError(f"Reason must be at most {MAX_REASON_LENGTH} characters")

    order = await db.get(Order, order_id)
    if order is None or order.user_id != user_id:
        raise errors.NotFound("Order not found")

    pending = await db.execute(
        select(RefundRequest.id).where(
            RefundRequest.order_id == order_id,
            RefundRequest.status == RefundRequestStatus.PENDING,
        )
    )
    if pending.first() is not None:
        raise errors.AlreadyProcessed("A refund request for this order is already pending")

    request = RefundRequest(
        order_id=order_id,
        user_id=user_id,
        reason=reason,
        evidence_path=evidence_path,
    )
    try:
        db.add(request)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info("Refund request %s submitted for order %s by user %s", request.id, order_id, user_id)
    return request


async def list_refund_requests(
    db: AsyncSession,
    *,
    user_id: Optional[int] = None,
    request_status: Optional[RefundRequestStatus] = None,
) -> list[RefundRequest]:
    query = select(RefundRequest).order_by(RefundRequest.created_at.desc(), RefundRequest.id.desc())
    if user_id is not None:
        query = query.where(RefundRequest.user_id == user_id)
    if request_status is not None:
        query = query.where(RefundRequest.status == request_status)
    result = await db.execute(query)
    return list(result.scalars().all())


async def resolve_refund_request(
    db: AsyncSession, *, request_id: int, approve: bool, resolved_by: int
) -> RefundRequest:
    request = (
        await db.execute(
            select(RefundRequest)
            .where(RefundRequest.id == request_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
    ).scalar_one_or_none()
    if request is None:
        raise errors.NotFound("Refund request not found")
    if request.status != RefundRequestStatus.PENDING:
        raise errors.AlreadyProcessed(f"Refund request already {request.status.value}")

    try:
        request.status = RefundRequestStatus.APPROVED if approve else RefundRequestStatus.REJECTED
        request.resolved_by = resolved_by
        request.resolved_at = utc_now()
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info("Refund request %s %s by %s", request.id, request.status.value, resolved_by)
    return request

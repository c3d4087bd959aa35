"""Shopper wallet routes: balance, history and top-ups."""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse
from libs.auth.dependencies import get_current_user, require_shopper
from libs.auth.models import AuthUser
from libs.common import errors
from libs.db.session import get_async_db, get_session_factory
from services.payments_service.clients import ProviderClients, get_provider_clients
from services.payments_service.services.status_stream import PaymentStatusStream
from services.wallet_service.models import TopupProvider, TopupStatus
from services.wallet_service.schemas import (
    NetsTopupConfirmRequest,
    NetsTopupResponse,
    PayPalTopupCaptureRequest,
    PayPalTopupOrderResponse,
    TopupAmountRequest,
    TopupResponse,
    WalletSummaryResponse,
    WalletTopupResponse,
    WalletTransactionResponse,
)
from services.wallet_service.services.topup_service import (
    TopupResult,
    capture_paypal_topup,
    confirm_nets_topup,
    create_nets_topup,
    create_paypal_topup_order,
    find_topup,
    get_wallet_summary,
)
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

router = APIRouter(tags=["wallet"])


def _topup_response(result: TopupResult) -> TopupResponse:
    return TopupResponse(
        new_balance=result.new_balance,
        amount=result.amount,
        provider_ref=result.provider_ref,
        already_processed=result.already_processed,
    )


@router.get("/me", response_model=WalletSummaryResponse)
async def get_my_wallet(
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    summary = await get_wallet_summary(db, current_user.user_id)
    return WalletSummaryResponse(
        balance=summary.balance,
        topups=[WalletTopupResponse.model_validate(t) for t in summary.topups],
        transactions=[WalletTransactionResponse.model_validate(t) for t in summary.transactions],
    )


# ---------------------------------------------------------------------------
# PayPal top-ups
# ---------------------------------------------------------------------------


@router.post("/topups/paypal/order", response_model=PayPalTopupOrderResponse)
async def create_paypal_topup(
    request: TopupAmountRequest,
    _user: AuthUser = Depends(require_shopper),
    clients: ProviderClients = Depends(get_provider_clients),
):
    intent = await create_paypal_topup_order(clients.paypal, amount=request.amount)
    return PayPalTopupOrderResponse(
        order_id=intent.reference,
        amount=intent.amount,
        currency=intent.currency,
        approval_url=intent.approval_url,
    )


@router.post("/topups/paypal/capture", response_model=TopupResponse)
async def capture_paypal_topup_endpoint(
    request: PayPalTopupCaptureRequest,
    current_user: AuthUser = Depends(require_shopper),
    db: AsyncSession = Depends(get_async_db),
    clients: ProviderClients = Depends(get_provider_clients),
):
    result = await capture_paypal_topup(
        db, clients.paypal, user_id=current_user.user_id, paypal_order_id=request.order_id
    )
    return _topup_response(result)


# ---------------------------------------------------------------------------
# NETS QR top-ups
# ---------------------------------------------------------------------------


@router.post("/topups/nets", response_model=NetsTopupResponse)
async def create_nets_topup_endpoint(
    request: TopupAmountRequest,
    current_user: AuthUser = Depends(require_shopper),
    db: AsyncSession = Depends(get_async_db),
    clients: ProviderClients = Depends(get_provider_clients),
):
    topup, intent = await create_nets_topup(
        db, clients.nets, user_id=current_user.user_id, amount=request.amount
    )
    return NetsTopupResponse(
        topup_id=topup.id,
        txn_retrieval_ref=topup.provider_ref,
        qr_code=intent.qr_code,
        amount=topup.amount,
    )


@router.post("/topups/nets/confirm", response_model=TopupResponse)
async def confirm_nets_topup_endpoint(
    request: NetsTopupConfirmRequest,
    current_user: AuthUser = Depends(require_shopper),
    db: AsyncSession = Depends(get_async_db),
    clients: ProviderClients = Depends(get_provider_clients),
):
    result = await confirm_nets_topup(
        db, clients.nets, user_id=current_user.user_id, txn_retrieval_ref=request.txn_retrieval_ref
    )
    return _topup_response(result)


@router.get("/topups/nets/{txn_retrieval_ref}/status-stream")
async def nets_topup_status_stream(
    txn_retrieval_ref: str,
    request: Request,
    current_user: AuthUser = Depends(require_shopper),
    db: AsyncSession = Depends(get_async_db),
    clients: ProviderClients = Depends(get_provider_clients),
    session_factory: async_sessionmaker = Depends(get_session_factory),
):
    """Server-Sent Events for a pending NETS top-up; credits the wallet on success."""
    topup = await find_topup(db, txn_retrieval_ref)
    if topup is None or topup.user_id != current_user.user_id or topup.provider != TopupProvider.NETS:
        raise errors.NotFound("Top-up not found")
    if topup.status != TopupStatus.PENDING:
        raise errors.AlreadyProcessed("Top-up already completed")

    user_id = current_user.user_id

    async def credit() -> dict:
        async with session_factory() as session:
            result = await confirm_nets_topup(
                session, clients.nets, user_id=user_id, txn_retrieval_ref=txn_retrieval_ref
            )
        return _topup_response(result).model_dump(mode="json")

    stream = PaymentStatusStream(clients.nets, txn_retrieval_ref, on_success=credit)
    return StreamingResponse(
        stream.sse(request.is_disconnected),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )

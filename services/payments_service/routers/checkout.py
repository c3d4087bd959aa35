"""Checkout payment routes: create provider payments, confirm them, watch QR payments."""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse
from libs.auth.dependencies import require_shopper
from libs.auth.models import AuthUser
from libs.common import errors
from libs.db.session import get_async_db, get_session_factory
from services.payments_service.clients import ProviderClients, get_provider_clients
from services.payments_service.models import PaymentProvider
from services.payments_service.schemas import (
    PaymentConfirmRequest,
    PaymentIntentResponse,
    SettlementResponse,
)
from services.payments_service.services.reconciliation import (
    PaymentProof,
    create_payment_intent,
    settle_checkout,
)
from services.payments_service.services.status_stream import PaymentStatusStream
from services.store_service.models import CheckoutStatus
from services.store_service.services.checkout import get_checkout
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

router = APIRouter(tags=["payments"])

SSE_HEADERS = {"Cache-Control": "no-cache", "X-Accel-Buffering": "no"}


@router.post("/checkout/{checkout_id}/{provider}/intent", response_model=PaymentIntentResponse)
async def create_checkout_payment(
    checkout_id: int,
    provider: PaymentProvider,
    current_user: AuthUser = Depends(require_shopper),
    db: AsyncSession = Depends(get_async_db),
    clients: ProviderClients = Depends(get_provider_clients),
):
    """Create the PayPal order, Stripe intent, PayNow intent or NETS QR for a checkout."""
    intent = await create_payment_intent(
        db,
        checkout_id=checkout_id,
        user_id=current_user.user_id,
        provider=provider,
        clients=clients,
    )
    return PaymentIntentResponse.from_intent(provider, intent)


@router.post("/checkout/{checkout_id}/{provider}/confirm", response_model=SettlementResponse)
async def confirm_checkout_payment(
    checkout_id: int,
    provider: PaymentProvider,
    request: PaymentConfirmRequest,
    current_user: AuthUser = Depends(require_shopper),
    db: AsyncSession = Depends(get_async_db),
    clients: ProviderClients = Depends(get_provider_clients),
):
    """Verify the payment with the provider and turn the checkout into an order."""
    result = await settle_checkout(
        db,
        checkout_id=checkout_id,
        user_id=current_user.user_id,
        provider=provider,
        proof=PaymentProof(reference=request.reference),
        clients=clients,
    )
    return SettlementResponse.from_result(result)


@router.get("/checkout/{checkout_id}/status-stream")
async def checkout_status_stream(
    checkout_id: int,
    request: Request,
    current_user: AuthUser = Depends(require_shopper),
    db: AsyncSession = Depends(get_async_db),
    clients: ProviderClients = Depends(get_provider_clients),
    session_factory: async_sessionmaker = Depends(get_session_factory),
):
    """Server-Sent Events for a pending NETS QR or PayNow payment; settles on success."""
    checkout = await get_checkout(db, checkout_id, current_user.user_id)
    if checkout.status == CheckoutStatus.COMPLETED:
        raise errors.AlreadyProcessed("Checkout already settled")
    provider = PaymentProvider(checkout.payment_provider) if checkout.payment_provider else None
    if provider is None or not provider.is_async or not checkout.provider_ref:
        raise errors.ValidationError("No QR or PayNow payment is pending for this checkout")

    user_id = current_user.user_id
    reference = checkout.provider_ref

    async def settle() -> dict:
        async with session_factory() as session:
            result = await settle_checkout(
                session,
                checkout_id=checkout_id,
                user_id=user_id,
                provider=provider,
                proof=PaymentProof(reference=reference),
                clients=clients,
            )
        return SettlementResponse.from_result(result).model_dump(mode="json")

    stream = PaymentStatusStream(clients.for_provider(provider), reference, on_success=settle)
    return StreamingResponse(
        stream.sse(request.is_disconnected),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )

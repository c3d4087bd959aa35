"""Pydantic schemas for the payments service."""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field
from services.payments_service.models import PaymentProvider, PaymentStatus
from services.payments_service.provider_types import ProviderIntent
from services.payments_service.services.reconciliation import SettlementResult


class PaymentIntentResponse(BaseModel):
    provider: PaymentProvider
    reference: str
    amount: Decimal
    currency: str
    client_secret: Optional[str] = None
    qr_code: Optional[str] = None
    approval_url: Optional[str] = None

    @classmethod
    def from_intent(cls, provider: PaymentProvider, intent: ProviderIntent) -> "PaymentIntentResponse":
        return cls(
            provider=provider,
            reference=intent.reference,
            amount=intent.amount,
            currency=intent.currency,
            client_secret=intent.client_secret,
            qr_code=intent.qr_code,
            approval_url=intent.approval_url,
        )


class PaymentConfirmRequest(BaseModel):
    # PayPal order id, Stripe PaymentIntent id or NETS txn_retrieval_ref; unused for wallet
    reference: Optional[str] = Field(None, max_length=255)


class SettlementResponse(BaseModel):
    order_id: int
    total: Decimal
    provider: PaymentProvider
    status: PaymentStatus
    provider_ref: str
    already_processed: bool = False
    wallet_balance: Optional[Decimal] = None

    @classmethod
    def from_result(cls, result: SettlementResult) -> "SettlementResponse":
        return cls(
            order_id=result.order_id,
            total=result.total,
            provider=result.provider,
            status=result.status,
            provider_ref=result.provider_ref,
            already_processed=result.already_processed,
            wallet_balance=result.wallet_balance,
        )


class RefundResponse(BaseModel):
    order_id: int
    user_id: int
    amount: Decimal
    new_balance: Decimal
    refunded_at: datetime

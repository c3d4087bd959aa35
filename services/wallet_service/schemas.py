"""Pydantic schemas for the wallet service."""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from services.wallet_service.models import TopupProvider, TopupStatus, TransactionType


class WalletTransactionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    transaction_type: TransactionType
    amount: Decimal
    balance_after: Decimal
    reference: Optional[str] = None
    created_at: datetime


class WalletTopupResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    provider: TopupProvider
    amount: Decimal
    status: TopupStatus
    provider_ref: str
    created_at: datetime
    completed_at: Optional[datetime] = None


class WalletSummaryResponse(BaseModel):
    balance: Decimal
    topups: list[WalletTopupResponse]
    transactions: list[WalletTransactionResponse]


class TopupAmountRequest(BaseModel):
    amount: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)


class PayPalTopupOrderResponse(BaseModel):
    order_id: str
    amount: Decimal
    currency: str
    approval_url: Optional[str] = None


class PayPalTopupCaptureRequest(BaseModel):
    order_id: str = Field(..., min_length=1, max_length=255)


class NetsTopupResponse(BaseModel):
    topup_id: int
    txn_retrieval_ref: str
    qr_code: Optional[str] = None
    amount: Decimal


class NetsTopupConfirmRequest(BaseModel):
    txn_retrieval_ref: str = Field(..., min_length=1, max_length=255)


class TopupResponse(BaseModel):
    new_balance: Decimal
    amount: Decimal
    provider_ref: str
    already_processed: bool = False

"""Pydantic schemas for store service."""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from services.payments_service.models import PaymentProvider, PaymentStatus
from services.store_service.models import (
    CheckoutStatus,
    DeliveryMethod,
    OrderStatus,
    RefundRequestStatus,
)

# ============================================================================
# CHECKOUT SCHEMAS
# ============================================================================


class CheckoutItem(BaseModel):
    product_id: int
    quantity: int = Field(..., gt=0)


class CheckoutStartRequest(BaseModel):
    items: list[CheckoutItem] = Field(..., min_length=1)
    delivery_method: DeliveryMethod = DeliveryMethod.PICKUP
    delivery_address: Optional[str] = Field(None, max_length=1000)


class CheckoutLineResponse(BaseModel):
    product_id: int
    product_name: str
    quantity: int
    unit_price: Decimal


class CheckoutStartResponse(BaseModel):
    checkout_id: int
    status: CheckoutStatus
    lines: list[CheckoutLineResponse]
    items_total: Decimal
    delivery_method: DeliveryMethod
    delivery_address: Optional[str] = None
    delivery_fee: Decimal
    total: Decimal


# ============================================================================
# ORDER SCHEMAS
# ============================================================================


class OrderItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    product_id: int
    product_name: str
    quantity: int
    price: Decimal


class OrderPaymentSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    provider: PaymentProvider
    status: PaymentStatus
    amount: Decimal
    currency: str
    refunded_at: Optional[datetime] = None


class OrderResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    total: Decimal
    delivery_method: DeliveryMethod
    delivery_address: Optional[str] = None
    delivery_fee: Decimal
    status: OrderStatus
    created_at: datetime
    items: list[OrderItemResponse] = []
    payment: Optional[OrderPaymentSummary] = None


class OrderOwnerSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    username: str
    email: str
    contact: Optional[str] = None
    address: Optional[str] = None
    free_delivery: bool


class AdminOrderResponse(OrderResponse):
    owner: OrderOwnerSummary


class DeliveryUpdateRequest(BaseModel):
    delivery_method: Optional[DeliveryMethod] = None
    delivery_address: Optional[str] = Field(None, max_length=1000)
    waive_fee: bool = False
    status: Optional[OrderStatus] = None


# ============================================================================
# REFUND REQUEST SCHEMAS
# ============================================================================


class RefundRequestCreate(BaseModel):
    reason: str = Field(..., min_length=1, max_length=1000)
    evidence_path: Optional[str] = Field(None, max_length=500)


class RefundRequestResolve(BaseModel):
    approve: bool


class RefundRequestResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    order_id: int
    user_id: int
    reason: str
    evidence_path: Optional[str] = None
    status: RefundRequestStatus
    created_at: datetime
    resolved_at: Optional[datetime] = None
    resolved_by: Optional[int] = None

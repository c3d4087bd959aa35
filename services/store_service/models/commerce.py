"""Store commerce models: pending checkouts, orders, refund requests."""

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from libs.common.datetime_utils import utc_now
from libs.db.base import Base
from services.store_service.models.enums import (
    CheckoutStatus,
    DeliveryMethod,
    OrderStatus,
    RefundRequestStatus,
    enum_values,
)
from sqlalchemy import JSON, CheckConstraint, DateTime
from sqlalchemy import Enum as SAEnum
from sqlalchemy import ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

JSONType = JSON().with_variant(JSONB(), "postgresql")

DELIVERY_ADDRESS_RULE = (
    "(delivery_method = 'delivery' AND delivery_address IS NOT NULL) "
    "OR (delivery_method = 'pickup')"
)

# ============================================================================
# CHECKOUT
# ============================================================================


class PendingCheckout(Base):
    """Server-held cart snapshot and delivery choice awaiting payment.

    ``lines`` holds ``{product_id, quantity, unit_price, product_name}`` dicts
    priced at checkout start. ``provider_ref`` / ``provider_amount`` are set
    once a provider intent or QR has been generated for this checkout.
    """

    __tablename__ = "pending_checkouts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False
    )
    lines: Mapped[list[dict[str, Any]]] = mapped_column(JSONType, nullable=False)

    delivery_method: Mapped[DeliveryMethod] = mapped_column(
        SAEnum(
            DeliveryMethod,
            values_callable=enum_values,
            name="delivery_method_enum",
            validate_strings=True,
        ),
        default=DeliveryMethod.PICKUP,
        nullable=False,
    )
    delivery_address: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    delivery_fee: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), default=Decimal("0.00"), nullable=False
    )
    expected_total: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    payment_provider: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    provider_ref: Mapped[Optional[str]] = mapped_column(String(255), index=True, nullable=True)
    provider_amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)

    status: Mapped[CheckoutStatus] = mapped_column(
        SAEnum(
            CheckoutStatus,
            values_callable=enum_values,
            name="checkout_status_enum",
            validate_strings=True,
        ),
        default=CheckoutStatus.OPEN,
        nullable=False,
    )
    order_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("orders.id", ondelete="SET NULL"), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False
    )

    __table_args__ = (CheckConstraint(DELIVERY_ADDRESS_RULE, name="ck_checkout_delivery_address"),)

    def __repr__(self) -> str:
        return f"<PendingCheckout {self.id} user={self.user_id} status={self.status}>"


# ============================================================================
# ORDERS
# ============================================================================


class Order(Base):
    __tablename__ = "orders"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"), index=True, nullable=False
    )
    total: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    delivery_method: Mapped[DeliveryMethod] = mapped_column(
        SAEnum(
            DeliveryMethod,
            values_callable=enum_values,
            name="delivery_method_enum",
            validate_strings=True,
        ),
        default=DeliveryMethod.PICKUP,
        nullable=False,
    )
    delivery_address: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    delivery_fee: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), default=Decimal("0.00"), nullable=False
    )
    status: Mapped[OrderStatus] = mapped_column(
        SAEnum(
            OrderStatus,
            values_callable=enum_values,
            name="order_status_enum",
            validate_strings=True,
        ),
        default=OrderStatus.PROCESSING,
        nullable=False,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )

    items: Mapped[list["OrderItem"]] = relationship(
        back_populates="order",
        lazy="selectin",
        cascade="all, delete-orphan",
        order_by="OrderItem.id",
    )

    __table_args__ = (
        CheckConstraint(DELIVERY_ADDRESS_RULE, name="ck_orders_delivery_address"),
        CheckConstraint("total >= 0", name="ck_orders_total_non_negative"),
    )

    def __repr__(self) -> str:
        return f"<Order {self.id} user={self.user_id} total={self.total}>"


class OrderItem(Base):
    """Line snapshot. Never updated after the order transaction commits."""

    __tablename__ = "order_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_id: Mapped[int] = mapped_column(
        ForeignKey("orders.id", ondelete="CASCADE"), index=True, nullable=False
    )
    product_id: Mapped[int] = mapped_column(
        ForeignKey("products.id", ondelete="RESTRICT"), index=True, nullable=False
    )
    product_name: Mapped[str] = mapped_column(String(255), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)

    order: Mapped["Order"] = relationship(back_populates="items")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_order_items_quantity_positive"),
        CheckConstraint("price >= 0", name="ck_order_items_price_non_negative"),
    )


# ============================================================================
# REFUND REQUESTS
# ============================================================================


class RefundRequest(Base):
    """Shopper-initiated refund request. Reviewed by an admin."""

    __tablename__ = "refund_requests"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_id: Mapped[int] = mapped_column(
        ForeignKey("orders.id", ondelete="CASCADE"), index=True, nullable=False
    )
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False
    )
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    evidence_path: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    status: Mapped[RefundRequestStatus] = mapped_column(
        SAEnum(
            RefundRequestStatus,
            values_callable=enum_values,
            name="refund_request_status_enum",
            validate_strings=True,
        ),
        default=RefundRequestStatus.PENDING,
        nullable=False,
    )
    resolved_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )

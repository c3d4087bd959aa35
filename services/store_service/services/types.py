"""Value types passed between checkout, wallet and payment code."""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Optional

from libs.common.money import to_money
from services.store_service.models import DeliveryMethod

MAX_ADDRESS_LENGTH = 255


@dataclass(frozen=True)
class CartLine:
    """A cart line priced on the server (effective price at checkout start)."""

    product_id: int
    quantity: int
    unit_price: Decimal
    product_name: str = ""

    def to_snapshot(self) -> dict[str, Any]:
        return {
            "product_id": self.product_id,
            "quantity": self.quantity,
            "unit_price": f"{to_money(self.unit_price):.2f}",
            "product_name": self.product_name,
        }

    @classmethod
    def from_snapshot(cls, data: dict[str, Any]) -> "CartLine":
        return cls(
            product_id=int(data["product_id"]),
            quantity=int(data["quantity"]),
            unit_price=to_money(data["unit_price"]),
            product_name=data.get("product_name") or "",
        )


@dataclass(frozen=True)
class DeliveryOptions:
    method: DeliveryMethod = DeliveryMethod.PICKUP
    address: Optional[str] = None
    fee: Decimal = field(default_factory=lambda: Decimal("0.00"))


@dataclass
class OrderResult:
    order_id: int
    total: Decimal
    delivery_method: DeliveryMethod
    delivery_address: Optional[str]
    delivery_fee: Decimal
    wallet_balance: Optional[Decimal] = None

"""Shared result types for the payment provider clients.

Each client exposes the same four calls: ``create_intent``, ``capture``,
``query_status`` and ``refund``. Provider payloads are normalized into the
dataclasses below; transport and credential failures raise ``ProviderError``.
"""

import enum
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Optional, Protocol


class PaymentState(str, enum.Enum):
    SUCCEEDED = "succeeded"
    PENDING = "pending"
    FAILED = "failed"


class ProviderError(Exception):
    """Raised when a provider call fails or returns an unusable response."""

    def __init__(
        self, message: str, status_code: Optional[int] = None, response_data: Optional[dict] = None
    ):
        self.message = message
        self.status_code = status_code
        self.response_data = response_data or {}
        super().__init__(message)


@dataclass
class ProviderIntent:
    """A payment the shopper still has to approve, scan or confirm."""

    reference: str
    amount: Decimal
    currency: str
    client_secret: Optional[str] = None
    qr_code: Optional[str] = None
    approval_url: Optional[str] = None
    raw: dict[str, Any] = field(default_factory=dict)


@dataclass
class CaptureResult:
    """Outcome of capturing / fetching a payment.

    ``reference`` is the id the settlement is keyed by (PayPal capture id,
    PaymentIntent id, NETS retrieval ref). ``amount`` is what the provider
    says was taken, or ``None`` if it did not say.
    """

    reference: Optional[str]
    state: PaymentState
    amount: Optional[Decimal] = None
    currency: Optional[str] = None
    raw: dict[str, Any] = field(default_factory=dict)


@dataclass
class StatusResult:
    """One poll of an asynchronous (QR / PayNow) payment."""

    reference: str
    state: PaymentState
    payload: dict[str, Any] = field(default_factory=dict)


class PaymentProviderClient(Protocol):
    async def create_intent(self, amount: Decimal, currency: str) -> ProviderIntent: ...

    async def capture(self, reference: str) -> CaptureResult: ...

    async def query_status(self, reference: str, final_attempt: bool = False) -> StatusResult: ...

    async def refund(self, reference: str) -> dict[str, Any]: ...

"""
Stripe PaymentIntent client for card and PayNow payments.

The official ``stripe`` library is synchronous, so each call runs in a worker
thread. The API key is passed per request rather than set globally.
"""

import asyncio
import logging
from decimal import Decimal
from typing import Any, Callable, Optional

import stripe
from libs.common.config import get_settings
from libs.common.money import cents_to_money, to_cents, to_money
from services.payments_service.provider_types import (
    CaptureResult,
    PaymentState,
    ProviderError,
    ProviderIntent,
    StatusResult,
)

logger = logging.getLogger(__name__)

# Intent states that can no longer succeed without a new payment method
FAILED_STATUSES = {"canceled", "requires_payment_method"}


class StripeClient:
    """Card payments confirmed client-side with Stripe Elements."""

    def __init__(self, secret_key: Optional[str] = None):
        self.secret_key = secret_key or get_settings().STRIPE_SECRET_KEY

    async def _call(self, func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        if not self.secret_key:
            raise ProviderError("STRIPE_SECRET_KEY is not configured")
        try:
            return await asyncio.to_thread(func, *args, api_key=self.secret_key, **kwargs)
        except stripe.StripeError as exc:
            logger.error("Stripe API error: %s", exc)
            raise ProviderError(
                getattr(exc, "user_message", None) or str(exc) or "Stripe request failed",
                status_code=getattr(exc, "http_status", None),
                response_data=getattr(exc, "json_body", None) or {},
            ) from exc

    def _intent_params(self, amount: Decimal, currency: str) -> dict[str, Any]:
        return {
            "amount": to_cents(amount),
            "currency": currency.lower(),
            "automatic_payment_methods": {"enabled": True},
        }

    async def create_intent(self, amount: Decimal, currency: str) -> ProviderIntent:
        intent = await self._call(stripe.PaymentIntent.create, **self._intent_params(amount, currency))
        return ProviderIntent(
            reference=_field(intent, "id"),
            amount=to_money(amount),
            currency=currency,
            client_secret=_field(intent, "client_secret"),
            qr_code=_paynow_qr(intent),
            raw=_as_dict(intent),
        )

    async def retrieve(self, reference: str) -> Any:
        return await self._call(stripe.PaymentIntent.retrieve, reference)

    async def capture(self, reference: str) -> CaptureResult:
        """Fetch the intent; card and PayNow intents are confirmed outside this service."""
        intent = await self.retrieve(reference)
        return parse_intent(intent)

    async def query_status(self, reference: str, final_attempt: bool = False) -> StatusResult:
        """On the final attempt an unpaid intent is cancelled so the answer is definitive."""
        intent = await self.retrieve(reference)
        status = _field(intent, "status")
        if final_attempt and status not in ("succeeded", "canceled"):
            intent = await self._call(stripe.PaymentIntent.cancel, reference)
            status = _field(intent, "status")

        if status == "succeeded":
            state = PaymentState.SUCCEEDED
        elif status in FAILED_STATUSES and (final_attempt or status == "canceled"):
            state = PaymentState.FAILED
        else:
            state = PaymentState.PENDING
        return StatusResult(reference=reference, state=state, payload={"status": status})

    async def refund(self, reference: str) -> dict[str, Any]:
        refund = await self._call(stripe.Refund.create, payment_intent=reference)
        return _as_dict(refund)


class StripePayNowClient(StripeClient):
    """PayNow QR payments: the intent is confirmed at creation and shows a QR code."""

    def __init__(self, secret_key: Optional[str] = None, return_url: Optional[str] = None):
        super().__init__(secret_key)
        self.return_url = return_url or get_settings().PAYNOW_RETURN_URL

    def _intent_params(self, amount: Decimal, currency: str) -> dict[str, Any]:
        return {
            "amount": to_cents(amount),
            "currency": currency.lower(),
            "payment_method_types": ["paynow"],
            "payment_method_data": {"type": "paynow"},
            "confirm": True,
            "return_url": self.return_url,
        }


def parse_intent(intent: Any) -> CaptureResult:
    status = _field(intent, "status")
    received = _field(intent, "amount_received")
    if status == "succeeded":
        state = PaymentState.SUCCEEDED
    elif status == "canceled":
        state = PaymentState.FAILED
    else:
        state = PaymentState.PENDING
    return CaptureResult(
        reference=_field(intent, "id"),
        state=state,
        amount=cents_to_money(received) if received is not None else None,
        currency=(_field(intent, "currency") or "").upper() or None,
        raw=_as_dict(intent),
    )


def _paynow_qr(intent: Any) -> Optional[str]:
    next_action = _field(intent, "next_action") or {}
    qr = _field(next_action, "paynow_display_qr_code") or {}
    return _field(qr, "image_url_png") or _field(qr, "data")


def get_stripe_client() -> StripeClient:
    return StripeClient()


def get_paynow_client() -> StripePayNowClient:
    return StripePayNowClient()


def _field(obj: Any, name: str, default: Any = None) -> Any:
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)


def _as_dict(obj: Any) -> dict[str, Any]:
    if isinstance(obj, dict):
        return dict(obj)
    to_dict = getattr(obj, "to_dict", None)
    return to_dict() if callable(to_dict) else {}

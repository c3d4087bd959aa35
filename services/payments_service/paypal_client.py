"""
PayPal Orders v2 API client.

Provides async methods for:
- OAuth client-credentials token
- Creating a CAPTURE-intent order
- Capturing an approved order
- Fetching order status
- Refunding a capture
"""

import logging
from decimal import Decimal
from typing import Any, Optional

import httpx
from libs.common.config import get_settings
from libs.common.money import money_str, to_money
from services.payments_service.provider_types import (
    CaptureResult,
    PaymentState,
    ProviderError,
    ProviderIntent,
    StatusResult,
)

logger = logging.getLogger(__name__)


class PayPalClient:
    """Async client for the PayPal checkout flow."""

    def __init__(
        self,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        api_base: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        settings = get_settings()
        self.client_id = client_id or settings.PAYPAL_CLIENT_ID
        self.client_secret = client_secret or settings.PAYPAL_CLIENT_SECRET
        self.api_base = (api_base or settings.PAYPAL_API_BASE).rstrip("/")
        self.timeout = settings.PROVIDER_TIMEOUT_SECONDS
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.api_base, timeout=self.timeout, transport=self._transport
        )

    async def get_access_token(self) -> str:
        if not self.client_id or not self.client_secret:
            raise ProviderError("PayPal credentials are not configured")

        try:
            async with self._client() as client:
                response = await client.post(
                    "/v1/oauth2/token",
                    auth=(self.client_id, self.client_secret),
                    data={"grant_type": "client_credentials"},
                )
        except httpx.HTTPError as exc:
            raise ProviderError(f"PayPal unreachable: {exc}") from exc

        data = _json(response)
        if not response.is_success or "access_token" not in data:
            logger.error("PayPal token error: %s - %s", response.status_code, data)
            raise ProviderError(
                "PayPal authentication failed",
                status_code=response.status_code,
                response_data=data,
            )
        return data["access_token"]

    async def _request(
        self, method: str, endpoint: str, json_data: Optional[dict] = None
    ) -> dict[str, Any]:
        token = await self.get_access_token()
        try:
            async with self._client() as client:
                response = await client.request(
                    method,
                    endpoint,
                    json=json_data,
                    headers={
                        "Authorization": f"Bearer {token}",
                        "Content-Type": "application/json",
                    },
                )
        except httpx.HTTPError as exc:
            raise ProviderError(f"PayPal unreachable: {exc}") from exc

        data = _json(response)
        if not response.is_success:
            logger.error("PayPal API error: %s %s -> %s - %s", method, endpoint, response.status_code, data)
            raise ProviderError(
                data.get("message") or data.get("error_description") or "PayPal request failed",
                status_code=response.status_code,
                response_data=data,
            )
        return data

    # =========================================================================
    # Orders
    # =========================================================================

    async def create_order(self, amount: Decimal, currency: str) -> dict[str, Any]:
        return await self._request(
            "POST",
            "/v2/checkout/orders",
            json_data={
                "intent": "CAPTURE",
                "purchase_units": [
                    {"amount": {"currency_code": currency, "value": money_str(amount)}}
                ],
            },
        )

    async def capture_order(self, order_id: str) -> dict[str, Any]:
        return await self._request("POST", f"/v2/checkout/orders/{order_id}/capture")

    async def get_order(self, order_id: str) -> dict[str, Any]:
        return await self._request("GET", f"/v2/checkout/orders/{order_id}")

    async def refund_capture(self, capture_id: str) -> dict[str, Any]:
        return await self._request("POST", f"/v2/payments/captures/{capture_id}/refund")

    # =========================================================================
    # Provider interface
    # =========================================================================

    async def create_intent(self, amount: Decimal, currency: str) -> ProviderIntent:
        data = await self.create_order(amount, currency)
        approval_url = next(
            (link.get("href") for link in data.get("links", []) if link.get("rel") in ("approve", "payer-action")),
            None,
        )
        return ProviderIntent(
            reference=data["id"],
            amount=to_money(amount),
            currency=currency,
            approval_url=approval_url,
            raw=data,
        )

    async def capture(self, reference: str) -> CaptureResult:
        """Capture an approved order. ``reference`` on the result is the capture id.

        PayPal captures an order once; a repeat capture answers 422
        ``ORDER_ALREADY_CAPTURED``, in which case the existing capture is read
        back from the order so the caller can match it to a prior settlement.
        """
        try:
            data = await self.capture_order(reference)
        except ProviderError as exc:
            issue = _issue(exc)
            if issue == "ORDER_ALREADY_CAPTURED":
                logger.info("PayPal order %s already captured; reading existing capture", reference)
                data = await self.get_order(reference)
            elif issue == "ORDER_NOT_APPROVED":
                return CaptureResult(reference=None, state=PaymentState.PENDING, raw=exc.response_data)
            else:
                raise
        return parse_capture(data)

    async def query_status(self, reference: str, final_attempt: bool = False) -> StatusResult:
        data = await self.get_order(reference)
        status = data.get("status")
        if status == "COMPLETED":
            state = PaymentState.SUCCEEDED
        elif status == "VOIDED" or final_attempt:
            state = PaymentState.FAILED
        else:
            state = PaymentState.PENDING
        return StatusResult(reference=reference, state=state, payload={"status": status})

    async def refund(self, reference: str) -> dict[str, Any]:
        return await self.refund_capture(reference)


def parse_capture(data: dict[str, Any]) -> CaptureResult:
    """Pull status, capture id and amount out of a capture response."""
    capture: dict[str, Any] = {}
    units = data.get("purchase_units") or []
    if units:
        captures = (units[0].get("payments") or {}).get("captures") or []
        if captures:
            capture = captures[0]

    amount_data = capture.get("amount") or {}
    amount = to_money(amount_data["value"]) if amount_data.get("value") is not None else None
    state = PaymentState.SUCCEEDED if data.get("status") == "COMPLETED" else PaymentState.PENDING

    return CaptureResult(
        reference=capture.get("id"),
        state=state,
        amount=amount,
        currency=amount_data.get("currency_code"),
        raw=data,
    )


def _issue(exc: ProviderError) -> Optional[str]:
    """First ``details[].issue`` of a 422 business-validation error, if any."""
    if exc.status_code != 422:
        return None
    details = exc.response_data.get("details") or []
    if details and isinstance(details[0], dict):
        return details[0].get("issue")
    return None


def _json(response: httpx.Response) -> dict[str, Any]:
    try:
        data = response.json()
    except ValueError:
        return {"raw": response.text}
    return data if isinstance(data, dict) else {"data": data}


def get_paypal_client() -> PayPalClient:
    return PayPalClient()

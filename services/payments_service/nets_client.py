"""
NETS QR API client.

Two endpoints: ``/request`` generates a QR for an amount and returns its
``txn_retrieval_ref``; ``/query`` reports the payment state for that ref.
A payment is paid when ``response_code == "00"`` and ``txn_status == 1``.
"""

import logging
from decimal import Decimal
from typing import Any, Optional

import httpx
from libs.common.config import get_settings
from libs.common.money import to_money
from services.payments_service.provider_types import (
    CaptureResult,
    PaymentState,
    ProviderError,
    ProviderIntent,
    StatusResult,
)

logger = logging.getLogger(__name__)

SUCCESS_CODE = "00"
TXN_STATUS_PAID = 1
TXN_STATUS_FAILED = 2


def classify(data: dict[str, Any], final_attempt: bool = False) -> PaymentState:
    """Map a ``result.data`` block to a payment state.

    Only the final (timeout) query may turn a non-success answer into a failure;
    an explicit failed status is final at any point.
    """
    response_code = data.get("response_code")
    txn_status = _as_int(data.get("txn_status"))
    if response_code == SUCCESS_CODE and txn_status == TXN_STATUS_PAID:
        return PaymentState.SUCCEEDED
    if txn_status == TXN_STATUS_FAILED:
        return PaymentState.FAILED
    if final_attempt:
        return PaymentState.FAILED
    return PaymentState.PENDING


class NetsClient:
    """Async client for the NETS QR sandbox / production API."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        project_id: Optional[str] = None,
        api_base: Optional[str] = None,
        txn_id: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        settings = get_settings()
        self.api_key = api_key or settings.NETS_API_KEY
        self.project_id = project_id or settings.NETS_PROJECT_ID
        self.api_base = (api_base or settings.NETS_API_BASE).rstrip("/")
        self.txn_id = txn_id or settings.NETS_TXN_ID
        self.timeout = settings.PROVIDER_TIMEOUT_SECONDS
        self._transport = transport

    async def _request(self, endpoint: str, json_data: dict) -> dict[str, Any]:
        """POST to the API and return ``result.data``."""
        if not self.api_key or not self.project_id:
            raise ProviderError("NETS credentials are not configured")

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(
                    f"{self.api_base}{endpoint}",
                    json=json_data,
                    headers={
                        "api-key": self.api_key,
                        "project-id": self.project_id,
                        "Content-Type": "application/json",
                    },
                )
        except httpx.HTTPError as exc:
            raise ProviderError(f"NETS unreachable: {exc}") from exc

        try:
            body = response.json()
        except ValueError:
            body = {"raw": response.text}

        if not response.is_success:
            logger.error("NETS API error: %s %s - %s", endpoint, response.status_code, body)
            raise ProviderError(
                "NETS request failed", status_code=response.status_code, response_data=body
            )

        data = (body.get("result") or {}).get("data") if isinstance(body, dict) else None
        if not isinstance(data, dict):
            raise ProviderError("NETS response has no result data", response_data=body)
        return data

    async def request_qr(self, amount: Decimal) -> dict[str, Any]:
        return await self._request(
            "/request",
            {
                "txn_id": self.txn_id,
                "amt_in_dollars": float(to_money(amount)),
                "notify_mobile": 0,
            },
        )

    async def query(self, txn_retrieval_ref: str, final_attempt: bool = False) -> dict[str, Any]:
        return await self._request(
            "/query",
            {
                "txn_retrieval_ref": txn_retrieval_ref,
                "frontend_timeout_status": 1 if final_attempt else 0,
            },
        )

    # =========================================================================
    # Provider interface
    # =========================================================================

    async def create_intent(self, amount: Decimal, currency: str) -> ProviderIntent:
        data = await self.request_qr(amount)
        if (
            data.get("response_code") != SUCCESS_CODE
            or _as_int(data.get("txn_status")) != TXN_STATUS_PAID
            or not data.get("qr_code")
            or not data.get("txn_retrieval_ref")
        ):
            logger.warning(
                "NETS QR request declined: code=%s status=%s network=%s error=%s",
                data.get("response_code"),
                data.get("txn_status"),
                data.get("network_status"),
                data.get("error_message"),
            )
            raise ProviderError(
                data.get("error_message") or "NETS QR code could not be generated",
                response_data=data,
            )
        return ProviderIntent(
            reference=data["txn_retrieval_ref"],
            amount=to_money(amount),
            currency=currency,
            qr_code=data["qr_code"],
            raw=data,
        )

    async def capture(self, reference: str) -> CaptureResult:
        """QR payments are taken when scanned; capture only confirms the state."""
        data = await self.query(reference)
        return CaptureResult(reference=reference, state=classify(data), raw=data)

    async def query_status(self, reference: str, final_attempt: bool = False) -> StatusResult:
        data = await self.query(reference, final_attempt=final_attempt)
        return StatusResult(
            reference=reference,
            state=classify(data, final_attempt=final_attempt),
            payload={
                "response_code": data.get("response_code"),
                "txn_status": data.get("txn_status"),
            },
        )

    async def refund(self, reference: str) -> dict[str, Any]:
        raise ProviderError(
            f"NETS QR payment {reference} cannot be refunded through the API; "
            "refund to the shopper's wallet instead"
        )


def _as_int(value: Any) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def get_nets_client() -> NetsClient:
    return NetsClient()

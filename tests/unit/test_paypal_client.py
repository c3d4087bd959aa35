"""Unit tests for the PayPal client against a mocked transport."""

import json
from decimal import Decimal

import httpx
import pytest
from services.payments_service.paypal_client import PayPalClient, parse_capture
from services.payments_service.provider_types import PaymentState, ProviderError

COMPLETED_CAPTURE = {
    "id": "ORDER1",
    "status": "COMPLETED",
    "purchase_units": [
        {
            "payments": {
                "captures": [
                    {"id": "CAP1", "amount": {"value": "7.00", "currency_code": "SGD"}}
                ]
            }
        }
    ],
}


def _client(handler) -> PayPalClient:
    return PayPalClient(
        client_id="client",
        client_secret="secret",
        api_base="https://paypal.test",
        transport=httpx.MockTransport(handler),
    )


def _router(routes: dict, calls: list):
    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        if request.url.path == "/v1/oauth2/token":
            return httpx.Response(200, json={"access_token": "token-123"})
        status, body = routes[(request.method, request.url.path)]
        return httpx.Response(status, json=body)

    return handler


@pytest.mark.asyncio
@pytest.mark.unit
async def test_create_intent_posts_capture_order():
    calls = []
    client = _client(
        _router(
            {
                ("POST", "/v2/checkout/orders"): (
                    201,
                    {"id": "ORDER1", "links": [{"rel": "approve", "href": "https://paypal.test/approve"}]},
                )
            },
            calls,
        )
    )

    intent = await client.create_intent(Decimal("7"), "SGD")

    assert intent.reference == "ORDER1"
    assert intent.amount == Decimal("7.00")
    assert intent.approval_url == "https://paypal.test/approve"
    order_call = calls[-1]
    assert order_call.headers["Authorization"] == "Bearer token-123"
    body = json.loads(order_call.content)
    assert body["intent"] == "CAPTURE"
    assert body["purchase_units"][0]["amount"] == {"currency_code": "SGD", "value": "7.00"}


@pytest.mark.asyncio
@pytest.mark.unit
async def test_capture_returns_capture_id_and_amount():
    calls = []
    client = _client(
        _router({("POST", "/v2/checkout/orders/ORDER1/capture"): (201, COMPLETED_CAPTURE)}, calls)
    )

    result = await client.capture("ORDER1")

    assert result.state == PaymentState.SUCCEEDED
    assert result.reference == "CAP1"
    assert result.amount == Decimal("7.00")
    assert result.currency == "SGD"


@pytest.mark.asyncio
@pytest.mark.unit
async def test_api_error_raises_provider_error():
    calls = []
    client = _client(
        _router(
            {("POST", "/v2/checkout/orders/ORDER1/capture"): (500, {"message": "INTERNAL_SERVICE_ERROR"})},
            calls,
        )
    )

    with pytest.raises(ProviderError) as exc_info:
        await client.capture("ORDER1")

    assert exc_info.value.status_code == 500
    assert exc_info.value.message == "INTERNAL_SERVICE_ERROR"


@pytest.mark.asyncio
@pytest.mark.unit
async def test_missing_credentials_raise_before_any_request():
    calls = []
    client = PayPalClient(
        client_id="",
        client_secret="",
        api_base="https://paypal.test",
        transport=httpx.MockTransport(_router({}, calls)),
    )

    with pytest.raises(ProviderError, match="not configured"):
        await client.capture("ORDER1")
    assert calls == []


@pytest.mark.asyncio
@pytest.mark.unit
async def test_query_status_final_attempt_fails_unapproved_order():
    calls = []
    client = _client(
        _router({("GET", "/v2/checkout/orders/ORDER1"): (200, {"id": "ORDER1", "status": "CREATED"})}, calls)
    )

    pending = await client.query_status("ORDER1")
    final = await client.query_status("ORDER1", final_attempt=True)

    assert pending.state == PaymentState.PENDING
    assert final.state == PaymentState.FAILED
    assert final.payload == {"status": "CREATED"}


@pytest.mark.unit
def test_parse_capture_without_captures_is_pending():
    result = parse_capture({"id": "ORDER1", "status": "PAYER_ACTION_REQUIRED"})

    assert result.state == PaymentState.PENDING
    assert result.reference is None
    assert result.amount is None


@pytest.mark.asyncio
@pytest.mark.unit
async def test_repeat_capture_reads_existing_capture_from_order():
    calls = []
    already_captured = {
        "name": "UNPROCESSABLE_ENTITY",
        "details": [{"issue": "ORDER_ALREADY_CAPTURED", "description": "Order already captured."}],
        "message": "The requested action could not be performed, semantically incorrect, or failed business validation.",
    }
    client = _client(
        _router(
            {
                ("POST", "/v2/checkout/orders/ORDER1/capture"): (422, already_captured),
                ("GET", "/v2/checkout/orders/ORDER1"): (200, COMPLETED_CAPTURE),
            },
            calls,
        )
    )

    result = await client.capture("ORDER1")

    assert result.state == PaymentState.SUCCEEDED
    assert result.reference == "CAP1"
    assert result.amount == Decimal("7.00")
    assert [(c.method, c.url.path) for c in calls if c.url.path != "/v1/oauth2/token"] == [
        ("POST", "/v2/checkout/orders/ORDER1/capture"),
        ("GET", "/v2/checkout/orders/ORDER1"),
    ]


@pytest.mark.asyncio
@pytest.mark.unit
async def test_capture_of_unapproved_order_is_pending():
    calls = []
    client = _client(
        _router(
            {
                ("POST", "/v2/checkout/orders/ORDER1/capture"): (
                    422,
                    {"name": "UNPROCESSABLE_ENTITY", "details": [{"issue": "ORDER_NOT_APPROVED"}]},
                )
            },
            calls,
        )
    )

    result = await client.capture("ORDER1")

    assert result.state == PaymentState.PENDING
    assert result.reference is None

"""Unit tests for the NETS QR client."""

import json
from decimal import Decimal

import httpx
import pytest
from services.payments_service.nets_client import NetsClient, classify
from services.payments_service.provider_types import PaymentState, ProviderError

API_BASE = "https://nets.test/nets-qr"


def _client(handler) -> NetsClient:
    return NetsClient(
        api_key="key",
        project_id="project",
        api_base=API_BASE,
        txn_id="sandbox_txn",
        transport=httpx.MockTransport(handler),
    )


def _result(data: dict) -> dict:
    return {"result": {"data": data}}


@pytest.mark.unit
@pytest.mark.parametrize(
    "data, final_attempt, expected",
    [
        ({"response_code": "00", "txn_status": 1}, False, PaymentState.SUCCEEDED),
        ({"response_code": "00", "txn_status": "1"}, False, PaymentState.SUCCEEDED),
        ({"response_code": "00", "txn_status": 0}, False, PaymentState.PENDING),
        ({"response_code": "00", "txn_status": 0}, True, PaymentState.FAILED),
        ({"response_code": "09", "txn_status": 2}, False, PaymentState.FAILED),
        ({}, False, PaymentState.PENDING),
    ],
)
def test_classify(data, final_attempt, expected):
    assert classify(data, final_attempt=final_attempt) == expected


@pytest.mark.asyncio
@pytest.mark.unit
async def test_create_intent_requests_qr():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(
            200,
            json=_result(
                {
                    "response_code": "00",
                    "txn_status": 1,
                    "qr_code": "iVBORw0KGgo=",
                    "txn_retrieval_ref": "REF-1",
                }
            ),
        )

    intent = await _client(handler).create_intent(Decimal("7.00"), "SGD")

    assert intent.reference == "REF-1"
    assert intent.qr_code == "iVBORw0KGgo="
    assert intent.amount == Decimal("7.00")

    request = calls[0]
    assert str(request.url) == f"{API_BASE}/request"
    assert request.headers["api-key"] == "key"
    assert request.headers["project-id"] == "project"
    assert json.loads(request.content) == {
        "txn_id": "sandbox_txn",
        "amt_in_dollars": 7.0,
        "notify_mobile": 0,
    }


@pytest.mark.asyncio
@pytest.mark.unit
async def test_declined_qr_request_raises():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json=_result({"response_code": "09", "txn_status": 2, "error_message": "Declined"}),
        )

    with pytest.raises(ProviderError, match="Declined"):
        await _client(handler).create_intent(Decimal("7.00"), "SGD")


@pytest.mark.asyncio
@pytest.mark.unit
async def test_query_flags_final_attempt():
    bodies = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content))
        return httpx.Response(200, json=_result({"response_code": "00", "txn_status": 0}))

    client = _client(handler)
    first = await client.query_status("REF-1")
    last = await client.query_status("REF-1", final_attempt=True)

    assert bodies == [
        {"txn_retrieval_ref": "REF-1", "frontend_timeout_status": 0},
        {"txn_retrieval_ref": "REF-1", "frontend_timeout_status": 1},
    ]
    assert first.state == PaymentState.PENDING
    assert last.state == PaymentState.FAILED
    assert last.payload == {"response_code": "00", "txn_status": 0}


@pytest.mark.asyncio
@pytest.mark.unit
async def test_capture_confirms_paid_qr():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=_result({"response_code": "00", "txn_status": 1}))

    result = await _client(handler).capture("REF-1")

    assert result.state == PaymentState.SUCCEEDED
    assert result.reference == "REF-1"
    assert result.amount is None


@pytest.mark.asyncio
@pytest.mark.unit
async def test_http_error_and_missing_data_raise():
    def server_error(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, json={"message": "boom"})

    def no_data(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"result": {}})

    with pytest.raises(ProviderError) as exc_info:
        await _client(server_error).capture("REF-1")
    assert exc_info.value.status_code == 500

    with pytest.raises(ProviderError, match="no result data"):
        await _client(no_data).capture("REF-1")


@pytest.mark.asyncio
@pytest.mark.unit
async def test_refund_is_not_supported():
    with pytest.raises(ProviderError, match="wallet"):
        await _client(lambda request: httpx.Response(200)).refund("REF-1")

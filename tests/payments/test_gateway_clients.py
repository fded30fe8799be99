import json
from decimal import Decimal

import httpx
import pytest

from application.dtos.payments import CreateGatewayOrder, CreateGatewaySession, CustomerDetails
from core.settings import CashfreeSettings, PaymentRetry, RazorpaySettings
from domain.payment.exceptions import (
    PaymentProviderError,
    PaymentRecoverableError,
    PaymentSessionError,
    PaymentSignatureError,
    WebhookPayloadError,
)
from infrastructure.external.payments import GatewayRegistry, get_payment_gateway
from infrastructure.external.payments.cashfree_client import CashfreeClient
from infrastructure.external.payments.razorpay_client import RazorpayClient
from infrastructure.external.payments.signature import compute_cashfree_signature


RECEIPT = "5f0c6a2e-1b7d-4c1e-9d53-0a2b3c4d5e6f"


def _razorpay(handler) -> RazorpayClient:
    return RazorpayClient(
        RazorpaySettings(key_id="rzp_test_key", key_secret="rzp_test_secret", webhook_secret="whsec_test"),
        retry=PaymentRetry(max=0),
        transport=httpx.MockTransport(handler),
    )


def _cashfree(handler=None) -> CashfreeClient:
    return CashfreeClient(
        CashfreeSettings(app_id="cf_app", secret_key="cf_secret"),
        retry=PaymentRetry(max=0),
        transport=httpx.MockTransport(handler or (lambda request: httpx.Response(500))),
    )


def _order_request() -> CreateGatewayOrder:
    return CreateGatewayOrder(
        receipt=RECEIPT,
        amount=Decimal("400"),
        currency="INR",
        notes={"team_id": "T1", "event_id": "E1"},
        customer=CustomerDetails(customer_id="U1", email="lead@team.io"),
    )


@pytest.mark.asyncio
async def test_razorpay_create_order_sends_paise_with_basic_auth():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["auth"] = request.headers.get("authorization", "")
        seen["body"] = json.loads(request.content)
        return httpx.Response(
            200,
            json={"id": "order_123", "amount": 40000, "currency": "INR", "status": "created", "receipt": RECEIPT},
        )

    client = _razorpay(handler)
    order = await client.create_order(_order_request())
    await client.aclose()

    assert seen["path"] == "/v1/orders"
    assert seen["auth"].startswith("Basic ")
    assert seen["body"] == {
        "amount": 40000,
        "currency": "INR",
        "receipt": RECEIPT,
        "notes": {"team_id": "T1", "event_id": "E1"},
    }
    assert order.order_id == "order_123"
    assert order.amount == Decimal("400.00")
    assert order.status == "created"


@pytest.mark.asyncio
async def test_razorpay_client_error_is_not_retryable():
    def handler(request):
        return httpx.Response(
            400, json={"error": {"code": "BAD_REQUEST_ERROR", "description": "Authentication failed"}}
        )

    with pytest.raises(PaymentProviderError) as exc_info:
        await _razorpay(handler).create_order(_order_request())

    assert exc_info.value.message == "Authentication failed"
    assert exc_info.value.details["provider_code"] == "BAD_REQUEST_ERROR"


@pytest.mark.asyncio
@pytest.mark.parametrize("status_code", [429, 502, 503])
async def test_razorpay_outage_is_recoverable(status_code):
    with pytest.raises(PaymentRecoverableError):
        await _razorpay(lambda request: httpx.Response(status_code)).fetch_order("order_123")


@pytest.mark.asyncio
async def test_transport_failure_is_recoverable():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(PaymentRecoverableError):
        await _razorpay(handler).fetch_order("order_123")


@pytest.mark.asyncio
async def test_razorpay_missing_credentials_is_provider_error():
    client = RazorpayClient(RazorpaySettings(), transport=httpx.MockTransport(lambda r: httpx.Response(200)))
    with pytest.raises(PaymentProviderError):
        await client.create_order(_order_request())


@pytest.mark.asyncio
async def test_razorpay_session_without_key_id_is_session_error():
    client = RazorpayClient(RazorpaySettings(key_secret="s"))
    with pytest.raises(PaymentSessionError):
        await client.create_session(
            CreateGatewaySession(order_id="order_123", amount=Decimal("400"), currency="INR")
        )


@pytest.mark.asyncio
async def test_cashfree_create_order_uses_api_headers():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["headers"] = request.headers
        seen["body"] = json.loads(request.content)
        body = seen["body"]
        return httpx.Response(
            200,
            json={
                "order_id": body["order_id"],
                "order_amount": body["order_amount"],
                "order_currency": "INR",
                "order_status": "ACTIVE",
                "payment_session_id": "session_abc",
            },
        )

    order = await _cashfree(handler).create_order(_order_request())

    assert seen["headers"]["x-client-id"] == "cf_app"
    assert seen["headers"]["x-client-secret"] == "cf_secret"
    assert seen["headers"]["x-api-version"] == "2023-08-01"
    assert seen["body"]["order_id"] == "order_" + RECEIPT.replace("-", "")
    assert seen["body"]["order_amount"] == 400.0
    assert seen["body"]["customer_details"]["customer_id"] == "U1"
    assert order.status == "created"
    assert order.session_id == "session_abc"
    assert order.receipt == RECEIPT


@pytest.mark.asyncio
async def test_cashfree_session_comes_from_the_order():
    def handler(request):
        return httpx.Response(
            200,
            json={"order_id": "order_abc", "order_amount": 400, "order_status": "ACTIVE", "payment_session_id": "s_1"},
        )

    session = await _cashfree(handler).create_session(
        CreateGatewaySession(order_id="order_abc", amount=Decimal("400"), currency="INR")
    )

    assert session.session_id == "s_1"
    assert session.checkout["paymentSessionId"] == "s_1"
    assert session.checkout["mode"] == "sandbox"


@pytest.mark.asyncio
async def test_cashfree_order_without_session_is_session_error():
    def handler(request):
        return httpx.Response(200, json={"order_id": "order_abc", "order_amount": 400, "order_status": "ACTIVE"})

    with pytest.raises(PaymentSessionError):
        await _cashfree(handler).create_session(
            CreateGatewaySession(order_id="order_abc", amount=Decimal("400"), currency="INR")
        )


@pytest.mark.asyncio
@pytest.mark.parametrize("order_status, expected", [("PAID", True), ("ACTIVE", False)])
async def test_cashfree_checkout_is_verified_against_the_order(order_status, expected):
    def handler(request):
        return httpx.Response(200, json={"order_id": "order_abc", "order_amount": 400, "order_status": order_status})

    assert await _cashfree(handler).verify_checkout(order_id="order_abc", payment_id="1", signature="") is expected


def _cashfree_webhook(payload: dict, *, timestamp: str = "1700000000", secret: str = "cf_secret"):
    body = json.dumps(payload).encode()
    headers = {
        "x-webhook-signature": compute_cashfree_signature(body, timestamp, secret),
        "x-webhook-timestamp": timestamp,
    }
    return headers, body


def test_cashfree_success_webhook_is_normalized():
    headers, body = _cashfree_webhook({
        "type": "PAYMENT_SUCCESS_WEBHOOK",
        "event_time": "2023-11-14T22:13:20+00:00",
        "data": {
            "order": {"order_id": "order_abc", "order_amount": 400},
            "payment": {
                "cf_payment_id": 5114910,
                "payment_status": "SUCCESS",
                "payment_amount": 400,
                "payment_currency": "INR",
                "payment_time": "2023-11-14T22:13:20+00:00",
                "payment_group": "upi",
            },
        },
    })

    event = _cashfree().parse_webhook(headers, body)

    assert event.type == "payment.captured"
    assert event.provider == "cashfree"
    assert event.payment.id == "5114910"
    assert event.payment.order_id == "order_abc"
    assert event.payment.amount == 40000
    assert event.payment.created_at == 1700000000
    assert event.order.id == "order_abc"
    assert event.key.startswith("cashfree:")


def test_cashfree_failure_webhook_carries_error_description():
    headers, body = _cashfree_webhook({
        "type": "PAYMENT_FAILED_WEBHOOK",
        "data": {
            "order": {"order_id": "order_abc"},
            "payment": {"cf_payment_id": 7, "payment_status": "FAILED"},
            "error_details": {"error_code": "TRANSACTION_DECLINED", "error_description": "issuer declined"},
        },
    })
    headers["x-idempotency-key"] = "evt_42"

    event = _cashfree().parse_webhook(headers, body)

    assert event.type == "payment.failed"
    assert event.payment.error_description == "issuer declined"
    assert event.key == "cashfree:evt_42"


def test_cashfree_unmapped_type_passes_through():
    headers, body = _cashfree_webhook({"type": "REFUND_STATUS_WEBHOOK", "data": {}})
    assert _cashfree().parse_webhook(headers, body).type == "REFUND_STATUS_WEBHOOK"


def test_cashfree_webhook_with_wrong_timestamp_is_rejected():
    headers, body = _cashfree_webhook({"type": "PAYMENT_SUCCESS_WEBHOOK", "data": {}})
    headers["x-webhook-timestamp"] = "1700000001"

    with pytest.raises(PaymentSignatureError):
        _cashfree().parse_webhook(headers, body)


def test_cashfree_signed_garbage_is_payload_error():
    body = b"not json"
    headers = {
        "x-webhook-signature": compute_cashfree_signature(body, "1", "cf_secret"),
        "x-webhook-timestamp": "1",
    }
    with pytest.raises(WebhookPayloadError):
        _cashfree().parse_webhook(headers, body)


def test_registry_caches_clients_and_rejects_unknown_providers(payment_settings):
    registry = GatewayRegistry(payment_settings)

    assert registry("razorpay") is registry("RAZORPAY")
    assert isinstance(registry(), RazorpayClient)
    assert isinstance(registry("cashfree"), CashfreeClient)
    assert registry.is_supported("Cashfree")
    assert not registry.is_supported("paypal")
    with pytest.raises(ValueError):
        registry("paypal")
    with pytest.raises(ValueError):
        get_payment_gateway("paypal", settings=payment_settings)

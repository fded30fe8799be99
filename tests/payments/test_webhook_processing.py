from datetime import datetime
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from application.dtos.payments import CreateOrderRequest, ErrorKind, VerifyPaymentRequest, WebhookEvent
from application.services.webhook_service import WebhookEventRouter
from core.settings import RazorpaySettings
from domain.payment.exceptions import PaymentSignatureError, WebhookPayloadError
from infrastructure.external.payments.razorpay_client import RazorpayClient
from infrastructure.models import WebhookEventModel

from conftest import checkout_signature, razorpay_body, signed_headers


async def _checkout(services, gateway, order_id: str = "order_123"):
    gateway.next_order_ids.append(order_id)
    return await services.payments.create_order(
        "U1",
        CreateOrderRequest(team_id="T1", event_id="E1", amount=Decimal("400"), currency="INR"),
    )


async def _deliver(services, gateway, body: bytes, **header_kwargs):
    return await services.webhooks.ingest(gateway, signed_headers(body, **header_kwargs), body)


async def _recorded_events(database) -> int:
    async with database.session_factory() as session:
        return (await session.execute(select(func.count(WebhookEventModel.id)))).scalar_one()


@pytest.mark.asyncio
async def test_end_to_end_capture(services, gateway, notifier, seed_team, fetch_team, fetch_payments):
    await seed_team("T1", "E1")
    await _checkout(services, gateway)

    [row] = await fetch_payments("T1")
    assert row.status == "pending"
    assert row.transaction_id == "order_123"
    assert row.gateway_order_id == "order_123"

    body = razorpay_body("payment.captured", order_id="order_123", payment_id="pay_1", created_at=1700000000)
    result = await _deliver(services, gateway, body)

    assert result.success
    assert result.event_type == "payment.captured"
    [row] = await fetch_payments("T1")
    assert row.status == "paid"
    assert row.transaction_id == "pay_1"
    assert row.gateway_payment_id == "pay_1"
    assert row.gateway_order_id == "order_123"
    assert row.paid_at.replace(tzinfo=None) == datetime(2023, 11, 14, 22, 13, 20)
    assert row.gateway_response["payment"]["id"] == "pay_1"

    team = await fetch_team("T1")
    assert team.status == "approved"
    assert team.payment_status == "paid"
    assert len(notifier.events) == 1
    assert notifier.events[0].source == "webhook"

    # identical redelivery is a no-op
    again = await _deliver(services, gateway, body)
    assert again.success and again.duplicate
    [row] = await fetch_payments("T1")
    assert row.status == "paid" and row.transaction_id == "pay_1"
    team = await fetch_team("T1")
    assert (team.status, team.payment_status) == ("approved", "paid")
    assert len(notifier.events) == 1


@pytest.mark.asyncio
async def test_capture_with_new_delivery_id_does_not_notify_twice(
    services, gateway, notifier, seed_team, fetch_payments, database
):
    await seed_team()
    await _checkout(services, gateway)
    body = razorpay_body("payment.captured", order_id="order_123", payment_id="pay_1")

    first = await _deliver(services, gateway, body, event_id="evt_1")
    second = await _deliver(services, gateway, body, event_id="evt_2")

    assert first.success and second.success
    assert not second.duplicate
    assert "skipped" in second.message
    assert len(await fetch_payments()) == 1
    assert len(notifier.events) == 1
    assert await _recorded_events(database) == 2


@pytest.mark.asyncio
async def test_verification_then_webhook_converge(services, gateway, notifier, seed_team, fetch_team, fetch_payments):
    await seed_team()
    await _checkout(services, gateway)

    dto = await services.payments.verify_payment(
        "U1",
        VerifyPaymentRequest(
            payment_id="pay_1", order_id="order_123", signature=checkout_signature("order_123", "pay_1")
        ),
    )
    assert dto.status == "paid"

    result = await _deliver(
        services, gateway, razorpay_body("payment.captured", order_id="order_123", payment_id="pay_1")
    )
    assert result.success

    [row] = await fetch_payments()
    assert row.status == "paid"
    assert row.transaction_id == "pay_1"
    assert "verification" in row.gateway_response
    team = await fetch_team()
    assert (team.status, team.payment_status) == ("approved", "paid")
    assert len(notifier.events) == 1
    assert notifier.events[0].source == "verification"


@pytest.mark.asyncio
async def test_webhook_then_verification_converge(services, gateway, notifier, seed_team, fetch_team, fetch_payments):
    await seed_team()
    await _checkout(services, gateway)

    await _deliver(services, gateway, razorpay_body("payment.captured", order_id="order_123", payment_id="pay_1"))
    dto = await services.payments.verify_payment(
        "U1",
        VerifyPaymentRequest(
            payment_id="pay_1", order_id="order_123", signature=checkout_signature("order_123", "pay_1")
        ),
    )

    assert dto.status == "paid"
    [row] = await fetch_payments()
    assert row.status == "paid"
    team = await fetch_team()
    assert (team.status, team.payment_status) == ("approved", "paid")
    assert len(notifier.events) == 1
    assert notifier.events[0].source == "webhook"


@pytest.mark.asyncio
async def test_order_paid_completes_without_second_notification(services, gateway, notifier, seed_team, fetch_payments):
    await seed_team()
    await _checkout(services, gateway)
    await _deliver(services, gateway, razorpay_body("payment.captured", order_id="order_123", payment_id="pay_1"))

    result = await _deliver(
        services, gateway, razorpay_body("order.paid", order_id="order_123", payment_id="pay_1")
    )

    assert result.success
    [row] = await fetch_payments()
    assert row.status == "completed"
    assert row.completed_at is not None
    assert len(notifier.events) == 1


@pytest.mark.asyncio
async def test_late_authorized_does_not_downgrade(services, gateway, seed_team, fetch_team, fetch_payments):
    await seed_team()
    await _checkout(services, gateway)
    await _deliver(services, gateway, razorpay_body("payment.captured", order_id="order_123", payment_id="pay_1"))

    result = await _deliver(
        services, gateway, razorpay_body("payment.authorized", order_id="order_123", payment_id="pay_1")
    )

    assert result.success
    [row] = await fetch_payments()
    assert row.status == "paid"
    assert row.authorized_at is None
    team = await fetch_team()
    assert team.payment_status == "paid"


@pytest.mark.asyncio
async def test_authorized_then_captured(services, gateway, seed_team, fetch_team, fetch_payments):
    await seed_team()
    await _checkout(services, gateway)

    await _deliver(services, gateway, razorpay_body("payment.authorized", order_id="order_123", payment_id="pay_1"))
    [row] = await fetch_payments()
    assert row.status == "authorized"
    assert (await fetch_team()).payment_status == "pending"

    await _deliver(services, gateway, razorpay_body("payment.captured", order_id="order_123", payment_id="pay_1"))
    [row] = await fetch_payments()
    assert row.status == "paid"
    assert row.authorized_at is not None


@pytest.mark.asyncio
async def test_unknown_event_is_acknowledged_without_writes(services, gateway, seed_team, fetch_payments, database):
    await seed_team()
    await _checkout(services, gateway)
    [before] = await fetch_payments()

    result = await _deliver(
        services, gateway, razorpay_body("refund.created", order_id="order_123", payment_id="pay_1")
    )

    assert result.success
    assert result.message == "Event refund.created acknowledged but not processed"
    [after] = await fetch_payments()
    assert after.status == before.status == "pending"
    assert after.updated_at == before.updated_at
    assert await _recorded_events(database) == 0


@pytest.mark.asyncio
async def test_failure_for_unknown_order_is_not_found(services, gateway, seed_team, fetch_team, database):
    await seed_team()

    body = razorpay_body("payment.failed", order_id="order_missing", payment_id="pay_x")
    result = await _deliver(services, gateway, body)

    assert not result.success
    assert result.kind is ErrorKind.NOT_FOUND
    assert result.error == "Payment record not found"
    team = await fetch_team()
    assert (team.status, team.payment_status) == ("draft", "pending")
    # not remembered, so the gateway's retry is processed again
    assert await _recorded_events(database) == 0
    retry = await _deliver(services, gateway, body)
    assert not retry.duplicate and retry.kind is ErrorKind.NOT_FOUND


@pytest.mark.asyncio
async def test_failed_payment_marks_team_failed_until_a_capture(
    services, gateway, seed_team, fetch_team, fetch_payments
):
    await seed_team()
    await _checkout(services, gateway)

    await _deliver(
        services,
        gateway,
        razorpay_body(
            "payment.failed", order_id="order_123", payment_id="pay_1", error_description="Card declined by bank"
        ),
    )
    [row] = await fetch_payments()
    assert row.status == "failed"
    assert row.failure_reason == "Card declined by bank"
    team = await fetch_team()
    assert (team.status, team.payment_status) == ("pending", "failed")

    # money captured later is financial truth
    await _deliver(services, gateway, razorpay_body("payment.captured", order_id="order_123", payment_id="pay_2"))
    [row] = await fetch_payments()
    assert row.status == "paid"
    assert row.transaction_id == "pay_2"
    team = await fetch_team()
    assert (team.status, team.payment_status) == ("approved", "paid")


@pytest.mark.asyncio
async def test_failed_without_reason_uses_default(services, gateway, seed_team, fetch_payments):
    await seed_team()
    await _checkout(services, gateway)

    await _deliver(services, gateway, razorpay_body("payment.failed", order_id="order_123", payment_id="pay_1"))

    [row] = await fetch_payments()
    assert row.failure_reason == "Payment failed"


@pytest.mark.asyncio
async def test_invalid_signature_is_rejected_before_any_write(services, gateway, seed_team, fetch_payments, database):
    await seed_team()
    await _checkout(services, gateway)
    body = razorpay_body("payment.captured", order_id="order_123", payment_id="pay_1")

    with pytest.raises(PaymentSignatureError):
        await services.webhooks.ingest(gateway, signed_headers(body, secret="wrong"), body)

    [row] = await fetch_payments()
    assert row.status == "pending"
    assert await _recorded_events(database) == 0


@pytest.mark.asyncio
async def test_missing_webhook_secret_fails_closed(services):
    gateway = RazorpayClient(RazorpaySettings(key_id="k", key_secret="s", webhook_secret=None))
    body = razorpay_body("payment.captured", order_id="order_123", payment_id="pay_1")

    with pytest.raises(PaymentSignatureError):
        await services.webhooks.ingest(gateway, signed_headers(body), body)


@pytest.mark.asyncio
async def test_signed_non_object_body_is_a_payload_error(services, gateway):
    body = b'["payment.captured"]'
    with pytest.raises(WebhookPayloadError):
        await services.webhooks.ingest(gateway, signed_headers(body), body)


@pytest.mark.asyncio
async def test_capture_without_order_reference_is_invalid_payload(services, gateway):
    body = razorpay_body("payment.captured", payment_id="pay_1")
    result = await _deliver(services, gateway, body)

    assert not result.success
    assert result.kind is ErrorKind.INVALID_PAYLOAD


class _ExplodingHandlers:
    async def on_payment_captured(self, event):
        raise RuntimeError("boom")

    on_payment_failed = on_payment_authorized = on_order_paid = on_payment_captured


@pytest.mark.asyncio
async def test_router_turns_handler_exceptions_into_results():
    router = WebhookEventRouter(_ExplodingHandlers())
    event = WebhookEvent(key="razorpay:x", type="payment.captured", provider="razorpay")

    result = await router.route(event)

    assert not result.success
    assert result.kind is ErrorKind.INTERNAL
    assert result.error == "boom"
    assert result.event_type == "payment.captured"

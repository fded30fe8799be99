from decimal import Decimal
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import update

from application.dtos.payments import (
    CreateOrderRequest,
    CreateSessionRequest,
    CustomerDetails,
    VerifyPaymentRequest,
)
from core.exceptions import UnauthorizedException
from domain.common.exceptions import TeamNotFoundException
from domain.payment.entity import Payment, PaymentChanges, PaymentStatus
from domain.payment.exceptions import (
    PaymentInProgressException,
    PaymentNotFoundException,
    PaymentNotPayableException,
    PaymentProviderError,
    PaymentSessionError,
    PaymentValidationException,
    PaymentVerificationException,
)
from infrastructure.models import PaymentModel

from conftest import checkout_signature, razorpay_body, recoverable, signed_headers


def _order(**overrides) -> CreateOrderRequest:
    data = {"team_id": "T1", "event_id": "E1", "amount": Decimal("400"), "currency": "INR"}
    data.update(overrides)
    return CreateOrderRequest(**data)


@pytest.mark.asyncio
async def test_create_order_persists_pending_payment_before_gateway(services, gateway, seed_team, fetch_payments):
    await seed_team()

    result = await services.payments.create_order("U1", _order())

    assert not result.reused
    assert result.order.order_id == "order_1"
    assert result.payment.status == "pending"
    [row] = await fetch_payments()
    assert row.user_id == "U1"
    assert row.amount == Decimal("400")
    assert row.currency == "INR"
    assert row.payment_method == "razorpay"
    assert row.gateway_order_id == row.transaction_id == "order_1"

    [sent] = gateway.created
    assert sent.receipt == row.id
    assert sent.notes == {"team_id": "T1", "event_id": "E1", "payment_id": row.id}
    assert sent.customer.customer_id == "U1"


@pytest.mark.asyncio
async def test_create_order_requires_caller(services):
    with pytest.raises(UnauthorizedException):
        await services.payments.create_order(None, _order())


@pytest.mark.asyncio
async def test_missing_order_data_is_rejected_before_any_call(services, gateway, fetch_payments):
    with pytest.raises(PaymentValidationException) as exc_info:
        await services.payments.create_order("U1", CreateOrderRequest(team_id="T1"))

    assert exc_info.value.message == "Missing required order data"
    assert exc_info.value.details == {"missing": ["event_id", "amount"]}
    assert gateway.created == []
    assert await fetch_payments() == []


@pytest.mark.asyncio
async def test_non_positive_amount_is_rejected(services, seed_team):
    await seed_team()
    with pytest.raises(PaymentValidationException):
        await services.payments.create_order("U1", _order(amount=Decimal("-5")))


def test_unsupported_currency_is_rejected_by_request_model():
    with pytest.raises(ValueError):
        CreateOrderRequest(team_id="T1", event_id="E1", amount=Decimal("400"), currency="XYZ")


def test_request_accepts_camel_case_fields():
    req = CreateOrderRequest.model_validate({"teamId": "T1", "eventId": "E1", "amount": 400, "currency": "inr"})
    assert (req.team_id, req.event_id, req.currency) == ("T1", "E1", "INR")


@pytest.mark.asyncio
async def test_unknown_provider_is_a_validation_error(services, seed_team):
    await seed_team()
    with pytest.raises(PaymentValidationException):
        await services.payments.create_order("U1", _order(provider="paypal"))


@pytest.mark.asyncio
async def test_unknown_team_is_not_found(services):
    with pytest.raises(TeamNotFoundException):
        await services.payments.create_order("U1", _order(team_id="missing"))


@pytest.mark.asyncio
async def test_team_from_another_event_is_rejected(services, seed_team):
    await seed_team("T1", "E2")
    with pytest.raises(PaymentValidationException):
        await services.payments.create_order("U1", _order())


@pytest.mark.asyncio
async def test_pending_order_is_reused(services, gateway, seed_team, fetch_payments):
    await seed_team()
    first = await services.payments.create_order("U1", _order())

    second = await services.payments.create_order("U1", _order())

    assert second.reused
    assert second.order.order_id == first.order.order_id
    assert second.payment.id == first.payment.id
    assert len(gateway.created) == 1
    assert len(await fetch_payments()) == 1


@pytest.mark.asyncio
async def test_changed_amount_supersedes_pending_order(services, gateway, seed_team, fetch_payments):
    await seed_team()
    first = await services.payments.create_order("U1", _order())

    second = await services.payments.create_order("U1", _order(amount=Decimal("500")))

    assert not second.reused
    assert second.payment.id != first.payment.id
    rows = {row.id: row for row in await fetch_payments()}
    assert rows[first.payment.id].status == "expired"
    assert rows[first.payment.id].failure_reason == "Superseded by a newer checkout"
    assert rows[second.payment.id].status == "pending"


@pytest.mark.asyncio
async def test_old_pending_order_is_superseded(services, seed_team, fetch_payments, database):
    await seed_team()
    first = await services.payments.create_order("U1", _order())
    async with database.session_factory() as session:
        await session.execute(
            update(PaymentModel)
            .where(PaymentModel.id == first.payment.id)
            .values(created_at=datetime.now(timezone.utc) - timedelta(hours=1))
        )
        await session.commit()

    second = await services.payments.create_order("U1", _order())

    assert not second.reused
    statuses = sorted(row.status for row in await fetch_payments())
    assert statuses == ["expired", "pending"]


@pytest.mark.asyncio
async def test_settled_team_cannot_pay_again(services, seed_team, gateway):
    await seed_team()
    result = await services.payments.create_order("U1", _order())
    await services.payments.verify_payment(
        "U1",
        VerifyPaymentRequest(
            payment_id="pay_1",
            order_id=result.order.order_id,
            signature=checkout_signature(result.order.order_id, "pay_1"),
        ),
    )

    with pytest.raises(PaymentNotPayableException):
        await services.payments.create_order("U1", _order())


@pytest.mark.asyncio
async def test_second_pending_row_hits_the_partial_unique_index(uow_factory, seed_team):
    await seed_team()
    kwargs = dict(user_id="U1", team_id="T1", event_id="E1", amount=Decimal("400"), currency="INR", payment_method="razorpay")
    async with uow_factory() as uow:
        await uow.payment_repository.create(Payment.new(**kwargs))

    with pytest.raises(PaymentInProgressException):
        async with uow_factory() as uow:
            await uow.payment_repository.create(Payment.new(**kwargs))


@pytest.mark.asyncio
async def test_authorized_attempt_blocks_a_second_checkout(services, gateway, seed_team, fetch_payments):
    await seed_team()
    gateway.next_order_ids.append("order_123")
    await services.payments.create_order("U1", _order())
    body = razorpay_body("payment.authorized", order_id="order_123", payment_id="pay_1")
    await services.webhooks.ingest(gateway, signed_headers(body), body)

    with pytest.raises(PaymentInProgressException):
        await services.payments.create_order("U1", _order())
    with pytest.raises(PaymentInProgressException):
        await services.payments.create_order("U1", _order(amount=Decimal("500")))

    assert len(gateway.created) == 1
    [row] = await fetch_payments()
    assert (row.status, row.gateway_order_id) == ("authorized", "order_123")


@pytest.mark.asyncio
async def test_supersede_never_expires_an_authorized_attempt(services, seed_team, fetch_payments):
    await seed_team()
    result = await services.payments.create_order("U1", _order())
    await services.settlement.apply(result.payment.id, PaymentStatus.AUTHORIZED, PaymentChanges(), source="test")

    transition = await services.settlement.apply(
        result.payment.id,
        PaymentStatus.EXPIRED,
        PaymentChanges(failure_reason="Superseded by a newer checkout"),
        source="checkout",
        only_from={PaymentStatus.PENDING},
    )

    assert not transition.applied
    [row] = await fetch_payments()
    assert row.status == "authorized"
    assert row.failure_reason is None


@pytest.mark.asyncio
async def test_authorized_row_also_holds_the_partial_unique_index(uow_factory, seed_team):
    await seed_team()
    kwargs = dict(user_id="U1", team_id="T1", event_id="E1", amount=Decimal("400"), currency="INR", payment_method="razorpay")
    async with uow_factory() as uow:
        first = await uow.payment_repository.create(Payment.new(**kwargs))
    async with uow_factory() as uow:
        await uow.payment_repository.transition(first.id, PaymentStatus.AUTHORIZED, PaymentChanges())

    with pytest.raises(PaymentInProgressException):
        async with uow_factory() as uow:
            await uow.payment_repository.create(Payment.new(**kwargs))


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "error",
    [recoverable(), PaymentProviderError("Authentication failed", provider="razorpay", provider_code="BAD_REQUEST_ERROR")],
)
async def test_gateway_failure_leaves_pending_row(services, gateway, seed_team, fetch_payments, error):
    await seed_team()
    gateway.fail_with = error

    with pytest.raises(type(error)):
        await services.payments.create_order("U1", _order())

    [row] = await fetch_payments()
    assert row.status == "pending"
    assert row.gateway_order_id is None


@pytest.mark.asyncio
async def test_session_returns_checkout_options(services, seed_team):
    await seed_team()
    result = await services.payments.create_order("U1", _order())

    session = await services.payments.create_payment_session(
        "U1",
        CreateSessionRequest(order_id=result.order.order_id, customer=CustomerDetails(name="Asha", email="a@x.io")),
    )

    assert session.provider == "razorpay"
    assert session.checkout["order_id"] == result.order.order_id
    assert session.checkout["amount"] == 40000
    assert session.checkout["prefill"] == {"name": "Asha", "email": "a@x.io"}


@pytest.mark.asyncio
async def test_session_failure_is_distinct_from_order_failure(services, gateway, seed_team):
    await seed_team()
    result = await services.payments.create_order("U1", _order())
    gateway.fail_with = recoverable()

    with pytest.raises(PaymentSessionError):
        await services.payments.create_payment_session("U1", CreateSessionRequest(order_id=result.order.order_id))


@pytest.mark.asyncio
async def test_session_for_someone_elses_order_is_not_found(services, seed_team):
    await seed_team()
    result = await services.payments.create_order("U1", _order())

    with pytest.raises(PaymentNotFoundException):
        await services.payments.create_payment_session("U2", CreateSessionRequest(order_id=result.order.order_id))


@pytest.mark.asyncio
async def test_verify_requires_all_fields(services):
    with pytest.raises(PaymentValidationException) as exc_info:
        await services.payments.verify_payment("U1", VerifyPaymentRequest(order_id="order_1"))
    assert exc_info.value.message == "Missing payment verification data"


@pytest.mark.asyncio
async def test_verify_with_bad_signature_changes_nothing(services, seed_team, fetch_payments, notifier):
    await seed_team()
    result = await services.payments.create_order("U1", _order())

    with pytest.raises(PaymentVerificationException):
        await services.payments.verify_payment(
            "U1",
            VerifyPaymentRequest(payment_id="pay_1", order_id=result.order.order_id, signature="deadbeef"),
        )

    [row] = await fetch_payments()
    assert row.status == "pending"
    assert notifier.events == []


@pytest.mark.asyncio
async def test_verify_stores_reference_but_not_signature(services, seed_team, fetch_payments):
    await seed_team()
    result = await services.payments.create_order("U1", _order())
    signature = checkout_signature(result.order.order_id, "pay_1")

    dto = await services.payments.verify_payment(
        "U1", VerifyPaymentRequest(payment_id="pay_1", order_id=result.order.order_id, signature=signature)
    )

    assert dto.status == "paid"
    assert dto.transaction_id == "pay_1"
    assert "gateway_response" not in dto.model_dump()
    [row] = await fetch_payments()
    verification = row.gateway_response["verification"]
    assert verification["gateway_payment_id"] == "pay_1"
    assert verification["gateway_order_id"] == result.order.order_id
    assert signature not in str(row.gateway_response)


@pytest.mark.asyncio
async def test_read_operations(services, seed_team):
    await seed_team()
    result = await services.payments.create_order("U1", _order())

    assert (await services.payments.get_payment("U1", result.payment.id)).id == result.payment.id
    with pytest.raises(PaymentNotFoundException):
        await services.payments.get_payment("U2", result.payment.id)

    items, total = await services.payments.list_payments("U1")
    assert total == 1 and items[0].id == result.payment.id

    status = await services.payments.check_event_payment("U1", "E1")
    assert not status.has_paid and status.payment is None

    await services.payments.verify_payment(
        "U1",
        VerifyPaymentRequest(
            payment_id="pay_1",
            order_id=result.order.order_id,
            signature=checkout_signature(result.order.order_id, "pay_1"),
        ),
    )
    status = await services.payments.check_event_payment("U1", "E1")
    assert status.has_paid and status.payment.id == result.payment.id

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy import update

from domain.payment.entity import Payment, PaymentChanges, PaymentStatus
from infrastructure.models import PaymentModel


async def _payment(uow_factory, team_id: str, event_id: str, amount: str, status: PaymentStatus, user_id: str = "U1"):
    async with uow_factory() as uow:
        payment = await uow.payment_repository.create(
            Payment.new(
                user_id=user_id,
                team_id=team_id,
                event_id=event_id,
                amount=Decimal(amount),
                currency="INR",
                payment_method="razorpay",
            )
        )
        if status != PaymentStatus.PENDING:
            await uow.payment_repository.transition(payment.id, status, PaymentChanges())
    return payment


@pytest.fixture
async def ledger(uow_factory):
    return [
        await _payment(uow_factory, "T1", "E1", "400", PaymentStatus.PAID),
        await _payment(uow_factory, "T2", "E1", "500", PaymentStatus.COMPLETED, user_id="U2"),
        await _payment(uow_factory, "T3", "E1", "400", PaymentStatus.PENDING, user_id="U3"),
        await _payment(uow_factory, "T4", "E2", "300", PaymentStatus.FAILED),
        await _payment(uow_factory, "T5", "E2", "250.50", PaymentStatus.PAID, user_id="U2"),
        await _payment(uow_factory, "T6", "E2", "250", PaymentStatus.EXPIRED, user_id="U3"),
        await _payment(uow_factory, "T7", "E2", "250", PaymentStatus.AUTHORIZED, user_id="U3"),
    ]


@pytest.mark.asyncio
async def test_stats_count_completed_as_paid(services, ledger):
    stats = await services.payments.payment_stats()

    assert stats.event_id is None
    assert stats.total == 7
    assert stats.paid == 3
    assert (stats.pending, stats.authorized, stats.failed, stats.expired) == (1, 1, 1, 1)
    assert stats.total_amount == Decimal("1150.50")


@pytest.mark.asyncio
async def test_stats_for_one_event(services, ledger):
    stats = await services.payments.payment_stats("E1")

    assert stats.event_id == "E1"
    assert (stats.total, stats.paid, stats.pending, stats.failed) == (3, 2, 1, 0)
    assert stats.total_amount == Decimal("900.00")
    assert stats.model_dump(mode="json")["total_amount"] == "900.00"


@pytest.mark.asyncio
async def test_stats_without_payments(services):
    stats = await services.payments.payment_stats("E9")

    assert stats.total == 0
    assert stats.paid == 0
    assert stats.total_amount == Decimal("0.00")


@pytest.mark.asyncio
async def test_list_all_payments_spans_users(services, ledger, database):
    newest = ledger[3]
    async with database.session_factory() as session:
        await session.execute(
            update(PaymentModel)
            .where(PaymentModel.id == newest.id)
            .values(created_at=datetime.now(timezone.utc) + timedelta(minutes=5))
        )
        await session.commit()

    items, total = await services.payments.list_all_payments(skip=0, limit=3)

    assert total == 7
    assert len(items) == 3
    assert items[0].id == newest.id

    e2_items, e2_total = await services.payments.list_all_payments(event_id="E2")
    assert e2_total == 4
    assert {item.event_id for item in e2_items} == {"E2"}
    assert {item.id for item in e2_items} == {p.id for p in ledger[3:]}

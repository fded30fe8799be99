"""Pytest bootstrap configuration.

Ensure mandatory environment variables are set before test collection
and module imports that depend on application settings.
"""
import os

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DEBUG", "false")
os.environ.setdefault("DATABASE__URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("AUTH__JWT_SECRET", "test-jwt-secret")
os.environ.setdefault("AUTH__JWT_AUDIENCE", "authenticated")

import json
import time
from decimal import Decimal
from functools import partial
from itertools import count
from typing import Optional

import jwt
import pytest
from sqlalchemy import select
from sqlalchemy.pool import StaticPool

from application.dtos.payments import (
    CreateGatewayOrder,
    CreateGatewaySession,
    GatewayOrder,
    PaymentSessionDTO,
)
from core.settings import CashfreeSettings, PaymentSettings, RazorpaySettings
from domain.payment.exceptions import PaymentRecoverableError
from infrastructure.container import build_payment_services
from infrastructure.database import Database
from infrastructure.external.payments import GatewayRegistry
from infrastructure.external.payments.razorpay_client import RazorpayClient
from infrastructure.external.payments.signature import compute_signature
from infrastructure.models import PaymentModel, TeamModel
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork


WEBHOOK_SECRET = "whsec_test"
KEY_SECRET = "rzp_test_secret"
JWT_SECRET = os.environ["AUTH__JWT_SECRET"]


@pytest.fixture
def payment_settings() -> PaymentSettings:
    return PaymentSettings(
        default_provider="razorpay",
        razorpay=RazorpaySettings(
            key_id="rzp_test_key",
            key_secret=KEY_SECRET,
            webhook_secret=WEBHOOK_SECRET,
        ),
        cashfree=CashfreeSettings(app_id="cf_app", secret_key="cf_secret"),
    )


class FakeRazorpay(RazorpayClient):
    """Real signature checks and webhook parsing, canned order API."""

    def __init__(self, config: RazorpaySettings):
        super().__init__(config)
        self.orders: dict[str, GatewayOrder] = {}
        self.created: list[CreateGatewayOrder] = []
        self.next_order_ids: list[str] = []
        self.fail_with: Optional[Exception] = None
        self.unreachable_orders: set[str] = set()
        self._ids = count(1)

    async def create_order(self, req: CreateGatewayOrder) -> GatewayOrder:
        if self.fail_with is not None:
            raise self.fail_with
        self.created.append(req)
        order_id = self.next_order_ids.pop(0) if self.next_order_ids else f"order_{next(self._ids)}"
        order = GatewayOrder(
            order_id=order_id,
            provider=self.provider,
            amount=req.amount,
            currency=req.currency,
            status="created",
            receipt=req.receipt,
        )
        self.orders[order_id] = order
        return order

    async def fetch_order(self, order_id: str) -> GatewayOrder:
        if self.fail_with is not None:
            raise self.fail_with
        if order_id in self.unreachable_orders:
            raise recoverable(self.provider)
        return self.orders[order_id]

    def mark_order(self, order_id: str, status: str) -> None:
        self.orders[order_id] = self.orders[order_id].model_copy(update={"status": status})

    async def create_session(self, req: CreateGatewaySession) -> PaymentSessionDTO:
        if self.fail_with is not None:
            raise self.fail_with
        return await super().create_session(req)


class RecordingNotifier:
    def __init__(self):
        self.events = []

    async def payment_confirmed(self, event) -> None:
        self.events.append(event)


@pytest.fixture
async def database():
    db = Database(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await db.create_tables()
    try:
        yield db
    finally:
        await db.drop_tables()
        await db.dispose()


@pytest.fixture
def uow_factory(database):
    return partial(SQLAlchemyUnitOfWork, database.session_factory)


@pytest.fixture
def gateway(payment_settings) -> FakeRazorpay:
    return FakeRazorpay(payment_settings.razorpay)


@pytest.fixture
def gateways(payment_settings, gateway) -> GatewayRegistry:
    registry = GatewayRegistry(payment_settings)
    registry._clients["razorpay"] = gateway
    return registry


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def services(database, gateways, notifier, payment_settings):
    return build_payment_services(database, gateways, notifier=notifier, settings=payment_settings)


@pytest.fixture
def seed_team(database):
    async def _seed(team_id: str = "T1", event_id: str = "E1", leader_id: str = "U1", **fields):
        async with database.session_factory() as session:
            session.add(TeamModel(id=team_id, name=f"Team {team_id}", leader_id=leader_id, event_id=event_id, **fields))
            await session.commit()

    return _seed


@pytest.fixture
def fetch_team(database):
    async def _fetch(team_id: str = "T1") -> TeamModel:
        async with database.session_factory() as session:
            return (await session.execute(select(TeamModel).where(TeamModel.id == team_id))).scalar_one()

    return _fetch


@pytest.fixture
def fetch_payments(database):
    async def _fetch(team_id: str = "T1") -> list[PaymentModel]:
        async with database.session_factory() as session:
            result = await session.execute(
                select(PaymentModel).where(PaymentModel.team_id == team_id).order_by(PaymentModel.created_at)
            )
            return list(result.scalars())

    return _fetch


def razorpay_body(
    event: str,
    *,
    order_id: Optional[str] = None,
    payment_id: Optional[str] = None,
    created_at: int = 1700000000,
    **entity_fields,
) -> bytes:
    payload = {}
    if payment_id is not None or order_id is not None:
        entity = {"id": payment_id, "order_id": order_id, "created_at": created_at, **entity_fields}
        payload["payment"] = {"entity": {k: v for k, v in entity.items() if v is not None}}
    if event.startswith("order."):
        payload["order"] = {"entity": {"id": order_id, "status": "paid"}}
    return json.dumps({"entity": "event", "event": event, "payload": payload, "created_at": created_at}).encode()


def signed_headers(body: bytes, *, secret: str = WEBHOOK_SECRET, event_id: Optional[str] = None) -> dict[str, str]:
    headers = {"Content-Type": "application/json", "X-Razorpay-Signature": compute_signature(body, secret)}
    if event_id:
        headers["X-Razorpay-Event-Id"] = event_id
    return headers


def checkout_signature(order_id: str, payment_id: str, secret: str = KEY_SECRET) -> str:
    return compute_signature(f"{order_id}|{payment_id}".encode(), secret)


def access_token(user_id: str = "U1", *, expires_in: int = 3600, secret: str = JWT_SECRET, **claims) -> str:
    now = int(time.time())
    return jwt.encode(
        {"sub": user_id, "aud": "authenticated", "iat": now, "exp": now + expires_in, **claims},
        secret,
        algorithm="HS256",
    )


def recoverable(provider: str = "razorpay") -> PaymentRecoverableError:
    return PaymentRecoverableError("razorpay is unreachable", provider=provider)


ORDER_AMOUNT = Decimal("400")

"""
Payment DTOs (Pydantic v2) used at application boundaries.

Three groups live here:
- client requests/responses for the checkout API,
- gateway-neutral order/session/webhook shapes exchanged with adapters,
- tagged results returned by webhook processing and reconciliation.
"""
from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_serializer

from domain.payment.entity import Payment, PaymentStats, PaymentStatus

# Currencies the gateways accept for registration fees
ISO_4217 = {
    "INR", "USD", "EUR", "GBP", "SGD", "AED",
}

DEFAULT_CURRENCY = "INR"


class DTOBase(BaseModel):
    """Base DTO: datetimes serialize as UTC with a trailing Z."""

    @model_serializer(mode="wrap")
    def _serialize_model(self, handler):  # type: ignore[override]
        data = handler(self)

        def convert(value):
            if isinstance(value, datetime):
                ts = value if value.tzinfo else value.replace(tzinfo=timezone.utc)
                s = ts.astimezone(timezone.utc).isoformat()
                return s.replace("+00:00", "Z")
            if isinstance(value, list):
                return [convert(v) for v in value]
            if isinstance(value, dict):
                return {k: convert(v) for k, v in value.items()}
            return value

        return convert(data)


def _normalize_currency(v: Optional[str]) -> str:
    u = (v or DEFAULT_CURRENCY).strip().upper()
    if len(u) != 3 or not u.isalpha():
        raise ValueError("currency must be ISO-4217 alpha-3")
    if u not in ISO_4217:
        raise ValueError("unsupported currency")
    return u


# ---------------------------------------------------------------------------
# Client requests
# ---------------------------------------------------------------------------

class CustomerDetails(DTOBase):
    customer_id: Optional[str] = Field(None, validation_alias=AliasChoices("customer_id", "customerId"))
    name: Optional[str] = Field(None, validation_alias=AliasChoices("name", "customer_name", "customerName"))
    email: Optional[str] = Field(None, validation_alias=AliasChoices("email", "customer_email", "customerEmail"))
    phone: Optional[str] = Field(None, validation_alias=AliasChoices("phone", "customer_phone", "customerPhone"))


class CreateOrderRequest(DTOBase):
    """Fields are optional here; the service reports every missing one at once."""

    team_id: Optional[str] = Field(None, validation_alias=AliasChoices("team_id", "teamId"))
    event_id: Optional[str] = Field(None, validation_alias=AliasChoices("event_id", "eventId"))
    amount: Optional[Decimal] = None
    currency: str = DEFAULT_CURRENCY
    provider: Optional[str] = None
    customer: Optional[CustomerDetails] = None

    @field_validator("currency", mode="before")
    @classmethod
    def _upper_and_validate_currency(cls, v: Optional[str]) -> str:
        return _normalize_currency(v)


class CreateSessionRequest(DTOBase):
    order_id: Optional[str] = Field(None, validation_alias=AliasChoices("order_id", "orderId"))
    customer: Optional[CustomerDetails] = Field(
        None, validation_alias=AliasChoices("customer", "customer_details", "customerDetails")
    )


class VerifyPaymentRequest(DTOBase):
    """Result handed back by the gateway's checkout SDK."""

    payment_id: Optional[str] = Field(
        None, validation_alias=AliasChoices("payment_id", "paymentId", "razorpay_payment_id")
    )
    order_id: Optional[str] = Field(
        None, validation_alias=AliasChoices("order_id", "orderId", "razorpay_order_id")
    )
    signature: Optional[str] = Field(
        None, validation_alias=AliasChoices("signature", "razorpay_signature")
    )


# ---------------------------------------------------------------------------
# Gateway-neutral shapes
# ---------------------------------------------------------------------------

class CreateGatewayOrder(BaseModel):
    receipt: str
    amount: Decimal = Field(gt=0)
    currency: str = DEFAULT_CURRENCY
    notes: dict[str, str] = Field(default_factory=dict)
    customer: Optional[CustomerDetails] = None


class GatewayOrder(DTOBase):
    order_id: str
    provider: str
    amount: Decimal
    currency: str
    # internal order status: created | attempted | paid | expired
    status: str
    receipt: Optional[str] = None
    session_id: Optional[str] = None
    raw: dict[str, Any] = Field(default_factory=dict, exclude=True)


class CreateGatewaySession(BaseModel):
    order_id: str
    amount: Decimal
    currency: str
    receipt: Optional[str] = None
    customer: Optional[CustomerDetails] = None


class PaymentSessionDTO(DTOBase):
    provider: str
    order_id: str
    session_id: Optional[str] = None
    # options the browser SDK needs to open checkout
    checkout: dict[str, Any] = Field(default_factory=dict)


class PaymentEntity(BaseModel):
    """payload.payment.entity; every field may be omitted by the gateway."""

    model_config = ConfigDict(extra="allow")

    id: Optional[str] = None
    order_id: Optional[str] = None
    amount: Optional[int] = None
    currency: Optional[str] = None
    status: Optional[str] = None
    method: Optional[str] = None
    error_code: Optional[str] = None
    error_description: Optional[str] = None
    created_at: Optional[int] = None


class OrderEntity(BaseModel):
    """payload.order.entity"""

    model_config = ConfigDict(extra="allow")

    id: Optional[str] = None
    amount: Optional[int] = None
    amount_paid: Optional[int] = None
    currency: Optional[str] = None
    receipt: Optional[str] = None
    status: Optional[str] = None
    created_at: Optional[int] = None


class WebhookEvent(BaseModel):
    """A verified, normalized gateway event."""

    key: str
    type: str
    provider: str
    payment: Optional[PaymentEntity] = None
    order: Optional[OrderEntity] = None
    created_at: Optional[int] = None


# ---------------------------------------------------------------------------
# Client responses
# ---------------------------------------------------------------------------

class PaymentDTO(DTOBase):
    """User-facing view of a payment; raw gateway payloads are never exposed."""

    id: str
    team_id: str
    event_id: str
    amount: Decimal
    currency: str
    payment_method: str
    status: str
    transaction_id: Optional[str] = None
    gateway_order_id: Optional[str] = None
    gateway_payment_id: Optional[str] = None
    failure_reason: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None

    @classmethod
    def from_entity(cls, payment: Payment) -> "PaymentDTO":
        return cls(
            id=payment.id,
            team_id=payment.team_id,
            event_id=payment.event_id,
            amount=payment.amount,
            currency=payment.currency,
            payment_method=payment.payment_method,
            status=payment.status.value,
            transaction_id=payment.transaction_id,
            gateway_order_id=payment.gateway_order_id,
            gateway_payment_id=payment.gateway_payment_id,
            failure_reason=payment.failure_reason,
            created_at=payment.created_at,
            updated_at=payment.updated_at,
            paid_at=payment.paid_at,
            completed_at=payment.completed_at,
            failed_at=payment.failed_at,
        )


class CreateOrderResult(DTOBase):
    order: GatewayOrder
    payment: PaymentDTO
    reused: bool = False


class EventPaymentStatusDTO(DTOBase):
    event_id: str
    has_paid: bool
    payment: Optional[PaymentDTO] = None


class PaymentStatsDTO(DTOBase):
    """Admin reporting view; paid includes completed payments."""

    event_id: Optional[str] = None
    total: int
    paid: int
    pending: int
    authorized: int
    failed: int
    expired: int
    total_amount: Decimal

    @classmethod
    def from_stats(cls, stats: PaymentStats) -> "PaymentStatsDTO":
        return cls(
            event_id=stats.event_id,
            total=stats.total,
            paid=stats.count(PaymentStatus.PAID, PaymentStatus.COMPLETED),
            pending=stats.count(PaymentStatus.PENDING),
            authorized=stats.count(PaymentStatus.AUTHORIZED),
            failed=stats.count(PaymentStatus.FAILED),
            expired=stats.count(PaymentStatus.EXPIRED),
            total_amount=stats.settled_amount.quantize(Decimal("0.01")),
        )


# ---------------------------------------------------------------------------
# Processing results
# ---------------------------------------------------------------------------

class ErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    INVALID_PAYLOAD = "invalid_payload"
    DATABASE = "database"
    INTERNAL = "internal"


class ProcessingResult(BaseModel):
    success: bool
    message: Optional[str] = None
    error: Optional[str] = None
    kind: Optional[ErrorKind] = None
    event_type: Optional[str] = None
    payment_id: Optional[str] = None
    duplicate: bool = False

    @classmethod
    def ok(cls, message: str, **kwargs: Any) -> "ProcessingResult":
        return cls(success=True, message=message, **kwargs)

    @classmethod
    def fail(cls, kind: ErrorKind, error: str, **kwargs: Any) -> "ProcessingResult":
        return cls(success=False, kind=kind, error=error, **kwargs)


class ReconciliationReport(BaseModel):
    scanned: int = 0
    expired: int = 0
    completed: int = 0
    unchanged: int = 0
    errors: int = 0

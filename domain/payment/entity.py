"""
Payment domain entity - one attempt to pay a team's registration fee.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
import uuid

from domain.common.exceptions import DomainValidationException


class PaymentStatus(str, Enum):
    """Payment lifecycle status.

    Ordered as a lattice: pending < authorized < paid <= completed.
    failed and expired are terminal unless a later capture supersedes them.
    """
    PENDING = "pending"
    AUTHORIZED = "authorized"
    PAID = "paid"
    COMPLETED = "completed"
    FAILED = "failed"
    EXPIRED = "expired"

    @property
    def is_settled(self) -> bool:
        """Money has been captured for this attempt."""
        return self in SETTLED_STATUSES

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    def can_transition_to(self, target: "PaymentStatus") -> bool:
        return self in ALLOWED_SOURCES.get(target, frozenset())


SETTLED_STATUSES = frozenset({PaymentStatus.PAID, PaymentStatus.COMPLETED})
TERMINAL_STATUSES = frozenset({
    PaymentStatus.PAID,
    PaymentStatus.COMPLETED,
    PaymentStatus.FAILED,
    PaymentStatus.EXPIRED,
})
OPEN_STATUSES = frozenset({PaymentStatus.PENDING, PaymentStatus.AUTHORIZED})

# target -> statuses a payment may move from. Anything not listed would move
# the payment backwards (or sideways out of a settled state) and is ignored.
ALLOWED_SOURCES: dict[PaymentStatus, frozenset[PaymentStatus]] = {
    PaymentStatus.AUTHORIZED: frozenset({PaymentStatus.PENDING}),
    PaymentStatus.PAID: frozenset({
        PaymentStatus.PENDING,
        PaymentStatus.AUTHORIZED,
        PaymentStatus.FAILED,
        PaymentStatus.EXPIRED,
    }),
    PaymentStatus.COMPLETED: frozenset({
        PaymentStatus.PENDING,
        PaymentStatus.AUTHORIZED,
        PaymentStatus.PAID,
        PaymentStatus.FAILED,
        PaymentStatus.EXPIRED,
    }),
    PaymentStatus.FAILED: frozenset({PaymentStatus.PENDING, PaymentStatus.AUTHORIZED}),
    PaymentStatus.EXPIRED: frozenset({PaymentStatus.PENDING, PaymentStatus.AUTHORIZED}),
}

DEFAULT_FAILURE_REASON = "Payment failed"


def _ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Payment:
    """
    Payment aggregate.

    Business rules:
    1. amount must be positive, currency ISO-4217 alpha-3
    2. created in pending by the order initiator, never deleted
    3. status only moves along ALLOWED_SOURCES
    4. gateway_order_id is fixed once the gateway order exists; transaction_id
       follows the latest gateway reference (order id, then payment id)
    """

    id: str
    user_id: str
    team_id: str
    event_id: str
    amount: Decimal
    currency: str
    payment_method: str
    status: PaymentStatus = PaymentStatus.PENDING

    transaction_id: Optional[str] = None
    gateway_order_id: Optional[str] = None
    gateway_payment_id: Optional[str] = None
    gateway_response: dict[str, Any] = field(default_factory=dict)
    failure_reason: Optional[str] = None

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    authorized_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None

    def __post_init__(self):
        if self.amount is None or Decimal(self.amount) <= 0:
            raise DomainValidationException(f"Payment amount must be positive: {self.amount}", field="amount")
        self.amount = Decimal(self.amount)
        if not self.currency or len(self.currency) != 3 or not self.currency.isalpha():
            raise DomainValidationException(f"Invalid currency code: {self.currency}", field="currency")
        self.currency = self.currency.upper()
        if self.gateway_response is None:
            self.gateway_response = {}
        self.created_at = _ensure_utc(self.created_at)
        self.updated_at = _ensure_utc(self.updated_at)
        self.authorized_at = _ensure_utc(self.authorized_at)
        self.paid_at = _ensure_utc(self.paid_at)
        self.completed_at = _ensure_utc(self.completed_at)
        self.failed_at = _ensure_utc(self.failed_at)

    @classmethod
    def new(
        cls,
        *,
        user_id: str,
        team_id: str,
        event_id: str,
        amount: Decimal,
        currency: str,
        payment_method: str,
    ) -> "Payment":
        now = utcnow()
        return cls(
            id=str(uuid.uuid4()),
            user_id=user_id,
            team_id=team_id,
            event_id=event_id,
            amount=amount,
            currency=currency,
            payment_method=payment_method,
            status=PaymentStatus.PENDING,
            created_at=now,
            updated_at=now,
        )

    def age_seconds(self, now: Optional[datetime] = None) -> float:
        if self.created_at is None:
            return 0.0
        return ((now or utcnow()) - self.created_at).total_seconds()


@dataclass
class PaymentChanges:
    """Field values written together with a status transition.

    None means "leave unchanged". gateway_response is merged into the stored
    payload (top-level keys overwrite) rather than replacing it.
    """

    transaction_id: Optional[str] = None
    gateway_order_id: Optional[str] = None
    gateway_payment_id: Optional[str] = None
    gateway_response: Optional[dict[str, Any]] = None
    failure_reason: Optional[str] = None
    occurred_at: Optional[datetime] = None


@dataclass
class Transition:
    """Outcome of a compare-and-set status transition."""

    payment: Payment
    previous_status: PaymentStatus
    applied: bool

    @property
    def newly_settled(self) -> bool:
        """True only for the single writer that moved the payment into a settled status."""
        return self.applied and self.payment.status.is_settled and not self.previous_status.is_settled


@dataclass
class PaymentStats:
    """Payment counts per status and the captured amount, over all events or one."""

    counts: dict[PaymentStatus, int] = field(default_factory=dict)
    settled_amount: Decimal = Decimal("0")
    event_id: Optional[str] = None

    @property
    def total(self) -> int:
        return sum(self.counts.values())

    def count(self, *statuses: PaymentStatus) -> int:
        return sum(self.counts.get(status, 0) for status in statuses)

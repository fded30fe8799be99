"""
Payment domain events.

Dataclass events record payment lifecycle facts for downstream handling
(confirmation notifications). Domain remains free of infrastructure imports.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional
import uuid

from .entity import Payment


@dataclass
class PaymentEvent:
    payment_id: str
    team_id: str
    user_id: str
    provider: str
    gateway_order_id: Optional[str] = None
    gateway_payment_id: Optional[str] = None
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class PaymentSettled(PaymentEvent):
    amount: str = ""
    currency: str = ""
    source: str = ""

    @classmethod
    def from_payment(cls, payment: Payment, *, source: str) -> "PaymentSettled":
        return cls(
            payment_id=payment.id,
            team_id=payment.team_id,
            user_id=payment.user_id,
            provider=payment.payment_method,
            gateway_order_id=payment.gateway_order_id,
            gateway_payment_id=payment.gateway_payment_id,
            amount=str(payment.amount),
            currency=payment.currency,
            source=source,
        )

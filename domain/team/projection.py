"""
Derivation of a team's cached payment/registration status from its payments.

Payment rows are the source of truth; the team fields are a cache rebuilt
from all of the team's attempts, so a later failed attempt can never hide an
earlier successful one.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, Optional

from domain.payment.entity import Payment, PaymentStatus
from .entity import TeamPaymentStatus, TeamStatus


_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


@dataclass(frozen=True)
class TeamProjection:
    payment_status: TeamPaymentStatus
    # None leaves the registration status untouched
    status: Optional[TeamStatus] = None


def derive_team_projection(payments: Iterable[Payment]) -> TeamProjection:
    payments = list(payments)
    if any(p.status.is_settled for p in payments):
        return TeamProjection(payment_status=TeamPaymentStatus.PAID, status=TeamStatus.APPROVED)

    latest = max(payments, key=lambda p: p.updated_at or p.created_at or _EPOCH, default=None)
    if latest is not None and latest.status == PaymentStatus.FAILED:
        return TeamProjection(payment_status=TeamPaymentStatus.FAILED, status=TeamStatus.PENDING)
    return TeamProjection(payment_status=TeamPaymentStatus.PENDING)

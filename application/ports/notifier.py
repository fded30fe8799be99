"""
Outbound notification port. Delivery (email, SMS) happens elsewhere.
"""
from __future__ import annotations

from typing import Protocol, runtime_checkable

from domain.payment.events import PaymentSettled


@runtime_checkable
class PaymentNotifier(Protocol):

    async def payment_confirmed(self, event: PaymentSettled) -> None: ...

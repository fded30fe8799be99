"""Infrastructure adapter that implements the application PaymentNotifier
by enqueueing the confirmation task on Celery.
"""
from __future__ import annotations

import asyncio
from dataclasses import asdict

from application.ports.notifier import PaymentNotifier
from domain.payment.events import PaymentSettled
from infrastructure.tasks.utils.dispatcher import TaskDispatcher


class CeleryPaymentNotifier(PaymentNotifier):
    def __init__(self, dispatcher: TaskDispatcher | None = None):
        self.dispatcher = dispatcher or TaskDispatcher()

    async def payment_confirmed(self, event: PaymentSettled) -> None:
        payload = asdict(event)
        payload["occurred_at"] = event.occurred_at.isoformat()
        # publishing blocks while kombu retries an unreachable broker
        await asyncio.to_thread(self.dispatcher.send_payment_confirmation, payload)

"""
Celery tasks for payment side effects: confirmations and reconciliation sweeps.
"""
from __future__ import annotations

import asyncio
from typing import Any

from celery import shared_task

from ..utils.base_task import BaseTask
from core.logging_config import get_logger
from core.settings import payment_settings


logger = get_logger(__name__)


async def _reconcile() -> dict:
    from infrastructure.adapters.notifier import CeleryPaymentNotifier
    from infrastructure.container import build_payment_services
    from infrastructure.database import create_database
    from infrastructure.external.payments import GatewayRegistry

    database = create_database()
    gateways = GatewayRegistry(payment_settings)
    try:
        services = build_payment_services(
            database, gateways, notifier=CeleryPaymentNotifier(), settings=payment_settings
        )
        report = await services.reconciliation.run()
        return report.model_dump()
    finally:
        await gateways.aclose()
        await database.dispose()


@shared_task(name="payments.reconcile_stale", bind=True, base=BaseTask, max_retries=3, default_retry_delay=60)
def reconcile_stale_payments(self) -> dict:
    """Expire abandoned checkouts and complete orders the gateway reports as paid."""
    try:
        # one event loop per run; the engine and clients live only inside it
        return asyncio.run(_reconcile())
    except Exception as exc:
        logger.error("payment_reconciliation_task_failed", error=str(exc))
        raise self.retry(exc=exc)


@shared_task(
    name="payments.send_confirmation",
    bind=True,
    base=BaseTask,
    autoretry_for=(Exception,),
    retry_backoff=True,
    retry_backoff_max=600,
    retry_jitter=True,
    retry_kwargs={"max_retries": 5},
)
def send_payment_confirmation(self, event: dict[str, Any]) -> None:
    """Confirmation for a newly settled payment; mail delivery lives outside this service."""
    logger.info(
        "send_payment_confirmation",
        payment_id=event.get("payment_id"),
        team_id=event.get("team_id"),
        user_id=event.get("user_id"),
        amount=event.get("amount"),
        currency=event.get("currency"),
        source=event.get("source"),
    )

"""
Composition root for the payment pipeline.

Entry points (FastAPI lifespan, Celery tasks) build a Database and a
GatewayRegistry, then call build_payment_services to wire the graph.
"""
from __future__ import annotations

from dataclasses import dataclass
from functools import partial
from typing import Callable, Optional

from application.ports.notifier import PaymentNotifier
from application.services.payment_event_handlers import PaymentEventHandlers
from application.services.payment_service import GatewayResolver, PaymentApplicationService
from application.services.reconciliation_service import ReconciliationService
from application.services.settlement import PaymentSettlement
from application.services.team_projector import TeamStatusProjector
from application.services.webhook_service import WebhookEventRouter, WebhookService
from core.settings import PaymentSettings, payment_settings
from domain.common.unit_of_work import AbstractUnitOfWork
from infrastructure.database import Database
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork


@dataclass
class PaymentServices:
    uow_factory: Callable[..., AbstractUnitOfWork]
    projector: TeamStatusProjector
    settlement: PaymentSettlement
    payments: PaymentApplicationService
    webhooks: WebhookService
    reconciliation: ReconciliationService


def build_payment_services(
    database: Database,
    gateways: GatewayResolver,
    *,
    notifier: Optional[PaymentNotifier] = None,
    settings: Optional[PaymentSettings] = None,
) -> PaymentServices:
    cfg = settings or payment_settings
    uow_factory = partial(SQLAlchemyUnitOfWork, database.session_factory)
    projector = TeamStatusProjector(uow_factory)
    settlement = PaymentSettlement(uow_factory, projector, notifier)
    router = WebhookEventRouter(PaymentEventHandlers(settlement))
    return PaymentServices(
        uow_factory=uow_factory,
        projector=projector,
        settlement=settlement,
        payments=PaymentApplicationService(
            uow_factory,
            gateways,
            settlement,
            default_provider=cfg.default_provider,
            order_reuse_seconds=cfg.order_reuse_seconds,
        ),
        webhooks=WebhookService(uow_factory, router),
        reconciliation=ReconciliationService(
            uow_factory,
            gateways,
            settlement,
            stale_after_seconds=cfg.reconciliation.stale_after_seconds,
            batch_size=cfg.reconciliation.batch_size,
        ),
    )

"""
Sweeps payments stuck in pending/authorized and settles them against the gateway.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from application.dtos.payments import ReconciliationReport
from application.services.payment_service import GatewayResolver
from application.services.settlement import PaymentSettlement
from core.logging_config import get_logger
from domain.common.exceptions import BusinessException
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.payment.entity import OPEN_STATUSES, Payment, PaymentChanges, PaymentStatus


logger = get_logger(__name__)

NO_GATEWAY_ORDER_REASON = "Gateway order was never created"
ABANDONED_REASON = "Checkout abandoned"


class ReconciliationService:
    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        gateway_resolver: GatewayResolver,
        settlement: PaymentSettlement,
        *,
        stale_after_seconds: int = 7200,
        batch_size: int = 100,
    ) -> None:
        self._uow_factory = uow_factory
        self._gateways = gateway_resolver
        self._settlement = settlement
        self._stale_after = timedelta(seconds=stale_after_seconds)
        self._batch_size = batch_size

    async def run(self, now: Optional[datetime] = None) -> ReconciliationReport:
        now = now or datetime.now(timezone.utc)
        cutoff = now - self._stale_after
        async with self._uow_factory(readonly=True) as uow:
            stale = await uow.payment_repository.list_stale(OPEN_STATUSES, cutoff, self._batch_size)

        report = ReconciliationReport(scanned=len(stale))
        for payment in stale:
            try:
                outcome = await self._reconcile(payment)
            except (BusinessException, ValueError) as exc:
                report.errors += 1
                logger.error(
                    "payment_reconciliation_failed",
                    payment_id=payment.id,
                    provider=payment.payment_method,
                    error=str(exc),
                )
                continue
            if outcome is PaymentStatus.EXPIRED:
                report.expired += 1
            elif outcome is PaymentStatus.COMPLETED:
                report.completed += 1
            else:
                report.unchanged += 1

        logger.info("payment_reconciliation_finished", **report.model_dump())
        return report

    async def _reconcile(self, payment: Payment) -> Optional[PaymentStatus]:
        if not payment.gateway_order_id:
            return await self._settle(
                payment, PaymentStatus.EXPIRED, PaymentChanges(failure_reason=NO_GATEWAY_ORDER_REASON)
            )

        gateway = self._gateways(payment.payment_method)
        order = await gateway.fetch_order(payment.gateway_order_id)
        if order.status == "paid":
            return await self._settle(
                payment,
                PaymentStatus.COMPLETED,
                PaymentChanges(gateway_response={"reconciliation": {"order_status": order.status}}),
            )
        return await self._settle(
            payment,
            PaymentStatus.EXPIRED,
            PaymentChanges(
                failure_reason=ABANDONED_REASON,
                gateway_response={"reconciliation": {"order_status": order.status}},
            ),
        )

    async def _settle(
        self, payment: Payment, target: PaymentStatus, changes: PaymentChanges
    ) -> Optional[PaymentStatus]:
        transition = await self._settlement.apply(payment.id, target, changes, source="reconciliation")
        if transition is None or not transition.applied:
            return None
        logger.info(
            "payment_reconciled",
            payment_id=payment.id,
            previous_status=transition.previous_status.value,
            status=target.value,
        )
        return target

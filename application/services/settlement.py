"""
Shared write path for every payment status change.

Webhook handlers, client-side verification and reconciliation all go
through PaymentSettlement so that follow-up effects behave the same way:
the payment transition commits first, then the team projection runs
(best effort), then the confirmation notification fires at most once per
payment, for the writer that actually settled it.
"""
from __future__ import annotations

from typing import Awaitable, Callable, Iterable, Optional

from core.logging_config import get_logger
from application.ports.notifier import PaymentNotifier
from application.services.team_projector import TeamStatusProjector
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.payment.entity import Payment, PaymentChanges, PaymentStatus, Transition
from domain.payment.events import PaymentSettled


logger = get_logger(__name__)

# authorized only means "awaiting capture"; the team is left alone
_PROJECTED_STATUSES = frozenset({
    PaymentStatus.PAID,
    PaymentStatus.COMPLETED,
    PaymentStatus.FAILED,
    PaymentStatus.EXPIRED,
})


class PaymentSettlement:
    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        projector: TeamStatusProjector,
        notifier: Optional[PaymentNotifier] = None,
    ) -> None:
        self._uow_factory = uow_factory
        self._projector = projector
        self._notifier = notifier

    async def apply(
        self,
        payment_id: str,
        target: PaymentStatus,
        changes: PaymentChanges,
        *,
        source: str,
        only_from: Optional[Iterable[PaymentStatus]] = None,
    ) -> Optional[Transition]:
        """Transition a payment by id. None when it does not exist."""

        async def find(uow: AbstractUnitOfWork) -> Optional[Payment]:
            return await uow.payment_repository.get_by_id(payment_id)

        return await self._apply(find, target, changes, source=source, only_from=only_from)

    async def apply_to_order(
        self,
        gateway_order_id: str,
        target: PaymentStatus,
        changes: PaymentChanges,
        *,
        source: str,
    ) -> Optional[Transition]:
        """Transition the payment owning a gateway order. None when no payment matches."""

        async def find(uow: AbstractUnitOfWork) -> Optional[Payment]:
            return await uow.payment_repository.get_by_gateway_order_id(gateway_order_id)

        return await self._apply(find, target, changes, source=source)

    async def _apply(
        self,
        find: Callable[[AbstractUnitOfWork], Awaitable[Optional[Payment]]],
        target: PaymentStatus,
        changes: PaymentChanges,
        *,
        source: str,
        only_from: Optional[Iterable[PaymentStatus]] = None,
    ) -> Optional[Transition]:
        async with self._uow_factory() as uow:
            payment = await find(uow)
            if payment is None:
                return None
            transition = await uow.payment_repository.transition(payment.id, target, changes, only_from)

        if transition is None or not transition.applied:
            return transition

        if target in _PROJECTED_STATUSES:
            await self._project(transition.payment)
        if transition.newly_settled:
            await self._notify(transition.payment, source)
        return transition

    async def _project(self, payment: Payment) -> None:
        try:
            await self._projector.project(payment.team_id)
        except Exception as exc:
            # payment row is already committed; the team row catches up on the next projection
            logger.error(
                "team_projection_failed",
                payment_id=payment.id,
                team_id=payment.team_id,
                error=str(exc),
                exc_info=True,
            )

    async def _notify(self, payment: Payment, source: str) -> None:
        if self._notifier is None:
            return
        try:
            await self._notifier.payment_confirmed(PaymentSettled.from_payment(payment, source=source))
        except Exception as exc:
            logger.error(
                "payment_notification_failed",
                payment_id=payment.id,
                source=source,
                error=str(exc),
                exc_info=True,
            )

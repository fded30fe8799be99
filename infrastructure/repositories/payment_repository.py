"""
Payment repository implementation (SQLAlchemy)
"""
from datetime import datetime
from decimal import Decimal
from typing import Any, Iterable, List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core.logging_config import get_logger
from domain.payment.entity import (
    OPEN_STATUSES,
    Payment,
    PaymentChanges,
    PaymentStats,
    PaymentStatus,
    SETTLED_STATUSES,
    Transition,
    utcnow,
)
from domain.payment.exceptions import PaymentInProgressException
from domain.payment.repository import PaymentRepository
from infrastructure.models.payment import PaymentModel


logger = get_logger(__name__)

# Column stamped when a payment enters the status
_STATUS_TIMESTAMP = {
    PaymentStatus.AUTHORIZED: "authorized_at",
    PaymentStatus.PAID: "paid_at",
    PaymentStatus.COMPLETED: "completed_at",
    PaymentStatus.FAILED: "failed_at",
}

# Lost compare-and-set races are retried this many times in total
_CAS_ATTEMPTS = 3


class SQLAlchemyPaymentRepository(PaymentRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: PaymentModel) -> Payment:
        return Payment(
            id=model.id,
            user_id=model.user_id,
            team_id=model.team_id,
            event_id=model.event_id,
            amount=Decimal(str(model.amount)),
            currency=model.currency,
            payment_method=model.payment_method,
            status=PaymentStatus(model.status),
            transaction_id=model.transaction_id,
            gateway_order_id=model.gateway_order_id,
            gateway_payment_id=model.gateway_payment_id,
            gateway_response=dict(model.gateway_response or {}),
            failure_reason=model.failure_reason,
            created_at=model.created_at,
            updated_at=model.updated_at,
            authorized_at=model.authorized_at,
            paid_at=model.paid_at,
            completed_at=model.completed_at,
            failed_at=model.failed_at,
        )

    def _to_model(self, entity: Payment) -> PaymentModel:
        return PaymentModel(
            id=entity.id,
            user_id=entity.user_id,
            team_id=entity.team_id,
            event_id=entity.event_id,
            amount=entity.amount,
            currency=entity.currency,
            payment_method=entity.payment_method,
            status=entity.status.value,
            transaction_id=entity.transaction_id,
            gateway_order_id=entity.gateway_order_id,
            gateway_payment_id=entity.gateway_payment_id,
            gateway_response=entity.gateway_response or None,
            failure_reason=entity.failure_reason,
            created_at=entity.created_at,
            updated_at=entity.updated_at,
        )

    async def _load(self, payment_id: str) -> Optional[PaymentModel]:
        result = await self.session.execute(
            select(PaymentModel)
            .where(PaymentModel.id == payment_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def create(self, payment: Payment) -> Payment:
        db_payment = self._to_model(payment)
        try:
            self.session.add(db_payment)
            await self.session.flush()
        except IntegrityError:
            # the unit of work rolls the whole transaction back
            logger.warning(
                "payment_create_conflict",
                team_id=payment.team_id,
                event_id=payment.event_id,
            )
            raise PaymentInProgressException(payment.team_id, payment.event_id)

        await self.session.refresh(db_payment)
        logger.info(
            "payment_created",
            payment_id=db_payment.id,
            team_id=db_payment.team_id,
            event_id=db_payment.event_id,
            amount=str(db_payment.amount),
            currency=db_payment.currency,
        )
        return self._to_entity(db_payment)

    async def get_by_id(self, payment_id: str) -> Optional[Payment]:
        db_payment = await self._load(payment_id)
        return self._to_entity(db_payment) if db_payment else None

    async def get_by_gateway_order_id(self, gateway_order_id: str) -> Optional[Payment]:
        result = await self.session.execute(
            select(PaymentModel)
            .where(PaymentModel.gateway_order_id == gateway_order_id)
            .execution_options(populate_existing=True)
        )
        db_payment = result.scalar_one_or_none()
        return self._to_entity(db_payment) if db_payment else None

    async def get_open_for_team(self, team_id: str, event_id: str) -> Optional[Payment]:
        result = await self.session.execute(
            select(PaymentModel).where(
                PaymentModel.team_id == team_id,
                PaymentModel.event_id == event_id,
                PaymentModel.status.in_([s.value for s in OPEN_STATUSES]),
            )
        )
        db_payment = result.scalars().first()
        return self._to_entity(db_payment) if db_payment else None

    async def list_by_user(self, user_id: str, skip: int = 0, limit: int = 100) -> List[Payment]:
        result = await self.session.execute(
            select(PaymentModel)
            .where(PaymentModel.user_id == user_id)
            .order_by(PaymentModel.created_at.desc())
            .offset(skip)
            .limit(limit)
        )
        return [self._to_entity(p) for p in result.scalars().all()]

    async def count_by_user(self, user_id: str) -> int:
        result = await self.session.execute(
            select(func.count(PaymentModel.id)).where(PaymentModel.user_id == user_id)
        )
        return result.scalar_one()

    async def list_by_team(self, team_id: str) -> List[Payment]:
        result = await self.session.execute(
            select(PaymentModel)
            .where(PaymentModel.team_id == team_id)
            .order_by(PaymentModel.created_at.asc())
            .execution_options(populate_existing=True)
        )
        return [self._to_entity(p) for p in result.scalars().all()]

    def _event_filter(self, stmt, event_id: Optional[str]):
        return stmt.where(PaymentModel.event_id == event_id) if event_id else stmt

    async def list_all(self, skip: int = 0, limit: int = 100, event_id: Optional[str] = None) -> List[Payment]:
        stmt = self._event_filter(select(PaymentModel), event_id)
        result = await self.session.execute(
            stmt.order_by(PaymentModel.created_at.desc()).offset(skip).limit(limit)
        )
        return [self._to_entity(p) for p in result.scalars().all()]

    async def count_all(self, event_id: Optional[str] = None) -> int:
        result = await self.session.execute(self._event_filter(select(func.count(PaymentModel.id)), event_id))
        return result.scalar_one()

    async def payment_stats(self, event_id: Optional[str] = None) -> PaymentStats:
        stmt = self._event_filter(
            select(PaymentModel.status, func.count(PaymentModel.id), func.sum(PaymentModel.amount)),
            event_id,
        ).group_by(PaymentModel.status)
        result = await self.session.execute(stmt)

        stats = PaymentStats(event_id=event_id)
        for status, count, amount in result.all():
            status = PaymentStatus(status)
            stats.counts[status] = int(count)
            if status.is_settled and amount is not None:
                stats.settled_amount += Decimal(str(amount))
        return stats

    async def find_settled_for_event(self, user_id: str, event_id: str) -> Optional[Payment]:
        result = await self.session.execute(
            select(PaymentModel)
            .where(
                PaymentModel.user_id == user_id,
                PaymentModel.event_id == event_id,
                PaymentModel.status.in_([s.value for s in SETTLED_STATUSES]),
            )
            .order_by(PaymentModel.updated_at.desc())
        )
        db_payment = result.scalars().first()
        return self._to_entity(db_payment) if db_payment else None

    async def list_stale(
        self,
        statuses: Iterable[PaymentStatus],
        created_before: datetime,
        limit: int = 100,
    ) -> List[Payment]:
        result = await self.session.execute(
            select(PaymentModel)
            .where(
                PaymentModel.status.in_([s.value for s in statuses]),
                PaymentModel.created_at < created_before,
            )
            .order_by(PaymentModel.created_at.asc())
            .limit(limit)
        )
        return [self._to_entity(p) for p in result.scalars().all()]

    async def attach_gateway_order(self, payment_id: str, gateway_order_id: str) -> Payment:
        await self.session.execute(
            update(PaymentModel)
            .where(PaymentModel.id == payment_id)
            .values(
                gateway_order_id=gateway_order_id,
                transaction_id=gateway_order_id,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        db_payment = await self._load(payment_id)
        if db_payment is None:
            raise ValueError(f"Payment with id {payment_id} not found")
        logger.info("payment_gateway_order_attached", payment_id=payment_id, gateway_order_id=gateway_order_id)
        return self._to_entity(db_payment)

    def _transition_values(
        self,
        current: PaymentModel,
        target: PaymentStatus,
        changes: PaymentChanges,
    ) -> dict[str, Any]:
        now = utcnow()
        values: dict[str, Any] = {"status": target.value, "updated_at": now}
        stamp = _STATUS_TIMESTAMP.get(target)
        if stamp:
            values[stamp] = changes.occurred_at or now
        if changes.transaction_id is not None:
            values["transaction_id"] = changes.transaction_id
        if changes.gateway_order_id is not None and current.gateway_order_id is None:
            values["gateway_order_id"] = changes.gateway_order_id
        if changes.gateway_payment_id is not None:
            values["gateway_payment_id"] = changes.gateway_payment_id
        if changes.gateway_response is not None:
            merged = dict(current.gateway_response or {})
            merged.update(changes.gateway_response)
            values["gateway_response"] = merged
        if changes.failure_reason is not None:
            values["failure_reason"] = changes.failure_reason
        return values

    async def transition(
        self,
        payment_id: str,
        target: PaymentStatus,
        changes: PaymentChanges,
        only_from: Optional[Iterable[PaymentStatus]] = None,
    ) -> Optional[Transition]:
        sources = frozenset(only_from) if only_from is not None else None
        for attempt in range(1, _CAS_ATTEMPTS + 1):
            current = await self._load(payment_id)
            if current is None:
                return None

            previous = PaymentStatus(current.status)
            if not previous.can_transition_to(target) or (sources is not None and previous not in sources):
                logger.info(
                    "payment_transition_skipped",
                    payment_id=payment_id,
                    current_status=previous.value,
                    target_status=target.value,
                )
                return Transition(payment=self._to_entity(current), previous_status=previous, applied=False)

            result = await self.session.execute(
                update(PaymentModel)
                .where(PaymentModel.id == payment_id, PaymentModel.status == previous.value)
                .values(**self._transition_values(current, target, changes))
                .returning(PaymentModel.id)
                .execution_options(synchronize_session=False)
            )
            if result.scalar_one_or_none() is not None:
                updated = await self._load(payment_id)
                logger.info(
                    "payment_transition_applied",
                    payment_id=payment_id,
                    from_status=previous.value,
                    to_status=target.value,
                )
                return Transition(payment=self._to_entity(updated), previous_status=previous, applied=True)

            logger.info(
                "payment_transition_conflict",
                payment_id=payment_id,
                expected_status=previous.value,
                attempt=attempt,
            )

        current = await self._load(payment_id)
        logger.warning(
            "payment_transition_gave_up",
            payment_id=payment_id,
            target_status=target.value,
            current_status=current.status if current else None,
        )
        if current is None:
            return None
        return Transition(
            payment=self._to_entity(current),
            previous_status=PaymentStatus(current.status),
            applied=False,
        )

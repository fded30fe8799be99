"""
Application service orchestrating the client-facing payment use-cases.

This class depends only on the application PaymentGateway port, the unit of
work and DTOs. Gateway implementations are provided by infrastructure and
injected from the composition root (API/tasks) through a resolver.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable, List, Optional, Tuple

from application.dtos.payments import (
    CreateGatewayOrder,
    CreateGatewaySession,
    CreateOrderRequest,
    CreateOrderResult,
    CreateSessionRequest,
    CustomerDetails,
    EventPaymentStatusDTO,
    GatewayOrder,
    PaymentDTO,
    PaymentSessionDTO,
    PaymentStatsDTO,
    VerifyPaymentRequest,
)
from application.ports.payment_gateway import PaymentGateway
from application.services.settlement import PaymentSettlement
from core.exceptions import UnauthorizedException
from core.logging_config import get_logger
from domain.common.exceptions import TeamNotFoundException
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.payment.entity import Payment, PaymentChanges, PaymentStatus
from domain.payment.exceptions import (
    PaymentInProgressException,
    PaymentNotFoundException,
    PaymentNotPayableException,
    PaymentProviderError,
    PaymentRecoverableError,
    PaymentSessionError,
    PaymentValidationException,
    PaymentVerificationException,
)


logger = get_logger(__name__)

GatewayResolver = Callable[[Optional[str]], PaymentGateway]

SUPERSEDED_REASON = "Superseded by a newer checkout"


class PaymentApplicationService:
    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        gateway_resolver: GatewayResolver,
        settlement: PaymentSettlement,
        *,
        default_provider: str = "razorpay",
        order_reuse_seconds: int = 1800,
    ) -> None:
        self._uow_factory = uow_factory
        self._gateways = gateway_resolver
        self._settlement = settlement
        self._default_provider = default_provider
        self._order_reuse_seconds = order_reuse_seconds

    def _gateway(self, provider: Optional[str]) -> PaymentGateway:
        try:
            return self._gateways(provider or self._default_provider)
        except ValueError as exc:
            raise PaymentValidationException(str(exc), field="provider") from exc

    async def create_order(self, user_id: Optional[str], req: CreateOrderRequest) -> CreateOrderResult:
        """Start (or resume) a checkout for a team's registration fee.

        The payment row is committed in pending before the gateway is called,
        so a gateway outage leaves a pending attempt for reconciliation
        instead of an untracked gateway order.
        """
        if not user_id:
            raise UnauthorizedException()

        missing = [
            name
            for name, value in (("team_id", req.team_id), ("event_id", req.event_id), ("amount", req.amount))
            if not value
        ]
        if missing:
            raise PaymentValidationException("Missing required order data", missing=missing)
        if req.amount <= 0:
            raise PaymentValidationException("Amount must be greater than zero", field="amount")

        gateway = self._gateway(req.provider)
        provider = gateway.provider

        async with self._uow_factory(readonly=True) as uow:
            team = await uow.team_repository.get_by_id(req.team_id)
            if team is None:
                raise TeamNotFoundException(req.team_id)
            if team.event_id and team.event_id != req.event_id:
                raise PaymentValidationException("Team is not registered for this event", field="event_id")
            attempts = await uow.payment_repository.list_by_team(req.team_id)
            open_attempt = await uow.payment_repository.get_open_for_team(req.team_id, req.event_id)

        settled = next(
            (p for p in attempts if p.event_id == req.event_id and p.status.is_settled),
            None,
        )
        if settled is not None:
            raise PaymentNotPayableException(settled.id, settled.status.value)

        if open_attempt is not None and open_attempt.status == PaymentStatus.AUTHORIZED:
            # money is held for that attempt; only capture, failure or expiry may close it
            logger.info("payment_order_blocked", payment_id=open_attempt.id, team_id=open_attempt.team_id)
            raise PaymentInProgressException(req.team_id, req.event_id)

        pending = open_attempt
        if pending is not None:
            if self._reusable(pending, req, provider):
                logger.info("payment_order_reused", payment_id=pending.id, team_id=pending.team_id)
                return CreateOrderResult(
                    order=GatewayOrder(
                        order_id=pending.gateway_order_id,
                        provider=provider,
                        amount=pending.amount,
                        currency=pending.currency,
                        status="created",
                        receipt=pending.id,
                    ),
                    payment=PaymentDTO.from_entity(pending),
                    reused=True,
                )
            superseded = await self._settlement.apply(
                pending.id,
                PaymentStatus.EXPIRED,
                PaymentChanges(failure_reason=SUPERSEDED_REASON),
                source="checkout",
                only_from={PaymentStatus.PENDING},
            )
            if superseded is not None and not superseded.applied:
                # the gateway moved the attempt on between our read and the update
                current = superseded.payment.status
                if current.is_settled:
                    raise PaymentNotPayableException(pending.id, current.value)
                if current == PaymentStatus.AUTHORIZED:
                    raise PaymentInProgressException(req.team_id, req.event_id)
            logger.info("payment_order_superseded", payment_id=pending.id, team_id=pending.team_id)

        payment = Payment.new(
            user_id=user_id,
            team_id=req.team_id,
            event_id=req.event_id,
            amount=req.amount,
            currency=req.currency,
            payment_method=provider,
        )
        async with self._uow_factory() as uow:
            payment = await uow.payment_repository.create(payment)

        customer = req.customer or CustomerDetails()
        if not customer.customer_id:
            customer = customer.model_copy(update={"customer_id": user_id})
        try:
            order = await gateway.create_order(
                CreateGatewayOrder(
                    receipt=payment.id,
                    amount=payment.amount,
                    currency=payment.currency,
                    notes={
                        "team_id": payment.team_id,
                        "event_id": payment.event_id,
                        "payment_id": payment.id,
                    },
                    customer=customer,
                )
            )
        except (PaymentProviderError, PaymentRecoverableError) as exc:
            # the row stays pending; reconciliation expires it
            logger.error(
                "payment_gateway_order_failed",
                payment_id=payment.id,
                provider=provider,
                error=exc.message,
            )
            raise

        async with self._uow_factory() as uow:
            payment = await uow.payment_repository.attach_gateway_order(payment.id, order.order_id)
        return CreateOrderResult(order=order, payment=PaymentDTO.from_entity(payment), reused=False)

    def _reusable(self, pending: Payment, req: CreateOrderRequest, provider: str) -> bool:
        return (
            bool(pending.gateway_order_id)
            and pending.payment_method == provider
            and pending.amount == req.amount
            and pending.currency == req.currency
            and pending.age_seconds() < self._order_reuse_seconds
        )

    async def create_payment_session(self, user_id: Optional[str], req: CreateSessionRequest) -> PaymentSessionDTO:
        if not user_id:
            raise UnauthorizedException()
        if not req.order_id:
            raise PaymentValidationException("Missing order id", missing=["order_id"])

        payment = await self._owned_by_order(user_id, req.order_id)
        if payment.status.is_terminal:
            raise PaymentNotPayableException(payment.id, payment.status.value)

        gateway = self._gateway(payment.payment_method)
        try:
            session = await gateway.create_session(
                CreateGatewaySession(
                    order_id=req.order_id,
                    amount=payment.amount,
                    currency=payment.currency,
                    receipt=payment.id,
                    customer=req.customer,
                )
            )
        except PaymentSessionError:
            raise
        except (PaymentProviderError, PaymentRecoverableError) as exc:
            logger.error("payment_session_failed", payment_id=payment.id, error=exc.message)
            raise PaymentSessionError(exc.message, provider=gateway.provider, order_id=req.order_id) from exc
        logger.info("payment_session_created", payment_id=payment.id, provider=gateway.provider)
        return session

    async def verify_payment(self, user_id: Optional[str], req: VerifyPaymentRequest) -> PaymentDTO:
        """Confirm a checkout result reported by the browser.

        Applies the same paid transition as the payment.captured webhook,
        so the two paths converge whichever arrives first.
        """
        if not user_id:
            raise UnauthorizedException()
        missing = [
            name
            for name, value in (
                ("payment_id", req.payment_id),
                ("order_id", req.order_id),
                ("signature", req.signature),
            )
            if not value
        ]
        if missing:
            raise PaymentValidationException("Missing payment verification data", missing=missing)

        payment = await self._owned_by_order(user_id, req.order_id)
        gateway = self._gateway(payment.payment_method)
        verified = await gateway.verify_checkout(
            order_id=req.order_id,
            payment_id=req.payment_id,
            signature=req.signature,
        )
        if not verified:
            logger.warning("payment_verification_failed", payment_id=payment.id, provider=gateway.provider)
            raise PaymentVerificationException(provider=gateway.provider)

        verified_at = datetime.now(timezone.utc)
        changes = PaymentChanges(
            transaction_id=req.payment_id,
            gateway_payment_id=req.payment_id,
            gateway_response={
                "verification": {
                    "gateway_payment_id": req.payment_id,
                    "gateway_order_id": req.order_id,
                    "verified_at": verified_at.isoformat(),
                }
            },
            occurred_at=verified_at,
        )
        transition = await self._settlement.apply_to_order(
            req.order_id, PaymentStatus.PAID, changes, source="verification"
        )
        if transition is None:
            raise PaymentNotFoundException(req.order_id)
        logger.info(
            "payment_verified",
            payment_id=transition.payment.id,
            applied=transition.applied,
            status=transition.payment.status.value,
        )
        return PaymentDTO.from_entity(transition.payment)

    async def _owned_by_order(self, user_id: str, order_id: str) -> Payment:
        async with self._uow_factory(readonly=True) as uow:
            payment = await uow.payment_repository.get_by_gateway_order_id(order_id)
        if payment is None or payment.user_id != user_id:
            raise PaymentNotFoundException(order_id)
        return payment

    async def get_payment(self, user_id: Optional[str], payment_id: str) -> PaymentDTO:
        if not user_id:
            raise UnauthorizedException()
        async with self._uow_factory(readonly=True) as uow:
            payment = await uow.payment_repository.get_by_id(payment_id)
        if payment is None or payment.user_id != user_id:
            raise PaymentNotFoundException(payment_id)
        return PaymentDTO.from_entity(payment)

    async def list_payments(
        self, user_id: Optional[str], skip: int = 0, limit: int = 100
    ) -> Tuple[List[PaymentDTO], int]:
        """Caller's payments, newest first, with the total count."""
        if not user_id:
            raise UnauthorizedException()
        async with self._uow_factory(readonly=True) as uow:
            payments = await uow.payment_repository.list_by_user(user_id, skip, limit)
            total = await uow.payment_repository.count_by_user(user_id)
        return [PaymentDTO.from_entity(p) for p in payments], int(total)

    async def check_event_payment(self, user_id: Optional[str], event_id: str) -> EventPaymentStatusDTO:
        if not user_id:
            raise UnauthorizedException()
        async with self._uow_factory(readonly=True) as uow:
            payment = await uow.payment_repository.find_settled_for_event(user_id, event_id)
        return EventPaymentStatusDTO(
            event_id=event_id,
            has_paid=payment is not None,
            payment=PaymentDTO.from_entity(payment) if payment else None,
        )

    async def list_all_payments(
        self, skip: int = 0, limit: int = 100, event_id: Optional[str] = None
    ) -> Tuple[List[PaymentDTO], int]:
        """Every user's payments for the admin panel, newest first. Callers check the admin role."""
        async with self._uow_factory(readonly=True) as uow:
            payments = await uow.payment_repository.list_all(skip, limit, event_id)
            total = await uow.payment_repository.count_all(event_id)
        return [PaymentDTO.from_entity(p) for p in payments], int(total)

    async def payment_stats(self, event_id: Optional[str] = None) -> PaymentStatsDTO:
        async with self._uow_factory(readonly=True) as uow:
            stats = await uow.payment_repository.payment_stats(event_id)
        return PaymentStatsDTO.from_stats(stats)

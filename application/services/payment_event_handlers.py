"""
Handlers for verified gateway events.

Each handler returns a ProcessingResult instead of raising; the payment is
looked up by its gateway order id and the webhook never creates payments.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from core.logging_config import get_logger
from application.dtos.payments import ErrorKind, ProcessingResult, WebhookEvent
from application.services.settlement import PaymentSettlement
from domain.payment.entity import DEFAULT_FAILURE_REASON, PaymentChanges, PaymentStatus, Transition


logger = get_logger(__name__)

PAYMENT_NOT_FOUND = "Payment record not found"


def _from_epoch(value: Optional[int]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromtimestamp(value, tz=timezone.utc)


class PaymentEventHandlers:
    def __init__(self, settlement: PaymentSettlement) -> None:
        self._settlement = settlement

    async def on_payment_captured(self, event: WebhookEvent) -> ProcessingResult:
        entity = event.payment
        if entity is None or not entity.order_id:
            return self._missing_reference(event, "payment.entity.order_id")
        changes = PaymentChanges(
            transaction_id=entity.id,
            gateway_payment_id=entity.id,
            gateway_response={"payment": entity.model_dump(exclude_none=True)},
            occurred_at=_from_epoch(entity.created_at),
        )
        transition = await self._settlement.apply_to_order(
            entity.order_id, PaymentStatus.PAID, changes, source="webhook"
        )
        return self._result(event, entity.order_id, transition, "Payment captured")

    async def on_payment_failed(self, event: WebhookEvent) -> ProcessingResult:
        entity = event.payment
        if entity is None or not entity.order_id:
            return self._missing_reference(event, "payment.entity.order_id")
        changes = PaymentChanges(
            gateway_payment_id=entity.id,
            gateway_response={"payment": entity.model_dump(exclude_none=True)},
            failure_reason=entity.error_description or DEFAULT_FAILURE_REASON,
        )
        transition = await self._settlement.apply_to_order(
            entity.order_id, PaymentStatus.FAILED, changes, source="webhook"
        )
        return self._result(event, entity.order_id, transition, "Payment failure recorded")

    async def on_payment_authorized(self, event: WebhookEvent) -> ProcessingResult:
        entity = event.payment
        if entity is None or not entity.order_id:
            return self._missing_reference(event, "payment.entity.order_id")
        changes = PaymentChanges(
            transaction_id=entity.id,
            gateway_payment_id=entity.id,
            occurred_at=_from_epoch(entity.created_at),
        )
        transition = await self._settlement.apply_to_order(
            entity.order_id, PaymentStatus.AUTHORIZED, changes, source="webhook"
        )
        return self._result(event, entity.order_id, transition, "Payment authorized")

    async def on_order_paid(self, event: WebhookEvent) -> ProcessingResult:
        order = event.order
        if order is None or not order.id:
            return self._missing_reference(event, "order.entity.id")
        response = {"order": order.model_dump(exclude_none=True)}
        payment_id = None
        if event.payment is not None and event.payment.id:
            payment_id = event.payment.id
            response["payment"] = event.payment.model_dump(exclude_none=True)
        changes = PaymentChanges(
            transaction_id=payment_id,
            gateway_payment_id=payment_id,
            gateway_response=response,
        )
        transition = await self._settlement.apply_to_order(
            order.id, PaymentStatus.COMPLETED, changes, source="webhook"
        )
        return self._result(event, order.id, transition, "Order marked as paid")

    def _missing_reference(self, event: WebhookEvent, path: str) -> ProcessingResult:
        logger.warning("webhook_reference_missing", event_type=event.type, provider=event.provider, path=path)
        return ProcessingResult.fail(ErrorKind.INVALID_PAYLOAD, f"Webhook payload is missing {path}")

    def _result(
        self,
        event: WebhookEvent,
        order_id: str,
        transition: Optional[Transition],
        message: str,
    ) -> ProcessingResult:
        if transition is None:
            logger.warning(
                "webhook_payment_not_found",
                alert=True,
                event_type=event.type,
                provider=event.provider,
                order_id=order_id,
            )
            return ProcessingResult.fail(ErrorKind.NOT_FOUND, PAYMENT_NOT_FOUND)

        payment = transition.payment
        if not transition.applied:
            return ProcessingResult.ok(
                f"Payment already {payment.status.value}; {event.type} skipped",
                payment_id=payment.id,
            )
        logger.info(
            "webhook_event_applied",
            event_type=event.type,
            provider=event.provider,
            payment_id=payment.id,
            status=payment.status.value,
        )
        return ProcessingResult.ok(message, payment_id=payment.id)

"""
Webhook intake: verify, normalize, de-duplicate, dispatch.
"""
from __future__ import annotations

from typing import Any, Awaitable, Callable, Mapping

from core.logging_config import get_logger
from application.dtos.payments import ErrorKind, ProcessingResult, WebhookEvent
from application.ports.payment_gateway import PaymentGateway
from application.services.payment_event_handlers import PaymentEventHandlers
from domain.common.exceptions import DatabaseException
from domain.common.unit_of_work import AbstractUnitOfWork


logger = get_logger(__name__)

Handler = Callable[[WebhookEvent], Awaitable[ProcessingResult]]


class WebhookEventRouter:
    """Dispatches verified events by type; handler exceptions become failed results."""

    def __init__(self, handlers: PaymentEventHandlers) -> None:
        self._routes: dict[str, Handler] = {
            "payment.captured": handlers.on_payment_captured,
            "payment.failed": handlers.on_payment_failed,
            "payment.authorized": handlers.on_payment_authorized,
            "order.paid": handlers.on_order_paid,
        }

    @property
    def event_types(self) -> frozenset[str]:
        return frozenset(self._routes)

    async def route(self, event: WebhookEvent) -> ProcessingResult:
        handler = self._routes.get(event.type)
        if handler is None:
            logger.info("webhook_event_ignored", event_type=event.type, provider=event.provider)
            return ProcessingResult.ok(
                f"Event {event.type} acknowledged but not processed",
                event_type=event.type,
            )

        try:
            result = await handler(event)
        except DatabaseException as exc:
            logger.error("webhook_handler_database_error", event_type=event.type, error=str(exc))
            result = ProcessingResult.fail(ErrorKind.DATABASE, exc.message)
        except Exception as exc:
            logger.error(
                "webhook_handler_failed",
                event_type=event.type,
                provider=event.provider,
                error=str(exc),
                exc_info=True,
            )
            result = ProcessingResult.fail(ErrorKind.INTERNAL, str(exc) or exc.__class__.__name__)
        result.event_type = event.type
        return result


class WebhookService:
    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        router: WebhookEventRouter,
    ) -> None:
        self._uow_factory = uow_factory
        self._router = router

    async def ingest(
        self,
        gateway: PaymentGateway,
        headers: Mapping[str, Any],
        body: bytes,
    ) -> ProcessingResult:
        """Process one delivery.

        Raises PaymentSignatureError before anything is read or written when
        the signature does not verify, and WebhookPayloadError when a signed
        body cannot be normalized. Everything after that is reported through
        the returned ProcessingResult.
        """
        event = gateway.parse_webhook(headers, body)
        logger.info(
            "payment_webhook_parsed",
            provider=event.provider,
            event_type=event.type,
            event_key=event.key,
        )

        async with self._uow_factory(readonly=True) as uow:
            seen = await uow.webhook_event_repository.exists(event.key)
        if seen:
            logger.info("webhook_duplicate_ignored", provider=event.provider, event_type=event.type, event_key=event.key)
            return ProcessingResult.ok("Event already processed", event_type=event.type, duplicate=True)

        result = await self._router.route(event)

        # failed deliveries stay unrecorded so the gateway's retry is processed again;
        # ignored event types leave no trace at all
        if result.success and event.type in self._router.event_types:
            await self._remember(event)
        return result

    async def _remember(self, event: WebhookEvent) -> None:
        try:
            async with self._uow_factory() as uow:
                await uow.webhook_event_repository.record(
                    event.key, provider=event.provider, event_type=event.type
                )
        except DatabaseException as exc:
            logger.error("webhook_event_record_failed", event_key=event.key, error=exc.message)

"""
Payment gateway port (application/ports) exposing a replaceable protocol.

Application depends on this Protocol; infrastructure implements adapters.
"""
from __future__ import annotations

from typing import Any, Mapping, Protocol, runtime_checkable

from application.dtos.payments import (
    CreateGatewayOrder,
    CreateGatewaySession,
    GatewayOrder,
    PaymentSessionDTO,
    WebhookEvent,
)


@runtime_checkable
class PaymentGateway(Protocol):
    """Gateway protocol for third-party payment providers.

    Implementations should be async and side-effect free beyond IO.
    """

    provider: str

    async def create_order(self, req: CreateGatewayOrder) -> GatewayOrder: ...

    async def create_session(self, req: CreateGatewaySession) -> PaymentSessionDTO: ...

    async def fetch_order(self, order_id: str) -> GatewayOrder: ...

    async def verify_checkout(self, *, order_id: str, payment_id: str, signature: str) -> bool: ...

    def parse_webhook(self, headers: Mapping[str, Any], body: bytes) -> WebhookEvent: ...

    async def aclose(self) -> None: ...

"""
Factory and registry for payment gateway clients.
"""
from __future__ import annotations

from typing import Optional

import httpx

from core.logging_config import get_logger
from core.settings import PaymentSettings, payment_settings
from application.ports.payment_gateway import PaymentGateway


logger = get_logger(__name__)

SUPPORTED_PROVIDERS = ("razorpay", "cashfree")


def get_payment_gateway(
    provider: Optional[str] = None,
    *,
    settings: Optional[PaymentSettings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> PaymentGateway:
    cfg = settings or payment_settings
    name = (provider or cfg.default_provider).lower()
    if name == "razorpay":
        from .razorpay_client import RazorpayClient
        return RazorpayClient(cfg.razorpay, timeouts=cfg.timeouts, retry=cfg.retry, transport=transport)
    if name == "cashfree":
        from .cashfree_client import CashfreeClient
        return CashfreeClient(cfg.cashfree, timeouts=cfg.timeouts, retry=cfg.retry, transport=transport)
    raise ValueError(f"Unsupported payment provider: {name}")


class GatewayRegistry:
    """One long-lived client per provider, created on first use.

    Callable as a gateway resolver: ``registry("cashfree")``. Unknown
    providers raise ValueError.
    """

    def __init__(
        self,
        settings: Optional[PaymentSettings] = None,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._settings = settings or payment_settings
        self._transport = transport
        self._clients: dict[str, PaymentGateway] = {}

    @property
    def default_provider(self) -> str:
        return self._settings.default_provider

    def is_supported(self, provider: str) -> bool:
        return provider.lower() in SUPPORTED_PROVIDERS

    def __call__(self, provider: Optional[str] = None) -> PaymentGateway:
        name = (provider or self._settings.default_provider).lower()
        client = self._clients.get(name)
        if client is None:
            client = get_payment_gateway(name, settings=self._settings, transport=self._transport)
            self._clients[name] = client
        return client

    async def aclose(self) -> None:
        for name, client in list(self._clients.items()):
            try:
                await client.aclose()
            except httpx.HTTPError as exc:
                logger.warning("payment_gateway_close_failed", provider=name, error=str(exc))
        self._clients.clear()


__all__ = ["SUPPORTED_PROVIDERS", "GatewayRegistry", "get_payment_gateway"]

"""
Base payment client implementing shared concerns: http, retry, logging, mapping.

Concrete providers should subclass and implement provider-specific logic.
"""
from __future__ import annotations

import hashlib
import json
from decimal import Decimal
from typing import Any, Callable, Mapping, Optional
from contextlib import asynccontextmanager

import httpx
from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential, retry_if_exception_type

from core.logging_config import get_logger
from core.settings import PaymentRetry, PaymentTimeouts
from domain.payment.exceptions import (
    PaymentProviderError,
    PaymentRecoverableError,
    WebhookPayloadError,
)
from shared.codes.payment_codes import PROVIDER_STATUS_TO_INTERNAL


logger = get_logger(__name__)


class BasePaymentClient:
    provider: str = "base"

    def __init__(
        self,
        *,
        base_url: str,
        timeouts: Optional[PaymentTimeouts] = None,
        retry: Optional[PaymentRetry] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeouts_cfg = timeouts or PaymentTimeouts()
        self._retry_cfg = retry or PaymentRetry()
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def timeouts(self) -> httpx.Timeout:
        return httpx.Timeout(
            connect=self._timeouts_cfg.connect,
            read=self._timeouts_cfg.read,
            write=self._timeouts_cfg.write,
            pool=self._timeouts_cfg.total,
        )

    @asynccontextmanager
    async def client(self):
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self.timeouts,
                transport=self._transport,
            )
        try:
            yield self._client
        finally:
            # Keep open for reuse; explicit aclose() will close.
            ...

    async def aclose(self) -> None:
        """Close underlying HTTP client if created."""
        if self._client is not None:
            try:
                await self._client.aclose()
            finally:
                self._client = None

    async def _retry(self, fn: Callable[[], Any]):
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(int(self._retry_cfg.max) + 1),
            wait=wait_exponential(multiplier=self._retry_cfg.base_backoff, min=0.1, max=2.0),
            retry=retry_if_exception_type((httpx.TimeoutException, httpx.TransportError)),
            reraise=True,
        ):
            with attempt:
                return await fn()

    def _auth(self) -> Optional[httpx.Auth]:
        return None

    def _headers(self) -> dict[str, str]:
        return {}

    def _error_message(self, payload: Any, response: httpx.Response) -> tuple[str, Optional[str]]:
        """(message, provider_code) extracted from an error response body."""
        if isinstance(payload, dict):
            return str(payload.get("message") or response.reason_phrase), payload.get("code")
        return response.reason_phrase or f"HTTP {response.status_code}", None

    async def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        """Send one API call; transport errors are retried, HTTP errors are not."""

        async def send() -> httpx.Response:
            async with self.client() as http:
                return await http.request(method, path, auth=self._auth(), headers=self._headers(), **kwargs)

        try:
            response = await self._retry(send)
        except (httpx.TimeoutException, httpx.TransportError) as exc:
            self._log("payment_gateway_unreachable", method=method, path=path, error=str(exc))
            raise PaymentRecoverableError(
                f"{self.provider} is unreachable", provider=self.provider
            ) from exc

        try:
            payload = response.json()
        except ValueError:
            payload = None

        if response.status_code == 429 or response.status_code >= 500:
            message, code = self._error_message(payload, response)
            self._log("payment_gateway_unavailable", method=method, path=path, status_code=response.status_code)
            raise PaymentRecoverableError(message, provider=self.provider, provider_code=code)
        if response.status_code >= 400:
            message, code = self._error_message(payload, response)
            self._log(
                "payment_gateway_rejected",
                method=method,
                path=path,
                status_code=response.status_code,
                provider_code=code,
            )
            raise PaymentProviderError(message, provider=self.provider, provider_code=code)
        if not isinstance(payload, dict):
            raise PaymentProviderError("Unexpected gateway response", provider=self.provider)
        return payload

    # Helpers
    def _map_status(self, provider_status: str) -> str:
        mapping = PROVIDER_STATUS_TO_INTERNAL.get(self.provider, {})
        return mapping.get(provider_status, provider_status)

    @staticmethod
    def _to_minor(amount: Decimal) -> int:
        """Whole currency units -> paise/cents."""
        return int((Decimal(amount) * 100).to_integral_value())

    @staticmethod
    def _from_minor(amount: Optional[int]) -> Decimal:
        return (Decimal(amount or 0) / 100).quantize(Decimal("0.01"))

    @staticmethod
    def _header(headers: Mapping[str, Any], name: str) -> Optional[str]:
        lowered = name.lower()
        for key, value in headers.items():
            if key.lower() == lowered:
                return value
        return None

    def _decode_body(self, body: bytes) -> dict[str, Any]:
        try:
            data = json.loads(body)
        except (ValueError, UnicodeDecodeError) as exc:
            raise WebhookPayloadError("Webhook body is not valid JSON", provider=self.provider) from exc
        if not isinstance(data, dict):
            raise WebhookPayloadError("Webhook body must be a JSON object", provider=self.provider)
        return data

    def _event_key(self, headers: Mapping[str, Any], body: bytes, header_name: Optional[str] = None) -> str:
        """Delivery id header when the gateway sends one, else sha256 of the verified body."""
        if header_name:
            delivery_id = self._header(headers, header_name)
            if delivery_id:
                return f"{self.provider}:{delivery_id}"
        return f"{self.provider}:{hashlib.sha256(body).hexdigest()}"

    def _log(self, event: str, **kwargs) -> None:
        logger.info(
            event,
            provider=self.provider,
            **kwargs,
        )

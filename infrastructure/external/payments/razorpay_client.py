"""
Razorpay adapter over the REST API (https://api.razorpay.com/v1) using httpx.

- Orders API with HTTP basic auth (key id / key secret), amounts in paise
- Checkout is opened in the browser from an options bundle, so no server-side session exists
- Webhooks are signed with a dedicated webhook secret (X-Razorpay-Signature),
  checkout callbacks with the key secret over "<order_id>|<payment_id>"
"""
from __future__ import annotations

from typing import Any, Mapping, Optional

import httpx
from pydantic import ValidationError

from application.dtos.payments import (
    CreateGatewayOrder,
    CreateGatewaySession,
    GatewayOrder,
    OrderEntity,
    PaymentEntity,
    PaymentSessionDTO,
    WebhookEvent,
)
from core.settings import PaymentRetry, PaymentTimeouts, RazorpaySettings
from domain.payment.exceptions import (
    PaymentProviderError,
    PaymentSessionError,
    PaymentSignatureError,
    WebhookPayloadError,
)
from infrastructure.external.payments.base import BasePaymentClient
from infrastructure.external.payments.signature import verify_checkout_signature, verify_signature


SIGNATURE_HEADER = "X-Razorpay-Signature"
EVENT_ID_HEADER = "X-Razorpay-Event-Id"


class RazorpayClient(BasePaymentClient):
    provider = "razorpay"

    def __init__(
        self,
        config: RazorpaySettings,
        *,
        timeouts: Optional[PaymentTimeouts] = None,
        retry: Optional[PaymentRetry] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(base_url=config.api_base, timeouts=timeouts, retry=retry, transport=transport)
        self.config = config

    def _auth(self) -> Optional[httpx.Auth]:
        if not (self.config.key_id and self.config.key_secret):
            raise PaymentProviderError("Razorpay API credentials are not configured", provider=self.provider)
        return httpx.BasicAuth(self.config.key_id, self.config.key_secret)

    def _error_message(self, payload: Any, response: httpx.Response) -> tuple[str, Optional[str]]:
        error = payload.get("error") if isinstance(payload, dict) else None
        if isinstance(error, dict):
            return str(error.get("description") or response.reason_phrase), error.get("code")
        return super()._error_message(payload, response)

    def _to_order(self, data: dict[str, Any]) -> GatewayOrder:
        return GatewayOrder(
            order_id=str(data["id"]),
            provider=self.provider,
            amount=self._from_minor(data.get("amount")),
            currency=str(data.get("currency") or "INR"),
            status=self._map_status(str(data.get("status") or "created")),
            receipt=data.get("receipt"),
            raw=data,
        )

    async def create_order(self, req: CreateGatewayOrder) -> GatewayOrder:
        data = await self._request(
            "POST",
            "/orders",
            json={
                "amount": self._to_minor(req.amount),
                "currency": req.currency,
                "receipt": req.receipt,
                "notes": req.notes,
            },
        )
        order = self._to_order(data)
        self._log("payment_gateway_order_created", order_id=order.order_id, receipt=req.receipt)
        return order

    async def fetch_order(self, order_id: str) -> GatewayOrder:
        return self._to_order(await self._request("GET", f"/orders/{order_id}"))

    async def create_session(self, req: CreateGatewaySession) -> PaymentSessionDTO:
        if not self.config.key_id:
            raise PaymentSessionError(
                "Razorpay key id is not configured", provider=self.provider, order_id=req.order_id
            )
        customer = req.customer
        prefill = {
            "name": customer.name if customer else None,
            "email": customer.email if customer else None,
            "contact": customer.phone if customer else None,
        }
        return PaymentSessionDTO(
            provider=self.provider,
            order_id=req.order_id,
            checkout={
                "key": self.config.key_id,
                "order_id": req.order_id,
                "amount": self._to_minor(req.amount),
                "currency": req.currency,
                "name": self.config.checkout_name,
                "description": "Team registration fee",
                "prefill": {k: v for k, v in prefill.items() if v},
                "notes": {"receipt": req.receipt} if req.receipt else {},
            },
        )

    async def verify_checkout(self, *, order_id: str, payment_id: str, signature: str) -> bool:
        return verify_checkout_signature(order_id, payment_id, signature, self.config.key_secret)

    def parse_webhook(self, headers: Mapping[str, Any], body: bytes) -> WebhookEvent:
        signature = self._header(headers, SIGNATURE_HEADER)
        if not verify_signature(body, signature, self.config.webhook_secret):
            self._log("webhook_signature_rejected", has_signature=bool(signature))
            raise PaymentSignatureError("Invalid webhook signature", provider=self.provider)

        data = self._decode_body(body)
        event_type = data.get("event")
        if not isinstance(event_type, str) or not event_type:
            raise WebhookPayloadError("Webhook event type is missing", provider=self.provider)

        payload = data.get("payload") or {}
        if not isinstance(payload, dict):
            raise WebhookPayloadError("Webhook payload must be an object", provider=self.provider)

        try:
            payment = _entity(payload, "payment", PaymentEntity)
            order = _entity(payload, "order", OrderEntity)
        except ValidationError as exc:
            raise WebhookPayloadError(f"Malformed webhook entity: {exc.error_count()} error(s)", provider=self.provider) from exc

        created_at = data.get("created_at")
        return WebhookEvent(
            key=self._event_key(headers, body, EVENT_ID_HEADER),
            type=event_type,
            provider=self.provider,
            payment=payment,
            order=order,
            created_at=created_at if isinstance(created_at, int) else None,
        )


def _entity(payload: dict[str, Any], name: str, model):
    wrapper = payload.get(name)
    if not isinstance(wrapper, dict):
        return None
    entity = wrapper.get("entity")
    if not isinstance(entity, dict):
        return None
    return model.model_validate(entity)

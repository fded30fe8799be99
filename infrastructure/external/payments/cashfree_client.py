"""
Cashfree Payment Gateway adapter (PG API, x-api-version 2023-08-01) using httpx.

Webhook events are normalized onto the Razorpay-style event names the
handlers understand, so the rest of the pipeline is gateway agnostic.
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal, InvalidOperation
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
from core.settings import CashfreeSettings, PaymentRetry, PaymentTimeouts
from domain.payment.exceptions import (
    PaymentProviderError,
    PaymentSessionError,
    PaymentSignatureError,
    WebhookPayloadError,
)
from infrastructure.external.payments.base import BasePaymentClient
from infrastructure.external.payments.signature import verify_cashfree_signature


SIGNATURE_HEADER = "x-webhook-signature"
TIMESTAMP_HEADER = "x-webhook-timestamp"
IDEMPOTENCY_HEADER = "x-idempotency-key"

EVENT_TYPE_MAP = {
    "PAYMENT_SUCCESS_WEBHOOK": "payment.captured",
    "PAYMENT_FAILED_WEBHOOK": "payment.failed",
    "PAYMENT_USER_DROPPED_WEBHOOK": "payment.failed",
}

DEFAULT_CUSTOMER_NAME = "HackFest Participant"
DEFAULT_CUSTOMER_PHONE = "9999999999"


class CashfreeClient(BasePaymentClient):
    provider = "cashfree"

    def __init__(
        self,
        config: CashfreeSettings,
        *,
        timeouts: Optional[PaymentTimeouts] = None,
        retry: Optional[PaymentRetry] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(base_url=config.api_base, timeouts=timeouts, retry=retry, transport=transport)
        self.config = config

    def _headers(self) -> dict[str, str]:
        if not (self.config.app_id and self.config.secret_key):
            raise PaymentProviderError("Cashfree API credentials are not configured", provider=self.provider)
        return {
            "x-client-id": self.config.app_id,
            "x-client-secret": self.config.secret_key,
            "x-api-version": self.config.api_version,
        }

    def _to_order(self, data: dict[str, Any]) -> GatewayOrder:
        try:
            amount = Decimal(str(data.get("order_amount") or 0))
        except InvalidOperation:
            amount = Decimal("0")
        return GatewayOrder(
            order_id=str(data["order_id"]),
            provider=self.provider,
            amount=amount,
            currency=str(data.get("order_currency") or "INR"),
            status=self._map_status(str(data.get("order_status") or "ACTIVE")),
            session_id=data.get("payment_session_id"),
            raw=data,
        )

    async def create_order(self, req: CreateGatewayOrder) -> GatewayOrder:
        customer = req.customer
        customer_details = {
            "customer_id": (customer.customer_id if customer else None) or req.receipt,
            "customer_name": (customer.name if customer else None) or DEFAULT_CUSTOMER_NAME,
            "customer_email": customer.email if customer else None,
            "customer_phone": (customer.phone if customer else None) or DEFAULT_CUSTOMER_PHONE,
        }
        order_meta = {
            "return_url": self.config.return_url,
            "notify_url": self.config.notify_url,
        }
        data = await self._request(
            "POST",
            "/orders",
            json={
                # merchant order ids allow alphanumerics, "-" and "_"
                "order_id": f"order_{req.receipt.replace('-', '')}",
                "order_amount": float(req.amount),
                "order_currency": req.currency,
                "customer_details": {k: v for k, v in customer_details.items() if v},
                "order_meta": {k: v for k, v in order_meta.items() if v},
                "order_note": "Team registration",
                "order_tags": req.notes,
            },
        )
        order = self._to_order(data)
        order.receipt = req.receipt
        self._log("payment_gateway_order_created", order_id=order.order_id, receipt=req.receipt)
        return order

    async def fetch_order(self, order_id: str) -> GatewayOrder:
        return self._to_order(await self._request("GET", f"/orders/{order_id}"))

    async def create_session(self, req: CreateGatewaySession) -> PaymentSessionDTO:
        order = await self.fetch_order(req.order_id)
        if not order.session_id:
            raise PaymentSessionError(
                "Cashfree did not return a payment session", provider=self.provider, order_id=req.order_id
            )
        return PaymentSessionDTO(
            provider=self.provider,
            order_id=req.order_id,
            session_id=order.session_id,
            checkout={
                "paymentSessionId": order.session_id,
                "mode": "production" if "api.cashfree.com" in self.config.api_base else "sandbox",
                "returnUrl": self.config.return_url,
            },
        )

    async def verify_checkout(self, *, order_id: str, payment_id: str, signature: str) -> bool:
        """The browser result is not trusted; the order itself must report PAID."""
        order = await self.fetch_order(order_id)
        return order.status == "paid"

    def parse_webhook(self, headers: Mapping[str, Any], body: bytes) -> WebhookEvent:
        signature = self._header(headers, SIGNATURE_HEADER)
        timestamp = self._header(headers, TIMESTAMP_HEADER)
        if not verify_cashfree_signature(body, timestamp, signature, self.config.secret_key):
            self._log("webhook_signature_rejected", has_signature=bool(signature))
            raise PaymentSignatureError("Invalid webhook signature", provider=self.provider)

        data = self._decode_body(body)
        raw_type = data.get("type")
        if not isinstance(raw_type, str) or not raw_type:
            raise WebhookPayloadError("Webhook event type is missing", provider=self.provider)

        content = data.get("data") or {}
        if not isinstance(content, dict):
            raise WebhookPayloadError("Webhook data must be an object", provider=self.provider)

        order_data = content.get("order") if isinstance(content.get("order"), dict) else {}
        payment_data = content.get("payment") if isinstance(content.get("payment"), dict) else {}
        error_details = content.get("error_details") if isinstance(content.get("error_details"), dict) else {}

        try:
            payment = None
            if payment_data or order_data.get("order_id"):
                payment = PaymentEntity.model_validate({
                    "id": _str_or_none(payment_data.get("cf_payment_id")),
                    "order_id": _str_or_none(order_data.get("order_id")),
                    "amount": self._amount_minor(payment_data.get("payment_amount")),
                    "currency": payment_data.get("payment_currency"),
                    "status": payment_data.get("payment_status"),
                    "method": payment_data.get("payment_group"),
                    "error_code": _str_or_none(error_details.get("error_code")),
                    "error_description": error_details.get("error_description") or payment_data.get("payment_message"),
                    "created_at": _epoch(payment_data.get("payment_time")),
                    "cashfree": content,
                })
            order = OrderEntity.model_validate({"id": _str_or_none(order_data.get("order_id"))}) if order_data else None
        except ValidationError as exc:
            raise WebhookPayloadError(f"Malformed webhook entity: {exc.error_count()} error(s)", provider=self.provider) from exc

        return WebhookEvent(
            key=self._event_key(headers, body, IDEMPOTENCY_HEADER),
            type=EVENT_TYPE_MAP.get(raw_type, raw_type),
            provider=self.provider,
            payment=payment,
            order=order,
            created_at=_epoch(data.get("event_time")),
        )

    def _amount_minor(self, value: Any) -> Optional[int]:
        if value is None:
            return None
        try:
            return self._to_minor(Decimal(str(value)))
        except InvalidOperation:
            return None


def _str_or_none(value: Any) -> Optional[str]:
    return None if value is None else str(value)


def _epoch(value: Any) -> Optional[int]:
    if not isinstance(value, str) or not value:
        return None
    try:
        return int(datetime.fromisoformat(value).timestamp())
    except ValueError:
        return None

from decimal import Decimal

from infrastructure.external.payments.base import BasePaymentClient


class _MapClient(BasePaymentClient):
    provider = "cashfree"


def _client() -> _MapClient:
    return _MapClient(base_url="https://sandbox.cashfree.com/pg")


def test_provider_status_mapping():
    c = _client()
    assert c._map_status("PAID") == "paid"
    assert c._map_status("ACTIVE") == "created"
    assert c._map_status("TERMINATED") == "expired"
    assert c._map_status("SOMETHING_NEW") == "SOMETHING_NEW"


def test_minor_unit_conversion():
    assert BasePaymentClient._to_minor(Decimal("400")) == 40000
    assert BasePaymentClient._to_minor(Decimal("12.34")) == 1234
    assert BasePaymentClient._from_minor(40000) == Decimal("400.00")
    assert BasePaymentClient._from_minor(None) == Decimal("0.00")


def test_header_lookup_is_case_insensitive():
    assert BasePaymentClient._header({"x-webhook-signature": "abc"}, "X-Webhook-Signature") == "abc"
    assert BasePaymentClient._header({}, "X-Webhook-Signature") is None


def test_event_key_prefers_delivery_header():
    c = _client()
    assert c._event_key({"x-idempotency-key": "evt_9"}, b"{}", "x-idempotency-key") == "cashfree:evt_9"
    body_key = c._event_key({}, b"{}", "x-idempotency-key")
    assert body_key.startswith("cashfree:") and len(body_key) == len("cashfree:") + 64
    assert c._event_key({}, b"{}", "x-idempotency-key") == body_key

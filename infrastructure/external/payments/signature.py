"""
HMAC signature helpers for gateway webhooks and checkout callbacks.

All checks run over the exact bytes the gateway signed and fail closed:
no secret, no signature or any mismatch yields False.
"""
from __future__ import annotations

import base64
import hashlib
import hmac
from typing import Optional, Union


def _as_bytes(value: Union[str, bytes]) -> bytes:
    return value if isinstance(value, bytes) else value.encode("utf-8")


def compute_signature(raw_body: bytes, secret: str) -> str:
    """Hex HMAC-SHA256 of raw_body."""
    return hmac.new(_as_bytes(secret), _as_bytes(raw_body), hashlib.sha256).hexdigest()


def verify_signature(raw_body: bytes, signature: Optional[str], secret: Optional[str]) -> bool:
    if not secret or not signature:
        return False
    expected = compute_signature(raw_body, secret)
    return hmac.compare_digest(expected.encode("ascii"), _as_bytes(signature))


def verify_checkout_signature(
    order_id: Optional[str],
    payment_id: Optional[str],
    signature: Optional[str],
    secret: Optional[str],
) -> bool:
    """Razorpay checkout handler signature over "<order_id>|<payment_id>"."""
    if not order_id or not payment_id:
        return False
    return verify_signature(f"{order_id}|{payment_id}".encode("utf-8"), signature, secret)


def compute_cashfree_signature(raw_body: bytes, timestamp: str, secret: str) -> str:
    digest = hmac.new(_as_bytes(secret), _as_bytes(timestamp) + _as_bytes(raw_body), hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


def verify_cashfree_signature(
    raw_body: bytes,
    timestamp: Optional[str],
    signature: Optional[str],
    secret: Optional[str],
) -> bool:
    """Cashfree webhook signature: base64(HMAC-SHA256(timestamp + body))."""
    if not secret or not signature or not timestamp:
        return False
    expected = compute_cashfree_signature(raw_body, timestamp, secret)
    return hmac.compare_digest(expected.encode("ascii"), _as_bytes(signature))

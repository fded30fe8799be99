"""
Payment specific codes and provider status mapping.
"""
from __future__ import annotations

from enum import IntEnum


class PaymentCode(IntEnum):
    # Generic success
    SUCCESS = 0

    # Record/lifecycle errors (2xxxx, business range)
    PAYMENT_NOT_FOUND = 20100
    PAYMENT_IN_PROGRESS = 20101
    PAYMENT_NOT_PAYABLE = 20102
    VALIDATION_ERROR = 20103

    # Provider/Network errors (6xxxx)
    PROVIDER_ERROR = 60000
    PROVIDER_RECOVERABLE = 60001
    SIGNATURE_ERROR = 60002
    SESSION_ERROR = 60003
    VERIFICATION_FAILED = 60004


# Gateway order status -> internal order status ("created" | "attempted" | "paid" | "expired")
PROVIDER_STATUS_TO_INTERNAL = {
    "razorpay": {
        "created": "created",
        "attempted": "attempted",
        "paid": "paid",
    },
    "cashfree": {
        "ACTIVE": "created",
        "PAID": "paid",
        "EXPIRED": "expired",
        "TERMINATED": "expired",
        "TERMINATION_REQUESTED": "expired",
    },
}

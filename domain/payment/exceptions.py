"""
Payment exceptions mapped onto the unified BusinessException hierarchy.

Record/lifecycle errors are raised by the application layer; provider errors
are raised by gateway adapters and bubble up unchanged to the API layer.
"""
from __future__ import annotations

from typing import Iterable, Optional

from domain.common.exceptions import BusinessException
from shared.codes import BusinessCode
from shared.codes.payment_codes import PaymentCode


class PaymentValidationException(BusinessException):
    """Missing or malformed input, raised before any database or gateway call."""

    def __init__(self, message: str, *, missing: Iterable[str] = (), field: Optional[str] = None):
        missing = list(missing)
        super().__init__(
            code=PaymentCode.VALIDATION_ERROR,
            message=message,
            error_type="PaymentValidationError",
            details={"missing": missing} if missing else None,
            field=field or (missing[0] if missing else None),
        )


class PaymentNotFoundException(BusinessException):
    def __init__(self, identifier: str):
        super().__init__(
            code=PaymentCode.PAYMENT_NOT_FOUND,
            message="Payment record not found",
            error_type="PaymentNotFound",
            details={"reference": identifier},
        )


class PaymentInProgressException(BusinessException):
    """Another checkout for the same team/event is still open (pending or authorized)."""

    def __init__(self, team_id: str, event_id: str):
        super().__init__(
            code=PaymentCode.PAYMENT_IN_PROGRESS,
            message="A payment for this team is already in progress",
            error_type="PaymentInProgress",
            details={"team_id": team_id, "event_id": event_id},
        )


class PaymentNotPayableException(BusinessException):
    def __init__(self, payment_id: str, status: str):
        super().__init__(
            code=PaymentCode.PAYMENT_NOT_PAYABLE,
            message=f"Payment is already {status}",
            error_type="PaymentNotPayable",
            details={"payment_id": payment_id, "status": status},
        )


class PaymentVerificationException(BusinessException):
    def __init__(self, message: str = "Payment verification failed", *, provider: Optional[str] = None):
        super().__init__(
            code=PaymentCode.VERIFICATION_FAILED,
            message=message,
            error_type="PaymentVerificationError",
            details={"provider": provider} if provider else None,
        )


class PaymentProviderError(BusinessException):
    def __init__(self, message: str, *, provider: str, provider_code: str | None = None, details: Optional[dict] = None):
        full_details = {"provider": provider, "provider_code": provider_code}
        if details:
            full_details.update(details)
        super().__init__(
            code=PaymentCode.PROVIDER_ERROR,
            message=message,
            error_type="PaymentProviderError",
            details=full_details,
        )


class PaymentRecoverableError(BusinessException):
    """Transient provider failure (timeouts, rate limits, 5xx); the caller may retry later."""

    def __init__(self, message: str, *, provider: str, provider_code: str | None = None, details: Optional[dict] = None):
        full_details = {"provider": provider, "provider_code": provider_code}
        if details:
            full_details.update(details)
        super().__init__(
            code=PaymentCode.PROVIDER_RECOVERABLE,
            message=message,
            error_type="PaymentRecoverableError",
            details=full_details,
        )


class PaymentSessionError(BusinessException):
    def __init__(self, message: str, *, provider: str, order_id: Optional[str] = None):
        super().__init__(
            code=PaymentCode.SESSION_ERROR,
            message=message,
            error_type="PaymentSessionError",
            details={"provider": provider, "order_id": order_id},
        )


class PaymentSignatureError(BusinessException):
    def __init__(self, message: str, *, provider: str, details: Optional[dict] = None):
        full_details = {"provider": provider}
        if details:
            full_details.update(details)
        super().__init__(
            code=PaymentCode.SIGNATURE_ERROR,
            message=message,
            error_type="PaymentSignatureError",
            details=full_details,
        )


class WebhookPayloadError(BusinessException):
    """A correctly signed webhook body that cannot be parsed."""

    def __init__(self, message: str, *, provider: str):
        super().__init__(
            code=BusinessCode.PARAM_ERROR,
            message=message,
            error_type="WebhookPayloadError",
            details={"provider": provider},
        )

"""Domain-level business exceptions shared by domain and infrastructure.

The core layer only maps these to HTTP responses; the domain never imports core.
"""
from __future__ import annotations

from typing import Optional
from shared.codes import BusinessCode


class BusinessException(Exception):
    """Base class for every business error surfaced to API callers."""

    def __init__(
        self,
        code: int,
        message: str,
        error_type: str = "BusinessError",
        details: Optional[dict] = None,
        field: Optional[str] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.error_type = error_type
        self.details = details
        self.field = field
        super().__init__(self.message)


class DomainValidationException(BusinessException):
    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        details: dict | None = None,
    ):
        super().__init__(
            code=BusinessCode.PARAM_VALIDATION_ERROR,
            message=message,
            error_type="DomainValidationError",
            details=details,
            field=field,
        )


class TeamNotFoundException(BusinessException):
    def __init__(self, team_id: Optional[str] = None):
        details = {"team_id": team_id} if team_id else None
        super().__init__(
            code=BusinessCode.NOT_FOUND,
            message="Team not found",
            error_type="TeamNotFound",
            details=details,
            field="team_id",
        )


class DatabaseException(BusinessException):
    """Storage failure surfaced by the unit of work."""

    def __init__(self, message: str = "Database operation failed", *, operation: Optional[str] = None):
        super().__init__(
            code=BusinessCode.DATABASE_ERROR,
            message=message,
            error_type="DatabaseError",
            details={"operation": operation} if operation else None,
        )

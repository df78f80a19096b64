"""
interviewmate/core/errors.py — Application error taxonomy and wire envelope
Admission, upstream-unavailable, validation and precondition errors all leave
the API as {"success": false, "error": {...}}.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Optional


class ErrorCode:
    VALIDATION_ERROR = "VALIDATION_ERROR"
    AUTH_ERROR = "AUTH_ERROR"
    FORBIDDEN_ERROR = "FORBIDDEN_ERROR"
    NOT_FOUND_ERROR = "NOT_FOUND_ERROR"
    DUPLICATE_RESOURCE = "DUPLICATE_RESOURCE"
    INSUFFICIENT_BALANCE = "INSUFFICIENT_BALANCE"
    RATE_LIMIT_ERROR = "RATE_LIMIT_ERROR"
    PAYMENT_ERROR = "PAYMENT_ERROR"
    SERVER_ERROR = "SERVER_ERROR"
    SERVICE_UNAVAILABLE_ERROR = "SERVICE_UNAVAILABLE_ERROR"


class AppError(Exception):
    """Base for every error the API reports to callers."""

    status_code: int = 500
    code: str = ErrorCode.SERVER_ERROR
    default_message: str = "Internal server error"

    def __init__(
        self,
        message: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)

    def to_envelope(self) -> dict[str, Any]:
        return error_envelope(self.status_code, self.message, self.code, self.details)


class ValidationFailedError(AppError):
    status_code = 400
    code = ErrorCode.VALIDATION_ERROR
    default_message = "Validation failed"


class AuthError(AppError):
    status_code = 401
    code = ErrorCode.AUTH_ERROR
    default_message = "Authentication required"


class ForbiddenError(AppError):
    status_code = 403
    code = ErrorCode.FORBIDDEN_ERROR
    default_message = "Insufficient permissions"


class NotFoundError(AppError):
    status_code = 404
    code = ErrorCode.NOT_FOUND_ERROR
    default_message = "Resource not found"

    def __init__(self, resource: str = "Resource", details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(f"{resource} not found", details)


class DuplicateResourceError(AppError):
    status_code = 409
    code = ErrorCode.DUPLICATE_RESOURCE
    default_message = "Resource already exists"


class InsufficientBalanceError(AppError):
    """Precondition failure: a debit would drive the minute balance negative."""

    status_code = 400
    code = ErrorCode.INSUFFICIENT_BALANCE
    default_message = "Insufficient balance"

    def __init__(self, balance: float, requested: float, message: Optional[str] = None) -> None:
        self.balance = balance
        self.requested = requested
        super().__init__(
            message or (
                f"Insufficient balance: {requested:g} minutes requested, "
                f"{balance:g} available."
            ),
            {"balanceMinutes": balance, "requestedMinutes": requested},
        )


class PaymentError(AppError):
    status_code = 400
    code = ErrorCode.PAYMENT_ERROR
    default_message = "Payment processing failed"


class ServiceUnavailableError(AppError):
    status_code = 503
    code = ErrorCode.SERVICE_UNAVAILABLE_ERROR
    default_message = "Service temporarily unavailable"

    def __init__(self, service: str = "Service", details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(f"{service} temporarily unavailable", details)


class RateLimitError(AppError):
    status_code = 429
    code = ErrorCode.RATE_LIMIT_ERROR
    default_message = "Too many requests"

    def __init__(self, retry_after: int, message: Optional[str] = None) -> None:
        self.retry_after = retry_after
        super().__init__(message)

    def to_envelope(self) -> dict[str, Any]:
        envelope = super().to_envelope()
        envelope["error"]["retryAfter"] = self.retry_after
        return envelope


def error_envelope(
    status_code: int,
    message: str,
    code: Optional[str] = None,
    details: Optional[dict[str, Any]] = None,
) -> dict[str, Any]:
    """Build the standard error body shared by every failing endpoint."""
    error: dict[str, Any] = {
        "message": message,
        "statusCode": status_code,
        "timestamp": datetime.utcnow().isoformat() + "Z",
    }
    if details:
        error["details"] = details
    if code:
        error["code"] = code
    return {"success": False, "error": error}

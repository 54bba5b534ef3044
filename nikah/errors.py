"""Error taxonomy shared by the service layer.

Every service raises a subclass of ``NikahError``. The web layer turns any
exception into a toast payload with ``reshape_error``.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


class ErrorType(Enum):
    """Broad error categories surfaced to the client."""
    AUTHENTICATION = "auth_error"
    PERMISSION = "permission_error"
    VALIDATION = "validation_error"
    NOT_FOUND = "not_found_error"
    RATE_LIMIT = "rate_limit_error"
    DATABASE = "database_error"
    BUSINESS_LOGIC = "business_logic_error"
    AI = "ai_error"
    NETWORK = "network_error"
    UNKNOWN = "unknown_error"


class ErrorSeverity(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


_STATUS_BY_TYPE = {
    ErrorType.AUTHENTICATION: 401,
    ErrorType.PERMISSION: 403,
    ErrorType.VALIDATION: 400,
    ErrorType.NOT_FOUND: 404,
    ErrorType.RATE_LIMIT: 429,
    ErrorType.DATABASE: 500,
    ErrorType.BUSINESS_LOGIC: 409,
    ErrorType.AI: 502,
    ErrorType.NETWORK: 503,
    ErrorType.UNKNOWN: 500,
}

_USER_MESSAGES = {
    ErrorType.AUTHENTICATION: "Your session has expired. Please log in again.",
    ErrorType.PERMISSION: "You do not have permission to perform this action.",
    ErrorType.VALIDATION: "Please check your input and try again.",
    ErrorType.NOT_FOUND: "The requested item could not be found.",
    ErrorType.RATE_LIMIT: "Too many requests. Please wait a moment and try again.",
    ErrorType.DATABASE: "We could not save your changes. Please try again.",
    ErrorType.BUSINESS_LOGIC: "This action is not allowed right now.",
    ErrorType.AI: "Our matching assistant is unavailable. Please try again later.",
    ErrorType.NETWORK: "Network problem. Please check your connection.",
    ErrorType.UNKNOWN: "An unexpected error occurred. Please try again.",
}

_RETRYABLE = {ErrorType.RATE_LIMIT, ErrorType.DATABASE, ErrorType.AI, ErrorType.NETWORK, ErrorType.UNKNOWN}


class NikahError(Exception):
    """Base class for all application errors."""

    error_type: ErrorType = ErrorType.UNKNOWN
    severity: ErrorSeverity = ErrorSeverity.MEDIUM

    def __init__(self, message: str, *, error_type: ErrorType | None = None, details: Any = None):
        super().__init__(message)
        if error_type is not None:
            self.error_type = error_type
        self.details = details

    @property
    def status_code(self) -> int:
        return _STATUS_BY_TYPE[self.error_type]

    @property
    def user_message(self) -> str:
        # Validation and business-rule messages are written for the user already
        if self.error_type in (ErrorType.VALIDATION, ErrorType.BUSINESS_LOGIC, ErrorType.PERMISSION):
            return str(self)
        return _USER_MESSAGES[self.error_type]

    @property
    def can_retry(self) -> bool:
        return self.error_type in _RETRYABLE


class NotFoundError(NikahError):
    error_type = ErrorType.NOT_FOUND


class PermissionDeniedError(NikahError):
    error_type = ErrorType.PERMISSION
    severity = ErrorSeverity.HIGH


class ValidationFailedError(NikahError):
    """Raised when submitted data fails field-level validation."""
    error_type = ErrorType.VALIDATION
    severity = ErrorSeverity.LOW

    def __init__(self, message: str, errors: list | None = None):
        super().__init__(message, details=errors or [])
        self.errors = errors or []


class AuthenticationError(NikahError):
    error_type = ErrorType.AUTHENTICATION
    severity = ErrorSeverity.HIGH


def reshape_error(error: Exception) -> dict[str, Any]:
    """Convert an exception into the payload shown as a client toast."""
    if isinstance(error, NikahError):
        payload = {
            "error": str(error),
            "type": error.error_type.value,
            "user_message": error.user_message,
            "can_retry": error.can_retry,
            "severity": error.severity.value,
        }
        if error.details:
            payload["details"] = error.details
    else:
        logger.error("[error] unhandled %s", type(error).__name__, exc_info=error)
        payload = {
            "error": str(error),
            "type": ErrorType.UNKNOWN.value,
            "user_message": _USER_MESSAGES[ErrorType.UNKNOWN],
            "can_retry": True,
            "severity": ErrorSeverity.MEDIUM.value,
        }
    payload["timestamp"] = datetime.now(timezone.utc).isoformat()
    return payload


def status_for(error: Exception) -> int:
    if isinstance(error, NikahError):
        return error.status_code
    return 500

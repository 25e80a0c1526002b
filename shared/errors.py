"""
Shared error handling for the print-ops resource access layer.
"""

from datetime import datetime, timezone
from typing import Dict, Any, List, Optional
from pydantic import BaseModel


FieldErrors = Dict[str, List[str]]

DEFAULT_ERROR_MESSAGE = "An unexpected error occurred"


class ErrorResponse(BaseModel):
    """Standard error response format."""

    code: str
    message: str
    status: Optional[int] = None
    errors: Optional[FieldErrors] = None
    occurred_at: Optional[datetime] = None
    details: Dict[str, Any] = {}


class AccessLayerException(Exception):
    """Base exception for resource access errors."""

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            code=self.code,
            message=self.message,
            details=self.details
        )


class ServiceError(AccessLayerException):
    """Normalized error raised by transports, clients and the registry."""

    def __init__(
        self,
        message: str = "Service error",
        code: Optional[str] = None,
        status: Optional[int] = None,
        errors: Optional[FieldErrors] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(code or "SERVICE_ERROR", message, details)
        self.status = status
        self.errors = errors
        self.occurred_at = datetime.now(timezone.utc)

    @property
    def is_client_error(self) -> bool:
        """True for 4xx responses, which are never retried."""
        return self.status is not None and 400 <= self.status < 500

    def to_response(self) -> ErrorResponse:
        return ErrorResponse(
            code=self.code,
            message=self.message,
            status=self.status,
            errors=self.errors,
            occurred_at=self.occurred_at,
            details=self.details
        )

    def __repr__(self) -> str:
        return f"{type(self).__name__}(message={self.message!r}, code={self.code!r}, status={self.status!r})"


class AuthenticationError(ServiceError):
    """The server rejected the stored credential."""

    def __init__(self, message: str = "Authentication required", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="UNAUTHENTICATED", status=401, details=details)


class ServiceNotFoundError(ServiceError):
    """Lookup of an unregistered service name."""

    def __init__(self, name: str):
        super().__init__(
            f"Service '{name}' not found",
            code="SERVICE_NOT_FOUND",
            status=404,
            details={"service": name}
        )


class RequestCancelledError(ServiceError):
    """A cancellation token fired before the result could be committed."""

    def __init__(self, message: str = "Request cancelled"):
        super().__init__(message, code="CANCELLED")


class ValidationError(ServiceError):
    """Payload rejected by a validator before dispatch."""

    def __init__(self, message: str = "Validation failed", errors: Optional[FieldErrors] = None):
        super().__init__(message, code="VALIDATION_ERROR", errors=errors or {})


def get_error_message(error: BaseException, fallback: str = DEFAULT_ERROR_MESSAGE) -> str:
    """Render an error for a user-facing notification.

    Field-level errors win over the top-level message so that form
    validation failures read as a list of problems.
    """
    if isinstance(error, ServiceError):
        if error.errors:
            messages = [msg for field_messages in error.errors.values() for msg in field_messages]
            if messages:
                return ", ".join(messages)
        return error.message or fallback
    message = str(error)
    return message or fallback

"""Custom application exceptions.

Domain errors carry an ``ErrorKind`` and a machine-readable code. They know
nothing about HTTP; the API layer maps kinds to status codes.
"""

from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    """Error categories surfaced by the domain."""

    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    VALIDATION = "validation"
    UNAUTHENTICATED = "unauthenticated"
    UNAUTHORIZED = "unauthorized"
    EXTERNAL_GATEWAY = "external_gateway"
    INTERNAL = "internal"


class AppException(Exception):
    """Base application exception."""

    kind: ErrorKind = ErrorKind.INTERNAL
    default_code: str = "INTERNAL_ERROR"

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code!r}, message={self.message!r})"


class NotFoundError(AppException):
    """Resource not found exception."""

    kind = ErrorKind.NOT_FOUND
    default_code = "NOT_FOUND"

    def __init__(
        self,
        resource: str = "Resource",
        identifier: str | None = None,
        code: str | None = None,
    ) -> None:
        message = f"{resource} not found"
        if identifier:
            message = f"{resource} with ID '{identifier}' not found"
        details = {"resource": resource}
        if identifier:
            details["id"] = identifier
        super().__init__(message, code=code, details=details)


class ConflictError(AppException):
    """The request conflicts with the current state of a resource."""

    kind = ErrorKind.CONFLICT
    default_code = "CONFLICT"


class ValidationError(AppException):
    """Validation error exception."""

    kind = ErrorKind.VALIDATION
    default_code = "VALIDATION_ERROR"

    def __init__(
        self,
        message: str = "Validation failed",
        code: str | None = None,
        errors: list[dict[str, Any]] | None = None,
    ) -> None:
        self.errors = errors or []
        super().__init__(message, code=code, details={"errors": self.errors} if errors else None)


class AuthenticationError(AppException):
    """Authentication failed exception."""

    kind = ErrorKind.UNAUTHENTICATED
    default_code = "UNAUTHENTICATED"

    def __init__(self, message: str = "Authentication failed") -> None:
        super().__init__(message)


class AuthorizationError(AppException):
    """Authorization denied exception."""

    kind = ErrorKind.UNAUTHORIZED
    default_code = "FORBIDDEN"

    def __init__(self, message: str = "You don't have permission to access this resource") -> None:
        super().__init__(message)


class ExternalGatewayError(AppException):
    """Payment gateway call failed or timed out."""

    kind = ErrorKind.EXTERNAL_GATEWAY
    default_code = "PAYMENT_GATEWAY_ERROR"

    def __init__(
        self,
        gateway: str,
        message: str | None = None,
        retryable: bool = True,
        code: str | None = None,
    ) -> None:
        text = f"Payment gateway '{gateway}' is unavailable"
        if message:
            text = f"{text}: {message}"
        self.gateway = gateway
        self.retryable = retryable
        super().__init__(text, code=code, details={"gateway": gateway, "retryable": retryable})


class WebhookSignatureError(ExternalGatewayError):
    """Webhook payload failed signature verification."""

    default_code = "INVALID_WEBHOOK_SIGNATURE"

    def __init__(self, gateway: str, message: str = "Invalid webhook signature") -> None:
        super().__init__(gateway, message, retryable=False)
        self.message = message


class InternalError(AppException):
    """Unexpected failure, typically storage."""

    kind = ErrorKind.INTERNAL
    default_code = "INTERNAL_ERROR"

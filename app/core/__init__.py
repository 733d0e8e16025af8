"""Core utilities and security modules."""

from app.core.exceptions import (
    AppException,
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    ErrorKind,
    ExternalGatewayError,
    InternalError,
    NotFoundError,
    ValidationError,
    WebhookSignatureError,
)
from app.core.security import (
    create_access_token,
    create_tokens,
    get_password_hash,
    verify_password,
    verify_token,
)

__all__ = [
    "AppException",
    "AuthenticationError",
    "AuthorizationError",
    "ConflictError",
    "ErrorKind",
    "ExternalGatewayError",
    "InternalError",
    "NotFoundError",
    "ValidationError",
    "WebhookSignatureError",
    "create_access_token",
    "create_tokens",
    "get_password_hash",
    "verify_password",
    "verify_token",
]

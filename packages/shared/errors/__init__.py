"""Standardized error handling for storefront services."""

from .models import (
    ErrorDetail,
    ErrorResponse,
    create_error_response,
)
from .exceptions import (
    StorefrontException,
    TransientError,
    PermanentError,
    ValidationError,
    UnauthorizedError,
    NotFoundError,
    ConflictError,
    RateLimitError,
    ServiceUnavailableError,
)

__all__ = [
    "ErrorDetail",
    "ErrorResponse",
    "create_error_response",
    "StorefrontException",
    "TransientError",
    "PermanentError",
    "ValidationError",
    "UnauthorizedError",
    "NotFoundError",
    "ConflictError",
    "RateLimitError",
    "ServiceUnavailableError",
]

"""Storefront exceptions with error codes.

Transient errors are retried and, inside the reconciliation pass, skipped
until the next cart interaction. Permanent errors are not retried.
"""

from typing import Any, Optional


class StorefrontException(Exception):
    """Base exception for the storefront cart perks service."""

    def __init__(
        self,
        message: str,
        code: str = "SF_000",
        category: str = "system",
        details: Optional[dict[str, Any]] = None,
    ):
        self.message = message
        self.code = code
        self.category = category
        self.details = details or {}
        super().__init__(message)


class TransientError(StorefrontException):
    """Retryable errors: network timeouts, temporary unavailability."""

    def __init__(
        self,
        message: str,
        code: str = "SF_001",
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message, code, "transient", details)


class PermanentError(StorefrontException):
    """Non-retryable errors: invalid input, rejected credentials."""

    def __init__(
        self,
        message: str,
        code: str = "SF_002",
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message, code, "permanent", details)


class ValidationError(PermanentError):
    """Invalid input or configuration - 400."""

    def __init__(
        self,
        message: str,
        code: str = "SF_400",
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message, code, details)


class UnauthorizedError(PermanentError):
    """Storefront access token rejected - 401."""

    def __init__(
        self,
        message: str,
        code: str = "SF_401",
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message, code, details)


class NotFoundError(PermanentError):
    """Cart or product not found - 404."""

    def __init__(
        self,
        message: str,
        code: str = "SF_404",
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message, code, details)


class ConflictError(PermanentError):
    """Cart mutation rejected by the store (user errors) - 409."""

    def __init__(
        self,
        message: str,
        code: str = "SF_409",
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message, code, details)


class RateLimitError(TransientError):
    """Storefront API throttled - 429."""

    def __init__(
        self,
        message: str,
        code: str = "SF_429",
        retry_after: Optional[int] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        d = details or {}
        if retry_after is not None:
            d["retry_after"] = retry_after
        super().__init__(message, code, d)


class ServiceUnavailableError(TransientError):
    """Storefront API or catalog temporarily unavailable - 503."""

    def __init__(
        self,
        message: str,
        code: str = "SF_503",
        retry_after: Optional[int] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        d = details or {}
        if retry_after is not None:
            d["retry_after"] = retry_after
        super().__init__(message, code, d)

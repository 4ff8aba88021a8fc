"""Error response models."""

from datetime import datetime, timezone
from typing import Any, Optional
from pydantic import BaseModel, Field


class ErrorDetail(BaseModel):
    """Structured error details for API responses."""

    code: str = Field(..., description="Error code in format SF_NUMBER")
    message: str = Field(..., description="Human-readable error message")
    category: str = Field(
        ...,
        description="Error category: transient, permanent, system",
    )
    details: Optional[dict[str, Any]] = Field(
        default=None,
        description="Additional context (cart_id, retry_after, etc.)",
    )
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")
    timestamp: str = Field(
        default_factory=lambda: datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ"),
        description="Error timestamp in ISO 8601",
    )


class ErrorResponse(BaseModel):
    """Standardized error response schema."""

    error: ErrorDetail


def create_error_response(
    code: str,
    message: str,
    category: str = "system",
    details: Optional[dict[str, Any]] = None,
    request_id: Optional[str] = None,
) -> ErrorResponse:
    """Create standardized error response."""
    return ErrorResponse(
        error=ErrorDetail(
            code=code,
            message=message,
            category=category,
            details=details,
            request_id=request_id,
        )
    )

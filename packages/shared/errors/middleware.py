"""FastAPI error handling: request ids and the shared error envelope."""

import logging
import uuid
from typing import Callable, Dict, Type

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from ..monitoring.logging import log_with_context, request_id_var
from .exceptions import (
    ConflictError,
    NotFoundError,
    PermanentError,
    RateLimitError,
    ServiceUnavailableError,
    StorefrontException,
    TransientError,
    UnauthorizedError,
    ValidationError,
)
from .models import create_error_response

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

# Most specific class first. A rejected Storefront token is our upstream's
# problem, so callers see 502 rather than 401.
EXCEPTION_STATUS_MAP: Dict[Type[StorefrontException], int] = {
    ValidationError: 400,
    UnauthorizedError: 502,
    NotFoundError: 404,
    ConflictError: 409,
    RateLimitError: 429,
    ServiceUnavailableError: 503,
    TransientError: 503,
    PermanentError: 502,
}


def status_for(exc: StorefrontException) -> int:
    """HTTP status for an exception, resolved through its class hierarchy."""
    for cls in type(exc).__mro__:
        if cls in EXCEPTION_STATUS_MAP:
            return EXCEPTION_STATUS_MAP[cls]
    return 500


def get_request_id(request: Request) -> str:
    """Request id from the header or request state, created when missing."""
    request_id = request.headers.get(REQUEST_ID_HEADER) or getattr(request.state, "request_id", None)
    if not request_id:
        request_id = str(uuid.uuid4())
    request.state.request_id = request_id
    return request_id


async def request_id_middleware(request: Request, call_next: Callable) -> Response:
    """Correlate logs and responses with one request id."""
    request_id = get_request_id(request)
    token = request_id_var.set(request_id)
    try:
        response = await call_next(request)
    finally:
        request_id_var.reset(token)
    response.headers[REQUEST_ID_HEADER] = request_id
    return response


def _error_json(request_id: str, status: int, exc_code: str, message: str, category: str, details=None, headers=None):
    body = create_error_response(
        code=exc_code,
        message=message,
        category=category,
        details=details,
        request_id=request_id,
    )
    return JSONResponse(
        status_code=status,
        content=body.model_dump(),
        headers={REQUEST_ID_HEADER: request_id, **(headers or {})},
    )


def storefront_exception_handler(request: Request, exc: StorefrontException) -> JSONResponse:
    request_id = get_request_id(request)
    status = status_for(exc)
    log_with_context(
        logger,
        logging.WARNING if status < 500 else logging.ERROR,
        "Storefront exception",
        request_id=request_id,
        error_code=exc.code,
        error_message=exc.message,
        category=exc.category,
        path=request.url.path,
    )
    headers = {}
    retry_after = exc.details.get("retry_after")
    if retry_after:
        headers["Retry-After"] = str(retry_after)
    return _error_json(request_id, status, exc.code, exc.message, exc.category, exc.details or None, headers)


def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed request bodies and parameters, in the shared envelope."""
    request_id = get_request_id(request)
    errors = [
        {"loc": list(e.get("loc", ())), "msg": e.get("msg", ""), "type": e.get("type", "")}
        for e in exc.errors()
    ]
    log_with_context(logger, logging.INFO, "Request validation failed", request_id=request_id, errors=errors)
    return _error_json(request_id, 422, "SF_422", "Invalid request", "permanent", {"errors": errors})


def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Unexpected exceptions: 500 with a generic message."""
    request_id = get_request_id(request)
    logger.exception("Unhandled exception", extra={"request_id": request_id}, exc_info=exc)
    return _error_json(
        request_id,
        500,
        "SF_500",
        "An unexpected error occurred. Please try again later.",
        "system",
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Install the request id middleware and every error handler on ``app``."""
    app.middleware("http")(request_id_middleware)
    app.add_exception_handler(StorefrontException, storefront_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

"""
Storefront API response envelope.
Every API response includes: data, metadata, and the store's warnings/errors for the shopper's mutation.
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


def request_id_from_request(request: Any) -> str:
    """Get request_id from FastAPI request state or generate one."""
    return getattr(request.state, "request_id", None) or str(uuid.uuid4())


def storefront_response(
    data: Any,
    *,
    request_id: Optional[str] = None,
    warnings: Optional[List[Any]] = None,
    errors: Optional[List[Any]] = None,
    **extra: Any,
) -> Dict[str, Any]:
    """
    Build the standard response.

    Returns:
        {
            "data": ...,
            "warnings": [...],
            "errors": [...],
            "metadata": { "api_version", "timestamp", "request_id" },
        }
    """
    payload: Dict[str, Any] = {
        "data": data,
        "warnings": list(warnings or []),
        "errors": list(errors or []),
        "metadata": {
            "api_version": "v1",
            "timestamp": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
            "request_id": request_id or str(uuid.uuid4()),
        },
    }
    payload.update(extra)
    return payload

"""Shared API helpers (response envelope)."""

from .api_response import storefront_response, request_id_from_request

__all__ = ["storefront_response", "request_id_from_request"]

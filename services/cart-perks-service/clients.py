"""HTTP clients for the Storefront API (cart store, catalog) and experiment assignment."""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import httpx

from config import settings
from packages.shared.cart_perks.models import CartSnapshot, LineInput, LineQuantityUpdate
from packages.shared.cart_perks.resolver import CatalogProduct, CatalogVariant, select_variant
from packages.shared.errors import (
    NotFoundError,
    PermanentError,
    RateLimitError,
    ServiceUnavailableError,
    TransientError,
    UnauthorizedError,
)
from packages.shared.retry import create_retry_decorator
from queries import (
    CART_ATTRIBUTES_UPDATE,
    CART_DISCOUNT_CODES_UPDATE,
    CART_LINES_ADD,
    CART_LINES_REMOVE,
    CART_LINES_UPDATE,
    GET_CART,
    GET_PRODUCT_BY_HANDLE,
)

logger = logging.getLogger(__name__)


class StorefrontClient:
    """Minimal GraphQL client for the Storefront API."""

    def __init__(
        self,
        endpoint: str,
        access_token: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.endpoint = endpoint
        self.access_token = access_token
        self.timeout = timeout
        self._transport = transport

    async def query(self, document: str, variables: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """POST a GraphQL document and return its ``data`` block."""
        headers = {
            "Content-Type": "application/json",
            "X-Shopify-Storefront-Access-Token": self.access_token,
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                r = await client.post(
                    self.endpoint,
                    json={"query": document, "variables": variables or {}},
                    headers=headers,
                )
        except httpx.TimeoutException as e:
            raise ServiceUnavailableError(f"Storefront API timed out: {e}") from e
        except httpx.HTTPError as e:
            raise TransientError(f"Storefront API request failed: {e}") from e

        if r.status_code == 429:
            retry_after = r.headers.get("Retry-After")
            raise RateLimitError(
                "Storefront API throttled",
                retry_after=int(retry_after) if retry_after and retry_after.isdigit() else None,
            )
        if r.status_code >= 500:
            raise ServiceUnavailableError(f"Storefront API error {r.status_code}")
        if r.status_code in (401, 403):
            raise UnauthorizedError("Storefront access token rejected")
        if r.status_code >= 400:
            raise PermanentError(
                f"Storefront API rejected request: {r.status_code}",
                details={"body": r.text[:200]},
            )

        payload = r.json()
        if payload.get("errors"):
            messages = [e.get("message", "") for e in payload["errors"] if isinstance(e, dict)]
            if any("throttled" in m.lower() for m in messages):
                raise RateLimitError("Storefront API throttled")
            raise PermanentError("Storefront GraphQL errors", details={"errors": messages})
        return payload.get("data") or {}


@dataclass
class CartMutationResult:
    """Resulting cart plus the store's warnings and user errors for one call."""

    cart: Optional[CartSnapshot]
    warnings: List[Dict[str, Any]] = field(default_factory=list)
    errors: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


CART_GID_PREFIX = "gid://shopify/Cart/"


def cart_gid(cart_id: str) -> str:
    """Full cart GID from the token used in URLs."""
    return cart_id if cart_id.startswith("gid://") else CART_GID_PREFIX + cart_id


_cart_retry = create_retry_decorator("storefront_cart", (TransientError,))
_catalog_retry = create_retry_decorator("storefront_catalog", (TransientError,))
_experiment_retry = create_retry_decorator("experiments", (TransientError,))


class StorefrontCartStore:
    """Cart store collaborator bound to one cart id."""

    def __init__(self, client: StorefrontClient, cart_id: str):
        self.client = client
        self.cart_id = cart_gid(cart_id)

    @_cart_retry
    async def get(self) -> CartSnapshot:
        data = await self.client.query(GET_CART, {"cartId": self.cart_id})
        cart = data.get("cart")
        if not cart:
            raise NotFoundError("Cart not found", details={"cart_id": self.cart_id})
        return CartSnapshot.from_storefront(cart)

    @_cart_retry
    async def _mutate(self, document: str, field_name: str, variables: Dict[str, Any]) -> CartMutationResult:
        data = await self.client.query(document, {"cartId": self.cart_id, **variables})
        body = data.get(field_name) or {}
        cart = body.get("cart")
        result = CartMutationResult(
            cart=CartSnapshot.from_storefront(cart) if cart else None,
            warnings=body.get("warnings") or [],
            errors=body.get("userErrors") or [],
        )
        if result.errors:
            logger.warning("%s user errors for cart %s: %s", field_name, self.cart_id, result.errors)
        return result

    async def add_lines(self, lines: Sequence[LineInput]) -> CartMutationResult:
        return await self._mutate(
            CART_LINES_ADD, "cartLinesAdd", {"lines": [line.to_storefront() for line in lines]}
        )

    async def update_lines(self, lines: Sequence[LineQuantityUpdate]) -> CartMutationResult:
        return await self._mutate(
            CART_LINES_UPDATE, "cartLinesUpdate", {"lines": [line.to_storefront() for line in lines]}
        )

    async def remove_lines(self, line_ids: Sequence[str]) -> CartMutationResult:
        return await self._mutate(CART_LINES_REMOVE, "cartLinesRemove", {"lineIds": list(line_ids)})

    async def update_attributes(self, attributes: Dict[str, str]) -> CartMutationResult:
        """Write the cart attribute set (the store replaces it as a whole)."""
        pairs = [{"key": k, "value": v} for k, v in attributes.items()]
        return await self._mutate(CART_ATTRIBUTES_UPDATE, "cartAttributesUpdate", {"attributes": pairs})

    async def update_discount_codes(self, codes: Sequence[str]) -> CartMutationResult:
        return await self._mutate(
            CART_DISCOUNT_CODES_UPDATE, "cartDiscountCodesUpdate", {"discountCodes": list(codes)}
        )


class StorefrontCatalog:
    """Catalog collaborator: product lookup by handle."""

    def __init__(self, client: StorefrontClient, option_name: str = "Color"):
        self.client = client
        self.option_name = option_name

    @_catalog_retry
    async def get_product_by_handle(self, handle: str) -> Optional[CatalogProduct]:
        data = await self.client.query(GET_PRODUCT_BY_HANDLE, {"handle": handle})
        product = data.get("product")
        if not product:
            return None
        return CatalogProduct.from_storefront(product)

    async def get_product_variant_by_handle(
        self,
        handle: str,
        selector: Optional[str] = None,
    ) -> Optional[CatalogVariant]:
        product = await self.get_product_by_handle(handle)
        if product is None:
            return None
        return select_variant(product, selector, self.option_name)


class ExperimentClient:
    """Experiment assignment lookup; any failure yields the fallback."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 2.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    @_experiment_retry
    async def _fetch(self, key: str, subject: Optional[str]) -> Any:
        url = f"{self.base_url}/api/v1/features/{key}"
        params = {"subject": subject} if subject else {}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                r = await client.get(url, params=params)
        except httpx.HTTPError as e:
            raise TransientError(f"Experiment service unreachable: {e}") from e
        if r.status_code >= 500:
            raise ServiceUnavailableError(f"Experiment service error {r.status_code}")
        r.raise_for_status()
        return (r.json() or {}).get("value")

    async def get_variant_assignment(
        self,
        key: str,
        fallback: str,
        subject: Optional[str] = None,
    ) -> str:
        if not self.base_url:
            return fallback
        try:
            value = await self._fetch(key, subject)
        except Exception as e:
            logger.warning("Experiment assignment failed for %s: %s", key, e)
            return fallback
        if not isinstance(value, str) or not value:
            return fallback
        return value


def get_storefront_client() -> StorefrontClient:
    return StorefrontClient(
        endpoint=settings.graphql_endpoint,
        access_token=settings.storefront_access_token,
        timeout=settings.storefront_timeout_seconds,
    )


def get_experiment_client() -> ExperimentClient:
    return ExperimentClient(settings.experiment_service_url)

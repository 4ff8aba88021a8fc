"""Storefront and experiment clients against a mocked transport."""

import time

import httpx
import pytest

from clients import (
    ExperimentClient,
    StorefrontCartStore,
    StorefrontCatalog,
    StorefrontClient,
    cart_gid,
)
from fakes import storefront_line
from packages.shared.cart_perks.models import LineInput
from packages.shared.errors import (
    NotFoundError,
    PermanentError,
    RateLimitError,
    ServiceUnavailableError,
    UnauthorizedError,
)

ENDPOINT = "https://shop.example.com/api/2025-01/graphql.json"


def _client(handler):
    return StorefrontClient(ENDPOINT, "token", transport=httpx.MockTransport(handler))


def _cart_payload(lines=()):
    return {
        "id": "gid://shopify/Cart/c1",
        "attributes": [],
        "discountCodes": [],
        "cost": {"subtotalAmount": {"amount": "0.0", "currencyCode": "EUR"}},
        "lines": {"nodes": list(lines)},
    }


class TestStorefrontClient:
    @pytest.mark.asyncio
    async def test_sends_token_and_returns_data(self):
        seen = {}

        def handler(request):
            seen["token"] = request.headers["X-Shopify-Storefront-Access-Token"]
            return httpx.Response(200, json={"data": {"ok": True}})

        assert await _client(handler).query("{ ok }") == {"ok": True}
        assert seen["token"] == "token"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status,error",
        [
            (429, RateLimitError),
            (502, ServiceUnavailableError),
            (401, UnauthorizedError),
            (403, UnauthorizedError),
            (400, PermanentError),
        ],
    )
    async def test_http_errors_are_mapped(self, status, error):
        client = _client(lambda request: httpx.Response(status, text="nope"))
        with pytest.raises(error):
            await client.query("{ ok }")

    @pytest.mark.asyncio
    async def test_retry_after_is_kept(self):
        client = _client(lambda request: httpx.Response(429, headers={"Retry-After": "2"}))
        with pytest.raises(RateLimitError) as exc_info:
            await client.query("{ ok }")
        assert exc_info.value.details["retry_after"] == 2

    @pytest.mark.asyncio
    async def test_timeout_is_transient(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        with pytest.raises(ServiceUnavailableError):
            await _client(handler).query("{ ok }")

    @pytest.mark.asyncio
    async def test_graphql_errors(self):
        client = _client(lambda request: httpx.Response(200, json={"errors": [{"message": "Field missing"}]}))
        with pytest.raises(PermanentError) as exc_info:
            await client.query("{ ok }")
        assert exc_info.value.details["errors"] == ["Field missing"]

        throttled = _client(lambda request: httpx.Response(200, json={"errors": [{"message": "Throttled"}]}))
        with pytest.raises(RateLimitError):
            await throttled.query("{ ok }")


class TestCartStore:
    def test_cart_gid(self):
        assert cart_gid("c1") == "gid://shopify/Cart/c1"
        assert cart_gid("gid://shopify/Cart/c1") == "gid://shopify/Cart/c1"

    @pytest.mark.asyncio
    async def test_get_parses_snapshot(self):
        def handler(request):
            body = request.content.decode()
            assert "gid://shopify/Cart/c1" in body
            return httpx.Response(200, json={"data": {"cart": _cart_payload([storefront_line("l1", "hoodie")])}})

        cart = await StorefrontCartStore(_client(handler), "c1").get()
        assert cart.id == "gid://shopify/Cart/c1"
        assert cart.lines[0].merchandise.product_handle == "hoodie"

    @pytest.mark.asyncio
    async def test_missing_cart_is_not_found(self):
        store = StorefrontCartStore(_client(lambda r: httpx.Response(200, json={"data": {"cart": None}})), "c1")
        with pytest.raises(NotFoundError):
            await store.get()

    @pytest.mark.asyncio
    async def test_user_errors_are_reported_not_raised(self):
        body = {
            "data": {
                "cartLinesAdd": {
                    "cart": _cart_payload(),
                    "userErrors": [{"field": ["lines"], "message": "Out of stock"}],
                    "warnings": [],
                }
            }
        }
        store = StorefrontCartStore(_client(lambda r: httpx.Response(200, json=body)), "c1")
        result = await store.add_lines([LineInput(merchandise_id="cap")])
        assert not result.ok
        assert result.errors[0]["message"] == "Out of stock"
        assert result.cart.id == "gid://shopify/Cart/c1"

    @pytest.mark.asyncio
    async def test_transient_failure_is_retried(self):
        attempts = []

        def handler(request):
            attempts.append(1)
            if len(attempts) == 1:
                return httpx.Response(503)
            return httpx.Response(200, json={"data": {"cart": _cart_payload()}})

        cart = await StorefrontCartStore(_client(handler), "c1").get()
        assert cart.lines == []
        assert len(attempts) == 2

    @pytest.mark.asyncio
    async def test_throttled_call_waits_at_most_the_policy_cap(self):
        attempts = []

        def handler(request):
            attempts.append(time.monotonic())
            if len(attempts) == 1:
                return httpx.Response(429, headers={"Retry-After": "30"})
            return httpx.Response(200, json={"data": {"cart": _cart_payload()}})

        await StorefrontCartStore(_client(handler), "c1").get()
        assert len(attempts) == 2
        assert attempts[1] - attempts[0] < 5


class TestCatalog:
    @pytest.mark.asyncio
    async def test_variant_by_handle(self):
        product = {
            "id": "p1",
            "title": "Front Pack",
            "handle": "frontpack",
            "selectedOrFirstAvailableVariant": {"id": "v-black", "availableForSale": True},
            "variants": {
                "nodes": [
                    {"id": "v-black", "availableForSale": True, "selectedOptions": [{"name": "Color", "value": "Black"}]},
                    {"id": "v-green", "availableForSale": True, "selectedOptions": [{"name": "Color", "value": "Green"}]},
                ]
            },
        }
        catalog = StorefrontCatalog(_client(lambda r: httpx.Response(200, json={"data": {"product": product}})))
        assert (await catalog.get_product_variant_by_handle("frontpack", "green")).id == "v-green"
        assert (await catalog.get_product_variant_by_handle("frontpack")).id == "v-black"

    @pytest.mark.asyncio
    async def test_unknown_handle(self):
        catalog = StorefrontCatalog(_client(lambda r: httpx.Response(200, json={"data": {"product": None}})))
        assert await catalog.get_product_by_handle("nope") is None


class TestExperimentClient:
    @pytest.mark.asyncio
    async def test_returns_assignment(self):
        def handler(request):
            assert request.url.path == "/api/v1/features/cart_perks_variant"
            assert request.url.params["subject"] == "sess-1"
            return httpx.Response(200, json={"value": "B"})

        client = ExperimentClient("http://experiments", transport=httpx.MockTransport(handler))
        assert await client.get_variant_assignment("cart_perks_variant", "A", subject="sess-1") == "B"

    @pytest.mark.asyncio
    async def test_failures_fall_back(self):
        attempts = []

        def handler(request):
            attempts.append(1)
            return httpx.Response(500)

        down = ExperimentClient("http://experiments", transport=httpx.MockTransport(handler))
        assert await down.get_variant_assignment("cart_perks_variant", "A") == "A"
        assert len(attempts) == 2
        missing = ExperimentClient("http://experiments", transport=httpx.MockTransport(lambda r: httpx.Response(404)))
        assert await missing.get_variant_assignment("cart_perks_variant", "A") == "A"
        empty = ExperimentClient("http://experiments", transport=httpx.MockTransport(lambda r: httpx.Response(200, json={})))
        assert await empty.get_variant_assignment("cart_perks_variant", "A") == "A"

    @pytest.mark.asyncio
    async def test_unconfigured_returns_fallback(self):
        assert await ExperimentClient("").get_variant_assignment("cart_perks_variant", "A") == "A"

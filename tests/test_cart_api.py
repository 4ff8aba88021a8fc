"""Cart API routes with in-memory collaborators."""

import pytest
from fastapi.testclient import TestClient

from fakes import FakeCartStore, FakeCatalog
from dependencies import get_cart_store_factory, get_experiments, get_resolver
from packages.shared.cart_perks.resolver import FreeItemResolver
from packages.shared.errors import NotFoundError

import main

CART = "c1-abc123"
BASE = "/api/v1/carts/" + CART


class FakeExperiments:
    def __init__(self, variant="B"):
        self.variant = variant
        self.calls = []

    async def get_variant_assignment(self, key, fallback, subject=None):
        self.calls.append((key, fallback, subject))
        return self.variant


@pytest.fixture
def store():
    return FakeCartStore(CART)


@pytest.fixture
def experiments():
    return FakeExperiments()


@pytest.fixture
def client(store, experiments):
    app = main.app
    app.dependency_overrides[get_cart_store_factory] = lambda: (lambda cart_id: store)
    app.dependency_overrides[get_resolver] = lambda: FreeItemResolver(FakeCatalog())
    app.dependency_overrides[get_experiments] = lambda: experiments
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def test_root_lists_endpoints(client):
    r = client.get("/")
    assert r.status_code == 200
    assert r.json()["service"] == "cart-perks-service"


def test_get_cart_reconciles_and_returns_views(client, store):
    store.put_line("jacket")
    r = client.get(BASE)
    assert r.status_code == 200
    body = r.json()
    assert body["metadata"]["api_version"] == "v1"
    assert "X-Request-ID" in r.headers
    data = body["data"]
    assert data["perks"]["variant"] == "B"
    assert data["perks"]["next_milestone"]["handle"] == "frontpack"
    assert data["reconciliation"]["error"] is None
    assert len(store.free_lines("black-sunnies")) == 1
    assert store.attributes["__FREE_SHIPPING"] == "true"


def test_variant_assigned_per_session(client, store, experiments):
    client.get(BASE, headers={"X-Session-ID": "sess-1"})
    assert experiments.calls[0][2] == "sess-1"
    assert experiments.calls[0][1] == "A"


def test_cart_variant_query_overrides_assignment(client, store, experiments):
    store.put_line("jacket")
    r = client.get(BASE, params={"cart_variant": "A"})
    assert r.json()["data"]["perks"]["variant"] == "A"
    assert experiments.calls == []
    assert store.free_lines() == []


def test_unknown_assignment_falls_back_to_default(client, store, experiments):
    experiments.variant = "Z"
    r = client.get(BASE)
    assert r.json()["data"]["perks"]["variant"] == "A"


def test_preview_does_not_mutate(client, store):
    store.put_line("jacket")
    r = client.get(BASE + "/perks")
    assert r.status_code == 200
    plan = r.json()["data"]["plan"]
    assert plan["attribute_updates"] == {"__FREE_SHIPPING": "true"}
    assert plan["lines_to_add"][0]["merchandise_id"] == "sunnies-black"
    assert store.calls == ["get"]


def test_add_lines_then_reconcile(client, store):
    r = client.post(BASE + "/lines", json={"lines": [{"merchandise_id": "jacket"}, {"merchandise_id": "hoodie"}]})
    assert r.status_code == 200
    assert len(store.free_lines("black-sunnies")) == 1
    assert store.free_lines("frontpack")[0]["merchandise"]["id"] == "frontpack-green"


def test_add_lines_rejects_free_item_tags(client, store):
    r = client.post(
        BASE + "/lines",
        json={"lines": [{"merchandise_id": "cap", "attributes": [{"key": "_FREE_ITEM", "value": "true"}]}]},
    )
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "SF_400"
    assert store.lines == []


def test_add_lines_validates_body(client):
    r = client.post(BASE + "/lines", json={"lines": []})
    assert r.status_code == 422
    assert r.json()["error"]["code"] == "SF_422"


def test_missing_cart_is_404(client, store):
    async def missing():
        raise NotFoundError("Cart not found")

    store.get = missing
    r = client.get(BASE, headers={"X-Request-ID": "req-1"})
    assert r.status_code == 404
    assert r.json()["error"]["request_id"] == "req-1"
    assert r.headers["X-Request-ID"] == "req-1"


def test_storefront_outage_is_503(client, store):
    store.fail_on.add("get")
    r = client.get(BASE)
    assert r.status_code == 503
    assert r.json()["error"]["category"] == "transient"


def test_update_quantity_removes_unearned_free_line(client, store):
    line_id = store.put_line("cap", quantity=12)
    client.get(BASE)
    assert len(store.free_lines()) == 1

    r = client.patch(BASE + "/lines", json={"lines": [{"id": line_id, "quantity": 9}]})
    assert r.status_code == 200
    assert store.free_lines() == []


def test_removed_free_item_is_not_forced_back(client, store):
    store.put_line("jacket")
    client.get(BASE)
    free_id = store.free_lines("black-sunnies")[0]["id"]

    r = client.post(BASE + "/lines/remove", json={"line_ids": [free_id]})
    assert r.status_code == 200
    assert store.free_lines() == []
    assert store.attributes["__FREE_ITEM_DECLINED"].startswith("black-sunnies@")

    client.get(BASE)
    assert store.free_lines() == []


def test_zero_quantity_on_free_line_declines_it(client, store):
    store.put_line("jacket")
    client.get(BASE)
    free_id = store.free_lines("black-sunnies")[0]["id"]

    r = client.patch(BASE + "/lines", json={"lines": [{"id": free_id, "quantity": 0}]})
    assert r.status_code == 200
    assert store.free_lines() == []
    assert store.attributes["__FREE_ITEM_DECLINED"].startswith("black-sunnies@")
    assert store.attributes["__FREE_SHIPPING"] == "true"


def test_removing_paid_line_does_not_decline(client, store):
    jacket = store.put_line("jacket")
    client.get(BASE)
    client.post(BASE + "/lines/remove", json={"line_ids": [jacket]})
    assert store.free_lines() == []
    assert "__FREE_ITEM_DECLINED" not in store.attributes


def test_shopper_discount_code_kept_alongside_bundle_code(client, store):
    store.put_line("tee-black-m", quantity=3, attributes=[{"key": "_BUNDLE_ID", "value": "b1"}])
    client.get(BASE)
    assert store.discount_codes == ["BUNDLE20"]

    r = client.put(BASE + "/discount-codes", json={"discount_code": "WELCOME10", "discount_codes": ["BUNDLE20"]})
    assert r.status_code == 200
    assert store.discount_codes == ["WELCOME10", "BUNDLE20"]


def test_bundle_code_restored_when_shopper_drops_it(client, store):
    store.put_line("tee-black-m", quantity=3, attributes=[{"key": "_BUNDLE_ID", "value": "b1"}])
    client.get(BASE)

    client.put(BASE + "/discount-codes", json={"discount_code": "WELCOME10"})
    assert store.discount_codes == ["WELCOME10", "BUNDLE20"]


def test_shopper_can_remove_discount_code(client, store):
    store.discount_codes = ["WELCOME10"]
    r = client.put(BASE + "/discount-codes", json={"discount_codes": []})
    assert r.status_code == 200
    assert store.discount_codes == []


def test_add_bundle(client, store):
    r = client.post(
        BASE + "/bundles",
        json={"bundle_name": "men-t-shirt", "merchandise_ids": ["tee-black-m", "tee-white-m", "tee-navy-l"]},
    )
    assert r.status_code == 200
    groups = r.json()["data"]["bundles"]["groups"]
    assert len(groups) == 1
    assert groups[0]["status"] == "complete"
    assert groups[0]["summary"] == "Black, White, Navy"
    assert store.discount_codes == ["BUNDLE20"]


def test_store_errors_surface_in_envelope(client, store):
    store.user_errors_on.add("add_lines")
    r = client.post(BASE + "/lines", json={"lines": [{"merchandise_id": "cap"}]})
    assert r.status_code == 200
    assert r.json()["errors"] == [{"message": "add_lines rejected"}]

"""End-to-end reconciliation passes against the in-memory cart store."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from fakes import FakeCatalog
from packages.shared.cart_perks.declines import format_declines
from packages.shared.cart_perks.models import LineQuantityUpdate
from packages.shared.cart_perks.resolver import FreeItemResolver
from pipeline import assess_cart, bundles_view, perks_view, reconcile_cart

NOW = datetime(2026, 10, 19, 10, 0, 0, tzinfo=timezone.utc)


def _bundle(bundle_id):
    return [{"key": "_BUNDLE_NAME", "value": "men-t-shirt"}, {"key": "_BUNDLE_ID", "value": bundle_id}]


async def _set_quantity(store, line_id, quantity):
    await store.update_lines([LineQuantityUpdate(id=line_id, quantity=quantity)])


@pytest.mark.asyncio
async def test_empty_cart_pass_is_a_no_op(cart_store, resolver):
    result = await reconcile_cart(cart_store, resolver, "A", now=NOW)
    assert result.error is None
    assert result.plan.is_empty
    assert result.report is None
    assert result.state.has_progress is False
    assert result.state.all_achieved is False
    assert cart_store.calls == ["get"]


@pytest.mark.asyncio
async def test_variant_a_unlocks_shipping_at_fifty(cart_store, resolver):
    line_id = cart_store.put_line("cap", quantity=4)
    cart_store.put_line("cap", total="9.99")
    result = await reconcile_cart(cart_store, resolver, "A", now=NOW)
    assert result.state.milestones[0].remaining == Decimal("0.01")
    assert "__FREE_SHIPPING" not in cart_store.attributes

    await _set_quantity(cart_store, line_id, 5)
    del cart_store.lines[1]
    result = await reconcile_cart(cart_store, resolver, "A", now=NOW)
    assert result.plan.attribute_updates == {"__FREE_SHIPPING": "true"}
    assert cart_store.attributes["__FREE_SHIPPING"] == "true"


class TestVariantBLifecycle:
    @pytest.mark.asyncio
    async def test_jump_then_drop(self, cart_store, resolver):
        line_id = cart_store.put_line("cap", quantity=4)
        result = await reconcile_cart(cart_store, resolver, "B", now=NOW)
        assert result.plan.is_empty

        # 40 -> 120 in one mutation
        await _set_quantity(cart_store, line_id, 12)
        result = await reconcile_cart(cart_store, resolver, "B", now=NOW)
        assert result.plan.attribute_updates == {"__FREE_SHIPPING": "true"}
        assert [line.merchandise_id for line in result.plan.lines_to_add] == ["sunnies-black"]
        assert result.report.ok
        assert len(cart_store.free_lines("black-sunnies")) == 1
        assert cart_store.free_lines("frontpack") == []

        # steady state
        result = await reconcile_cart(cart_store, resolver, "B", now=NOW)
        assert result.plan.is_empty

        # 120 -> 90: free line removed by its stored threshold, shipping still met
        await _set_quantity(cart_store, line_id, 9)
        result = await reconcile_cart(cart_store, resolver, "B", now=NOW)
        assert len(result.plan.line_ids_to_remove) == 1
        assert cart_store.free_lines() == []
        assert cart_store.attributes["__FREE_SHIPPING"] == "true"

        # 90 -> 30: shipping flips off
        await _set_quantity(cart_store, line_id, 3)
        result = await reconcile_cart(cart_store, resolver, "B", now=NOW)
        assert result.plan.attribute_updates == {"__FREE_SHIPPING": "false"}
        assert cart_store.attributes["__FREE_SHIPPING"] == "false"

    @pytest.mark.asyncio
    async def test_free_line_never_inflates_subtotal(self, cart_store, resolver):
        cart_store.put_line("jacket")
        await reconcile_cart(cart_store, resolver, "B", now=NOW)
        # the added free line is priced at 35.00 by the store
        result = await reconcile_cart(cart_store, resolver, "B", now=NOW)
        assert result.plan.is_empty
        assert cart_store.free_lines("frontpack") == []

    @pytest.mark.asyncio
    async def test_repeated_passes_never_duplicate_free_lines(self, cart_store, resolver):
        cart_store.put_line("jacket")
        cart_store.put_line("hoodie")
        for _ in range(3):
            await reconcile_cart(cart_store, resolver, "B", now=NOW)
        assert len(cart_store.free_lines("black-sunnies")) == 1
        assert len(cart_store.free_lines("frontpack")) == 1
        assert cart_store.free_lines("frontpack")[0]["merchandise"]["id"] == "frontpack-green"


class TestBundles:
    @pytest.mark.asyncio
    async def test_discount_follows_bundle_completeness(self, cart_store, resolver):
        cart_store.discount_codes = ["WELCOME10"]
        cart_store.put_line("tee-black-m", attributes=_bundle("b1"))
        cart_store.put_line("tee-white-m", attributes=_bundle("b1"))
        last = cart_store.put_line("tee-navy-l", attributes=_bundle("b1"))

        result = await reconcile_cart(cart_store, resolver, "A", now=NOW)
        assert result.bundles.groups[0].is_complete
        assert cart_store.discount_codes == ["WELCOME10", "BUNDLE20"]

        await cart_store.remove_lines([last])
        result = await reconcile_cart(cart_store, resolver, "A", now=NOW)
        assert result.bundles.groups[0].status == "incomplete"
        assert cart_store.discount_codes == ["WELCOME10"]

    @pytest.mark.asyncio
    async def test_quantity_two_plus_one_completes(self, cart_store, resolver):
        cart_store.put_line("tee-black-m", quantity=2, attributes=_bundle("b1"))
        cart_store.put_line("tee-white-m", attributes=_bundle("b1"))
        await reconcile_cart(cart_store, resolver, "A", now=NOW)
        assert cart_store.discount_codes == ["BUNDLE20"]


class TestFailures:
    @pytest.mark.asyncio
    async def test_catalog_failure_retried_on_next_pass(self, cart_store):
        catalog = FakeCatalog(fail=True)
        resolver = FreeItemResolver(catalog)
        cart_store.put_line("jacket")

        result = await reconcile_cart(cart_store, resolver, "B", now=NOW)
        assert result.error is None
        assert cart_store.free_lines() == []
        assert cart_store.attributes["__FREE_SHIPPING"] == "true"

        catalog.fail = False
        await reconcile_cart(cart_store, resolver, "B", now=NOW)
        assert len(cart_store.free_lines("black-sunnies")) == 1

    @pytest.mark.asyncio
    async def test_cart_store_failure_never_raises(self, cart_store, resolver):
        cart_store.fail_on.add("get")
        result = await reconcile_cart(cart_store, resolver, "B", now=NOW)
        assert result.error == "get failed"
        assert result.plan is None

    @pytest.mark.asyncio
    async def test_partial_failure_corrected_next_pass(self, cart_store, resolver):
        cart_store.put_line("jacket")
        cart_store.fail_on.add("update_attributes")
        result = await reconcile_cart(cart_store, resolver, "B", now=NOW)
        assert result.report.failed == ["attributes"]
        assert len(cart_store.free_lines()) == 1

        cart_store.fail_on.clear()
        result = await reconcile_cart(cart_store, resolver, "B", now=NOW)
        assert result.plan.attribute_updates == {"__FREE_SHIPPING": "true"}
        assert result.plan.lines_to_add == []


class TestDeclinedFreeItems:
    @pytest.mark.asyncio
    async def test_declined_item_returns_after_window(self, cart_store, resolver):
        cart_store.put_line("jacket")
        cart_store.attributes["__FREE_SHIPPING"] = "true"
        cart_store.attributes["__FREE_ITEM_DECLINED"] = format_declines(
            {"black-sunnies": NOW + timedelta(minutes=30)}
        )
        result = await reconcile_cart(cart_store, resolver, "B", now=NOW)
        assert result.plan.is_empty

        later = NOW + timedelta(minutes=31)
        await reconcile_cart(cart_store, resolver, "B", now=later)
        assert len(cart_store.free_lines("black-sunnies")) == 1
        assert "__FREE_ITEM_DECLINED" not in cart_store.attributes


@pytest.mark.asyncio
async def test_dry_run_does_not_mutate(cart_store, resolver):
    cart_store.put_line("jacket")
    result = await reconcile_cart(cart_store, resolver, "B", now=NOW, apply=False)
    assert not result.plan.is_empty
    assert cart_store.calls == ["get"]
    assert cart_store.free_lines() == []


def test_views(cart_store):
    cart_store.put_line("hoodie")
    cart_store.put_line("tee-black-m", quantity=2, attributes=_bundle("b1"))
    state, bundles = assess_cart(cart_store.snapshot(), "B")

    view = perks_view(state)
    assert view["variant"] == "B"
    assert view["subtotal"] == "90.00"
    assert view["message"] == "EUR 10.00 away from free Black Sunnies"
    assert view["next_milestone"]["handle"] == "black-sunnies"
    assert view["milestones"][0]["message"] == "Free Shipping unlocked!"

    groups = bundles_view(bundles)
    assert groups["groups"][0]["status"] == "incomplete"
    assert groups["groups"][0]["summary"] == "Black ×2"
    assert groups["groups"][0]["original_price"] == "50.00"
    assert groups["groups"][0]["bundle_price"] == "40.00"
    assert len(groups["ungrouped"]) == 1

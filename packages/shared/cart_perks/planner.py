"""Reconciliation planner.

Given the perks state, bundle grouping and the current cart contents, emit the
minimal plan that makes the cart consistent. Every decision is derived from
the cart as it is now; nothing is remembered between passes, so running the
planner against a cart that already matches its rules yields an empty plan.
"""

import logging
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Set

from .attributes import DECLINED_FREE_ITEMS_ATTRIBUTE, FREE_SHIPPING_ATTRIBUTE, bool_value
from .bundles import BundleDefinition, desired_discount_codes, managed_discount_codes
from .declines import format_declines, is_declined, prune_declines, utcnow
from .milestones import required_free_items, should_have_free_shipping
from .models import (
    BundleGrouping,
    CartAttributes,
    CartLine,
    CartPerksState,
    LineInput,
    LineQuantityUpdate,
    LineTags,
    ReconciliationPlan,
)
from .resolver import validate_free_line

logger = logging.getLogger(__name__)


def free_lines_to_remove(lines: Sequence[CartLine], subtotal) -> List[str]:
    """Free lines whose stored threshold is above the current subtotal.

    A free line without a readable threshold is never removed: its provenance
    cannot be verified.
    """
    remove = []
    for line in lines:
        if not line.is_free:
            continue
        threshold = line.tags.free_item_threshold
        if threshold is None:
            logger.warning("Free item missing threshold attribute: %s", line.id)
            continue
        if subtotal < threshold:
            remove.append(line.id)
    return remove


def _plan_shipping(state: CartPerksState, attributes: CartAttributes, plan: ReconciliationPlan) -> None:
    desired = should_have_free_shipping(state)
    if desired != attributes.free_shipping:
        plan.attribute_updates[FREE_SHIPPING_ATTRIBUTE] = bool_value(desired)


def _plan_free_line_cleanup(
    state: CartPerksState,
    lines: Sequence[CartLine],
    plan: ReconciliationPlan,
) -> Set[str]:
    """Remove stale and duplicate free lines; return handles that keep a free line."""
    below_threshold = set(free_lines_to_remove(lines, state.subtotal))
    kept_handles: Set[str] = set()
    for line in lines:
        if not line.is_free:
            continue
        if line.id in below_threshold:
            plan.line_ids_to_remove.append(line.id)
            continue
        handle = line.free_item_handle
        if handle and handle in kept_handles:
            logger.warning("Duplicate free line %s for %s", line.id, handle)
            plan.line_ids_to_remove.append(line.id)
            continue
        if handle:
            kept_handles.add(handle)
        if line.quantity != 1:
            plan.lines_to_update.append(LineQuantityUpdate(id=line.id, quantity=1))
    return kept_handles


async def _plan_free_line_additions(
    state: CartPerksState,
    kept_handles: Set[str],
    declines: Dict[str, datetime],
    resolver,
    now: datetime,
    plan: ReconciliationPlan,
) -> None:
    for milestone in required_free_items(state):
        handle = milestone.handle
        if handle in kept_handles:
            continue
        if is_declined(declines, handle, now):
            logger.info("Free item %s declined by shopper, not re-adding", handle)
            continue
        if resolver is None:
            continue
        variant = await resolver.resolve(handle, milestone.variant)
        if variant is None:
            logger.error("Could not resolve free item: %s", handle)
            continue
        if not variant.available_for_sale:
            logger.warning("Free item not available: %s (%s)", handle, variant.title)
            continue
        line = LineInput(
            merchandise_id=variant.id,
            quantity=1,
            tags=LineTags.for_free_item(handle, milestone.threshold),
        )
        errors = validate_free_line(line)
        if errors:
            logger.error("Skipping invalid free line for %s: %s", handle, errors)
            continue
        plan.lines_to_add.append(line)
        kept_handles.add(handle)


def _plan_declines(
    state: CartPerksState,
    attributes: CartAttributes,
    now: datetime,
    plan: ReconciliationPlan,
) -> None:
    if not attributes.declined_free_items:
        return
    achieved = [m.handle for m in required_free_items(state)]
    pruned = prune_declines(attributes.declined_free_items, achieved, now)
    if pruned != attributes.declined_free_items:
        plan.attribute_updates[DECLINED_FREE_ITEMS_ATTRIBUTE] = format_declines(pruned)


def _plan_discounts(
    bundles: BundleGrouping,
    discount_codes: Sequence[str],
    definitions: Optional[Dict[str, BundleDefinition]],
    plan: ReconciliationPlan,
) -> None:
    applied = {code.upper() for code in discount_codes}
    desired = {code.upper() for code in desired_discount_codes(bundles.groups)}
    for code in sorted(managed_discount_codes(definitions)):
        key = code.upper()
        if key in desired and key not in applied:
            plan.discount_codes_to_add.append(code)
        elif key not in desired and key in applied:
            # Remove using the casing already on the cart.
            existing = next(c for c in discount_codes if c.upper() == key)
            plan.discount_codes_to_remove.append(existing)


async def plan(
    state: CartPerksState,
    bundles: BundleGrouping,
    lines: Sequence[CartLine],
    attributes: CartAttributes,
    discount_codes: Sequence[str],
    resolver,
    now: Optional[datetime] = None,
    definitions: Optional[Dict[str, BundleDefinition]] = None,
) -> ReconciliationPlan:
    """Build the reconciliation plan for one pass.

    ``resolver`` is only consulted for achieved free item milestones that have
    no free line yet; a failed resolution skips that milestone for this pass.
    """
    now = now or utcnow()
    result = ReconciliationPlan()

    _plan_shipping(state, attributes, result)
    kept_handles = _plan_free_line_cleanup(state, lines, result)
    await _plan_free_line_additions(
        state, kept_handles, attributes.declined_free_items, resolver, now, result
    )
    _plan_declines(state, attributes, now, result)
    _plan_discounts(bundles, discount_codes, definitions, result)

    if not result.is_empty:
        logger.info("Cart perks plan for variant %s: %s", state.variant, result.summary())
    return result

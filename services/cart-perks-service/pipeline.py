"""One reconciliation pass: cart -> subtotal -> milestones -> plan -> executor."""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from packages.shared.cart_perks import planner
from packages.shared.cart_perks.bundles import BundleDefinition, calculate_bundle_pricing, group_lines
from packages.shared.cart_perks.milestones import (
    Variant,
    achievement_message,
    evaluate,
    progress_message,
    progress_percentage,
)
from packages.shared.cart_perks.models import (
    BundleGrouping,
    CartPerksState,
    CartSnapshot,
    ReconciliationPlan,
)
from packages.shared.cart_perks.subtotal import compute_reconciliation_subtotal
from packages.shared.monitoring import log_with_context

from executor import ExecutionReport, PlanExecutor

logger = logging.getLogger(__name__)


@dataclass
class ReconciliationResult:
    cart: Optional[CartSnapshot] = None
    state: Optional[CartPerksState] = None
    bundles: Optional[BundleGrouping] = None
    plan: Optional[ReconciliationPlan] = None
    report: Optional[ExecutionReport] = None
    error: Optional[str] = None
    exception: Optional[Exception] = None


def assess_cart(
    cart: CartSnapshot,
    variant_id: Optional[str],
    variants: Optional[Dict[str, Variant]] = None,
    definitions: Optional[Dict[str, BundleDefinition]] = None,
):
    """Perks state and bundle grouping for a snapshot. Pure."""
    subtotal = compute_reconciliation_subtotal(cart.lines)
    state = evaluate(subtotal, variant_id, variants, currency_code=cart.currency_code)
    bundles = group_lines(cart.lines, definitions)
    return state, bundles


async def reconcile_cart(
    cart_store,
    resolver,
    variant_id: Optional[str],
    *,
    variants: Optional[Dict[str, Variant]] = None,
    definitions: Optional[Dict[str, BundleDefinition]] = None,
    now: Optional[datetime] = None,
    apply: bool = True,
    request_id: Optional[str] = None,
) -> ReconciliationResult:
    """Run a reconciliation pass against the cart store.

    Never raises: failures degrade to "perk not applied yet" and are retried by
    the next cart interaction.
    """
    result = ReconciliationResult()
    try:
        cart = await cart_store.get()
        result.cart = cart
        state, bundles = assess_cart(cart, variant_id, variants, definitions)
        result.state, result.bundles = state, bundles

        result.plan = await planner.plan(
            state,
            bundles,
            cart.lines,
            cart.attributes,
            cart.codes,
            resolver,
            now=now,
            definitions=definitions,
        )

        if apply and not result.plan.is_empty:
            result.report = await PlanExecutor(cart_store).apply(result.plan, cart)
            if result.report.cart is not None:
                result.cart = result.report.cart

        log_with_context(
            logger,
            logging.INFO,
            "Cart perks reconciled",
            request_id=request_id,
            cart_id=cart.id,
            variant=state.variant,
            subtotal=str(state.subtotal),
            plan=result.plan.summary(),
            failed=result.report.failed if result.report else [],
        )
    except Exception as e:
        logger.exception("Cart perks processing error: %s", e)
        result.error = str(e)
        result.exception = e
    return result


def perks_view(state: CartPerksState) -> Dict[str, Any]:
    """Progress-bar view model."""
    return {
        "variant": state.variant,
        "subtotal": str(state.subtotal),
        "currency_code": state.currency_code,
        "has_progress": state.has_progress,
        "all_achieved": state.all_achieved,
        "progress_percentage": round(progress_percentage(state), 2),
        "message": progress_message(state),
        "next_milestone": state.next_milestone.model_dump(mode="json") if state.next_milestone else None,
        "milestones": [
            {**m.model_dump(mode="json"), "message": achievement_message(m)} for m in state.milestones
        ],
    }


def bundles_view(bundles: BundleGrouping) -> Dict[str, Any]:
    """Bundle display view model."""
    return {
        "groups": [
            {
                "bundle_id": g.bundle_id,
                "bundle_name": g.bundle_name,
                "status": g.status,
                "quantity": g.quantity,
                "required_size": g.required_size,
                "total_price": str(g.total_price),
                "original_price": str(g.original_price),
                "savings": str(g.savings),
                "bundle_price": str(calculate_bundle_pricing([g.original_price], g.discount_percent).total),
                "summary": g.summary,
                "currency_code": g.currency_code,
                "line_ids": [line.id for line in g.lines],
            }
            for g in bundles.groups
        ],
        "ungrouped": [line.id for line in bundles.ungrouped],
    }

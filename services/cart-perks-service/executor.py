"""Plan executor: applies a reconciliation plan through the cart store.

Each step re-checks the fresh cart before acting (upsert attributes, add only
when absent, remove only when present), so applying the same plan twice is
harmless. A failing step is logged and recorded; the remaining steps still
run and the next reconciliation pass corrects whatever was left behind.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

from packages.shared.cart_perks.models import CartSnapshot, ReconciliationPlan

logger = logging.getLogger(__name__)


@dataclass
class ExecutionReport:
    applied: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    warnings: List[Dict[str, Any]] = field(default_factory=list)
    cart: Optional[CartSnapshot] = None

    @property
    def ok(self) -> bool:
        return not self.failed

    def to_dict(self) -> Dict[str, Any]:
        return {"applied": self.applied, "failed": self.failed, "warnings": self.warnings}


def merged_attributes(cart: CartSnapshot, updates: Dict[str, str]) -> Dict[str, str]:
    """Full attribute set after upserts; empty values drop the key."""
    merged = dict(cart.raw_attributes)
    merged.update(updates)
    return {k: v for k, v in merged.items() if v != ""}


def merged_discount_codes(current: List[str], add: List[str], remove: List[str]) -> List[str]:
    """``current - remove + add``, case-insensitive, preserving order of the rest."""
    drop = {c.upper() for c in remove}
    codes = [c for c in current if c.upper() not in drop]
    present = {c.upper() for c in codes}
    for code in add:
        if code.upper() not in present:
            codes.append(code)
            present.add(code.upper())
    return codes


class PlanExecutor:
    def __init__(self, cart_store):
        self.cart_store = cart_store

    async def _step(self, name: str, report: ExecutionReport, call: Callable[[], Awaitable[Any]]) -> None:
        try:
            result = await call()
        except Exception as e:
            logger.error("Cart perks step %s failed: %s", name, e)
            report.failed.append(name)
            return
        if result is None:
            return
        report.warnings.extend(getattr(result, "warnings", None) or [])
        if getattr(result, "errors", None):
            report.failed.append(name)
            return
        report.applied.append(name)
        if getattr(result, "cart", None) is not None:
            report.cart = result.cart

    async def apply(self, plan: ReconciliationPlan, cart: Optional[CartSnapshot] = None) -> ExecutionReport:
        """Apply ``plan``; ``cart`` is fetched fresh when not given."""
        report = ExecutionReport()
        if plan.is_empty:
            return report

        if cart is None:
            try:
                cart = await self.cart_store.get()
            except Exception as e:
                logger.error("Could not load cart before applying plan: %s", e)
                report.failed.append("load")
                return report
        report.cart = cart

        if plan.attribute_updates:
            attributes = merged_attributes(cart, plan.attribute_updates)
            if attributes != {k: v for k, v in cart.raw_attributes.items() if v != ""}:
                await self._step("attributes", report, lambda: self.cart_store.update_attributes(attributes))

        present_ids = {line.id for line in cart.lines}
        remove_ids = [line_id for line_id in plan.line_ids_to_remove if line_id in present_ids]
        if remove_ids:
            await self._step("remove_lines", report, lambda: self.cart_store.remove_lines(remove_ids))

        held_handles = {
            line.free_item_handle
            for line in cart.lines
            if line.is_free and line.id not in remove_ids
        }
        add_lines = [
            line for line in plan.lines_to_add if line.tags.free_item_type not in held_handles
        ]
        if add_lines:
            await self._step("add_lines", report, lambda: self.cart_store.add_lines(add_lines))

        update_lines = [
            u
            for u in plan.lines_to_update
            if u.id in present_ids and u.id not in remove_ids
            and cart.line_by_id(u.id).quantity != u.quantity
        ]
        if update_lines:
            await self._step("update_lines", report, lambda: self.cart_store.update_lines(update_lines))

        if plan.discount_codes_to_add or plan.discount_codes_to_remove:
            current = cart.codes
            codes = merged_discount_codes(current, plan.discount_codes_to_add, plan.discount_codes_to_remove)
            if [c.upper() for c in codes] != [c.upper() for c in current]:
                await self._step("discount_codes", report, lambda: self.cart_store.update_discount_codes(codes))

        if report.failed:
            logger.warning("Cart perks plan partially applied: ok=%s failed=%s", report.applied, report.failed)
        return report

"""Bundle grouping, completeness and pricing.

Lines are bucketed by ``_BUNDLE_ID`` so two bundles of the same name in one cart
stay separate. A bundle is complete when the summed quantity of its lines
equals the required size for its name. Incomplete groups are still returned
for display; only the discount depends on completeness.
"""

import random
import string
import time
from collections import OrderedDict
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, Iterable, List, Optional, Sequence, Set

from pydantic import BaseModel

from .attributes import BUNDLE_DISCOUNT_CODE
from .models import ZERO, BundleGroup, BundleGrouping, CartLine, LineInput, LineTags

DEFAULT_BUNDLE_SIZE = 3
CENT = Decimal("0.01")


class BundleDefinition(BaseModel):
    name: str
    required_size: int = DEFAULT_BUNDLE_SIZE
    discount_code: str = BUNDLE_DISCOUNT_CODE
    discount_percent: int = 20
    summary_option: str = "Color"


BUNDLE_DEFINITIONS: Dict[str, BundleDefinition] = {
    "men-t-shirt": BundleDefinition(name="men-t-shirt", required_size=3),
}


class BundlePricing(BaseModel):
    original_total: Decimal
    total: Decimal
    savings: Decimal
    discount_percent: int


def get_definition(
    bundle_name: Optional[str],
    definitions: Optional[Dict[str, BundleDefinition]] = None,
) -> BundleDefinition:
    """Definition for a bundle name; unknown names get the default size and code."""
    definitions = definitions if definitions is not None else BUNDLE_DEFINITIONS
    if bundle_name and bundle_name in definitions:
        return definitions[bundle_name]
    return BundleDefinition(name=bundle_name or "")


def required_size(
    bundle_name: Optional[str],
    definitions: Optional[Dict[str, BundleDefinition]] = None,
) -> int:
    return get_definition(bundle_name, definitions).required_size


def _original_line_price(line: CartLine) -> Decimal:
    """Undiscounted unit price x quantity, falling back to the current cost."""
    unit = line.cost.amount_per_quantity
    if unit is not None:
        return unit.amount * line.quantity
    return line.cost.total


def composition_summary(lines: Iterable[CartLine], option_name: str) -> str:
    """``"Black ×2, White"`` style count of an option across lines, weighted by quantity."""
    counts: "OrderedDict[str, int]" = OrderedDict()
    for line in lines:
        value = line.merchandise.option_value(option_name)
        if not value:
            continue
        counts[value] = counts.get(value, 0) + line.quantity
    return ", ".join(f"{value} ×{count}" if count > 1 else value for value, count in counts.items())


def group_lines(
    lines: Iterable[CartLine],
    definitions: Optional[Dict[str, BundleDefinition]] = None,
) -> BundleGrouping:
    """Partition lines into bundle groups (first-appearance order) and ungrouped lines."""
    buckets: "OrderedDict[str, List[CartLine]]" = OrderedDict()
    names: Dict[str, str] = {}
    ungrouped: List[CartLine] = []

    for line in lines or []:
        tags = line.tags
        if not tags.in_bundle:
            ungrouped.append(line)
            continue
        key = tags.bundle_id or f"name:{tags.bundle_name}"
        buckets.setdefault(key, []).append(line)
        if tags.bundle_name and key not in names:
            names[key] = tags.bundle_name

    groups = []
    for key, members in buckets.items():
        name = names.get(key, "")
        definition = get_definition(name, definitions)
        total = sum((line.cost.total for line in members), ZERO)
        original = sum((_original_line_price(line) for line in members), ZERO)
        currency = next(
            (line.cost.total_amount.currency_code for line in members if line.cost.total_amount),
            "EUR",
        )
        groups.append(
            BundleGroup(
                bundle_id=key,
                bundle_name=name,
                lines=members,
                quantity=sum(line.quantity for line in members),
                required_size=definition.required_size,
                total_price=total,
                original_price=original,
                savings=max(ZERO, original - total),
                summary=composition_summary(members, definition.summary_option),
                currency_code=currency,
                discount_code=definition.discount_code,
                discount_percent=definition.discount_percent,
            )
        )
    return BundleGrouping(groups=groups, ungrouped=ungrouped)


def is_bundle_complete(group: BundleGroup) -> bool:
    return group.quantity == group.required_size


def is_any_bundle_complete(groups: Iterable[BundleGroup]) -> bool:
    return any(is_bundle_complete(g) for g in groups)


def desired_discount_codes(groups: Iterable[BundleGroup]) -> Set[str]:
    """Discount codes the cart should carry given its complete bundles."""
    return {g.discount_code for g in groups if g.discount_code and is_bundle_complete(g)}


def managed_discount_codes(
    definitions: Optional[Dict[str, BundleDefinition]] = None,
) -> Set[str]:
    """Every code this engine may add or remove; other codes are left alone."""
    definitions = definitions if definitions is not None else BUNDLE_DEFINITIONS
    return {BUNDLE_DISCOUNT_CODE} | {d.discount_code for d in definitions.values()}


def new_bundle_id() -> str:
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=9))
    return f"bundle_{int(time.time() * 1000)}_{suffix}"


def build_bundle_lines(
    merchandise_ids: Sequence[str],
    bundle_name: str,
    bundle_id: Optional[str] = None,
) -> List[LineInput]:
    """One quantity-1 line per selected variant, all sharing a fresh bundle id."""
    bundle_id = bundle_id or new_bundle_id()
    tags = LineTags.for_bundle(bundle_name, bundle_id)
    return [LineInput(merchandise_id=mid, quantity=1, tags=tags) for mid in merchandise_ids]


def calculate_bundle_pricing(unit_prices: Sequence[Decimal], discount_percent: int = 20) -> BundlePricing:
    original = sum((Decimal(p) for p in unit_prices), ZERO)
    total = (original * (Decimal(100) - discount_percent) / Decimal(100)).quantize(CENT, rounding=ROUND_HALF_UP)
    return BundlePricing(
        original_total=original,
        total=total,
        savings=original - total,
        discount_percent=discount_percent,
    )

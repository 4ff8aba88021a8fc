"""Milestone evaluation for cart perks variants.

Variant A: free shipping from 50.
Variant B: free shipping from 50, Black Sunnies from 100, Front Pack (green) from 150.
"""

import json
import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from pydantic import ValidationError as PydanticValidationError

from ..errors import ValidationError
from .models import ZERO, CartPerksState, Milestone, MilestoneProgress, MilestoneType

logger = logging.getLogger(__name__)

Variant = List[Milestone]

CART_PERKS_VARIANTS: Dict[str, Variant] = {
    "A": [Milestone(threshold=Decimal("50"), type=MilestoneType.SHIPPING)],
    "B": [
        Milestone(threshold=Decimal("50"), type=MilestoneType.SHIPPING),
        Milestone(
            threshold=Decimal("100"),
            type=MilestoneType.FREE_ITEM,
            handle="black-sunnies",
            title="Black Sunnies",
        ),
        Milestone(
            threshold=Decimal("150"),
            type=MilestoneType.FREE_ITEM,
            handle="frontpack",
            title="Front Pack",
            variant="green",
        ),
    ],
}

PROGRESS_MESSAGES = {
    "shipping": "You're {currency} {remaining:.2f} away from Free Shipping",
    "freeItem": "{currency} {remaining:.2f} away from free {title}",
    "achieved_shipping": "Free Shipping unlocked!",
    "achieved_freeItem": "{title} unlocked! Added to cart",
}


def load_variants(raw: Any) -> Dict[str, Variant]:
    """Parse a ``{variant_id: [milestone, ...]}`` mapping (dict or JSON string)."""
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ValidationError(f"Invalid variants JSON: {e}", code="SF_410") from e
    if not isinstance(raw, dict) or not raw:
        raise ValidationError("Variants must be a non-empty mapping", code="SF_410")

    variants: Dict[str, Variant] = {}
    for variant_id, milestones in raw.items():
        if not isinstance(milestones, list):
            raise ValidationError(
                f"Variant {variant_id} must be a list of milestones",
                code="SF_410",
                details={"variant": variant_id},
            )
        parsed = []
        for item in milestones:
            try:
                milestone = Milestone.model_validate(item)
            except PydanticValidationError as e:
                raise ValidationError(
                    f"Invalid milestone in variant {variant_id}",
                    code="SF_411",
                    details={"variant": variant_id, "errors": e.errors(include_url=False)},
                ) from e
            if milestone.type == MilestoneType.FREE_ITEM and not milestone.handle:
                raise ValidationError(
                    f"Free item milestone in variant {variant_id} needs a handle",
                    code="SF_412",
                    details={"variant": variant_id, "threshold": str(milestone.threshold)},
                )
            parsed.append(milestone)
        variants[str(variant_id)] = parsed
    return variants


def resolve_variant(
    variant_id: Optional[str],
    variants: Optional[Dict[str, Variant]] = None,
) -> Tuple[str, Variant]:
    """Return ``(id, milestones)``; unknown ids fall back to the first-defined variant."""
    variants = variants or CART_PERKS_VARIANTS
    if variant_id and variant_id in variants:
        return variant_id, variants[variant_id]
    default_id = next(iter(variants))
    if variant_id:
        logger.info("Unknown cart perks variant %r, using %s", variant_id, default_id)
    return default_id, variants[default_id]


def is_achieved(subtotal: Decimal, threshold: Decimal) -> bool:
    return subtotal >= threshold


def remaining_to(subtotal: Decimal, threshold: Decimal) -> Decimal:
    return max(ZERO, threshold - subtotal)


def evaluate(
    subtotal: Decimal,
    variant_id: Optional[str],
    variants: Optional[Dict[str, Variant]] = None,
    currency_code: str = "EUR",
) -> CartPerksState:
    """Compute per-milestone progress for a subtotal. Pure."""
    resolved_id, milestones = resolve_variant(variant_id, variants)

    progress = []
    for milestone in milestones:
        achieved = is_achieved(subtotal, milestone.threshold)
        progress.append(
            MilestoneProgress(
                **milestone.model_dump(),
                achieved=achieved,
                remaining=remaining_to(subtotal, milestone.threshold),
                eligible=achieved,
            )
        )

    next_milestone = next((m for m in progress if not m.achieved), None)
    return CartPerksState(
        variant=resolved_id,
        subtotal=subtotal,
        currency_code=currency_code,
        milestones=progress,
        next_milestone=next_milestone,
        has_progress=subtotal > 0 and next_milestone is not None,
        all_achieved=bool(progress) and all(m.achieved for m in progress),
    )


def should_have_free_shipping(state: CartPerksState) -> bool:
    for milestone in state.milestones:
        if milestone.type == MilestoneType.SHIPPING:
            return milestone.achieved
    return False


def required_free_items(state: CartPerksState) -> List[MilestoneProgress]:
    """Achieved free item milestones (the free lines the cart should hold)."""
    return [
        m
        for m in state.milestones
        if m.type == MilestoneType.FREE_ITEM and m.achieved and m.handle
    ]


def progress_message(state: CartPerksState, currency: Optional[str] = None) -> str:
    """Message toward the next milestone; empty when there is nothing to show."""
    nxt = state.next_milestone
    if not state.has_progress or nxt is None:
        return ""
    currency = currency or state.currency_code
    if nxt.type == MilestoneType.SHIPPING:
        return PROGRESS_MESSAGES["shipping"].format(currency=currency, remaining=nxt.remaining)
    if nxt.type == MilestoneType.FREE_ITEM and nxt.title:
        return PROGRESS_MESSAGES["freeItem"].format(
            currency=currency, remaining=nxt.remaining, title=nxt.title
        )
    return ""


def achievement_message(milestone: MilestoneProgress) -> str:
    if not milestone.achieved:
        return ""
    if milestone.type == MilestoneType.SHIPPING:
        return PROGRESS_MESSAGES["achieved_shipping"]
    if milestone.type == MilestoneType.FREE_ITEM and milestone.title:
        return PROGRESS_MESSAGES["achieved_freeItem"].format(title=milestone.title)
    return ""


def progress_percentage(state: CartPerksState) -> float:
    """Progress toward the next milestone, 0-100."""
    nxt = state.next_milestone
    if nxt is None or state.subtotal <= 0:
        return 100.0 if state.all_achieved else 0.0
    if nxt.threshold <= 0:
        return 100.0
    return float(min(Decimal("100"), state.subtotal / nxt.threshold * 100))

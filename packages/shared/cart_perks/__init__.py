"""Cart state reconciliation engine: milestone perks and bundle discounts."""

from .attributes import (
    BUNDLE_DISCOUNT_CODE,
    BUNDLE_ID_KEY,
    BUNDLE_NAME_KEY,
    DECLINED_FREE_ITEMS_ATTRIBUTE,
    FREE_ITEM_KEY,
    FREE_ITEM_THRESHOLD_KEY,
    FREE_ITEM_TYPE_KEY,
    FREE_SHIPPING_ATTRIBUTE,
)
from .bundles import (
    BUNDLE_DEFINITIONS,
    BundleDefinition,
    build_bundle_lines,
    calculate_bundle_pricing,
    group_lines,
    is_any_bundle_complete,
    required_size,
)
from .declines import DEFAULT_DECLINE_WINDOW, record_declines
from .milestones import (
    CART_PERKS_VARIANTS,
    achievement_message,
    evaluate,
    load_variants,
    progress_message,
    progress_percentage,
    resolve_variant,
)
from .models import (
    BundleGroup,
    BundleGrouping,
    CartAttributes,
    CartLine,
    CartPerksState,
    CartSnapshot,
    LineInput,
    LineTags,
    Milestone,
    MilestoneProgress,
    MilestoneType,
    ReconciliationPlan,
)
from .planner import plan
from .resolver import CatalogProduct, CatalogVariant, FreeItemResolver
from .subtotal import compute_reconciliation_subtotal

__all__ = [
    "BUNDLE_DISCOUNT_CODE",
    "BUNDLE_ID_KEY",
    "BUNDLE_NAME_KEY",
    "DECLINED_FREE_ITEMS_ATTRIBUTE",
    "FREE_ITEM_KEY",
    "FREE_ITEM_THRESHOLD_KEY",
    "FREE_ITEM_TYPE_KEY",
    "FREE_SHIPPING_ATTRIBUTE",
    "BUNDLE_DEFINITIONS",
    "BundleDefinition",
    "build_bundle_lines",
    "calculate_bundle_pricing",
    "group_lines",
    "is_any_bundle_complete",
    "required_size",
    "DEFAULT_DECLINE_WINDOW",
    "record_declines",
    "CART_PERKS_VARIANTS",
    "achievement_message",
    "evaluate",
    "load_variants",
    "progress_message",
    "progress_percentage",
    "resolve_variant",
    "BundleGroup",
    "BundleGrouping",
    "CartAttributes",
    "CartLine",
    "CartPerksState",
    "CartSnapshot",
    "LineInput",
    "LineTags",
    "Milestone",
    "MilestoneProgress",
    "MilestoneType",
    "ReconciliationPlan",
    "plan",
    "CatalogProduct",
    "CatalogVariant",
    "FreeItemResolver",
    "compute_reconciliation_subtotal",
]

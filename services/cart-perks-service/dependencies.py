"""FastAPI dependencies: collaborators and per-request variant selection."""

import logging
from datetime import timedelta
from functools import lru_cache
from typing import Callable, Dict, Optional

from fastapi import Depends, Header, Query

from clients import (
    ExperimentClient,
    StorefrontCartStore,
    StorefrontCatalog,
    get_experiment_client,
    get_storefront_client,
)
from config import settings
from packages.shared.cart_perks.milestones import CART_PERKS_VARIANTS, Variant, load_variants
from packages.shared.cart_perks.resolver import FreeItemResolver

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_variants() -> Dict[str, Variant]:
    """Configured variants; built-ins unless CART_PERKS_VARIANTS_JSON is set."""
    if settings.cart_perks_variants_json:
        return load_variants(settings.cart_perks_variants_json)
    return CART_PERKS_VARIANTS


def get_cart_store_factory() -> Callable[[str], StorefrontCartStore]:
    client = get_storefront_client()
    return lambda cart_id: StorefrontCartStore(client, cart_id)


def get_resolver() -> FreeItemResolver:
    catalog = StorefrontCatalog(get_storefront_client())
    return FreeItemResolver(catalog, timeout=settings.catalog_timeout_seconds)


def get_experiments() -> ExperimentClient:
    return get_experiment_client()


def get_decline_window() -> timedelta:
    return timedelta(minutes=settings.free_item_decline_window_minutes)


async def select_variant(
    cart_id: str,
    cart_variant: Optional[str] = Query(default=None, description="Override variant for testing"),
    x_session_id: Optional[str] = Header(default=None),
    experiments: ExperimentClient = Depends(get_experiments),
    variants: Dict[str, Variant] = Depends(get_variants),
) -> str:
    """Variant for this request: explicit override, else experiment assignment."""
    default_id = next(iter(variants))
    if cart_variant and cart_variant in variants:
        return cart_variant
    assigned = await experiments.get_variant_assignment(
        settings.cart_perks_experiment_key,
        default_id,
        subject=x_session_id or cart_id,
    )
    return assigned if assigned in variants else default_id

"""Resolve a free item milestone to a purchasable product variant."""

import asyncio
import logging
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from .attributes import FREE_ITEM_KEY, FREE_ITEM_THRESHOLD_KEY, FREE_ITEM_TYPE_KEY
from .models import LineInput, Money, SelectedOption

logger = logging.getLogger(__name__)


class CatalogVariant(BaseModel):
    id: str
    title: str = ""
    available_for_sale: bool = False
    price: Optional[Money] = None
    selected_options: List[SelectedOption] = Field(default_factory=list)

    @classmethod
    def from_storefront(cls, payload: Dict[str, Any]) -> "CatalogVariant":
        return cls(
            id=str(payload.get("id") or ""),
            title=payload.get("title") or "",
            available_for_sale=bool(payload.get("availableForSale")),
            price=Money.from_storefront(payload.get("price")),
            selected_options=[
                SelectedOption(name=str(o.get("name", "")), value=str(o.get("value", "")))
                for o in payload.get("selectedOptions") or []
                if isinstance(o, dict)
            ],
        )

    def has_option(self, name: str, value: str) -> bool:
        return any(
            o.name.lower() == name.lower() and o.value.lower() == value.lower()
            for o in self.selected_options
        )


class CatalogProduct(BaseModel):
    id: str
    title: str = ""
    handle: str
    selected_or_first_available_variant: Optional[CatalogVariant] = None
    variants: List[CatalogVariant] = Field(default_factory=list)

    @classmethod
    def from_storefront(cls, payload: Dict[str, Any]) -> "CatalogProduct":
        default = payload.get("selectedOrFirstAvailableVariant")
        return cls(
            id=str(payload.get("id") or ""),
            title=payload.get("title") or "",
            handle=payload.get("handle") or "",
            selected_or_first_available_variant=(
                CatalogVariant.from_storefront(default) if isinstance(default, dict) else None
            ),
            variants=[
                CatalogVariant.from_storefront(v)
                for v in (payload.get("variants") or {}).get("nodes") or []
                if isinstance(v, dict)
            ],
        )

    def default_variant(self) -> Optional[CatalogVariant]:
        if self.selected_or_first_available_variant:
            return self.selected_or_first_available_variant
        for variant in self.variants:
            if variant.available_for_sale:
                return variant
        return self.variants[0] if self.variants else None


def select_variant(
    product: CatalogProduct,
    selector: Optional[str] = None,
    option_name: str = "Color",
) -> Optional[CatalogVariant]:
    """Pick the variant for a selector, falling back to the product default.

    The first available candidate wins: selector match, then default.
    Returns None only when no candidate is available for sale.
    """
    candidates: List[CatalogVariant] = []
    if selector:
        match = next((v for v in product.variants if v.has_option(option_name, selector)), None)
        if match is not None:
            candidates.append(match)
        else:
            logger.info("No %s=%s variant for %s, using default", option_name, selector, product.handle)
    default = product.default_variant()
    if default is not None:
        candidates.append(default)

    for variant in candidates:
        if variant.available_for_sale:
            return variant
    return None


class FreeItemResolver:
    """Maps a milestone handle (+ optional option selector) to a catalog variant.

    ``catalog`` provides ``async get_product_by_handle(handle)``. Catalog errors
    and timeouts resolve to None so the caller skips the milestone for this pass.
    """

    def __init__(self, catalog: Any, option_name: str = "Color", timeout: Optional[float] = None):
        self.catalog = catalog
        self.option_name = option_name
        self.timeout = timeout

    async def resolve(self, handle: str, selector: Optional[str] = None) -> Optional[CatalogVariant]:
        logger.debug("Resolving free item %s%s", handle, f" ({selector})" if selector else "")
        if self.catalog is None:
            logger.error("Catalog client not available, cannot resolve %s", handle)
            return None
        try:
            lookup = self.catalog.get_product_by_handle(handle)
            if self.timeout:
                product = await asyncio.wait_for(lookup, timeout=self.timeout)
            else:
                product = await lookup
        except asyncio.TimeoutError:
            logger.warning("Catalog lookup timed out for %s", handle)
            return None
        except Exception as e:
            logger.exception("Catalog lookup failed for %s: %s", handle, e)
            return None

        if product is None:
            logger.error("Product not found: %s", handle)
            return None

        variant = select_variant(product, selector, self.option_name)
        if variant is None:
            logger.warning("No available variant for %s", handle)
        return variant


def validate_free_line(line: LineInput) -> List[str]:
    """Problems with a free line input; empty when it is safe to add."""
    errors = []
    if not line.merchandise_id:
        errors.append("Missing merchandise id")
    if line.quantity != 1:
        errors.append(f"Free line quantity must be 1, got {line.quantity}")
    keys = {pair["key"] for pair in line.tags.to_pairs()}
    for key in (FREE_ITEM_KEY, FREE_ITEM_TYPE_KEY, FREE_ITEM_THRESHOLD_KEY):
        if key not in keys:
            errors.append(f"Missing {key} tag")
    if line.tags.in_bundle:
        errors.append("Free line must not carry bundle tags")
    return errors

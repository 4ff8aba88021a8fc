"""Cart API - shopper mutations followed by a cart perks reconciliation pass."""

from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field

from dependencies import (
    get_cart_store_factory,
    get_decline_window,
    get_resolver,
    get_variants,
    select_variant,
)
from packages.shared.cart_perks import planner
from packages.shared.cart_perks.attributes import DECLINED_FREE_ITEMS_ATTRIBUTE
from packages.shared.cart_perks.bundles import BUNDLE_DEFINITIONS, build_bundle_lines
from packages.shared.cart_perks.declines import format_declines, record_declines, utcnow
from packages.shared.cart_perks.milestones import Variant, required_free_items
from packages.shared.cart_perks.models import CartSnapshot, LineInput, LineQuantityUpdate, LineTags
from packages.shared.errors import NotFoundError, StorefrontException, ValidationError
from packages.shared.utils import request_id_from_request, storefront_response
from executor import merged_attributes
from pipeline import ReconciliationResult, assess_cart, bundles_view, perks_view, reconcile_cart

router = APIRouter(prefix="/api/v1", tags=["Cart"])


class AttributeBody(BaseModel):
    key: str
    value: str


class LineAddBody(BaseModel):
    merchandise_id: str
    quantity: int = Field(default=1, ge=1)
    attributes: List[AttributeBody] = Field(default_factory=list)


class LinesAddBody(BaseModel):
    lines: List[LineAddBody] = Field(..., min_length=1)


class LineUpdateBody(BaseModel):
    id: str
    quantity: int = Field(..., ge=0)


class LinesUpdateBody(BaseModel):
    lines: List[LineUpdateBody] = Field(..., min_length=1)


class LinesRemoveBody(BaseModel):
    line_ids: List[str] = Field(..., min_length=1)


class DiscountCodesBody(BaseModel):
    discount_code: Optional[str] = None
    discount_codes: List[str] = Field(default_factory=list)


class BundleAddBody(BaseModel):
    bundle_name: str = "men-t-shirt"
    merchandise_ids: List[str] = Field(..., min_length=1)


def _cart_view(cart: Optional[CartSnapshot]) -> Optional[Dict[str, Any]]:
    return cart.model_dump(mode="json") if cart is not None else None


def _response(
    request: Request,
    reconciliation: ReconciliationResult,
    warnings: Optional[List[Any]] = None,
    errors: Optional[List[Any]] = None,
) -> Dict[str, Any]:
    data: Dict[str, Any] = {"cart": _cart_view(reconciliation.cart)}
    if reconciliation.state is not None:
        data["perks"] = perks_view(reconciliation.state)
    if reconciliation.bundles is not None:
        data["bundles"] = bundles_view(reconciliation.bundles)
    data["reconciliation"] = {
        "plan": reconciliation.plan.summary() if reconciliation.plan else None,
        "report": reconciliation.report.to_dict() if reconciliation.report else None,
        "error": reconciliation.error,
    }
    return storefront_response(
        data,
        request_id=request_id_from_request(request),
        warnings=warnings,
        errors=errors,
    )


async def _reconcile(request: Request, store, resolver, variant_id: str, variants) -> ReconciliationResult:
    return await reconcile_cart(
        store,
        resolver,
        variant_id,
        variants=variants,
        request_id=request_id_from_request(request),
    )


def _reject_reserved_tags(line: LineAddBody) -> LineTags:
    tags = LineTags.from_pairs([a.model_dump() for a in line.attributes])
    if tags.free_item or tags.free_item_type or tags.free_item_threshold is not None:
        raise ValidationError(
            "Free item attributes are reserved",
            details={"merchandise_id": line.merchandise_id},
        )
    return tags


async def _record_removed_free_items(
    store,
    cart: CartSnapshot,
    removed_ids: List[str],
    variant_id: str,
    variants: Dict[str, Variant],
    now: datetime,
    window: timedelta,
):
    """Decline still-eligible free items the shopper removed, so they are not forced back."""
    state, _ = assess_cart(cart, variant_id, variants, BUNDLE_DEFINITIONS)
    achieved = {m.handle for m in required_free_items(state)}
    handles = []
    for line_id in removed_ids:
        line = cart.line_by_id(line_id)
        if line is None or not line.is_free:
            continue
        handle = line.free_item_handle
        if handle in achieved:
            handles.append(handle)
    if not handles:
        return None
    declines = record_declines(cart.attributes.declined_free_items, handles, now, window)
    attributes = merged_attributes(cart, {DECLINED_FREE_ITEMS_ATTRIBUTE: format_declines(declines)})
    return await store.update_attributes(attributes)


@router.get("/carts/{cart_id}")
async def get_cart(
    request: Request,
    cart_id: str,
    variant_id: str = Depends(select_variant),
    store_factory: Callable = Depends(get_cart_store_factory),
    resolver=Depends(get_resolver),
    variants: Dict[str, Variant] = Depends(get_variants),
):
    """Page load: reconcile and return the cart with perks and bundle views."""
    store = store_factory(cart_id)
    reconciliation = await _reconcile(request, store, resolver, variant_id, variants)
    if reconciliation.cart is None:
        if isinstance(reconciliation.exception, StorefrontException):
            raise reconciliation.exception
        raise NotFoundError("Cart not found", details={"cart_id": cart_id})
    return _response(request, reconciliation)


@router.get("/carts/{cart_id}/perks")
async def preview_perks(
    request: Request,
    cart_id: str,
    variant_id: str = Depends(select_variant),
    store_factory: Callable = Depends(get_cart_store_factory),
    resolver=Depends(get_resolver),
    variants: Dict[str, Variant] = Depends(get_variants),
):
    """Dry run: perks, bundles and the plan that would be applied, without mutating."""
    store = store_factory(cart_id)
    cart = await store.get()
    state, bundles = assess_cart(cart, variant_id, variants, BUNDLE_DEFINITIONS)
    plan = await planner.plan(state, bundles, cart.lines, cart.attributes, cart.codes, resolver)
    return storefront_response(
        {
            "perks": perks_view(state),
            "bundles": bundles_view(bundles),
            "plan": plan.model_dump(mode="json"),
        },
        request_id=request_id_from_request(request),
    )


@router.post("/carts/{cart_id}/lines")
async def add_lines(
    request: Request,
    cart_id: str,
    body: LinesAddBody,
    variant_id: str = Depends(select_variant),
    store_factory: Callable = Depends(get_cart_store_factory),
    resolver=Depends(get_resolver),
    variants: Dict[str, Variant] = Depends(get_variants),
):
    """Add lines, then reconcile."""
    lines = [
        LineInput(merchandise_id=line.merchandise_id, quantity=line.quantity, tags=_reject_reserved_tags(line))
        for line in body.lines
    ]
    store = store_factory(cart_id)
    result = await store.add_lines(lines)
    reconciliation = await _reconcile(request, store, resolver, variant_id, variants)
    return _response(request, reconciliation, result.warnings, result.errors)


@router.patch("/carts/{cart_id}/lines")
async def update_lines(
    request: Request,
    cart_id: str,
    body: LinesUpdateBody,
    variant_id: str = Depends(select_variant),
    store_factory: Callable = Depends(get_cart_store_factory),
    resolver=Depends(get_resolver),
    variants: Dict[str, Variant] = Depends(get_variants),
    decline_window: timedelta = Depends(get_decline_window),
):
    """Update line quantities, then reconcile. Quantity 0 removes the line."""
    store = store_factory(cart_id)
    before = await store.get()
    result = await store.update_lines(
        [LineQuantityUpdate(id=line.id, quantity=line.quantity) for line in body.lines]
    )
    warnings, errors = list(result.warnings), list(result.errors)
    removed = [line.id for line in body.lines if line.quantity == 0]
    if result.ok and removed:
        declined = await _record_removed_free_items(
            store, before, removed, variant_id, variants, utcnow(), decline_window
        )
        if declined is not None:
            warnings.extend(declined.warnings)
    reconciliation = await _reconcile(request, store, resolver, variant_id, variants)
    return _response(request, reconciliation, warnings, errors)


@router.post("/carts/{cart_id}/lines/remove")
async def remove_lines(
    request: Request,
    cart_id: str,
    body: LinesRemoveBody,
    variant_id: str = Depends(select_variant),
    store_factory: Callable = Depends(get_cart_store_factory),
    resolver=Depends(get_resolver),
    variants: Dict[str, Variant] = Depends(get_variants),
    decline_window: timedelta = Depends(get_decline_window),
):
    """Remove lines, record declined free items, then reconcile."""
    store = store_factory(cart_id)
    before = await store.get()
    result = await store.remove_lines(body.line_ids)
    warnings, errors = list(result.warnings), list(result.errors)
    if result.ok:
        declined = await _record_removed_free_items(
            store, before, body.line_ids, variant_id, variants, utcnow(), decline_window
        )
        if declined is not None:
            warnings.extend(declined.warnings)
    reconciliation = await _reconcile(request, store, resolver, variant_id, variants)
    return _response(request, reconciliation, warnings, errors)


@router.put("/carts/{cart_id}/discount-codes")
async def update_discount_codes(
    request: Request,
    cart_id: str,
    body: DiscountCodesBody,
    variant_id: str = Depends(select_variant),
    store_factory: Callable = Depends(get_cart_store_factory),
    resolver=Depends(get_resolver),
    variants: Dict[str, Variant] = Depends(get_variants),
):
    """Replace the cart's codes with the new code plus the ones the shopper keeps, then reconcile."""
    requested = [body.discount_code] if body.discount_code else []
    requested.extend(c for c in body.discount_codes if c not in requested)
    store = store_factory(cart_id)
    result = await store.update_discount_codes(requested)
    reconciliation = await _reconcile(request, store, resolver, variant_id, variants)
    return _response(request, reconciliation, result.warnings, result.errors)


@router.post("/carts/{cart_id}/bundles")
async def add_bundle(
    request: Request,
    cart_id: str,
    body: BundleAddBody,
    variant_id: str = Depends(select_variant),
    store_factory: Callable = Depends(get_cart_store_factory),
    resolver=Depends(get_resolver),
    variants: Dict[str, Variant] = Depends(get_variants),
):
    """Add one bundle (one line per selected variant, shared bundle id), then reconcile."""
    store = store_factory(cart_id)
    result = await store.add_lines(build_bundle_lines(body.merchandise_ids, body.bundle_name))
    reconciliation = await _reconcile(request, store, resolver, variant_id, variants)
    return _response(request, reconciliation, result.warnings, result.errors)

"""Typed cart, milestone and plan models.

Storefront payloads carry attributes as a flat list of ``{key, value}`` pairs.
They are translated to typed fields here and only here; the rest of the
engine reads named fields.
"""

import logging
from datetime import datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .attributes import (
    BUNDLE_ID_KEY,
    BUNDLE_NAME_KEY,
    CART_RESERVED_KEYS,
    DECLINED_FREE_ITEMS_ATTRIBUTE,
    FREE_ITEM_KEY,
    FREE_ITEM_THRESHOLD_KEY,
    FREE_ITEM_TYPE_KEY,
    FREE_SHIPPING_ATTRIBUTE,
    LINE_RESERVED_KEYS,
    TRUE,
)
from .declines import parse_declines

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


def parse_amount(value: Any) -> Optional[Decimal]:
    """Parse a money amount; None for missing or malformed input."""
    if value is None or isinstance(value, bool):
        return None
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    if not amount.is_finite():
        return None
    return amount


def _pairs_to_dict(pairs: Optional[List[Dict[str, Any]]]) -> Dict[str, str]:
    out: Dict[str, str] = {}
    for pair in pairs or []:
        if not isinstance(pair, dict):
            continue
        key = pair.get("key")
        if not key:
            continue
        value = pair.get("value")
        out[str(key)] = "" if value is None else str(value)
    return out


class Money(BaseModel):
    amount: Decimal
    currency_code: str = "EUR"

    @classmethod
    def from_storefront(cls, payload: Any) -> Optional["Money"]:
        if not isinstance(payload, dict):
            return None
        amount = parse_amount(payload.get("amount"))
        if amount is None:
            return None
        return cls(amount=amount, currency_code=payload.get("currencyCode") or "EUR")


class LineCost(BaseModel):
    total_amount: Optional[Money] = None
    amount_per_quantity: Optional[Money] = None
    compare_at_amount_per_quantity: Optional[Money] = None

    @classmethod
    def from_storefront(cls, payload: Any) -> "LineCost":
        if not isinstance(payload, dict):
            return cls()
        return cls(
            total_amount=Money.from_storefront(payload.get("totalAmount")),
            amount_per_quantity=Money.from_storefront(payload.get("amountPerQuantity")),
            compare_at_amount_per_quantity=Money.from_storefront(
                payload.get("compareAtAmountPerQuantity")
            ),
        )

    @property
    def total(self) -> Decimal:
        """Current (post-discount) line cost; zero when unknown."""
        return self.total_amount.amount if self.total_amount else ZERO


class SelectedOption(BaseModel):
    name: str
    value: str


class Merchandise(BaseModel):
    id: str
    title: str = ""
    product_handle: Optional[str] = None
    product_title: Optional[str] = None
    selected_options: List[SelectedOption] = Field(default_factory=list)

    def option_value(self, name: str) -> Optional[str]:
        """Value of the named option, matched case-insensitively."""
        wanted = name.lower()
        for option in self.selected_options:
            if option.name.lower() == wanted:
                return option.value
        return None


class LineTags(BaseModel):
    """Typed view of a cart line's attributes."""

    bundle_name: Optional[str] = None
    bundle_id: Optional[str] = None
    free_item: bool = False
    free_item_type: Optional[str] = None
    free_item_threshold: Optional[Decimal] = None
    extra: Dict[str, str] = Field(default_factory=dict)

    @classmethod
    def from_pairs(cls, pairs: Optional[List[Dict[str, Any]]]) -> "LineTags":
        raw = _pairs_to_dict(pairs)
        free_item = raw.get(FREE_ITEM_KEY) == TRUE
        bundle_name = raw.get(BUNDLE_NAME_KEY) or None
        bundle_id = raw.get(BUNDLE_ID_KEY) or None
        if free_item and (bundle_name or bundle_id):
            logger.warning(
                "Free line also carries bundle tags; ignoring bundle identity (%s)",
                bundle_id or bundle_name,
            )
            bundle_name = bundle_id = None
        threshold = None
        if FREE_ITEM_THRESHOLD_KEY in raw:
            threshold = parse_amount(raw[FREE_ITEM_THRESHOLD_KEY])
        return cls(
            bundle_name=bundle_name,
            bundle_id=bundle_id,
            free_item=free_item,
            free_item_type=raw.get(FREE_ITEM_TYPE_KEY) or None,
            free_item_threshold=threshold,
            extra={k: v for k, v in raw.items() if k not in LINE_RESERVED_KEYS},
        )

    @classmethod
    def for_free_item(cls, handle: str, threshold: Decimal) -> "LineTags":
        return cls(free_item=True, free_item_type=handle, free_item_threshold=threshold)

    @classmethod
    def for_bundle(cls, bundle_name: str, bundle_id: str) -> "LineTags":
        return cls(bundle_name=bundle_name, bundle_id=bundle_id)

    @property
    def in_bundle(self) -> bool:
        return bool(self.bundle_name or self.bundle_id)

    def to_pairs(self) -> List[Dict[str, str]]:
        pairs: List[Dict[str, str]] = []
        if self.free_item:
            pairs.append({"key": FREE_ITEM_KEY, "value": TRUE})
            pairs.append({"key": FREE_ITEM_TYPE_KEY, "value": self.free_item_type or "unknown"})
            if self.free_item_threshold is not None:
                pairs.append(
                    {"key": FREE_ITEM_THRESHOLD_KEY, "value": format_threshold(self.free_item_threshold)}
                )
        else:
            if self.bundle_name:
                pairs.append({"key": BUNDLE_NAME_KEY, "value": self.bundle_name})
            if self.bundle_id:
                pairs.append({"key": BUNDLE_ID_KEY, "value": self.bundle_id})
        pairs.extend({"key": k, "value": v} for k, v in self.extra.items())
        return pairs


def format_threshold(threshold: Decimal) -> str:
    """Stringify a threshold without a trailing ``.0`` for whole numbers (100, 49.5)."""
    if threshold == threshold.to_integral_value():
        return str(threshold.quantize(Decimal("1")))
    return format(threshold.normalize(), "f")


class CartLine(BaseModel):
    id: str
    merchandise: Merchandise
    quantity: int = 1
    cost: LineCost = Field(default_factory=LineCost)
    tags: LineTags = Field(default_factory=LineTags)

    @classmethod
    def from_storefront(cls, payload: Dict[str, Any]) -> "CartLine":
        merchandise = payload.get("merchandise") or {}
        product = merchandise.get("product") or {}
        quantity = payload.get("quantity")
        return cls(
            id=str(payload.get("id") or ""),
            merchandise=Merchandise(
                id=str(merchandise.get("id") or ""),
                title=merchandise.get("title") or "",
                product_handle=product.get("handle"),
                product_title=product.get("title"),
                selected_options=[
                    SelectedOption(name=str(o.get("name", "")), value=str(o.get("value", "")))
                    for o in merchandise.get("selectedOptions") or []
                    if isinstance(o, dict)
                ],
            ),
            quantity=quantity if isinstance(quantity, int) and quantity > 0 else 1,
            cost=LineCost.from_storefront(payload.get("cost")),
            tags=LineTags.from_pairs(payload.get("attributes")),
        )

    @property
    def is_free(self) -> bool:
        return self.tags.free_item

    @property
    def free_item_handle(self) -> Optional[str]:
        """Milestone handle a free line belongs to (tag first, product handle as fallback)."""
        if not self.is_free:
            return None
        return self.tags.free_item_type or self.merchandise.product_handle


class CartAttributes(BaseModel):
    """Typed view of cart-level attributes."""

    free_shipping: bool = False
    declined_free_items: Dict[str, datetime] = Field(default_factory=dict)
    extra: Dict[str, str] = Field(default_factory=dict)

    @classmethod
    def from_pairs(cls, pairs: Optional[List[Dict[str, Any]]]) -> "CartAttributes":
        raw = _pairs_to_dict(pairs)
        return cls(
            free_shipping=raw.get(FREE_SHIPPING_ATTRIBUTE) == TRUE,
            declined_free_items=parse_declines(raw.get(DECLINED_FREE_ITEMS_ATTRIBUTE)),
            extra={k: v for k, v in raw.items() if k not in CART_RESERVED_KEYS},
        )


class DiscountCode(BaseModel):
    code: str
    applicable: bool = True


class CartSnapshot(BaseModel):
    id: str
    lines: List[CartLine] = Field(default_factory=list)
    attributes: CartAttributes = Field(default_factory=CartAttributes)
    raw_attributes: Dict[str, str] = Field(default_factory=dict)
    discount_codes: List[DiscountCode] = Field(default_factory=list)
    subtotal_amount: Optional[Money] = None
    total_quantity: int = 0
    checkout_url: Optional[str] = None

    @classmethod
    def from_storefront(cls, payload: Dict[str, Any]) -> "CartSnapshot":
        lines_payload = (payload.get("lines") or {}).get("nodes") or []
        cost = payload.get("cost") or {}
        attributes = payload.get("attributes") or []
        return cls(
            id=str(payload.get("id") or ""),
            lines=[CartLine.from_storefront(line) for line in lines_payload if isinstance(line, dict)],
            attributes=CartAttributes.from_pairs(attributes),
            raw_attributes=_pairs_to_dict(attributes),
            discount_codes=[
                DiscountCode(code=str(d.get("code", "")), applicable=bool(d.get("applicable", True)))
                for d in payload.get("discountCodes") or []
                if isinstance(d, dict) and d.get("code")
            ],
            subtotal_amount=Money.from_storefront(cost.get("subtotalAmount")),
            total_quantity=payload.get("totalQuantity") or 0,
            checkout_url=payload.get("checkoutUrl"),
        )

    @property
    def currency_code(self) -> str:
        if self.subtotal_amount:
            return self.subtotal_amount.currency_code
        for line in self.lines:
            if line.cost.total_amount:
                return line.cost.total_amount.currency_code
        return "EUR"

    @property
    def codes(self) -> List[str]:
        return [d.code for d in self.discount_codes]

    def line_by_id(self, line_id: str) -> Optional[CartLine]:
        for line in self.lines:
            if line.id == line_id:
                return line
        return None


class MilestoneType(str, Enum):
    SHIPPING = "shipping"
    FREE_ITEM = "freeItem"


class Milestone(BaseModel):
    """A single threshold rule; immutable once configured."""

    model_config = ConfigDict(frozen=True)

    threshold: Decimal
    type: MilestoneType
    handle: Optional[str] = None
    title: Optional[str] = None
    variant: Optional[str] = None


class MilestoneProgress(Milestone):
    achieved: bool
    remaining: Decimal
    eligible: bool


class CartPerksState(BaseModel):
    variant: str
    subtotal: Decimal
    currency_code: str = "EUR"
    milestones: List[MilestoneProgress] = Field(default_factory=list)
    next_milestone: Optional[MilestoneProgress] = None
    has_progress: bool = False
    all_achieved: bool = False

    def milestone_for_handle(self, handle: str) -> Optional[MilestoneProgress]:
        for milestone in self.milestones:
            if milestone.type == MilestoneType.FREE_ITEM and milestone.handle == handle:
                return milestone
        return None


class BundleGroup(BaseModel):
    bundle_id: str
    bundle_name: str
    lines: List[CartLine]
    quantity: int
    required_size: int
    total_price: Decimal
    original_price: Decimal
    savings: Decimal
    summary: str
    currency_code: str = "EUR"
    discount_code: Optional[str] = None
    discount_percent: int = 0

    @property
    def is_complete(self) -> bool:
        return self.quantity == self.required_size

    @property
    def status(self) -> str:
        return "complete" if self.is_complete else "incomplete"


class BundleGrouping(BaseModel):
    groups: List[BundleGroup] = Field(default_factory=list)
    ungrouped: List[CartLine] = Field(default_factory=list)


class LineInput(BaseModel):
    """A line to add to the cart."""

    merchandise_id: str
    quantity: int = 1
    tags: LineTags = Field(default_factory=LineTags)

    def to_storefront(self) -> Dict[str, Any]:
        return {
            "merchandiseId": self.merchandise_id,
            "quantity": self.quantity,
            "attributes": self.tags.to_pairs(),
        }


class LineQuantityUpdate(BaseModel):
    id: str
    quantity: int

    def to_storefront(self) -> Dict[str, Any]:
        return {"id": self.id, "quantity": self.quantity}


class ReconciliationPlan(BaseModel):
    """Declarative diff that brings a cart in line with its perks and bundles."""

    attribute_updates: Dict[str, str] = Field(default_factory=dict)
    lines_to_add: List[LineInput] = Field(default_factory=list)
    line_ids_to_remove: List[str] = Field(default_factory=list)
    lines_to_update: List[LineQuantityUpdate] = Field(default_factory=list)
    discount_codes_to_add: List[str] = Field(default_factory=list)
    discount_codes_to_remove: List[str] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (
            self.attribute_updates
            or self.lines_to_add
            or self.line_ids_to_remove
            or self.lines_to_update
            or self.discount_codes_to_add
            or self.discount_codes_to_remove
        )

    def summary(self) -> str:
        if self.is_empty:
            return "no-op"
        parts = [
            f"+{len(self.lines_to_add)}",
            f"-{len(self.line_ids_to_remove)}",
            f"~{len(self.lines_to_update)}",
        ]
        if self.attribute_updates:
            parts.append("attrs " + ",".join(sorted(self.attribute_updates)))
        if self.discount_codes_to_add:
            parts.append("codes +" + ",".join(self.discount_codes_to_add))
        if self.discount_codes_to_remove:
            parts.append("codes -" + ",".join(self.discount_codes_to_remove))
        return " ".join(parts)

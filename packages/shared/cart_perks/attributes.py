"""Reserved line/cart attribute keys and discount codes (storefront wire contract)."""

# Line attributes
BUNDLE_NAME_KEY = "_BUNDLE_NAME"
BUNDLE_ID_KEY = "_BUNDLE_ID"
FREE_ITEM_KEY = "_FREE_ITEM"
FREE_ITEM_TYPE_KEY = "_FREE_ITEM_TYPE"
FREE_ITEM_THRESHOLD_KEY = "_FREE_ITEM_THRESHOLD"

LINE_RESERVED_KEYS = frozenset(
    {
        BUNDLE_NAME_KEY,
        BUNDLE_ID_KEY,
        FREE_ITEM_KEY,
        FREE_ITEM_TYPE_KEY,
        FREE_ITEM_THRESHOLD_KEY,
    }
)

# Cart attributes
FREE_SHIPPING_ATTRIBUTE = "__FREE_SHIPPING"
DECLINED_FREE_ITEMS_ATTRIBUTE = "__FREE_ITEM_DECLINED"

CART_RESERVED_KEYS = frozenset({FREE_SHIPPING_ATTRIBUTE, DECLINED_FREE_ITEMS_ATTRIBUTE})

TRUE = "true"
FALSE = "false"

BUNDLE_DISCOUNT_CODE = "BUNDLE20"


def bool_value(value: bool) -> str:
    """Serialize a flag the way the storefront stores it."""
    return TRUE if value else FALSE

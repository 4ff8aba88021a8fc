"""Reconciliation subtotal: what the shopper pays for, free lines excluded."""

from decimal import Decimal
from typing import Iterable

from .models import ZERO, CartLine


def compute_reconciliation_subtotal(lines: Iterable[CartLine]) -> Decimal:
    """Sum of current line costs, excluding lines tagged ``_FREE_ITEM=true``.

    Missing or malformed costs count as zero.
    """
    total = ZERO
    for line in lines or []:
        if line.is_free:
            continue
        total += line.cost.total
    return total

"""Declined free items.

When a shopper removes a free line whose milestone is still achieved, the
handle is recorded in the ``__FREE_ITEM_DECLINED`` cart attribute with an
expiry, as ``handle@2026-10-19T10:30:00Z[,handle@...]``. Until it expires the
planner will not re-add that free item. The record lives in the cart itself so
every reconciliation pass can re-derive it.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, Optional

logger = logging.getLogger(__name__)

DEFAULT_DECLINE_WINDOW = timedelta(minutes=30)

_TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_declines(raw: Optional[str]) -> Dict[str, datetime]:
    """Parse the attribute value; malformed entries are dropped."""
    declines: Dict[str, datetime] = {}
    if not raw:
        return declines
    for entry in raw.split(","):
        handle, sep, stamp = entry.strip().partition("@")
        if not handle or not sep:
            continue
        try:
            expires_at = datetime.strptime(stamp.strip(), _TIMESTAMP_FORMAT).replace(tzinfo=timezone.utc)
        except ValueError:
            logger.warning("Ignoring malformed free item decline entry: %s", entry)
            continue
        current = declines.get(handle)
        if current is None or expires_at > current:
            declines[handle] = expires_at
    return declines


def format_declines(declines: Dict[str, datetime]) -> str:
    return ",".join(
        f"{handle}@{_as_utc(expires_at).strftime(_TIMESTAMP_FORMAT)}"
        for handle, expires_at in sorted(declines.items())
    )


def is_declined(declines: Dict[str, datetime], handle: str, now: datetime) -> bool:
    expires_at = declines.get(handle)
    return expires_at is not None and _as_utc(expires_at) > _as_utc(now)


def record_declines(
    declines: Dict[str, datetime],
    handles: Iterable[str],
    now: datetime,
    window: timedelta = DEFAULT_DECLINE_WINDOW,
) -> Dict[str, datetime]:
    """Return a copy with each handle declined until ``now + window``."""
    updated = dict(declines)
    # Second precision, matching the stored format.
    expires_at = (_as_utc(now) + window).replace(microsecond=0)
    for handle in handles:
        updated[handle] = expires_at
    return updated


def prune_declines(
    declines: Dict[str, datetime],
    achieved_handles: Iterable[str],
    now: datetime,
) -> Dict[str, datetime]:
    """Keep only unexpired declines whose milestone is still achieved."""
    achieved = set(achieved_handles)
    return {
        handle: expires_at
        for handle, expires_at in declines.items()
        if handle in achieved and is_declined(declines, handle, now)
    }

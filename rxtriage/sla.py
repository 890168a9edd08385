"""
SLA / wait-time arithmetic.

All functions take ``now`` explicitly; nothing here reads the wall clock.
Datetimes must be timezone-aware.
"""

from __future__ import annotations

import math
from datetime import datetime
from typing import Optional


def require_aware(value: datetime, name: str) -> None:
    """Raise ``ValueError`` if ``value`` is a naive datetime."""
    if value.tzinfo is None or value.tzinfo.utcoffset(value) is None:
        raise ValueError(f"{name} must be timezone-aware, got naive datetime {value!r}")


def time_in_queue(created_at: datetime, now: datetime) -> int:
    """Whole minutes since ``created_at``.

    Clock skew that would put ``created_at`` in the future yields 0.
    """
    require_aware(created_at, "created_at")
    require_aware(now, "now")
    minutes = math.floor((now - created_at).total_seconds() / 60)
    return max(0, minutes)


def minutes_to_breach(
    promised_delivery_at: Optional[datetime], now: datetime
) -> Optional[int]:
    """Signed whole minutes until the promised delivery deadline.

    Negative once the deadline has passed.  ``None`` means the order has no
    deadline, which is a valid state and not an error.
    """
    if promised_delivery_at is None:
        return None
    require_aware(promised_delivery_at, "promised_delivery_at")
    require_aware(now, "now")
    return math.floor((promised_delivery_at - now).total_seconds() / 60)


def is_breached(promised_delivery_at: Optional[datetime], now: datetime) -> bool:
    remaining = minutes_to_breach(promised_delivery_at, now)
    return remaining is not None and remaining < 0


def estimate_wait_time(queue_position: int, avg_fulfillment_minutes: float = 15) -> int:
    """Rough wait estimate: queue position times average fulfillment time."""
    if avg_fulfillment_minutes < 0:
        raise ValueError("avg_fulfillment_minutes must be >= 0")
    return math.ceil(max(0, queue_position) * avg_fulfillment_minutes)

"""
Queue Organizer -- ordering and grouping scored orders for presentation.

Sorting is stable: orders with equal scores keep their input order, so the
queue does not reshuffle equal-score items between refreshes.  Grouping
always returns all four tiers.

This module also assembles ``OrderQueueItem`` records from raw order data:
``build_order_context`` validates the record at the boundary and
``build_queue_item`` runs scorer, classifier and action resolver.
"""

from __future__ import annotations

import logging
from datetime import datetime
from operator import attrgetter
from typing import Any, Callable, Iterable, Mapping, Optional, TypeVar

from pydantic import ValidationError

from rxtriage.actions import resolve_available_actions
from rxtriage.config import DEFAULT_PRIORITY_POLICY, PriorityPolicy, TierThresholds
from rxtriage.models import (
    AIVerificationResult,
    OrderContext,
    OrderFlags,
    OrderQueueItem,
    OrderStatus,
    PatientFlags,
    PriorityTier,
)
from rxtriage.priority import classify_tier, explain_priority_score
from rxtriage.sla import time_in_queue

logger = logging.getLogger(__name__)

T = TypeVar("T")

_score_of = attrgetter("priority_score")


class InvalidOrderRecordError(Exception):
    """Raised when a raw order record lacks fields required for scoring."""
    pass


# ---------------------------------------------------------------------------
# Sorting and grouping
# ---------------------------------------------------------------------------

def sort_by_priority(
    orders: Iterable[T],
    key: Callable[[T], float] = _score_of,
) -> list[T]:
    """Return a new list sorted by score, highest first.

    Python's sort is stable, and ``reverse=True`` preserves the relative
    order of equal keys, so ties stay in input order.
    """
    return sorted(orders, key=key, reverse=True)


def group_by_tier(
    orders: Iterable[T],
    key: Callable[[T], float] = _score_of,
    thresholds: TierThresholds = DEFAULT_PRIORITY_POLICY.tiers,
) -> dict[PriorityTier, list[T]]:
    """Partition orders into tiers, each sorted highest score first.

    Every tier is present in the result, in CRITICAL -> LOW order.
    """
    groups: dict[PriorityTier, list[T]] = {tier: [] for tier in PriorityTier}
    for order in orders:
        groups[classify_tier(key(order), thresholds)].append(order)
    return {tier: sort_by_priority(members, key) for tier, members in groups.items()}


# ---------------------------------------------------------------------------
# Queue item assembly
# ---------------------------------------------------------------------------

_REQUIRED_RECORD_FIELDS = ("created_at", "patient", "ai_verification")


def build_order_context(record: Mapping[str, Any], now: datetime) -> OrderContext:
    """Build a scoring context from a raw order record.

    Expected keys::

        created_at              datetime (required)
        promised_delivery_at    datetime | None
        patient                 {is_chronic_patient, preferred_tier, has_refill_history}
        items_count             int
        has_controlled_substance, has_interaction_warning   bool
        ai_verification         {status, confidence, attention_flags} or an
                                AIVerificationResult (required)

    Missing required fields fail here, before any scoring happens, instead
    of being silently defaulted.

    Raises:
        InvalidOrderRecordError: If a required field is absent or invalid.
    """
    missing = [name for name in _REQUIRED_RECORD_FIELDS if record.get(name) is None]
    if missing:
        logger.warning("order record %s missing fields %s", record.get("id"), missing)
        raise InvalidOrderRecordError(
            f"Order record {record.get('id')!r} is missing required fields: {missing}"
        )

    patient = record["patient"]
    try:
        return OrderContext(
            time_in_queue_minutes=time_in_queue(record["created_at"], now),
            promised_delivery_at=record.get("promised_delivery_at"),
            patient=PatientFlags(
                is_chronic=patient.get("is_chronic_patient", False),
                is_preferred_tier=patient.get("preferred_tier", False),
                has_refill_history=patient.get("has_refill_history", False),
            ),
            order=OrderFlags(
                has_controlled_substance=record.get("has_controlled_substance", False),
                has_interaction_warning=record.get("has_interaction_warning", False),
                item_count=record.get("items_count", 1),
            ),
            ai_verification=AIVerificationResult.model_validate(record["ai_verification"]),
        )
    except (ValidationError, ValueError, TypeError, AttributeError) as exc:
        logger.warning("order record %s failed validation: %s", record.get("id"), exc)
        raise InvalidOrderRecordError(
            f"Order record {record.get('id')!r} is invalid: {exc}"
        ) from exc


def build_queue_item(
    order_id: str,
    context: OrderContext,
    status: OrderStatus,
    now: datetime,
    policy: PriorityPolicy = DEFAULT_PRIORITY_POLICY,
) -> OrderQueueItem:
    """Score, classify and resolve actions for one order."""
    breakdown = explain_priority_score(context, now, policy)
    return OrderQueueItem(
        order_id=order_id,
        status=status,
        context=context,
        priority_score=breakdown.score,
        priority_tier=classify_tier(breakdown.score, policy.tiers),
        sla_breach_in_minutes=breakdown.minutes_to_breach,
        available_actions=resolve_available_actions(
            status,
            context.ai_verification.status,
            context.order.has_controlled_substance,
        ),
    )


def build_queue(
    records: Iterable[Mapping[str, Any]],
    now: datetime,
    policy: PriorityPolicy = DEFAULT_PRIORITY_POLICY,
    default_status: Optional[OrderStatus] = None,
) -> list[OrderQueueItem]:
    """Build and sort queue items from raw records.

    Each record needs an ``id`` and a ``status`` (or ``default_status`` is
    used).  Invalid records raise ``InvalidOrderRecordError``; a partially
    built queue is never returned.
    """
    items: list[OrderQueueItem] = []
    for record in records:
        raw_status = record.get("status", default_status)
        if raw_status is None or not record.get("id"):
            raise InvalidOrderRecordError(
                f"Order record {record.get('id')!r} needs both 'id' and 'status'"
            )
        try:
            status = OrderStatus(raw_status)
        except ValueError as exc:
            raise InvalidOrderRecordError(
                f"Order record {record.get('id')!r} has unknown status {raw_status!r}"
            ) from exc
        context = build_order_context(record, now)
        items.append(build_queue_item(str(record["id"]), context, status, now, policy))
    return sort_by_priority(items)

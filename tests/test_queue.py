"""
Tests for rxtriage.queue -- Queue Organizer and queue item assembly.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from rxtriage.models import (
    AIVerificationResult,
    OrderAction,
    OrderStatus,
    PriorityTier,
    VerificationStatus,
)
from rxtriage.queue import (
    InvalidOrderRecordError,
    build_order_context,
    build_queue,
    build_queue_item,
    group_by_tier,
    sort_by_priority,
)

NOW = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


class _Scored:
    def __init__(self, name: str, priority_score: int) -> None:
        self.name = name
        self.priority_score = priority_score

    def __repr__(self) -> str:
        return f"_Scored({self.name}, {self.priority_score})"


def _make_record(**kwargs) -> dict:
    record = {
        "id": "ord-1",
        "status": "PENDING_VERIFICATION",
        "created_at": NOW - timedelta(minutes=30),
        "promised_delivery_at": None,
        "patient": {"is_chronic_patient": False, "preferred_tier": False, "has_refill_history": False},
        "items_count": 2,
        "has_controlled_substance": False,
        "has_interaction_warning": False,
        "ai_verification": {"status": "approved", "confidence": 0.92, "attention_flags": []},
    }
    record.update(kwargs)
    return record


# ---------------------------------------------------------------------------
# 1. Sorting
# ---------------------------------------------------------------------------

class TestSortByPriority:
    def test_descending(self):
        orders = [_Scored("a", 40), _Scored("b", 90), _Scored("c", 70)]
        assert [o.name for o in sort_by_priority(orders)] == ["b", "c", "a"]

    def test_stable_for_equal_scores(self):
        orders = [_Scored("a", 50), _Scored("b", 80), _Scored("c", 50), _Scored("d", 50)]
        assert [o.name for o in sort_by_priority(orders)] == ["b", "a", "c", "d"]

    def test_input_not_mutated(self):
        orders = [_Scored("a", 10), _Scored("b", 20)]
        sort_by_priority(orders)
        assert [o.name for o in orders] == ["a", "b"]

    def test_custom_key(self):
        orders = [{"id": 1, "score": 3}, {"id": 2, "score": 9}]
        assert sort_by_priority(orders, key=lambda o: o["score"])[0]["id"] == 2

    def test_empty(self):
        assert sort_by_priority([]) == []


# ---------------------------------------------------------------------------
# 2. Grouping
# ---------------------------------------------------------------------------

class TestGroupByTier:
    def test_all_tiers_present(self):
        groups = group_by_tier([])
        assert list(groups) == [
            PriorityTier.CRITICAL,
            PriorityTier.HIGH,
            PriorityTier.NORMAL,
            PriorityTier.LOW,
        ]
        assert all(members == [] for members in groups.values())

    def test_partition_without_loss_or_duplication(self):
        orders = [_Scored(str(i), s) for i, s in enumerate([0, 34, 35, 64, 65, 84, 85, 100, 50, 50])]
        groups = group_by_tier(orders)
        flattened = [o for members in groups.values() for o in members]
        assert sorted(map(id, flattened)) == sorted(map(id, orders))
        assert [o.priority_score for o in groups[PriorityTier.CRITICAL]] == [100, 85]
        assert [o.priority_score for o in groups[PriorityTier.HIGH]] == [84, 65]
        assert [o.priority_score for o in groups[PriorityTier.NORMAL]] == [64, 50, 50, 35]
        assert [o.priority_score for o in groups[PriorityTier.LOW]] == [34, 0]

    def test_groups_keep_tie_order(self):
        orders = [_Scored("x", 50), _Scored("y", 50)]
        assert [o.name for o in group_by_tier(orders)[PriorityTier.NORMAL]] == ["x", "y"]


# ---------------------------------------------------------------------------
# 3. Order context boundary
# ---------------------------------------------------------------------------

class TestBuildOrderContext:
    def test_valid_record(self):
        ctx = build_order_context(_make_record(items_count=7), NOW)
        assert ctx.time_in_queue_minutes == 30
        assert ctx.order.item_count == 7
        assert ctx.ai_verification.status == VerificationStatus.APPROVED

    def test_missing_ai_verification_fails_fast(self):
        record = _make_record()
        del record["ai_verification"]
        with pytest.raises(InvalidOrderRecordError):
            build_order_context(record, NOW)

    def test_accepts_validated_ai_verification(self):
        verification = AIVerificationResult(status=VerificationStatus.NEEDS_REVIEW, confidence=0.6)
        ctx = build_order_context(_make_record(ai_verification=verification), NOW)
        assert ctx.ai_verification == verification

    def test_non_mapping_ai_verification_rejected(self):
        with pytest.raises(InvalidOrderRecordError):
            build_order_context(_make_record(ai_verification="approved"), NOW)

    def test_null_patient_fails_fast(self):
        with pytest.raises(InvalidOrderRecordError):
            build_order_context(_make_record(patient=None), NOW)

    def test_out_of_range_confidence_rejected(self):
        record = _make_record(ai_verification={"status": "approved", "confidence": 1.4})
        with pytest.raises(InvalidOrderRecordError):
            build_order_context(record, NOW)

    def test_unknown_ai_status_rejected(self):
        record = _make_record(ai_verification={"status": "maybe", "confidence": 0.5})
        with pytest.raises(InvalidOrderRecordError):
            build_order_context(record, NOW)

    def test_context_is_immutable(self):
        ctx = build_order_context(_make_record(), NOW)
        with pytest.raises(Exception):
            ctx.time_in_queue_minutes = 99


# ---------------------------------------------------------------------------
# 4. Queue items
# ---------------------------------------------------------------------------

class TestBuildQueueItem:
    def test_item_fields(self):
        ctx = build_order_context(
            _make_record(
                promised_delivery_at=NOW + timedelta(minutes=50),
                has_controlled_substance=True,
            ),
            NOW,
        )
        item = build_queue_item("ord-1", ctx, OrderStatus.READY, NOW)
        # 50 + 10 time + 15 SLA + 5 controlled
        assert item.priority_score == 80
        assert item.priority_tier == PriorityTier.HIGH
        assert item.sla_breach_in_minutes == 50
        assert item.available_actions == [
            OrderAction.VIEW_PRESCRIPTION,
            OrderAction.ASSIGN_COURIER,
            OrderAction.CALL_PATIENT,
            OrderAction.CHECK_INTERACTIONS,
        ]

    def test_build_queue_sorts(self):
        records = [
            _make_record(id="low", ai_verification={"status": "rejected", "confidence": 0.9}),
            _make_record(id="high", promised_delivery_at=NOW + timedelta(minutes=10)),
            _make_record(id="mid"),
        ]
        queue = build_queue(records, NOW)
        assert [item.order_id for item in queue] == ["high", "mid", "low"]

    def test_build_queue_unknown_status(self):
        with pytest.raises(InvalidOrderRecordError):
            build_queue([_make_record(status="LOST")], NOW)

    def test_build_queue_default_status(self):
        record = _make_record()
        del record["status"]
        queue = build_queue([record], NOW, default_status=OrderStatus.PREPARING)
        assert queue[0].status == OrderStatus.PREPARING

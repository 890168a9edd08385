"""
Triage Report Generator.

Summarizes why an order sits where it does in the pharmacist queue: its
score and tier, the SLA figure, the currently legal actions and the
reasoning chain of score contributions.  Reports are plain dictionaries
once serialized, ready for a dashboard or an audit export.

``generated_at`` is supplied by the caller; the report never reads the clock.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from rxtriage.models import OrderQueueItem
from rxtriage.priority import ScoreBreakdown, tier_label_key


class TriageReport:
    """A structured explanation of one order's queue position."""

    def __init__(
        self,
        order_id: str,
        status: str,
        priority_score: int,
        priority_tier: str,
        tier_label_key: str,
        sla_breach_in_minutes: Optional[int],
        available_actions: list[str],
        contributions: list[dict[str, Any]],
        reasoning_chain: list[str],
        attention_flags: list[str],
        generated_at: str,
    ) -> None:
        self.order_id = order_id
        self.status = status
        self.priority_score = priority_score
        self.priority_tier = priority_tier
        self.tier_label_key = tier_label_key
        self.sla_breach_in_minutes = sla_breach_in_minutes
        self.available_actions = available_actions
        self.contributions = contributions
        self.reasoning_chain = reasoning_chain
        self.attention_flags = attention_flags
        self.generated_at = generated_at

    def to_dict(self) -> dict[str, Any]:
        """Serialize the report to a dictionary."""
        return {
            "report_type": "Triage Report",
            "order_id": self.order_id,
            "status": self.status,
            "priority_score": self.priority_score,
            "priority_tier": self.priority_tier,
            "tier_label_key": self.tier_label_key,
            "sla_breach_in_minutes": self.sla_breach_in_minutes,
            "available_actions": self.available_actions,
            "contributions": self.contributions,
            "reasoning_chain": self.reasoning_chain,
            "attention_flags": self.attention_flags,
            "generated_at": self.generated_at,
        }

    def __repr__(self) -> str:
        return (
            f"TriageReport(order_id={self.order_id}, "
            f"score={self.priority_score}, tier={self.priority_tier})"
        )


def generate_triage_report(
    item: OrderQueueItem,
    breakdown: ScoreBreakdown,
    generated_at: datetime,
) -> TriageReport:
    """Build a report for a queue item from its score breakdown.

    Raises:
        ValueError: If the breakdown does not belong to the item (scores differ).
    """
    if breakdown.score != item.priority_score:
        raise ValueError(
            f"Breakdown score {breakdown.score} does not match queue item "
            f"{item.order_id} score {item.priority_score}."
        )

    reasoning = breakdown.reasons()
    if breakdown.clamped:
        reasoning.append(
            f"Raw total {breakdown.raw_total} clamped to {breakdown.score}."
        )

    return TriageReport(
        order_id=item.order_id,
        status=item.status.value,
        priority_score=item.priority_score,
        priority_tier=item.priority_tier.value,
        tier_label_key=tier_label_key(item.priority_tier),
        sla_breach_in_minutes=item.sla_breach_in_minutes,
        available_actions=[a.value for a in item.available_actions],
        contributions=[c.to_dict() for c in breakdown.contributions],
        reasoning_chain=reasoning,
        attention_flags=list(item.context.ai_verification.attention_flags),
        generated_at=generated_at.isoformat(),
    )

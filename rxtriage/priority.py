"""
Priority Scorer and Tier Classifier.

Computes a 0-100 priority score for an order from its queue time, delivery
deadline, patient and order flags and the AI verification summary.  The
score is an additive point system over the weights of a ``PriorityPolicy``:

1. base score;
2. time pressure, one point per N minutes in queue, capped;
3. stepped SLA bonus by minutes to breach (no deadline, no bonus);
4. patient bonuses (chronic, preferred tier, refill history), stacking;
5. order adjustments (controlled substance, interaction warning penalty,
   large order);
6. AI adjustments (needs_review bonus, rejected penalty, low confidence
   bonus unless rejected);
7. clamp to the policy range and round half up.

Each contribution is recorded in a ``ScoreBreakdown`` so the number shown to
a pharmacist can always be explained.
"""

from __future__ import annotations

import logging
import math
from datetime import datetime
from typing import Any

from rxtriage.config import DEFAULT_PRIORITY_POLICY, PriorityPolicy, TierThresholds
from rxtriage.models import OrderContext, PriorityTier, VerificationStatus
from rxtriage.sla import minutes_to_breach, require_aware

logger = logging.getLogger(__name__)


class ScoreContribution:
    """One rule's effect on the score."""

    def __init__(self, rule: str, points: float, reason: str) -> None:
        self.rule = rule
        self.points = points
        self.reason = reason

    def to_dict(self) -> dict[str, Any]:
        return {"rule": self.rule, "points": self.points, "reason": self.reason}

    def __repr__(self) -> str:
        return f"ScoreContribution(rule={self.rule}, points={self.points})"


class ScoreBreakdown:
    """Result of scoring an order: every contribution plus the final score."""

    def __init__(
        self,
        contributions: list[ScoreContribution],
        raw_total: float,
        score: int,
        minutes_to_breach: int | None,
        clamped: bool = False,
    ) -> None:
        self.contributions = contributions
        self.raw_total = raw_total
        self.score = score
        self.minutes_to_breach = minutes_to_breach
        self.clamped = clamped

    def points_for(self, rule: str) -> float:
        """Total points contributed by ``rule`` (0 if it did not fire)."""
        return sum(c.points for c in self.contributions if c.rule == rule)

    def reasons(self) -> list[str]:
        return [c.reason for c in self.contributions]

    def __repr__(self) -> str:
        return (
            f"ScoreBreakdown(score={self.score}, raw_total={self.raw_total}, "
            f"rules={[c.rule for c in self.contributions]})"
        )


def explain_priority_score(
    context: OrderContext,
    now: datetime,
    policy: PriorityPolicy = DEFAULT_PRIORITY_POLICY,
) -> ScoreBreakdown:
    """Score an order and record why.

    Args:
        context: The order's scoring inputs.
        now: Reference time for the SLA computation.
        policy: Weights and thresholds to apply.

    Returns:
        A ``ScoreBreakdown`` whose ``score`` is the clamped integer score.

    Raises:
        ValueError: If ``now`` is a naive datetime, whether or not the
            order has a deadline.
    """
    require_aware(now, "now")

    contributions: list[ScoreContribution] = []

    def add(rule: str, points: float, reason: str) -> None:
        contributions.append(ScoreContribution(rule, points, reason))

    add("base", policy.base_score, f"Base score {policy.base_score}.")

    # --- Time pressure ---
    tiq = policy.time_in_queue
    time_points = min(
        tiq.max_points,
        context.time_in_queue_minutes // tiq.minutes_per_point,
    )
    if time_points:
        add(
            "time_in_queue",
            time_points,
            f"{context.time_in_queue_minutes} min in queue "
            f"(+1 per {tiq.minutes_per_point} min, max {tiq.max_points}).",
        )

    # --- SLA breach risk ---
    breach = minutes_to_breach(context.promised_delivery_at, now)
    if breach is not None:
        sla = policy.sla_breach
        if breach < sla.imminent_minutes:
            points, label = sla.imminent_points, f"< {sla.imminent_minutes} min"
        elif breach < sla.soon_minutes:
            points, label = sla.soon_points, f"< {sla.soon_minutes} min"
        elif breach < sla.approaching_minutes:
            points, label = sla.approaching_points, f"< {sla.approaching_minutes} min"
        else:
            points, label = sla.distant_points, f">= {sla.approaching_minutes} min"
        add("sla_breach", points, f"{breach} min to promised delivery ({label}).")

    # --- Patient ---
    if context.patient.is_chronic:
        add("chronic_patient", policy.patient.chronic, "Chronic patient.")
    if context.patient.is_preferred_tier:
        add("preferred_tier", policy.patient.preferred_tier, "Preferred-tier patient.")
    if context.patient.has_refill_history:
        add("refill_history", policy.patient.refill_history, "Patient has refill history.")

    # --- Order complexity ---
    order = context.order
    if order.has_controlled_substance:
        add(
            "controlled_substance",
            policy.order.controlled_substance,
            "Controlled substance requires special handling.",
        )
    if order.has_interaction_warning:
        add(
            "interaction_warning",
            policy.order.interaction_warning,
            "Interaction warning: allow time for careful review.",
        )
    if order.item_count > policy.order.large_order_min_items:
        add(
            "large_order",
            policy.order.large_order,
            f"Large order ({order.item_count} items).",
        )

    # --- AI verification ---
    ai = context.ai_verification
    if ai.status == VerificationStatus.NEEDS_REVIEW:
        add("ai_needs_review", policy.ai.needs_review, "AI verification needs review.")
    elif ai.status == VerificationStatus.REJECTED:
        add("ai_rejected", policy.ai.rejected, "AI verification rejected the prescription.")

    if (
        ai.confidence < policy.ai.low_confidence_threshold
        and ai.status != VerificationStatus.REJECTED
    ):
        add(
            "ai_low_confidence",
            policy.ai.low_confidence,
            f"AI confidence {ai.confidence:.2f} below {policy.ai.low_confidence_threshold:.2f}.",
        )

    raw_total = sum(c.points for c in contributions)
    score = _clamp_round(raw_total, policy.min_score, policy.max_score)

    logger.debug(
        "priority score computed: score=%s raw=%s rules=%s",
        score,
        raw_total,
        [c.rule for c in contributions],
    )
    return ScoreBreakdown(
        contributions=contributions,
        raw_total=raw_total,
        score=score,
        minutes_to_breach=breach,
        clamped=not (policy.min_score <= raw_total <= policy.max_score),
    )


def compute_priority_score(
    context: OrderContext,
    now: datetime,
    policy: PriorityPolicy = DEFAULT_PRIORITY_POLICY,
) -> int:
    """Return the clamped 0-100 priority score for an order."""
    return explain_priority_score(context, now, policy).score


def classify_tier(
    score: float,
    thresholds: TierThresholds = DEFAULT_PRIORITY_POLICY.tiers,
) -> PriorityTier:
    """Map a score to its tier; thresholds are checked highest first."""
    if score >= thresholds.critical:
        return PriorityTier.CRITICAL
    if score >= thresholds.high:
        return PriorityTier.HIGH
    if score >= thresholds.normal:
        return PriorityTier.NORMAL
    return PriorityTier.LOW


def tier_label_key(tier: PriorityTier) -> str:
    """Message key under which presentation layers look up the tier label."""
    return f"priority.tier.{tier.value.lower()}"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _clamp_round(value: float, lower: int, upper: int) -> int:
    """Clamp into [lower, upper] and round half up."""
    return int(max(lower, min(upper, math.floor(value + 0.5))))

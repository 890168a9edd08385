"""
Action Resolver -- which operator actions are legal for an order right now.

The resolver is a fixed lookup table over ``OrderStatus``, refined by the
AI verification status for the two review stages, plus one cross-cutting
rule: controlled substances always offer an interaction check.

The table lists every ``OrderStatus`` explicitly (statuses with no actions
map to an empty tuple) so that adding a status without deciding its actions
fails the completeness test.

The resolver only enumerates actions.  It never executes them and never
changes an order's status.
"""

from __future__ import annotations

from rxtriage.models import OrderAction, OrderStatus, VerificationStatus


# ---------------------------------------------------------------------------
# Action table
# ---------------------------------------------------------------------------

_REVIEW_STATUSES: frozenset[OrderStatus] = frozenset({
    OrderStatus.PENDING_VERIFICATION,
    OrderStatus.PENDING_PHARMACIST_REVIEW,
})

# Review stages: actions depend on what the AI concluded.
_REVIEW_ACTIONS: dict[VerificationStatus, tuple[OrderAction, ...]] = {
    VerificationStatus.APPROVED: (
        OrderAction.VERIFY,
        OrderAction.REJECT,
        OrderAction.CHECK_INTERACTIONS,
    ),
    VerificationStatus.NEEDS_REVIEW: (
        OrderAction.VERIFY,
        OrderAction.REJECT,
        OrderAction.CHECK_INTERACTIONS,
        OrderAction.REQUEST_CLARIFICATION,
    ),
    VerificationStatus.REJECTED: (),
}

_STATUS_ACTIONS: dict[OrderStatus, tuple[OrderAction, ...]] = {
    OrderStatus.PENDING_IMAGE: (),
    OrderStatus.PENDING_AI_ANALYSIS: (),
    OrderStatus.PENDING_VERIFICATION: (),  # see _REVIEW_ACTIONS
    OrderStatus.PENDING_PHARMACIST_REVIEW: (),  # see _REVIEW_ACTIONS
    OrderStatus.PHARMACIST_APPROVED: (OrderAction.START_PREP,),
    OrderStatus.PHARMACIST_REJECTED: (),
    OrderStatus.PREPARING: (OrderAction.MARK_READY,),
    OrderStatus.READY: (OrderAction.ASSIGN_COURIER, OrderAction.CALL_PATIENT),
    OrderStatus.AWAITING_COURIER: (OrderAction.CALL_PATIENT,),
    OrderStatus.COURIER_ASSIGNED: (),
    OrderStatus.IN_DELIVERY: (),
    OrderStatus.DELIVERED: (),
    OrderStatus.CANCELLED: (),
    OrderStatus.REFUNDED: (),
}


def resolve_available_actions(
    status: OrderStatus,
    ai_status: VerificationStatus,
    has_controlled_substance: bool,
) -> list[OrderAction]:
    """Return the ordered list of actions an operator may take.

    ``VIEW_PRESCRIPTION`` is always first.  ``CHECK_INTERACTIONS`` is
    appended for controlled substances unless the stage already offers it;
    it never appears twice.

    Args:
        status: Current fulfillment status.
        ai_status: AI verification outcome.
        has_controlled_substance: Whether any item is a controlled substance.

    Returns:
        Actions in display order, without duplicates.
    """
    actions: list[OrderAction] = [OrderAction.VIEW_PRESCRIPTION]

    if status in _REVIEW_STATUSES:
        actions.extend(_REVIEW_ACTIONS[ai_status])
    else:
        actions.extend(_STATUS_ACTIONS[status])

    if has_controlled_substance and OrderAction.CHECK_INTERACTIONS not in actions:
        actions.append(OrderAction.CHECK_INTERACTIONS)

    return actions


def is_action_allowed(
    action: OrderAction,
    status: OrderStatus,
    ai_status: VerificationStatus,
    has_controlled_substance: bool,
) -> bool:
    """Whether ``action`` is currently legal for an order in ``status``."""
    return action in resolve_available_actions(status, ai_status, has_controlled_substance)

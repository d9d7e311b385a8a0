# Overview: Status state machine for suitcase items.

"""
Suitcase Item Status State Machine

STATE MACHINE:
    in_possession -> sold
    in_possession -> returned
    in_possession -> lost
    sold          -> in_possession   (compensation only: settlement reversal)

    in_possession: checked out to the suitcase; the only state whose quantity
                   may change and the only state that can be returned to stock
    sold:          inferred sold at settlement
    returned:      back in stock
    lost:          written off

RULES:
1. sold / returned / lost are terminal under normal flow.
2. sold -> in_possession is allowed only when the caller passes
   compensation=True (the reversal process).
3. A transition to the current state is a no-op, which keeps reversal
   retries harmless.
4. Any other transition raises InvalidItemState.
"""

from __future__ import annotations

import logging

from ..models import SuitcaseItem
from .errors import InvalidItemState

logger = logging.getLogger(__name__)


ITEM_STATUS_IN_POSSESSION = "in_possession"
ITEM_STATUS_SOLD = "sold"
ITEM_STATUS_RETURNED = "returned"
ITEM_STATUS_LOST = "lost"

VALID_ITEM_STATUSES = {
    ITEM_STATUS_IN_POSSESSION,
    ITEM_STATUS_SOLD,
    ITEM_STATUS_RETURNED,
    ITEM_STATUS_LOST,
}

_FORWARD_TRANSITIONS = {
    (ITEM_STATUS_IN_POSSESSION, ITEM_STATUS_SOLD),
    (ITEM_STATUS_IN_POSSESSION, ITEM_STATUS_RETURNED),
    (ITEM_STATUS_IN_POSSESSION, ITEM_STATUS_LOST),
}
_COMPENSATION_TRANSITIONS = {
    (ITEM_STATUS_SOLD, ITEM_STATUS_IN_POSSESSION),
}


def validate_status(status: str) -> None:
    if status not in VALID_ITEM_STATUSES:
        raise InvalidItemState(
            f"Invalid item status '{status}'. Must be one of: {', '.join(sorted(VALID_ITEM_STATUSES))}",
            status=status,
        )


def can_transition(from_status: str, to_status: str, *, compensation: bool = False) -> bool:
    """
    Check a transition against the state machine.

    Same-state transitions are allowed (no-op).
    """
    validate_status(from_status)
    validate_status(to_status)

    if from_status == to_status:
        return True
    if (from_status, to_status) in _FORWARD_TRANSITIONS:
        return True
    return compensation and (from_status, to_status) in _COMPENSATION_TRANSITIONS


def transition_item(item: SuitcaseItem, to_status: str, *, compensation: bool = False) -> bool:
    """
    Move an item to a new status (in the session; caller commits).

    Returns:
        True if the status changed, False for a same-state no-op

    Raises:
        InvalidItemState: transition not allowed
    """
    from_status = item.status
    if not can_transition(from_status, to_status, compensation=compensation):
        raise InvalidItemState(
            f"Cannot change suitcase item {item.id} from {from_status} to {to_status}",
            item_id=item.id,
            status=from_status,
        )
    if from_status == to_status:
        return False

    item.status = to_status
    logger.debug("Suitcase item %s: %s -> %s", item.id, from_status, to_status)
    return True


def require_in_possession(item: SuitcaseItem, action: str) -> None:
    """Reject mutations (quantity changes, re-check-in) of items no longer in the suitcase."""
    if item.status != ITEM_STATUS_IN_POSSESSION:
        raise InvalidItemState(
            f"Cannot {action} suitcase item {item.id}: status is {item.status}",
            item_id=item.id,
            status=item.status,
        )

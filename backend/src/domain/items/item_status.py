"""ListedItem status state machine.

State Flow:
    ACTIVE → RESERVED (barter chain confirmed) → SOLD | ACTIVE (settlement failed)
    ACTIVE → WITHDRAWN
    ACTIVE → SOLD (sold directly by an external actor)

Terminal States: SOLD, WITHDRAWN
"""

from enum import Enum
from typing import List


class ItemStatus(str, Enum):
    """Listed item status enumeration."""
    ACTIVE = "ACTIVE"
    RESERVED = "RESERVED"
    SOLD = "SOLD"
    WITHDRAWN = "WITHDRAWN"


ALLOWED_TRANSITIONS = {
    ItemStatus.ACTIVE: [ItemStatus.RESERVED, ItemStatus.WITHDRAWN, ItemStatus.SOLD],
    ItemStatus.RESERVED: [ItemStatus.SOLD, ItemStatus.ACTIVE, ItemStatus.WITHDRAWN],
    ItemStatus.SOLD: [],  # Terminal state
    ItemStatus.WITHDRAWN: [],  # Terminal state
}


class ItemStateTransitionError(Exception):
    """Raised when an invalid item status transition is attempted."""
    pass


def can_transition(current_status: ItemStatus, new_status: ItemStatus) -> bool:
    """Check if an item status transition is allowed.

    Args:
        current_status: Current item status
        new_status: Target status

    Returns:
        True if transition is allowed, False otherwise
    """
    return new_status in ALLOWED_TRANSITIONS.get(current_status, [])


def validate_transition(current_status: ItemStatus, new_status: ItemStatus) -> None:
    """Validate that an item status transition is allowed.

    Raises:
        ItemStateTransitionError: If transition is not allowed
    """
    if not can_transition(current_status, new_status):
        allowed: List[ItemStatus] = ALLOWED_TRANSITIONS.get(current_status, [])
        raise ItemStateTransitionError(
            f"Invalid item transition: {current_status.value} -> {new_status.value}. "
            f"Allowed transitions from {current_status.value}: "
            f"{[s.value for s in allowed]}"
        )

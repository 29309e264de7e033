"""BarterChain status state machine.

State Flow:
    PENDING → CONFIRMED (all participants accepted)
    PENDING → CANCELLED (any participant rejected, initiator cancelled,
                         item withdrawn, or confirmation conflict)
    PENDING → EXPIRED   (expires_at elapsed)
    CONFIRMED → CANCELLED (settlement reported failure)

Terminal States: CANCELLED, EXPIRED
"""

from enum import Enum
from typing import List


class BarterChainStatus(str, Enum):
    """Barter chain status enumeration."""
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"
    EXPIRED = "EXPIRED"


class ParticipantStatus(str, Enum):
    """Per-participant response to a chain proposal."""
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"


class BarterOfferStatus(str, Enum):
    """Barter offer status (owned by the barter service, expired by the sweep)."""
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
    EXPIRED = "EXPIRED"
    CANCELLED = "CANCELLED"


ALLOWED_TRANSITIONS = {
    BarterChainStatus.PENDING: [
        BarterChainStatus.CONFIRMED,
        BarterChainStatus.CANCELLED,
        BarterChainStatus.EXPIRED,
    ],
    BarterChainStatus.CONFIRMED: [BarterChainStatus.CANCELLED],
    BarterChainStatus.CANCELLED: [],  # Terminal state
    BarterChainStatus.EXPIRED: [],  # Terminal state
}

# Chains in these states hold a claim on their items
OPEN_CHAIN_STATUSES = (BarterChainStatus.PENDING, BarterChainStatus.CONFIRMED)


class ChainStateTransitionError(Exception):
    """Raised when an invalid chain state transition is attempted."""
    pass


def validate_transition(
    current_status: BarterChainStatus,
    new_status: BarterChainStatus
) -> None:
    """Validate that a chain state transition is allowed.

    Args:
        current_status: Current chain status
        new_status: Target status to transition to

    Raises:
        ChainStateTransitionError: If transition is not allowed
    """
    allowed = ALLOWED_TRANSITIONS.get(current_status, [])
    if new_status not in allowed:
        raise ChainStateTransitionError(
            f"Invalid transition: {current_status.value} -> {new_status.value}. "
            f"Allowed transitions from {current_status.value}: "
            f"{[s.value for s in allowed]}"
        )


def can_transition(
    current_status: BarterChainStatus,
    new_status: BarterChainStatus
) -> bool:
    """Check if a chain state transition is allowed without raising exception."""
    return new_status in ALLOWED_TRANSITIONS.get(current_status, [])


def get_allowed_transitions(status: BarterChainStatus) -> List[BarterChainStatus]:
    """Get list of allowed transitions from a given status."""
    return ALLOWED_TRANSITIONS.get(status, [])


def resolve_responses(responses: List[ParticipantStatus]) -> BarterChainStatus:
    """Derive the chain status implied by participant responses.

    Any rejection cancels the chain; unanimous acceptance confirms it;
    otherwise the chain keeps waiting.

    Args:
        responses: Current status of every participant

    Returns:
        CANCELLED, CONFIRMED or PENDING
    """
    if any(r == ParticipantStatus.REJECTED for r in responses):
        return BarterChainStatus.CANCELLED
    if responses and all(r == ParticipantStatus.ACCEPTED for r in responses):
        return BarterChainStatus.CONFIRMED
    return BarterChainStatus.PENDING

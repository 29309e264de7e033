"""Barter domain module - chain and offer lifecycle"""

from .chain_status import (
    BarterChainStatus,
    ParticipantStatus,
    BarterOfferStatus,
    ALLOWED_TRANSITIONS,
    OPEN_CHAIN_STATUSES,
    ChainStateTransitionError,
    validate_transition,
    can_transition,
    get_allowed_transitions,
    resolve_responses,
)

__all__ = [
    "BarterChainStatus",
    "ParticipantStatus",
    "BarterOfferStatus",
    "ALLOWED_TRANSITIONS",
    "OPEN_CHAIN_STATUSES",
    "ChainStateTransitionError",
    "validate_transition",
    "can_transition",
    "get_allowed_transitions",
    "resolve_responses",
]

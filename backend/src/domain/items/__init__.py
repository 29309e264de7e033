"""Items domain module - listed item and demand status values"""

from .item_status import (
    ItemStatus,
    ItemStateTransitionError,
    ALLOWED_TRANSITIONS,
    can_transition,
    validate_transition,
)
from .demand import DemandKind, DemandStatus
from .condition import ItemCondition, CONDITION_RANK, satisfies_condition

__all__ = [
    "ItemStatus",
    "ItemStateTransitionError",
    "ALLOWED_TRANSITIONS",
    "can_transition",
    "validate_transition",
    "DemandKind",
    "DemandStatus",
    "ItemCondition",
    "CONDITION_RANK",
    "satisfies_condition",
]

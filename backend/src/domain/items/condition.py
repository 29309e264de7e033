"""Item condition ladder and constraint check."""

from enum import Enum
from typing import Optional


class ItemCondition(str, Enum):
    NEW = "NEW"
    LIKE_NEW = "LIKE_NEW"
    GOOD = "GOOD"
    FAIR = "FAIR"
    POOR = "POOR"


# Higher rank is better
CONDITION_RANK = {
    ItemCondition.NEW.value: 5,
    ItemCondition.LIKE_NEW.value: 4,
    ItemCondition.GOOD.value: 3,
    ItemCondition.FAIR.value: 2,
    ItemCondition.POOR.value: 1,
}


def _normalize(condition: Optional[str]) -> Optional[str]:
    if condition is None:
        return None
    value = condition.strip().upper().replace("-", "_").replace(" ", "_")
    return value or None


def satisfies_condition(actual: Optional[str], required: Optional[str]) -> bool:
    """Check whether an item's condition meets a requirement.

    A requirement is "at least this good". Unknown labels only satisfy an
    identical label, and an item with no stated condition never satisfies
    a stated requirement.

    Args:
        actual: Condition of the offered item
        required: Minimum acceptable condition, or None for no constraint

    Returns:
        True if the constraint is absent or satisfied
    """
    required = _normalize(required)
    if required is None:
        return True
    actual = _normalize(actual)
    if actual is None:
        return False
    if actual in CONDITION_RANK and required in CONDITION_RANK:
        return CONDITION_RANK[actual] >= CONDITION_RANK[required]
    return actual == required

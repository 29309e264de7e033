"""Demand request enums."""

from enum import Enum


class DemandKind(str, Enum):
    """How the requester intends to acquire the item."""
    PURCHASE = "PURCHASE"
    REVERSE_AUCTION = "REVERSE_AUCTION"


class DemandStatus(str, Enum):
    """Demand requests are owned by the demand-side service; we only read OPEN ones."""
    OPEN = "OPEN"
    CLOSED = "CLOSED"

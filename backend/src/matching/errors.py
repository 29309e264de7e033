"""Matching engine exception taxonomy.

Event processing catches these and degrades to an empty outcome; only
ConcurrencyConflict and the chain lifecycle errors reach the caller of a
direct user operation.
"""

from typing import List, Optional


class MatchingError(Exception):
    """Base class for all matching engine errors."""
    pass


class NotFoundError(MatchingError):
    """Triggering entity vanished between event emission and processing."""

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} {entity_id} not found")


class ValidationError(MatchingError):
    """Malformed event payload or ineligible trigger entity."""

    def __init__(self, message: str, event_type: Optional[str] = None):
        self.event_type = event_type
        super().__init__(message)


class ConcurrencyConflict(MatchingError):
    """An item's status changed between chain discovery and confirmation.

    Attributes:
        chain_id: Chain that failed closed
        item_ids: Items that were no longer ACTIVE
    """

    def __init__(self, chain_id: str, item_ids: List[str]):
        self.chain_id = chain_id
        self.item_ids = list(item_ids)
        super().__init__(
            f"Trade no longer available: items {', '.join(self.item_ids)} changed "
            f"status before chain {chain_id} could be confirmed"
        )


class CapacityExceeded(MatchingError):
    """A candidate set or the chain search space exceeded its bound."""

    def __init__(self, resource: str, limit: int):
        self.resource = resource
        self.limit = limit
        super().__init__(f"{resource} exceeded limit of {limit}")


class DispatchFailure(MatchingError):
    """Notification or settlement collaborator could not be reached."""
    pass


class ChainStateError(MatchingError):
    """Invalid chain operation (not a participant, already responded, not pending)."""
    pass


class ChainExpired(ChainStateError):
    """Chain passed its expires_at before the operation was applied."""

    def __init__(self, chain_id: str):
        self.chain_id = chain_id
        super().__init__(f"Barter chain {chain_id} has expired")

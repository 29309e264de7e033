"""Matching ports and interfaces for hexagonal architecture.

The pure components (scorer, matchers, chain discoverer) only see these
ports; SQLAlchemy and Celery adapters live in ``infrastructure``.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from domain.geo import Location

from .tradables import BarterOfferProfile, CategoryRef, MatchCandidate, MatchType, Tradable


@dataclass
class CandidateCriteria:
    """Bounded candidate query.

    Attributes:
        category_id: Searched category; the gateway widens it to the direct
            parent and every category below it
        keywords: Title/description keywords, OR'ed with the category filter
        value_min: Lower bound on value/budget (inclusive)
        value_max: Upper bound on value/budget (inclusive)
        condition: Preferred condition, used for ordering only
        near: Location used to order results (closer first), never to exclude
        country: Outer national ceiling; only same-country rows are returned
        exclude_owner_id: Owner whose rows are skipped (never match yourself)
        exclude_item_ids: IDs to skip (e.g. items claimed by open chains)
        wanted_category_ids: Barter queries only; keep items whose stated want
            is one of these categories
        wanted_keywords: Barter queries only; keep items whose free-text want
            mentions one of these keywords
        limit: Requested result size; the gateway caps it at its ceiling
    """
    category_id: Optional[str] = None
    keywords: List[str] = field(default_factory=list)
    value_min: Optional[float] = None
    value_max: Optional[float] = None
    condition: Optional[str] = None
    near: Optional[Location] = None
    country: Optional[str] = None
    exclude_owner_id: Optional[str] = None
    exclude_item_ids: List[str] = field(default_factory=list)
    wanted_category_ids: List[str] = field(default_factory=list)
    wanted_keywords: List[str] = field(default_factory=list)
    limit: int = 50


class CandidateIndexPort(ABC):
    """Read-only bounded queries over the storage collaborator.

    Implementations:
    - SqlCandidateIndex: SQLAlchemy over listed_item / demand_request / barter_offer
    """

    @abstractmethod
    def get_item(self, item_id: str) -> Optional[Tradable]:
        pass

    @abstractmethod
    def get_items(self, item_ids: Sequence[str]) -> List[Tradable]:
        pass

    @abstractmethod
    def get_demand(self, demand_id: str) -> Optional[Tradable]:
        pass

    @abstractmethod
    def get_offer(self, offer_id: str) -> Optional[BarterOfferProfile]:
        pass

    @abstractmethod
    def get_category(self, category_id: str) -> Optional[CategoryRef]:
        pass

    @abstractmethod
    def find_items(self, criteria: CandidateCriteria) -> List[Tradable]:
        """Find ACTIVE listed items matching the criteria.

        Args:
            criteria: Candidate query

        Returns:
            At most ``criteria.limit`` items (capped by the gateway ceiling),
            closest first
        """
        pass

    @abstractmethod
    def find_demands(self, criteria: CandidateCriteria) -> List[Tradable]:
        """Find OPEN demand requests matching the criteria."""
        pass

    @abstractmethod
    def find_barter_items(self, criteria: CandidateCriteria) -> List[Tradable]:
        """Find ACTIVE listed items whose owners state barter wants.

        Wants come from the item itself or, when it states none, from the
        owner's most recent open barter offer.
        """
        pass


class MatchStorePort(ABC):
    """Read/write persistence for match records, chains and the notification log.

    Implementations:
    - SqlMatchStore: SQLAlchemy session-bound store
    """

    # Match records

    @abstractmethod
    def upsert_matches(
        self,
        match_type: MatchType,
        source: Tradable,
        candidates: Sequence[MatchCandidate],
    ) -> int:
        """Insert or refresh match records keyed by source:target:type.

        Returns:
            Number of newly created records
        """
        pass

    @abstractmethod
    def delete_matches_for(self, entity_id: str) -> int:
        pass

    @abstractmethod
    def matches_for_entity(self, entity_id: str) -> List[Any]:
        pass

    @abstractmethod
    def matches_for_user(self, user_id: str) -> List[Any]:
        pass

    @abstractmethod
    def match_stats(self) -> Dict[str, Any]:
        pass

    # Chains

    @abstractmethod
    def get_chain(self, chain_id: str) -> Optional[Any]:
        pass

    @abstractmethod
    def chain_exists(self, signature: str) -> bool:
        pass

    @abstractmethod
    def save_chain(self, proposal: Any, expires_at: datetime) -> Any:
        pass

    @abstractmethod
    def claimed_item_ids(self) -> List[str]:
        """Items held by PENDING or CONFIRMED chains."""
        pass

    @abstractmethod
    def open_chains_for_item(self, item_id: str) -> List[Any]:
        pass

    @abstractmethod
    def chains_for_user(self, user_id: str, statuses: Optional[Sequence[str]] = None) -> List[Any]:
        pass

    @abstractmethod
    def overdue_chains(self, now: datetime) -> List[Any]:
        pass

    @abstractmethod
    def expire_overdue_offers(self, now: datetime) -> int:
        pass

    @abstractmethod
    def set_item_status(self, item_id: str, status: str) -> None:
        pass

    @abstractmethod
    def item_statuses(self, item_ids: Sequence[str]) -> Dict[str, str]:
        """Re-read current item statuses (missing items are absent from the result)."""
        pass

    # Notification log

    @abstractmethod
    def was_notified(self, user_id: str, entity_id: str) -> bool:
        pass

    @abstractmethod
    def record_notification(self, user_id: str, entity_id: str, notification_type: str) -> None:
        pass

    # Unit of work

    @abstractmethod
    def commit(self) -> None:
        pass

    @abstractmethod
    def rollback(self) -> None:
        pass


@dataclass
class NotificationRequest:
    """Outbound notification handed to the notification collaborator."""
    user_id: str
    type: str
    title: str
    message: str
    priority: str
    entity_type: str
    entity_id: str
    action_url: str
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "userId": self.user_id,
            "type": self.type,
            "title": self.title,
            "message": self.message,
            "priority": self.priority,
            "entityType": self.entity_type,
            "entityId": self.entity_id,
            "actionUrl": self.action_url,
            "metadata": self.metadata,
        }


class NotificationPort(ABC):
    """Fire-and-forget notification collaborator."""

    @abstractmethod
    def notify(self, request: NotificationRequest) -> None:
        """Hand a notification to the delivery subsystem.

        Raises:
            DispatchFailure: If the collaborator cannot be reached
        """
        pass


class SettlementPort(ABC):
    """External settlement workflow; results come back as ChainSettlementReported."""

    @abstractmethod
    def request_settlement(self, chain_id: str, participants: List[Dict[str, Any]]) -> None:
        """Ask the settlement collaborator to execute a confirmed chain.

        Raises:
            DispatchFailure: If the collaborator cannot be reached
        """
        pass

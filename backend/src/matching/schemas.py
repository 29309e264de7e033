"""Pydantic schemas for inbound domain events and query views.

Event payloads arrive as camelCase JSON; fields are snake_case in Python
and accept either spelling.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


class EventModel(BaseModel):
    """Base for event payloads: camelCase aliases, unknown fields ignored."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class EventEnvelope(EventModel):
    """Transport envelope shared by every event."""
    event_id: str = Field(min_length=1)
    event_type: str = Field(min_length=1)
    occurred_at: Optional[datetime] = None
    payload: Dict[str, Any] = Field(default_factory=dict)


class ItemCreated(EventModel):
    item_id: str = Field(min_length=1)
    user_id: str = Field(min_length=1)
    category_id: str = Field(min_length=1)
    has_barter_preferences: bool = False
    timestamp: Optional[datetime] = None


class ItemChanges(EventModel):
    """Changed fields of an item; only these are matching-relevant."""
    category: Optional[Any] = None
    barter_preferences: Optional[Any] = None
    description: Optional[Any] = None

    @property
    def is_relevant(self) -> bool:
        return any(v is not None for v in (self.category, self.barter_preferences, self.description))


class ItemUpdated(EventModel):
    item_id: str = Field(min_length=1)
    user_id: str = Field(min_length=1)
    category_id: Optional[str] = None
    changes: ItemChanges = Field(default_factory=ItemChanges)


class ItemDeleted(EventModel):
    item_id: str = Field(min_length=1)
    user_id: str = Field(min_length=1)


class BarterOfferCreated(EventModel):
    offer_id: str = Field(min_length=1)
    initiator_id: str = Field(min_length=1)
    offered_item_ids: List[str] = Field(min_length=1)
    is_open_offer: bool = True
    category_ids: List[str] = Field(default_factory=list)
    governorate: Optional[str] = None
    city: Optional[str] = None
    district: Optional[str] = None


class BarterItemRequestCreated(EventModel):
    request_id: str = Field(min_length=1)
    offer_id: str = Field(min_length=1)
    initiator_id: str = Field(min_length=1)
    category_id: Optional[str] = None
    keywords: List[str] = Field(default_factory=list)
    min_price: Optional[float] = Field(default=None, ge=0)
    max_price: Optional[float] = Field(default=None, ge=0)
    condition: Optional[str] = None

    @model_validator(mode="after")
    def require_category_or_keywords(self) -> "BarterItemRequestCreated":
        if not self.category_id and not any(k.strip() for k in self.keywords):
            raise ValueError("either categoryId or keywords is required")
        if self.min_price is not None and self.max_price is not None and self.min_price > self.max_price:
            raise ValueError("minPrice cannot exceed maxPrice")
        return self


class ReverseAuctionCreated(EventModel):
    auction_id: str = Field(min_length=1)
    buyer_id: str = Field(min_length=1)
    category_id: str = Field(min_length=1)
    title: Optional[str] = None
    target_price: Optional[float] = Field(default=None, ge=0)
    max_budget: Optional[float] = Field(default=None, ge=0)
    condition: Optional[str] = None
    governorate: Optional[str] = None
    city: Optional[str] = None
    district: Optional[str] = None


class ChainSettlementReported(EventModel):
    chain_id: str = Field(min_length=1)
    success: bool
    reason: Optional[str] = None


EVENT_SCHEMAS = {
    "ItemCreated": ItemCreated,
    "ItemUpdated": ItemUpdated,
    "ItemDeleted": ItemDeleted,
    "BarterOfferCreated": BarterOfferCreated,
    "BarterItemRequestCreated": BarterItemRequestCreated,
    "ReverseAuctionCreated": ReverseAuctionCreated,
    "ChainSettlementReported": ChainSettlementReported,
}


# Query views


class MatchView(BaseModel):
    """Persisted match as returned by the query operations."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    match_type: str
    source_id: str
    source_owner_id: str
    target_id: str
    target_owner_id: str
    score: float = Field(ge=0.0, le=1.0)
    tier: str
    reasons: List[str] = Field(default_factory=list)
    created_at: Optional[datetime] = None


class ChainParticipantView(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: str
    giving_item_id: str
    receiving_item_id: str
    position: int
    status: str
    responded_at: Optional[datetime] = None


class ChainView(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    chain_type: str
    match_score: float = Field(ge=0.0, le=1.0)
    algorithm_version: str
    cash_differential: float
    is_optimal: bool
    status: str
    cancel_reason: Optional[str] = None
    expires_at: datetime
    participants: List[ChainParticipantView]


class UserMatchesView(BaseModel):
    """Everything matched for one user, grouped by kind."""
    user_id: str
    barter: List[MatchView] = Field(default_factory=list)
    sales: List[MatchView] = Field(default_factory=list)
    demands: List[MatchView] = Field(default_factory=list)
    chains: List[ChainView] = Field(default_factory=list)
    total: int = 0


class MatchingStats(BaseModel):
    total_matches: int = 0
    matches_by_type: Dict[str, int] = Field(default_factory=dict)
    average_score: float = 0.0
    chains_by_status: Dict[str, int] = Field(default_factory=dict)
    notifications_sent: int = 0


class ChainStats(BaseModel):
    """Chain participation summary for one user."""
    user_id: str
    total: int = 0
    pending: int = 0
    confirmed: int = 0
    cancelled: int = 0
    expired: int = 0
    success_rate: float = 0.0

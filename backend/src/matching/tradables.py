"""Value types shared by the scorer, the matchers and the chain discoverer.

Listings, demands and barter offers are all reduced to a ``Tradable`` before
scoring so the pure components never touch ORM rows.
"""

import re
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import FrozenSet, List, Optional, Tuple

from domain.geo import GeoTier, Location

_TOKEN = re.compile(r"\w+", re.UNICODE)
MIN_TOKEN_LENGTH = 3


class TradableKind(str, Enum):
    ITEM = "ITEM"
    DEMAND = "DEMAND"


class MatchType(str, Enum):
    """What kind of counter-party a match connects."""
    PERFECT_BARTER = "PERFECT_BARTER"
    BARTER_CHAIN = "BARTER_CHAIN"
    SALE_TO_DEMAND = "SALE_TO_DEMAND"
    DEMAND_TO_SUPPLY = "DEMAND_TO_SUPPLY"
    REVERSE_AUCTION = "REVERSE_AUCTION"


@dataclass(frozen=True)
class CategoryRef:
    """Category with its ancestor chain, enough for category scoring.

    ``ancestor_ids`` runs from the direct parent up to the root; the tree is
    at most three levels deep.
    """
    id: str
    parent_id: Optional[str] = None
    ancestor_ids: Tuple[str, ...] = ()

    @property
    def ancestors(self) -> Tuple[str, ...]:
        if self.ancestor_ids:
            return self.ancestor_ids
        return (self.parent_id,) if self.parent_id else ()

    @property
    def lineage(self) -> Tuple[str, ...]:
        """This category followed by its ancestors."""
        return (self.id,) + self.ancestors

    def is_within(self, category_id: str) -> bool:
        """True for the category itself or any of its descendants."""
        return category_id in self.lineage


def tokenize(text: Optional[str]) -> FrozenSet[str]:
    """Split free text into lowercase keyword tokens longer than two characters."""
    if not text:
        return frozenset()
    return frozenset(
        token for token in (t.casefold() for t in _TOKEN.findall(text))
        if len(token) >= MIN_TOKEN_LENGTH
    )


def demand_value(
    target_price: Optional[float],
    price_min: Optional[float],
    price_max: Optional[float],
) -> Optional[float]:
    """Reference value of a demand used for price scoring.

    Target price wins, then the midpoint of the band, then whichever bound
    is present.
    """
    if target_price is not None:
        return target_price
    if price_min is not None and price_max is not None:
        return (price_min + price_max) / 2
    if price_max is not None:
        return price_max
    return price_min


@dataclass
class Tradable:
    """A listed item or a demand, as seen by the pure matching components.

    Attributes:
        id: Item or demand ID
        owner_id: Lister or requester
        kind: ITEM or DEMAND
        category: Offered category (items) or requested category (demands);
            None for keyword-only demands
        location: Validated location
        created_at: Listing creation time (drives recency and tie-breaks)
        value: Estimated value (items) or reference budget (demands)
        condition: Condition of the item (items only)
        required_condition: Minimum acceptable condition (demands only)
        desired_category: Category the owner wants in exchange (barter)
        desired_description: Free-text want (barter)
        wants_from_offer: Wants were taken from the owner's open barter offer
        demand_kind: PURCHASE or REVERSE_AUCTION (demands only)
    """
    id: str
    owner_id: str
    kind: TradableKind
    category: Optional[CategoryRef]
    location: Location
    created_at: datetime
    title: str = ""
    description: Optional[str] = None
    value: Optional[float] = None
    condition: Optional[str] = None
    required_condition: Optional[str] = None
    price_min: Optional[float] = None
    price_max: Optional[float] = None
    desired_category: Optional[CategoryRef] = None
    desired_description: Optional[str] = None
    wants_from_offer: bool = False
    demand_kind: Optional[str] = None
    keywords: List[str] = field(default_factory=list)
    status: str = "ACTIVE"

    @property
    def has_wants(self) -> bool:
        return self.desired_category is not None or bool(self.want_tokens)

    @property
    def want_tokens(self) -> FrozenSet[str]:
        return tokenize(self.desired_description)

    @property
    def text_tokens(self) -> FrozenSet[str]:
        """Keyword tokens of what this tradable is (title, description, keywords)."""
        tokens = tokenize(self.title) | tokenize(self.description)
        for keyword in self.keywords:
            tokens = tokens | tokenize(keyword)
        return tokens

    def with_wants(
        self,
        desired_category: Optional[CategoryRef],
        desired_description: Optional[str],
    ) -> "Tradable":
        """Copy carrying the given wants (used when an offer states them for its items)."""
        return replace(
            self,
            desired_category=desired_category,
            desired_description=desired_description,
            wants_from_offer=False,
        )


@dataclass(frozen=True)
class ScoreComponents:
    category: float
    geo: float
    price: float
    condition: float
    recency: float


@dataclass
class MatchCandidate:
    """Scored pairing of a source tradable with a target tradable.

    Ephemeral: produced by the scorer and consumed immediately by the
    orchestrator, which persists the ones worth keeping as MatchRecords.
    """
    source_id: str
    target_id: str
    target_owner_id: str
    score: float
    tier: GeoTier
    components: ScoreComponents
    target_created_at: datetime
    reasons: List[str] = field(default_factory=list)
    target_kind: str = TradableKind.ITEM.value

    def sort_key(self):
        """Ranking key: score desc, geo desc, price desc, older target first."""
        return (
            -self.score,
            -self.components.geo,
            -self.components.price,
            self.target_created_at,
            self.target_id,
        )


@dataclass
class BarterOfferProfile:
    """Barter offer as seen by the matchers.

    The offer's desired profile applies to each offered item that does not
    state wants of its own.
    """
    id: str
    initiator_id: str
    offered_item_ids: List[str]
    location: Location
    status: str
    created_at: datetime
    desired_category: Optional[CategoryRef] = None
    desired_description: Optional[str] = None
    is_open_offer: bool = True
    expires_at: Optional[datetime] = None

    def apply_wants(self, item: Tradable) -> Tradable:
        if self.desired_category is None and not self.desired_description:
            return item
        if item.has_wants and not item.wants_from_offer:
            return item
        return item.with_wants(self.desired_category, self.desired_description)

"""Pytest fixtures for the matching engine.

Provides reusable test fixtures for:
- Pure value builders (locations, tradables) for unit tests
- In-memory SQLite database session with a seeded category tree
- Row factories for listed items, demand requests, offers and chains
- Recording fakes for the notification and settlement collaborators

Usage:
    def test_item_matches_demand(db_session, add_item, add_demand, orchestrator):
        item = add_item("u1", "mobile-phones", 45000)
        ...
"""

import os
import sys
from datetime import datetime, timedelta
from pathlib import Path
from typing import List, Optional

# Set environment variables BEFORE any imports to ensure they take effect
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("LOG_JSON", "false")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

backend_src = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(backend_src))

from config import Settings
from domain.geo import Location
from infrastructure.repositories.candidate_index import SqlCandidateIndex
from infrastructure.repositories.match_store import SqlMatchStore
from matching.chain_discoverer import ChainLink, ChainProposal, chain_signature
from matching.errors import DispatchFailure
from matching.orchestrator import MatchOrchestrator
from matching.ports import CandidateIndexPort, NotificationPort, SettlementPort
from matching.tradables import CategoryRef, Tradable, TradableKind
from models import Base, BarterOffer, Category, DemandRequest, ListedItem

NOW = datetime(2026, 3, 1, 12, 0, 0)

CATEGORY_TREE = [
    ("electronics", None, "Electronics"),
    ("mobile-phones", "electronics", "Mobile phones"),
    ("tablets", "electronics", "Tablets"),
    ("laptops", "electronics", "Laptops"),
    ("iphones", "mobile-phones", "iPhones"),
    ("furniture", None, "Furniture"),
    ("chairs", "furniture", "Chairs"),
    ("bicycles", None, "Bicycles"),
]

CATEGORY_PARENTS = {cid: parent for cid, parent, _ in CATEGORY_TREE}

NASR_CITY = {"governorate": "Cairo", "city": "Nasr City", "district": "Zone 6"}


def category_ref(category_id: Optional[str]) -> Optional[CategoryRef]:
    if category_id is None:
        return None
    ancestors = []
    parent = CATEGORY_PARENTS.get(category_id)
    while parent is not None:
        ancestors.append(parent)
        parent = CATEGORY_PARENTS.get(parent)
    return CategoryRef(category_id, CATEGORY_PARENTS.get(category_id), tuple(ancestors))


# Pure builders


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def settings():
    return Settings()


@pytest.fixture
def make_tradable():
    """Factory for Tradable values (items by default)."""

    def _make(
        id: str,
        owner_id: str,
        category: Optional[str] = "mobile-phones",
        value: Optional[float] = 1000.0,
        wants: Optional[str] = None,
        wants_text: Optional[str] = None,
        kind: TradableKind = TradableKind.ITEM,
        created_at: datetime = NOW,
        title: str = "",
        status: str = "ACTIVE",
        **location,
    ) -> Tradable:
        return Tradable(
            id=id,
            owner_id=owner_id,
            kind=kind,
            category=category_ref(category),
            location=Location(**(location or NASR_CITY)),
            created_at=created_at,
            title=title,
            value=value,
            desired_category=category_ref(wants),
            desired_description=wants_text,
            demand_kind="PURCHASE" if kind == TradableKind.DEMAND else None,
            status=status,
        )

    return _make


class FakeCandidateIndex(CandidateIndexPort):
    """Candidate index over in-memory lists; records the criteria it was asked."""

    def __init__(self, items=None, demands=None, barter_items=None):
        self.items = list(items or [])
        self.demands = list(demands or [])
        self.barter_items = list(barter_items or [])
        self.criteria: List = []

    def get_item(self, item_id):
        return next((i for i in self.items if i.id == item_id), None)

    def get_items(self, item_ids):
        return [i for i in self.items if i.id in item_ids]

    def get_demand(self, demand_id):
        return next((d for d in self.demands if d.id == demand_id), None)

    def get_offer(self, offer_id):
        return None

    def get_category(self, category_id):
        return category_ref(category_id) if category_id in CATEGORY_PARENTS else None

    def find_items(self, criteria):
        self.criteria.append(criteria)
        return list(self.items)

    def find_demands(self, criteria):
        self.criteria.append(criteria)
        return list(self.demands)

    def find_barter_items(self, criteria):
        self.criteria.append(criteria)
        return list(self.barter_items)


@pytest.fixture
def fake_index_class():
    return FakeCandidateIndex


# Collaborator fakes


class RecordingNotifier(NotificationPort):
    """Notification collaborator that records requests, optionally failing."""

    def __init__(self):
        self.sent = []
        self.fail = False

    def notify(self, request):
        if self.fail:
            raise DispatchFailure("notification broker unreachable")
        self.sent.append(request)

    def types_for(self, user_id: str) -> List[str]:
        return [r.type for r in self.sent if r.user_id == user_id]


class RecordingSettlement(SettlementPort):
    def __init__(self):
        self.requests = []
        self.fail = False

    def request_settlement(self, chain_id, participants):
        if self.fail:
            raise DispatchFailure("settlement broker unreachable")
        self.requests.append((chain_id, participants))


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def settlement():
    return RecordingSettlement()


# Database


@pytest.fixture
def db_session():
    """In-memory SQLite session with the schema created and categories seeded."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()

    for category_id, parent_id, name in CATEGORY_TREE:
        session.add(Category(id=category_id, parent_id=parent_id, name=name))
    session.commit()

    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(engine)
        engine.dispose()


@pytest.fixture
def add_item(db_session):
    """Factory inserting an ACTIVE ListedItem."""

    def _add(
        owner_id: str,
        category_id: str,
        value: Optional[float] = None,
        title: str = "Listed item",
        wants: Optional[str] = None,
        wants_text: Optional[str] = None,
        condition: Optional[str] = None,
        status: str = "ACTIVE",
        created_at: datetime = NOW,
        **location,
    ) -> ListedItem:
        loc = location or NASR_CITY
        item = ListedItem(
            owner_id=owner_id,
            title=title,
            category_id=category_id,
            estimated_value=value,
            condition=condition,
            governorate=loc["governorate"],
            city=loc.get("city"),
            district=loc.get("district"),
            status=status,
            desired_category_id=wants,
            desired_description=wants_text,
            created_at=created_at,
        )
        db_session.add(item)
        db_session.commit()
        return item

    return _add


@pytest.fixture
def add_demand(db_session):
    """Factory inserting an OPEN DemandRequest."""

    def _add(
        requester_id: str,
        category_id: str,
        price_max: Optional[float] = None,
        kind: str = "PURCHASE",
        title: str = "Wanted",
        target_price: Optional[float] = None,
        price_min: Optional[float] = None,
        condition: Optional[str] = None,
        status: str = "OPEN",
        created_at: datetime = NOW,
        **location,
    ) -> DemandRequest:
        loc = location or NASR_CITY
        demand = DemandRequest(
            requester_id=requester_id,
            title=title,
            category_id=category_id,
            kind=kind,
            price_min=price_min,
            price_max=price_max,
            target_price=target_price,
            condition=condition,
            governorate=loc["governorate"],
            city=loc.get("city"),
            district=loc.get("district"),
            status=status,
            created_at=created_at,
        )
        db_session.add(demand)
        db_session.commit()
        return demand

    return _add


@pytest.fixture
def add_offer(db_session):
    """Factory inserting a PENDING BarterOffer."""

    def _add(
        initiator_id: str,
        offered_item_ids: List[str],
        wants: Optional[str] = None,
        wants_text: Optional[str] = None,
        expires_at: Optional[datetime] = None,
        status: str = "PENDING",
        **location,
    ) -> BarterOffer:
        loc = location or NASR_CITY
        offer = BarterOffer(
            initiator_id=initiator_id,
            offered_item_ids=list(offered_item_ids),
            desired_category_id=wants,
            desired_description=wants_text,
            governorate=loc["governorate"],
            city=loc.get("city"),
            district=loc.get("district"),
            status=status,
            expires_at=expires_at,
            created_at=NOW,
        )
        db_session.add(offer)
        db_session.commit()
        return offer

    return _add


@pytest.fixture
def match_store(db_session):
    return SqlMatchStore(db_session)


@pytest.fixture
def candidate_index(db_session):
    return SqlCandidateIndex(db_session, clock=lambda: NOW)


@pytest.fixture
def seed_chain(match_store):
    """Persist a PENDING chain whose participants give the given items in order.

    ``items`` are ListedItem rows in giving order: participant i gives
    items[i] and receives items[i - 1].
    """

    def _seed(items: List[ListedItem], expires_at: datetime = NOW + timedelta(days=7)):
        n = len(items)
        links = [
            ChainLink(
                position=position,
                user_id=item.owner_id,
                giving_item_id=item.id,
                receiving_item_id=items[(position - 1) % n].id,
                giving_value=item.estimated_value,
                receiving_value=items[(position - 1) % n].estimated_value,
            )
            for position, item in enumerate(items)
        ]
        proposal = ChainProposal(
            links=links,
            score=0.8,
            edge_scores=[0.8] * n,
            signature=chain_signature([item.id for item in items]),
            cash_differential=0.0,
            is_optimal=True,
            discovery_index=0,
        )
        chain = match_store.save_chain(proposal, expires_at)
        match_store.commit()
        return chain

    return _seed


@pytest.fixture
def orchestrator(db_session, notifier, settlement, settings):
    return MatchOrchestrator(
        index=SqlCandidateIndex(db_session, clock=lambda: NOW),
        store=SqlMatchStore(db_session),
        notifier=notifier,
        settlement=settlement,
        settings=settings,
        clock=lambda: NOW,
    )

"""SQLAlchemy candidate index over listed items, demand requests and offers"""

import logging
from datetime import datetime
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import and_, case, func, not_, or_, select
from sqlalchemy.orm import Session

from domain.barter import BarterOfferStatus
from domain.geo import Location
from domain.items import DemandStatus, ItemStatus
from matching.errors import ValidationError
from matching.ports import CandidateCriteria, CandidateIndexPort
from matching.tradables import (
    BarterOfferProfile,
    CategoryRef,
    Tradable,
    TradableKind,
    demand_value,
)
from models import BarterOffer, Category, DemandRequest, ListedItem
from observability.metrics import candidate_cap_hits_total

logger = logging.getLogger(__name__)

# Root, sub-category, sub-sub-category
MAX_CATEGORY_DEPTH = 3


class SqlCandidateIndex(CandidateIndexPort):
    """Bounded read-only queries for candidate retrieval.

    Category filters are widened to the searched category's direct parent
    and every category below it. Geography never excludes a row within the
    same country; it only orders results (same district, city, governorate
    first). Every result set is capped at ``min(criteria.limit, ceiling)``.

    Items that state no wants of their own take the wants of their owner's
    most recent open barter offer (PENDING and not past ``expires_at``).
    """

    def __init__(self, db: Session, ceiling: int = 200, clock: Callable[[], datetime] = datetime.utcnow):
        """Initialize index with database session.

        Args:
            db: SQLAlchemy database session
            ceiling: Hard upper bound on any result size
            clock: Reference time for deciding which barter offers are still open
        """
        self.db = db
        self.ceiling = ceiling
        self.clock = clock
        self._categories: Dict[str, Optional[CategoryRef]] = {}

    # Point reads

    def get_category(self, category_id: str) -> Optional[CategoryRef]:
        if category_id not in self._categories:
            row = self.db.get(Category, category_id)
            self._categories[category_id] = self._category_with_ancestors(row) if row else None
        return self._categories[category_id]

    def _category_with_ancestors(self, row: Category) -> CategoryRef:
        ancestors = []
        parent_id = row.parent_id
        while parent_id and parent_id not in ancestors and len(ancestors) < MAX_CATEGORY_DEPTH - 1:
            ancestors.append(parent_id)
            parent = self.db.get(Category, parent_id)
            parent_id = parent.parent_id if parent else None
        return CategoryRef(row.id, row.parent_id, tuple(ancestors))

    def get_item(self, item_id: str) -> Optional[Tradable]:
        row = self.db.get(ListedItem, item_id)
        if row is None:
            return None
        return self._item_to_tradable(row, self._offer_wants([row]))

    def get_items(self, item_ids: Sequence[str]) -> List[Tradable]:
        if not item_ids:
            return []
        rows = self.db.execute(
            select(ListedItem).where(ListedItem.id.in_(list(item_ids)))
        ).scalars().all()
        by_id = {row.id: row for row in rows}
        offer_wants = self._offer_wants(rows)
        return [self._item_to_tradable(by_id[i], offer_wants) for i in item_ids if i in by_id]

    def get_demand(self, demand_id: str) -> Optional[Tradable]:
        row = self.db.get(DemandRequest, demand_id)
        return self._demand_to_tradable(row) if row else None

    def get_offer(self, offer_id: str) -> Optional[BarterOfferProfile]:
        row = self.db.get(BarterOffer, offer_id)
        if row is None:
            return None
        return BarterOfferProfile(
            id=row.id,
            initiator_id=row.initiator_id,
            offered_item_ids=list(row.offered_item_ids or []),
            location=self._location(row),
            status=row.status,
            created_at=row.created_at,
            desired_category=self._category_ref(row.desired_category_id),
            desired_description=row.desired_description,
            is_open_offer=bool(row.is_open_offer),
            expires_at=row.expires_at,
        )

    # Candidate queries

    def find_items(self, criteria: CandidateCriteria) -> List[Tradable]:
        query = self._item_query(criteria, barter_only=False)
        return self._items(self._bounded(query, criteria, "items"), "items")

    def find_barter_items(self, criteria: CandidateCriteria) -> List[Tradable]:
        query = self._item_query(criteria, barter_only=True)
        return self._items(self._bounded(query, criteria, "barter_items"), "barter_items")

    def find_demands(self, criteria: CandidateCriteria) -> List[Tradable]:
        budget = func.coalesce(DemandRequest.price_max, DemandRequest.target_price, DemandRequest.price_min)
        filters = [DemandRequest.status == DemandStatus.OPEN.value]
        match_filter = self._match_filter(
            DemandRequest.category_id, DemandRequest.title, DemandRequest.description, criteria
        )
        if match_filter is not None:
            filters.append(match_filter)
        if criteria.value_min is not None:
            filters.append(or_(budget.is_(None), budget >= criteria.value_min))
        if criteria.value_max is not None:
            filters.append(or_(budget.is_(None), budget <= criteria.value_max))
        if criteria.country:
            filters.append(DemandRequest.country == criteria.country)
        if criteria.exclude_owner_id:
            filters.append(DemandRequest.requester_id != criteria.exclude_owner_id)
        if criteria.exclude_item_ids:
            filters.append(DemandRequest.id.notin_(criteria.exclude_item_ids))

        query = select(DemandRequest).where(and_(*filters)).order_by(
            *self._ordering(DemandRequest, criteria)
        )
        rows = self._bounded(query, criteria, "demands")
        return self._convert(rows, "demands", self._demand_to_tradable)

    # Query building

    def _item_query(self, criteria: CandidateCriteria, barter_only: bool):
        filters = [ListedItem.status == ItemStatus.ACTIVE.value]
        match_filter = self._match_filter(
            ListedItem.category_id, ListedItem.title, ListedItem.description, criteria
        )
        if match_filter is not None:
            filters.append(match_filter)
        if barter_only:
            filters.append(or_(self._own_wants(), self._open_offer_exists()))
            wanted_filter = self._wanted_filter(criteria)
            if wanted_filter is not None:
                filters.append(wanted_filter)
        if criteria.value_min is not None:
            filters.append(or_(ListedItem.estimated_value.is_(None), ListedItem.estimated_value >= criteria.value_min))
        if criteria.value_max is not None:
            filters.append(or_(ListedItem.estimated_value.is_(None), ListedItem.estimated_value <= criteria.value_max))
        if criteria.country:
            filters.append(ListedItem.country == criteria.country)
        if criteria.exclude_owner_id:
            filters.append(ListedItem.owner_id != criteria.exclude_owner_id)
        if criteria.exclude_item_ids:
            filters.append(ListedItem.id.notin_(criteria.exclude_item_ids))

        return select(ListedItem).where(and_(*filters)).order_by(
            *self._ordering(ListedItem, criteria)
        )

    @staticmethod
    def _own_wants():
        return or_(
            ListedItem.desired_category_id.isnot(None),
            and_(ListedItem.desired_description.isnot(None), ListedItem.desired_description != ""),
        )

    def _open_offer_clauses(self) -> list:
        return [
            BarterOffer.status == BarterOfferStatus.PENDING.value,
            or_(BarterOffer.expires_at.is_(None), BarterOffer.expires_at > self.clock()),
            or_(
                BarterOffer.desired_category_id.isnot(None),
                and_(BarterOffer.desired_description.isnot(None), BarterOffer.desired_description != ""),
            ),
        ]

    def _open_offer_exists(self, *extra):
        """The item's owner has an open offer stating wants (plus any extra conditions)."""
        return select(BarterOffer.id).where(
            BarterOffer.initiator_id == ListedItem.owner_id,
            *self._open_offer_clauses(),
            *extra,
        ).exists()

    def _wanted_filter(self, criteria: CandidateCriteria):
        """Items whose stated want (own, or else from the owner's offer) matches the criteria."""
        clauses = []
        offer_clauses = []
        if criteria.wanted_category_ids:
            ids = list(criteria.wanted_category_ids)
            clauses.append(ListedItem.desired_category_id.in_(ids))
            offer_clauses.append(BarterOffer.desired_category_id.in_(ids))
        for keyword in criteria.wanted_keywords:
            keyword = keyword.strip()
            if not keyword:
                continue
            pattern = f"%{keyword}%"
            clauses.append(ListedItem.desired_description.ilike(pattern))
            offer_clauses.append(BarterOffer.desired_description.ilike(pattern))
        if not clauses:
            return None
        return or_(
            *clauses,
            and_(not_(self._own_wants()), self._open_offer_exists(or_(*offer_clauses))),
        )

    def _match_filter(self, category_column, title_column, description_column, criteria: CandidateCriteria):
        """Category (widened to parent and descendants) OR'ed with keyword matches."""
        clauses = []
        if criteria.category_id:
            ids = {criteria.category_id}
            ref = self.get_category(criteria.category_id)
            if ref is not None and ref.parent_id:
                ids.add(ref.parent_id)
            children = select(Category.id).where(Category.parent_id == criteria.category_id)
            grandchildren = select(Category.id).where(Category.parent_id.in_(children))
            clauses.append(category_column.in_(sorted(ids)))
            clauses.append(category_column.in_(children))
            clauses.append(category_column.in_(grandchildren))
        for keyword in criteria.keywords:
            keyword = keyword.strip()
            if not keyword:
                continue
            pattern = f"%{keyword}%"
            clauses.append(title_column.ilike(pattern))
            clauses.append(description_column.ilike(pattern))
        if not clauses:
            return None
        return or_(*clauses)

    @staticmethod
    def _ordering(model, criteria: CandidateCriteria) -> list:
        """Closer rows first, then preferred condition, then older listings."""
        order = []
        if criteria.near is not None:
            order.append(SqlCandidateIndex._proximity_order(model, criteria.near))
        if criteria.condition:
            order.append(case((model.condition == criteria.condition, 0), else_=1))
        order.extend([model.created_at.asc(), model.id.asc()])
        return order

    @staticmethod
    def _proximity_order(model, near: Location):
        governorate = func.lower(model.governorate) == near.governorate.lower()
        city = func.lower(model.city) == (near.city or "").lower()
        district = func.lower(model.district) == (near.district or "").lower()
        return case(
            (and_(governorate, city, district), 0),
            (and_(governorate, city), 1),
            (governorate, 2),
            else_=3,
        )

    def _bounded(self, query, criteria: CandidateCriteria, kind: str) -> list:
        limit = max(0, min(criteria.limit, self.ceiling))
        rows = self.db.execute(query.limit(limit + 1)).scalars().all()
        if len(rows) > limit:
            candidate_cap_hits_total.labels(kind=kind).inc()
            logger.warning(
                f"Candidate {kind} query exceeded cap of {limit}; returning bounded prefix",
                extra={"candidates": limit},
            )
            rows = rows[:limit]
        return rows

    def _items(self, rows: Sequence[ListedItem], kind: str) -> List[Tradable]:
        offer_wants = self._offer_wants(rows)
        return self._convert(rows, kind, lambda row: self._item_to_tradable(row, offer_wants))

    @staticmethod
    def _convert(rows, kind: str, convert) -> List[Tradable]:
        results = []
        for row in rows:
            try:
                results.append(convert(row))
            except ValidationError as e:
                logger.warning(f"Skipping malformed {kind} row {row.id}: {e}")
        return results

    # Row conversion

    def _category_ref(self, category_id: Optional[str]) -> Optional[CategoryRef]:
        if not category_id:
            return None
        return self.get_category(category_id) or CategoryRef(category_id)

    @staticmethod
    def _location(row) -> Location:
        try:
            return Location(
                governorate=row.governorate,
                city=row.city,
                district=row.district,
                country=row.country or "EG",
            )
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid location on {row.__tablename__} {row.id}: {e}") from e

    def _offer_wants(self, rows: Sequence[ListedItem]) -> Dict[str, Tuple[Optional[str], Optional[str]]]:
        """Wants of each owner's most recent open offer, for rows stating none."""
        owners = {
            row.owner_id for row in rows
            if not row.desired_category_id and not (row.desired_description or "").strip()
        }
        if not owners:
            return {}
        offers = self.db.execute(
            select(BarterOffer)
            .where(BarterOffer.initiator_id.in_(sorted(owners)), *self._open_offer_clauses())
            .order_by(BarterOffer.created_at.desc(), BarterOffer.id.desc())
        ).scalars().all()
        wants: Dict[str, Tuple[Optional[str], Optional[str]]] = {}
        for offer in offers:
            wants.setdefault(offer.initiator_id, (offer.desired_category_id, offer.desired_description))
        return wants

    def _item_to_tradable(
        self,
        row: ListedItem,
        offer_wants: Optional[Dict[str, Tuple[Optional[str], Optional[str]]]] = None,
    ) -> Tradable:
        desired_category_id, desired_description = row.desired_category_id, row.desired_description
        from_offer = False
        if not desired_category_id and not (desired_description or "").strip() and offer_wants:
            if row.owner_id in offer_wants:
                desired_category_id, desired_description = offer_wants[row.owner_id]
                from_offer = True
        return Tradable(
            id=row.id,
            owner_id=row.owner_id,
            kind=TradableKind.ITEM,
            category=self._category_ref(row.category_id),
            location=self._location(row),
            created_at=row.created_at,
            title=row.title or "",
            description=row.description,
            value=row.estimated_value,
            condition=row.condition,
            desired_category=self._category_ref(desired_category_id),
            desired_description=desired_description,
            wants_from_offer=from_offer,
            status=row.status,
        )

    def _demand_to_tradable(self, row: DemandRequest) -> Tradable:
        return Tradable(
            id=row.id,
            owner_id=row.requester_id,
            kind=TradableKind.DEMAND,
            category=self._category_ref(row.category_id),
            location=self._location(row),
            created_at=row.created_at,
            title=row.title or "",
            description=row.description,
            value=demand_value(row.target_price, row.price_min, row.price_max),
            required_condition=row.condition,
            price_min=row.price_min,
            price_max=row.price_max,
            demand_kind=row.kind,
            keywords=list(row.keywords or []),
            status=row.status,
        )


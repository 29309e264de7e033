"""Match orchestrator: the only matching component with side effects.

Per inbound event:
1. Validate the payload (pydantic schema per event type)
2. Re-validate the triggering entity (exists, eligible state)
3. Run the matchers and, for barter, the chain discoverer
4. Persist match records and chains idempotently, then commit
5. Dispatch notifications (one per user, capped, deduplicated by
   (user_id, entity_id)); failures are logged and never roll back step 4

Event processing degrades to an empty outcome on NotFoundError and
ValidationError. An exhausted chain search is reported as a truncated
result. Database errors propagate so the worker can retry the delivery.
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from pydantic import ValidationError as PydanticValidationError

from config import Settings, get_settings
from domain.barter import BarterChainStatus, BarterOfferStatus, ParticipantStatus
from domain.geo import Location
from domain.items import DemandKind, DemandStatus, ItemStatus, can_transition
from observability.correlation import event_context
from observability.metrics import (
    chain_search_truncated_total,
    chains_discovered_total,
    event_duration_seconds,
    events_processed_total,
    match_score_histogram,
    matches_found_total,
    notifications_total,
)

from .barter_matcher import BarterPairwiseMatcher
from .chain_discoverer import MAX_CHAIN_LENGTH, ChainDiscoverer
from .chain_lifecycle import ChainLifecycle
from .errors import ChainStateError, DispatchFailure, NotFoundError, ValidationError
from .notifications import MatchNotice, plan_match_notifications
from .ports import (
    CandidateCriteria,
    CandidateIndexPort,
    MatchStorePort,
    NotificationPort,
    SettlementPort,
)
from .schemas import (
    EVENT_SCHEMAS,
    BarterItemRequestCreated,
    BarterOfferCreated,
    ChainSettlementReported,
    ChainStats,
    ChainView,
    EventEnvelope,
    ItemCreated,
    ItemDeleted,
    ItemUpdated,
    MatchingStats,
    MatchView,
    ReverseAuctionCreated,
    UserMatchesView,
)
from .scorer import MatchScorer, ScoringWeights
from .supply_demand_matcher import SupplyDemandMatcher
from .tradables import MatchCandidate, MatchType, Tradable, TradableKind, demand_value, tokenize

logger = logging.getLogger(__name__)

OUTCOME_PROCESSED = "processed"
OUTCOME_IGNORED = "ignored"
OUTCOME_NOT_FOUND = "not_found"
OUTCOME_REJECTED = "rejected"


@dataclass
class MatchRunResult:
    """What one matching run produced."""
    trigger_id: str
    status: str = OUTCOME_PROCESSED
    matches: List[MatchCandidate] = field(default_factory=list)
    matches_created: int = 0
    chain_ids: List[str] = field(default_factory=list)
    notifications_sent: int = 0
    truncated: bool = False


class MatchOrchestrator:
    """Drive matching from domain events and own all match/chain writes.

    Collaborators are injected; settings fall back to get_settings().
    """

    def __init__(
        self,
        index: CandidateIndexPort,
        store: MatchStorePort,
        notifier: NotificationPort,
        settlement: SettlementPort,
        settings: Optional[Settings] = None,
        scorer: Optional[MatchScorer] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        settings = settings or get_settings()
        self.index = index
        self.store = store
        self.notifier = notifier
        self.settings = settings
        self.clock = clock

        scorer = scorer or MatchScorer(ScoringWeights.from_settings(settings))
        self.supply_demand = SupplyDemandMatcher(
            index, scorer,
            min_score=settings.MATCH_MIN_SCORE,
            top_k=settings.MATCH_TOP_K,
            candidate_limit=settings.CANDIDATE_LIMIT,
        )
        self.barter = BarterPairwiseMatcher(
            index, scorer,
            min_score=settings.MATCH_MIN_SCORE,
            top_k=settings.MATCH_TOP_K,
            candidate_limit=settings.CANDIDATE_LIMIT,
        )
        self.discoverer = ChainDiscoverer(
            scorer,
            edge_threshold=settings.BARTER_EDGE_THRESHOLD,
            search_budget=settings.CHAIN_SEARCH_BUDGET,
        )
        self.lifecycle = ChainLifecycle(store, notifier, settlement, clock)

        self._handlers = {
            "ItemCreated": self._on_item_created,
            "ItemUpdated": self._on_item_updated,
            "ItemDeleted": self._on_item_deleted,
            "BarterOfferCreated": self._on_barter_offer_created,
            "BarterItemRequestCreated": self._on_barter_item_request_created,
            "ReverseAuctionCreated": self._on_reverse_auction_created,
            "ChainSettlementReported": self._on_settlement_reported,
        }

    # Event intake

    def handle_envelope(self, envelope: dict) -> MatchRunResult:
        """Handle a transport envelope ``{eventId, eventType, occurredAt, payload}``."""
        try:
            parsed = EventEnvelope.model_validate(envelope)
        except PydanticValidationError as e:
            events_processed_total.labels(event_type="unknown", outcome=OUTCOME_REJECTED).inc()
            logger.warning(f"Rejected malformed event envelope: {e}")
            return MatchRunResult(trigger_id="", status=OUTCOME_REJECTED)
        return self.handle(parsed.event_type, parsed.payload, parsed.event_id)

    def handle(self, event_type: str, payload: dict, event_id: Optional[str] = None) -> MatchRunResult:
        """Process one inbound event.

        Args:
            event_type: Event name (e.g. "ItemCreated")
            payload: Event payload (camelCase or snake_case keys)
            event_id: Delivery ID used for log correlation

        Returns:
            MatchRunResult; rejected and not-found events return an empty result

        Raises:
            sqlalchemy.exc.SQLAlchemyError: Storage failures, so the delivery is retried
        """
        with event_context(event_id):
            started = time.monotonic()
            try:
                schema = EVENT_SCHEMAS.get(event_type)
                if schema is None:
                    raise ValidationError(f"Unsupported event type {event_type}", event_type)
                try:
                    event = schema.model_validate(payload)
                except PydanticValidationError as e:
                    raise ValidationError(f"Malformed {event_type} payload: {e}", event_type) from e

                result = self._handlers[event_type](event)

            except ValidationError as e:
                self.store.rollback()
                logger.warning(f"Rejected {event_type} event: {e}", extra={"event_type": event_type})
                result = MatchRunResult(trigger_id="", status=OUTCOME_REJECTED)
            except NotFoundError as e:
                self.store.rollback()
                logger.info(f"Skipping {event_type}: {e}", extra={"event_type": event_type})
                result = MatchRunResult(trigger_id=e.entity_id, status=OUTCOME_NOT_FOUND)
            except ChainStateError as e:
                self.store.rollback()
                logger.warning(f"Ignoring {event_type}: {e}", extra={"event_type": event_type})
                result = MatchRunResult(trigger_id="", status=OUTCOME_IGNORED)
            except Exception:
                self.store.rollback()
                events_processed_total.labels(event_type=event_type, outcome="error").inc()
                raise
            finally:
                event_duration_seconds.labels(event_type=event_type).observe(time.monotonic() - started)

            events_processed_total.labels(event_type=event_type, outcome=result.status).inc()
            return result

    # Event handlers

    def _on_item_created(self, event: ItemCreated) -> MatchRunResult:
        return self.process_new_item(event.item_id)

    def _on_item_updated(self, event: ItemUpdated) -> MatchRunResult:
        if not event.changes.is_relevant:
            logger.info(f"Item {event.item_id} update has no matching-relevant changes", extra={"item_id": event.item_id})
            return MatchRunResult(trigger_id=event.item_id, status=OUTCOME_IGNORED)
        if self.index.get_item(event.item_id) is None:
            raise NotFoundError("ListedItem", event.item_id)
        # Previous matches were computed from the old category/wants
        self.store.delete_matches_for(event.item_id)
        return self.process_new_item(event.item_id)

    def _on_item_deleted(self, event: ItemDeleted) -> MatchRunResult:
        item = self.index.get_item(event.item_id)
        if item is not None and can_transition(ItemStatus(item.status), ItemStatus.WITHDRAWN):
            self.store.set_item_status(item.id, ItemStatus.WITHDRAWN.value)

        reason = "An item in this chain was withdrawn"
        chains = self.lifecycle.cancel_for_item(event.item_id, reason)
        removed = self.store.delete_matches_for(event.item_id)
        self.store.commit()

        logger.info(
            f"Item {event.item_id} deleted: cancelled {len(chains)} chains, removed {removed} matches",
            extra={"item_id": event.item_id},
        )
        self.lifecycle.notify_cancelled(chains, reason)
        return MatchRunResult(trigger_id=event.item_id, chain_ids=[c.id for c in chains])

    def _on_barter_offer_created(self, event: BarterOfferCreated) -> MatchRunResult:
        offer = self.index.get_offer(event.offer_id)
        if offer is None:
            raise NotFoundError("BarterOffer", event.offer_id)

        now = self.clock()
        if offer.status != BarterOfferStatus.PENDING.value or (offer.expires_at and offer.expires_at <= now):
            logger.info(f"Barter offer {offer.id} is no longer open", extra={"offer_id": offer.id})
            return MatchRunResult(trigger_id=offer.id, status=OUTCOME_IGNORED)

        items = [
            offer.apply_wants(item)
            for item in self.index.get_items(offer.offered_item_ids)
            if item.status == ItemStatus.ACTIVE.value and item.owner_id == offer.initiator_id
        ]
        if not items:
            logger.info(f"Barter offer {offer.id} has no active items", extra={"offer_id": offer.id})
            return MatchRunResult(trigger_id=offer.id, status=OUTCOME_IGNORED)

        result = MatchRunResult(trigger_id=offer.id)
        items_by_id = {item.id: item for item in items}
        swaps = self.barter.match_offer(offer, items, now)
        by_source: Dict[str, List[MatchCandidate]] = {}
        for swap in swaps:
            by_source.setdefault(swap.source_id, []).append(swap)
        for source_id, candidates in by_source.items():
            result.matches_created += self._persist_matches(MatchType.PERFECT_BARTER, items_by_id[source_id], candidates)
        result.matches = swaps

        chains = self._discover_chains(items, now, result)
        self.store.commit()

        notices = [
            self._notice(MatchType.PERFECT_BARTER, swap.target_owner_id, swap, items_by_id[swap.source_id])
            for swap in swaps
        ]
        notices.extend(self._chain_notices(chains))
        result.notifications_sent = self._dispatch(notices)
        return result

    def _on_barter_item_request_created(self, event: BarterItemRequestCreated) -> MatchRunResult:
        offer = self.index.get_offer(event.offer_id)
        if offer is None:
            raise NotFoundError("BarterOffer", event.offer_id)

        category = None
        if event.category_id:
            category = self.index.get_category(event.category_id)
            if category is None:
                raise ValidationError(f"Unknown category {event.category_id}", "BarterItemRequestCreated")

        keywords = [k.strip() for k in event.keywords if k.strip()]
        now = self.clock()
        demand = Tradable(
            id=event.request_id,
            owner_id=event.initiator_id,
            kind=TradableKind.DEMAND,
            category=category,
            location=offer.location,
            created_at=now,
            title=" ".join(keywords),
            value=demand_value(None, event.min_price, event.max_price),
            required_condition=event.condition,
            price_min=event.min_price,
            price_max=event.max_price,
            demand_kind=DemandKind.PURCHASE.value,
            keywords=keywords,
        )
        return self._run_demand(demand, MatchType.DEMAND_TO_SUPPLY, "BARTER_REQUEST", now)

    def _on_reverse_auction_created(self, event: ReverseAuctionCreated) -> MatchRunResult:
        demand = self.index.get_demand(event.auction_id)
        if demand is None:
            demand = self._auction_from_event(event)
        if demand.status != DemandStatus.OPEN.value:
            logger.info(f"Reverse auction {demand.id} is closed", extra={"item_id": demand.id})
            return MatchRunResult(trigger_id=demand.id, status=OUTCOME_IGNORED)
        return self._run_demand(demand, MatchType.REVERSE_AUCTION, "REVERSE_AUCTION", self.clock())

    def _auction_from_event(self, event: ReverseAuctionCreated) -> Tradable:
        """Build a transient demand when the auction row is not readable yet."""
        if not event.governorate:
            raise NotFoundError("DemandRequest", event.auction_id)
        category = self.index.get_category(event.category_id)
        if category is None:
            raise ValidationError(f"Unknown category {event.category_id}", "ReverseAuctionCreated")
        try:
            location = Location(governorate=event.governorate, city=event.city, district=event.district)
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid auction location: {e}", "ReverseAuctionCreated") from e
        return Tradable(
            id=event.auction_id,
            owner_id=event.buyer_id,
            kind=TradableKind.DEMAND,
            category=category,
            location=location,
            created_at=self.clock(),
            title=event.title or "",
            value=demand_value(event.target_price, None, event.max_budget),
            required_condition=event.condition,
            price_max=event.max_budget,
            demand_kind=DemandKind.REVERSE_AUCTION.value,
            status=DemandStatus.OPEN.value,
        )

    def _on_settlement_reported(self, event: ChainSettlementReported) -> MatchRunResult:
        chain = self.lifecycle.report_settlement(event.chain_id, event.success, event.reason)
        return MatchRunResult(trigger_id=chain.id, chain_ids=[chain.id])

    # Matching runs

    def process_new_item(self, item_id: str) -> MatchRunResult:
        """Match a listed item against demand and, if it states wants, barter partners.

        Args:
            item_id: Listed item ID

        Returns:
            MatchRunResult with persisted matches, chains and notification count

        Raises:
            NotFoundError: Item does not exist
        """
        item = self.index.get_item(item_id)
        if item is None:
            raise NotFoundError("ListedItem", item_id)
        if item.status != ItemStatus.ACTIVE.value:
            logger.info(f"Item {item_id} is {item.status}; not matching", extra={"item_id": item_id})
            return MatchRunResult(trigger_id=item_id, status=OUTCOME_IGNORED)

        now = self.clock()
        result = MatchRunResult(trigger_id=item_id)
        notices: List[MatchNotice] = []

        demand_matches = self.supply_demand.match_item(item, now)
        purchases = [m for m in demand_matches if m.target_kind != DemandKind.REVERSE_AUCTION.value]
        auctions = [m for m in demand_matches if m.target_kind == DemandKind.REVERSE_AUCTION.value]
        result.matches_created += self._persist_matches(MatchType.SALE_TO_DEMAND, item, purchases)
        result.matches_created += self._persist_matches(MatchType.REVERSE_AUCTION, item, auctions)
        result.matches.extend(demand_matches)
        notices.extend(
            self._notice(MatchType.SALE_TO_DEMAND, m.target_owner_id, m, item) for m in demand_matches
        )

        chains: List = []
        if item.has_wants:
            swaps = self.barter.match_item(item, now)
            result.matches_created += self._persist_matches(MatchType.PERFECT_BARTER, item, swaps)
            result.matches.extend(swaps)
            notices.extend(
                self._notice(MatchType.PERFECT_BARTER, m.target_owner_id, m, item) for m in swaps
            )
            chains = self._discover_chains([item], now, result)

        self.store.commit()

        notices.extend(self._chain_notices(chains))
        result.notifications_sent = self._dispatch(notices)
        logger.info(
            f"Item {item_id}: {len(result.matches)} matches, {len(chains)} new chains",
            extra={"item_id": item_id, "matches": len(result.matches), "chains_found": len(chains)},
        )
        return result

    def _run_demand(self, demand: Tradable, match_type: MatchType, entity_type: str, now: datetime) -> MatchRunResult:
        matches = self.supply_demand.match_demand(demand, now)
        result = MatchRunResult(trigger_id=demand.id, matches=matches)
        result.matches_created = self._persist_matches(match_type, demand, matches)
        self.store.commit()

        notices = [
            MatchNotice(
                user_id=m.target_owner_id,
                match_type=match_type,
                score=m.score,
                entity_type=entity_type,
                entity_id=demand.id,
                subject_title=demand.title,
                subject_value=demand.value,
                tier=m.tier,
                reasons=m.reasons,
            )
            for m in matches
        ]
        result.notifications_sent = self._dispatch(notices)
        return result

    def _discover_chains(self, start_items: Sequence[Tradable], now: datetime, result: MatchRunResult) -> List:
        claimed = self.store.claimed_item_ids()
        pool, pool_truncated = self._chain_pool(start_items, claimed)
        search = self.discoverer.discover(start_items, pool, now, claimed_item_ids=claimed)
        if search.truncated or pool_truncated:
            result.truncated = True
            chain_search_truncated_total.inc()

        expires_at = now + timedelta(days=self.settings.CHAIN_TTL_DAYS)
        saved = []
        for proposal in search.chains:
            if self.store.chain_exists(proposal.signature):
                continue
            chain = self.store.save_chain(proposal, expires_at)
            chains_discovered_total.labels(chain_type=proposal.chain_type).inc()
            logger.info(
                f"Discovered {proposal.chain_type} chain {chain.id} (score {proposal.score:.3f})",
                extra={"chain_id": chain.id},
            )
            saved.append((chain, proposal))
            result.chain_ids.append(chain.id)
        return saved

    def _chain_pool(self, start_items: Sequence[Tradable], claimed: Sequence[str]) -> Tuple[List[Tradable], bool]:
        """Collect the barter items a chain through the start items could use.

        Every other node of a cycle through a start item is at most
        ``MAX_CHAIN_LENGTH - 2`` want hops ahead of it, or wants the start
        item directly. The pool follows forward want hops from the start
        items and adds the items that want them, stopping at
        ``BARTER_POOL_LIMIT``.

        Returns:
            (pool, truncated); truncated is set when the pool limit or a
            per-hop candidate cap cut the pool short
        """
        anchor = start_items[0]
        cap = self.settings.BARTER_POOL_LIMIT
        per_query = self.settings.CANDIDATE_LIMIT
        skip = set(claimed) | {item.id for item in start_items}
        pool: Dict[str, Tradable] = {}
        truncated = False

        def fetch(**filters) -> List[Tradable]:
            nonlocal truncated
            found = self.index.find_barter_items(CandidateCriteria(
                near=anchor.location,
                country=anchor.location.country,
                exclude_owner_id=anchor.owner_id,
                exclude_item_ids=sorted(skip),
                limit=per_query + 1,
                **filters
            ))
            if len(found) > per_query:
                truncated = True
                found = found[:per_query]
            return found

        def add(items: Iterable[Tradable]) -> List[Tradable]:
            nonlocal truncated
            added = []
            for item in items:
                if item.id in pool or item.id in skip:
                    continue
                if len(pool) >= cap:
                    truncated = True
                    break
                pool[item.id] = item
                added.append(item)
            return added

        for start in start_items:
            if start.category is None:
                continue
            add(fetch(
                wanted_category_ids=list(start.category.lineage),
                wanted_keywords=sorted(tokenize(start.title)),
            ))

        frontier = list(start_items)
        for _ in range(MAX_CHAIN_LENGTH - 2):
            next_frontier = []
            for node in frontier:
                if not node.has_wants:
                    continue
                next_frontier.extend(add(fetch(
                    category_id=node.desired_category.id if node.desired_category else None,
                    keywords=[] if node.desired_category else sorted(node.want_tokens),
                )))
            frontier = next_frontier

        if truncated:
            logger.warning(
                f"Chain pool for {anchor.id} cut at {len(pool)} items",
                extra={"item_id": anchor.id, "candidates": len(pool)},
            )
        return list(pool.values()), truncated

    def _persist_matches(self, match_type: MatchType, source: Tradable, candidates: Sequence[MatchCandidate]) -> int:
        if not candidates:
            return 0
        created = self.store.upsert_matches(match_type, source, candidates)
        matches_found_total.labels(match_type=match_type.value).inc(created)
        for candidate in candidates:
            match_score_histogram.observe(candidate.score)
        return created

    # Notifications

    @staticmethod
    def _notice(match_type: MatchType, user_id: str, match: MatchCandidate, subject: Tradable) -> MatchNotice:
        return MatchNotice(
            user_id=user_id,
            match_type=match_type,
            score=match.score,
            entity_type="ITEM",
            entity_id=subject.id,
            subject_title=subject.title,
            subject_value=subject.value,
            tier=match.tier,
            reasons=match.reasons,
        )

    @staticmethod
    def _chain_notices(chains: Iterable) -> List[MatchNotice]:
        notices = []
        for chain, proposal in chains:
            for link in proposal.links:
                notices.append(MatchNotice(
                    user_id=link.user_id,
                    match_type=MatchType.BARTER_CHAIN,
                    score=proposal.score,
                    entity_type="BARTER_CHAIN",
                    entity_id=chain.id,
                    participants=proposal.length,
                ))
        return notices

    def _dispatch(self, notices: Iterable[MatchNotice]) -> int:
        """Send at most one notification per user, skipping (user, entity) pairs already notified."""
        fresh = []
        for notice in notices:
            if self.store.was_notified(notice.user_id, notice.entity_id):
                notifications_total.labels(status="deduplicated").inc()
                continue
            fresh.append(notice)

        sent = 0
        requests = plan_match_notifications(
            fresh,
            cap=self.settings.NOTIFICATION_CAP_PER_EVENT,
            high_priority_score=self.settings.HIGH_PRIORITY_SCORE,
        )
        for request in requests:
            try:
                self.notifier.notify(request)
            except DispatchFailure as e:
                notifications_total.labels(status="failed").inc()
                logger.warning(
                    f"Notification to {request.user_id} failed: {e}",
                    extra={"user_id": request.user_id},
                )
                continue
            self.store.record_notification(request.user_id, request.entity_id, request.type)
            notifications_total.labels(status="sent").inc()
            sent += 1

        if sent:
            self.store.commit()
        return sent

    # Queries

    def get_matches_for_item(self, item_id: str, user_id: str) -> List[MatchView]:
        """Persisted matches for an item, visible to its owner only.

        Raises:
            NotFoundError: Item missing or not owned by the user
        """
        item = self.index.get_item(item_id)
        if item is None or item.owner_id != user_id:
            raise NotFoundError("ListedItem", item_id)
        return [MatchView.model_validate(row) for row in self.store.matches_for_entity(item_id)]

    def get_matches_for_user(self, user_id: str) -> UserMatchesView:
        view = UserMatchesView(user_id=user_id)
        for row in self.store.matches_for_user(user_id):
            match = MatchView.model_validate(row)
            if row.match_type == MatchType.PERFECT_BARTER.value:
                view.barter.append(match)
            elif row.match_type == MatchType.DEMAND_TO_SUPPLY.value:
                view.demands.append(match)
            else:
                view.sales.append(match)
        view.chains = [
            ChainView.model_validate(chain)
            for chain in self.store.chains_for_user(user_id, [BarterChainStatus.PENDING.value])
        ]
        view.total = len(view.barter) + len(view.sales) + len(view.demands) + len(view.chains)
        return view

    def get_matching_stats(self) -> MatchingStats:
        return MatchingStats(**self.store.match_stats())

    def get_pending_proposals(self, user_id: str) -> List[ChainView]:
        """PENDING chains still waiting for this user's answer."""
        proposals = []
        for chain in self.store.chains_for_user(user_id, [BarterChainStatus.PENDING.value]):
            participant = chain.participant_for(user_id)
            if participant is not None and participant.status == ParticipantStatus.PENDING.value:
                proposals.append(ChainView.model_validate(chain))
        return proposals

    def get_chain_stats(self, user_id: str) -> ChainStats:
        chains = self.store.chains_for_user(user_id)
        counts: Dict[str, int] = {}
        for chain in chains:
            counts[chain.status] = counts.get(chain.status, 0) + 1
        total = len(chains)
        confirmed = counts.get(BarterChainStatus.CONFIRMED.value, 0)
        return ChainStats(
            user_id=user_id,
            total=total,
            pending=counts.get(BarterChainStatus.PENDING.value, 0),
            confirmed=confirmed,
            cancelled=counts.get(BarterChainStatus.CANCELLED.value, 0),
            expired=counts.get(BarterChainStatus.EXPIRED.value, 0),
            success_rate=confirmed / total if total else 0.0,
        )

    # Chain lifecycle

    def respond_to_chain(self, chain_id: str, user_id: str, accept: bool, now: Optional[datetime] = None) -> ChainView:
        return ChainView.model_validate(self.lifecycle.respond(chain_id, user_id, accept, now))

    def cancel_chain(self, chain_id: str, user_id: str, reason: Optional[str] = None) -> ChainView:
        return ChainView.model_validate(self.lifecycle.cancel(chain_id, user_id, reason))

    def report_settlement(self, chain_id: str, success: bool, reason: Optional[str] = None) -> ChainView:
        return ChainView.model_validate(self.lifecycle.report_settlement(chain_id, success, reason))

    def expire_overdue(self, now: Optional[datetime] = None) -> Dict[str, int]:
        return self.lifecycle.expire_overdue(now)

"""Integration tests for the match orchestrator over SQLite

Covers event intake, idempotent persistence, notification dedupe and the
barter chain lifecycle end to end.
"""

from datetime import timedelta
from unittest.mock import MagicMock

import pytest

from config import Settings
from events.bus import InMemoryEventBus, make_envelope
from infrastructure.repositories.candidate_index import SqlCandidateIndex
from infrastructure.repositories.match_store import SqlMatchStore
from matching.errors import ChainExpired, ChainStateError, ConcurrencyConflict, NotFoundError
from matching.orchestrator import MatchOrchestrator
from models import BarterChain, MatchRecord
from workers.event_consumer import register_matching_listeners


def item_created(item, event_id="evt-1"):
    return dict(
        event_type="ItemCreated",
        payload={"itemId": item.id, "userId": item.owner_id, "categoryId": item.category_id},
        event_id=event_id,
    )


@pytest.fixture
def triangle(add_item):
    """A wants B, B wants C, C wants A; no pair is mutual."""
    a = add_item("u1", "chairs", title="Office chair", wants="tablets")
    b = add_item("u2", "tablets", title="iPad Air", wants="bicycles")
    c = add_item("u3", "bicycles", title="Road bike", wants="chairs")
    return a, b, c


@pytest.fixture
def swap(add_item, seed_chain):
    a = add_item("u1", "chairs", 1000)
    b = add_item("u2", "tablets", 1000)
    return a, b, seed_chain([a, b])


@pytest.fixture
def pool_orchestrator(db_session, notifier, settlement, now):
    """Orchestrator factory with a given barter pool limit."""

    def _build(pool_limit: int) -> MatchOrchestrator:
        return MatchOrchestrator(
            index=SqlCandidateIndex(db_session, clock=lambda: now),
            store=SqlMatchStore(db_session),
            notifier=notifier,
            settlement=settlement,
            settings=Settings(BARTER_POOL_LIMIT=pool_limit),
            clock=lambda: now,
        )

    return _build


class TestSupplyDemandFlow:
    """Test item and demand events"""

    def test_item_created_matches_demand(self, db_session, orchestrator, notifier, add_item, add_demand):
        item = add_item("u1", "mobile-phones", 45000, title="iPhone 13")
        demand = add_demand("u2", "mobile-phones", price_max=50000)

        result = orchestrator.handle(**item_created(item))

        assert result.status == "processed"
        assert result.matches_created == 1
        record = db_session.query(MatchRecord).one()
        assert (record.match_type, record.source_id, record.target_id) == ("SALE_TO_DEMAND", item.id, demand.id)
        assert record.tier == "DISTRICT"
        assert notifier.types_for("u2") == ["SALE_TO_DEMAND"]
        assert notifier.sent[0].entity_id == item.id

    def test_replay_is_idempotent(self, db_session, orchestrator, notifier, add_item, add_demand):
        item = add_item("u1", "mobile-phones", 45000)
        add_demand("u2", "mobile-phones", price_max=50000)

        orchestrator.handle(**item_created(item))
        replay = orchestrator.handle(**item_created(item))

        assert replay.matches_created == 0
        assert replay.notifications_sent == 0
        assert db_session.query(MatchRecord).count() == 1
        assert len(notifier.sent) == 1

    def test_reverse_auction_recorded_separately(self, db_session, orchestrator, add_item, add_demand):
        item = add_item("u1", "mobile-phones", 45000)
        add_demand("u2", "mobile-phones", price_max=50000)
        add_demand("u3", "mobile-phones", price_max=48000, kind="REVERSE_AUCTION")

        orchestrator.handle(**item_created(item))

        types = {r.match_type for r in db_session.query(MatchRecord).all()}
        assert types == {"SALE_TO_DEMAND", "REVERSE_AUCTION"}

    def test_no_candidates(self, orchestrator, notifier, add_item):
        item = add_item("u1", "mobile-phones", 45000)

        result = orchestrator.handle(**item_created(item))

        assert result.status == "processed"
        assert result.matches == []
        assert notifier.sent == []

    def test_inactive_item_ignored(self, orchestrator, add_item):
        item = add_item("u1", "mobile-phones", 45000, status="SOLD")
        assert orchestrator.handle(**item_created(item)).status == "ignored"

    def test_notification_failure_keeps_matches(self, db_session, orchestrator, notifier, add_item, add_demand):
        item = add_item("u1", "mobile-phones", 45000)
        add_demand("u2", "mobile-phones", price_max=50000)
        notifier.fail = True

        result = orchestrator.handle(**item_created(item))

        assert result.matches_created == 1
        assert result.notifications_sent == 0
        assert db_session.query(MatchRecord).count() == 1

        notifier.fail = False
        assert orchestrator.handle(**item_created(item, "evt-2")).notifications_sent == 1

    def test_item_updated_recomputes(self, db_session, orchestrator, add_item, add_demand):
        item = add_item("u1", "mobile-phones", 45000)
        add_demand("u2", "mobile-phones", price_max=50000)
        orchestrator.handle(**item_created(item))

        item.category_id = "chairs"
        db_session.commit()
        result = orchestrator.handle(
            "ItemUpdated",
            {"itemId": item.id, "userId": "u1", "changes": {"category": "chairs"}},
            "evt-2",
        )

        assert result.status == "processed"
        assert db_session.query(MatchRecord).count() == 0

    def test_item_updated_without_relevant_changes(self, orchestrator, add_item):
        item = add_item("u1", "mobile-phones", 45000)
        result = orchestrator.handle("ItemUpdated", {"itemId": item.id, "userId": "u1", "changes": {"price": 1}})
        assert result.status == "ignored"

    def test_reverse_auction_created(self, db_session, orchestrator, notifier, add_item, add_demand):
        add_item("u1", "mobile-phones", 38000, title="iPhone 13")
        auction = add_demand("u2", "mobile-phones", price_max=50000, target_price=40000, kind="REVERSE_AUCTION")

        result = orchestrator.handle(
            "ReverseAuctionCreated",
            {"auctionId": auction.id, "buyerId": "u2", "categoryId": "mobile-phones"},
            "evt-ra",
        )

        assert result.matches_created == 1
        assert db_session.query(MatchRecord).one().match_type == "REVERSE_AUCTION"
        assert notifier.sent[0].user_id == "u1"
        assert notifier.sent[0].action_url == f"/reverse-auctions/{auction.id}"

    def test_reverse_auction_from_payload(self, orchestrator, add_item):
        add_item("u1", "mobile-phones", 38000)

        result = orchestrator.handle(
            "ReverseAuctionCreated",
            {
                "auctionId": "auction-1",
                "buyerId": "u2",
                "categoryId": "mobile-phones",
                "maxBudget": 40000,
                "governorate": "Cairo",
                "city": "Nasr City",
            },
        )

        assert result.status == "processed"
        assert len(result.matches) == 1

    def test_reverse_auction_without_row_or_location(self, orchestrator):
        result = orchestrator.handle(
            "ReverseAuctionCreated", {"auctionId": "auction-1", "buyerId": "u2", "categoryId": "mobile-phones"}
        )
        assert result.status == "not_found"

    def test_barter_item_request_keywords(self, db_session, orchestrator, notifier, add_item, add_offer):
        mine = add_item("u1", "chairs")
        offer = add_offer("u1", [mine.id])
        iphone = add_item("u2", "mobile-phones", title="iPhone 13 Pro")
        add_item("u3", "mobile-phones", title="Samsung Galaxy S22")

        result = orchestrator.handle(
            "BarterItemRequestCreated",
            {"requestId": "req-1", "offerId": offer.id, "initiatorId": "u1", "keywords": ["iphone"]},
        )

        assert [m.target_id for m in result.matches] == [iphone.id]
        record = db_session.query(MatchRecord).one()
        assert (record.match_type, record.source_id) == ("DEMAND_TO_SUPPLY", "req-1")
        assert notifier.types_for("u2") == ["DEMAND_TO_SUPPLY"]

    def test_barter_item_request_unknown_category(self, orchestrator, add_item, add_offer):
        offer = add_offer("u1", [add_item("u1", "chairs").id])
        result = orchestrator.handle(
            "BarterItemRequestCreated",
            {"requestId": "req-1", "offerId": offer.id, "initiatorId": "u1", "categoryId": "boats"},
        )
        assert result.status == "rejected"


class TestEventIntake:
    """Test validation and routing of inbound events"""

    def test_missing_item(self, orchestrator):
        result = orchestrator.handle("ItemCreated", {"itemId": "missing", "userId": "u1", "categoryId": "c"})
        assert result.status == "not_found"
        assert result.trigger_id == "missing"

    def test_malformed_payload(self, orchestrator):
        assert orchestrator.handle("ItemCreated", {"itemId": "x"}).status == "rejected"

    def test_unsupported_event_type(self, orchestrator):
        assert orchestrator.handle("ItemRenamed", {}).status == "rejected"

    def test_malformed_envelope(self, orchestrator):
        assert orchestrator.handle_envelope({"eventType": "ItemCreated"}).status == "rejected"

    def test_envelope(self, db_session, orchestrator, add_item, add_demand):
        item = add_item("u1", "mobile-phones", 45000)
        add_demand("u2", "mobile-phones", price_max=50000)

        result = orchestrator.handle_envelope(
            make_envelope("ItemCreated", {"itemId": item.id, "userId": "u1", "categoryId": "mobile-phones"})
        )

        assert result.matches_created == 1

    def test_bus_event_processed_through_worker_queue(self, db_session, orchestrator, add_item, add_demand):
        queue = MagicMock()
        queue.send_task.side_effect = lambda name, args, task_id: orchestrator.handle_envelope(args[0])
        bus = InMemoryEventBus()
        register_matching_listeners(bus, queue)
        item = add_item("u1", "mobile-phones", 45000)
        add_demand("u2", "mobile-phones", price_max=50000)

        bus.publish("ItemCreated", {"itemId": item.id, "userId": "u1", "categoryId": "mobile-phones"})

        assert db_session.query(MatchRecord).count() == 1
        assert queue.send_task.call_args.args[0] == "matching.handle_event"


class TestBarterFlow:
    """Test barter offers, swaps and chain discovery"""

    def test_offer_finds_perfect_barter(self, db_session, orchestrator, notifier, add_item, add_offer):
        phone = add_item("u1", "mobile-phones", 45000, title="iPhone 13", wants="tablets")
        tablet = add_item("u2", "tablets", 44000, title="iPad Air")
        offer = add_offer("u2", [tablet.id], wants="mobile-phones")

        result = orchestrator.handle(
            "BarterOfferCreated",
            {"offerId": offer.id, "initiatorId": "u2", "offeredItemIds": [tablet.id]},
            "evt-offer",
        )

        record = db_session.query(MatchRecord).one()
        assert (record.match_type, record.source_id, record.target_id) == ("PERFECT_BARTER", tablet.id, phone.id)
        assert record.tier == "DISTRICT"
        assert 0.94 < record.score <= 1.0
        chain = db_session.query(BarterChain).one()
        assert chain.chain_type == "DIRECT_SWAP"
        assert result.chain_ids == [chain.id]
        assert len(notifier.types_for("u1")) == 1
        assert notifier.types_for("u2") == ["BARTER_CHAIN"]

    def test_expired_offer_ignored(self, orchestrator, now, add_item, add_offer):
        tablet = add_item("u2", "tablets", 44000)
        offer = add_offer("u2", [tablet.id], wants="mobile-phones", expires_at=now - timedelta(hours=1))

        result = orchestrator.handle(
            "BarterOfferCreated", {"offerId": offer.id, "initiatorId": "u2", "offeredItemIds": [tablet.id]}
        )

        assert result.status == "ignored"

    def test_offer_of_foreign_items_ignored(self, orchestrator, add_item, add_offer):
        foreign = add_item("u9", "tablets", 44000)
        offer = add_offer("u2", [foreign.id], wants="mobile-phones")

        result = orchestrator.handle(
            "BarterOfferCreated", {"offerId": offer.id, "initiatorId": "u2", "offeredItemIds": [foreign.id]}
        )

        assert result.status == "ignored"

    def test_three_party_chain(self, db_session, orchestrator, notifier, match_store, triangle):
        a, b, c = triangle

        result = orchestrator.handle(**item_created(a))

        assert len(result.chain_ids) == 1
        chain = match_store.get_chain(result.chain_ids[0])
        assert chain.chain_type == "THREE_WAY"
        assert [(p.user_id, p.giving_item_id, p.receiving_item_id) for p in chain.participants] == [
            ("u1", a.id, b.id),
            ("u3", c.id, a.id),
            ("u2", b.id, c.id),
        ]
        for user in ("u1", "u2", "u3"):
            assert notifier.types_for(user) == ["BARTER_CHAIN"]

    def test_offer_wants_stand_in_for_item_wants(self, db_session, orchestrator, add_item, add_offer):
        phone = add_item("u1", "mobile-phones", 45000, title="iPhone 13")
        tablet = add_item("u2", "tablets", 44000, title="iPad Air")
        add_offer("u1", [phone.id], wants="tablets")
        offer = add_offer("u2", [tablet.id], wants="mobile-phones")

        result = orchestrator.handle(
            "BarterOfferCreated",
            {"offerId": offer.id, "initiatorId": "u2", "offeredItemIds": [tablet.id]},
            "evt-offer",
        )

        record = db_session.query(MatchRecord).one()
        assert (record.match_type, record.source_id, record.target_id) == ("PERFECT_BARTER", tablet.id, phone.id)
        chain = db_session.query(BarterChain).one()
        assert chain.chain_type == "DIRECT_SWAP"
        assert result.chain_ids == [chain.id]

    def test_chain_pool_follows_wants_not_listing_age(self, pool_orchestrator, now, add_item, triangle):
        for n in range(2):
            add_item(f"u{n + 7}", "laptops", title="ThinkPad", wants="mobile-phones",
                     created_at=now - timedelta(days=30 + n))
        a, _, _ = triangle

        result = pool_orchestrator(2).handle(**item_created(a))

        assert len(result.chain_ids) == 1
        assert result.truncated is False

    def test_chain_pool_limit_marks_result_truncated(self, pool_orchestrator, triangle):
        a, _, _ = triangle

        result = pool_orchestrator(1).handle(**item_created(a))

        assert result.chain_ids == []
        assert result.truncated is True

    def test_known_chain_not_rediscovered(self, db_session, orchestrator, notifier, triangle):
        a, _, _ = triangle

        orchestrator.handle(**item_created(a))
        replay = orchestrator.handle(**item_created(a, "evt-2"))

        assert replay.chain_ids == []
        assert db_session.query(BarterChain).count() == 1
        assert len(notifier.sent) == 3

    def test_rejection_cancels_chain(self, orchestrator, notifier, match_store, triangle):
        a, b, c = triangle
        chain_id = orchestrator.handle(**item_created(a)).chain_ids[0]

        view = orchestrator.respond_to_chain(chain_id, "u3", accept=False)

        assert view.status == "CANCELLED"
        assert view.cancel_reason == "Rejected by participant at position 1"
        assert match_store.item_statuses([a.id, b.id, c.id]) == {a.id: "ACTIVE", b.id: "ACTIVE", c.id: "ACTIVE"}
        assert notifier.types_for("u1") == ["BARTER_CHAIN", "CHAIN_CANCELLED"]
        assert notifier.types_for("u2") == ["BARTER_CHAIN", "CHAIN_CANCELLED"]
        assert notifier.types_for("u3") == ["BARTER_CHAIN"]

    def test_pending_proposals_and_stats(self, orchestrator, triangle):
        a, _, _ = triangle
        chain_id = orchestrator.handle(**item_created(a)).chain_ids[0]

        orchestrator.respond_to_chain(chain_id, "u2", accept=True)

        assert orchestrator.get_pending_proposals("u2") == []
        assert [c.id for c in orchestrator.get_pending_proposals("u1")] == [chain_id]
        stats = orchestrator.get_chain_stats("u1")
        assert (stats.total, stats.pending, stats.success_rate) == (1, 1, 0.0)


class TestChainLifecycle:
    """Test responses, confirmation, settlement, cancellation and expiry"""

    def test_confirmation_reserves_items(self, orchestrator, notifier, settlement, match_store, swap):
        a, b, chain = swap

        orchestrator.respond_to_chain(chain.id, "u1", accept=True)
        view = orchestrator.respond_to_chain(chain.id, "u2", accept=True)

        assert view.status == "CONFIRMED"
        assert match_store.item_statuses([a.id, b.id]) == {a.id: "RESERVED", b.id: "RESERVED"}
        assert settlement.requests[0][0] == chain.id
        assert [p["givingItemId"] for p in settlement.requests[0][1]] == [a.id, b.id]
        assert notifier.types_for("u1") == ["CHAIN_CONFIRMED"]

    def test_item_gone_before_confirmation(self, orchestrator, notifier, match_store, add_item, seed_chain):
        p = add_item("u1", "chairs")
        q = add_item("u2", "tablets", status="SOLD")
        chain = seed_chain([p, q])

        orchestrator.respond_to_chain(chain.id, "u1", accept=True)
        with pytest.raises(ConcurrencyConflict):
            orchestrator.respond_to_chain(chain.id, "u2", accept=True)

        stored = match_store.get_chain(chain.id)
        assert stored.status == "CANCELLED"
        assert stored.cancel_reason == "Trade no longer available"
        assert match_store.item_statuses([p.id]) == {p.id: "ACTIVE"}
        assert notifier.types_for("u1") == ["CHAIN_UNAVAILABLE"]

    def test_settlement_success(self, orchestrator, notifier, match_store, swap):
        a, b, chain = swap
        orchestrator.respond_to_chain(chain.id, "u1", accept=True)
        orchestrator.respond_to_chain(chain.id, "u2", accept=True)

        event = {"chainId": chain.id, "success": True}
        assert orchestrator.handle("ChainSettlementReported", event, "evt-s1").status == "processed"
        assert orchestrator.handle("ChainSettlementReported", event, "evt-s1").status == "processed"

        assert match_store.item_statuses([a.id, b.id]) == {a.id: "SOLD", b.id: "SOLD"}
        assert notifier.types_for("u1") == ["CHAIN_CONFIRMED", "CHAIN_SETTLED"]

    def test_settlement_failure_releases_items(self, orchestrator, match_store, swap):
        a, b, chain = swap
        orchestrator.respond_to_chain(chain.id, "u1", accept=True)
        orchestrator.respond_to_chain(chain.id, "u2", accept=True)

        view = orchestrator.report_settlement(chain.id, success=False, reason="Courier unavailable")

        assert view.status == "CANCELLED"
        assert view.cancel_reason == "Courier unavailable"
        assert match_store.item_statuses([a.id, b.id]) == {a.id: "ACTIVE", b.id: "ACTIVE"}
        assert orchestrator.report_settlement(chain.id, success=False).status == "CANCELLED"

    def test_settlement_dispatch_failure_keeps_chain_confirmed(self, orchestrator, settlement, swap):
        _, _, chain = swap
        settlement.fail = True

        orchestrator.respond_to_chain(chain.id, "u1", accept=True)
        view = orchestrator.respond_to_chain(chain.id, "u2", accept=True)

        assert view.status == "CONFIRMED"
        assert settlement.requests == []

    def test_settlement_report_for_pending_chain_ignored(self, orchestrator, swap):
        _, _, chain = swap
        result = orchestrator.handle("ChainSettlementReported", {"chainId": chain.id, "success": True})
        assert result.status == "ignored"

    def test_non_participant_cannot_respond(self, orchestrator, swap):
        _, _, chain = swap
        with pytest.raises(ChainStateError):
            orchestrator.respond_to_chain(chain.id, "u9", accept=True)

    def test_participant_responds_once(self, orchestrator, swap):
        _, _, chain = swap
        orchestrator.respond_to_chain(chain.id, "u1", accept=True)
        with pytest.raises(ChainStateError):
            orchestrator.respond_to_chain(chain.id, "u1", accept=False)

    def test_unknown_chain(self, orchestrator):
        with pytest.raises(NotFoundError):
            orchestrator.respond_to_chain("missing", "u1", accept=True)

    def test_initiator_cancels(self, orchestrator, notifier, swap):
        _, _, chain = swap

        view = orchestrator.cancel_chain(chain.id, "u1")

        assert view.status == "CANCELLED"
        assert view.cancel_reason == "Cancelled by initiator"
        assert notifier.types_for("u2") == ["CHAIN_CANCELLED"]
        assert notifier.types_for("u1") == []

    def test_only_initiator_cancels(self, orchestrator, swap):
        _, _, chain = swap
        with pytest.raises(ChainStateError):
            orchestrator.cancel_chain(chain.id, "u2")

    def test_response_after_deadline_expires_chain(self, orchestrator, match_store, now, swap):
        _, _, chain = swap

        with pytest.raises(ChainExpired):
            orchestrator.respond_to_chain(chain.id, "u1", accept=True, now=now + timedelta(days=8))

        assert match_store.get_chain(chain.id).status == "EXPIRED"

    def test_expire_overdue(self, orchestrator, now, add_item, add_offer, seed_chain):
        a = add_item("u1", "chairs")
        b = add_item("u2", "tablets")
        seed_chain([a, b], expires_at=now - timedelta(minutes=1))
        add_offer("u1", [a.id], expires_at=now - timedelta(hours=1))

        assert orchestrator.expire_overdue() == {"chains_expired": 1, "offers_expired": 1}
        assert orchestrator.expire_overdue() == {"chains_expired": 0, "offers_expired": 0}

    def test_item_deleted_cancels_chains(self, orchestrator, notifier, match_store, swap):
        a, b, chain = swap

        result = orchestrator.handle("ItemDeleted", {"itemId": a.id, "userId": "u1"}, "evt-del")

        assert result.chain_ids == [chain.id]
        assert match_store.get_chain(chain.id).status == "CANCELLED"
        assert match_store.item_statuses([a.id, b.id]) == {a.id: "WITHDRAWN", b.id: "ACTIVE"}
        assert notifier.types_for("u2") == ["CHAIN_CANCELLED"]


class TestQueries:
    """Test the read-side operations"""

    def test_matches_for_item_owner_only(self, orchestrator, add_item, add_demand):
        item = add_item("u1", "mobile-phones", 45000)
        add_demand("u2", "mobile-phones", price_max=50000)
        orchestrator.handle(**item_created(item))

        assert len(orchestrator.get_matches_for_item(item.id, "u1")) == 1
        with pytest.raises(NotFoundError):
            orchestrator.get_matches_for_item(item.id, "u2")

    def test_matches_for_user(self, orchestrator, add_item, add_demand, triangle):
        item = add_item("u1", "mobile-phones", 45000)
        add_demand("u2", "mobile-phones", price_max=50000)
        orchestrator.handle(**item_created(item))
        orchestrator.handle(**item_created(triangle[0], "evt-2"))

        view = orchestrator.get_matches_for_user("u1")

        assert len(view.sales) == 1
        assert len(view.chains) == 1
        assert view.total == 2

    def test_matching_stats(self, orchestrator, add_item, add_demand):
        item = add_item("u1", "mobile-phones", 45000)
        add_demand("u2", "mobile-phones", price_max=50000)
        orchestrator.handle(**item_created(item))

        stats = orchestrator.get_matching_stats()

        assert stats.total_matches == 1
        assert stats.matches_by_type == {"SALE_TO_DEMAND": 1}
        assert stats.notifications_sent == 1

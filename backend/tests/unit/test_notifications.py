"""Unit tests for match and chain notification planning"""

from domain.geo import GeoTier
from matching.notifications import (
    CHAIN_CANCELLED,
    CHAIN_CONFIRMED,
    CHAIN_UNAVAILABLE,
    PRIORITY_HIGH,
    PRIORITY_MEDIUM,
    MatchNotice,
    build_chain_notification,
    build_match_notification,
    plan_match_notifications,
    strongest_per_user,
)
from matching.tradables import MatchType


def notice(user_id, score, entity_id="item-1", match_type=MatchType.SALE_TO_DEMAND, **kwargs):
    return MatchNotice(
        user_id=user_id,
        match_type=match_type,
        score=score,
        entity_type="ITEM",
        entity_id=entity_id,
        subject_title="iPhone 13",
        subject_value=30000,
        tier=GeoTier.CITY,
        **kwargs,
    )


class TestPlanning:
    """Test one-per-user collapsing and the per-event cap"""

    def test_strongest_notice_per_user(self):
        planned = strongest_per_user([
            notice("u1", 0.5, entity_id="a"),
            notice("u1", 0.9, entity_id="b"),
            notice("u2", 0.7),
        ])
        assert [(n.user_id, n.entity_id) for n in planned] == [("u1", "b"), ("u2", "item-1")]

    def test_cap_per_event(self):
        notices = [notice(f"u{i}", 0.5 + i / 100) for i in range(30)]
        planned = plan_match_notifications(notices, cap=20)
        assert len(planned) == 20
        assert planned[0].user_id == "u29"

    def test_empty(self):
        assert plan_match_notifications([]) == []


class TestMatchNotificationContent:
    """Test rendering per match type"""

    def test_priority_threshold(self):
        assert build_match_notification(notice("u1", 0.7)).priority == PRIORITY_HIGH
        assert build_match_notification(notice("u1", 0.69)).priority == PRIORITY_MEDIUM

    def test_sale_to_demand(self):
        request = build_match_notification(notice("u1", 0.85))
        assert request.type == "SALE_TO_DEMAND"
        assert request.action_url == "/items/item-1"
        assert "iPhone 13" in request.message
        assert "30,000 EGP" in request.message
        assert "85%" in request.message

    def test_barter_chain(self):
        request = build_match_notification(
            notice("u1", 0.8, entity_id="chain-1", match_type=MatchType.BARTER_CHAIN, participants=3)
        )
        assert request.action_url == "/barter/chains/chain-1"
        assert "3-way" in request.message

    def test_reverse_auction(self):
        request = build_match_notification(notice("u1", 0.8, entity_id="auction-1", match_type=MatchType.REVERSE_AUCTION))
        assert request.action_url == "/reverse-auctions/auction-1"

    def test_payload_is_camel_case(self):
        payload = build_match_notification(notice("u1", 0.8)).to_payload()
        assert payload["userId"] == "u1"
        assert payload["entityId"] == "item-1"
        assert payload["actionUrl"] == "/items/item-1"
        assert payload["metadata"]["score"] == 0.8


class TestChainNotifications:
    """Test chain lifecycle notices"""

    def test_confirmed(self):
        request = build_chain_notification("u1", "chain-1", CHAIN_CONFIRMED)
        assert request.priority == PRIORITY_HIGH
        assert request.entity_type == "BARTER_CHAIN"

    def test_unavailable(self):
        request = build_chain_notification("u1", "chain-1", CHAIN_UNAVAILABLE)
        assert request.title == "Trade no longer available"

    def test_cancelled_carries_reason(self):
        request = build_chain_notification("u1", "chain-1", CHAIN_CANCELLED, "Rejected by participant at position 1")
        assert "Rejected by participant at position 1" in request.message
        assert request.metadata == {"reason": "Rejected by participant at position 1"}

"""Notification planning for match results and chain lifecycle changes.

One notification per distinct user per triggering event, citing that
user's strongest match, capped per event. Delivery itself belongs to the
notification collaborator.
"""

from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from domain.geo import GeoTier, TIER_REASONS

from .ports import NotificationRequest
from .tradables import MatchType

PRIORITY_HIGH = "HIGH"
PRIORITY_MEDIUM = "MEDIUM"

CHAIN_CONFIRMED = "CHAIN_CONFIRMED"
CHAIN_CANCELLED = "CHAIN_CANCELLED"
CHAIN_UNAVAILABLE = "CHAIN_UNAVAILABLE"
CHAIN_SETTLED = "CHAIN_SETTLED"


@dataclass
class MatchNotice:
    """A user who should hear about a match, before per-user deduplication.

    Attributes:
        user_id: Recipient
        match_type: Kind of match
        score: Match score, used to pick the strongest notice per user
        entity_type: What the notification links to (ITEM, DEMAND, BARTER_CHAIN, ...)
        entity_id: ID of that entity; (user_id, entity_id) is the dedupe key
        subject_title: Title of the thing being announced
        subject_value: Value of the thing being announced, if known
        tier: Geographic tier between the two sides
        participants: Chain length (chains only)
    """
    user_id: str
    match_type: MatchType
    score: float
    entity_type: str
    entity_id: str
    subject_title: str = ""
    subject_value: Optional[float] = None
    tier: Optional[GeoTier] = None
    participants: int = 0
    reasons: List[str] = field(default_factory=list)


def strongest_per_user(notices: Iterable[MatchNotice]) -> List[MatchNotice]:
    """Collapse notices to one per user (highest score wins), strongest first."""
    best = {}
    for notice in notices:
        current = best.get(notice.user_id)
        if current is None or notice.score > current.score:
            best[notice.user_id] = notice
    return sorted(best.values(), key=lambda n: (-n.score, n.user_id))


def _location_text(tier: Optional[GeoTier]) -> str:
    return TIER_REASONS[tier] if tier else "Nearby"


def _value_text(value: Optional[float]) -> str:
    return f" for {value:,.0f} EGP" if value else ""


def build_match_notification(notice: MatchNotice, high_priority_score: float = 0.7) -> NotificationRequest:
    """Render a match notice into the collaborator's notification shape."""
    percent = f"{notice.score:.0%}"
    location = _location_text(notice.tier)

    if notice.match_type == MatchType.PERFECT_BARTER:
        title = "Perfect barter match"
        message = (
            f"\"{notice.subject_title}\"{_value_text(notice.subject_value)} is on offer "
            f"and its owner wants what you have. {location} - {percent} match"
        )
        action_url = f"/items/{notice.entity_id}"
    elif notice.match_type == MatchType.BARTER_CHAIN:
        title = "Multi-party barter opportunity"
        message = f"We found a {notice.participants}-way barter chain that includes you - {percent} match"
        action_url = f"/barter/chains/{notice.entity_id}"
    elif notice.match_type == MatchType.SALE_TO_DEMAND:
        title = "A new item matches your request"
        message = (
            f"\"{notice.subject_title}\" is now available{_value_text(notice.subject_value)} "
            f"- {location} - {percent} match"
        )
        action_url = f"/items/{notice.entity_id}"
    elif notice.match_type == MatchType.REVERSE_AUCTION:
        title = "Potential buyer for your item"
        message = f"A buyer is looking for \"{notice.subject_title}\" - {location} - {percent} match"
        action_url = f"/reverse-auctions/{notice.entity_id}"
    else:
        title = "A buyer is looking for your item"
        message = f"Someone is looking for \"{notice.subject_title}\" - {location} - {percent} match"
        action_url = f"/requests/{notice.entity_id}"

    return NotificationRequest(
        user_id=notice.user_id,
        type=notice.match_type.value,
        title=title,
        message=message,
        priority=PRIORITY_HIGH if notice.score >= high_priority_score else PRIORITY_MEDIUM,
        entity_type=notice.entity_type,
        entity_id=notice.entity_id,
        action_url=action_url,
        metadata={"score": round(notice.score, 4), "reasons": list(notice.reasons)},
    )


def plan_match_notifications(
    notices: Iterable[MatchNotice],
    cap: int = 20,
    high_priority_score: float = 0.7,
) -> List[NotificationRequest]:
    """One notification per user citing the strongest match, at most ``cap``."""
    return [
        build_match_notification(notice, high_priority_score)
        for notice in strongest_per_user(notices)[:cap]
    ]


def build_chain_notification(user_id: str, chain_id: str, kind: str, reason: Optional[str] = None) -> NotificationRequest:
    """Lifecycle notice for a chain participant (confirmed, cancelled, unavailable, settled)."""
    if kind == CHAIN_CONFIRMED:
        title = "Barter chain confirmed"
        message = "Every participant accepted. The exchange is being arranged."
        priority = PRIORITY_HIGH
    elif kind == CHAIN_UNAVAILABLE:
        title = "Trade no longer available"
        message = "An item in this barter chain is no longer available, so the trade fell through."
        priority = PRIORITY_HIGH
    elif kind == CHAIN_SETTLED:
        title = "Barter completed"
        message = "Your barter chain was settled successfully."
        priority = PRIORITY_MEDIUM
    else:
        title = "Barter chain cancelled"
        message = f"This barter chain was cancelled{f': {reason}' if reason else ''}."
        priority = PRIORITY_MEDIUM

    return NotificationRequest(
        user_id=user_id,
        type=kind,
        title=title,
        message=message,
        priority=priority,
        entity_type="BARTER_CHAIN",
        entity_id=chain_id,
        action_url=f"/barter/chains/{chain_id}",
        metadata={"reason": reason} if reason else {},
    )

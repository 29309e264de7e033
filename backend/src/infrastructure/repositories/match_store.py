"""Match store for match records, barter chains and the notification log"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import and_, delete, func, or_, select
from sqlalchemy.orm import Session, selectinload

from domain.barter import BarterChainStatus, BarterOfferStatus, OPEN_CHAIN_STATUSES
from domain.items import ItemStateTransitionError, ItemStatus, validate_transition
from matching.chain_discoverer import ALGORITHM_VERSION, ChainProposal
from matching.ports import MatchStorePort
from matching.tradables import MatchCandidate, MatchType, Tradable
from models import (
    BarterChain,
    BarterOffer,
    BarterParticipant,
    ListedItem,
    MatchRecord,
    NotificationLog,
)

logger = logging.getLogger(__name__)

_OPEN_STATUSES = [s.value for s in OPEN_CHAIN_STATUSES]


def match_signature(source_id: str, target_id: str, match_type: MatchType) -> str:
    return f"{source_id}:{target_id}:{match_type.value}"


class SqlMatchStore(MatchStorePort):
    """Session-bound persistence for everything the orchestrator writes.

    Writes are flushed, never committed, except through ``commit()``: the
    orchestrator decides the unit of work.
    """

    def __init__(self, db: Session):
        """Initialize store with database session.

        Args:
            db: SQLAlchemy database session
        """
        self.db = db

    # Match records

    def upsert_matches(
        self,
        match_type: MatchType,
        source: Tradable,
        candidates: Sequence[MatchCandidate],
    ) -> int:
        """Insert or refresh match records keyed by ``source:target:type``.

        Args:
            match_type: Kind of match
            source: Tradable the matches were computed for
            candidates: Ranked candidates to persist

        Returns:
            Number of newly created records
        """
        if not candidates:
            return 0

        signatures = {
            match_signature(c.source_id, c.target_id, match_type): c for c in candidates
        }
        existing = {
            row.signature: row
            for row in self.db.execute(
                select(MatchRecord).where(MatchRecord.signature.in_(list(signatures)))
            ).scalars()
        }

        created = 0
        for signature, candidate in signatures.items():
            row = existing.get(signature)
            if row is None:
                self.db.add(MatchRecord(
                    signature=signature,
                    match_type=match_type.value,
                    source_id=candidate.source_id,
                    source_owner_id=source.owner_id,
                    target_id=candidate.target_id,
                    target_owner_id=candidate.target_owner_id,
                    score=candidate.score,
                    tier=candidate.tier.value,
                    reasons=list(candidate.reasons),
                ))
                created += 1
            else:
                row.score = candidate.score
                row.tier = candidate.tier.value
                row.reasons = list(candidate.reasons)

        self.db.flush()
        return created

    def delete_matches_for(self, entity_id: str) -> int:
        result = self.db.execute(
            delete(MatchRecord).where(
                or_(MatchRecord.source_id == entity_id, MatchRecord.target_id == entity_id)
            )
        )
        return result.rowcount or 0

    def matches_for_entity(self, entity_id: str) -> List[MatchRecord]:
        return list(self.db.execute(
            select(MatchRecord)
            .where(or_(MatchRecord.source_id == entity_id, MatchRecord.target_id == entity_id))
            .order_by(MatchRecord.score.desc(), MatchRecord.created_at.asc())
        ).scalars())

    def matches_for_user(self, user_id: str) -> List[MatchRecord]:
        return list(self.db.execute(
            select(MatchRecord)
            .where(or_(MatchRecord.source_owner_id == user_id, MatchRecord.target_owner_id == user_id))
            .order_by(MatchRecord.score.desc(), MatchRecord.created_at.asc())
        ).scalars())

    def match_stats(self) -> Dict[str, Any]:
        by_type = dict(self.db.execute(
            select(MatchRecord.match_type, func.count(MatchRecord.id)).group_by(MatchRecord.match_type)
        ).all())
        average = self.db.execute(select(func.avg(MatchRecord.score))).scalar()
        chains = dict(self.db.execute(
            select(BarterChain.status, func.count(BarterChain.id)).group_by(BarterChain.status)
        ).all())
        notifications = self.db.execute(select(func.count(NotificationLog.id))).scalar()
        return {
            "total_matches": sum(by_type.values()),
            "matches_by_type": by_type,
            "average_score": float(average or 0.0),
            "chains_by_status": chains,
            "notifications_sent": int(notifications or 0),
        }

    # Chains

    def get_chain(self, chain_id: str) -> Optional[BarterChain]:
        return self.db.execute(
            select(BarterChain)
            .options(selectinload(BarterChain.participants))
            .where(BarterChain.id == chain_id)
        ).scalar_one_or_none()

    def chain_exists(self, signature: str) -> bool:
        return self.db.execute(
            select(BarterChain.id).where(BarterChain.signature == signature)
        ).first() is not None

    def save_chain(self, proposal: ChainProposal, expires_at: datetime) -> BarterChain:
        """Persist a proposal as a PENDING chain with PENDING participants."""
        chain = BarterChain(
            signature=proposal.signature,
            chain_type=proposal.chain_type,
            match_score=proposal.score,
            algorithm_version=ALGORITHM_VERSION,
            cash_differential=proposal.cash_differential,
            is_optimal=proposal.is_optimal,
            status=BarterChainStatus.PENDING.value,
            expires_at=expires_at,
        )
        for link in proposal.links:
            chain.participants.append(BarterParticipant(
                user_id=link.user_id,
                giving_item_id=link.giving_item_id,
                receiving_item_id=link.receiving_item_id,
                position=link.position,
            ))
        self.db.add(chain)
        self.db.flush()
        return chain

    def claimed_item_ids(self) -> List[str]:
        return list(self.db.execute(
            select(BarterParticipant.giving_item_id)
            .join(BarterChain, BarterChain.id == BarterParticipant.chain_id)
            .where(BarterChain.status.in_(_OPEN_STATUSES))
            .distinct()
        ).scalars())

    def open_chains_for_item(self, item_id: str) -> List[BarterChain]:
        chain_ids = select(BarterParticipant.chain_id).where(
            or_(BarterParticipant.giving_item_id == item_id, BarterParticipant.receiving_item_id == item_id)
        )
        return list(self.db.execute(
            select(BarterChain)
            .options(selectinload(BarterChain.participants))
            .where(and_(BarterChain.id.in_(chain_ids), BarterChain.status.in_(_OPEN_STATUSES)))
        ).scalars())

    def chains_for_user(self, user_id: str, statuses: Optional[Sequence[str]] = None) -> List[BarterChain]:
        chain_ids = select(BarterParticipant.chain_id).where(BarterParticipant.user_id == user_id)
        query = (
            select(BarterChain)
            .options(selectinload(BarterChain.participants))
            .where(BarterChain.id.in_(chain_ids))
        )
        if statuses:
            query = query.where(BarterChain.status.in_(list(statuses)))
        return list(self.db.execute(
            query.order_by(BarterChain.match_score.desc(), BarterChain.created_at.asc())
        ).scalars())

    def overdue_chains(self, now: datetime) -> List[BarterChain]:
        return list(self.db.execute(
            select(BarterChain)
            .options(selectinload(BarterChain.participants))
            .where(and_(
                BarterChain.status == BarterChainStatus.PENDING.value,
                BarterChain.expires_at <= now,
            ))
        ).scalars())

    def expire_overdue_offers(self, now: datetime) -> int:
        offers = self.db.execute(
            select(BarterOffer).where(and_(
                BarterOffer.status == BarterOfferStatus.PENDING.value,
                BarterOffer.expires_at.isnot(None),
                BarterOffer.expires_at <= now,
            ))
        ).scalars().all()
        for offer in offers:
            offer.status = BarterOfferStatus.EXPIRED.value
        self.db.flush()
        return len(offers)

    # Item status

    def set_item_status(self, item_id: str, status: str) -> None:
        """Move an item along the item status machine; setting the current status is a no-op.

        Raises:
            ItemStateTransitionError: The transition is not allowed
        """
        item = self.db.get(ListedItem, item_id)
        if item is None or item.status == status:
            return
        try:
            current = ItemStatus(item.status)
        except ValueError:
            raise ItemStateTransitionError(f"Item {item_id} has unknown status {item.status}")
        validate_transition(current, ItemStatus(status))
        item.status = status
        self.db.flush()

    def item_statuses(self, item_ids: Sequence[str]) -> Dict[str, str]:
        if not item_ids:
            return {}
        # Column select always reads the database, not the identity map
        rows = self.db.execute(
            select(ListedItem.id, ListedItem.status).where(ListedItem.id.in_(list(item_ids)))
        ).all()
        return {item_id: status for item_id, status in rows}

    # Notification log

    def was_notified(self, user_id: str, entity_id: str) -> bool:
        return self.db.execute(
            select(NotificationLog.id).where(and_(
                NotificationLog.user_id == user_id,
                NotificationLog.entity_id == entity_id,
            ))
        ).first() is not None

    def record_notification(self, user_id: str, entity_id: str, notification_type: str) -> None:
        self.db.add(NotificationLog(
            user_id=user_id,
            entity_id=entity_id,
            notification_type=notification_type,
        ))
        self.db.flush()

    # Unit of work

    def commit(self) -> None:
        self.db.commit()

    def rollback(self) -> None:
        self.db.rollback()

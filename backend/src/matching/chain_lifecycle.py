"""Barter chain lifecycle: responses, confirmation, cancellation, settlement, expiry.

Confirmation uses optimistic check-then-act: every participant item is
re-read right before the chain is confirmed, and any item that is no longer
ACTIVE fails the whole chain closed. No lock is held while participants
take their time to respond.
"""

import logging
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional

from domain.barter import (
    BarterChainStatus,
    ChainStateTransitionError,
    ParticipantStatus,
    resolve_responses,
    validate_transition,
)
from domain.items import ItemStatus
from observability.metrics import chain_transitions_total, notifications_total

from .errors import ChainExpired, ChainStateError, ConcurrencyConflict, DispatchFailure, NotFoundError
from .notifications import (
    CHAIN_CANCELLED,
    CHAIN_CONFIRMED,
    CHAIN_SETTLED,
    CHAIN_UNAVAILABLE,
    build_chain_notification,
)
from .ports import MatchStorePort, NotificationPort, SettlementPort

logger = logging.getLogger(__name__)


class ChainLifecycle:
    """Apply participant and collaborator actions to persisted chains.

    Every state change is committed before anyone is notified; a failed
    notification never rolls a chain back.
    """

    def __init__(
        self,
        store: MatchStorePort,
        notifier: NotificationPort,
        settlement: SettlementPort,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.store = store
        self.notifier = notifier
        self.settlement = settlement
        self.clock = clock

    def respond(self, chain_id: str, user_id: str, accept: bool, now: Optional[datetime] = None):
        """Record a participant's accept/reject decision.

        Any rejection cancels the chain. The last acceptance triggers the
        confirmation check.

        Args:
            chain_id: Chain being answered
            user_id: Responding participant
            accept: True to accept, False to reject
            now: Reference time (defaults to the clock)

        Returns:
            The updated chain

        Raises:
            NotFoundError: Chain does not exist
            ChainExpired: Chain passed its deadline (it is expired as a side effect)
            ChainStateError: Chain not pending, user not a participant, or already responded
            ConcurrencyConflict: An item changed status before confirmation
        """
        now = now or self.clock()
        chain = self._load(chain_id)

        if chain.status == BarterChainStatus.PENDING.value and chain.expires_at <= now:
            self._transition(chain, BarterChainStatus.EXPIRED)
            self.store.commit()
            raise ChainExpired(chain.id)

        if chain.status != BarterChainStatus.PENDING.value:
            raise ChainStateError(f"Barter chain {chain.id} is {chain.status}, not PENDING")

        participant = chain.participant_for(user_id)
        if participant is None:
            raise ChainStateError(f"User {user_id} is not a participant of chain {chain.id}")
        if participant.status != ParticipantStatus.PENDING.value:
            raise ChainStateError(f"User {user_id} already responded to chain {chain.id}")

        participant.status = (ParticipantStatus.ACCEPTED if accept else ParticipantStatus.REJECTED).value
        participant.responded_at = now
        logger.info(
            f"Participant {'accepted' if accept else 'rejected'} chain {chain.id}",
            extra={"chain_id": chain.id, "user_id": user_id},
        )

        outcome = resolve_responses([ParticipantStatus(p.status) for p in chain.participants])
        if outcome == BarterChainStatus.CANCELLED:
            reason = f"Rejected by participant at position {participant.position}"
            self._cancel(chain, reason)
            self.store.commit()
            self._notify_participants(chain, CHAIN_CANCELLED, reason, skip_user_id=user_id)
        elif outcome == BarterChainStatus.CONFIRMED:
            self._confirm(chain)
        else:
            self.store.commit()
        return chain

    def cancel(self, chain_id: str, user_id: str, reason: Optional[str] = None):
        """Cancel a PENDING chain on behalf of its initiator (position 0).

        Raises:
            NotFoundError: Chain does not exist
            ChainStateError: User is not the initiator or chain is not PENDING
        """
        chain = self._load(chain_id)
        initiator = chain.participants[0] if chain.participants else None
        if initiator is None or initiator.user_id != user_id:
            raise ChainStateError(f"Only the initiator can cancel chain {chain.id}")
        if chain.status != BarterChainStatus.PENDING.value:
            raise ChainStateError(f"Barter chain {chain.id} is {chain.status}, not PENDING")

        reason = reason or "Cancelled by initiator"
        self._cancel(chain, reason)
        self.store.commit()
        self._notify_participants(chain, CHAIN_CANCELLED, reason, skip_user_id=user_id)
        return chain

    def report_settlement(self, chain_id: str, success: bool, reason: Optional[str] = None):
        """Apply the settlement collaborator's result to a CONFIRMED chain.

        Settlement is all-or-nothing per chain: success marks every item SOLD,
        failure cancels the chain and returns every reserved item to ACTIVE.
        Redelivered reports for an already-applied result are no-ops.

        Raises:
            NotFoundError: Chain does not exist
            ChainStateError: Chain is not CONFIRMED
        """
        chain = self._load(chain_id)

        if not success and chain.status == BarterChainStatus.CANCELLED.value:
            logger.info(f"Settlement failure for chain {chain.id} already applied", extra={"chain_id": chain.id})
            return chain
        if chain.status != BarterChainStatus.CONFIRMED.value:
            raise ChainStateError(f"Barter chain {chain.id} is {chain.status}, not CONFIRMED")

        statuses = self.store.item_statuses(chain.item_ids)
        if success:
            reserved = [i for i in chain.item_ids if statuses.get(i) == ItemStatus.RESERVED.value]
            if not reserved:
                logger.info(f"Settlement success for chain {chain.id} already applied", extra={"chain_id": chain.id})
                return chain
            for item_id in reserved:
                self.store.set_item_status(item_id, ItemStatus.SOLD.value)
            self.store.commit()
            logger.info(f"Barter chain {chain.id} settled", extra={"chain_id": chain.id})
            self._notify_participants(chain, CHAIN_SETTLED)
        else:
            reason = reason or "Settlement failed"
            self._cancel(chain, reason)
            self.store.commit()
            logger.warning(f"Settlement failed for chain {chain.id}: {reason}", extra={"chain_id": chain.id})
            self._notify_participants(chain, CHAIN_CANCELLED, reason)
        return chain

    def expire_overdue(self, now: Optional[datetime] = None) -> Dict[str, int]:
        """Expire PENDING chains and PENDING barter offers past their deadline.

        Returns:
            Counts of expired chains and offers
        """
        now = now or self.clock()
        chains = self.store.overdue_chains(now)
        for chain in chains:
            self._transition(chain, BarterChainStatus.EXPIRED)
        offers = self.store.expire_overdue_offers(now)
        self.store.commit()

        if chains or offers:
            logger.info(f"Expired {len(chains)} chains and {offers} barter offers")
        return {"chains_expired": len(chains), "offers_expired": offers}

    def cancel_for_item(self, item_id: str, reason: str) -> List:
        """Cancel every open chain that references an item (caller commits)."""
        chains = self.store.open_chains_for_item(item_id)
        for chain in chains:
            self._cancel(chain, reason)
        return chains

    def notify_cancelled(self, chains: Iterable, reason: str) -> None:
        for chain in chains:
            self._notify_participants(chain, CHAIN_CANCELLED, reason)

    # Internals

    def _load(self, chain_id: str):
        chain = self.store.get_chain(chain_id)
        if chain is None:
            raise NotFoundError("BarterChain", chain_id)
        return chain

    def _confirm(self, chain) -> None:
        statuses = self.store.item_statuses(chain.item_ids)
        unavailable = [i for i in chain.item_ids if statuses.get(i) != ItemStatus.ACTIVE.value]

        if unavailable:
            self._cancel(chain, "Trade no longer available")
            self.store.commit()
            logger.warning(
                f"Chain {chain.id} failed closed: items {unavailable} no longer ACTIVE",
                extra={"chain_id": chain.id},
            )
            self._notify_participants(chain, CHAIN_UNAVAILABLE)
            raise ConcurrencyConflict(chain.id, unavailable)

        self._transition(chain, BarterChainStatus.CONFIRMED)
        for item_id in chain.item_ids:
            self.store.set_item_status(item_id, ItemStatus.RESERVED.value)
        self.store.commit()
        self._notify_participants(chain, CHAIN_CONFIRMED)

        try:
            self.settlement.request_settlement(chain.id, [
                {
                    "userId": p.user_id,
                    "givingItemId": p.giving_item_id,
                    "receivingItemId": p.receiving_item_id,
                    "position": p.position,
                }
                for p in chain.participants
            ])
        except DispatchFailure as e:
            # Chain stays CONFIRMED with items reserved until settlement is re-requested
            logger.error(f"Settlement request failed for chain {chain.id}: {e}", extra={"chain_id": chain.id})

    def _cancel(self, chain, reason: str) -> None:
        self._transition(chain, BarterChainStatus.CANCELLED)
        chain.cancel_reason = reason
        self._release_items(chain)

    def _release_items(self, chain) -> None:
        statuses = self.store.item_statuses(chain.item_ids)
        for item_id, status in statuses.items():
            if status == ItemStatus.RESERVED.value:
                self.store.set_item_status(item_id, ItemStatus.ACTIVE.value)

    def _transition(self, chain, new_status: BarterChainStatus) -> None:
        current = BarterChainStatus(chain.status)
        try:
            validate_transition(current, new_status)
        except ChainStateTransitionError as e:
            raise ChainStateError(str(e)) from e
        chain.status = new_status.value
        chain_transitions_total.labels(from_status=current.value, to_status=new_status.value).inc()
        logger.info(
            f"Barter chain {chain.id}: {current.value} -> {new_status.value}",
            extra={"chain_id": chain.id},
        )

    def _notify_participants(
        self,
        chain,
        kind: str,
        reason: Optional[str] = None,
        skip_user_id: Optional[str] = None,
    ) -> None:
        for participant in chain.participants:
            if participant.user_id == skip_user_id:
                continue
            try:
                self.notifier.notify(build_chain_notification(participant.user_id, chain.id, kind, reason))
                notifications_total.labels(status="sent").inc()
            except DispatchFailure as e:
                notifications_total.labels(status="failed").inc()
                logger.warning(
                    f"Chain notification to {participant.user_id} failed: {e}",
                    extra={"chain_id": chain.id, "user_id": participant.user_id},
                )

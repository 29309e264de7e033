"""Barter pairwise matching and the want predicate shared with chain discovery."""

import logging
from datetime import datetime
from typing import Dict, List, Sequence

from .ports import CandidateCriteria, CandidateIndexPort
from .scorer import MatchScorer, rank_candidates
from .tradables import BarterOfferProfile, MatchCandidate, Tradable

logger = logging.getLogger(__name__)


def wants(a: Tradable, b: Tradable) -> bool:
    """True when the owner of ``a`` would accept ``b`` in exchange.

    A category want is satisfied by the exact category or any category below
    it in the tree. A free-text want (no category stated) is satisfied by keyword
    overlap with b's title, description or keywords.
    """
    if a.desired_category is not None:
        if b.category is None:
            return False
        return b.category.is_within(a.desired_category.id)
    want_tokens = a.want_tokens
    return bool(want_tokens) and bool(want_tokens & b.text_tokens)


def is_mutual(a: Tradable, b: Tradable) -> bool:
    """Mutual interest: distinct owners who each want the other's item."""
    return a.owner_id != b.owner_id and wants(a, b) and wants(b, a)


def edge_score(scorer: MatchScorer, giver_wants: Tradable, offered: Tradable, now: datetime) -> MatchCandidate:
    """Score the directed want edge ``giver_wants -> offered``.

    The category term compares the wanted category with the offered item's
    category; a satisfied free-text want counts as a related category.
    """
    if giver_wants.desired_category is not None:
        return scorer.score(giver_wants, offered, now, wanted=giver_wants.desired_category)
    return scorer.score(giver_wants, offered, now, text_match=wants(giver_wants, offered))


class BarterPairwiseMatcher:
    """Find two-party swaps for the items of a barter offer."""

    def __init__(
        self,
        index: CandidateIndexPort,
        scorer: MatchScorer,
        min_score: float = 0.4,
        top_k: int = 20,
        candidate_limit: int = 50,
    ):
        self.index = index
        self.scorer = scorer
        self.min_score = min_score
        self.top_k = top_k
        self.candidate_limit = candidate_limit

    def match_item(self, item: Tradable, now: datetime) -> List[MatchCandidate]:
        """Find swap partners for a single item that states its own wants."""
        return self._match(item, now)

    def match_offer(
        self,
        offer: BarterOfferProfile,
        offered_items: Sequence[Tradable],
        now: datetime,
    ) -> List[MatchCandidate]:
        """Find two-party swaps for every item in an offer.

        Each offered item carries the offer's desired profile unless it states
        its own wants. Candidates must show mutual interest; each swap is
        scored in both directions and the two scores are averaged.

        Args:
            offer: Barter offer
            offered_items: Current state of the offered items
            now: Reference time for recency scoring

        Returns:
            Ranked swap candidates (source = offered item), at most top_k
        """
        best: Dict[tuple, MatchCandidate] = {}
        for item in offered_items:
            for candidate in self._match(offer.apply_wants(item), now):
                key = (candidate.source_id, candidate.target_id)
                if key not in best or candidate.score > best[key].score:
                    best[key] = candidate

        ranked = rank_candidates(best.values(), self.min_score, self.top_k)
        logger.info(
            f"Barter offer {offer.id} produced {len(ranked)} swap candidates",
            extra={"offer_id": offer.id, "matches": len(ranked)},
        )
        return ranked

    def _match(self, item: Tradable, now: datetime) -> List[MatchCandidate]:
        if not item.has_wants:
            return []

        criteria = CandidateCriteria(
            category_id=item.desired_category.id if item.desired_category else None,
            keywords=[] if item.desired_category else sorted(item.want_tokens),
            near=item.location,
            country=item.location.country,
            exclude_owner_id=item.owner_id,
            exclude_item_ids=[item.id],
            limit=self.candidate_limit,
        )
        candidates = []
        for other in self.index.find_barter_items(criteria):
            if not is_mutual(item, other):
                continue
            forward = edge_score(self.scorer, item, other, now)
            backward = edge_score(self.scorer, other, item, now)
            if forward.score == 0.0 or backward.score == 0.0:
                continue
            forward.score = (forward.score + backward.score) / 2
            forward.reasons = forward.reasons + ["Mutual interest"]
            candidates.append(forward)
        return rank_candidates(candidates, self.min_score, self.top_k)

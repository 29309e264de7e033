"""Supply <-> demand matching.

Matches one listed item against outstanding demand (purchase requests and
reverse auctions), or one demand against listed items.
"""

import logging
from datetime import datetime
from typing import List, Optional

from .ports import CandidateCriteria, CandidateIndexPort
from .scorer import MatchScorer, rank_candidates
from .tradables import MatchCandidate, Tradable

logger = logging.getLogger(__name__)

# Demands whose budget is below this share of the item value are not retrieved
DEMAND_BUDGET_FLOOR_RATIO = 0.8
# Items priced above this multiple of a demand's max budget are not retrieved
ITEM_PRICE_CEILING_RATIO = 1.3


def max_budget(demand: Tradable) -> Optional[float]:
    """Highest amount a demand is prepared to pay, if stated."""
    for value in (demand.price_max, demand.value, demand.price_min):
        if value is not None:
            return value
    return None


class SupplyDemandMatcher:
    """Match listed items against demand and vice versa.

    Pipeline:
    1. Retrieve the opposite side through the candidate index (bounded)
    2. Score every candidate with the MatchScorer
    3. Drop scores below the floor, keep the top K in ranking order
    """

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
        """Find demands a newly listed or updated item could satisfy.

        Args:
            item: Listed item
            now: Reference time for recency scoring

        Returns:
            Ranked candidates (target = demand), at most top_k
        """
        if item.category is None:
            return []

        criteria = CandidateCriteria(
            category_id=item.category.id,
            value_min=item.value * DEMAND_BUDGET_FLOOR_RATIO if item.value else None,
            condition=item.condition,
            near=item.location,
            country=item.location.country,
            exclude_owner_id=item.owner_id,
            limit=self.candidate_limit,
        )
        demands = self.index.find_demands(criteria)
        candidates = [self.scorer.score(item, demand, now) for demand in demands]
        ranked = rank_candidates(candidates, self.min_score, self.top_k)

        logger.info(
            f"Item {item.id} matched {len(ranked)} of {len(demands)} demands",
            extra={"item_id": item.id, "candidates": len(demands), "matches": len(ranked)},
        )
        return ranked

    def match_demand(self, demand: Tradable, now: datetime) -> List[MatchCandidate]:
        """Find listed items that could satisfy a demand.

        Keyword-only demands (no category) match items whose title or
        description shares a keyword, scored as a related category.

        Args:
            demand: Purchase request or reverse auction
            now: Reference time for recency scoring

        Returns:
            Ranked candidates (target = listed item), at most top_k
        """
        if demand.category is None and not demand.keywords:
            return []

        budget = max_budget(demand)
        criteria = CandidateCriteria(
            category_id=demand.category.id if demand.category else None,
            keywords=list(demand.keywords),
            value_max=budget * ITEM_PRICE_CEILING_RATIO if budget else None,
            condition=demand.required_condition,
            near=demand.location,
            country=demand.location.country,
            exclude_owner_id=demand.owner_id,
            limit=self.candidate_limit,
        )
        items = self.index.find_items(criteria)

        demand_tokens = demand.text_tokens
        candidates = []
        for item in items:
            if demand.category is None:
                if not demand_tokens & item.text_tokens:
                    continue
                candidates.append(self.scorer.score(demand, item, now, text_match=True))
            else:
                candidates.append(self.scorer.score(demand, item, now))
        ranked = rank_candidates(candidates, self.min_score, self.top_k)

        logger.info(
            f"Demand {demand.id} matched {len(ranked)} of {len(items)} items",
            extra={"item_id": demand.id, "candidates": len(items), "matches": len(ranked)},
        )
        return ranked

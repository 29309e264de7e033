"""Composite match scoring.

score = w_cat * S_category + w_geo * S_geo + w_price * S_price
        + w_cond * S_condition + w_rec * S_recency

- S_category = 1.0 (exact) | 0.6 (ancestor, descendant or sibling) | 0.0, and
  S_category == 0 forces the whole score to 0
- S_geo = tier weight (DISTRICT 1.0 .. NATIONAL 0.4)
- S_price = max(0, 1 - |a - b| / max(a, b)), 0.5 when a value is unknown
- S_condition = 1.0 if the constraint is absent or satisfied, else 0.0
- S_recency = exp(-age_days / half_life_days), age from a passed-in reference time
"""

import math
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, List, Optional

from domain.geo import TIER_REASONS, resolve_tier
from domain.items import satisfies_condition

from .tradables import CategoryRef, MatchCandidate, ScoreComponents, Tradable

EXACT_CATEGORY_SCORE = 1.0
RELATED_CATEGORY_SCORE = 0.6
UNKNOWN_PRICE_SCORE = 0.5


@dataclass(frozen=True)
class ScoringWeights:
    """Scoring weights and recency half-life.

    Defaults are a reasonable starting point rather than fixed constants;
    production values come from Settings.
    """
    category: float = 0.35
    geo: float = 0.30
    price: float = 0.20
    condition: float = 0.10
    recency: float = 0.05
    half_life_days: float = 14.0

    @classmethod
    def from_settings(cls, settings) -> "ScoringWeights":
        return cls(
            category=settings.MATCH_WEIGHT_CATEGORY,
            geo=settings.MATCH_WEIGHT_GEO,
            price=settings.MATCH_WEIGHT_PRICE,
            condition=settings.MATCH_WEIGHT_CONDITION,
            recency=settings.MATCH_WEIGHT_RECENCY,
            half_life_days=settings.RECENCY_HALF_LIFE_DAYS,
        )


def category_score(wanted: CategoryRef, offered: CategoryRef) -> float:
    """Score how well an offered category fits a wanted category.

    Args:
        wanted: Category the receiving side asks for
        offered: Category of the tradable being offered

    Returns:
        1.0 for an exact match, 0.6 when one is an ancestor of the other or
        both share a parent, else 0.0
    """
    if wanted.id == offered.id:
        return EXACT_CATEGORY_SCORE
    if offered.is_within(wanted.id) or wanted.is_within(offered.id):
        return RELATED_CATEGORY_SCORE
    if wanted.parent_id is not None and wanted.parent_id == offered.parent_id:
        return RELATED_CATEGORY_SCORE
    return 0.0


def price_score(a: Optional[float], b: Optional[float]) -> float:
    """Relative value closeness: 1.0 for identical values, falling toward 0.0 as they diverge."""
    if a is None or b is None or a <= 0 or b <= 0:
        return UNKNOWN_PRICE_SCORE
    return max(0.0, 1.0 - abs(a - b) / max(a, b))


def recency_score(created_at: datetime, now: datetime, half_life_days: float) -> float:
    """Exponential freshness decay; listings from the future count as brand new."""
    age_days = max(0.0, (now - created_at).total_seconds() / 86400.0)
    return math.exp(-age_days / half_life_days)


class MatchScorer:
    """Pure scorer combining category, geography, price, condition and recency.

    Deterministic for fixed inputs: the reference time is always passed in.
    """

    def __init__(self, weights: Optional[ScoringWeights] = None):
        self.weights = weights or ScoringWeights()

    def score(
        self,
        source: Tradable,
        target: Tradable,
        now: datetime,
        wanted: Optional[CategoryRef] = None,
        text_match: bool = False,
    ) -> MatchCandidate:
        """Score a target tradable against a source tradable.

        Args:
            source: Tradable the match is computed for
            target: Candidate counter-party
            now: Reference time for the recency term
            wanted: Category the source wants from the target (barter edges);
                defaults to the source's own category (supply/demand)
            text_match: The source's free-text want is satisfied by the target

        Returns:
            MatchCandidate with score in [0, 1], tier, components and reasons
        """
        if wanted is not None:
            s_category = category_score(wanted, target.category) if target.category else 0.0
        elif text_match:
            s_category = RELATED_CATEGORY_SCORE
        elif source.category is not None and target.category is not None:
            s_category = category_score(source.category, target.category)
        else:
            s_category = 0.0

        tier_result = resolve_tier(source.location, target.location)

        if s_category == 0.0:
            return MatchCandidate(
                source_id=source.id,
                target_id=target.id,
                target_owner_id=target.owner_id,
                score=0.0,
                tier=tier_result.tier,
                components=ScoreComponents(0.0, tier_result.weight, 0.0, 0.0, 0.0),
                target_created_at=target.created_at,
                reasons=["Category mismatch"],
                target_kind=target.demand_kind or target.kind.value,
            )

        s_geo = tier_result.weight
        s_price = price_score(source.value, target.value)
        s_condition = 1.0 if self._condition_satisfied(source, target) else 0.0
        s_recency = recency_score(target.created_at, now, self.weights.half_life_days)

        w = self.weights
        total = (
            w.category * s_category
            + w.geo * s_geo
            + w.price * s_price
            + w.condition * s_condition
            + w.recency * s_recency
        )
        total = max(0.0, min(1.0, total))

        components = ScoreComponents(
            category=s_category,
            geo=s_geo,
            price=s_price,
            condition=s_condition,
            recency=s_recency,
        )

        return MatchCandidate(
            source_id=source.id,
            target_id=target.id,
            target_owner_id=target.owner_id,
            score=total,
            tier=tier_result.tier,
            components=components,
            target_created_at=target.created_at,
            reasons=self._reasons(source, target, components, tier_result.tier),
            target_kind=target.demand_kind or target.kind.value,
        )

    @staticmethod
    def _condition_satisfied(source: Tradable, target: Tradable) -> bool:
        # Either side may carry the constraint; the other side's condition must meet it
        if source.required_condition and not satisfies_condition(target.condition, source.required_condition):
            return False
        if target.required_condition and not satisfies_condition(source.condition, target.required_condition):
            return False
        return True

    @staticmethod
    def _reasons(source: Tradable, target: Tradable, components: ScoreComponents, tier) -> List[str]:
        reasons = []
        if components.category == EXACT_CATEGORY_SCORE:
            reasons.append("Exact category match")
        else:
            reasons.append("Related category")
        reasons.append(TIER_REASONS[tier])
        if source.value and target.value and components.price >= 0.8:
            reasons.append(f"Similar value ({components.price:.0%})")
        if source.required_condition or target.required_condition:
            reasons.append(
                "Condition requirement met" if components.condition == 1.0
                else "Condition requirement not met"
            )
        return reasons


def rank_candidates(
    candidates: Iterable[MatchCandidate],
    min_score: float,
    top_k: int,
) -> List[MatchCandidate]:
    """Drop candidates below the floor and return the best top_k in ranking order."""
    kept = [c for c in candidates if c.score >= min_score and c.score > 0.0]
    kept.sort(key=lambda c: c.sort_key())
    return kept[:top_k]

"""Geographic tier resolution.

Strict waterfall from most to least specific level; the first level that
matches wins and there is no partial credit across levels:

    DISTRICT (1.0) > CITY (0.8) > GOVERNORATE (0.6) > NATIONAL (0.4)

Missing optional fields fall through to the next level, they are never
wildcards.
"""

from dataclasses import dataclass
from enum import Enum

from .location import Location


class GeoTier(str, Enum):
    """Discrete proximity level between two locations."""
    DISTRICT = "DISTRICT"
    CITY = "CITY"
    GOVERNORATE = "GOVERNORATE"
    NATIONAL = "NATIONAL"


TIER_WEIGHTS = {
    GeoTier.DISTRICT: 1.0,
    GeoTier.CITY: 0.8,
    GeoTier.GOVERNORATE: 0.6,
    GeoTier.NATIONAL: 0.4,
}

TIER_REASONS = {
    GeoTier.DISTRICT: "Same district",
    GeoTier.CITY: "Same city",
    GeoTier.GOVERNORATE: "Same governorate",
    GeoTier.NATIONAL: "Elsewhere in the country",
}


@dataclass(frozen=True)
class TierResult:
    """Resolved proximity tier and its weight."""
    tier: GeoTier
    weight: float


def _same(left, right) -> bool:
    return left is not None and right is not None and left == right


def resolve_tier(a: Location, b: Location) -> TierResult:
    """Compare two locations and return their proximity tier.

    Args:
        a: First location
        b: Second location

    Returns:
        TierResult with tier and weight
    """
    same_governorate = _same(a.country_key, b.country_key) and _same(a.governorate_key, b.governorate_key)
    same_city = same_governorate and _same(a.city_key, b.city_key)
    same_district = same_city and _same(a.district_key, b.district_key)

    if same_district:
        tier = GeoTier.DISTRICT
    elif same_city:
        tier = GeoTier.CITY
    elif same_governorate:
        tier = GeoTier.GOVERNORATE
    else:
        tier = GeoTier.NATIONAL

    return TierResult(tier=tier, weight=TIER_WEIGHTS[tier])

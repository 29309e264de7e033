"""Geography domain module - location value type and proximity tiers"""

from .location import Location, normalize_place, DEFAULT_COUNTRY
from .tiers import GeoTier, TierResult, TIER_WEIGHTS, TIER_REASONS, resolve_tier

__all__ = [
    "Location",
    "normalize_place",
    "DEFAULT_COUNTRY",
    "GeoTier",
    "TierResult",
    "TIER_WEIGHTS",
    "TIER_REASONS",
    "resolve_tier",
]

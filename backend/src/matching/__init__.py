"""Matching module for the exchange platform.

This module implements unified matching and barter discovery:
- Supply <-> demand matching (purchase requests, reverse auctions)
- Pairwise barter matching (mutual wants)
- Multi-party barter chain discovery (bounded cycle search)
- Event-driven orchestration with idempotent persistence
"""

from .errors import (
    MatchingError,
    NotFoundError,
    ValidationError,
    ConcurrencyConflict,
    CapacityExceeded,
    DispatchFailure,
    ChainStateError,
    ChainExpired,
)
from .tradables import CategoryRef, MatchCandidate, MatchType, Tradable, TradableKind
from .scorer import MatchScorer, ScoringWeights
from .supply_demand_matcher import SupplyDemandMatcher
from .barter_matcher import BarterPairwiseMatcher
from .chain_discoverer import ChainDiscoverer, ChainProposal
from .orchestrator import MatchOrchestrator, MatchRunResult

__all__ = [
    "MatchingError",
    "NotFoundError",
    "ValidationError",
    "ConcurrencyConflict",
    "CapacityExceeded",
    "DispatchFailure",
    "ChainStateError",
    "ChainExpired",
    "CategoryRef",
    "MatchCandidate",
    "MatchType",
    "Tradable",
    "TradableKind",
    "MatchScorer",
    "ScoringWeights",
    "SupplyDemandMatcher",
    "BarterPairwiseMatcher",
    "ChainDiscoverer",
    "ChainProposal",
    "MatchOrchestrator",
    "MatchRunResult",
]

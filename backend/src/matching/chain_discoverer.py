"""Multi-party barter chain discovery.

Builds a directed want graph over tradable items and searches it for closed
cycles of distinct owners.

Graph:
    node = (owner_id, item_id)
    edge A -> B when A's owner wants B (barter_matcher.wants) and the
    directed score is at least the edge threshold

A cycle A1 -> A2 -> ... -> An -> A1 means A1's owner receives A2, A2's owner
receives A3, and An's owner receives A1. Participants are therefore stored
in giving order [A1, An, ..., A2]: participant i gives its item to
participant i + 1 (wrapping), which is the item that participant receives.

The search is an explicit-stack depth-first search with a hard depth bound
and an expansion budget, so dense graphs cannot blow up the run.
"""

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

from .barter_matcher import edge_score, wants
from .errors import CapacityExceeded
from .scorer import MatchScorer
from .tradables import Tradable

logger = logging.getLogger(__name__)

MAX_CHAIN_LENGTH = 4
MIN_CHAIN_LENGTH = 2
ALGORITHM_VERSION = "bounded-dfs-geomean/1"

OPTIMAL_SCORE = 0.7
OPTIMAL_CASH_RATIO = 0.2

CHAIN_TYPES = {2: "DIRECT_SWAP", 3: "THREE_WAY", 4: "FOUR_WAY"}


@dataclass(frozen=True)
class ChainLink:
    """One participant of a proposed chain."""
    position: int
    user_id: str
    giving_item_id: str
    receiving_item_id: str
    giving_value: Optional[float] = None
    receiving_value: Optional[float] = None


@dataclass
class ChainProposal:
    """Closed barter cycle ready to be persisted as a PENDING chain.

    Attributes:
        links: Participants in giving order, position 0 first
        score: Geometric mean of the edge scores
        edge_scores: Directed want-edge scores along the cycle
        signature: Rotation-independent cycle key
        cash_differential: Sum of positive (given - received) value gaps
        is_optimal: Strong score with a small cash differential
        discovery_index: Order in which the search found the cycle
    """
    links: List[ChainLink]
    score: float
    edge_scores: List[float]
    signature: str
    cash_differential: float
    is_optimal: bool
    discovery_index: int

    @property
    def length(self) -> int:
        return len(self.links)

    @property
    def chain_type(self) -> str:
        return CHAIN_TYPES.get(self.length, f"{self.length}_WAY")

    @property
    def item_ids(self) -> List[str]:
        return [link.giving_item_id for link in self.links]

    @property
    def user_ids(self) -> List[str]:
        return [link.user_id for link in self.links]


@dataclass
class ChainSearchResult:
    chains: List[ChainProposal] = field(default_factory=list)
    truncated: bool = False
    expansions: int = 0


def chain_signature(giving_item_ids: Sequence[str]) -> str:
    """Key a cycle by its items in giving order, rotated to start at the smallest ID."""
    ids = list(giving_item_ids)
    start = ids.index(min(ids))
    return ">".join(ids[start:] + ids[:start])


def geometric_mean(scores: Sequence[float]) -> float:
    if not scores or any(s <= 0.0 for s in scores):
        return 0.0
    return math.exp(sum(math.log(s) for s in scores) / len(scores))


def cash_differential(links: Sequence[ChainLink]) -> float:
    """Sum over participants of the value they give beyond what they receive."""
    total = 0.0
    for link in links:
        if link.giving_value is None or link.receiving_value is None:
            continue
        total += max(0.0, link.giving_value - link.receiving_value)
    return total


def is_optimal_chain(score: float, links: Sequence[ChainLink]) -> bool:
    values = [link.giving_value for link in links if link.giving_value is not None]
    if score < OPTIMAL_SCORE:
        return False
    if not values:
        return False
    average = sum(values) / len(values)
    return cash_differential(links) < OPTIMAL_CASH_RATIO * average


def select_non_overlapping(chains: Iterable[ChainProposal]) -> List[ChainProposal]:
    """Keep the best chain per item.

    Preference: higher score, then shorter chain, then earlier discovery.
    Losing chains are discarded so nobody is offered mutually exclusive
    trades for the same item.
    """
    ordered = sorted(chains, key=lambda c: (-c.score, c.length, c.discovery_index))
    used: Set[str] = set()
    selected = []
    for chain in ordered:
        if used.intersection(chain.item_ids):
            continue
        selected.append(chain)
        used.update(chain.item_ids)
    return selected


class ChainDiscoverer:
    """Bounded cycle search over the barter want graph.

    Pure: all inputs (start nodes, candidate pool, claimed items, reference
    time) are passed in and the result is a list of proposals.
    """

    def __init__(
        self,
        scorer: MatchScorer,
        edge_threshold: float = 0.35,
        search_budget: int = 5000,
        max_length: int = MAX_CHAIN_LENGTH,
    ):
        if not MIN_CHAIN_LENGTH <= max_length <= MAX_CHAIN_LENGTH:
            raise ValueError(f"max_length must be between {MIN_CHAIN_LENGTH} and {MAX_CHAIN_LENGTH}")
        self.scorer = scorer
        self.edge_threshold = edge_threshold
        self.search_budget = search_budget
        self.max_length = max_length

    def build_graph(
        self,
        nodes: Dict[str, Tradable],
        now: datetime,
    ) -> Dict[str, List[Tuple[str, float]]]:
        """Directed adjacency list ``item_id -> [(item_id, score)]``, best edges first."""
        graph: Dict[str, List[Tuple[str, float]]] = {}
        for a in nodes.values():
            edges = []
            if a.has_wants:
                for b in nodes.values():
                    if a.owner_id == b.owner_id or not wants(a, b):
                        continue
                    score = edge_score(self.scorer, a, b, now).score
                    if score >= self.edge_threshold:
                        edges.append((b.id, score))
            edges.sort(key=lambda e: (-e[1], e[0]))
            graph[a.id] = edges
        return graph

    def discover(
        self,
        start_items: Sequence[Tradable],
        pool: Sequence[Tradable],
        now: datetime,
        claimed_item_ids: Iterable[str] = (),
    ) -> ChainSearchResult:
        """Find non-overlapping closed chains through the start items.

        Args:
            start_items: Newly created or updated items to search from
            pool: Other candidate items with stated wants
            now: Reference time for edge scoring
            claimed_item_ids: Items already held by open chains

        Returns:
            ChainSearchResult with selected proposals; ``truncated`` is set
            when the search budget ran out and the result is partial
        """
        claimed = set(claimed_item_ids)
        nodes: Dict[str, Tradable] = {}
        for item in list(start_items) + list(pool):
            if item.status != "ACTIVE" or item.id in claimed:
                continue
            nodes.setdefault(item.id, item)

        graph = self.build_graph(nodes, now)
        found: Dict[str, ChainProposal] = {}
        result = ChainSearchResult()

        try:
            for start in start_items:
                if start.id in nodes:
                    self._search_from(start.id, nodes, graph, found, result)
        except CapacityExceeded as e:
            result.truncated = True
            logger.warning(
                f"Chain search truncated: {e}",
                extra={"expansions": result.expansions, "chains_found": len(found)},
            )

        result.chains = select_non_overlapping(found.values())
        return result

    def _search_from(
        self,
        start_id: str,
        nodes: Dict[str, Tradable],
        graph: Dict[str, List[Tuple[str, float]]],
        found: Dict[str, ChainProposal],
        result: ChainSearchResult,
    ) -> None:
        # Stack entries: (walk of item ids, edge scores along the walk, owners on the walk)
        stack = [((start_id,), (), frozenset([nodes[start_id].owner_id]))]

        while stack:
            path, scores, owners = stack.pop()
            result.expansions += 1
            if result.expansions > self.search_budget:
                raise CapacityExceeded("chain search expansions", self.search_budget)

            last = path[-1]
            # Reverse so the strongest edge is explored first
            for neighbor, score in reversed(graph.get(last, [])):
                if neighbor == start_id:
                    if len(path) >= MIN_CHAIN_LENGTH:
                        self._record(path, scores + (score,), nodes, found)
                    continue
                if len(path) >= self.max_length:
                    continue
                owner = nodes[neighbor].owner_id
                if owner in owners:
                    continue
                stack.append((path + (neighbor,), scores + (score,), owners | {owner}))

    def _record(
        self,
        walk: Tuple[str, ...],
        scores: Tuple[float, ...],
        nodes: Dict[str, Tradable],
        found: Dict[str, ChainProposal],
    ) -> None:
        # Giving order is the want walk reversed after the start node
        giving = [walk[0]] + list(reversed(walk[1:]))
        signature = chain_signature(giving)
        if signature in found or not self._is_valid_cycle(walk, nodes):
            return

        n = len(giving)
        links = []
        for position, item_id in enumerate(giving):
            receiving_id = giving[(position - 1) % n]
            links.append(ChainLink(
                position=position,
                user_id=nodes[item_id].owner_id,
                giving_item_id=item_id,
                receiving_item_id=receiving_id,
                giving_value=nodes[item_id].value,
                receiving_value=nodes[receiving_id].value,
            ))

        score = geometric_mean(scores)
        found[signature] = ChainProposal(
            links=links,
            score=score,
            edge_scores=list(scores),
            signature=signature,
            cash_differential=cash_differential(links),
            is_optimal=is_optimal_chain(score, links),
            discovery_index=len(found),
        )

    def _is_valid_cycle(self, walk: Tuple[str, ...], nodes: Dict[str, Tradable]) -> bool:
        owners = [nodes[item_id].owner_id for item_id in walk]
        if len(set(owners)) != len(owners):
            return False
        for i, item_id in enumerate(walk):
            a = nodes[item_id]
            b = nodes[walk[(i + 1) % len(walk)]]
            if a.status != "ACTIVE" or not wants(a, b):
                return False
        return True

"""Unit tests for multi-party barter chain discovery

Every discovered chain must be a valid cycle: participant i gives the item
participant i + 1 receives, owners are distinct, and every participant wants
what they receive.
"""

import pytest

from matching.barter_matcher import wants
from matching.chain_discoverer import (
    ChainDiscoverer,
    ChainLink,
    ChainProposal,
    cash_differential,
    chain_signature,
    geometric_mean,
    is_optimal_chain,
    select_non_overlapping,
)
from matching.scorer import MatchScorer


def assert_valid_cycle(chain, nodes):
    n = chain.length
    assert len(set(chain.user_ids)) == n
    for i, link in enumerate(chain.links):
        assert link.position == i
        assert link.giving_item_id == chain.links[(i + 1) % n].receiving_item_id
        assert wants(nodes[link.giving_item_id], nodes[link.receiving_item_id])


@pytest.fixture
def discoverer():
    return ChainDiscoverer(MatchScorer())


@pytest.fixture
def four_cycle(make_tradable):
    """a -> b -> c -> d -> a over unrelated categories (no shortcut edges)"""
    return {
        "a": make_tradable("a", "u1", category="chairs", wants="tablets"),
        "b": make_tradable("b", "u2", category="tablets", wants="bicycles"),
        "c": make_tradable("c", "u3", category="bicycles", wants="mobile-phones"),
        "d": make_tradable("d", "u4", category="mobile-phones", wants="chairs"),
    }


class TestChainDiscovery:
    """Test cycle search over the want graph"""

    def test_two_party_swap(self, discoverer, make_tradable, now):
        a = make_tradable("a", "u1", category="chairs", wants="tablets")
        b = make_tradable("b", "u2", category="tablets", wants="chairs")

        result = discoverer.discover([a], [b], now)

        assert len(result.chains) == 1
        chain = result.chains[0]
        assert chain.chain_type == "DIRECT_SWAP"
        assert_valid_cycle(chain, {"a": a, "b": b})

    def test_three_party_cycle(self, discoverer, make_tradable, now):
        nodes = {
            "a": make_tradable("a", "u1", category="chairs", wants="tablets"),
            "b": make_tradable("b", "u2", category="tablets", wants="bicycles"),
            "c": make_tradable("c", "u3", category="bicycles", wants="chairs"),
        }

        result = discoverer.discover([nodes["a"]], [nodes["b"], nodes["c"]], now)

        assert len(result.chains) == 1
        chain = result.chains[0]
        assert chain.chain_type == "THREE_WAY"
        assert set(chain.item_ids) == {"a", "b", "c"}
        assert_valid_cycle(chain, nodes)

    def test_giving_order(self, discoverer, make_tradable, now):
        """Initiator receives the item it wants from the last participant"""
        nodes = {
            "a": make_tradable("a", "u1", category="chairs", wants="tablets"),
            "b": make_tradable("b", "u2", category="tablets", wants="bicycles"),
            "c": make_tradable("c", "u3", category="bicycles", wants="chairs"),
        }

        chain = discoverer.discover([nodes["a"]], [nodes["b"], nodes["c"]], now).chains[0]

        assert [(l.user_id, l.giving_item_id, l.receiving_item_id) for l in chain.links] == [
            ("u1", "a", "b"),
            ("u3", "c", "a"),
            ("u2", "b", "c"),
        ]

    def test_four_party_cycle(self, discoverer, four_cycle, now):
        result = discoverer.discover([four_cycle["a"]], [four_cycle[k] for k in "bcd"], now)

        assert len(result.chains) == 1
        chain = result.chains[0]
        assert chain.chain_type == "FOUR_WAY"
        assert_valid_cycle(chain, four_cycle)

    def test_max_length_bounds_search(self, make_tradable, four_cycle, now):
        discoverer = ChainDiscoverer(MatchScorer(), max_length=3)
        result = discoverer.discover([four_cycle["a"]], [four_cycle[k] for k in "bcd"], now)
        assert result.chains == []

    def test_max_length_cannot_exceed_four(self):
        with pytest.raises(ValueError):
            ChainDiscoverer(MatchScorer(), max_length=5)

    def test_signature_independent_of_start(self, discoverer, four_cycle, now):
        from_a = discoverer.discover([four_cycle["a"]], list(four_cycle.values()), now).chains[0]
        from_c = discoverer.discover([four_cycle["c"]], list(four_cycle.values()), now).chains[0]
        assert from_a.signature == from_c.signature

    def test_owner_may_not_appear_twice(self, discoverer, make_tradable, now):
        a = make_tradable("a", "u1", category="chairs", wants="tablets")
        b = make_tradable("b", "u2", category="tablets", wants="bicycles")
        c = make_tradable("c", "u1", category="bicycles", wants="chairs")

        assert discoverer.discover([a], [b, c], now).chains == []

    def test_claimed_items_excluded(self, discoverer, make_tradable, now):
        a = make_tradable("a", "u1", category="chairs", wants="tablets")
        b = make_tradable("b", "u2", category="tablets", wants="chairs")

        assert discoverer.discover([a], [b], now, claimed_item_ids=["b"]).chains == []

    def test_inactive_items_excluded(self, discoverer, make_tradable, now):
        a = make_tradable("a", "u1", category="chairs", wants="tablets")
        b = make_tradable("b", "u2", category="tablets", wants="chairs", status="RESERVED")

        assert discoverer.discover([a], [b], now).chains == []

    def test_weak_edges_below_threshold_ignored(self, make_tradable, now):
        a = make_tradable("a", "u1", category="chairs", wants="tablets")
        b = make_tradable("b", "u2", category="tablets", wants="chairs")
        discoverer = ChainDiscoverer(MatchScorer(), edge_threshold=1.01)

        assert discoverer.discover([a], [b], now).chains == []

    def test_overlapping_chains_keep_best(self, discoverer, make_tradable, now):
        """A swap and a weaker triangle share item a; only the swap survives"""
        a = make_tradable("a", "u1", category="chairs", wants="tablets")
        b = make_tradable("b", "u2", category="tablets", wants="chairs")
        b2 = make_tradable("b2", "u3", category="tablets", wants="bicycles")
        c = make_tradable("c", "u4", category="bicycles", wants="chairs", governorate="Aswan")

        result = discoverer.discover([a], [b, b2, c], now)

        assert len(result.chains) == 1
        assert set(result.chains[0].item_ids) == {"a", "b"}

    def test_budget_exhaustion_returns_partial_result(self, make_tradable, now):
        nodes = [
            make_tradable("a", "u1", category="chairs", wants="tablets"),
            make_tradable("b", "u2", category="tablets", wants="bicycles"),
            make_tradable("c", "u3", category="bicycles", wants="chairs"),
        ]
        discoverer = ChainDiscoverer(MatchScorer(), search_budget=1)

        result = discoverer.discover(nodes[:1], nodes[1:], now)

        assert result.truncated is True
        assert result.chains == []

    def test_no_wants_no_chains(self, discoverer, make_tradable, now):
        a = make_tradable("a", "u1")
        b = make_tradable("b", "u2")
        result = discoverer.discover([a], [b], now)
        assert result.chains == []
        assert result.truncated is False


class TestChainHelpers:
    """Test signature, scoring and selection helpers"""

    def test_signature_rotation(self):
        assert chain_signature(["c", "a", "b"]) == "a>b>c"
        assert chain_signature(["a", "b", "c"]) == chain_signature(["b", "c", "a"])

    def test_signature_keeps_direction(self):
        assert chain_signature(["a", "b", "c"]) != chain_signature(["a", "c", "b"])

    def test_geometric_mean(self):
        assert geometric_mean([0.5, 0.5]) == pytest.approx(0.5)
        assert geometric_mean([1.0, 0.25]) == pytest.approx(0.5)
        assert geometric_mean([0.9, 0.0]) == 0.0

    def test_cash_differential_counts_positive_gaps(self):
        links = [
            ChainLink(0, "u1", "a", "b", giving_value=1000, receiving_value=800),
            ChainLink(1, "u2", "b", "a", giving_value=800, receiving_value=1000),
        ]
        assert cash_differential(links) == 200

    def test_optimal_chain(self):
        balanced = [
            ChainLink(0, "u1", "a", "b", giving_value=1000, receiving_value=1000),
            ChainLink(1, "u2", "b", "a", giving_value=1000, receiving_value=1000),
        ]
        assert is_optimal_chain(0.8, balanced) is True
        assert is_optimal_chain(0.6, balanced) is False

    def test_selection_prefers_shorter_on_equal_score(self):
        def proposal(items, index):
            links = [
                ChainLink(i, f"u{item}", item, items[i - 1]) for i, item in enumerate(items)
            ]
            return ChainProposal(
                links=links,
                score=0.8,
                edge_scores=[0.8] * len(items),
                signature=chain_signature(items),
                cash_differential=0.0,
                is_optimal=False,
                discovery_index=index,
            )

        triangle = proposal(["a", "c", "d"], 0)
        swap = proposal(["a", "b"], 1)
        unrelated = proposal(["e", "f"], 2)

        selected = select_non_overlapping([triangle, swap, unrelated])

        assert [c.signature for c in selected] == [swap.signature, unrelated.signature]

"""
Link-Link Composer Tests
========================

INVARIANTS TESTED:
1. Each node joins at most one composite per round
2. Composite mass_base is the sum of member masses
3. Level rule: max(child) + 1, capped, flat when a singleton joins
4. Unpaired nodes pass through unchanged in content and mass
"""

import pytest
from dataclasses import replace

from causal_hierarchy.contracts.base import NodeKind
from causal_hierarchy.contracts.nodes import CompositeLink
from causal_hierarchy.contracts.params import LeverParams, LinkLinkConfig
from causal_hierarchy.core.composer import (
    LinkLinkComposer, compose_links, index_by_id, next_level,
    propagate_internal_strength,
)
from causal_hierarchy.core.evidence import distance_score_hill, merge_threshold
from causal_hierarchy.temporal.clock import LogicalClock

from tests.fixtures import COMPILED_AT_MS, SESSION_ID, make_leaf


def compose(nodes, config=None, levers=None):
    return compose_links(SESSION_ID, nodes, config, levers, LogicalClock.frozen(COMPILED_AT_MS))


class TestPairing:

    def test_close_pair_merges(self):
        a, b = make_leaf("a", 0, 2), make_leaf("b", 3, 5)
        result = compose([a, b])
        assert len(result.composites) == 1
        assert result.unpaired == ()
        composite = result.composites[0]
        assert composite.id == "a+b"
        assert composite.members == ("a", "b")
        assert composite.node_kind is NodeKind.COMPOSITE

        bridge = distance_score_hill(3.0, 8.0, 2.2) * (1.0 + 0.8 * 1.0)
        assert composite.strength_bridge == pytest.approx(bridge)
        assert composite.strength_internal == pytest.approx(bridge + 1.2 + 1.2)
        assert composite.join_center_distance == pytest.approx(3.0)
        assert composite.join_lexical_score == pytest.approx(1.0)

    def test_composite_geometry_and_mass(self):
        a = make_leaf("a", 0, 2, mass_boost=0.5)
        b = make_leaf("b", 3, 5)
        composite = compose([a, b]).composites[0]
        assert (composite.span_start_index, composite.span_end_index) == (0, 5)
        assert composite.center_index == pytest.approx(2.5)
        assert composite.mass_base == pytest.approx(2.5)
        assert composite.mass_boost == 0.0
        assert composite.created_at_ms == COMPILED_AT_MS

    def test_left_is_earlier_regardless_of_input_order(self):
        a, b = make_leaf("a", 0, 2), make_leaf("b", 3, 5)
        assert compose([b, a]).composites[0].members == ("a", "b")

    def test_distant_nodes_pass_through(self):
        a, b = make_leaf("a", 0, 2), make_leaf("b", 60, 62)
        result = compose([a, b])
        assert result.composites == ()
        assert [n.id for n in result.unpaired] == ["a", "b"]
        assert result.unpaired[0].mass == a.mass
        assert result.unpaired[0].text == a.text

    def test_beyond_forward_window(self):
        a, b = make_leaf("a", 0, 2), make_leaf("b", 3, 5)
        result = compose([a, b], LinkLinkConfig(max_forward_lines=2))
        assert result.composites == () and result.candidates == ()

    def test_threshold_grows_with_mass(self):
        composer = LinkLinkComposer()
        assert composer.threshold(1.0, 1.0) == pytest.approx(merge_threshold(1.0, 1.0, 1.0, 0.15))
        assert composer.threshold(4.0, 4.0) > composer.threshold(1.0, 1.0)

    def test_heavy_pair_is_refused(self):
        a = make_leaf("a", 0, 2, mass_base=1e6)
        b = make_leaf("b", 3, 5, mass_base=1e6)
        assert compose([a, b]).composites == ()

    def test_lower_base_threshold_admits_weaker_pairs(self):
        far = [make_leaf("a", 0, 1), make_leaf("b", 12, 13)]
        assert compose(far).composites == ()
        assert len(compose(far, LinkLinkConfig(min_bridge=0.3)).composites) == 1

    def test_levers_threshold(self):
        composer = LinkLinkComposer(levers=LeverParams(threshold_base=1.4, growth_resistance=0.3))
        assert composer.threshold(1.0, 1.0) == pytest.approx(merge_threshold(1.0, 1.0, 1.4, 0.3))


class TestGreedyMatching:

    def test_each_node_used_once(self):
        nodes = [make_leaf("a", 0, 2), make_leaf("b", 3, 5), make_leaf("c", 6, 8)]
        result = compose(nodes)
        assert [c.id for c in result.composites] == ["a+b"]
        assert [n.id for n in result.unpaired] == ["c"]

        chosen = [c for c in result.candidates if c.chosen]
        assert [(c.left_id, c.right_id) for c in chosen] == [("a", "b")]
        assert any(c.left_id == "b" and c.right_id == "c" and not c.chosen for c in result.candidates)

    def test_candidates_are_strictly_forward(self):
        nodes = [make_leaf("a", 0, 2), make_leaf("b", 3, 5), make_leaf("c", 6, 8)]
        for candidate in compose(nodes).candidates:
            assert candidate.right_center > candidate.left_center

    def test_k_local_links(self):
        nodes = [make_leaf("a", 0, 2), make_leaf("b", 3, 5), make_leaf("c", 6, 8)]
        result = compose(nodes, LinkLinkConfig(k_local_links=1))
        assert {(c.left_id, c.right_id) for c in result.candidates} == {("a", "b"), ("b", "c")}

    def test_nodes_property_is_complete(self):
        nodes = [make_leaf("a", 0, 2), make_leaf("b", 3, 5), make_leaf("c", 6, 8)]
        result = compose(nodes)
        assert [n.id for n in result.nodes] == ["a+b", "c"]


class TestLevels:

    def test_two_links(self):
        assert next_level(make_leaf("a", 0, 1), make_leaf("b", 2, 3)) == 2

    def test_singleton_keeps_level_flat(self):
        assert next_level(make_leaf("a", 0, 1), make_leaf("b", 2)) == 1

    def test_capped(self):
        a, b = make_leaf("a", 0, 2), make_leaf("b", 3, 5)
        c, d = make_leaf("c", 6, 8), make_leaf("d", 9, 11)
        left = compose([a, b]).composites[0]
        right = compose([c, d]).composites[0]
        assert left.level == 2
        top = CompositeLink(
            id="top", session_id=SESSION_ID, members=(left.id, right.id), level=3,
            cause_text="", effect_text="", span_start_index=0, span_end_index=11,
            center_index=5.0, mass_base=4.0,
        )
        assert next_level(top, top) == 3
        assert next_level(left, right) == 3


class TestInternalStrength:

    def test_propagation_is_idempotent(self):
        a, b = make_leaf("a", 0, 2, strength=2.0), make_leaf("b", 3, 5, strength=3.0)
        composite = compose([a, b]).composites[0]
        stale = [CompositeLink(**{**composite.__dict__, "strength_internal": 0.0})]
        once = propagate_internal_strength(stale, index_by_id([a, b]))
        twice = propagate_internal_strength(once, index_by_id([a, b]))
        assert once == twice
        assert once[0].strength_internal == pytest.approx(composite.strength_bridge + 5.0)

    def test_unknown_children_left_alone(self):
        a, b = make_leaf("a", 0, 2), make_leaf("b", 3, 5)
        composite = compose([a, b]).composites[0]
        assert propagate_internal_strength([composite], {}) == (composite,)

    def test_leaves_untouched(self):
        leaf = make_leaf("a", 0, 2)
        assert propagate_internal_strength([leaf], {"a": leaf}) == (leaf,)


class TestForwardWindow:

    def test_two_clusters_pair_up(self):
        leaves = [
            replace(make_leaf(node_id, 0, 1), center_index=center)
            for node_id, center in (("a", 0.0), ("b", 5.0), ("c", 40.0), ("d", 45.0))
        ]
        result = compose(leaves, LinkLinkConfig(max_forward_lines=10))
        assert {(c.left_id, c.right_id) for c in result.candidates} == {("a", "b"), ("c", "d")}
        assert [c.id for c in result.composites] == ["a+b", "c+d"]
        assert result.unpaired == ()

"""
Contract Tests
==============

Inputs, node rows, resolvers and parameter validation.
"""

import pytest

from causal_hierarchy.contracts.base import (
    EligibilityMask, ExcludedRange, InvalidHierarchyParams, NodeKind,
    SessionInput, TranscriptEntry, composite_link_id, leaf_link_id, singleton_id,
    SingletonKind,
)
from causal_hierarchy.contracts.nodes import (
    CompositeLink, LeafLink, from_row, resolve_center, resolve_mass, resolve_span,
    resolve_strength_bridge, resolve_strength_internal, to_row,
)
from causal_hierarchy.contracts.params import (
    AbsorbConfig, AnnealConfig, HierarchyParams, KernelConfig, LeverParams, LinkLinkConfig,
    TierThresholds,
)

from tests.fixtures import QUESTION_ANSWERED, SESSION_ID, make_leaf, session_dict


class TestIdentifiers:

    def test_leaf_ids_are_stable(self):
        assert leaf_link_id("s", 3, 4) == leaf_link_id("s", 3, 4)
        assert leaf_link_id("s", 3, 4) != leaf_link_id("s", 3, None)
        assert leaf_link_id("s", 3, 4).startswith("link_")
        assert len(leaf_link_id("s", 3, 4)) == len("link_") + 16

    def test_composite_and_singleton_ids(self):
        assert composite_link_id("a", "b") == "a+b"
        assert singleton_id("s", SingletonKind.EFFECT, 9) == "S:effect:s:9"


class TestEligibilityMask:

    def test_fail_closed(self):
        mask = EligibilityMask(session_id="s", eligible_mask=(True, False, 1))  # type: ignore[arg-type]
        assert mask.is_eligible(0)
        assert not mask.is_eligible(1)
        assert not mask.is_eligible(2)
        assert not mask.is_eligible(-1)
        assert not mask.is_eligible(99)

    def test_from_excluded_ranges(self):
        mask = EligibilityMask.from_excluded_ranges(
            "s", 6, [ExcludedRange(4, 9, "break"), ExcludedRange(1, 2, "ooc", "rules chat")]
        )
        assert mask.eligible_mask == (True, False, False, True, False, False)
        assert mask.eligible_count == 2
        assert mask.exclusion_reason(1) == "rules chat"
        assert mask.exclusion_reason(5) == "break"
        assert mask.exclusion_reason(0) is None
        assert [r.start_index for r in mask.excluded_ranges] == [1, 4]

    def test_from_dict_only_literal_true(self):
        mask = EligibilityMask.from_dict({"session_id": "s", "eligible_mask": [True, "yes", 1, False]})
        assert mask.eligible_mask == (True, False, False, False)

    def test_from_dict_needs_shape(self):
        with pytest.raises(ValueError):
            EligibilityMask.from_dict({"session_id": "s"})


class TestSessionInput:

    def test_from_dict_defaults_mask(self):
        data = session_dict(QUESTION_ANSWERED)
        del data["eligibility_mask"]
        session = SessionInput.from_dict(data)
        assert session.eligibility_mask.eligible_count == 2
        assert session.transcript[1] == TranscriptEntry(1, "DM", QUESTION_ANSWERED[1][1], 1000)

    def test_round_trip(self):
        data = session_dict(QUESTION_ANSWERED)
        assert SessionInput.from_dict(data).to_dict() == data

    def test_missing_fields(self):
        with pytest.raises(ValueError):
            SessionInput.from_dict({"transcript": []})
        with pytest.raises(ValueError):
            TranscriptEntry.from_dict({"line_index": 0, "content": "hi"})


class TestNodes:

    def test_derived_views(self):
        link = make_leaf("a", 0, 1, mass_base=1.0, mass_boost=0.25)
        assert link.mass == link.link_mass == pytest.approx(1.25)
        assert link.node_kind is NodeKind.LINK
        assert not link.is_singleton
        assert make_leaf("b", 3).node_kind is NodeKind.SINGLETON
        assert make_leaf("b", 3).text == make_leaf("b", 3).cause_text

    def test_row_round_trip(self):
        link = make_leaf("a", 0, 1, mass_boost=0.3)
        assert from_row(to_row(link)) == link

    def test_composite_row(self):
        composite = CompositeLink(
            id="a+b", session_id=SESSION_ID, members=("a", "b"), level=2,
            cause_text="x", effect_text="y", span_start_index=0, span_end_index=5,
            center_index=2.5, mass_base=2.0, strength_bridge=1.5, strength_internal=3.9,
        )
        row = to_row(composite)
        assert row["node_kind"] == "composite"
        assert from_row(row) == composite

    def test_bad_rows(self):
        with pytest.raises(ValueError):
            from_row({"session_id": "s"})
        with pytest.raises(ValueError):
            from_row({"id": "x", "session_id": "s", "members": ["a", "b", "c"]})
        with pytest.raises(ValueError):
            from_row({"id": "x", "session_id": "s"})

    def test_legacy_row(self):
        link = from_row({
            "id": "old", "session_id": "s", "cause_anchor_index": 4,
            "effect_anchor_index": 6, "cause_mass": 0.9, "strength_ce": 1.3,
        })
        assert isinstance(link, LeafLink)
        assert link.claimed
        assert link.mass_base == pytest.approx(0.9)
        assert (link.span_start_index, link.span_end_index) == (4, 6)
        assert link.center_index == pytest.approx(5.0)
        assert link.strength_bridge == pytest.approx(1.3)
        assert link.strength_internal == pytest.approx(1.3)


class TestResolvers:

    def test_mass_chain(self):
        assert resolve_mass({"mass": 2.0, "mass_base": 1.0}) == 2.0
        assert resolve_mass({"link_mass": 1.5}) == 1.5
        assert resolve_mass({"mass_base": "1.25"}) == 1.25
        assert resolve_mass({"cause_mass": 0.7}) == 0.7
        assert resolve_mass({"mass": None, "mass_base": True}) == 0.0
        assert resolve_mass({}) == 0.0

    def test_strength_chain(self):
        assert resolve_strength_bridge({"score": 0.8}) == 0.8
        assert resolve_strength_bridge({"strength_ce": 1.1, "score": 0.8}) == 1.1
        assert resolve_strength_internal({"strength_bridge": 1.4}) == 1.4
        assert resolve_strength_internal({"strength_internal": 3.0, "strength_bridge": 1.4}) == 3.0

    def test_center_and_span(self):
        assert resolve_center({"cause_anchor_index": 2, "effect_anchor_index": 5}) == 3.5
        assert resolve_center({"cause_anchor_index": 2}) == 2.0
        assert resolve_center({}) == 0.0
        assert resolve_span({"cause_anchor_index": 7, "effect_anchor_index": 3}) == (3, 7)
        assert resolve_span({"center_index": 4.0}) == (4, 4)

    def test_nodes_and_rows_agree(self):
        link = make_leaf("a", 2, 5, mass_boost=0.5)
        row = to_row(link)
        for resolver in (resolve_mass, resolve_center, resolve_span,
                         resolve_strength_bridge, resolve_strength_internal):
            assert resolver(link) == resolver(row)


class TestParams:

    def test_defaults(self):
        params = HierarchyParams.default()
        assert params.max_level == 3
        assert params.kernel.k_local == 8
        assert params.anneal.top_k_contrib == 5
        assert params.anneal.tier_thresholds == TierThresholds(1.5, 3.0, 6.0)
        assert params.link_links.threshold_base == 1.0
        assert params.absorb == AbsorbConfig() and params.levers is None

    def test_dict_round_trip(self):
        params = HierarchyParams.from_dict({
            "kernel": {"k_local": 4, "min_pair_strength": 0.8},
            "anneal": {"tier_thresholds": {"beat": 1.0, "event": 2.0, "scene": 4.0}},
            "absorb": {"radius_base": 3.0},
            "levers": {"locality": 0.5},
            "max_level": 2,
        })
        assert params.kernel.k_local == 4
        assert params.anneal.tier_thresholds.scene == 4.0
        assert params.absorb.radius_base == 3.0
        assert params.levers.locality == 0.5
        assert HierarchyParams.from_dict(params.to_dict()) == params

    def test_unknown_keys_rejected(self):
        with pytest.raises(InvalidHierarchyParams):
            HierarchyParams.from_dict({"kernal": {}})
        with pytest.raises(InvalidHierarchyParams):
            KernelConfig.from_dict({"k_locale": 3})

    @pytest.mark.parametrize("factory", [
        lambda: LeverParams(locality=1.5),
        lambda: LeverParams(coupling=0.0),
        lambda: TierThresholds(beat=5.0, event=3.0, scene=6.0),
        lambda: KernelConfig(hill_tau=0.0),
        lambda: AnnealConfig(top_k_contrib=-1),
        lambda: LinkLinkConfig(k_local_links=-2),
    ])
    def test_out_of_range(self, factory):
        with pytest.raises(InvalidHierarchyParams):
            factory()

    @pytest.mark.parametrize("max_level", [True, False, 2.0, "3"])
    def test_max_level_must_be_an_int(self, max_level):
        with pytest.raises(InvalidHierarchyParams):
            HierarchyParams(max_level=max_level)
        with pytest.raises(InvalidHierarchyParams):
            HierarchyParams.from_dict({"max_level": max_level})

    def test_null_absorb_switches_it_off(self):
        params = HierarchyParams.from_dict({"absorb": None})
        assert params.absorb is None
        assert params.to_dict()["absorb"] is None
        assert HierarchyParams.from_dict(params.to_dict()) == params
        assert HierarchyParams.from_dict({}).absorb == AbsorbConfig()

    def test_threshold_base_override(self):
        assert LinkLinkConfig(min_bridge=0.5).threshold_base == 0.5
        assert LinkLinkConfig(min_bridge=0.5, t_link_base=1.3).threshold_base == 1.3

"""
Leaf Extraction Kernel Tests
============================

INVARIANTS TESTED:
1. One effect per cause, one cause per effect line
2. Every detected cause yields exactly one level-1 node
3. Ineligible lines never participate
4. Distance counts DM turns, not raw lines
"""

import pytest

from causal_hierarchy.contracts.base import (
    CauseType, EffectType, ExcludedRange, NodeKind, leaf_link_id,
)
from causal_hierarchy.contracts.params import KernelConfig, LeverParams
from causal_hierarchy.core.detection import CauseDetection
from causal_hierarchy.core.evidence import distance_score_hill
from causal_hierarchy.core.kernel import LEAF_MASS, LeafExtractionKernel
from causal_hierarchy.core.lexical import token_overlap
from causal_hierarchy.temporal.clock import LogicalClock

from tests.fixtures import (
    COMPILED_AT_MS, CONTESTED_EFFECT, DECLARATION_UNANSWERED, MIXED_SCENE,
    QUESTION_ANSWERED, SESSION_ID, YES_NO_REPLY, make_session,
)


def extract(lines, config=None, levers=None, emit_traces=True, **session_kwargs):
    kernel = LeafExtractionKernel(config or KernelConfig(ambient_mass_boost=False), levers)
    return kernel.extract(
        make_session(lines, **session_kwargs),
        LogicalClock.frozen(COMPILED_AT_MS),
        emit_traces=emit_traces,
    )


class TestAllocation:
    """Cause -> effect claims."""

    def test_question_claims_answer(self):
        output = extract(QUESTION_ANSWERED)
        assert len(output.links) == 1
        link = output.links[0]
        assert link.claimed and link.node_kind is NodeKind.LINK
        assert link.cause_type is CauseType.QUESTION
        assert link.cause_mass == pytest.approx(0.9)
        assert link.effect_anchor_index == 1
        assert link.effect_type is EffectType.INFORMATION
        assert link.distance == 1

        expected = distance_score_hill(1, 8.0, 2.2) * (
            1.0 + 2.0 * token_overlap(QUESTION_ANSWERED[0][1], QUESTION_ANSWERED[1][1])
        )
        assert link.score == pytest.approx(expected)
        assert link.strength_bridge == link.strength_internal == link.score

    def test_geometry_and_identity(self):
        link = extract(QUESTION_ANSWERED).links[0]
        assert (link.span_start_index, link.span_end_index) == (0, 1)
        assert link.center_index == pytest.approx(0.5)
        assert link.mass_base == LEAF_MASS
        assert link.level == 1
        assert link.id == leaf_link_id(SESSION_ID, 0, 1)
        assert link.created_at_ms == COMPILED_AT_MS

    def test_below_threshold_stays_unclaimed(self):
        output = extract(DECLARATION_UNANSWERED)
        link = output.links[0]
        assert not link.claimed
        assert link.node_kind is NodeKind.SINGLETON
        assert link.effect_anchor_index is None
        assert link.id == leaf_link_id(SESSION_ID, 0, None)
        assert output.traces[0].reason == "below_threshold"
        # The roll is still reported, just unclaimed
        assert [e.anchor_index for e in output.unclaimed_effects] == [1]
        assert output.unclaimed_effects[0].effect_type is EffectType.ROLL

    def test_yes_no_answer_boost(self):
        output = extract(YES_NO_REPLY)
        link = output.links[0]
        assert link.claimed
        assert link.effect_type is EffectType.OTHER
        assert link.effect_mass == 0.0
        candidate = output.traces[0].candidates[0]
        assert candidate.answer_boost == pytest.approx(0.15)
        assert candidate.lexical_score == 0.0
        assert candidate.final_score == pytest.approx(candidate.distance_score + 0.15)

    def test_min_pair_strength_overrides(self):
        output = extract(QUESTION_ANSWERED, config=KernelConfig(
            ambient_mass_boost=False, min_pair_strength=5.0
        ))
        assert not output.links[0].claimed
        assert output.traces[0].threshold == 5.0


class TestExclusivity:

    def test_heavier_cause_is_served_first(self):
        output = extract(CONTESTED_EFFECT)
        by_anchor = {link.cause_anchor_index: link for link in output.links}
        assert by_anchor[1].claimed and by_anchor[1].actor_id == "pc_bob"
        assert by_anchor[1].effect_type is EffectType.DETERMINISTIC
        assert not by_anchor[0].claimed

        traces = {t.cause_index: t for t in output.traces}
        assert traces[0].reason == "all_candidates_claimed"
        assert traces[0].candidates[0].claimed_by_other

    def test_one_link_per_cause(self):
        output = extract(CONTESTED_EFFECT + QUESTION_ANSWERED)
        anchors = [link.cause_anchor_index for link in output.links]
        assert anchors == sorted(set(anchors))
        claimed = [l.effect_anchor_index for l in output.links if l.claimed]
        assert len(claimed) == len(set(claimed))

    def test_links_are_in_cause_order(self):
        output = extract(MIXED_SCENE)
        assert [l.cause_anchor_index for l in output.links] == [0, 2]


class TestDistance:
    """
    Kernel distance counts DM turns while anneal and composer use raw
    center distance. The mismatch is kept on purpose.
    """

    def test_player_chatter_does_not_count(self):
        lines = (
            ("Alice", "Can I search the altar for traps?"),
            ("Bob", "Hmm."),
            ("Bob", "Hmm."),
            ("Bob", "Hmm."),
            ("DM", "You notice a thin wire across the altar."),
        )
        link = extract(lines).links[0]
        assert link.claimed
        assert link.distance == 1
        assert link.center_index == pytest.approx(2.0)

    def test_k_local_limits_candidates(self):
        lines = (
            ("Alice", "Can I search the altar for traps?"),
            ("DM", "The tavern is noisy tonight."),
            ("DM", "You notice a thin wire across the altar."),
        )
        output = extract(lines, config=KernelConfig(ambient_mass_boost=False, k_local=1))
        assert len(output.traces[0].candidates) == 1
        assert output.traces[0].candidates[0].effect_index == 1

    def test_max_l1_span(self):
        lines = (("Alice", "Can I search the altar for traps?"),) + (("Bob", "Hmm."),) * 5 + (
            ("DM", "You notice a thin wire across the altar."),
        )
        output = extract(lines, config=KernelConfig(ambient_mass_boost=False, max_l1_span=3))
        assert not output.links[0].claimed
        assert output.traces[0].reason == "no_candidates"


class TestYesNoBoundary:
    """
    Yes/no replies need a whole word at the start of the line, so
    "Nobody..." and "Nothing..." earn no answer boost. Kept on purpose.
    """

    @pytest.mark.parametrize("reply", [
        "Nobody answers from behind the curtain.",
        "Nothing but bare stone behind the curtain.",
    ])
    def test_word_prefix_gets_no_boost(self, reply):
        output = extract((("Alice", "Is there a door behind the curtain?"), ("DM", reply)))
        candidate = output.traces[0].candidates[0]
        assert candidate.answer_boost == 0.0
        assert candidate.final_score == pytest.approx(
            candidate.distance_score * (1.0 + 2.0 * candidate.lexical_score)
        )

    def test_whole_word_gets_boost(self):
        output = extract((
            ("Alice", "Is there a door behind the curtain?"),
            ("DM", "No, only bare stone behind the curtain."),
        ))
        assert output.traces[0].candidates[0].answer_boost == pytest.approx(0.15)


class TestEligibility:
    """Masked lines never participate."""

    def test_excluded_effect_line(self):
        output = extract(
            QUESTION_ANSWERED,
            excluded=(ExcludedRange(1, 1, "ooc", "table talk"),),
        )
        assert not output.links[0].claimed
        assert output.effects == ()
        assert output.traces[0].reason == "no_candidates"

    def test_excluded_cause_line(self):
        output = extract(QUESTION_ANSWERED, excluded=(ExcludedRange(0, 0, "ooc"),))
        assert output.links == ()

    def test_short_mask_fails_closed(self):
        output = extract(QUESTION_ANSWERED, mask_length=1)
        assert not output.links[0].claimed
        assert output.effects == ()

    def test_unknown_speaker_is_ignored(self):
        lines = (("Stranger", "Can I search the altar for traps?"),) + QUESTION_ANSWERED[1:]
        assert extract(lines).links == ()


class TestMassAndLevers:

    def test_ambient_boost_only_changes_boost(self):
        lines = QUESTION_ANSWERED + (
            ("Bob", "Can I climb the pillar?"),
            ("DM", "You climb the pillar easily."),
        )
        output = extract(lines, config=KernelConfig())
        assert all(l.mass_base == LEAF_MASS for l in output.links)
        assert all(l.mass_boost > 0 for l in output.links)
        assert all(l.mass == l.mass_base + l.mass_boost for l in output.links)

    def test_unclaimed_neighbors_do_not_boost(self):
        output = extract(DECLARATION_UNANSWERED, config=KernelConfig())
        assert output.links[0].mass_boost == 0.0

    def test_lever_scores_are_bounded(self):
        levers = LeverParams()
        output = extract(QUESTION_ANSWERED, levers=levers)
        link = output.links[0]
        assert link.claimed
        assert 0.0 < link.score <= levers.strength_scale

    def test_no_traces_unless_asked(self):
        assert extract(QUESTION_ANSWERED, emit_traces=False).traces == ()

    def test_repeatable(self):
        assert extract(MIXED_SCENE) == extract(MIXED_SCENE)


class FixedMassCauseDetector:
    """Every line is a declaration with a preset mass."""

    def __init__(self, masses):
        self._masses = masses

    def detect_cause(self, text):
        return CauseDetection(True, CauseType.DECLARE, self._masses[text])


class TestScenarios:

    def test_question_then_immediate_answer(self):
        output = extract((
            ("Alice", "Can I open the door?"),
            ("DM", "You see a rusted door swing open."),
        ))
        assert len(output.links) == 1
        link = output.links[0]
        assert link.claimed and link.distance == 1
        assert link.score > 0

    def test_cause_without_dm_lines(self):
        output = extract((("Alice", "Can I open the door?"),))
        link = output.links[0]
        assert not link.claimed
        assert link.effect_text is None and link.score is None
        assert output.traces[0].reason == "no_candidates"

    def test_mass_order_decides_contested_effect(self):
        weak, strong = "Maybe we open the chest", "I open the chest now"
        kernel = LeafExtractionKernel(
            KernelConfig(ambient_mass_boost=False),
            cause_detector=FixedMassCauseDetector({weak: 0.3, strong: 1.0}),
        )
        output = kernel.extract(
            make_session((("Alice", weak), ("Bob", strong), ("DM", "You open the chest."))),
            LogicalClock.frozen(COMPILED_AT_MS),
        )
        by_anchor = {link.cause_anchor_index: link for link in output.links}
        assert by_anchor[1].claimed and by_anchor[1].cause_mass == 1.0
        assert not by_anchor[0].claimed

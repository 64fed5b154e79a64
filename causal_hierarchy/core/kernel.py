"""
Leaf Extraction Kernel
======================

Turns a transcript into level-1 cause -> effect links.

ALGORITHM:
==========
1. Causes: eligible non-DM lines spoken by a registered actor that the
   cause detector accepts
2. Effects: every eligible DM line is a candidate; detected ones form the
   effect report
3. Causes are served in detection-mass order (mass desc, line asc)
4. Each cause scores the next k_local eligible DM turns and claims the
   best one still unclaimed if it clears the threshold
5. A first neighbor mass-boost pass smooths masses before the anneal

DISTANCE:
=========
Kernel distance counts DM turns (1 = the first DM line after the cause),
not raw lines. Anneal and composer use raw center distance. The two
metrics are kept apart on purpose; unifying them changes extraction.

GUARANTEES:
- Exclusivity: one effect per cause, one cause per effect line
- Every detected cause yields exactly one link (claimed or not)
- Identical input produces identical output, ids included
"""

from __future__ import annotations
from dataclasses import dataclass, replace
from typing import Dict, List, Optional, Sequence, Tuple
import logging

from ..contracts.base import (
    ActorLike, EffectType, SessionInput, TranscriptEntry, leaf_link_id,
)
from ..contracts.nodes import LeafLink, resolve_center, resolve_mass
from ..contracts.params import KernelConfig, LeverParams
from ..contracts.traces import AllocationTrace, CandidateScore, KernelEffect
from ..temporal.clock import LogicalClock
from .detection import (
    CauseDetection, CauseDetector, EffectDetection, EffectDetector,
    RegexCauseDetector, RegexEffectDetector,
)
from .evidence import distance_score_hill, lever_strength, locality_to_tau
from .lexical import LexicalCorpusStats, lexical_signals, token_overlap
from .text_features import is_dm_speaker, is_yes_no_answer_like, match_actor


logger = logging.getLogger(__name__)

CAUSAL_KERNEL_VERSION = "ce-mass-v3"

# Uniform intrinsic mass of every level-1 node
LEAF_MASS = 1.0


@dataclass(frozen=True)
class KernelOutput:
    """Round-1 nodes plus the effect report."""
    links: Tuple[LeafLink, ...]
    effects: Tuple[KernelEffect, ...]
    unclaimed_effects: Tuple[KernelEffect, ...]
    traces: Tuple[AllocationTrace, ...] = ()


@dataclass(frozen=True)
class _Cause:
    line: TranscriptEntry
    actor: ActorLike
    detection: CauseDetection


@dataclass(frozen=True)
class _Candidate:
    line: TranscriptEntry
    detection: EffectDetection
    distance: int
    distance_score: float
    lexical_score: float
    answer_boost: float
    score: float


class LeafExtractionKernel:
    """
    Mass-ordered exclusive cause -> effect allocation.

    Detectors are injected; the regex catalogue is used when none are
    given. With levers set, candidates are scored through
    evidence -> strength and IDF lexical signals.
    """

    def __init__(
        self,
        config: Optional[KernelConfig] = None,
        levers: Optional[LeverParams] = None,
        cause_detector: Optional[CauseDetector] = None,
        effect_detector: Optional[EffectDetector] = None
    ):
        self._config = config or KernelConfig()
        self._levers = levers
        self._cause_detector = cause_detector or RegexCauseDetector()
        self._effect_detector = effect_detector or RegexEffectDetector()
        self._tau = (
            locality_to_tau(levers.locality) if levers else self._config.hill_tau
        )

    def extract(
        self,
        session: SessionInput,
        clock: LogicalClock,
        emit_traces: bool = False
    ) -> KernelOutput:
        config = self._config
        mask = session.eligibility_mask
        lines = sorted(session.transcript, key=lambda e: e.line_index)
        stats = (
            LexicalCorpusStats.build(e.content for e in lines) if self._levers else None
        )
        created_at_ms = clock.now_ms()

        causes: List[_Cause] = []
        dm_lines: List[TranscriptEntry] = []
        effect_detections: Dict[int, EffectDetection] = {}
        effects: List[KernelEffect] = []

        for line in lines:
            if not mask.is_eligible(line.line_index):
                continue
            if is_dm_speaker(line.author_name, session.dm_speakers):
                detection = self._effect_detector.detect_effect(line.content)
                dm_lines.append(line)
                effect_detections[line.line_index] = detection
                if detection.is_effect:
                    effects.append(KernelEffect(
                        anchor_index=line.line_index,
                        text=line.content,
                        effect_type=detection.effect_type,
                        mass=detection.mass,
                    ))
                continue
            actor = match_actor(line.author_name, session.actors)
            if actor is None:
                continue
            cause = self._cause_detector.detect_cause(line.content)
            if cause.is_cause:
                causes.append(_Cause(line=line, actor=actor, detection=cause))

        serve_order = sorted(
            causes, key=lambda c: (-c.detection.mass, c.line.line_index)
        )
        claimed_effects: Dict[int, int] = {}
        links_by_cause: Dict[int, LeafLink] = {}
        traces: List[AllocationTrace] = []

        for cause in serve_order:
            anchor = cause.line.line_index
            threshold = self._threshold(cause.detection.mass)
            candidates = self._candidates(cause, dm_lines, effect_detections, stats)
            open_candidates = [
                c for c in candidates if c.line.line_index not in claimed_effects
            ]
            best = min(
                open_candidates,
                key=lambda c: (-c.score, c.distance, c.line.line_index),
                default=None,
            )
            if best is not None and best.score >= threshold:
                claimed_effects[best.line.line_index] = anchor
                links_by_cause[anchor] = self._claimed_link(
                    session.session_id, cause, best, created_at_ms
                )
                reason = "claimed"
            else:
                links_by_cause[anchor] = self._unclaimed_link(
                    session.session_id, cause, created_at_ms
                )
                if not candidates:
                    reason = "no_candidates"
                elif best is None:
                    reason = "all_candidates_claimed"
                else:
                    reason = "below_threshold"

            if emit_traces:
                traces.append(AllocationTrace(
                    cause_index=anchor,
                    cause_mass=cause.detection.mass,
                    threshold=threshold,
                    candidates=tuple(
                        CandidateScore(
                            effect_index=c.line.line_index,
                            distance=c.distance,
                            distance_score=c.distance_score,
                            lexical_score=c.lexical_score,
                            answer_boost=c.answer_boost,
                            final_score=c.score,
                            claimed_by_other=(
                                c.line.line_index in claimed_effects
                                and claimed_effects[c.line.line_index] != anchor
                            ),
                        )
                        for c in candidates
                    ),
                    chosen_effect_index=(
                        best.line.line_index if reason == "claimed" else None
                    ),
                    reason=reason,
                ))

        links = [links_by_cause[a] for a in sorted(links_by_cause)]
        if config.ambient_mass_boost:
            links = boost_link_masses(links, config, self._levers)

        unclaimed = tuple(e for e in effects if e.anchor_index not in claimed_effects)
        logger.debug(
            "kernel session=%s causes=%d claimed=%d unclaimed_effects=%d",
            session.session_id, len(links), len(claimed_effects), len(unclaimed),
        )
        return KernelOutput(
            links=tuple(links),
            effects=tuple(effects),
            unclaimed_effects=unclaimed,
            traces=tuple(sorted(traces, key=lambda t: t.cause_index)),
        )

    # =========================================================================
    # SCORING
    # =========================================================================

    def _threshold(self, cause_mass: float) -> float:
        config = self._config
        if config.min_pair_strength is not None:
            return config.min_pair_strength
        if cause_mass >= config.strong_cause_mass:
            return config.strong_min_score
        return config.weak_min_score

    def _candidates(
        self,
        cause: _Cause,
        dm_lines: Sequence[TranscriptEntry],
        effect_detections: Dict[int, EffectDetection],
        stats: Optional[LexicalCorpusStats]
    ) -> List[_Candidate]:
        config = self._config
        anchor = cause.line.line_index
        following = [d for d in dm_lines if d.line_index > anchor][:config.k_local]
        scored = []
        for turn, line in enumerate(following, start=1):
            if config.max_l1_span is not None and line.line_index - anchor > config.max_l1_span:
                continue
            scored.append(self._score(
                cause.line.content, line, effect_detections[line.line_index], turn, stats
            ))
        return scored

    def _score(
        self,
        cause_text: str,
        line: TranscriptEntry,
        detection: EffectDetection,
        distance: int,
        stats: Optional[LexicalCorpusStats]
    ) -> _Candidate:
        config = self._config
        d_score = distance_score_hill(distance, self._tau, config.hill_steepness)
        answer = config.answer_boost if is_yes_no_answer_like(line.content) else 0.0
        if self._levers is not None:
            lexical, keyword = lexical_signals(cause_text, line.content, stats)
            score = lever_strength(d_score, lexical, keyword, self._levers, answer)
        else:
            lexical = token_overlap(cause_text, line.content)
            score = d_score * (1.0 + lexical * config.beta_lex) + answer
        return _Candidate(
            line=line,
            detection=detection,
            distance=distance,
            distance_score=d_score,
            lexical_score=lexical,
            answer_boost=answer,
            score=score,
        )

    # =========================================================================
    # NODE CONSTRUCTION
    # =========================================================================

    def _claimed_link(
        self,
        session_id: str,
        cause: _Cause,
        chosen: _Candidate,
        created_at_ms: int
    ) -> LeafLink:
        anchor = cause.line.line_index
        effect_index = chosen.line.line_index
        effect_type = (
            chosen.detection.effect_type if chosen.detection.is_effect else EffectType.OTHER
        )
        return LeafLink(
            id=leaf_link_id(session_id, anchor, effect_index),
            session_id=session_id,
            actor_id=cause.actor.id,
            cause_text=cause.line.content,
            cause_type=cause.detection.cause_type,
            cause_anchor_index=anchor,
            cause_mass=cause.detection.mass,
            claimed=True,
            effect_text=chosen.line.content,
            effect_type=effect_type,
            effect_anchor_index=effect_index,
            effect_mass=chosen.detection.mass if chosen.detection.is_effect else 0.0,
            distance=chosen.distance,
            score=chosen.score,
            span_start_index=min(anchor, effect_index),
            span_end_index=max(anchor, effect_index),
            center_index=(anchor + effect_index) / 2.0,
            mass_base=LEAF_MASS,
            strength_bridge=chosen.score,
            strength_internal=chosen.score,
            created_at_ms=created_at_ms,
        )

    def _unclaimed_link(
        self,
        session_id: str,
        cause: _Cause,
        created_at_ms: int
    ) -> LeafLink:
        anchor = cause.line.line_index
        return LeafLink(
            id=leaf_link_id(session_id, anchor, None),
            session_id=session_id,
            actor_id=cause.actor.id,
            cause_text=cause.line.content,
            cause_type=cause.detection.cause_type,
            cause_anchor_index=anchor,
            cause_mass=cause.detection.mass,
            claimed=False,
            span_start_index=anchor,
            span_end_index=anchor,
            center_index=float(anchor),
            mass_base=LEAF_MASS,
            created_at_ms=created_at_ms,
        )


# =============================================================================
# NEIGHBOR MASS BOOST
# =============================================================================

def boost_link_masses(
    links: Sequence[LeafLink],
    config: KernelConfig,
    levers: Optional[LeverParams] = None
) -> List[LeafLink]:
    """
    First-order neighbor smoothing over all pairs within link_window.

    Each node's boost is damping * sum(strength_ll * neighbor_mass); with
    require_claimed_neighbors only claimed nodes act as sources. Masses
    read are the pre-pass masses, so the result does not depend on order.
    """
    tau = locality_to_tau(levers.locality) if levers else config.hill_tau
    centers = [resolve_center(link) for link in links]
    texts = [link.text for link in links]
    base_mass = [resolve_mass(link) for link in links]
    stats = LexicalCorpusStats.build(texts) if levers else None

    boosted = []
    for i, link in enumerate(links):
        bonus = 0.0
        for j, neighbor in enumerate(links):
            if i == j:
                continue
            if config.require_claimed_neighbors and not neighbor.claimed:
                continue
            distance = abs(centers[i] - centers[j])
            if distance > config.link_window:
                continue
            d_score = distance_score_hill(distance, tau, config.hill_steepness)
            if levers is not None:
                lexical, keyword = lexical_signals(texts[i], texts[j], stats)
                strength_ll = lever_strength(d_score, lexical, keyword, levers)
            else:
                strength_ll = d_score * (
                    1.0 + config.beta_lex_ll * token_overlap(texts[i], texts[j])
                )
            bonus += strength_ll * base_mass[j]
        boosted.append(replace(link, mass_boost=bonus * config.link_boost_damping))
    return boosted

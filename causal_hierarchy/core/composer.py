"""
Link-Link Composer
==================

Builds the next hierarchy level by merging pairs of nearby nodes.

CANDIDATES:
===========
For each node i, the k_local_links nearest nodes j strictly forward of it
(0 < center(j) - center(i) <= max_forward_lines). A pair survives when its
bridge strength clears merge_threshold(mass(i), mass(j), T0, eta), so
heavier pairs need more evidence.

MATCHING:
=========
Greedy over all survivors sorted by strength desc, center distance asc,
left center asc, left id asc. Each node joins at most one composite.

PROMOTION:
==========
level = max(child levels) + 1 (capped at 3) unless either child is a
singleton, in which case the level stays flat.

Nodes without a partner pass through unpaired with the same content and
mass.
"""

from __future__ import annotations
from dataclasses import dataclass, replace
from typing import Dict, List, Mapping, Optional, Sequence, Set, Tuple
import logging

from ..contracts.base import NodeKind, composite_link_id
from ..contracts.nodes import (
    CausalLink, CompositeLink, resolve_center, resolve_mass, resolve_span,
    resolve_strength_internal,
)
from ..contracts.params import LinkLinkConfig, LeverParams, MAX_HIERARCHY_LEVEL
from ..contracts.traces import LinkLinkCandidate
from ..temporal.clock import LogicalClock
from .evidence import (
    distance_score_hill, lever_strength, locality_to_tau, merge_threshold,
)
from .lexical import LexicalCorpusStats, lexical_signals, token_overlap


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ComposeResult:
    composites: Tuple[CompositeLink, ...]
    unpaired: Tuple[CausalLink, ...]
    candidates: Tuple[LinkLinkCandidate, ...]

    @property
    def nodes(self) -> Tuple[CausalLink, ...]:
        """Complete input set for the next round."""
        return tuple(self.composites) + tuple(self.unpaired)


def next_level(left: CausalLink, right: CausalLink) -> int:
    base = max(left.level, right.level)
    if left.node_kind is NodeKind.SINGLETON or right.node_kind is NodeKind.SINGLETON:
        return base
    return min(MAX_HIERARCHY_LEVEL, base + 1)


def restamp(node: CausalLink) -> CausalLink:
    """Pass-through copy with span, center and internal strength resolved."""
    span_start, span_end = resolve_span(node)
    return replace(
        node,
        span_start_index=span_start,
        span_end_index=span_end,
        center_index=resolve_center(node),
        strength_internal=resolve_strength_internal(node),
    )


class LinkLinkComposer:
    """Pairwise composition for one round."""

    def __init__(
        self,
        config: Optional[LinkLinkConfig] = None,
        levers: Optional[LeverParams] = None
    ):
        self._config = config or LinkLinkConfig()
        self._levers = levers
        self._tau = locality_to_tau(levers.locality) if levers else self._config.hill_tau

    def threshold(self, mass_a: float, mass_b: float) -> float:
        if self._levers is not None:
            return merge_threshold(
                mass_a, mass_b, self._levers.threshold_base, self._levers.growth_resistance
            )
        return merge_threshold(
            mass_a, mass_b, self._config.threshold_base, self._config.t_link_k
        )

    def bridge(
        self,
        left_text: str,
        right_text: str,
        center_distance: float,
        stats: Optional[LexicalCorpusStats]
    ) -> Tuple[float, float]:
        """Returns (strength_bridge, lexical_score) for one pair."""
        d_score = distance_score_hill(center_distance, self._tau, self._config.hill_steepness)
        if self._levers is None:
            lexical = token_overlap(left_text, right_text)
            return d_score * (1.0 + self._config.beta_lex * lexical), lexical
        lexical, keyword = lexical_signals(left_text, right_text, stats)
        return lever_strength(d_score, lexical, keyword, self._levers), lexical

    def compose(
        self,
        session_id: str,
        nodes: Sequence[CausalLink],
        clock: LogicalClock
    ) -> ComposeResult:
        config = self._config
        ordered = sorted((restamp(n) for n in nodes), key=lambda n: (n.center_index, n.id))
        centers = [n.center_index for n in ordered]
        texts = [n.text for n in ordered]
        masses = [resolve_mass(n) for n in ordered]
        stats = LexicalCorpusStats.build(texts) if self._levers else None

        survivors: List[Tuple[int, int, float, float, float, float]] = []
        for i in range(len(ordered)):
            forward = []
            for j in range(len(ordered)):
                gap = centers[j] - centers[i]
                if i == j or gap <= 0 or gap > config.max_forward_lines:
                    continue
                forward.append((gap, ordered[j].id, j))
            forward.sort()
            for gap, _, j in forward[:config.k_local_links]:
                bridge, lexical = self.bridge(texts[i], texts[j], gap, stats)
                bar = self.threshold(masses[i], masses[j])
                if bridge < bar:
                    continue
                survivors.append((i, j, bridge, bar, gap, lexical))

        survivors.sort(key=lambda c: (-c[2], c[4], centers[c[0]], ordered[c[0]].id))

        created_at_ms = clock.now_ms()
        used: Set[int] = set()
        chosen: Set[Tuple[int, int]] = set()
        composites: List[CompositeLink] = []
        for i, j, bridge, _, gap, lexical in survivors:
            if i in used or j in used:
                continue
            used.update((i, j))
            chosen.add((i, j))
            composites.append(self._merge(
                session_id, ordered[i], ordered[j], bridge, gap, lexical, created_at_ms
            ))

        unpaired = tuple(n for idx, n in enumerate(ordered) if idx not in used)
        records = tuple(
            LinkLinkCandidate(
                left_id=ordered[i].id,
                right_id=ordered[j].id,
                left_center=centers[i],
                right_center=centers[j],
                center_distance=gap,
                lexical_score=lexical,
                strength_bridge=bridge,
                threshold_link=bar,
                chosen=(i, j) in chosen,
            )
            for i, j, bridge, bar, gap, lexical in survivors
        )
        logger.debug(
            "compose session=%s nodes=%d candidates=%d composites=%d unpaired=%d",
            session_id, len(ordered), len(records), len(composites), len(unpaired),
        )
        return ComposeResult(
            composites=tuple(composites), unpaired=unpaired, candidates=records
        )

    def _merge(
        self,
        session_id: str,
        left: CausalLink,
        right: CausalLink,
        bridge: float,
        gap: float,
        lexical: float,
        created_at_ms: int
    ) -> CompositeLink:
        return CompositeLink(
            id=composite_link_id(left.id, right.id),
            session_id=session_id,
            members=(left.id, right.id),
            level=next_level(left, right),
            cause_text=left.text,
            effect_text=right.text,
            span_start_index=min(left.span_start_index, right.span_start_index),
            span_end_index=max(left.span_end_index, right.span_end_index),
            center_index=(left.center_index + right.center_index) / 2.0,
            mass_base=resolve_mass(left) + resolve_mass(right),
            strength_bridge=bridge,
            strength_internal=bridge + left.strength_internal + right.strength_internal,
            join_center_distance=gap,
            join_lexical_score=lexical,
            created_at_ms=created_at_ms,
        )


def compose_links(
    session_id: str,
    nodes: Sequence[CausalLink],
    config: Optional[LinkLinkConfig] = None,
    levers: Optional[LeverParams] = None,
    clock: Optional[LogicalClock] = None
) -> ComposeResult:
    return LinkLinkComposer(config, levers).compose(
        session_id, nodes, clock or LogicalClock.frozen(0)
    )


def propagate_internal_strength(
    nodes: Sequence[CausalLink],
    child_map: Mapping[str, CausalLink]
) -> Tuple[CausalLink, ...]:
    """
    Fold children's internal strength into each composite.

    strength_internal = strength_bridge + internal(left) + internal(right),
    recomputed rather than accumulated, so repeated calls are no-ops.
    Composites whose children are not in child_map are left unchanged.
    """
    result: List[CausalLink] = []
    for node in nodes:
        if isinstance(node, CompositeLink):
            left = child_map.get(node.members[0])
            right = child_map.get(node.members[1])
            if left is not None and right is not None:
                node = replace(
                    node,
                    strength_internal=(
                        node.strength_bridge
                        + resolve_strength_internal(left)
                        + resolve_strength_internal(right)
                    ),
                )
        result.append(node)
    return tuple(result)


def index_by_id(nodes: Sequence[CausalLink]) -> Dict[str, CausalLink]:
    return {node.id: node for node in nodes}

"""
Anneal Phase
============

Redistributes mass between neighboring nodes.

    mass_new = mass_base + lambda * sum(top-K strength_ll(i, j) * mass_prev(j))

mass_base is intrinsic and never changes here; only mass_boost, tier and
(on request) the context text used for lexical overlap are involved.
Neighbors are nodes within window_links raw center distance. The top-K
cut orders contributions by contrib desc, distance asc, source id asc.

All reads use the pre-phase masses, so the result is independent of the
order nodes are given in.
"""

from __future__ import annotations
from dataclasses import dataclass, replace
from typing import Dict, List, Mapping, Optional, Sequence, Tuple
import logging

from ..contracts.base import Tier
from ..contracts.nodes import CausalLink, resolve_center, resolve_mass
from ..contracts.params import AnnealConfig, LeverParams, TierThresholds
from ..contracts.traces import NeighborEdgeTrace
from ..observability.audit import render_mass_delta_tsv
from .evidence import distance_score_hill, lever_strength, locality_to_tau
from .lexical import LexicalCorpusStats, lexical_signals, token_overlap


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AnnealResult:
    nodes: Tuple[CausalLink, ...]
    neighbor_edges: Tuple[NeighborEdgeTrace, ...]
    mass_delta_rows: Tuple[Dict[str, object], ...]

    @property
    def mass_delta_tsv(self) -> str:
        return render_mass_delta_tsv(self.mass_delta_rows)

    @property
    def max_mass_delta(self) -> float:
        return max(
            (abs(r["mass_new"] - r["mass_prev"]) for r in self.mass_delta_rows),  # type: ignore[operator]
            default=0.0,
        )


def compute_tier(mass: float, thresholds: Optional[TierThresholds]) -> Tier:
    if thresholds is None:
        return Tier.LINK
    if mass >= thresholds.scene:
        return Tier.SCENE
    if mass >= thresholds.event:
        return Tier.EVENT
    if mass >= thresholds.beat:
        return Tier.BEAT
    return Tier.LINK


def _node_text(
    node: CausalLink,
    context_by_link_id: Optional[Mapping[str, Sequence[str]]],
    include_context_text: bool
) -> str:
    base = node.text
    if not include_context_text or not context_by_link_id:
        return base
    extra = context_by_link_id.get(node.id) or ()
    return " ".join([base, *extra]).strip() if extra else base


def anneal_links(
    nodes: Sequence[CausalLink],
    config: Optional[AnnealConfig] = None,
    levers: Optional[LeverParams] = None,
    context_by_link_id: Optional[Mapping[str, Sequence[str]]] = None
) -> AnnealResult:
    """
    Run one anneal pass.

    Returns new node objects in input order plus the top-K neighbor edges
    and the mass-delta rows behind the audit TSV.
    """
    config = config or AnnealConfig()
    tau = locality_to_tau(levers.locality) if levers else config.hill_tau
    centers = [resolve_center(n) for n in nodes]
    texts = [_node_text(n, context_by_link_id, config.include_context_text) for n in nodes]
    mass_prev = [resolve_mass(n) for n in nodes]
    stats = LexicalCorpusStats.build(texts) if levers else None

    updated: List[CausalLink] = []
    edges: List[NeighborEdgeTrace] = []
    delta_rows: List[Dict[str, object]] = []

    for i, node in enumerate(nodes):
        candidates: List[NeighborEdgeTrace] = []
        for j, neighbor in enumerate(nodes):
            if i == j:
                continue
            distance = abs(centers[i] - centers[j])
            if distance > config.window_links:
                continue
            d_score = distance_score_hill(distance, tau, config.hill_steepness)
            if levers is not None:
                lexical, keyword = lexical_signals(texts[i], texts[j], stats)
                strength_ll = lever_strength(d_score, lexical, keyword, levers)
            else:
                lexical = token_overlap(texts[i], texts[j])
                strength_ll = d_score * (1.0 + config.beta_lex * lexical)
            candidates.append(NeighborEdgeTrace(
                from_link_id=neighbor.id,
                to_link_id=node.id,
                strength_ll=strength_ll,
                contrib=strength_ll * mass_prev[j],
                distance=distance,
                lexical=lexical,
            ))

        candidates.sort(key=lambda e: (-e.contrib, e.distance, e.from_link_id))
        top = candidates[:config.top_k_contrib]
        edges.extend(top)

        boost = config.lambda_ * sum(e.contrib for e in top)
        mass_new = node.mass_base + boost
        tier_new = compute_tier(mass_new, config.tier_thresholds)
        updated.append(replace(node, mass_boost=boost, tier=tier_new))
        delta_rows.append({
            "link_id": node.id,
            "mass_base": node.mass_base,
            "mass_prev": mass_prev[i],
            "mass_new": mass_new,
            "boost": boost,
            "tier_prev": node.tier.value,
            "tier_new": tier_new.value,
            "top_contributor_link_id": top[0].from_link_id if top else "",
        })

    logger.debug("anneal nodes=%d neighbor_edges=%d", len(updated), len(edges))
    return AnnealResult(
        nodes=tuple(updated),
        neighbor_edges=tuple(edges),
        mass_delta_rows=tuple(delta_rows),
    )

"""
Singleton Absorption
====================

Attaches unclaimed cause/effect fragments to nearby nodes as context.

Context is never structural: an absorbed singleton does not become a
member and does not change mass. It raises the host's context_count and
its text can feed later lexical scoring.

    radius   = radius_base + radius_per_mass * host_mass
    strength = hill(d) * (1 + beta_lex * lexical)      kept if >= min_ctx_strength
    capacity = floor(cap_base + cap_per_mass * host_mass)

Assignment is greedy over strength desc, singleton mass desc, distance
asc, singleton id, host id; each singleton attaches at most once.
Singleton-kind nodes never host context.
"""

from __future__ import annotations
from dataclasses import dataclass, replace
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple
import math

from ..contracts.base import NodeKind, SingletonKind, singleton_id
from ..contracts.nodes import CausalLink, LeafLink, resolve_center, resolve_mass
from ..contracts.params import AbsorbConfig
from ..contracts.traces import ContextEdge, KernelEffect, SingletonNode
from ..temporal.clock import LogicalClock
from .evidence import distance_score_hill
from .lexical import token_overlap


@dataclass(frozen=True)
class AbsorbResult:
    nodes: Tuple[CausalLink, ...]
    context_edges: Tuple[ContextEdge, ...]
    remaining_causes: Tuple[SingletonNode, ...]
    remaining_effects: Tuple[SingletonNode, ...]
    context_by_link_id: Dict[str, Tuple[str, ...]]
    counts: Dict[str, int]
    ctx_strengths: Tuple[float, ...]


def extract_singletons(
    session_id: str,
    links: Iterable[LeafLink],
    unclaimed_effects: Iterable[KernelEffect] = ()
) -> Tuple[Tuple[SingletonNode, ...], Tuple[SingletonNode, ...]]:
    """Unclaimed kernel causes and effects as (causes, effects)."""
    causes = tuple(
        SingletonNode(
            id=singleton_id(link.session_id, SingletonKind.CAUSE, link.cause_anchor_index),
            kind=SingletonKind.CAUSE,
            anchor_index=link.cause_anchor_index,
            text=link.cause_text,
            mass=resolve_mass(link),
            type=link.cause_type.value,
        )
        for link in links
        if not link.claimed
    )
    effects = tuple(
        SingletonNode(
            id=singleton_id(session_id, SingletonKind.EFFECT, effect.anchor_index),
            kind=SingletonKind.EFFECT,
            anchor_index=effect.anchor_index,
            text=effect.text,
            mass=effect.mass,
            type=effect.effect_type.value,
        )
        for effect in unclaimed_effects
    )
    return causes, effects


def absorb_singletons(
    nodes: Sequence[CausalLink],
    singleton_causes: Sequence[SingletonNode],
    singleton_effects: Sequence[SingletonNode],
    config: Optional[AbsorbConfig] = None,
    clock: Optional[LogicalClock] = None
) -> AbsorbResult:
    config = config or AbsorbConfig()
    clock = clock or LogicalClock.frozen(0)
    hosts = [n for n in nodes if n.node_kind is not NodeKind.SINGLETON]
    host_mass = {n.id: resolve_mass(n) for n in hosts}
    host_center = {n.id: resolve_center(n) for n in hosts}

    candidates = []
    for singleton in list(singleton_causes) + list(singleton_effects):
        for host in hosts:
            radius = config.radius_base + config.radius_per_mass * host_mass[host.id]
            distance = abs(singleton.anchor_index - host_center[host.id])
            if distance > radius:
                continue
            lexical = token_overlap(singleton.text, host.text)
            strength_ctx = distance_score_hill(
                distance, config.hill_tau, config.hill_steepness
            ) * (1.0 + config.beta_lex * lexical)
            if strength_ctx < config.min_ctx_strength:
                continue
            candidates.append((strength_ctx, singleton, host, distance, lexical))

    candidates.sort(key=lambda c: (-c[0], -c[1].mass, c[3], c[1].id, c[2].id))

    capacity = {
        h.id: max(0, math.floor(config.cap_base + config.cap_per_mass * host_mass[h.id]))
        for h in hosts
    }
    used: Dict[str, int] = {h.id: 0 for h in hosts}
    attached: Set[str] = set()
    context: Dict[str, List[str]] = {}
    edges: List[ContextEdge] = []
    created_at_ms = clock.now_ms()

    for strength_ctx, singleton, host, distance, lexical in candidates:
        if singleton.id in attached or used[host.id] >= capacity[host.id]:
            continue
        attached.add(singleton.id)
        used[host.id] += 1
        context.setdefault(host.id, []).append(singleton.text)
        edges.append(ContextEdge(
            singleton_id=singleton.id,
            link_id=host.id,
            strength_ctx=strength_ctx,
            distance=distance,
            lexical=lexical,
            singleton_kind=singleton.kind,
            singleton_anchor_index=singleton.anchor_index,
            link_center_index=host_center[host.id],
            created_at_ms=created_at_ms,
        ))

    updated = tuple(
        replace(n, context_count=n.context_count + used[n.id]) if used.get(n.id) else n
        for n in nodes
    )
    remaining_causes = tuple(s for s in singleton_causes if s.id not in attached)
    remaining_effects = tuple(s for s in singleton_effects if s.id not in attached)
    counts = {
        "singleton_causes_total": len(singleton_causes),
        "singleton_causes_attached": len(singleton_causes) - len(remaining_causes),
        "singleton_effects_total": len(singleton_effects),
        "singleton_effects_attached": len(singleton_effects) - len(remaining_effects),
        "context_edges": len(edges),
        "links": len(hosts),
    }
    return AbsorbResult(
        nodes=updated,
        context_edges=tuple(edges),
        remaining_causes=remaining_causes,
        remaining_effects=remaining_effects,
        context_by_link_id={k: tuple(v) for k, v in sorted(context.items())},
        counts=counts,
        ctx_strengths=tuple(e.strength_ctx for e in edges),
    )

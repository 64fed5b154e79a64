"""
Hierarchy Node Contracts
========================

The tagged union of nodes the hierarchy is built from.

NODE KINDS:
===========
- LeafLink (claimed)    -> NodeKind.LINK       cause paired with a DM effect
- LeafLink (unclaimed)  -> NodeKind.SINGLETON  cause with no acceptable effect
- CompositeLink         -> NodeKind.COMPOSITE  merge of exactly two nodes

GUARANTEES:
- Nodes are immutable; phases return new objects via dataclasses.replace
- `mass` and `link_mass` are derived from mass_base + mass_boost and can
  never drift apart
- node kind is derived, never stored

SOFT SCHEMA:
============
Persisted rows may predate some columns. The resolve_* functions accept
either a node or a mapping row and apply one fallback chain each, so
every consumer reads mass/strength/span the same way.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Tuple, Union

from .base import CauseType, EffectType, NodeKind, Tier


# =============================================================================
# NODES
# =============================================================================

class _HierarchyNodeMixin:
    """Derived views shared by every node kind."""

    mass_base: float
    mass_boost: float

    @property
    def mass(self) -> float:
        return self.mass_base + self.mass_boost

    @property
    def link_mass(self) -> float:
        return self.mass_base + self.mass_boost

    @property
    def text(self) -> str:
        parts = [self.cause_text, self.effect_text]  # type: ignore[attr-defined]
        return " ".join(p for p in parts if p)

    @property
    def is_singleton(self) -> bool:
        return self.node_kind is NodeKind.SINGLETON  # type: ignore[attr-defined]


@dataclass(frozen=True)
class LeafLink(_HierarchyNodeMixin):
    """Level-1 node produced by the kernel."""
    id: str
    session_id: str
    actor_id: str
    cause_text: str
    cause_type: CauseType
    cause_anchor_index: int
    cause_mass: float
    claimed: bool
    span_start_index: int
    span_end_index: int
    center_index: float
    mass_base: float
    mass_boost: float = 0.0
    effect_text: Optional[str] = None
    effect_type: Optional[EffectType] = None
    effect_anchor_index: Optional[int] = None
    effect_mass: Optional[float] = None
    distance: Optional[int] = None
    score: Optional[float] = None
    strength_bridge: float = 0.0
    strength_internal: float = 0.0
    tier: Tier = Tier.LINK
    context_count: int = 0
    created_at_ms: int = 0

    level: int = 1

    @property
    def node_kind(self) -> NodeKind:
        return NodeKind.LINK if self.claimed else NodeKind.SINGLETON

    @property
    def members(self) -> Tuple[str, ...]:
        return ()


@dataclass(frozen=True)
class CompositeLink(_HierarchyNodeMixin):
    """Node formed by merging exactly two nodes (left precedes right)."""
    id: str
    session_id: str
    members: Tuple[str, str]
    level: int
    cause_text: str
    effect_text: str
    span_start_index: int
    span_end_index: int
    center_index: float
    mass_base: float
    mass_boost: float = 0.0
    strength_bridge: float = 0.0
    strength_internal: float = 0.0
    join_center_distance: float = 0.0
    join_lexical_score: float = 0.0
    tier: Tier = Tier.LINK
    context_count: int = 0
    created_at_ms: int = 0

    @property
    def node_kind(self) -> NodeKind:
        return NodeKind.COMPOSITE

    @property
    def claimed(self) -> bool:
        return True


CausalLink = Union[LeafLink, CompositeLink]


# =============================================================================
# RESOLVERS
# =============================================================================

NodeOrRow = Union[LeafLink, CompositeLink, Mapping[str, Any]]


def _field(node: NodeOrRow, name: str) -> Any:
    if isinstance(node, Mapping):
        return node.get(name)
    return getattr(node, name, None)


def _first_number(node: NodeOrRow, names: Tuple[str, ...]) -> Optional[float]:
    for name in names:
        value = _field(node, name)
        if value is None or isinstance(value, bool):
            continue
        try:
            return float(value)
        except (TypeError, ValueError):
            continue
    return None


def resolve_mass(node: NodeOrRow) -> float:
    """mass -> link_mass -> mass_base -> cause_mass -> 0."""
    value = _first_number(node, ("mass", "link_mass", "mass_base", "cause_mass"))
    return 0.0 if value is None else value


def resolve_strength_bridge(node: NodeOrRow) -> float:
    value = _first_number(node, ("strength_bridge", "strength_ce", "score"))
    return 0.0 if value is None else value


def resolve_strength_internal(node: NodeOrRow) -> float:
    value = _first_number(node, ("strength_internal",))
    return resolve_strength_bridge(node) if value is None else value


def resolve_center(node: NodeOrRow) -> float:
    value = _first_number(node, ("center_index",))
    if value is not None:
        return value
    cause = _first_number(node, ("cause_anchor_index",))
    effect = _first_number(node, ("effect_anchor_index",))
    if cause is not None and effect is not None:
        return (cause + effect) / 2.0
    if cause is not None:
        return cause
    return effect if effect is not None else 0.0


def resolve_span(node: NodeOrRow) -> Tuple[int, int]:
    start = _first_number(node, ("span_start_index",))
    end = _first_number(node, ("span_end_index",))
    cause = _first_number(node, ("cause_anchor_index",))
    effect = _first_number(node, ("effect_anchor_index",))
    anchors = [a for a in (cause, effect) if a is not None]
    if start is None:
        start = min(anchors) if anchors else resolve_center(node)
    if end is None:
        end = max(anchors) if anchors else resolve_center(node)
    return int(start), int(end)


# =============================================================================
# ROW CODEC
# =============================================================================

def _enum_value(value: Any) -> Any:
    return None if value is None else value.value


def to_row(node: CausalLink) -> Dict[str, Any]:
    """Flatten a node into the one-row-per-node table shape."""
    row: Dict[str, Any] = {
        "id": node.id,
        "session_id": node.session_id,
        "node_kind": node.node_kind.value,
        "level": node.level,
        "claimed": node.claimed,
        "members": list(node.members),
        "cause_text": node.cause_text,
        "effect_text": node.effect_text,
        "span_start_index": node.span_start_index,
        "span_end_index": node.span_end_index,
        "center_index": node.center_index,
        "mass_base": node.mass_base,
        "mass_boost": node.mass_boost,
        "mass": node.mass,
        "link_mass": node.link_mass,
        "strength_bridge": node.strength_bridge,
        "strength_internal": node.strength_internal,
        "tier": node.tier.value,
        "context_count": node.context_count,
        "created_at_ms": node.created_at_ms,
    }
    if isinstance(node, LeafLink):
        row.update({
            "actor_id": node.actor_id,
            "cause_type": node.cause_type.value,
            "cause_anchor_index": node.cause_anchor_index,
            "cause_mass": node.cause_mass,
            "effect_type": _enum_value(node.effect_type),
            "effect_anchor_index": node.effect_anchor_index,
            "effect_mass": node.effect_mass,
            "distance": node.distance,
            "score": node.score,
        })
    else:
        row.update({
            "join_center_distance": node.join_center_distance,
            "join_lexical_score": node.join_lexical_score,
        })
    return row


def from_row(row: Mapping[str, Any]) -> CausalLink:
    """
    Rebuild a node from a persisted row.

    Missing mass/strength/span columns are filled through the resolvers;
    the stored boost is kept so mass_base + mass_boost reproduces the
    resolved mass.
    """
    if "id" not in row or "session_id" not in row:
        raise ValueError("row needs 'id' and 'session_id'")
    members = tuple(row.get("members") or ())
    mass = resolve_mass(row)
    mass_boost = float(row.get("mass_boost") or 0.0)
    mass_base = row.get("mass_base")
    mass_base = mass - mass_boost if mass_base is None else float(mass_base)
    span_start, span_end = resolve_span(row)
    common = dict(
        id=str(row["id"]),
        session_id=str(row["session_id"]),
        span_start_index=span_start,
        span_end_index=span_end,
        center_index=resolve_center(row),
        mass_base=mass_base,
        mass_boost=mass_boost,
        strength_bridge=resolve_strength_bridge(row),
        strength_internal=resolve_strength_internal(row),
        tier=Tier(row.get("tier") or Tier.LINK.value),
        context_count=int(row.get("context_count") or 0),
        created_at_ms=int(row.get("created_at_ms") or 0),
    )
    if members:
        if len(members) != 2:
            raise ValueError(f"composite {row['id']!r} must have exactly two members")
        return CompositeLink(
            members=(str(members[0]), str(members[1])),
            level=int(row.get("level") or 2),
            cause_text=str(row.get("cause_text") or ""),
            effect_text=str(row.get("effect_text") or ""),
            join_center_distance=float(row.get("join_center_distance") or 0.0),
            join_lexical_score=float(row.get("join_lexical_score") or 0.0),
            **common,
        )
    if "cause_anchor_index" not in row:
        raise ValueError(f"leaf row {row['id']!r} missing 'cause_anchor_index'")
    effect_type = row.get("effect_type")
    effect_anchor = row.get("effect_anchor_index")
    return LeafLink(
        actor_id=str(row.get("actor_id") or ""),
        cause_text=str(row.get("cause_text") or ""),
        cause_type=CauseType(row.get("cause_type") or CauseType.DECLARE.value),
        cause_anchor_index=int(row["cause_anchor_index"]),
        cause_mass=float(row.get("cause_mass") or 0.0),
        claimed=bool(row.get("claimed", effect_anchor is not None)),
        effect_text=row.get("effect_text"),
        effect_type=None if effect_type is None else EffectType(effect_type),
        effect_anchor_index=None if effect_anchor is None else int(effect_anchor),
        effect_mass=None if row.get("effect_mass") is None else float(row["effect_mass"]),
        distance=None if row.get("distance") is None else int(row["distance"]),
        score=None if row.get("score") is None else float(row["score"]),
        level=int(row.get("level") or 1),
        **common,
    )

"""
Phase Trace Contracts
=====================

Records emitted alongside nodes so every mass change, merge decision and
context attachment can be audited after the fact.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

from .base import EffectType, SingletonKind


@dataclass(frozen=True)
class NeighborEdgeTrace:
    """One top-K contribution to a node's annealed mass."""
    from_link_id: str
    to_link_id: str
    strength_ll: float
    contrib: float
    distance: float
    lexical: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "from_link_id": self.from_link_id,
            "to_link_id": self.to_link_id,
            "strength_ll": self.strength_ll,
            "contrib": self.contrib,
            "distance": self.distance,
            "lexical": self.lexical,
        }


@dataclass(frozen=True)
class SingletonNode:
    """An unclaimed cause or effect fragment available as context."""
    id: str
    kind: SingletonKind
    anchor_index: int
    text: str
    mass: float
    type: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind.value,
            "anchor_index": self.anchor_index,
            "text": self.text,
            "mass": self.mass,
            "type": self.type,
        }


@dataclass(frozen=True)
class ContextEdge:
    """Attachment of a singleton to a node as context."""
    singleton_id: str
    link_id: str
    strength_ctx: float
    distance: float
    lexical: float
    singleton_kind: SingletonKind
    singleton_anchor_index: int
    link_center_index: float
    created_at_ms: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "singleton_id": self.singleton_id,
            "link_id": self.link_id,
            "strength_ctx": self.strength_ctx,
            "distance": self.distance,
            "lexical": self.lexical,
            "singleton_kind": self.singleton_kind.value,
            "singleton_anchor_index": self.singleton_anchor_index,
            "link_center_index": self.link_center_index,
            "created_at_ms": self.created_at_ms,
        }


@dataclass(frozen=True)
class KernelEffect:
    """An eligible DM line the effect detector recognised."""
    anchor_index: int
    text: str
    effect_type: EffectType
    mass: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "anchor_index": self.anchor_index,
            "text": self.text,
            "effect_type": self.effect_type.value,
            "mass": self.mass,
        }


@dataclass(frozen=True)
class LinkLinkCandidate:
    """A scored merge proposal between two nodes."""
    left_id: str
    right_id: str
    left_center: float
    right_center: float
    center_distance: float
    lexical_score: float
    strength_bridge: float
    threshold_link: float
    chosen: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "left_id": self.left_id,
            "right_id": self.right_id,
            "left_center": self.left_center,
            "right_center": self.right_center,
            "center_distance": self.center_distance,
            "lexical_score": self.lexical_score,
            "strength_bridge": self.strength_bridge,
            "threshold_link": self.threshold_link,
            "chosen": self.chosen,
        }


@dataclass(frozen=True)
class CandidateScore:
    """Kernel diagnostics for one effect candidate of a cause."""
    effect_index: int
    distance: int
    distance_score: float
    lexical_score: float
    answer_boost: float
    final_score: float
    claimed_by_other: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "effect_index": self.effect_index,
            "distance": self.distance,
            "distance_score": self.distance_score,
            "lexical_score": self.lexical_score,
            "answer_boost": self.answer_boost,
            "final_score": self.final_score,
            "claimed_by_other": self.claimed_by_other,
        }


@dataclass(frozen=True)
class AllocationTrace:
    """How the kernel resolved one cause."""
    cause_index: int
    cause_mass: float
    threshold: float
    candidates: Tuple[CandidateScore, ...] = field(default_factory=tuple)
    chosen_effect_index: Optional[int] = None
    reason: str = "no_candidates"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "cause_index": self.cause_index,
            "cause_mass": self.cause_mass,
            "threshold": self.threshold,
            "candidates": [c.to_dict() for c in self.candidates],
            "chosen_effect_index": self.chosen_effect_index,
            "reason": self.reason,
        }

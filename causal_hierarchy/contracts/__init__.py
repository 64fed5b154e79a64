"""
Contracts Layer

RESPONSIBILITY: Immutable data shapes exchanged between phases
ALLOWED INPUTS: Nothing from other layers
OUTPUTS: Transcript inputs, hierarchy nodes, traces, parameters

BOUNDARY ENFORCEMENT:
=====================
- Contracts import only from contracts
- Every contract is a frozen dataclass
- Phases communicate only through these types
"""

from .base import (
    InvalidHierarchyParams,
    NodeKind,
    Tier,
    CauseType,
    EffectType,
    SingletonKind,
    TranscriptEntry,
    ExcludedRange,
    EligibilityMask,
    ActorLike,
    SessionInput,
    leaf_link_id,
    composite_link_id,
    singleton_id,
)
from .nodes import (
    LeafLink,
    CompositeLink,
    CausalLink,
    resolve_mass,
    resolve_strength_bridge,
    resolve_strength_internal,
    resolve_center,
    resolve_span,
    to_row,
    from_row,
)
from .traces import (
    NeighborEdgeTrace,
    SingletonNode,
    ContextEdge,
    KernelEffect,
    LinkLinkCandidate,
    CandidateScore,
    AllocationTrace,
)
from .params import (
    MAX_HIERARCHY_LEVEL,
    LeverParams,
    TierThresholds,
    KernelConfig,
    AnnealConfig,
    LinkLinkConfig,
    AbsorbConfig,
    ConvergenceConfig,
    HierarchyParams,
)

__all__ = [
    "InvalidHierarchyParams",
    "NodeKind",
    "Tier",
    "CauseType",
    "EffectType",
    "SingletonKind",
    "TranscriptEntry",
    "ExcludedRange",
    "EligibilityMask",
    "ActorLike",
    "SessionInput",
    "leaf_link_id",
    "composite_link_id",
    "singleton_id",
    "LeafLink",
    "CompositeLink",
    "CausalLink",
    "resolve_mass",
    "resolve_strength_bridge",
    "resolve_strength_internal",
    "resolve_center",
    "resolve_span",
    "to_row",
    "from_row",
    "NeighborEdgeTrace",
    "SingletonNode",
    "ContextEdge",
    "KernelEffect",
    "LinkLinkCandidate",
    "CandidateScore",
    "AllocationTrace",
    "MAX_HIERARCHY_LEVEL",
    "LeverParams",
    "TierThresholds",
    "KernelConfig",
    "AnnealConfig",
    "LinkLinkConfig",
    "AbsorbConfig",
    "ConvergenceConfig",
    "HierarchyParams",
]

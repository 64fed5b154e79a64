"""
Causal Hierarchy Engine

Deterministic cause -> effect link extraction and multi-round composition
for tabletop RPG session transcripts.

LAYERS:
=======
- contracts:      immutable inputs, nodes, traces and parameters
- core:           scoring math and the phase algorithms
- temporal:       injectable clock
- observability:  metrics, provenance, audit tables, outlines
- engine:         round orchestration
- forensic:       command line entry point
"""

from .contracts import (
    ActorLike,
    CausalLink,
    CompositeLink,
    EligibilityMask,
    HierarchyParams,
    InvalidHierarchyParams,
    LeafLink,
    SessionInput,
    TranscriptEntry,
)
from .engine import CausalHierarchyEngine, HierarchyResult, RoundPhaseState, run_hierarchy_rounds
from .temporal import LogicalClock

__version__ = "0.3.0"

__all__ = [
    "ActorLike",
    "CausalLink",
    "CompositeLink",
    "EligibilityMask",
    "HierarchyParams",
    "InvalidHierarchyParams",
    "LeafLink",
    "SessionInput",
    "TranscriptEntry",
    "CausalHierarchyEngine",
    "HierarchyResult",
    "RoundPhaseState",
    "run_hierarchy_rounds",
    "LogicalClock",
]

"""
Core Hierarchy Layer

RESPONSIBILITY: Scoring math and the phase algorithms
ALLOWED INPUTS: Contracts, an injected clock, injected detectors
OUTPUTS: New node tuples plus phase traces

BOUNDARY ENFORCEMENT:
=====================
- Pure computation: no I/O, no system time, no module-level mutable state
- Every sort that can tie carries an explicit total order
"""

from .evidence import (
    clamp01,
    evidence,
    strength,
    merge_threshold,
    distance_score_hill,
    locality_to_tau,
    lever_strength,
)
from .lexical import LexicalCorpusStats, build_idf, lexical_signals, token_overlap, tokenize
from .detection import (
    CauseDetection,
    EffectDetection,
    CauseDetector,
    EffectDetector,
    RegexCauseDetector,
    RegexEffectDetector,
    detect_roll_type,
)
from .kernel import (
    CAUSAL_KERNEL_VERSION,
    LEAF_MASS,
    KernelOutput,
    LeafExtractionKernel,
    boost_link_masses,
)
from .anneal import AnnealResult, anneal_links, compute_tier
from .composer import (
    ComposeResult,
    LinkLinkComposer,
    compose_links,
    next_level,
    propagate_internal_strength,
)
from .absorption import AbsorbResult, absorb_singletons, extract_singletons
from .topology import HierarchyMetrics, HierarchyTopology

__all__ = [
    "clamp01",
    "evidence",
    "strength",
    "merge_threshold",
    "distance_score_hill",
    "locality_to_tau",
    "lever_strength",
    "LexicalCorpusStats",
    "build_idf",
    "lexical_signals",
    "token_overlap",
    "tokenize",
    "CauseDetection",
    "EffectDetection",
    "CauseDetector",
    "EffectDetector",
    "RegexCauseDetector",
    "RegexEffectDetector",
    "detect_roll_type",
    "CAUSAL_KERNEL_VERSION",
    "LEAF_MASS",
    "KernelOutput",
    "LeafExtractionKernel",
    "boost_link_masses",
    "AnnealResult",
    "anneal_links",
    "compute_tier",
    "ComposeResult",
    "LinkLinkComposer",
    "compose_links",
    "next_level",
    "propagate_internal_strength",
    "AbsorbResult",
    "absorb_singletons",
    "extract_singletons",
    "HierarchyMetrics",
    "HierarchyTopology",
]

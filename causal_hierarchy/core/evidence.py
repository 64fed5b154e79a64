"""
Evidence / Strength Model
=========================

Pure math shared by the kernel, anneal and composer.

    evidence  = clamp01(0.7 * distance + 0.3 * lexical + boost)
    strength  = scale * evidence ** coupling          (0 when evidence <= 0)
    threshold = T0 + eta * ln(1 + sqrt(mA * mB))      (masses floored at 0)

All functions are total: no input raises, NaN-free for finite inputs.
"""

from __future__ import annotations
import math

from ..contracts.params import LeverParams


DISTANCE_WEIGHT = 0.7
LEXICAL_WEIGHT = 0.3
DEFAULT_STRENGTH_SCALE = 2.0


def clamp01(value: float) -> float:
    if value != value:
        return 0.0
    return max(0.0, min(1.0, value))


def evidence(distance_score: float, lexical_score: float, boost: float = 0.0) -> float:
    """Blend distance and lexical evidence into [0, 1]."""
    return clamp01(
        DISTANCE_WEIGHT * distance_score + LEXICAL_WEIGHT * lexical_score + boost
    )


def strength(evidence_value: float, coupling: float, scale: float = DEFAULT_STRENGTH_SCALE) -> float:
    if evidence_value <= 0:
        return 0.0
    return scale * math.pow(evidence_value, coupling)


def merge_threshold(mass_a: float, mass_b: float, base: float, growth: float) -> float:
    """Acceptance bar for merging two nodes; rises slowly with their masses."""
    product = max(0.0, mass_a) * max(0.0, mass_b)
    return base + growth * math.log1p(math.sqrt(product))


def distance_score_hill(distance: float, tau: float, steepness: float) -> float:
    """Hill falloff: 1 at distance <= 0, 0.5 at distance == tau."""
    if distance <= 0:
        return 1.0
    return 1.0 / (1.0 + math.pow(distance / tau, steepness))


def locality_to_tau(locality: float) -> float:
    """Map locality in [0, 1] onto a Hill tau in [4, 8]; higher locality, shorter reach."""
    return 4.0 + 4.0 * (1.0 - clamp01(locality))


def keyword_augmented_lexical(
    lexical_score: float,
    keyword_overlap: float,
    keyword_lex_bonus: float
) -> float:
    return min(1.0, lexical_score * (1.0 + keyword_overlap * keyword_lex_bonus))


def lever_strength(
    distance_score: float,
    lexical_score: float,
    keyword_overlap: float,
    levers: LeverParams,
    boost: float = 0.0
) -> float:
    """Lever-regime strength for one pair, lexical term keyword-augmented."""
    lexical = keyword_augmented_lexical(
        lexical_score, keyword_overlap, levers.keyword_lex_bonus
    )
    return strength(
        evidence(distance_score, lexical, boost), levers.coupling, levers.strength_scale
    )

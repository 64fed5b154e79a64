"""
Cause / Effect Detection
========================

Classification oracle consulted by the leaf kernel.

The kernel only depends on the CauseDetector / EffectDetector protocols;
RegexCauseDetector and RegexEffectDetector are the default pattern
catalogue for player intents (questions, requests, declarations, weak
proposals) and DM outcomes (rolls, information, deterministic results,
commitments). Detection masses are unit-scale confidence weights.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Optional, Pattern, Protocol, Sequence, Tuple
import re

from ..contracts.base import CauseType, EffectType


@dataclass(frozen=True)
class CauseDetection:
    is_cause: bool
    cause_type: CauseType = CauseType.DECLARE
    mass: float = 0.0


@dataclass(frozen=True)
class EffectDetection:
    is_effect: bool
    effect_type: EffectType = EffectType.OTHER
    mass: float = 0.0
    roll_type: Optional[str] = None
    roll_subtype: Optional[str] = None


class CauseDetector(Protocol):
    def detect_cause(self, text: str) -> CauseDetection: ...


class EffectDetector(Protocol):
    def detect_effect(self, text: str) -> EffectDetection: ...


NOT_A_CAUSE = CauseDetection(is_cause=False)
NOT_AN_EFFECT = EffectDetection(is_effect=False)


# =============================================================================
# PATTERN CATALOGUE
# =============================================================================

_I = re.IGNORECASE

STRONG_QUESTION_STARTERS: Tuple[str, ...] = (
    "can i", "can we", "do i", "do we", "is there", "are there",
    "what do i", "what do we", "how do i", "where is", "does it look",
    "did it look", "could i", "could we", "would i be able to",
    "what if i", "what if we",
)

ACTION_VERBS: Tuple[str, ...] = (
    "try", "attempt", "search", "examine", "inspect", "look", "open", "pull",
    "push", "take", "grab", "move", "touch", "cast", "read", "listen",
    "sneak", "hide", "pick", "investigate", "attack", "use", "roll", "check",
)

_STRONG_QUESTION_START = re.compile(
    r"^\s*(" + "|".join(re.escape(s) for s in STRONG_QUESTION_STARTERS) + r")\b", _I
)
_TRAILING_QUESTION = re.compile(r"\?\s*$")
_ROLL_OR_ACTION = re.compile(
    r"\b(roll|check|attack|cast|spell|investigate|inspect|search|open|unlock"
    r"|sneak|hide|persuade|deceive)\b", _I
)
_REQUEST_PATTERNS: Tuple[Pattern[str], ...] = (
    re.compile(r"^\s*(can i|can we|may i|could i|could we|would i|would i be able to)\b", _I),
    re.compile(r"^\s*(i want to|i'd like to|i would like to|i'm going to|i am going to"
               r"|i kind of want to|i sorta want to)\b", _I),
)
_DECLARE_PATTERN = re.compile(r"^\s*i\s+(" + "|".join(ACTION_VERBS) + r")\b", _I)
_WEAK_PATTERNS: Tuple[Tuple[CauseType, Pattern[str]], ...] = (
    (CauseType.QUESTION, re.compile(r"\?")),
    (CauseType.REQUEST, re.compile(r"\bplease\b", _I)),
    (CauseType.PROPOSE, re.compile(r"^\s*(let's|we should|we could|how about)\b", _I)),
)
_NON_ALNUM = re.compile(r"[^a-z0-9\s]", _I)

_INFORMATION_PATTERNS: Tuple[Pattern[str], ...] = (
    re.compile(r"^\s*you\s+(see|notice|find|learn|realize|spot|smell|hear|feel|remember"
               r"|recognize|discover)\b", _I),
    re.compile(r"\byou (see|notice|find|learn|realize|spot|smell|hear|feel|remember"
               r"|recognize|discover)\b", _I),
    re.compile(r"\b(it seems|it looks like|it appears)\b", _I),
    re.compile(r"^\s*(yes|no|not really|you don't|you do not|you can't|you cannot"
               r"|you're able to)\b", _I),
    re.compile(r"\byou can (see|do|try|attempt|make|roll)\b", _I),
)
_DETERMINISTIC_PATTERNS: Tuple[Pattern[str], ...] = (
    re.compile(r"^\s*you\s+(open|move|pull|push|unlock|enter|walk|pick up|lift)\b", _I),
    re.compile(r"\byou (succeed|fail|manage|push|force|open|break)\b", _I),
    re.compile(r"\bthe door (opens|breaks|gives way)\b", _I),
    re.compile(r"\bit (works|fails)\b", _I),
    re.compile(r"\b(it won't budge|it doesn't budge|it is stuck|it is blocked)\b", _I),
)
_COMMITMENT_PATTERNS: Tuple[Pattern[str], ...] = (
    re.compile(r"\byou (agree|promise|commit|decide)\b", _I),
    re.compile(r"\bwe will\b", _I),
)

_SKILL_ROLLS: Tuple[Tuple[str, Pattern[str]], ...] = tuple(
    (name, re.compile(pattern, _I)) for name, pattern in (
        ("Acrobatics", r"\bacrobatics\b"),
        ("AnimalHandling", r"\banimal handling\b"),
        ("Arcana", r"\barcana\b"),
        ("Athletics", r"\bathletics\b"),
        ("Deception", r"\bdeception\b"),
        ("History", r"\bhistory\b"),
        ("Insight", r"\binsight\b"),
        ("Intimidation", r"\bintimidation\b"),
        ("Investigation", r"\binvestigation\b"),
        ("Medicine", r"\bmedicine\b"),
        ("Nature", r"\bnature\b"),
        ("Perception", r"\bperception\b"),
        ("Performance", r"\bperformance\b"),
        ("Persuasion", r"\bpersuasion\b"),
        ("Religion", r"\breligion\b"),
        ("SleightOfHand", r"\bsleight of hand\b"),
        ("Stealth", r"\bstealth\b"),
        ("Survival", r"\bsurvival\b"),
    )
)
_INITIATIVE = re.compile(r"\binitiative\b", _I)
_ATTACK_ROLL = re.compile(r"\b(attack roll|to hit)\b", _I)
_DAMAGE_ROLL = re.compile(r"\broll\b.*\bdamage\b|\bdamage roll\b", _I)
_SAVING_THROW = re.compile(
    r"(strength|dexterity|constitution|intelligence|wisdom|charisma)\s+saving throw", _I
)


def _strip_punctuation(text: str) -> str:
    return _NON_ALNUM.sub("", text).strip()


def _has_action_verb_within(text: str, max_distance: int) -> bool:
    tokens = _strip_punctuation(text).lower().split()
    return any(token in ACTION_VERBS for token in tokens[:max_distance + 1])


def detect_roll_type(text: str) -> Tuple[Optional[str], Optional[str]]:
    """Returns (roll_type, roll_subtype); (None, None) when no roll is asked for."""
    if _INITIATIVE.search(text):
        return "Initiative", None
    if _ATTACK_ROLL.search(text):
        return "AttackRoll", None
    if _DAMAGE_ROLL.search(text):
        return "DamageRoll", None
    save = _SAVING_THROW.search(text)
    if save:
        return "SavingThrow", save.group(1).capitalize()
    for name, pattern in _SKILL_ROLLS:
        if pattern.search(text):
            return name, None
    return None, None


# =============================================================================
# DEFAULT DETECTORS
# =============================================================================

class RegexCauseDetector:
    """Player-intent detector; earlier pattern families win."""

    min_chars = 6

    def detect_cause(self, text: str) -> CauseDetection:
        stripped = _strip_punctuation(text or "")
        if len(stripped) < self.min_chars:
            return NOT_A_CAUSE
        word_count = len(stripped.split())
        keyword = bool(_ROLL_OR_ACTION.search(text))

        if _STRONG_QUESTION_START.search(text):
            has_action = _has_action_verb_within(text, 6)
            if _TRAILING_QUESTION.search(text) or word_count >= 4 or has_action:
                mass = 0.9 if (keyword or has_action) else 0.75
                return CauseDetection(True, CauseType.QUESTION, mass)

        for pattern in _REQUEST_PATTERNS:
            if pattern.search(text) and _has_action_verb_within(text, 3):
                return CauseDetection(True, CauseType.REQUEST, 0.95 if keyword else 0.85)

        if _DECLARE_PATTERN.search(text) and word_count >= 4:
            return CauseDetection(True, CauseType.DECLARE, 1.0 if keyword else 0.9)

        for cause_type, pattern in _WEAK_PATTERNS:
            if pattern.search(text):
                return CauseDetection(True, cause_type, 0.65 if keyword else 0.45)

        return NOT_A_CAUSE


class RegexEffectDetector:
    """DM-outcome detector; a requested roll outranks every other reading."""

    def detect_effect(self, text: str) -> EffectDetection:
        text = text or ""
        roll_type, roll_subtype = detect_roll_type(text)
        if roll_type:
            return EffectDetection(True, EffectType.ROLL, 1.0, roll_type, roll_subtype)
        if _any_match(_INFORMATION_PATTERNS, text):
            return EffectDetection(True, EffectType.INFORMATION, 0.7)
        if _any_match(_DETERMINISTIC_PATTERNS, text):
            return EffectDetection(True, EffectType.DETERMINISTIC, 0.85)
        if _any_match(_COMMITMENT_PATTERNS, text):
            return EffectDetection(True, EffectType.COMMITMENT, 0.8)
        return NOT_AN_EFFECT


def _any_match(patterns: Sequence[Pattern[str]], text: str) -> bool:
    return any(p.search(text) for p in patterns)

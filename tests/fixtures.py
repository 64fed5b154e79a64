"""
Hierarchy Fixtures

Small hand-written sessions and nodes shared by the test modules.

RULES:
======
1. All fixtures are EXPLICIT, not random
2. Line indices are list positions, so a fixture reads like a transcript
3. Every session uses the same frozen compile time
"""

from __future__ import annotations
from typing import Iterable, Optional, Sequence, Tuple

from causal_hierarchy.contracts.base import (
    ActorLike, CauseType, EffectType, EligibilityMask, ExcludedRange,
    SessionInput, TranscriptEntry,
)
from causal_hierarchy.contracts.nodes import LeafLink


SESSION_ID = "session_001"
COMPILED_AT_MS = 1_700_000_000_000

ACTORS = (
    ActorLike(id="pc_alice", canonical_name="Alice", aliases=("Alice the Bold",)),
    ActorLike(id="pc_bob", canonical_name="Bob"),
)


# =============================================================================
# TRANSCRIPTS
# =============================================================================

# Question answered by the very next DM line with shared vocabulary
QUESTION_ANSWERED = (
    ("Alice", "Can I search the altar for traps?"),
    ("DM", "You notice a thin wire across the altar."),
)

# Declaration whose only DM reply shares no vocabulary
DECLARATION_UNANSWERED = (
    ("Bob", "I sneak past the guards quietly"),
    ("DM", "Roll stealth."),
)

# Yes/no reply that no effect pattern recognises
YES_NO_REPLY = (
    ("Alice", "Is there a door behind the curtain?"),
    ("DM", "Nope, just bare stone."),
)

# Two causes competing for one DM line; Bob carries more mass
CONTESTED_EFFECT = (
    ("Alice", "Can I open the chest?"),
    ("Bob", "I try to open the chest too"),
    ("DM", "You open the chest and find gold."),
)

# Claimed question, then an unanswered declaration and an unclaimed roll
MIXED_SCENE = QUESTION_ANSWERED + DECLARATION_UNANSWERED


def make_session(
    lines: Sequence[Tuple[str, str]],
    session_id: str = SESSION_ID,
    excluded: Iterable[ExcludedRange] = (),
    actors: Sequence[ActorLike] = ACTORS,
    mask_length: Optional[int] = None
) -> SessionInput:
    """Factory for sessions; every line not in `excluded` is eligible."""
    transcript = tuple(
        TranscriptEntry(line_index=i, author_name=author, content=content, timestamp_ms=i * 1000)
        for i, (author, content) in enumerate(lines)
    )
    mask = EligibilityMask.from_excluded_ranges(
        session_id,
        len(lines) if mask_length is None else mask_length,
        excluded,
        compiled_at_ms=COMPILED_AT_MS,
    )
    return SessionInput(
        session_id=session_id,
        transcript=transcript,
        eligibility_mask=mask,
        actors=tuple(actors),
    )


def session_dict(lines: Sequence[Tuple[str, str]], session_id: str = SESSION_ID) -> dict:
    """JSON shape accepted by SessionInput.from_dict."""
    return make_session(lines, session_id).to_dict()


# =============================================================================
# NODES
# =============================================================================

def make_leaf(
    node_id: str,
    cause_index: int,
    effect_index: Optional[int] = None,
    cause_text: str = "Can I search the old altar for hidden traps?",
    effect_text: Optional[str] = "You notice a thin wire across the old altar.",
    mass_base: float = 1.0,
    mass_boost: float = 0.0,
    strength: float = 1.2,
    session_id: str = SESSION_ID
) -> LeafLink:
    """Level-1 node; claimed whenever an effect index is given."""
    claimed = effect_index is not None
    anchors = [cause_index] + ([effect_index] if claimed else [])
    return LeafLink(
        id=node_id,
        session_id=session_id,
        actor_id="pc_alice",
        cause_text=cause_text,
        cause_type=CauseType.QUESTION,
        cause_anchor_index=cause_index,
        cause_mass=0.9,
        claimed=claimed,
        span_start_index=min(anchors),
        span_end_index=max(anchors),
        center_index=sum(anchors) / len(anchors),
        mass_base=mass_base,
        mass_boost=mass_boost,
        effect_text=effect_text if claimed else None,
        effect_type=EffectType.INFORMATION if claimed else None,
        effect_anchor_index=effect_index,
        effect_mass=0.7 if claimed else None,
        distance=1 if claimed else None,
        score=strength if claimed else None,
        strength_bridge=strength if claimed else 0.0,
        strength_internal=strength if claimed else 0.0,
        created_at_ms=COMPILED_AT_MS,
    )

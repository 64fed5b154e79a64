"""
Base Contracts
==============

Immutable input types shared by every layer of the causal hierarchy.

GUARANTEES:
- All contracts are frozen dataclasses
- Identifiers are deterministic content hashes (no uuid, no wall time)
- Eligibility lookups fail closed
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, Optional, Tuple
import hashlib


# =============================================================================
# ERRORS
# =============================================================================

class InvalidHierarchyParams(ValueError):
    """Raised when a configuration value is outside its allowed range."""
    pass


# =============================================================================
# ENUMS
# =============================================================================

class NodeKind(Enum):
    """Derived kind of a hierarchy node."""
    LINK = "link"
    SINGLETON = "singleton"
    COMPOSITE = "composite"


class Tier(Enum):
    """Narrative tier assigned from annealed mass."""
    LINK = "link"
    BEAT = "beat"
    EVENT = "event"
    SCENE = "scene"


class CauseType(Enum):
    QUESTION = "question"
    DECLARE = "declare"
    PROPOSE = "propose"
    REQUEST = "request"


class EffectType(Enum):
    ROLL = "roll"
    INFORMATION = "information"
    DETERMINISTIC = "deterministic"
    COMMITMENT = "commitment"
    OTHER = "other"


class SingletonKind(Enum):
    CAUSE = "cause"
    EFFECT = "effect"


# =============================================================================
# IDENTIFIERS
# =============================================================================

def leaf_link_id(
    session_id: str,
    cause_index: int,
    effect_index: Optional[int]
) -> str:
    """
    Deterministic id for a level-1 link.

    Same session + same cause/effect lines = same id.
    """
    effect_part = "-" if effect_index is None else str(effect_index)
    digest = hashlib.sha256(
        f"{session_id}|{cause_index}|{effect_part}".encode()
    ).hexdigest()
    return f"link_{digest[:16]}"


def composite_link_id(left_id: str, right_id: str) -> str:
    return f"{left_id}+{right_id}"


def singleton_id(session_id: str, kind: SingletonKind, anchor_index: int) -> str:
    return f"S:{kind.value}:{session_id}:{anchor_index}"


# =============================================================================
# TRANSCRIPT INPUTS
# =============================================================================

@dataclass(frozen=True)
class TranscriptEntry:
    """One transcript line. `line_index` is the stable ordering key."""
    line_index: int
    author_name: str
    content: str
    timestamp_ms: int = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TranscriptEntry':
        try:
            return cls(
                line_index=int(data["line_index"]),
                author_name=str(data["author_name"]),
                content=str(data["content"]),
                timestamp_ms=int(data.get("timestamp_ms", 0)),
            )
        except KeyError as exc:
            raise ValueError(f"transcript entry missing field {exc.args[0]!r}") from None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "line_index": self.line_index,
            "author_name": self.author_name,
            "content": self.content,
            "timestamp_ms": self.timestamp_ms,
        }


@dataclass(frozen=True)
class ExcludedRange:
    """Inclusive line range excluded from causal analysis."""
    start_index: int
    end_index: int
    kind: str
    reason: str = ""

    def contains(self, index: int) -> bool:
        return self.start_index <= index <= self.end_index

    def to_dict(self) -> Dict[str, Any]:
        return {
            "start_index": self.start_index,
            "end_index": self.end_index,
            "kind": self.kind,
            "reason": self.reason,
        }


@dataclass(frozen=True)
class EligibilityMask:
    """
    Precomputed per-line eligibility.

    FAIL-CLOSED:
    ============
    Any index that is out of range, or whose value is not exactly True,
    is treated as ineligible.
    """
    session_id: str
    eligible_mask: Tuple[bool, ...]
    excluded_ranges: Tuple[ExcludedRange, ...] = ()
    compiled_at_ms: int = 0

    def is_eligible(self, index: int) -> bool:
        if index < 0 or index >= len(self.eligible_mask):
            return False
        return self.eligible_mask[index] is True

    def exclusion_reason(self, index: int) -> Optional[str]:
        """Reason for the first excluded range covering `index`, if any."""
        for excluded in self.excluded_ranges:
            if excluded.contains(index):
                return excluded.reason or excluded.kind
        return None

    @property
    def eligible_count(self) -> int:
        return sum(1 for value in self.eligible_mask if value is True)

    @classmethod
    def from_excluded_ranges(
        cls,
        session_id: str,
        length: int,
        excluded_ranges: Iterable[ExcludedRange] = (),
        compiled_at_ms: int = 0
    ) -> 'EligibilityMask':
        """Build a mask where every line not covered by a range is eligible."""
        ranges = tuple(sorted(
            excluded_ranges, key=lambda r: (r.start_index, r.end_index, r.kind)
        ))
        mask = [True] * max(0, length)
        for excluded in ranges:
            lo = max(0, excluded.start_index)
            hi = min(length - 1, excluded.end_index)
            for index in range(lo, hi + 1):
                mask[index] = False
        return cls(
            session_id=session_id,
            eligible_mask=tuple(mask),
            excluded_ranges=ranges,
            compiled_at_ms=compiled_at_ms,
        )

    @classmethod
    def all_eligible(cls, session_id: str, length: int, compiled_at_ms: int = 0) -> 'EligibilityMask':
        return cls.from_excluded_ranges(session_id, length, (), compiled_at_ms)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'EligibilityMask':
        ranges = tuple(
            ExcludedRange(
                start_index=int(r["start_index"]),
                end_index=int(r["end_index"]),
                kind=str(r.get("kind", "excluded")),
                reason=str(r.get("reason", "")),
            )
            for r in data.get("excluded_ranges", ())
        )
        if "eligible_mask" in data:
            # Only literal true counts; anything else is ineligible
            return cls(
                session_id=str(data["session_id"]),
                eligible_mask=tuple(v is True for v in data["eligible_mask"]),
                excluded_ranges=ranges,
                compiled_at_ms=int(data.get("compiled_at_ms", 0)),
            )
        if "length" not in data:
            raise ValueError("eligibility mask needs 'eligible_mask' or 'length'")
        return cls.from_excluded_ranges(
            str(data["session_id"]),
            int(data["length"]),
            ranges,
            int(data.get("compiled_at_ms", 0)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "eligible_mask": list(self.eligible_mask),
            "excluded_ranges": [r.to_dict() for r in self.excluded_ranges],
            "compiled_at_ms": self.compiled_at_ms,
        }


@dataclass(frozen=True)
class ActorLike:
    """A registered player character with optional speaker aliases."""
    id: str
    canonical_name: str
    aliases: Tuple[str, ...] = field(default_factory=tuple)

    def names(self) -> Tuple[str, ...]:
        return (self.canonical_name,) + tuple(self.aliases)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ActorLike':
        return cls(
            id=str(data["id"]),
            canonical_name=str(data["canonical_name"]),
            aliases=tuple(str(a) for a in data.get("aliases", ())),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "canonical_name": self.canonical_name,
            "aliases": list(self.aliases),
        }


@dataclass(frozen=True)
class SessionInput:
    """Everything one hierarchy run reads."""
    session_id: str
    transcript: Tuple[TranscriptEntry, ...]
    eligibility_mask: EligibilityMask
    actors: Tuple[ActorLike, ...]
    dm_speakers: FrozenSet[str] = frozenset({"dm", "dungeon master", "gm", "game master"})

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SessionInput':
        if "session_id" not in data:
            raise ValueError("session input missing field 'session_id'")
        session_id = str(data["session_id"])
        transcript = tuple(
            TranscriptEntry.from_dict(row) for row in data.get("transcript", ())
        )
        mask_data = data.get("eligibility_mask")
        if mask_data is None:
            length = (max(e.line_index for e in transcript) + 1) if transcript else 0
            mask = EligibilityMask.all_eligible(session_id, length)
        else:
            mask = EligibilityMask.from_dict({"session_id": session_id, **mask_data})
        kwargs: Dict[str, Any] = {}
        if "dm_speakers" in data:
            kwargs["dm_speakers"] = frozenset(str(s) for s in data["dm_speakers"])
        return cls(
            session_id=session_id,
            transcript=transcript,
            eligibility_mask=mask,
            actors=tuple(ActorLike.from_dict(a) for a in data.get("actors", ())),
            **kwargs,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "transcript": [e.to_dict() for e in self.transcript],
            "eligibility_mask": self.eligibility_mask.to_dict(),
            "actors": [a.to_dict() for a in self.actors],
            "dm_speakers": sorted(self.dm_speakers),
        }

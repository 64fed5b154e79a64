"""Speaker and utterance helpers used by the kernel."""

from __future__ import annotations
from typing import Iterable, Optional, Sequence
import re

from ..contracts.base import ActorLike


_EDGE_NON_ALNUM = re.compile(r"^[^a-z0-9]+|[^a-z0-9]+$")
_WHITESPACE = re.compile(r"\s+")
_YES_NO_START = re.compile(
    r"^\s*(yes|yeah|yep|yup|sure|okay|ok|no|nope|nah|not really|not at all|not exactly)\b",
    re.IGNORECASE,
)


def normalize_name(text: str) -> str:
    lowered = (text or "").lower().strip()
    return _WHITESPACE.sub(" ", _EDGE_NON_ALNUM.sub("", lowered))


def is_yes_no_answer_like(text: Optional[str]) -> bool:
    return bool(text) and _YES_NO_START.match(text) is not None


def is_dm_speaker(author_name: str, dm_speakers: Iterable[str]) -> bool:
    author = (author_name or "").lower().strip()
    return author in {s.lower().strip() for s in dm_speakers}


def match_actor(author_name: str, actors: Sequence[ActorLike]) -> Optional[ActorLike]:
    """
    Resolve a speaker to a registered actor.

    The longest normalized name or alias contained in the speaker wins;
    equal lengths fall back to the lowest actor id.
    """
    speaker = normalize_name(author_name)
    if not speaker:
        return None
    best: Optional[ActorLike] = None
    best_len = 0
    for actor in sorted(actors, key=lambda a: a.id):
        for name in actor.names():
            candidate = normalize_name(name)
            if candidate and candidate in speaker and len(candidate) > best_len:
                best = actor
                best_len = len(candidate)
    return best

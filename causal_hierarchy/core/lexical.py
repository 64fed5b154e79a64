"""
Lexical Signals
===============

Token-overlap scores between two utterances.

TOKENIZATION:
=============
Lowercased `[a-z0-9]+` runs, keeping tokens longer than two characters.
Tokens are compared as sets, so repetition never inflates a score.

Two regimes:
- token_overlap: |A & B| / max(|A|, |B|)
- lexical_signals with corpus stats: IDF-weighted Jaccard plus the share
  of the overlap made of detection trigger words
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, Optional, Tuple
import math
import re


_TOKEN_RE = re.compile(r"[a-z0-9]+")

# Intent / effect trigger lexemes
DETECTION_KEYWORDS: FrozenSet[str] = frozenset({
    "can", "could", "would", "may", "how", "what", "where", "are", "does", "did",
    "try", "attempt", "search", "examine", "inspect", "look", "open", "pull", "push",
    "take", "grab", "move", "touch", "cast", "read", "listen", "sneak", "hide",
    "pick", "investigate", "attack", "use", "roll", "check", "please",
    "insight", "perception", "athletics", "acrobatics", "arcana", "deception",
    "history", "intimidation", "medicine", "nature", "performance", "persuasion",
    "religion", "stealth", "survival", "animal", "handling", "sleight", "hand",
    "you", "see", "notice", "find", "learn", "realize", "spot", "smell", "hear",
    "feel", "remember", "recognize", "discover", "seems", "looks", "appears",
    "succeed", "fail", "manage", "force", "break", "works", "stuck", "blocked",
    "agree", "promise", "commit", "decide", "will",
})


def tokenize(text: Optional[str]) -> Tuple[str, ...]:
    if not text:
        return ()
    return tuple(t for t in _TOKEN_RE.findall(text.lower()) if len(t) > 2)


def token_set(text: Optional[str]) -> FrozenSet[str]:
    return frozenset(tokenize(text))


def token_overlap(text_a: Optional[str], text_b: Optional[str]) -> float:
    """Shared tokens over the larger token set; 0 when either side is empty."""
    a = token_set(text_a)
    b = token_set(text_b)
    if not a or not b:
        return 0.0
    return len(a & b) / max(len(a), len(b))


# =============================================================================
# CORPUS STATISTICS
# =============================================================================

@dataclass(frozen=True)
class LexicalCorpusStats:
    """Document frequencies over the texts being compared."""
    doc_count: int
    df_by_token: Dict[str, int] = field(default_factory=dict)

    @classmethod
    def build(cls, texts: Iterable[Optional[str]]) -> 'LexicalCorpusStats':
        df: Dict[str, int] = {}
        count = 0
        for text in texts:
            count += 1
            for token in token_set(text):
                df[token] = df.get(token, 0) + 1
        return cls(doc_count=max(1, count), df_by_token=df)

    def idf(self, token: str) -> float:
        """Smoothed IDF, always >= 1."""
        df = self.df_by_token.get(token, 0)
        return math.log((self.doc_count + 1) / (df + 1)) + 1.0


def build_idf(texts: Iterable[Optional[str]]) -> Dict[str, float]:
    stats = LexicalCorpusStats.build(texts)
    return {token: stats.idf(token) for token in sorted(stats.df_by_token)}


def lexical_signals(
    text_a: Optional[str],
    text_b: Optional[str],
    stats: Optional[LexicalCorpusStats] = None
) -> Tuple[float, float]:
    """
    Returns (lexical_score, keyword_overlap), both in [0, 1].

    Without stats the score is plain token overlap and the keyword share is
    a count ratio; with stats both are IDF-weighted.
    """
    a = token_set(text_a)
    b = token_set(text_b)
    if not a or not b:
        return 0.0, 0.0
    overlap = a & b
    if not overlap:
        return 0.0, 0.0

    if stats is None:
        keywords = sum(1 for t in overlap if t in DETECTION_KEYWORDS)
        return len(overlap) / max(len(a), len(b)), keywords / len(overlap)

    overlap_w = 0.0
    union_w = 0.0
    keyword_w = 0.0
    for token in sorted(a | b):
        weight = stats.idf(token)
        union_w += weight
        if token in overlap:
            overlap_w += weight
            if token in DETECTION_KEYWORDS:
                keyword_w += weight
    lexical = overlap_w / union_w if union_w > 0 else 0.0
    keyword = keyword_w / overlap_w if overlap_w > 0 else 0.0
    return lexical, keyword

"""Fuzzy text matching for insight deduplication.

Texts are normalized to a set of content tokens (lowercased, punctuation and
filler words removed, trivial plurals folded). Two texts are duplicates when
their token sets overlap strongly, either by Jaccard similarity or by one set
being almost entirely contained in the other.
"""

import re
from collections.abc import Iterable

_TOKEN_RE = re.compile(r"[a-z0-9']+")

STOPWORDS = frozenset(
    {
        "a", "about", "am", "an", "and", "are", "as", "at", "be", "being", "by",
        "for", "from", "has", "have", "her", "his", "i", "in", "is", "it", "its",
        "me", "my", "of", "on", "or", "she", "he", "that", "the", "their", "them",
        "they", "this", "to", "toward", "towards", "user", "value", "values",
        "wants", "want", "was", "with", "working",
    }
)

JACCARD_THRESHOLD = 0.6
CONTAINMENT_THRESHOLD = 0.8
# Smaller set must be at least this fraction of the larger for containment to count
MIN_SIZE_RATIO = 0.5


def _fold(token: str) -> str:
    token = token.strip("'")
    if token.endswith("'s"):
        token = token[:-2]
    if len(token) > 4 and token.endswith("ies"):
        return token[:-3] + "y"
    if len(token) > 3 and token.endswith("s") and not token.endswith("ss"):
        return token[:-1]
    return token


def tokens(text: str) -> frozenset[str]:
    words = (_fold(t) for t in _TOKEN_RE.findall(text.lower()))
    return frozenset(w for w in words if w and w not in STOPWORDS)


def normalize(text: str) -> str:
    """Canonical form used for ids and exact comparisons."""
    toks = tokens(text)
    if not toks:
        return " ".join(text.lower().split())
    return " ".join(sorted(toks))


def similarity(a: str, b: str) -> float:
    """Jaccard similarity of normalized token sets."""
    ta, tb = tokens(a), tokens(b)
    if not ta or not tb:
        return 0.0
    return len(ta & tb) / len(ta | tb)


def is_duplicate(candidate: str, existing: str) -> bool:
    ta, tb = tokens(candidate), tokens(existing)
    if not ta or not tb:
        return " ".join(candidate.lower().split()) == " ".join(existing.lower().split())
    overlap = len(ta & tb)
    if overlap / len(ta | tb) >= JACCARD_THRESHOLD:
        return True
    small, large = sorted((len(ta), len(tb)))
    return overlap / small >= CONTAINMENT_THRESHOLD and small / large >= MIN_SIZE_RATIO


def find_duplicate(candidate: str, existing: Iterable[str]) -> str | None:
    """First existing text the candidate duplicates, or None."""
    for text in existing:
        if is_duplicate(candidate, text):
            return text
    return None

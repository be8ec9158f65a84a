# ABOUTME: Scoring functions for the individual layers of a response evaluation.
# ABOUTME: Covers edit-distance spelling, token-overlap meaning, register/length context, and exact form.

from __future__ import annotations

import re
from typing import Callable, Dict, List, Sequence

from rapidfuzz.distance import Levenshtein

_PUNCT = re.compile(r"[^\w\s']")

FORMAL_MARKERS = ("therefore", "hence", "consequently", "furthermore", "moreover", "regarding")
INFORMAL_MARKERS = ("gonna", "wanna", "yeah", "ok", "cool", "kinda")

Scorer = Callable[[str, Sequence[str], str], float]


def normalize(text: str) -> str:
    """Lower-case, drop punctuation other than apostrophes, collapse whitespace."""
    return " ".join(_PUNCT.sub(" ", text.lower()).split())


def tokens(text: str) -> List[str]:
    return normalize(text).split()


def edit_similarity(response: str, expected: str) -> float:
    r, e = normalize(response), normalize(expected)
    if r == e:
        return 1.0
    if not r or not e:
        return 0.0
    return float(Levenshtein.normalized_similarity(r, e))


def spelling_score(response: str, accepted: Sequence[str], register: str = "neutral") -> float:
    return max((edit_similarity(response, variant) for variant in accepted), default=0.0)


def meaning_score(response: str, accepted: Sequence[str], register: str = "neutral") -> float:
    """Best Jaccard overlap between the response tokens and any accepted variant."""

    words = set(tokens(response))
    best = 0.0
    for variant in accepted:
        expected = set(tokens(variant))
        union = words | expected
        if union:
            best = max(best, len(words & expected) / len(union))
    return best


def register_fit(response: str, register: str) -> float:
    words = tokens(response)
    formal = sum(any(marker in w for marker in FORMAL_MARKERS) for w in words)
    informal = sum(any(marker == w for marker in INFORMAL_MARKERS) for w in words)
    total = formal + informal
    if total == 0:
        return 1.0 if register == "neutral" else 0.7
    formal_ratio = formal / total
    if register == "formal":
        return formal_ratio
    if register == "informal":
        return 1.0 - formal_ratio
    return 1.0 - abs(formal_ratio - 0.5) * 2.0


def context_score(response: str, accepted: Sequence[str], register: str = "neutral") -> float:
    """Half register fit, half length fit against the closest-length accepted variant."""

    count = len(tokens(response))
    if count == 0:
        return 0.0
    length_fit = max(
        (min(count, n) / max(count, n) for n in (len(tokens(v)) for v in accepted) if n),
        default=1.0,
    )
    return 0.5 * register_fit(response, register) + 0.5 * length_fit


def form_score(response: str, accepted: Sequence[str], register: str = "neutral") -> float:
    target = normalize(response)
    return 1.0 if any(normalize(v) == target for v in accepted) else 0.0


SCORERS: Dict[str, Scorer] = {
    "spelling": spelling_score,
    "meaning": meaning_score,
    "context": context_score,
    "form": form_score,
}

# ABOUTME: Builds windowed co-occurrence statistics over a token sequence.
# ABOUTME: Answers PMI, normalised PMI, and Dunning log-likelihood queries for word pairs.

from __future__ import annotations

import math
from collections import Counter
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from loguru import logger

from src.common.errors import MalformedInputError
from src.common.schemas import LexicalRelation

PairKey = Tuple[str, str]


@dataclass(frozen=True)
class LexicalConfig:
    window_size: int = 5
    significance_threshold: float = 3.84
    top_k: int = 20
    density_saturation: int = 20

    def __post_init__(self) -> None:
        if self.window_size < 2:
            raise MalformedInputError(f"window_size must be >= 2, got {self.window_size}")
        if self.top_k < 1:
            raise MalformedInputError("top_k must be positive")


def pair_key(word_a: str, word_b: str) -> PairKey:
    return (word_a, word_b) if word_a <= word_b else (word_b, word_a)


def _binomial_log_likelihood(k: float, n: float, p: float) -> float:
    if k == 0 or k == n or p <= 0.0 or p >= 1.0:
        return 0.0
    return k * math.log(p) + (n - k) * math.log(1.0 - p)


def log_likelihood_ratio(count_a: int, count_b: int, count_ab: int, total: int) -> float:
    """
    Dunning's G² over the 2x2 contingency table of a word pair.

    Values above 3.84 are significant at p < 0.05 and above 6.63 at p < 0.01.
    Degenerate tables (empty cells on either side) score 0.
    """

    if total <= count_a:
        return 0.0
    b_without_a = count_b - count_ab
    p = count_b / total
    p1 = count_ab / count_a
    p2 = b_without_a / (total - count_a)
    if not (0.0 < p1 < 1.0 and 0.0 < p2 < 1.0):
        return 0.0
    return 2.0 * (
        _binomial_log_likelihood(count_ab, count_a, p1)
        + _binomial_log_likelihood(b_without_a, total - count_a, p2)
        - _binomial_log_likelihood(count_ab, count_a, p)
        - _binomial_log_likelihood(b_without_a, total - count_a, p)
    )


class LexicalRelationIndex:
    """
    Immutable co-occurrence index for one corpus snapshot.

    Tokens are lower-cased; token ``j`` co-occurs with token ``i`` when
    ``i < j < i + window_size``. Pair keys are order independent.
    """

    def __init__(
        self,
        word_counts: Dict[str, int],
        pair_counts: Dict[PairKey, int],
        total_words: int,
        config: Optional[LexicalConfig] = None,
    ) -> None:
        self._word_counts = dict(word_counts)
        self._pair_counts = dict(pair_counts)
        self._total_words = int(total_words)
        self.config = config or LexicalConfig()

    @classmethod
    def build(cls, tokens: Iterable[str], config: Optional[LexicalConfig] = None) -> "LexicalRelationIndex":
        config = config or LexicalConfig()
        normalized: List[str] = []
        for token in tokens:
            if not isinstance(token, str):
                raise MalformedInputError(f"Tokens must be strings, got {type(token).__name__}")
            normalized.append(token.lower())

        word_counts = Counter(normalized)
        pair_counts: Counter = Counter()
        size = len(normalized)
        for i, left in enumerate(normalized):
            for j in range(i + 1, min(i + config.window_size, size)):
                pair_counts[pair_key(left, normalized[j])] += 1

        logger.debug(
            "Indexed {} tokens: {} types, {} pair keys (window={})",
            size,
            len(word_counts),
            len(pair_counts),
            config.window_size,
        )
        return cls(word_counts, pair_counts, size, config)

    @property
    def total_words(self) -> int:
        return self._total_words

    def vocabulary(self) -> List[str]:
        return list(self._word_counts)

    def word_count(self, word: str) -> int:
        return self._word_counts.get(word.lower(), 0)

    def cooccurrence(self, word_a: str, word_b: str) -> int:
        return self._pair_counts.get(pair_key(word_a.lower(), word_b.lower()), 0)

    def compute_pmi(self, word_a: str, word_b: str) -> Optional[LexicalRelation]:
        """Association statistics for a pair, or None when either word or the pair is unseen."""

        first, second = pair_key(word_a.lower(), word_b.lower())
        count_a = self._word_counts.get(first, 0)
        count_b = self._word_counts.get(second, 0)
        count_ab = self._pair_counts.get((first, second), 0)
        if count_a == 0 or count_b == 0 or count_ab == 0:
            return None

        total = self._total_words
        expected = count_a * count_b / total
        pmi = math.log2(count_ab / expected)
        if count_ab >= total:
            npmi = 1.0
        else:
            npmi = max(-1.0, min(1.0, pmi / -math.log2(count_ab / total)))

        # The contingency table is built from the first word's margin; average
        # both orientations so significance stays symmetric.
        significance = 0.5 * (
            log_likelihood_ratio(count_a, count_b, count_ab, total)
            + log_likelihood_ratio(count_b, count_a, count_ab, total)
        )
        return LexicalRelation(
            word_a=first,
            word_b=second,
            cooccurrence=count_ab,
            pmi=pmi,
            npmi=npmi,
            significance=significance,
        )

    def is_significant(self, relation: Optional[LexicalRelation]) -> bool:
        return relation is not None and relation.significance > self.config.significance_threshold

    def collocations(self, word: str, top_k: Optional[int] = None) -> List[LexicalRelation]:
        """Significant partners of ``word`` ordered by PMI (highest first)."""

        target = word.lower()
        limit = self.config.top_k if top_k is None else top_k
        results = []
        for first, second in self._pair_counts:
            if target not in (first, second):
                continue
            relation = self.compute_pmi(first, second)
            if self.is_significant(relation):
                results.append(relation)
        results.sort(key=lambda rel: rel.pmi, reverse=True)
        return results[:limit]

    def significant_relations(self, min_npmi: Optional[float] = None) -> List[LexicalRelation]:
        relations = []
        for first, second in self._pair_counts:
            relation = self.compute_pmi(first, second)
            if not self.is_significant(relation):
                continue
            if min_npmi is not None and relation.npmi < min_npmi:
                continue
            relations.append(relation)
        return relations

    def pairs(self, words: Sequence[str]) -> Dict[PairKey, LexicalRelation]:
        """Relations among a fixed word list (pairs without co-occurrence are omitted)."""

        found: Dict[PairKey, LexicalRelation] = {}
        for i, left in enumerate(words):
            for right in words[i + 1:]:
                relation = self.compute_pmi(left, right)
                if relation is not None:
                    found[relation.key] = relation
        return found

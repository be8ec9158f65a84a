# ABOUTME: Exposes the lexical co-occurrence index and its snapshot cache.
# ABOUTME: Groups PMI statistics with the mappings that turn them into item difficulty.

from .difficulty import TASK_MODIFIERS, frequency_to_difficulty, pmi_to_difficulty, relational_density
from .pmi import LexicalConfig, LexicalRelationIndex, log_likelihood_ratio, pair_key
from .snapshot import CorpusSnapshot, LexicalIndexCache

__all__ = [
    "CorpusSnapshot",
    "LexicalConfig",
    "LexicalIndexCache",
    "LexicalRelationIndex",
    "TASK_MODIFIERS",
    "frequency_to_difficulty",
    "log_likelihood_ratio",
    "pair_key",
    "pmi_to_difficulty",
    "relational_density",
]

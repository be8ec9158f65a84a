# ABOUTME: Maps corpus statistics onto the IRT difficulty scale.
# ABOUTME: Converts PMI and frequency into logit difficulties and scores relational density.

from __future__ import annotations

from typing import Dict, Optional

from src.common.checks import require_finite, require_probability
from src.common.errors import MalformedInputError

from .pmi import LexicalRelationIndex

PMI_MIN = -2.0
PMI_MAX = 10.0
LOGIT_SPAN = 6.0

TASK_MODIFIERS: Dict[str, float] = {
    "recognition": -0.5,
    "recall_cued": 0.0,
    "recall_free": 0.5,
    "production": 1.0,
    "timed": 0.3,
}


def task_modifier(task_type: str) -> float:
    try:
        return TASK_MODIFIERS[task_type]
    except KeyError as exc:
        raise MalformedInputError(
            f"Unsupported task type '{task_type}'. Expected one of: {', '.join(TASK_MODIFIERS)}."
        ) from exc


def pmi_to_difficulty(pmi: float, task_type: str = "recall_cued") -> float:
    """
    Collocation difficulty on the logit scale (about -3..+3 before the task offset).

    Higher PMI means the partner word is more predictable, so the item is easier.
    """

    pmi = require_finite(pmi, "pmi")
    hardness = 1.0 - (pmi - PMI_MIN) / (PMI_MAX - PMI_MIN)
    hardness = max(0.0, min(1.0, hardness))
    return (hardness - 0.5) * LOGIT_SPAN + task_modifier(task_type)


def frequency_to_difficulty(frequency: float, task_type: str = "recall_cued") -> float:
    """Single-word difficulty from normalised frequency (1 = most common)."""

    frequency = require_probability(frequency, "frequency")
    return ((1.0 - frequency) - 0.5) * LOGIT_SPAN + task_modifier(task_type)


def relational_density(index: LexicalRelationIndex, word: str, saturation: Optional[int] = None) -> float:
    """Hub score in [0, 1]: share of ``saturation`` significant collocates the word has."""

    saturation = saturation or index.config.density_saturation
    if saturation <= 0:
        raise MalformedInputError("saturation must be positive")
    partners = index.collocations(word, top_k=saturation)
    return min(1.0, len(partners) / saturation)

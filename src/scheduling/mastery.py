# ABOUTME: Tracks per-object mastery stages on top of the FSRS memory card.
# ABOUTME: Converts responses to ratings and maintains cue-free and cue-assisted accuracy.

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Optional

from src.common.checks import require_probability
from src.common.errors import MalformedInputError
from src.common.schemas import MemoryCard, Rating

from .fsrs import MemoryScheduler

SLOW_RESPONSE_MS = 5000

CUE_FREE_STAGE_THRESHOLDS = (0.6, 0.75, 0.9)
STABILITY_STAGE_THRESHOLDS = (7.0, 30.0)
AUTOMATIC_GAP_THRESHOLD = 0.1
CUE_ASSISTED_EMA = 0.2


@dataclass(frozen=True)
class ResponseSignal:
    correct: bool
    cue_level: int = 0
    response_time_ms: int = 0

    def __post_init__(self) -> None:
        if self.cue_level not in (0, 1, 2, 3):
            raise MalformedInputError(f"cue_level must be 0-3, got {self.cue_level}")
        if self.response_time_ms < 0:
            raise MalformedInputError("response_time_ms must be non-negative")


@dataclass(frozen=True)
class MasteryRecord:
    """
    Learner-object mastery state.

    Stages: 0 unknown, 1 recognition, 2 recall, 3 controlled production, 4 automatic.
    """

    stage: int = 0
    card: MemoryCard = field(default_factory=MemoryCard.new)
    cue_free_accuracy: float = 0.0
    cue_assisted_accuracy: float = 0.0
    exposure_count: int = 0

    def __post_init__(self) -> None:
        if self.stage not in range(5):
            raise MalformedInputError(f"stage must be 0-4, got {self.stage}")
        require_probability(self.cue_free_accuracy, "cue_free_accuracy")
        require_probability(self.cue_assisted_accuracy, "cue_assisted_accuracy")
        if self.exposure_count < 0:
            raise MalformedInputError("exposure_count must be non-negative")


def response_to_rating(response: ResponseSignal) -> Rating:
    if not response.correct:
        return Rating.AGAIN
    if response.cue_level > 0:
        return Rating.HARD
    if response.response_time_ms > SLOW_RESPONSE_MS:
        return Rating.GOOD
    return Rating.EASY


def scaffolding_gap(record: MasteryRecord) -> float:
    """How much better the learner does with hints than without (never negative)."""
    return max(0.0, record.cue_assisted_accuracy - record.cue_free_accuracy)


def determine_stage(record: MasteryRecord) -> int:
    if record.exposure_count == 0:
        return 0

    gap = record.cue_assisted_accuracy - record.cue_free_accuracy
    stability = record.card.stability
    recall, controlled, automatic = CUE_FREE_STAGE_THRESHOLDS
    week, month = STABILITY_STAGE_THRESHOLDS

    if record.cue_free_accuracy >= automatic and stability > month and gap < AUTOMATIC_GAP_THRESHOLD:
        return 4
    if record.cue_free_accuracy >= controlled and stability > week:
        return 3
    if record.cue_free_accuracy >= recall or record.cue_assisted_accuracy >= 0.8:
        return 2
    if record.cue_assisted_accuracy >= 0.5:
        return 1
    return 0


def determine_cue_level(record: MasteryRecord) -> int:
    gap = scaffolding_gap(record)
    attempts = record.exposure_count
    if gap < 0.1 and attempts > 3:
        return 0
    if gap < 0.2 and attempts > 2:
        return 1
    if gap < 0.3:
        return 2
    return 3


def update_mastery(
    record: MasteryRecord,
    response: ResponseSignal,
    scheduler: MemoryScheduler,
    now: Optional[datetime] = None,
) -> MasteryRecord:
    """Schedule the card and fold the response into the accuracy trackers."""

    now = now or datetime.now()
    rating = response_to_rating(response)
    exposures = record.exposure_count + 1
    outcome = 1.0 if response.correct else 0.0

    cue_free = record.cue_free_accuracy
    cue_assisted = record.cue_assisted_accuracy
    if response.cue_level == 0:
        weight = 1.0 / (exposures * 0.3 + 1.0)
        cue_free = (1.0 - weight) * cue_free + weight * outcome
    else:
        cue_assisted = (1.0 - CUE_ASSISTED_EMA) * cue_assisted + CUE_ASSISTED_EMA * outcome

    updated = replace(
        record,
        card=scheduler.schedule(record.card, rating, now),
        cue_free_accuracy=cue_free,
        cue_assisted_accuracy=cue_assisted,
        exposure_count=exposures,
    )
    return replace(updated, stage=determine_stage(updated))

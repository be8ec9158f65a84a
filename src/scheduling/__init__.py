# ABOUTME: Exposes the memory scheduler and mastery-stage tracking.
# ABOUTME: Groups FSRS card updates with the accuracy bookkeeping that drives stage changes.

from .fsrs import DEFAULT_WEIGHTS, MemoryScheduler, SchedulerConfig
from .mastery import (
    MasteryRecord,
    ResponseSignal,
    determine_cue_level,
    determine_stage,
    response_to_rating,
    scaffolding_gap,
    update_mastery,
)

__all__ = [
    "DEFAULT_WEIGHTS",
    "MasteryRecord",
    "MemoryScheduler",
    "ResponseSignal",
    "SchedulerConfig",
    "determine_cue_level",
    "determine_stage",
    "response_to_rating",
    "scaffolding_gap",
    "update_mastery",
]

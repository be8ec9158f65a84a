# ABOUTME: Exposes the priority engine and learning-queue helpers.
# ABOUTME: Groups scoring components with ranking and session slicing.

from .engine import (
    LEVEL_WEIGHTS,
    PriorityConfig,
    PriorityEngine,
    PriorityResult,
    PriorityWeights,
    SessionContext,
    assign_priorities,
    base_score,
    build_learning_queue,
    context_modifier,
    infer_level,
    mastery_adjustment,
    mastery_function,
    session_items,
    transfer_adjustment,
    urgency_score,
    weights_for_level,
)

__all__ = [
    "LEVEL_WEIGHTS",
    "PriorityConfig",
    "PriorityEngine",
    "PriorityResult",
    "PriorityWeights",
    "SessionContext",
    "assign_priorities",
    "base_score",
    "build_learning_queue",
    "context_modifier",
    "infer_level",
    "mastery_adjustment",
    "mastery_function",
    "session_items",
    "transfer_adjustment",
    "urgency_score",
    "weights_for_level",
]

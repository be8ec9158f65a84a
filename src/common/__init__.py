# ABOUTME: Makes the shared common package importable across the learning core.
# ABOUTME: Re-exports schema types, the error taxonomy, logging setup, and model-fit metrics.

from .errors import HardConstraintViolationError, LearningCoreError, MalformedInputError, NoCandidate
from .log import configure_logging
from .schemas import (
    CASCADE_ORDER,
    AbilityEstimate,
    CardState,
    ComponentType,
    CurriculumGoal,
    ErrorKind,
    EvaluationResult,
    FeatureVector,
    ItemParameter,
    LanguageObject,
    LexicalRelation,
    MemoryCard,
    Rating,
    RelationKind,
    ResponseRecord,
)

__all__ = [
    "CASCADE_ORDER",
    "AbilityEstimate",
    "CardState",
    "ComponentType",
    "CurriculumGoal",
    "ErrorKind",
    "EvaluationResult",
    "FeatureVector",
    "HardConstraintViolationError",
    "ItemParameter",
    "LanguageObject",
    "LearningCoreError",
    "LexicalRelation",
    "MalformedInputError",
    "MemoryCard",
    "NoCandidate",
    "Rating",
    "RelationKind",
    "ResponseRecord",
    "configure_logging",
]

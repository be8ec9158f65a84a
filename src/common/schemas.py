# ABOUTME: Defines canonical data structures shared by every learning-core module.
# ABOUTME: Centralizes ability, item, memory, lexical, goal, and evaluation records.

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, IntEnum
from typing import FrozenSet, Mapping, Optional, Tuple

from .checks import require_finite, require_positive, require_probability, require_range
from .errors import MalformedInputError


class Rating(IntEnum):
    """Self- or system-assigned recall grade fed to the memory scheduler."""

    AGAIN = 1
    HARD = 2
    GOOD = 3
    EASY = 4

    @property
    def is_failing(self) -> bool:
        return self is Rating.AGAIN


class CardState(str, Enum):
    NEW = "new"
    LEARNING = "learning"
    REVIEW = "review"
    RELAPSING = "relapsing"


class RelationKind(str, Enum):
    REQUIRES = "requires"
    EXCLUDES = "excludes"
    PREFERS = "prefers"
    RESTRICTS = "restricts"

    @property
    def is_hard(self) -> bool:
        return self in (RelationKind.REQUIRES, RelationKind.EXCLUDES)


class ErrorKind(str, Enum):
    OMISSION = "omission"
    SUBSTITUTION = "substitution"
    ORDERING = "ordering"
    FORM_ERROR = "form_error"


class ComponentType(str, Enum):
    """Linguistic components, declared in cascade order (foundational first)."""

    PHON = "PHON"
    MORPH = "MORPH"
    LEX = "LEX"
    SYNT = "SYNT"
    PRAG = "PRAG"


CASCADE_ORDER: Tuple[ComponentType, ...] = tuple(ComponentType)

# Transfer coefficients are keyed by the dimension name of each component.
COMPONENT_DIMENSIONS: Mapping[ComponentType, str] = {
    ComponentType.PHON: "phonological",
    ComponentType.MORPH: "morphological",
    ComponentType.LEX: "lexical",
    ComponentType.SYNT: "syntactic",
    ComponentType.PRAG: "pragmatic",
}


def parse_component(value) -> ComponentType:
    if isinstance(value, ComponentType):
        return value
    try:
        return ComponentType(str(value).strip().upper())
    except ValueError as exc:
        raise MalformedInputError(
            f"Unknown component '{value}'. Expected one of: {', '.join(c.value for c in ComponentType)}."
        ) from exc


@dataclass(frozen=True)
class AbilityEstimate:
    """Latent ability (theta) for one learner on one skill dimension."""

    learner_id: str
    dimension: str
    theta: float
    standard_error: float
    n_responses: int = 0
    updated_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        require_finite(self.theta, "theta")
        require_positive(self.standard_error, "standard_error")


@dataclass(frozen=True)
class ItemParameter:
    """Calibration triple for one language object: b (difficulty), a, c."""

    item_id: str
    difficulty: float
    discrimination: float = 1.0
    guessing: float = 0.0

    def __post_init__(self) -> None:
        require_finite(self.difficulty, "difficulty")
        require_positive(self.discrimination, "discrimination")
        require_probability(self.guessing, "guessing")
        if self.guessing >= 1.0:
            raise MalformedInputError("guessing must be < 1")


@dataclass(frozen=True)
class MemoryCard:
    """Spaced-repetition state for one (learner, object) pair."""

    stability: float
    difficulty: float = 5.0
    last_review: Optional[datetime] = None
    reps: int = 0
    lapses: int = 0
    state: CardState = CardState.NEW

    def __post_init__(self) -> None:
        require_positive(self.stability, "stability")
        require_range(self.difficulty, "difficulty", 1.0, 10.0)
        if self.reps < 0 or self.lapses < 0:
            raise MalformedInputError("reps and lapses must be non-negative")

    @classmethod
    def new(cls, stability: float = 0.1) -> "MemoryCard":
        return cls(stability=stability)


@dataclass(frozen=True)
class LexicalRelation:
    """Association statistics for an unordered word pair."""

    word_a: str
    word_b: str
    cooccurrence: int
    pmi: float
    npmi: float
    significance: float

    @property
    def key(self) -> Tuple[str, str]:
        return (self.word_a, self.word_b) if self.word_a <= self.word_b else (self.word_b, self.word_a)


@dataclass(frozen=True)
class FeatureVector:
    """Pre-computed linguistic features; every scalar is normalised to [0, 1]."""

    frequency: float
    relational_density: float
    domain_distribution: Mapping[str, float] = field(default_factory=dict)
    morphological_score: float = 0.5
    phonological_difficulty: float = 0.5

    def __post_init__(self) -> None:
        for name in ("frequency", "relational_density", "morphological_score", "phonological_difficulty"):
            require_probability(getattr(self, name), name)
        for domain, share in self.domain_distribution.items():
            require_probability(share, f"domain_distribution[{domain}]")

    def domain_share(self, domain: Optional[str], default: float = 0.5) -> float:
        if not domain or not self.domain_distribution:
            return default
        return float(self.domain_distribution.get(domain, 0.0))


@dataclass(frozen=True)
class LanguageObject:
    """A unit of language knowledge as delivered by the content store."""

    object_id: str
    content: str
    object_type: str
    features: FeatureVector
    component: ComponentType = ComponentType.LEX
    tags: FrozenSet[str] = frozenset()
    item: Optional[ItemParameter] = None
    priority: float = 0.0


@dataclass(frozen=True)
class CurriculumGoal:
    """Learner-defined target with a deadline expressed in remaining days."""

    goal_id: str
    target_theta: float
    current_theta: float
    deadline_days: float
    weight: float = 1.0
    domain: str = "general"
    object_ids: FrozenSet[str] = frozenset()

    def __post_init__(self) -> None:
        require_finite(self.target_theta, "target_theta")
        require_finite(self.current_theta, "current_theta")
        require_finite(self.deadline_days, "deadline_days")
        require_positive(self.weight, "weight")

    @property
    def gap(self) -> float:
        return max(0.0, self.target_theta - self.current_theta)

    @property
    def is_active(self) -> bool:
        return self.gap > 0.0


@dataclass(frozen=True)
class EvaluationResult:
    """Score for one (object, response) pair."""

    object_id: str
    score: float
    correct: bool
    layer_scores: Mapping[str, float] = field(default_factory=dict)
    error_kind: Optional[ErrorKind] = None
    mode: str = "binary"


@dataclass(frozen=True)
class ResponseRecord:
    """One row of the append-only response log."""

    object_id: str
    component: ComponentType
    correct: bool
    timestamp: datetime
    session_id: str = ""
    content: str = ""
    response_id: str = ""
    score: Optional[float] = None
    error_kind: Optional[ErrorKind] = None
    response_time_ms: Optional[int] = None
    cue_level: int = 0

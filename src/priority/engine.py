# ABOUTME: Ranks language objects by learning priority for a learner and session.
# ABOUTME: Combines feature scores, mastery, context, L1 transfer, review urgency, and bottleneck boosts.

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Dict, FrozenSet, List, Mapping, Optional, Sequence

from loguru import logger

from src.common.checks import require_finite, require_range
from src.common.errors import MalformedInputError
from src.common.schemas import COMPONENT_DIMENSIONS, ComponentType, LanguageObject
from src.scheduling.fsrs import MemoryScheduler
from src.scheduling.mastery import MasteryRecord, scaffolding_gap


@dataclass(frozen=True)
class PriorityWeights:
    """Linear weights for the base score; phonological difficulty is subtracted."""

    frequency: float = 0.3
    relational_density: float = 0.2
    domain_match: float = 0.2
    morphological: float = 0.15
    phonological: float = 0.15


LEVEL_WEIGHTS: Mapping[str, PriorityWeights] = {
    "beginner": PriorityWeights(0.4, 0.15, 0.15, 0.15, 0.15),
    "intermediate": PriorityWeights(),
    "advanced": PriorityWeights(0.2, 0.25, 0.3, 0.15, 0.1),
}


@dataclass(frozen=True)
class PriorityConfig:
    weights: PriorityWeights = field(default_factory=PriorityWeights)
    adapt_to_level: bool = True
    domain_boost: float = 1.25
    domain_match_threshold: float = 0.5
    skill_boost: float = 1.15
    transfer_scale: float = 0.125
    scaffolding_gap_threshold: float = 0.2
    scaffolding_boost: float = 0.5
    stability_damping_days: float = 30.0
    stability_damping: float = 0.7
    urgency_weight: float = 0.14
    bottleneck_weight: float = 0.06

    def __post_init__(self) -> None:
        if isinstance(self.weights, Mapping):
            object.__setattr__(self, "weights", PriorityWeights(**self.weights))
        if self.domain_boost < 1.0 or self.skill_boost < 1.0:
            raise MalformedInputError("context boosts must be >= 1")


@dataclass(frozen=True)
class SessionContext:
    now: datetime = field(default_factory=datetime.now)
    target_domain: Optional[str] = None
    target_skills: FrozenSet[str] = frozenset()
    theta: Optional[float] = None
    transfer_coefficients: Mapping[str, float] = field(default_factory=dict)
    bottleneck_components: FrozenSet[ComponentType] = frozenset()

    def __post_init__(self) -> None:
        for dimension, coefficient in self.transfer_coefficients.items():
            require_range(coefficient, f"transfer_coefficients[{dimension}]", -1.0, 1.0)
        if self.theta is not None:
            require_finite(self.theta, "theta")


@dataclass(frozen=True)
class PriorityResult:
    language_object: LanguageObject
    priority: float
    base: float
    mastery_factor: float
    context_factor: float
    transfer: float
    urgency: float
    bottleneck_boost: float
    is_due: bool
    is_new: bool
    rationale: str

    @property
    def object_id(self) -> str:
        return self.language_object.object_id


def infer_level(theta: float) -> str:
    if theta < -1.0:
        return "beginner"
    if theta < 1.0:
        return "intermediate"
    return "advanced"


def weights_for_level(theta: Optional[float], default: PriorityWeights) -> PriorityWeights:
    if theta is None:
        return default
    return LEVEL_WEIGHTS[infer_level(theta)]


def base_score(obj: LanguageObject, weights: PriorityWeights, target_domain: Optional[str] = None) -> float:
    features = obj.features
    score = (
        weights.frequency * features.frequency
        + weights.relational_density * features.relational_density
        + weights.domain_match * features.domain_share(target_domain)
        + weights.morphological * features.morphological_score
        - weights.phonological * features.phonological_difficulty
    )
    return max(0.0, min(1.0, score))


def mastery_function(accuracy: float) -> float:
    """
    Inverted-U multiplier g(m) over cue-free accuracy.

    Foundation building below 0.2 gets 0.5, the challenge zone peaks at 1.0
    around 0.45, and over-learned items above 0.9 drop to 0.3.
    """

    m = require_range(accuracy, "accuracy", 0.0, 1.0)
    if m < 0.2:
        return 0.5
    if m < 0.45:
        return 0.8 + (m - 0.2) / 0.25 * 0.2
    if m < 0.7:
        return 1.0 - (m - 0.45) / 0.25 * 0.2
    if m < 0.9:
        return 0.8 - (m - 0.7) / 0.2 * 0.5
    return 0.3


def mastery_adjustment(record: Optional[MasteryRecord], config: PriorityConfig) -> float:
    if record is None:
        return 1.0
    factor = mastery_function(record.cue_free_accuracy)
    gap = scaffolding_gap(record)
    if gap > config.scaffolding_gap_threshold:
        factor *= 1.0 + gap * config.scaffolding_boost
    if record.card.stability > config.stability_damping_days:
        factor *= config.stability_damping
    return factor


def context_modifier(obj: LanguageObject, context: SessionContext, config: PriorityConfig) -> float:
    modifier = 1.0
    if context.target_domain and obj.features.domain_share(context.target_domain, 0.0) >= config.domain_match_threshold:
        modifier *= config.domain_boost
    if context.target_skills and obj.tags & context.target_skills:
        modifier *= config.skill_boost
    return modifier


def transfer_adjustment(obj: LanguageObject, base: float, context: SessionContext, config: PriorityConfig) -> float:
    """Positive transfer (cognates) lowers priority, interference raises it, bounded by ±scale × base."""

    coefficient = context.transfer_coefficients.get(COMPONENT_DIMENSIONS[obj.component], 0.0)
    return -coefficient * config.transfer_scale * base


def urgency_score(record: Optional[MasteryRecord], scheduler: MemoryScheduler, now: datetime) -> float:
    if record is None or record.card.last_review is None:
        return 1.0
    due = scheduler.next_review_date(record.card)
    hours = (now - due).total_seconds() / 3600.0
    if hours >= 0:
        return min(1.0, 0.5 + hours / 48.0)
    return max(0.1, 0.5 + hours / 168.0)


class PriorityEngine:
    """
    Scores objects in a fixed order: base, mastery, context, transfer, then the
    additive urgency and bottleneck terms, finally clamped at zero.
    """

    def __init__(self, config: Optional[PriorityConfig] = None, scheduler: Optional[MemoryScheduler] = None) -> None:
        self.config = config or PriorityConfig()
        self.scheduler = scheduler or MemoryScheduler()

    def score(
        self,
        obj: LanguageObject,
        record: Optional[MasteryRecord],
        context: SessionContext,
    ) -> PriorityResult:
        config = self.config
        weights = weights_for_level(context.theta, config.weights) if config.adapt_to_level else config.weights

        base = base_score(obj, weights, context.target_domain)
        mastery = mastery_adjustment(record, config)
        ctx = context_modifier(obj, context, config)
        transfer = transfer_adjustment(obj, base, context, config)
        urgency = urgency_score(record, self.scheduler, context.now)
        bottleneck = config.bottleneck_weight if obj.component in context.bottleneck_components else 0.0

        priority = base * mastery * ctx + transfer + config.urgency_weight * urgency + bottleneck
        priority = max(0.0, priority)

        is_new = record is None or record.card.last_review is None
        is_due = not is_new and self.scheduler.is_due(record.card, context.now)

        parts = [f"base {base:.2f}", f"mastery x{mastery:.2f}"]
        if ctx != 1.0:
            parts.append(f"context x{ctx:.2f}")
        if transfer:
            parts.append(f"transfer {transfer:+.3f}")
        parts.append(f"urgency {urgency:.2f}")
        if bottleneck:
            parts.append(f"bottleneck {obj.component.value} +{bottleneck:.2f}")
        rationale = ("new object; " if is_new else "due for review; " if is_due else "") + ", ".join(parts)

        return PriorityResult(
            language_object=obj,
            priority=priority,
            base=base,
            mastery_factor=mastery,
            context_factor=ctx,
            transfer=transfer,
            urgency=urgency,
            bottleneck_boost=bottleneck,
            is_due=is_due,
            is_new=is_new,
            rationale=rationale,
        )

    def rank(self, results: Sequence[PriorityResult]) -> List[PriorityResult]:
        # sorted() is stable, so ties keep insertion order.
        return sorted(results, key=lambda r: (not r.is_due, -r.priority))


def build_learning_queue(
    objects: Sequence[LanguageObject],
    mastery: Mapping[str, MasteryRecord],
    context: SessionContext,
    engine: Optional[PriorityEngine] = None,
) -> List[PriorityResult]:
    engine = engine or PriorityEngine()
    queue = engine.rank([engine.score(obj, mastery.get(obj.object_id), context) for obj in objects])
    logger.debug(
        "Built learning queue: {} objects, {} due, {} new",
        len(queue),
        sum(r.is_due for r in queue),
        sum(r.is_new for r in queue),
    )
    return queue


def session_items(queue: Sequence[PriorityResult], size: int, new_ratio: float = 0.3) -> List[PriorityResult]:
    """Take ``size`` entries mixing reviews and new objects, keeping queue order."""

    if size <= 0:
        return []
    require_range(new_ratio, "new_ratio", 0.0, 1.0)
    new_quota = int(round(size * new_ratio))
    reviews = [r for r in queue if not r.is_new]
    fresh = [r for r in queue if r.is_new]

    chosen = reviews[: size - new_quota] + fresh[:new_quota]
    if len(chosen) < size:
        # Fill from whichever side still has entries.
        taken = {id(r) for r in chosen}
        chosen += [r for r in queue if id(r) not in taken][: size - len(chosen)]

    order: Dict[int, int] = {id(r): i for i, r in enumerate(queue)}
    return sorted(chosen, key=lambda r: order[id(r)])


def assign_priorities(results: Sequence[PriorityResult]) -> List[LanguageObject]:
    """Copies of the scored objects carrying their computed priority."""
    return [replace(r.language_object, priority=r.priority) for r in results]

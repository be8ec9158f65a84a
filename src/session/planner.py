# ABOUTME: Runs one planning request through ranking, constraint propagation, and validation.
# ABOUTME: Works on an immutable learner snapshot so separate learners can be planned in parallel.

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import FrozenSet, List, Mapping, Optional, Sequence, Union

from loguru import logger

from src.common.config import EngineConfig
from src.common.errors import NoCandidate
from src.common.schemas import AbilityEstimate, ComponentType, LanguageObject
from src.constraints.graph import ConstraintGraph
from src.constraints.propagation import PropagationResult, propagate
from src.constraints.validation import ValidationReport, resolve_violations
from src.priority.engine import PriorityEngine, PriorityResult, SessionContext, build_learning_queue, session_items
from src.scheduling.fsrs import MemoryScheduler
from src.scheduling.mastery import MasteryRecord


@dataclass(frozen=True)
class LearnerSnapshot:
    """Read-consistent learner state supplied by the host for one request."""

    learner_id: str
    abilities: Mapping[str, AbilityEstimate] = field(default_factory=dict)
    mastery: Mapping[str, MasteryRecord] = field(default_factory=dict)
    transfer_coefficients: Mapping[str, float] = field(default_factory=dict)
    bottleneck_components: FrozenSet[ComponentType] = frozenset()

    def global_theta(self) -> Optional[float]:
        if not self.abilities:
            return None
        estimate = self.abilities.get("global")
        if estimate is not None:
            return estimate.theta
        return sum(a.theta for a in self.abilities.values()) / len(self.abilities)


@dataclass(frozen=True)
class SessionPlan:
    queue: List[PriorityResult]
    selection: List[str]
    propagation: PropagationResult
    validation: ValidationReport


def plan_session(
    snapshot: LearnerSnapshot,
    objects: Sequence[LanguageObject],
    graph: ConstraintGraph,
    context: Optional[SessionContext] = None,
    config: Optional[EngineConfig] = None,
) -> Union[SessionPlan, NoCandidate]:
    """
    Rank, pick the session's trigger objects, propagate constraints, and validate.

    Excluded objects are removed from the selection; required objects from the
    pool are added after the triggers. Hard violations that remain are handled
    by the configured resolution policy.
    """

    config = config or EngineConfig.default()
    if not objects:
        return NoCandidate("no candidate objects")

    context = context or SessionContext()
    context = replace(
        context,
        theta=context.theta if context.theta is not None else snapshot.global_theta(),
        transfer_coefficients=context.transfer_coefficients or snapshot.transfer_coefficients,
        bottleneck_components=context.bottleneck_components or snapshot.bottleneck_components,
    )

    engine = PriorityEngine(config.priority, MemoryScheduler(config.scheduler))
    queue = build_learning_queue(objects, snapshot.mastery, context, engine)
    picked = session_items(queue, config.session.session_size, config.session.new_ratio)
    if not picked:
        return NoCandidate("session size is zero")

    pool = {obj.object_id for obj in objects}
    triggers = [r.object_id for r in picked if r.object_id in graph]
    if not triggers:
        return NoCandidate("no ranked object is present in the constraint graph")

    # Triggers excluded by a higher-ranked trigger are dropped before propagating.
    accepted: List[str] = []
    for object_id in triggers:
        probe = propagate(graph, accepted + [object_id], pool, config.propagation)
        if object_id in probe.conflicts:
            logger.debug("Skipping trigger {}: conflicts with higher-ranked selection", object_id)
            continue
        accepted.append(object_id)
    if not accepted:
        return NoCandidate("every trigger conflicts with its own constraints")

    propagation = propagate(graph, accepted, pool, config.propagation)
    selection = [object_id for object_id in propagation.selection if object_id not in propagation.excluded]

    priorities = {r.object_id: r.priority for r in queue}
    validation = resolve_violations(selection, graph, priorities, config.session.resolution_policy)
    logger.info(
        "Planned session for {}: {} triggers, {} required, {} excluded, {} violation(s)",
        snapshot.learner_id,
        len(accepted),
        len(propagation.required),
        len(propagation.excluded),
        len(validation.violations),
    )
    return SessionPlan(
        queue=queue,
        selection=list(validation.selection),
        propagation=propagation,
        validation=validation,
    )

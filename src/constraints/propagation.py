# ABOUTME: Propagates a trigger selection through the constraint graph.
# ABOUTME: Breadth-first closure over "requires" edges with cycle and step guards.

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from typing import Collection, Dict, FrozenSet, List, Mapping, Optional, Sequence, Tuple, Union

from loguru import logger

from src.common.errors import MalformedInputError, NoCandidate
from src.common.schemas import RelationKind

from .graph import ConstraintGraph


@dataclass(frozen=True)
class PropagationConfig:
    max_steps: int = 1000
    min_relation_strength: float = 0.3
    use_default_rules: bool = True

    def __post_init__(self) -> None:
        if self.max_steps < 1:
            raise MalformedInputError("max_steps must be positive")


@dataclass(frozen=True)
class PropagationResult:
    """
    Outcome of one propagation. ``required``, ``excluded``, ``restricted`` and
    ``preferred`` are pairwise disjoint and never contain a trigger.
    """

    triggers: Tuple[str, ...]
    required: FrozenSet[str]
    excluded: FrozenSet[str]
    restricted: FrozenSet[str]
    preferred: FrozenSet[str]
    modifications: Mapping[str, Mapping[str, str]] = field(default_factory=dict)
    conflicts: Tuple[str, ...] = ()
    missing_required: FrozenSet[str] = frozenset()
    cycle_detected: bool = False
    truncated: bool = False
    steps: int = 0

    @property
    def selection(self) -> Tuple[str, ...]:
        """Triggers followed by the in-pool required objects, sorted by id."""
        return self.triggers + tuple(sorted(self.required - self.missing_required))


def _is_ancestor(candidate: int, node: int, parents: Dict[int, Optional[int]]) -> bool:
    current: Optional[int] = node
    while current is not None:
        if current == candidate:
            return True
        current = parents.get(current)
    return False


def propagate(
    graph: ConstraintGraph,
    triggers: Sequence[str],
    pool: Optional[Collection[str]] = None,
    config: Optional[PropagationConfig] = None,
) -> Union[PropagationResult, NoCandidate]:
    """
    Apply the triggers' outgoing edges and recurse through newly required objects.

    When a "requires" and an "excludes" placement collide, the first placement
    wins and the object is reported in ``conflicts``. A "requires" edge back to
    an ancestor marks ``cycle_detected`` and ``truncated``; exhausting
    ``max_steps`` marks ``truncated``. Neither is an error.
    """

    config = config or PropagationConfig()
    ordered_triggers = list(dict.fromkeys(triggers))
    if not ordered_triggers:
        return NoCandidate("no trigger objects to propagate")
    trigger_handles = [graph.handle(object_id) for object_id in ordered_triggers]
    pool_ids = set(graph.object_ids() if pool is None else pool)

    trigger_set = set(trigger_handles)
    required: List[int] = []
    excluded: set = set()
    restricted: set = set()
    preferred: set = set()
    modifications: Dict[str, Dict[str, str]] = {}
    conflicts: List[str] = []
    parents: Dict[int, Optional[int]] = {h: None for h in trigger_handles}
    visited = set(trigger_handles)
    queue = deque(trigger_handles)
    cycle_detected = False
    truncated = False
    steps = 0

    def record_conflict(handle: int, reason: str) -> None:
        object_id = graph.object_id(handle)
        if object_id not in conflicts:
            conflicts.append(object_id)
        logger.debug("Constraint conflict on {}: {}", object_id, reason)

    while queue:
        if steps >= config.max_steps:
            truncated = True
            logger.warning("Propagation stopped after {} steps with {} objects pending", steps, len(queue))
            break
        current = queue.popleft()
        steps += 1

        for edge in graph.outgoing(current):
            target = edge.target
            target_id = graph.object_id(target)
            if edge.modifications:
                modifications.setdefault(target_id, {}).update(edge.modifications)

            if edge.kind is RelationKind.REQUIRES:
                if target in excluded:
                    record_conflict(target, "required but already excluded")
                    continue
                if target in visited:
                    if _is_ancestor(target, current, parents):
                        cycle_detected = truncated = True
                        logger.warning(
                            "Requires-cycle through {} -> {}; propagation truncated",
                            graph.object_id(current),
                            target_id,
                        )
                    continue
                visited.add(target)
                parents[target] = current
                required.append(target)
                queue.append(target)
            elif edge.kind is RelationKind.EXCLUDES:
                if target in trigger_set or target in visited:
                    record_conflict(target, "excluded but already selected or required")
                    continue
                excluded.add(target)
            elif edge.kind is RelationKind.RESTRICTS:
                restricted.add(target)
            else:
                preferred.add(target)

    required_ids = frozenset(graph.object_id(h) for h in required)
    excluded_ids = frozenset(graph.object_id(h) for h in excluded)
    selected_ids = required_ids | set(ordered_triggers)
    restricted_ids = frozenset(graph.object_id(h) for h in restricted) - selected_ids - excluded_ids
    preferred_ids = (
        frozenset(graph.object_id(h) for h in preferred) - selected_ids - excluded_ids - restricted_ids
    )
    missing = frozenset(object_id for object_id in required_ids if object_id not in pool_ids)
    if missing:
        logger.warning("Required objects outside the candidate pool: {}", sorted(missing))

    return PropagationResult(
        triggers=tuple(ordered_triggers),
        required=required_ids,
        excluded=excluded_ids,
        restricted=restricted_ids,
        preferred=preferred_ids,
        modifications={key: dict(value) for key, value in modifications.items()},
        conflicts=tuple(conflicts),
        missing_required=missing,
        cycle_detected=cycle_detected,
        truncated=truncated,
        steps=steps,
    )

# ABOUTME: Checks a final object selection against hard constraints.
# ABOUTME: Reports violations and resolves them by dropping objects or degrading explicitly.

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import List, Mapping, Sequence, Tuple

from loguru import logger

from src.common.errors import HardConstraintViolationError, MalformedInputError
from src.common.schemas import RelationKind

from .graph import ConstraintGraph

DROP = "drop"
DEGRADE = "degrade"


@dataclass(frozen=True)
class ConstraintViolation:
    source: str
    target: str
    kind: RelationKind
    message: str


@dataclass(frozen=True)
class ValidationReport:
    selection: Tuple[str, ...]
    violations: Tuple[ConstraintViolation, ...] = ()
    dropped: Tuple[str, ...] = ()
    degraded: bool = False

    @property
    def ok(self) -> bool:
        return not self.violations

    def raise_for_violations(self) -> None:
        if self.violations:
            raise HardConstraintViolationError(self.violations)


def validate_selection(selection: Sequence[str], graph: ConstraintGraph) -> ValidationReport:
    """Every requires target must be selected and no excludes target may be."""

    chosen = tuple(dict.fromkeys(selection))
    members = set(chosen)
    violations: List[ConstraintViolation] = []
    for object_id in chosen:
        if object_id not in graph:
            continue
        for edge in graph.outgoing(graph.handle(object_id)):
            target_id = graph.object_id(edge.target)
            if edge.kind is RelationKind.REQUIRES and target_id not in members:
                violations.append(
                    ConstraintViolation(object_id, target_id, edge.kind, f"{object_id} requires {target_id}")
                )
            elif edge.kind is RelationKind.EXCLUDES and target_id in members:
                violations.append(
                    ConstraintViolation(object_id, target_id, edge.kind, f"{object_id} excludes {target_id}")
                )
    return ValidationReport(selection=chosen, violations=tuple(violations))


def _victim(violation: ConstraintViolation, priorities: Mapping[str, float], order: Mapping[str, int]) -> str:
    if violation.kind is RelationKind.REQUIRES:
        return violation.source
    source_key = (priorities.get(violation.source, 0.0), -order[violation.source])
    target_key = (priorities.get(violation.target, 0.0), -order[violation.target])
    return violation.target if target_key < source_key else violation.source


def resolve_violations(
    selection: Sequence[str],
    graph: ConstraintGraph,
    priorities: Mapping[str, float],
    policy: str = DROP,
) -> ValidationReport:
    """
    Make a selection hard-constraint clean, or mark it degraded.

    ``drop`` removes the lower-priority object of each excludes pair (later
    selection order loses ties) and any object whose requirement is missing.
    ``degrade`` keeps the selection and returns the violations with
    ``degraded=True``.
    """

    report = validate_selection(selection, graph)
    if report.ok:
        return report

    normalized = policy.strip().lower()
    if normalized == DEGRADE:
        logger.warning("Accepting degraded selection with {} hard violation(s)", len(report.violations))
        return replace(report, degraded=True)
    if normalized != DROP:
        raise MalformedInputError(f"Unsupported resolution policy '{policy}'. Expected one of: {DROP}, {DEGRADE}.")

    current = list(report.selection)
    order = {object_id: i for i, object_id in enumerate(current)}
    dropped: List[str] = []
    while not report.ok:
        victim = _victim(report.violations[0], priorities, order)
        current.remove(victim)
        dropped.append(victim)
        logger.warning("Dropped {} to satisfy: {}", victim, report.violations[0].message)
        report = validate_selection(current, graph)
    return replace(report, dropped=tuple(dropped))

# ABOUTME: Exposes the constraint graph, propagator, and selection validator.
# ABOUTME: Groups rule-table graph construction with propagation and hard-constraint checks.

from .graph import DEFAULT_RULES, ConstraintEdge, ConstraintGraph, LinguisticRule, build_constraint_graph
from .propagation import PropagationConfig, PropagationResult, propagate
from .validation import ConstraintViolation, ValidationReport, resolve_violations, validate_selection

__all__ = [
    "ConstraintEdge",
    "ConstraintGraph",
    "ConstraintViolation",
    "DEFAULT_RULES",
    "LinguisticRule",
    "PropagationConfig",
    "PropagationResult",
    "ValidationReport",
    "build_constraint_graph",
    "propagate",
    "resolve_violations",
    "validate_selection",
]

# ABOUTME: Defines the error taxonomy shared by every learning-core module.
# ABOUTME: Separates boundary rejections, hard-constraint failures, and "no candidate" results.

from __future__ import annotations

from dataclasses import dataclass


class LearningCoreError(Exception):
    """Base class for errors raised by the learning core."""


class MalformedInputError(LearningCoreError, ValueError):
    """Input violates the calling contract (NaN, out-of-range parameter, unknown key)."""


class HardConstraintViolationError(LearningCoreError):
    """Jointly selected objects violate a requires/excludes constraint."""

    def __init__(self, violations) -> None:
        self.violations = list(violations)
        details = "; ".join(v.message for v in self.violations)
        super().__init__(f"{len(self.violations)} hard constraint violation(s): {details}")


@dataclass(frozen=True)
class NoCandidate:
    """Returned instead of a selection when the candidate pool is exhausted."""

    reason: str

    def __bool__(self) -> bool:
        return False

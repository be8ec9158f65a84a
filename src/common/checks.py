# ABOUTME: Boundary checks used to reject malformed numeric input.
# ABOUTME: Every helper returns the validated value so it can be used inline.

from __future__ import annotations

import math
from typing import Optional

from .errors import MalformedInputError


def require_finite(value: float, name: str) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        raise MalformedInputError(f"{name} must be a number, got {value!r}") from exc
    if not math.isfinite(number):
        raise MalformedInputError(f"{name} must be finite, got {value!r}")
    return number


def require_positive(value: float, name: str) -> float:
    number = require_finite(value, name)
    if number <= 0.0:
        raise MalformedInputError(f"{name} must be > 0, got {number}")
    return number


def require_range(
    value: float,
    name: str,
    low: Optional[float] = None,
    high: Optional[float] = None,
) -> float:
    """Validate ``low <= value <= high`` (either bound may be omitted)."""

    number = require_finite(value, name)
    if low is not None and number < low:
        raise MalformedInputError(f"{name} must be >= {low}, got {number}")
    if high is not None and number > high:
        raise MalformedInputError(f"{name} must be <= {high}, got {number}")
    return number


def require_probability(value: float, name: str) -> float:
    return require_range(value, name, 0.0, 1.0)

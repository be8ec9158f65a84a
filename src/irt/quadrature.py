# ABOUTME: Builds quadrature rules over a Gaussian ability prior.
# ABOUTME: Supports evenly spaced nodes and Gauss-Hermite nodes for EAP integration.

from __future__ import annotations

from typing import Tuple

import numpy as np

from src.common.errors import MalformedInputError

UNIFORM = "uniform"
GAUSS_HERMITE = "gauss_hermite"


def _check_points(n_points: int) -> None:
    if n_points < 3 or n_points % 2 == 0:
        raise MalformedInputError(f"quadrature_points must be an odd integer >= 3, got {n_points}")


def uniform_rule(
    n_points: int,
    prior_mean: float = 0.0,
    prior_sd: float = 1.0,
    low: float = -4.0,
    high: float = 4.0,
) -> Tuple[np.ndarray, np.ndarray]:
    """Evenly spaced nodes on [low, high] weighted by the normal prior density."""

    _check_points(n_points)
    nodes = np.linspace(low, high, n_points)
    density = np.exp(-0.5 * ((nodes - prior_mean) / prior_sd) ** 2)
    return nodes, density / density.sum()


def gauss_hermite_rule(n_points: int, prior_mean: float = 0.0, prior_sd: float = 1.0) -> Tuple[np.ndarray, np.ndarray]:
    """Gauss-Hermite nodes rescaled so the weights integrate N(prior_mean, prior_sd)."""

    _check_points(n_points)
    x, w = np.polynomial.hermite.hermgauss(n_points)
    nodes = prior_mean + np.sqrt(2.0) * prior_sd * x
    weights = w / np.sqrt(np.pi)
    return nodes, weights / weights.sum()


def build_rule(
    kind: str,
    n_points: int,
    prior_mean: float = 0.0,
    prior_sd: float = 1.0,
    low: float = -4.0,
    high: float = 4.0,
) -> Tuple[np.ndarray, np.ndarray]:
    normalized = kind.strip().lower()
    if normalized == UNIFORM:
        return uniform_rule(n_points, prior_mean, prior_sd, low, high)
    if normalized == GAUSS_HERMITE:
        return gauss_hermite_rule(n_points, prior_mean, prior_sd)
    raise MalformedInputError(f"Unsupported quadrature '{kind}'. Expected one of: {UNIFORM}, {GAUSS_HERMITE}.")

# ABOUTME: Estimates learner ability (theta) from scored responses under the IRT model.
# ABOUTME: Provides bounded Newton-Raphson MLE, quadrature EAP, and ability-record updates.

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Optional, Sequence, Tuple

import numpy as np
from loguru import logger

from src.common.checks import require_finite
from src.common.errors import MalformedInputError
from src.common.schemas import AbilityEstimate, ItemParameter

from .model import IrtModel, effective_parameters, probability_3pl
from .quadrature import build_rule

Response = Tuple[ItemParameter, bool]

_P_EPS = 1e-9


@dataclass(frozen=True)
class ThetaEstimatorConfig:
    """Iteration caps, tolerances, and prior used by the ability estimators."""

    model: str = "3pl"
    max_iter: int = 50
    tolerance: float = 0.001
    quadrature: str = "uniform"
    quadrature_points: int = 41
    prior_mean: float = 0.0
    prior_sd: float = 1.0
    theta_min: float = -4.0
    theta_max: float = 4.0
    fallback_theta: float = 0.0
    se_inflation: float = 2.0
    min_standard_error: float = 1e-3
    max_standard_error: float = 10.0


@dataclass(frozen=True)
class EstimationResult:
    theta: float
    standard_error: float
    iterations: int
    converged: bool
    method: str


def _response_arrays(responses: Sequence[Response], model: IrtModel):
    if not responses:
        empty = np.zeros(0)
        return empty, empty, empty, empty
    params = []
    outcomes = []
    for item, correct in responses:
        if not isinstance(item, ItemParameter):
            raise MalformedInputError(f"Expected ItemParameter, got {type(item).__name__}")
        if correct not in (0, 1, True, False):
            raise MalformedInputError(f"Response for item '{item.item_id}' must be 0/1, got {correct!r}")
        params.append(effective_parameters(item, model))
        outcomes.append(float(correct))
    arr = np.asarray(params, dtype=float)
    return arr[:, 0], arr[:, 1], arr[:, 2], np.asarray(outcomes)


def _clip_se(se: float, config: ThetaEstimatorConfig) -> float:
    if not np.isfinite(se):
        return config.max_standard_error
    return float(np.clip(se, config.min_standard_error, config.max_standard_error))


def _score_and_information(theta: float, a, b, c, u):
    p = np.clip(probability_3pl(theta, b, a, c), _P_EPS, 1.0 - _P_EPS)
    q = 1.0 - p
    weight = (p - c) / (p * (1.0 - c))
    gradient = float(np.sum(a * (u - p) * weight))
    information = float(np.sum((a ** 2) * (q / p) * ((p - c) / (1.0 - c)) ** 2))
    return gradient, information


def estimate_theta_mle(
    responses: Sequence[Response],
    config: Optional[ThetaEstimatorConfig] = None,
    initial_theta: Optional[float] = None,
) -> EstimationResult:
    """
    Maximum-likelihood theta via Newton-Raphson with expected information (Fisher scoring).

    Steps are clamped to [theta_min, theta_max]; convergence is declared once the
    parameter change falls below ``tolerance``. A non-finite score falls back to
    ``fallback_theta`` and an exhausted iteration budget keeps the last iterate;
    both report ``converged=False`` with an inflated standard error.
    """

    config = config or ThetaEstimatorConfig()
    model = IrtModel.parse(config.model)
    a, b, c, u = _response_arrays(responses, model)
    if initial_theta is not None:
        initial_theta = require_finite(initial_theta, "initial_theta")

    if u.size == 0:
        logger.debug("MLE called without responses; returning prior")
        return EstimationResult(config.prior_mean, _clip_se(config.prior_sd, config), 0, False, "mle")

    theta = config.prior_mean if initial_theta is None else initial_theta
    theta = float(np.clip(theta, config.theta_min, config.theta_max))
    converged = False
    iterations = 0
    information = 0.0

    for iterations in range(1, config.max_iter + 1):
        gradient, information = _score_and_information(theta, a, b, c, u)
        if not (np.isfinite(gradient) and np.isfinite(information)):
            logger.warning("MLE diverged at iteration {} (non-finite score); using fallback theta", iterations)
            fallback_se = _clip_se(config.prior_sd * config.se_inflation, config)
            return EstimationResult(config.fallback_theta, fallback_se, iterations, False, "mle")

        step = gradient / max(information, _P_EPS)
        updated = float(np.clip(theta + step, config.theta_min, config.theta_max))
        delta = updated - theta
        theta = updated
        if abs(delta) < config.tolerance:
            converged = True
            break

    _, information = _score_and_information(theta, a, b, c, u)
    se = 1.0 / np.sqrt(information) if information > 0 else np.inf
    if not converged:
        logger.warning("MLE did not converge in {} iterations; inflating standard error", config.max_iter)
        se *= config.se_inflation
    return EstimationResult(theta, _clip_se(se, config), iterations, converged, "mle")


def estimate_theta_eap(
    responses: Sequence[Response],
    config: Optional[ThetaEstimatorConfig] = None,
) -> EstimationResult:
    """Expected-a-posteriori theta: posterior mean and SD over fixed quadrature nodes."""

    config = config or ThetaEstimatorConfig()
    model = IrtModel.parse(config.model)
    nodes, prior = build_rule(
        config.quadrature,
        config.quadrature_points,
        config.prior_mean,
        config.prior_sd,
        config.theta_min,
        config.theta_max,
    )
    a, b, c, u = _response_arrays(responses, model)

    log_posterior = np.log(np.clip(prior, 1e-300, None))
    if u.size:
        # Rows are quadrature nodes, columns are responses.
        p = np.clip(probability_3pl(nodes[:, None], b[None, :], a[None, :], c[None, :]), _P_EPS, 1.0 - _P_EPS)
        log_posterior = log_posterior + np.sum(u * np.log(p) + (1.0 - u) * np.log(1.0 - p), axis=1)

    posterior = np.exp(log_posterior - log_posterior.max())
    posterior /= posterior.sum()
    mean = float(np.sum(nodes * posterior))
    sd = float(np.sqrt(np.sum((nodes - mean) ** 2 * posterior)))
    return EstimationResult(mean, _clip_se(sd, config), 1, True, "eap")


def update_ability(
    estimate: AbilityEstimate,
    responses: Sequence[Response],
    method: str = "eap",
    config: Optional[ThetaEstimatorConfig] = None,
    now: Optional[datetime] = None,
) -> AbilityEstimate:
    """Recompute an ability record from the full response set (never incremented in place)."""

    normalized = method.strip().lower()
    if normalized == "eap":
        result = estimate_theta_eap(responses, config)
    elif normalized == "mle":
        result = estimate_theta_mle(responses, config, initial_theta=estimate.theta)
    else:
        raise MalformedInputError(f"Unsupported estimation method '{method}'. Expected one of: eap, mle.")

    return replace(
        estimate,
        theta=result.theta,
        standard_error=result.standard_error,
        n_responses=len(responses),
        updated_at=now or datetime.now(),
    )

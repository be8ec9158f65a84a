# ABOUTME: Calibrates item parameters from pilot response matrices.
# ABOUTME: Alternates EAP ability passes with regularised Newton-Raphson item updates (EM style).

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from loguru import logger

from src.common.errors import MalformedInputError
from src.common.schemas import ItemParameter

from .estimation import ThetaEstimatorConfig
from .model import IrtModel, probability_3pl
from .quadrature import build_rule

_P_EPS = 1e-9


@dataclass(frozen=True)
class CalibrationConfig:
    """EM settings; the parameter clamps keep calibrated items in a usable range."""

    model: str = "2pl"
    max_iter: int = 100
    tolerance: float = 0.001
    newton_steps: int = 5
    ridge: float = 0.01
    discrimination_bounds: Tuple[float, float] = (0.2, 3.0)
    difficulty_bounds: Tuple[float, float] = (-4.0, 4.0)
    initial_guessing: float = 0.2
    estimator: ThetaEstimatorConfig = field(default_factory=ThetaEstimatorConfig)


@dataclass(frozen=True)
class CalibrationResult:
    items: List[ItemParameter]
    thetas: np.ndarray
    iterations: int
    converged: bool
    max_change: float


def response_matrix(
    log_frame: pd.DataFrame,
    person_col: str = "learner_id",
    item_col: str = "object_id",
    value_col: str = "correct",
) -> Tuple[np.ndarray, List[str], List[str]]:
    """
    Pivot a response-log frame into a persons x items matrix (NaN = unanswered).

    Repeated responses keep the most recent row in frame order.
    """

    missing = {person_col, item_col, value_col} - set(log_frame.columns)
    if missing:
        raise MalformedInputError(f"Response log is missing columns: {', '.join(sorted(missing))}")

    deduped = log_frame.drop_duplicates(subset=[person_col, item_col], keep="last")
    pivot = deduped.pivot(index=person_col, columns=item_col, values=value_col).astype(float)
    return pivot.to_numpy(), [str(p) for p in pivot.index], [str(i) for i in pivot.columns]


def _validate_matrix(matrix: np.ndarray) -> np.ndarray:
    data = np.asarray(matrix, dtype=float)
    if data.ndim != 2:
        raise MalformedInputError(f"Response matrix must be 2-D, got shape {data.shape}")
    observed = data[~np.isnan(data)]
    if observed.size == 0:
        raise MalformedInputError("Response matrix has no observed responses")
    if not np.all(np.isin(observed, (0.0, 1.0))):
        raise MalformedInputError("Response matrix may only contain 0, 1 or NaN")
    return data


def _initial_difficulties(data: np.ndarray, bounds: Tuple[float, float]) -> np.ndarray:
    counts = (~np.isnan(data)).sum(axis=0)
    totals = np.nansum(data, axis=0)
    p_correct = np.full(data.shape[1], 0.5)
    np.divide(totals, counts, out=p_correct, where=counts > 0)
    p_correct = np.clip(p_correct, 0.02, 0.98)
    return np.clip(-np.log(p_correct / (1.0 - p_correct)), *bounds)


def _eap_pass(data: np.ndarray, a, b, c, nodes, weights) -> np.ndarray:
    observed = ~np.isnan(data)
    outcomes = np.nan_to_num(data, nan=0.0)
    p = np.clip(probability_3pl(nodes[:, None], b[None, :], a[None, :], c[None, :]), _P_EPS, 1.0 - _P_EPS)
    # persons x nodes log-likelihood; unanswered cells contribute nothing.
    log_like = outcomes @ np.log(p).T + (observed - outcomes) @ np.log(1.0 - p).T
    log_post = log_like + np.log(np.clip(weights, 1e-300, None))[None, :]
    log_post -= log_post.max(axis=1, keepdims=True)
    posterior = np.exp(log_post)
    posterior /= posterior.sum(axis=1, keepdims=True)
    return posterior @ nodes


def _item_newton(theta, u, a, b, c, fix_discrimination: bool, config: CalibrationConfig):
    for _ in range(config.newton_steps):
        z = a * (theta - b)
        sig = 1.0 / (1.0 + np.exp(-np.clip(z, -35.0, 35.0)))
        p = np.clip(c + (1.0 - c) * sig, _P_EPS, 1.0 - _P_EPS)
        dp_dz = (1.0 - c) * sig * (1.0 - sig)
        resid = (u - p) / (p * (1.0 - p)) * dp_dz
        info_w = dp_dz ** 2 / (p * (1.0 - p))
        centered = theta - b

        grad_b = float(np.sum(resid * -a))
        info_bb = float(np.sum(info_w * a ** 2)) + config.ridge
        if fix_discrimination:
            delta_a, delta_b = 0.0, grad_b / info_bb
        else:
            grad_a = float(np.sum(resid * centered))
            info_aa = float(np.sum(info_w * centered ** 2)) + config.ridge
            info_ab = float(np.sum(info_w * centered * -a))
            hessian = np.array([[info_aa, info_ab], [info_ab, info_bb]])
            try:
                delta_a, delta_b = np.linalg.solve(hessian, np.array([grad_a, grad_b]))
            except np.linalg.LinAlgError:
                delta_a, delta_b = 0.0, grad_b / info_bb
        if not (np.isfinite(delta_a) and np.isfinite(delta_b)):
            break
        a = float(np.clip(a + delta_a, *config.discrimination_bounds))
        b = float(np.clip(b + delta_b, *config.difficulty_bounds))
    return a, b


def calibrate_items(
    matrix: np.ndarray,
    item_ids: Sequence[str],
    config: Optional[CalibrationConfig] = None,
) -> CalibrationResult:
    """
    Batch-calibrate item parameters from a persons x items response matrix.

    Each EM cycle runs an EAP pass for every person given the current items,
    standardises the abilities to fix the scale, then updates every item with
    ridge-regularised Newton-Raphson steps. Guessing stays at its initial value.
    """

    config = config or CalibrationConfig()
    model = IrtModel.parse(config.model)
    data = _validate_matrix(matrix)
    if data.shape[1] != len(item_ids):
        raise MalformedInputError(f"Got {len(item_ids)} item ids for {data.shape[1]} matrix columns")

    n_items = data.shape[1]
    a = np.ones(n_items)
    b = _initial_difficulties(data, config.difficulty_bounds)
    guess = config.initial_guessing if model is IrtModel.THREE_PL else 0.0
    c = np.full(n_items, guess)

    est = config.estimator
    nodes, weights = build_rule(est.quadrature, est.quadrature_points, 0.0, 1.0, est.theta_min, est.theta_max)

    thetas = np.zeros(data.shape[0])
    converged = False
    max_change = float("inf")
    iterations = 0
    for iterations in range(1, config.max_iter + 1):
        thetas = _eap_pass(data, a, b, c, nodes, weights)
        spread = thetas.std()
        if spread > 0:
            thetas = (thetas - thetas.mean()) / spread

        new_a = a.copy()
        new_b = b.copy()
        for j in range(n_items):
            observed = ~np.isnan(data[:, j])
            if not observed.any():
                continue
            new_a[j], new_b[j] = _item_newton(
                thetas[observed],
                data[observed, j],
                a[j],
                b[j],
                c[j],
                fix_discrimination=model is IrtModel.ONE_PL,
                config=config,
            )

        max_change = float(max(np.max(np.abs(new_a - a)), np.max(np.abs(new_b - b))))
        a, b = new_a, new_b
        logger.debug("Calibration iteration {}: max parameter change {:.5f}", iterations, max_change)
        if max_change < config.tolerance:
            converged = True
            break

    if not converged:
        logger.warning("Item calibration stopped after {} iterations (max change {:.4f})", iterations, max_change)

    items = [
        ItemParameter(item_id=str(item_id), difficulty=float(b[j]), discrimination=float(a[j]), guessing=float(c[j]))
        for j, item_id in enumerate(item_ids)
    ]
    return CalibrationResult(items=items, thetas=thetas, iterations=iterations, converged=converged, max_change=max_change)

# ABOUTME: Chooses the next practice item for adaptive testing.
# ABOUTME: Implements Fisher-information and posterior-weighted Kullback-Leibler selection.

from __future__ import annotations

from dataclasses import dataclass
from typing import Collection, Iterable, List, Optional, Union

import numpy as np

from src.common.checks import require_finite, require_range
from src.common.errors import NoCandidate
from src.common.schemas import ItemParameter

from .estimation import ThetaEstimatorConfig
from .model import IrtModel, fisher_information, probability
from .quadrature import build_rule

_P_EPS = 1e-9


@dataclass(frozen=True)
class ItemSelection:
    item_id: str
    information: float
    theta: float
    method: str


def _available(items: Iterable[ItemParameter], used_ids: Collection[str]) -> List[ItemParameter]:
    used = set(used_ids or ())
    return [item for item in items if item.item_id not in used]


def select_next_item(
    theta: float,
    items: Iterable[ItemParameter],
    used_ids: Collection[str] = (),
    model: Union[str, IrtModel] = IrtModel.THREE_PL,
) -> Union[ItemSelection, NoCandidate]:
    """Pick the unused item with maximum Fisher information at ``theta``."""

    theta = require_finite(theta, "theta")
    model = IrtModel.parse(model)
    candidates = _available(items, used_ids)
    if not candidates:
        return NoCandidate("item pool exhausted")

    best: Optional[ItemParameter] = None
    best_info = float("-inf")
    for item in candidates:
        info = float(fisher_information(theta, item, model))
        if info > best_info:
            best, best_info = item, info
    return ItemSelection(best.item_id, best_info, theta, "fisher")


def kl_information(
    theta_hat: float,
    item: ItemParameter,
    nodes: np.ndarray,
    weights: np.ndarray,
    model: IrtModel = IrtModel.THREE_PL,
) -> float:
    """KL divergence between response distributions at theta_hat and each node, weighted by the posterior."""

    p_hat = float(np.clip(probability(theta_hat, item, model), _P_EPS, 1.0 - _P_EPS))
    p = np.clip(probability(nodes, item, model), _P_EPS, 1.0 - _P_EPS)
    divergence = p_hat * np.log(p_hat / p) + (1.0 - p_hat) * np.log((1.0 - p_hat) / (1.0 - p))
    return float(np.sum(weights * divergence))


def select_item_kl(
    theta: float,
    standard_error: float,
    items: Iterable[ItemParameter],
    used_ids: Collection[str] = (),
    config: Optional[ThetaEstimatorConfig] = None,
) -> Union[ItemSelection, NoCandidate]:
    """
    Pick the unused item with maximum KL information over the posterior N(theta, se).

    Preferred over Fisher selection early in a session, when the estimate is
    uncertain and an item must discriminate across a band rather than a point.
    """

    theta = require_finite(theta, "theta")
    standard_error = require_range(standard_error, "standard_error", low=0.0)
    config = config or ThetaEstimatorConfig()
    model = IrtModel.parse(config.model)
    candidates = _available(items, used_ids)
    if not candidates:
        return NoCandidate("item pool exhausted")

    sd = max(standard_error, config.min_standard_error)
    nodes, weights = build_rule(
        config.quadrature,
        config.quadrature_points,
        prior_mean=theta,
        prior_sd=sd,
        low=theta - 4.0 * sd,
        high=theta + 4.0 * sd,
    )

    best: Optional[ItemParameter] = None
    best_info = float("-inf")
    for item in candidates:
        info = kl_information(theta, item, nodes, weights, model)
        if info > best_info:
            best, best_info = item, info
    return ItemSelection(best.item_id, best_info, theta, "kl")

# ABOUTME: Implements the 1PL/2PL/3PL logistic item response functions.
# ABOUTME: Provides vectorised probabilities and Fisher information for item parameters.

from __future__ import annotations

from enum import Enum
from typing import Union

import numpy as np

from src.common.errors import MalformedInputError
from src.common.schemas import ItemParameter

ArrayLike = Union[float, np.ndarray]


class IrtModel(str, Enum):
    ONE_PL = "1pl"
    TWO_PL = "2pl"
    THREE_PL = "3pl"

    @classmethod
    def parse(cls, value: Union[str, "IrtModel"]) -> "IrtModel":
        if isinstance(value, IrtModel):
            return value
        normalized = str(value).strip().lower()
        for member in cls:
            if member.value == normalized:
                return member
        raise MalformedInputError(f"Unsupported IRT model '{value}'. Expected one of: 1pl, 2pl, 3pl.")


def _logistic(x: ArrayLike) -> ArrayLike:
    # Clip the exponent so extreme thetas stay finite.
    return 1.0 / (1.0 + np.exp(-np.clip(x, -35.0, 35.0)))


def probability_1pl(theta: ArrayLike, difficulty: float) -> ArrayLike:
    """Rasch model: P = 1 / (1 + exp(-(theta - b)))."""
    return _logistic(np.asarray(theta, dtype=float) - difficulty)


def probability_2pl(theta: ArrayLike, difficulty: float, discrimination: float) -> ArrayLike:
    return _logistic(discrimination * (np.asarray(theta, dtype=float) - difficulty))


def probability_3pl(theta: ArrayLike, difficulty: float, discrimination: float, guessing: float) -> ArrayLike:
    """P = c + (1 - c) / (1 + exp(-a(theta - b)))."""
    return guessing + (1.0 - guessing) * probability_2pl(theta, difficulty, discrimination)


def effective_parameters(item: ItemParameter, model: IrtModel = IrtModel.THREE_PL):
    """Return the (a, b, c) triple the chosen model actually uses."""

    model = IrtModel.parse(model)
    if model is IrtModel.ONE_PL:
        return 1.0, item.difficulty, 0.0
    if model is IrtModel.TWO_PL:
        return item.discrimination, item.difficulty, 0.0
    return item.discrimination, item.difficulty, item.guessing


def probability(theta: ArrayLike, item: ItemParameter, model: IrtModel = IrtModel.THREE_PL) -> ArrayLike:
    a, b, c = effective_parameters(item, model)
    return probability_3pl(theta, b, a, c)


def fisher_information(theta: ArrayLike, item: ItemParameter, model: IrtModel = IrtModel.THREE_PL) -> ArrayLike:
    """
    Item information at ``theta``.

    I = a² · (Q / P) · ((P - c) / (1 - c))², which reduces to a² · P · Q when c = 0.
    """

    a, b, c = effective_parameters(item, model)
    p = probability_3pl(theta, b, a, c)
    q = 1.0 - p
    p_safe = np.clip(p, 1e-12, 1.0)
    return (a ** 2) * (q / p_safe) * ((p - c) / (1.0 - c)) ** 2

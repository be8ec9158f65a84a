# ABOUTME: Checks how well the ability model predicts observed correctness.
# ABOUTME: Builds prediction frames from the response log and computes AUC, AP, Brier, and calibration error.

from __future__ import annotations

from typing import Iterable, Mapping, Sequence, Union

import numpy as np
import pandas as pd
from loguru import logger
from sklearn.metrics import average_precision_score, brier_score_loss, log_loss, roc_auc_score

from src.irt.model import IrtModel, probability

from .errors import MalformedInputError
from .schemas import COMPONENT_DIMENSIONS, AbilityEstimate, ItemParameter, ResponseRecord

SUPPORTED_METRICS = ("auc", "average_precision", "calibration_ece", "brier", "log_loss")
GLOBAL_DIMENSION = "global"


def build_prediction_frame(
    records: Sequence[ResponseRecord],
    abilities: Mapping[str, AbilityEstimate],
    items: Mapping[str, ItemParameter],
    model: Union[str, IrtModel] = IrtModel.THREE_PL,
) -> pd.DataFrame:
    """
    One row per response with the model's P(correct) as ``y_pred``.

    Abilities are looked up by the component's dimension name, then by
    ``global``; responses without a calibrated item or ability are skipped.
    """

    model = IrtModel.parse(model)
    rows = []
    skipped = 0
    for record in records:
        item = items.get(record.object_id)
        ability = abilities.get(COMPONENT_DIMENSIONS[record.component]) or abilities.get(GLOBAL_DIMENSION)
        if item is None or ability is None:
            skipped += 1
            continue
        rows.append(
            {
                "object_id": record.object_id,
                "component": record.component.value,
                "session_id": record.session_id,
                "timestamp": record.timestamp,
                "theta": ability.theta,
                "y_true": int(record.correct),
                "y_pred": float(probability(ability.theta, item, model)),
            }
        )
    if skipped:
        logger.debug("Prediction frame skipped {} responses without item or ability", skipped)
    columns = ["object_id", "component", "session_id", "timestamp", "theta", "y_true", "y_pred"]
    return pd.DataFrame(rows, columns=columns)


def evaluate_predictions(predictions: pd.DataFrame, metrics: Iterable[str]) -> Mapping[str, float]:
    """
    Score predicted P(correct) against observed outcomes.

    Parameters
    ----------
    predictions : pd.DataFrame
        Needs 'y_true' (0/1) and 'y_pred' (probability) columns.
    metrics : Iterable[str]
        Any of 'auc', 'average_precision', 'calibration_ece', 'brier', 'log_loss'.
    """

    metrics = list(metrics)
    unknown = [m for m in metrics if m not in SUPPORTED_METRICS]
    if unknown:
        raise MalformedInputError(f"Unsupported metric '{unknown[0]}'. Expected one of: {', '.join(SUPPORTED_METRICS)}.")
    if predictions is None or len(predictions) == 0:
        return {metric: np.nan for metric in metrics}

    y_true = predictions["y_true"].astype(float).to_numpy()
    y_pred = predictions["y_pred"].astype(float).clip(0.0, 1.0).to_numpy()
    both_classes = len(np.unique(y_true)) == 2

    results = {}
    for metric in metrics:
        if metric == "auc":
            results[metric] = float(roc_auc_score(y_true, y_pred)) if both_classes else np.nan
        elif metric == "average_precision":
            results[metric] = float(average_precision_score(y_true, y_pred))
        elif metric == "calibration_ece":
            results[metric] = expected_calibration_error(y_true, y_pred)
        elif metric == "brier":
            results[metric] = float(brier_score_loss(y_true, y_pred))
        else:
            results[metric] = float(log_loss(y_true, np.clip(y_pred, 1e-9, 1 - 1e-9), labels=[0, 1]))
    return results


def expected_calibration_error(y_true: np.ndarray, y_pred: np.ndarray, num_bins: int = 10) -> float:
    """Count-weighted gap between mean outcome and mean prediction over equal-width bins."""

    y_true = np.asarray(y_true, dtype=float)
    y_pred = np.asarray(y_pred, dtype=float)
    if y_true.size == 0:
        return float("nan")
    bins = np.clip((y_pred * num_bins).astype(int), 0, num_bins - 1)
    counts = np.bincount(bins, minlength=num_bins)
    observed = np.bincount(bins, weights=y_true, minlength=num_bins)
    predicted = np.bincount(bins, weights=y_pred, minlength=num_bins)
    filled = counts > 0
    gaps = np.abs(observed[filled] - predicted[filled]) / counts[filled]
    return float(np.sum(counts[filled] / y_true.size * gaps))

# ABOUTME: Exposes the item-response ability estimator.
# ABOUTME: Groups the logistic model, theta estimation, item selection, and item calibration.

from .calibration import CalibrationConfig, CalibrationResult, calibrate_items, response_matrix
from .estimation import EstimationResult, ThetaEstimatorConfig, estimate_theta_eap, estimate_theta_mle, update_ability
from .model import IrtModel, fisher_information, probability, probability_1pl, probability_2pl, probability_3pl
from .selection import ItemSelection, kl_information, select_item_kl, select_next_item

__all__ = [
    "CalibrationConfig",
    "CalibrationResult",
    "EstimationResult",
    "IrtModel",
    "ItemSelection",
    "ThetaEstimatorConfig",
    "calibrate_items",
    "estimate_theta_eap",
    "estimate_theta_mle",
    "fisher_information",
    "kl_information",
    "probability",
    "probability_1pl",
    "probability_2pl",
    "probability_3pl",
    "response_matrix",
    "select_item_kl",
    "select_next_item",
    "update_ability",
]

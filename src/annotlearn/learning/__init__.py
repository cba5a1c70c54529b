"""Learning algorithms for annotlearn.

Provides Laplace-smoothed Naive Bayes with ROC evaluation and calibration bands.
"""

from annotlearn.learning.naive_bayes import (
    BayesianModel,
    ModelLearner,
    ROCCurve,
    build_model,
    determine_thresholds,
)

__all__ = [
    "BayesianModel",
    "ModelLearner",
    "ROCCurve",
    "build_model",
    "determine_thresholds",
]

"""Prediction accuracy scoring and model recalibration.

Modules:
    scoring       — Brier score, negative log-likelihood, ECE, reliability curve
    accuracy      — Accuracy records, aggregate metrics, insights, period comparison
    adaptive      — Feedback-driven parameter learning between recalibrations
    recalibration — Miscalibration detection and bounded parameter correction
"""

from cycle_forecast.calibration.accuracy import AccuracyMetricsCalculator
from cycle_forecast.calibration.adaptive import AdaptiveLearningEngine, ModelUpdateResult
from cycle_forecast.calibration.recalibration import (
    CalibrationAssessment,
    CalibrationReport,
    RecalibrationEngine,
    RecalibrationMethod,
    RecalibrationResult,
    RecalibrationStrategy,
)
from cycle_forecast.calibration.scoring import (
    CalibrationPoint,
    ScoringInputError,
    brier_score,
    calibration_score,
    negative_log_likelihood,
    reliability_curve,
)

__all__ = [
    "AccuracyMetricsCalculator",
    "AdaptiveLearningEngine",
    "ModelUpdateResult",
    "CalibrationAssessment",
    "CalibrationReport",
    "RecalibrationEngine",
    "RecalibrationMethod",
    "RecalibrationResult",
    "RecalibrationStrategy",
    "CalibrationPoint",
    "ScoringInputError",
    "brier_score",
    "calibration_score",
    "negative_log_likelihood",
    "reliability_curve",
]

"""Cycle Forecast: probabilistic menstrual cycle forecasting engine.

Predicts the next period and the fertility window from a user's own cycle
history, scores how well past predictions held up, recalibrates the model
when its confidence drifts, and turns prediction uncertainty into
regret-aware decision guidance.  Pure, synchronous, in-process: no I/O apart
from reading the bundled configuration.

Subpackages:
    cycle/       — Pattern analysis, Bayesian update, period / ovulation prediction
    calibration/ — Scoring rules, accuracy tracking, adaptive learning, recalibration
    decision/    — Regret analysis and decision support

Core modules:
    base          — Canonical value objects (CycleRecord, ModelParameters, predictions, …)
    config        — Environment settings and logging setup
    config_loader — Load/validate/hot-reload forecast_config.yaml
    schemas       — Pydantic schemas and JSON serialization of output objects
"""

from cycle_forecast.base import (
    AccuracyRecord,
    CycleRecord,
    DayEntry,
    DecisionContext,
    DecisionType,
    InvalidModelParametersError,
    ModelParameters,
    OvulationPrediction,
    PeriodPrediction,
    StakesLevel,
    UserDecision,
)
from cycle_forecast.calibration import (
    AccuracyMetricsCalculator,
    AdaptiveLearningEngine,
    RecalibrationEngine,
    RecalibrationMethod,
    ScoringInputError,
)
from cycle_forecast.config_loader import (
    ConfigValidationError,
    ForecastConfig,
    get_forecast_config,
    load_forecast_config,
    reload_forecast_config,
)
from cycle_forecast.cycle import BayesianInferenceEngine, CyclePatternAnalyzer, PredictionService
from cycle_forecast.decision import DecisionSupportEngine, RegretAnalyzer
from cycle_forecast.schemas import to_json_dict

__all__ = [
    "AccuracyRecord",
    "CycleRecord",
    "DayEntry",
    "DecisionContext",
    "DecisionType",
    "InvalidModelParametersError",
    "ModelParameters",
    "OvulationPrediction",
    "PeriodPrediction",
    "StakesLevel",
    "UserDecision",
    "AccuracyMetricsCalculator",
    "AdaptiveLearningEngine",
    "RecalibrationEngine",
    "RecalibrationMethod",
    "ScoringInputError",
    "ConfigValidationError",
    "ForecastConfig",
    "get_forecast_config",
    "load_forecast_config",
    "reload_forecast_config",
    "BayesianInferenceEngine",
    "CyclePatternAnalyzer",
    "PredictionService",
    "DecisionSupportEngine",
    "RegretAnalyzer",
    "to_json_dict",
]

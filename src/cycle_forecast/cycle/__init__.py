"""Cycle timing forecasts.

Modules:
    pattern_analyzer — Length, variance, trend, seasonality and outliers from history
    bayesian         — Conjugate normal-normal update of the cycle length
    predictor        — Period / ovulation prediction with uncertainty
"""

from cycle_forecast.cycle.bayesian import (
    BayesianInference,
    BayesianInferenceEngine,
    ProbabilityDistribution,
)
from cycle_forecast.cycle.pattern_analyzer import (
    CyclePattern,
    CyclePatternAnalyzer,
    SeasonalPattern,
)
from cycle_forecast.cycle.predictor import PredictionService

__all__ = [
    "BayesianInference",
    "BayesianInferenceEngine",
    "ProbabilityDistribution",
    "CyclePattern",
    "CyclePatternAnalyzer",
    "SeasonalPattern",
    "PredictionService",
]

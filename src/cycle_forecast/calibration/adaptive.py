"""Adaptive learning: nudge the model parameters after every few outcomes.

Recalibration is a heavyweight correction that needs 30+ verified
predictions.  Between recalibrations this engine moves the cycle length
prior toward what the user's recent cycles actually look like, as an
exponential moving average whose step is ``adaptive_learning_rate``.  It
also tunes how much the user's own history is trusted through
``personal_history_weight``.

Both parameters are clamped to the ``adaptive_learning`` config bounds.
"""

from __future__ import annotations

import logging
import statistics
from collections import defaultdict
from dataclasses import dataclass, replace
from typing import Sequence

from cycle_forecast.base import AccuracyRecord, CycleRecord, ModelParameters
from cycle_forecast.config_loader import ForecastConfig, get_forecast_config
from cycle_forecast.cycle.pattern_analyzer import CyclePatternAnalyzer

logger = logging.getLogger("cycle_forecast.calibration.adaptive")

# Learning-rate schedule
LOW_ACCURACY = 0.4
HIGH_ACCURACY = 0.8
DECLINE_THRESHOLD = -0.1

# Personal history helps above, hurts below
HELPFUL_HISTORY = 0.8
HARMFUL_HISTORY = 0.5

MIN_SEASONAL_VARIATION = 0.05
MAX_SEASONAL_VARIATION = 0.3
_SEASONAL_ERROR_MIN_RECORDS = 8
_SEASONAL_ERROR_MIN_MONTHS = 4
_SEASONAL_ERROR_SPREAD = 0.3

# Variance at which a cycle history counts as fully irregular
_IRREGULAR_VARIANCE = 25.0
_MAX_ACCURACY_IMPROVEMENT = 0.2


@dataclass(frozen=True)
class ModelUpdateResult:
    """Outcome of one adaptive update.

    Attributes:
        success:                 True if an update was made.
        new_parameters:          Updated parameters, or an unchanged copy.
        accuracy_improvement:    Estimated gain in hit rate (0.0–0.2).
        calibration_improvement: Estimated reduction in calibration error.
        reason:                  Human-readable explanation.
    """

    success: bool
    new_parameters: ModelParameters
    accuracy_improvement: float
    calibration_improvement: float
    reason: str


class AdaptiveLearningEngine:
    """Update ModelParameters from prediction-accuracy feedback.

    Usage::

        engine = AdaptiveLearningEngine()
        result = engine.update_model_from_accuracy(params, history, recent_cycles)
        params = engine.update_personal_history_weight(
            result.new_parameters, cycles, history
        )
        service.update_model_parameters(params)
    """

    def __init__(self, config: ForecastConfig | None = None) -> None:
        self._config = config or get_forecast_config()
        self._analyzer = CyclePatternAnalyzer(self._config)

    @property
    def _al_config(self):
        return self._config.adaptive

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def update_model_from_accuracy(
        self,
        params: ModelParameters,
        history: Sequence[AccuracyRecord],
        recent_cycles: Sequence[CycleRecord],
    ) -> ModelUpdateResult:
        """Blend recent cycle statistics into the prior when accuracy is lacking.

        Args:
            params:        Current model parameters (not modified).
            history:       Accuracy records, oldest first.
            recent_cycles: The user's latest cycle records.

        Returns:
            ModelUpdateResult; ``success`` is False when there is too little
            feedback or the model is already performing well.
        """
        al = self._al_config
        if len(history) < al.min_records:
            return self._unchanged(params, "Insufficient accuracy data for learning")

        recent = self.recent_accuracy(history)
        trend = self.accuracy_trend(history)
        if recent > al.accuracy_threshold and trend >= 0:
            return self._unchanged(params, "Model performance is satisfactory")

        rate = self.adaptive_learning_rate(recent, trend, params.adaptive_learning_rate)
        new_params = self._parameters_from_errors(params, history, recent_cycles, rate)
        accuracy_gain = self.estimate_accuracy_improvement(params, new_params, history)

        logger.info(
            "Adaptive update at rate %.3f: mean %.2f → %.2f, variance %.2f → %.2f",
            rate,
            params.cycle_length_mean,
            new_params.cycle_length_mean,
            params.cycle_length_variance,
            new_params.cycle_length_variance,
        )
        return ModelUpdateResult(
            success=True,
            new_parameters=new_params,
            accuracy_improvement=accuracy_gain,
            calibration_improvement=accuracy_gain * 0.5,
            reason=f"Model updated based on {len(history)} accuracy records",
        )

    def update_personal_history_weight(
        self,
        params: ModelParameters,
        cycles: Sequence[CycleRecord],
        history: Sequence[AccuracyRecord],
    ) -> ModelParameters:
        """Trust the user's own history more when it predicts well, less when it does not.

        The weight moves by ``adaptive_learning_rate`` per call and stays
        within the configured bounds.
        """
        al = self._al_config
        if len(cycles) < 3:
            return params.copy()

        impact = self.personal_history_impact(cycles, history)
        weight = params.personal_history_weight
        if impact > HELPFUL_HISTORY:
            weight += params.adaptive_learning_rate
        elif impact < HARMFUL_HISTORY:
            weight -= params.adaptive_learning_rate
        weight = min(al.max_history_weight, max(al.min_history_weight, weight))

        logger.debug(
            "History impact %.2f: weight %.2f → %.2f",
            impact,
            params.personal_history_weight,
            weight,
        )
        return replace(params, personal_history_weight=weight).validate()

    def reset_to_defaults(
        self, params: ModelParameters, history: Sequence[AccuracyRecord]
    ) -> ModelUpdateResult:
        """Fall back to the population prior when recent accuracy has collapsed."""
        al = self._al_config
        if len(history) < al.min_records:
            return self._unchanged(params, "Insufficient accuracy data for learning")
        if self.recent_accuracy(history) > al.reset_accuracy:
            return self._unchanged(params, "Model performance not severely degraded")

        logger.warning(
            "Recent accuracy %.2f at or below %.2f; resetting model parameters to defaults",
            self.recent_accuracy(history),
            al.reset_accuracy,
        )
        return ModelUpdateResult(
            success=True,
            new_parameters=self._config.default_parameters(),
            accuracy_improvement=0.1,
            calibration_improvement=0.05,
            reason="Model reset to defaults due to poor performance",
        )

    # ------------------------------------------------------------------
    # Performance signals
    # ------------------------------------------------------------------

    def recent_accuracy(self, history: Sequence[AccuracyRecord]) -> float:
        """Hit rate over the most recent ``recent_window`` records (0 when empty)."""
        recent = history[-self._al_config.recent_window:]
        if not recent:
            return 0.0
        return sum(r.was_accurate for r in recent) / len(recent)

    @staticmethod
    def accuracy_trend(history: Sequence[AccuracyRecord]) -> float:
        """Second-half minus first-half hit rate; 0 with fewer than 4 records."""
        if len(history) < 4:
            return 0.0
        mid = len(history) // 2
        first, second = history[:mid], history[mid:]
        return sum(r.was_accurate for r in second) / len(second) - sum(
            r.was_accurate for r in first
        ) / len(first)

    def adaptive_learning_rate(self, recent: float, trend: float, current: float) -> float:
        """Learn faster when accuracy is poor or falling, slower when it is good."""
        al = self._al_config
        rate = current
        if recent < LOW_ACCURACY:
            rate = current * 1.5
        elif trend < DECLINE_THRESHOLD:
            rate = current * 1.2
        elif recent > HIGH_ACCURACY and abs(trend) < abs(DECLINE_THRESHOLD):
            rate = current * 0.8
        return min(al.max_learning_rate, max(al.min_learning_rate, rate))

    def personal_history_impact(
        self, cycles: Sequence[CycleRecord], history: Sequence[AccuracyRecord]
    ) -> float:
        """0–1 estimate of how useful the personal history is; 0.5 when unknown.

        Mean of the recent hit rate and cycle regularity.
        """
        if len(cycles) < 5 or len(history) < 3:
            return 0.5
        lengths = self._analyzer.cycle_lengths(cycles)
        if len(lengths) < 2:
            return 0.5
        regularity = max(0.0, 1 - statistics.variance(lengths) / _IRREGULAR_VARIANCE)
        return (self.recent_accuracy(history) + regularity) / 2

    @staticmethod
    def has_seasonal_errors(records: Sequence[AccuracyRecord]) -> bool:
        """True if some calendar months carry clearly larger errors than others."""
        if len(records) < _SEASONAL_ERROR_MIN_RECORDS:
            return False
        by_month: dict[int, list[int]] = defaultdict(list)
        for record in records:
            by_month[record.prediction_date.month].append(abs(record.error_days or 0))
        if len(by_month) < _SEASONAL_ERROR_MIN_MONTHS:
            return False

        averages = [statistics.mean(errors) for errors in by_month.values()]
        overall = statistics.mean(averages)
        return any(abs(avg - overall) > overall * _SEASONAL_ERROR_SPREAD for avg in averages)

    def estimate_accuracy_improvement(
        self, old: ModelParameters, new: ModelParameters, history: Sequence[AccuracyRecord]
    ) -> float:
        """Conservative share of the remaining error the update may recover."""
        change = abs(new.cycle_length_mean - old.cycle_length_mean) + abs(
            new.cycle_length_variance - old.cycle_length_variance
        )
        change_score = min(1.0, change / 10)
        remaining = 1 - self.recent_accuracy(history)
        return min(_MAX_ACCURACY_IMPROVEMENT, change_score * remaining * 0.3)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _parameters_from_errors(
        self,
        params: ModelParameters,
        history: Sequence[AccuracyRecord],
        recent_cycles: Sequence[CycleRecord],
        rate: float,
    ) -> ModelParameters:
        recent = history[-self._al_config.error_window:]
        errors = [r.error_days or 0 for r in recent]
        error_variance = statistics.variance(errors) if len(errors) > 1 else 1.0

        lengths = self._analyzer.cycle_lengths(recent_cycles)
        actual_mean = statistics.mean(lengths) if lengths else params.cycle_length_mean
        actual_variance = (
            statistics.variance(lengths) if len(lengths) > 1 else params.cycle_length_variance
        )

        seasonal = params.seasonal_variation
        if self.has_seasonal_errors(recent):
            seasonal = min(MAX_SEASONAL_VARIATION, seasonal + rate * 0.1)
        elif error_variance < 2:
            seasonal = max(MIN_SEASONAL_VARIATION, seasonal - rate * 0.05)

        return replace(
            params,
            cycle_length_mean=(1 - rate) * params.cycle_length_mean + rate * actual_mean,
            cycle_length_variance=(1 - rate) * params.cycle_length_variance
            + rate * max(actual_variance, error_variance),
            seasonal_variation=seasonal,
            adaptive_learning_rate=rate,
        ).validate()

    @staticmethod
    def _unchanged(params: ModelParameters, reason: str) -> ModelUpdateResult:
        logger.debug("No adaptive update: %s", reason)
        return ModelUpdateResult(
            success=False,
            new_parameters=params.copy(),
            accuracy_improvement=0.0,
            calibration_improvement=0.0,
            reason=reason,
        )

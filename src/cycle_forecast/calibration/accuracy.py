"""Prediction accuracy tracking and scoring.

Once the true period or ovulation date is known, each prediction becomes an
AccuracyRecord.  A record's confidence is the probability mass the prediction
put within the accuracy threshold (±2 days) of its predicted date; its outcome
is whether the actual date landed inside that threshold.  Histories of those
records are scored with the proper scoring rules in ``scoring``.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Sequence

from cycle_forecast.base import (
    AccuracyComparison,
    AccuracyInsights,
    AccuracyMetrics,
    AccuracyRecord,
    AccuracyTrends,
    OvulationPrediction,
    PeriodPrediction,
    Prediction,
    PredictionType,
    parse_date,
)
from cycle_forecast.calibration.scoring import (
    brier_score,
    calibration_score,
    negative_log_likelihood,
)
from cycle_forecast.config_loader import ForecastConfig, get_forecast_config

logger = logging.getLogger("cycle_forecast.calibration.accuracy")

DEFAULT_BRIER = 0.5
DEFAULT_NLL = 1.0
DEFAULT_CALIBRATION = 0.0

# Performance bands
EXCELLENT_BRIER = 0.1
GOOD_BRIER = 0.2
WELL_CALIBRATED = 0.1

TREND_WINDOW = 10
TREND_THRESHOLD = 0.1


class AccuracyMetricsCalculator:
    """Score predictions against what actually happened.

    Usage::

        calc = AccuracyMetricsCalculator()
        record = calc.track_period_accuracy(prediction, actual_date)
        metrics = calc.calculate_accuracy_metrics(history + [record])
        insights = calc.generate_accuracy_insights(metrics)
    """

    def __init__(self, config: ForecastConfig | None = None) -> None:
        self._config = config or get_forecast_config()

    @property
    def _acc_config(self):
        return self._config.accuracy

    # ------------------------------------------------------------------
    # Scoring rules
    # ------------------------------------------------------------------

    def calculate_brier_score(
        self, probabilities: Sequence[float], outcomes: Sequence[bool | int]
    ) -> float:
        return brier_score(probabilities, outcomes)

    def calculate_negative_log_likelihood(
        self, probabilities: Sequence[float], outcomes: Sequence[bool | int]
    ) -> float:
        return negative_log_likelihood(probabilities, outcomes, self._acc_config.nll_epsilon)

    def calculate_calibration_score(
        self, probabilities: Sequence[float], outcomes: Sequence[bool | int]
    ) -> float:
        return calibration_score(probabilities, outcomes, self._acc_config.calibration_bins)

    # ------------------------------------------------------------------
    # Tracking
    # ------------------------------------------------------------------

    def track_period_accuracy(
        self, prediction: PeriodPrediction, actual_date: date | str | None
    ) -> AccuracyRecord:
        """Build the accuracy record for a period prediction."""
        return self._track(prediction, actual_date, PredictionType.PERIOD)

    def track_ovulation_accuracy(
        self, prediction: OvulationPrediction, actual_date: date | str | None
    ) -> AccuracyRecord:
        """Build the accuracy record for an ovulation prediction.

        Ovulation is often never confirmed; an unknown date scores as an
        inaccurate prediction with the maximal Brier penalty.
        """
        return self._track(prediction, actual_date, PredictionType.OVULATION)

    def confidence_within_threshold(self, prediction: Prediction) -> float:
        """Probability mass within ±threshold days of the predicted date."""
        threshold = self._acc_config.accurate_within_days
        mass = sum(
            p
            for offset, p in zip(
                prediction.distribution_offsets, prediction.probability_distribution
            )
            if abs(offset) <= threshold
        )
        return min(1.0, max(0.0, mass))

    def _track(
        self,
        prediction: Prediction,
        actual_date: date | str | None,
        prediction_type: PredictionType,
    ) -> AccuracyRecord:
        confidence = self.confidence_within_threshold(prediction)
        actual = parse_date(actual_date)
        if actual is None:
            return AccuracyRecord(
                prediction_date=prediction.predicted_date,
                actual_date=None,
                confidence_level=confidence,
                was_accurate=False,
                error_days=None,
                brier_score=1.0,
                prediction_type=prediction_type,
            )

        error_days = abs((actual - prediction.predicted_date).days)
        was_accurate = error_days <= self._acc_config.accurate_within_days
        record = AccuracyRecord(
            prediction_date=prediction.predicted_date,
            actual_date=actual,
            confidence_level=confidence,
            was_accurate=was_accurate,
            error_days=error_days,
            brier_score=(confidence - float(was_accurate)) ** 2,
            prediction_type=prediction_type,
        )
        logger.debug(
            "Tracked %s prediction %s vs actual %s: error=%d accurate=%s",
            prediction_type.value,
            prediction.predicted_date,
            actual,
            error_days,
            was_accurate,
        )
        return record

    # ------------------------------------------------------------------
    # Aggregation
    # ------------------------------------------------------------------

    def calculate_accuracy_metrics(self, history: Sequence[AccuracyRecord]) -> AccuracyMetrics:
        """Aggregate Brier, NLL and calibration over the retained history.

        Only the most recent ``history_limit`` records are kept.  Records
        whose actual date never became known are retained but not scored.
        """
        retained = tuple(history[-self._acc_config.history_limit:])
        verified = [record for record in retained if record.is_verified]
        if not verified:
            return AccuracyMetrics(
                brier_score=DEFAULT_BRIER,
                negative_log_likelihood=DEFAULT_NLL,
                calibration_score=DEFAULT_CALIBRATION,
                accuracy_history=retained,
            )

        probabilities = [record.confidence_level for record in verified]
        outcomes = [record.was_accurate for record in verified]
        return AccuracyMetrics(
            brier_score=self.calculate_brier_score(probabilities, outcomes),
            negative_log_likelihood=self.calculate_negative_log_likelihood(probabilities, outcomes),
            calibration_score=self.calculate_calibration_score(probabilities, outcomes),
            accuracy_history=retained,
        )

    def generate_accuracy_insights(self, metrics: AccuracyMetrics) -> AccuracyInsights:
        """Classify performance and calibration and suggest next steps."""
        if metrics.brier_score < EXCELLENT_BRIER:
            performance = "excellent"
        elif metrics.brier_score < GOOD_BRIER:
            performance = "good"
        else:
            performance = "needs-improvement"

        if metrics.calibration_score < WELL_CALIBRATED:
            calibration = "well-calibrated"
        else:
            calibration = "poorly-calibrated"

        trends = self.analyze_trends(metrics.accuracy_history)

        recommendations: list[str] = []
        if performance == "needs-improvement":
            recommendations.append(
                "Consider logging more cycle data to improve prediction accuracy"
            )
        if calibration == "poorly-calibrated":
            recommendations.append(
                "Confidence levels may need recalibration: predictions appear over- or "
                "under-confident"
            )
        if trends.is_improving:
            recommendations.append("Prediction accuracy is improving as more data is collected")
        elif trends.is_deteriorating:
            recommendations.append(
                "Recent predictions show declining accuracy: cycle patterns may be changing"
            )

        return AccuracyInsights(
            overall_performance=performance,
            calibration_quality=calibration,
            recommendations=tuple(recommendations),
            trends=trends,
        )

    @staticmethod
    def analyze_trends(history: Sequence[AccuracyRecord]) -> AccuracyTrends:
        """Compare the hit rate of the last 10 records with the 10 before."""
        if len(history) <= TREND_WINDOW:
            return AccuracyTrends(is_improving=False, is_deteriorating=False, is_stable=True)

        recent = history[-TREND_WINDOW:]
        older = history[-2 * TREND_WINDOW:-TREND_WINDOW]
        recent_rate = sum(r.was_accurate for r in recent) / len(recent)
        older_rate = sum(r.was_accurate for r in older) / len(older)
        change = recent_rate - older_rate
        return AccuracyTrends(
            is_improving=change > TREND_THRESHOLD,
            is_deteriorating=change < -TREND_THRESHOLD,
            is_stable=abs(change) <= TREND_THRESHOLD,
        )

    def compare_accuracy_periods(
        self,
        recent: Sequence[AccuracyRecord],
        older: Sequence[AccuracyRecord],
    ) -> AccuracyComparison:
        """Compare two windows of history; positive improvements mean better."""
        recent_metrics = self.calculate_accuracy_metrics(recent)
        older_metrics = self.calculate_accuracy_metrics(older)
        brier_gain = older_metrics.brier_score - recent_metrics.brier_score
        calibration_gain = older_metrics.calibration_score - recent_metrics.calibration_score
        threshold = self._acc_config.significant_improvement
        return AccuracyComparison(
            recent_brier_score=recent_metrics.brier_score,
            older_brier_score=older_metrics.brier_score,
            brier_score_improvement=brier_gain,
            recent_calibration=recent_metrics.calibration_score,
            older_calibration=older_metrics.calibration_score,
            calibration_improvement=calibration_gain,
            significant_improvement=brier_gain > threshold or calibration_gain > threshold,
        )

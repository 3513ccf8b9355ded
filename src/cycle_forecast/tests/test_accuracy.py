"""Tests for accuracy tracking, aggregate metrics, insights and comparisons."""

from __future__ import annotations

from datetime import date, timedelta

import pytest

from cycle_forecast.base import (
    AccuracyRecord,
    CycleRecord,
    PeriodPrediction,
    PredictionType,
)
from cycle_forecast.calibration.accuracy import (
    DEFAULT_BRIER,
    DEFAULT_CALIBRATION,
    DEFAULT_NLL,
    AccuracyMetricsCalculator,
)
from cycle_forecast.config_loader import ForecastConfig
from cycle_forecast.cycle.predictor import PredictionService
from cycle_forecast.tests.conftest import make_record


@pytest.fixture
def calculator(forecast_config: ForecastConfig) -> AccuracyMetricsCalculator:
    return AccuracyMetricsCalculator(forecast_config)


@pytest.fixture
def period_prediction(
    forecast_config: ForecastConfig, regular_cycles: list[CycleRecord]
) -> PeriodPrediction:
    return PredictionService(config=forecast_config).predict_next_period(regular_cycles)


def unverified_record() -> AccuracyRecord:
    return AccuracyRecord(
        prediction_date=date(2025, 1, 1),
        actual_date=None,
        confidence_level=0.6,
        was_accurate=False,
        error_days=None,
        brier_score=1.0,
    )


# ---------------------------------------------------------------------------
# Tracking
# ---------------------------------------------------------------------------


class TestTracking:
    def test_accurate_period(
        self, calculator: AccuracyMetricsCalculator, period_prediction: PeriodPrediction
    ) -> None:
        actual = period_prediction.next_period_start + timedelta(days=1)
        record = calculator.track_period_accuracy(period_prediction, actual)
        assert record.was_accurate
        assert record.error_days == 1
        assert record.prediction_type is PredictionType.PERIOD
        assert record.is_verified
        assert record.brier_score == pytest.approx((record.confidence_level - 1.0) ** 2)

    def test_inaccurate_period(
        self, calculator: AccuracyMetricsCalculator, period_prediction: PeriodPrediction
    ) -> None:
        actual = period_prediction.next_period_start - timedelta(days=5)
        record = calculator.track_period_accuracy(period_prediction, actual)
        assert not record.was_accurate
        assert record.error_days == 5
        assert record.brier_score == pytest.approx(record.confidence_level**2)

    def test_threshold_is_inclusive(
        self, calculator: AccuracyMetricsCalculator, period_prediction: PeriodPrediction
    ) -> None:
        actual = period_prediction.next_period_start + timedelta(days=2)
        assert calculator.track_period_accuracy(period_prediction, actual).was_accurate

    def test_iso_string_actual(
        self, calculator: AccuracyMetricsCalculator, period_prediction: PeriodPrediction
    ) -> None:
        actual = period_prediction.next_period_start.isoformat()
        record = calculator.track_period_accuracy(period_prediction, actual)
        assert record.error_days == 0

    def test_confidence_is_mass_within_threshold(
        self, calculator: AccuracyMetricsCalculator, period_prediction: PeriodPrediction
    ) -> None:
        expected = sum(period_prediction.probability_distribution[5:10])
        assert calculator.confidence_within_threshold(period_prediction) == pytest.approx(
            expected
        )

    def test_unknown_ovulation_date(
        self,
        calculator: AccuracyMetricsCalculator,
        forecast_config: ForecastConfig,
        regular_cycles: list[CycleRecord],
    ) -> None:
        """Unconfirmed ovulation scores as inaccurate with the maximal penalty."""
        ovulation = PredictionService(config=forecast_config).predict_ovulation(regular_cycles)
        record = calculator.track_ovulation_accuracy(ovulation, None)
        assert not record.was_accurate
        assert not record.is_verified
        assert record.error_days is None
        assert record.brier_score == 1.0
        assert record.prediction_type is PredictionType.OVULATION


# ---------------------------------------------------------------------------
# Aggregate metrics
# ---------------------------------------------------------------------------


class TestAccuracyMetrics:
    def test_empty_history_defaults(self, calculator: AccuracyMetricsCalculator) -> None:
        metrics = calculator.calculate_accuracy_metrics([])
        assert metrics.brier_score == DEFAULT_BRIER
        assert metrics.negative_log_likelihood == DEFAULT_NLL
        assert metrics.calibration_score == DEFAULT_CALIBRATION

    def test_unverified_records_are_not_scored(
        self, calculator: AccuracyMetricsCalculator
    ) -> None:
        history = [unverified_record(), unverified_record()]
        metrics = calculator.calculate_accuracy_metrics(history)
        assert metrics.brier_score == DEFAULT_BRIER
        assert len(metrics.accuracy_history) == 2

    def test_history_limit(self, calculator: AccuracyMetricsCalculator) -> None:
        """Only the most recent 100 records are retained."""
        history = [make_record(0.1, False)] * 50 + [make_record(0.9, True)] * 100
        metrics = calculator.calculate_accuracy_metrics(history)
        assert len(metrics.accuracy_history) == 100
        assert metrics.brier_score == pytest.approx(0.01)

    def test_calibrated_history(
        self, calculator: AccuracyMetricsCalculator, calibrated_history: list[AccuracyRecord]
    ) -> None:
        metrics = calculator.calculate_accuracy_metrics(calibrated_history)
        assert metrics.calibration_score == pytest.approx(0.0, abs=1e-9)
        assert metrics.brier_score == pytest.approx(0.2208, abs=1e-3)
        assert metrics.negative_log_likelihood > 0


# ---------------------------------------------------------------------------
# Insights and trends
# ---------------------------------------------------------------------------


class TestInsights:
    def test_excellent_and_well_calibrated(self, calculator: AccuracyMetricsCalculator) -> None:
        metrics = calculator.calculate_accuracy_metrics([make_record(0.95, True)] * 20)
        insights = calculator.generate_accuracy_insights(metrics)
        assert insights.overall_performance == "excellent"
        assert insights.calibration_quality == "well-calibrated"
        assert insights.recommendations == ()
        assert insights.trends.is_stable

    def test_poor_performance_recommends_more_data(
        self, calculator: AccuracyMetricsCalculator, calibrated_history: list[AccuracyRecord]
    ) -> None:
        metrics = calculator.calculate_accuracy_metrics(calibrated_history)
        insights = calculator.generate_accuracy_insights(metrics)
        assert insights.overall_performance == "needs-improvement"
        assert insights.calibration_quality == "well-calibrated"
        assert any("logging more cycle data" in r for r in insights.recommendations)

    def test_poor_calibration_recommends_recalibration(
        self, calculator: AccuracyMetricsCalculator, overconfident_history: list[AccuracyRecord]
    ) -> None:
        metrics = calculator.calculate_accuracy_metrics(overconfident_history)
        insights = calculator.generate_accuracy_insights(metrics)
        assert insights.calibration_quality == "poorly-calibrated"
        assert any("recalibration" in r for r in insights.recommendations)

    def test_improving_trend(self, calculator: AccuracyMetricsCalculator) -> None:
        history = [make_record(0.7, False)] * 10 + [make_record(0.7, True)] * 10
        trends = calculator.analyze_trends(history)
        assert trends.is_improving
        assert not trends.is_stable
        insights = calculator.generate_accuracy_insights(
            calculator.calculate_accuracy_metrics(history)
        )
        assert any("improving" in r for r in insights.recommendations)

    def test_deteriorating_trend(self, calculator: AccuracyMetricsCalculator) -> None:
        history = [make_record(0.7, True)] * 10 + [make_record(0.7, False)] * 10
        assert calculator.analyze_trends(history).is_deteriorating

    def test_short_history_is_stable(self, calculator: AccuracyMetricsCalculator) -> None:
        history = [make_record(0.7, False)] * 5 + [make_record(0.7, True)] * 5
        trends = calculator.analyze_trends(history)
        assert trends.is_stable
        assert not trends.is_improving


class TestCompareAccuracyPeriods:
    def test_significant_improvement(self, calculator: AccuracyMetricsCalculator) -> None:
        recent = [make_record(0.9, True)] * 10
        older = [make_record(0.9, False)] * 10
        comparison = calculator.compare_accuracy_periods(recent, older)
        assert comparison.brier_score_improvement == pytest.approx(0.81 - 0.01)
        assert comparison.significant_improvement

    def test_no_change(
        self, calculator: AccuracyMetricsCalculator, calibrated_history: list[AccuracyRecord]
    ) -> None:
        comparison = calculator.compare_accuracy_periods(calibrated_history, calibrated_history)
        assert comparison.brier_score_improvement == 0.0
        assert not comparison.significant_improvement

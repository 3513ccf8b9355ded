"""Tests for feedback-driven adaptive parameter learning."""

from __future__ import annotations

from datetime import date

import pytest

from cycle_forecast.base import AccuracyRecord, CycleRecord, ModelParameters
from cycle_forecast.calibration.adaptive import AdaptiveLearningEngine
from cycle_forecast.config_loader import ForecastConfig
from cycle_forecast.cycle.predictor import PredictionService
from cycle_forecast.tests.conftest import make_cycles, make_record


@pytest.fixture
def engine(forecast_config: ForecastConfig) -> AdaptiveLearningEngine:
    return AdaptiveLearningEngine(forecast_config)


@pytest.fixture
def missed_history() -> list[AccuracyRecord]:
    """Five misses, each 4 days off."""
    return [make_record(0.7, False) for _ in range(5)]


@pytest.fixture
def hit_history() -> list[AccuracyRecord]:
    return [make_record(0.7, True) for _ in range(5)]


@pytest.fixture
def irregular_cycles() -> list[CycleRecord]:
    """Lengths 20, 40, 22, 38."""
    return make_cycles("2025-01-01", "2025-01-21", "2025-03-02", "2025-03-24", "2025-05-01")


def seasonal_history(errors_by_month: dict[int, int]) -> list[AccuracyRecord]:
    """Two misses per month with the given error size."""
    return [
        make_record(0.7, False, error_days=error, prediction_date=date(2025, month, day))
        for month, error in errors_by_month.items()
        for day in (1, 15)
    ]


# ---------------------------------------------------------------------------
# Updates from accuracy
# ---------------------------------------------------------------------------


class TestUpdateModelFromAccuracy:
    def test_insufficient_history(
        self,
        engine: AdaptiveLearningEngine,
        default_params: ModelParameters,
        regular_cycles: list[CycleRecord],
    ) -> None:
        result = engine.update_model_from_accuracy(
            default_params, [make_record(0.7, False)] * 2, regular_cycles
        )
        assert not result.success
        assert result.new_parameters == default_params
        assert "Insufficient" in result.reason

    def test_satisfactory_performance_is_left_alone(
        self,
        engine: AdaptiveLearningEngine,
        default_params: ModelParameters,
        hit_history: list[AccuracyRecord],
        regular_cycles: list[CycleRecord],
    ) -> None:
        result = engine.update_model_from_accuracy(default_params, hit_history, regular_cycles)
        assert not result.success
        assert result.reason == "Model performance is satisfactory"

    def test_poor_accuracy_moves_prior_toward_recent_cycles(
        self,
        engine: AdaptiveLearningEngine,
        default_params: ModelParameters,
        missed_history: list[AccuracyRecord],
        regular_cycles: list[CycleRecord],
    ) -> None:
        result = engine.update_model_from_accuracy(
            default_params, missed_history, regular_cycles
        )
        assert result.success
        new = result.new_parameters
        # Rate 0.1 * 1.5; recent cycles average 28.33 days with variance 1.067
        assert new.adaptive_learning_rate == pytest.approx(0.15)
        assert new.cycle_length_mean == pytest.approx(0.85 * 28 + 0.15 * 170 / 6)
        assert new.cycle_length_variance == pytest.approx(0.85 * 9 + 0.15 * 16 / 15)
        assert new.seasonal_variation == pytest.approx(0.1 - 0.15 * 0.05)
        assert result.accuracy_improvement == pytest.approx(0.0372, abs=1e-4)
        assert result.calibration_improvement == pytest.approx(result.accuracy_improvement / 2)

    def test_input_parameters_not_modified(
        self,
        engine: AdaptiveLearningEngine,
        default_params: ModelParameters,
        missed_history: list[AccuracyRecord],
        regular_cycles: list[CycleRecord],
    ) -> None:
        before = default_params.copy()
        engine.update_model_from_accuracy(default_params, missed_history, regular_cycles)
        assert default_params == before

    def test_without_cycles_keeps_mean(
        self,
        engine: AdaptiveLearningEngine,
        default_params: ModelParameters,
        missed_history: list[AccuracyRecord],
    ) -> None:
        result = engine.update_model_from_accuracy(default_params, missed_history, [])
        assert result.new_parameters.cycle_length_mean == pytest.approx(28.0)
        assert result.new_parameters.cycle_length_variance == pytest.approx(9.0)

    def test_seasonal_errors_raise_seasonal_variation(
        self,
        engine: AdaptiveLearningEngine,
        default_params: ModelParameters,
        regular_cycles: list[CycleRecord],
    ) -> None:
        history = seasonal_history({1: 1, 2: 1, 3: 1, 4: 5})
        result = engine.update_model_from_accuracy(default_params, history, regular_cycles)
        assert result.success
        assert result.new_parameters.seasonal_variation == pytest.approx(0.1 + 0.15 * 0.1)

    def test_updated_parameters_feed_predictions(
        self,
        engine: AdaptiveLearningEngine,
        forecast_config: ForecastConfig,
        default_params: ModelParameters,
        missed_history: list[AccuracyRecord],
        regular_cycles: list[CycleRecord],
    ) -> None:
        result = engine.update_model_from_accuracy(
            default_params, missed_history, regular_cycles
        )
        service = PredictionService(config=forecast_config)
        service.update_model_parameters(result.new_parameters)
        assert service.model_parameters == result.new_parameters


# ---------------------------------------------------------------------------
# Learning rate and signals
# ---------------------------------------------------------------------------


class TestLearningRate:
    @pytest.mark.parametrize(
        ("recent", "trend", "current", "expected"),
        [
            (0.3, 0.0, 0.1, 0.15),  # poor accuracy: learn faster
            (0.6, -0.5, 0.1, 0.12),  # declining: learn a little faster
            (0.9, 0.0, 0.1, 0.08),  # good and steady: learn slower
            (0.6, 0.0, 0.1, 0.1),
            (0.3, 0.0, 0.25, 0.3),  # capped
            (0.9, 0.0, 0.05, 0.05),  # floored
        ],
    )
    def test_schedule(
        self,
        engine: AdaptiveLearningEngine,
        recent: float,
        trend: float,
        current: float,
        expected: float,
    ) -> None:
        assert engine.adaptive_learning_rate(recent, trend, current) == pytest.approx(expected)

    def test_recent_accuracy_uses_last_five(self, engine: AdaptiveLearningEngine) -> None:
        history = [make_record(0.7, True)] * 5 + [make_record(0.7, False)] * 5
        assert engine.recent_accuracy(history) == 0.0
        assert engine.recent_accuracy([]) == 0.0

    def test_accuracy_trend(self) -> None:
        flags = [True, True, True, True, False, True, False, True]
        history = [make_record(0.7, flag) for flag in flags]
        assert AdaptiveLearningEngine.accuracy_trend(history) == pytest.approx(-0.5)
        assert AdaptiveLearningEngine.accuracy_trend(history[:3]) == 0.0


class TestSeasonalErrors:
    def test_one_month_stands_out(self) -> None:
        history = seasonal_history({1: 1, 2: 1, 3: 1, 4: 5})
        assert AdaptiveLearningEngine.has_seasonal_errors(history)

    def test_uniform_errors(self) -> None:
        history = seasonal_history({1: 2, 2: 2, 3: 2, 4: 2})
        assert not AdaptiveLearningEngine.has_seasonal_errors(history)

    def test_too_few_months(self) -> None:
        history = seasonal_history({1: 1, 2: 5, 3: 1}) + seasonal_history({3: 1})
        assert len(history) == 8
        assert not AdaptiveLearningEngine.has_seasonal_errors(history)


# ---------------------------------------------------------------------------
# Personal history weight
# ---------------------------------------------------------------------------


class TestPersonalHistoryWeight:
    def test_regular_accurate_history_gains_weight(
        self,
        engine: AdaptiveLearningEngine,
        default_params: ModelParameters,
        regular_cycles: list[CycleRecord],
        hit_history: list[AccuracyRecord],
    ) -> None:
        params = engine.update_personal_history_weight(
            default_params, regular_cycles, hit_history
        )
        assert params.personal_history_weight == pytest.approx(0.9)

    def test_irregular_missed_history_loses_weight(
        self,
        engine: AdaptiveLearningEngine,
        default_params: ModelParameters,
        irregular_cycles: list[CycleRecord],
        missed_history: list[AccuracyRecord],
    ) -> None:
        assert engine.personal_history_impact(irregular_cycles, missed_history) == 0.0
        params = engine.update_personal_history_weight(
            default_params, irregular_cycles, missed_history
        )
        assert params.personal_history_weight == pytest.approx(0.7)

    def test_step_is_the_learning_rate(
        self,
        engine: AdaptiveLearningEngine,
        regular_cycles: list[CycleRecord],
        hit_history: list[AccuracyRecord],
    ) -> None:
        current = ModelParameters(personal_history_weight=0.5, adaptive_learning_rate=0.2)
        params = engine.update_personal_history_weight(current, regular_cycles, hit_history)
        assert params.personal_history_weight == pytest.approx(0.7)

    def test_weight_is_capped(
        self,
        engine: AdaptiveLearningEngine,
        regular_cycles: list[CycleRecord],
        hit_history: list[AccuracyRecord],
    ) -> None:
        current = ModelParameters(personal_history_weight=0.9)
        params = engine.update_personal_history_weight(current, regular_cycles, hit_history)
        assert params.personal_history_weight == pytest.approx(0.95)

    def test_weight_is_floored(
        self,
        engine: AdaptiveLearningEngine,
        irregular_cycles: list[CycleRecord],
        missed_history: list[AccuracyRecord],
    ) -> None:
        current = ModelParameters(personal_history_weight=0.35)
        params = engine.update_personal_history_weight(current, irregular_cycles, missed_history)
        assert params.personal_history_weight == pytest.approx(0.3)

    def test_unknown_impact_keeps_weight(
        self,
        engine: AdaptiveLearningEngine,
        default_params: ModelParameters,
        regular_cycles: list[CycleRecord],
    ) -> None:
        params = engine.update_personal_history_weight(
            default_params, regular_cycles, [make_record(0.7, True)]
        )
        assert params.personal_history_weight == pytest.approx(0.8)

    def test_too_few_cycles(
        self,
        engine: AdaptiveLearningEngine,
        default_params: ModelParameters,
        hit_history: list[AccuracyRecord],
    ) -> None:
        cycles = make_cycles("2025-01-01", "2025-01-29")
        params = engine.update_personal_history_weight(default_params, cycles, hit_history)
        assert params == default_params
        assert params is not default_params


# ---------------------------------------------------------------------------
# Reset
# ---------------------------------------------------------------------------


class TestResetToDefaults:
    def test_collapsed_accuracy_resets(
        self,
        engine: AdaptiveLearningEngine,
        forecast_config: ForecastConfig,
        missed_history: list[AccuracyRecord],
    ) -> None:
        drifted = ModelParameters(cycle_length_mean=35.0, cycle_length_variance=20.0)
        result = engine.reset_to_defaults(drifted, missed_history)
        assert result.success
        assert result.new_parameters == forecast_config.default_parameters()

    def test_reasonable_accuracy_is_kept(
        self, engine: AdaptiveLearningEngine, default_params: ModelParameters
    ) -> None:
        history = [make_record(0.7, flag) for flag in (True, False, True, False, True)]
        result = engine.reset_to_defaults(default_params, history)
        assert not result.success
        assert result.reason == "Model performance not severely degraded"

    def test_empty_history_is_not_a_collapse(
        self, engine: AdaptiveLearningEngine, default_params: ModelParameters
    ) -> None:
        assert not engine.reset_to_defaults(default_params, []).success

"""Tests for period and ovulation prediction."""

from __future__ import annotations

from datetime import date, timedelta

import pytest

from cycle_forecast.base import (
    CycleRecord,
    InvalidModelParametersError,
    ModelParameters,
    PeriodPrediction,
)
from cycle_forecast.config_loader import ForecastConfig
from cycle_forecast.cycle.predictor import (
    PredictionService,
    gaussian_weights,
    increasing_intervals,
)
from cycle_forecast.tests.conftest import TEST_DATE, make_cycles


@pytest.fixture
def service(forecast_config: ForecastConfig) -> PredictionService:
    return PredictionService(config=forecast_config)


# ---------------------------------------------------------------------------
# Period prediction
# ---------------------------------------------------------------------------


class TestPeriodPrediction:
    def test_three_cycles_end_to_end(
        self, service: PredictionService, three_cycles: list[CycleRecord]
    ) -> None:
        """Posterior mean ≈ 28.5 days after 2024-02-27."""
        prediction = service.predict_next_period(three_cycles, as_of=TEST_DATE)
        assert not prediction.is_default
        assert abs((prediction.next_period_start - date(2024, 3, 27)).days) <= 2
        assert prediction.next_period_start == date(2024, 3, 26)
        ci = prediction.confidence_intervals
        assert (ci.p50, ci.p80, ci.p95) == (1, 2, 3)

    def test_distribution_is_normalised(
        self, service: PredictionService, regular_cycles: list[CycleRecord]
    ) -> None:
        prediction = service.predict_next_period(regular_cycles)
        assert len(prediction.probability_distribution) == 15
        assert sum(prediction.probability_distribution) == pytest.approx(1.0)
        assert all(p >= 0 for p in prediction.probability_distribution)
        assert list(prediction.distribution_offsets) == list(range(-7, 8))

    def test_distribution_peaks_on_predicted_day(
        self, service: PredictionService, regular_cycles: list[CycleRecord]
    ) -> None:
        distribution = service.predict_next_period(regular_cycles).probability_distribution
        assert max(distribution) == distribution[7]

    def test_regular_history(
        self, service: PredictionService, regular_cycles: list[CycleRecord]
    ) -> None:
        prediction = service.predict_next_period(regular_cycles)
        assert prediction.next_period_start == date(2025, 7, 20)
        factors = prediction.uncertainty_factors
        assert factors.data_quality == pytest.approx(1.0)
        assert factors.history_length == 7
        assert not factors.seasonal_patterns
        assert "28.3" in prediction.explanation

    def test_intervals_strictly_increasing(
        self, service: PredictionService, regular_cycles: list[CycleRecord]
    ) -> None:
        ci = service.predict_next_period(regular_cycles).confidence_intervals
        assert 0 < ci.p50 < ci.p80 < ci.p95

    def test_irregular_history_widens_intervals(
        self, service: PredictionService, three_cycles: list[CycleRecord]
    ) -> None:
        irregular = make_cycles("2024-01-01", "2024-01-23", "2024-03-01", "2024-03-24")
        regular_ci = service.predict_next_period(three_cycles).confidence_intervals
        irregular_ci = service.predict_next_period(irregular).confidence_intervals
        assert irregular_ci.p95 > regular_ci.p95


class TestDefaultPrediction:
    @pytest.mark.parametrize("starts", [(), ("2025-06-01",)])
    def test_too_little_history(self, service: PredictionService, starts: tuple[str, ...]) -> None:
        """Fewer than two cycles gives the population default, never an error."""
        prediction = service.predict_next_period(make_cycles(*starts), as_of=TEST_DATE)
        assert prediction.is_default
        assert prediction.next_period_start == TEST_DATE + timedelta(days=28)
        ci = prediction.confidence_intervals
        assert (ci.p50, ci.p80, ci.p95) == (3, 5, 7)
        assert sum(prediction.probability_distribution) == pytest.approx(1.0)
        assert len(set(prediction.probability_distribution)) == 1

    def test_unparseable_history(self, service: PredictionService) -> None:
        prediction = service.predict_next_period(
            make_cycles("garbage", "also garbage"), as_of=TEST_DATE
        )
        assert prediction.is_default

    def test_default_explains_limited_data(self, service: PredictionService) -> None:
        prediction = service.default_prediction(TEST_DATE)
        assert "Limited data" in prediction.explanation
        assert prediction.uncertainty_factors.history_length == 0


# ---------------------------------------------------------------------------
# Ovulation prediction
# ---------------------------------------------------------------------------


class TestOvulationPrediction:
    def test_luteal_phase_and_window(
        self, service: PredictionService, regular_cycles: list[CycleRecord]
    ) -> None:
        ovulation = service.predict_ovulation(regular_cycles)
        assert ovulation.ovulation_date == date(2025, 7, 6)
        window = ovulation.fertility_window
        assert window.start == date(2025, 7, 1)
        assert window.end == date(2025, 7, 7)
        assert window.peak_day == ovulation.ovulation_date

    def test_distribution_mass_inside_window(
        self, service: PredictionService, regular_cycles: list[CycleRecord]
    ) -> None:
        ovulation = service.predict_ovulation(regular_cycles)
        distribution = ovulation.probability_distribution
        assert len(distribution) == 9
        assert list(ovulation.distribution_offsets) == list(range(-6, 3))
        assert sum(distribution) == pytest.approx(1.0)
        assert distribution[0] == 0.0
        assert distribution[-1] == 0.0
        assert max(distribution) == distribution[6]

    def test_wider_than_period_intervals(
        self, service: PredictionService, regular_cycles: list[CycleRecord]
    ) -> None:
        period = service.predict_next_period(regular_cycles)
        ovulation = service.ovulation_from_period(period)
        pci, oci = period.confidence_intervals, ovulation.confidence_intervals
        assert oci.p50 >= pci.p50
        assert oci.p80 >= pci.p80
        assert oci.p95 >= pci.p95
        assert oci.p50 < oci.p80 < oci.p95

    def test_reduced_data_quality(
        self, service: PredictionService, regular_cycles: list[CycleRecord]
    ) -> None:
        period = service.predict_next_period(regular_cycles)
        ovulation = service.ovulation_from_period(period)
        assert ovulation.uncertainty_factors.data_quality == pytest.approx(
            period.uncertainty_factors.data_quality * 0.9
        )

    def test_from_default_prediction(self, service: PredictionService) -> None:
        ovulation = service.predict_ovulation([], as_of=TEST_DATE)
        assert ovulation.ovulation_date == TEST_DATE + timedelta(days=14)
        assert sum(ovulation.probability_distribution) == pytest.approx(1.0)


# ---------------------------------------------------------------------------
# Model parameters
# ---------------------------------------------------------------------------


class TestModelParameters:
    def test_accessor_returns_copy(self, service: PredictionService) -> None:
        params = service.model_parameters
        params.cycle_length_mean = 40.0
        assert service.model_parameters.cycle_length_mean == 28.0

    def test_update_is_validated(self, service: PredictionService) -> None:
        with pytest.raises(InvalidModelParametersError):
            service.update_model_parameters(ModelParameters(adaptive_learning_rate=0.9))
        assert service.model_parameters.adaptive_learning_rate == 0.1

    def test_update_changes_prediction(
        self, service: PredictionService, three_cycles: list[CycleRecord]
    ) -> None:
        before = service.predict_next_period(three_cycles)
        service.update_model_parameters(ModelParameters(cycle_length_variance=20.0))
        after = service.predict_next_period(three_cycles)
        assert isinstance(after, PeriodPrediction)
        assert after.confidence_intervals.p95 >= before.confidence_intervals.p95


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class TestHelpers:
    def test_increasing_intervals_applies_floor(self) -> None:
        ci = increasing_intervals(0.2, 0.3, 0.4)
        assert (ci.p50, ci.p80, ci.p95) == (1, 2, 3)

    def test_increasing_intervals_breaks_ties(self) -> None:
        ci = increasing_intervals(2.1, 2.2, 2.3)
        assert (ci.p50, ci.p80, ci.p95) == (3, 4, 5)

    def test_gaussian_weights_normalised(self) -> None:
        weights = gaussian_weights(range(-3, 4), 1.5)
        assert sum(weights) == pytest.approx(1.0)
        assert weights[3] == max(weights)
        assert weights[0] == pytest.approx(weights[-1])

    def test_gaussian_weights_zero_scale(self) -> None:
        assert gaussian_weights(range(-1, 2), 0.0) == [0.0, 1.0, 0.0]

    def test_data_quality_start_only(self, three_cycles: list[CycleRecord]) -> None:
        assert PredictionService.data_quality(three_cycles) == pytest.approx(0.3)

    def test_recent_reliability(self) -> None:
        assert PredictionService.recent_reliability([28]) == 0.5
        assert PredictionService.recent_reliability([28, 28, 28]) == 1.0
        assert PredictionService.recent_reliability([20, 40, 30]) == 0.2

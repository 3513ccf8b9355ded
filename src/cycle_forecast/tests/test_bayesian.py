"""Tests for the conjugate normal-normal cycle length update."""

from __future__ import annotations

import pytest

from cycle_forecast.base import CycleRecord, ModelParameters
from cycle_forecast.config_loader import ForecastConfig
from cycle_forecast.cycle.bayesian import (
    LIKELIHOOD_VARIANCE_FLOOR,
    BayesianInferenceEngine,
    ProbabilityDistribution,
    normal_pdf,
)


@pytest.fixture
def engine(forecast_config: ForecastConfig) -> BayesianInferenceEngine:
    return BayesianInferenceEngine(forecast_config)


class TestBayesianUpdate:
    def test_no_observations_keeps_prior(
        self, engine: BayesianInferenceEngine, default_params: ModelParameters
    ) -> None:
        inference = engine.infer([], default_params)
        assert inference.posterior.mean == 28.0
        assert inference.posterior.variance == 9.0
        assert inference.likelihood.mean == inference.prior.mean
        assert inference.update_strength == 0.0
        assert inference.evidence == 1.0

    def test_posterior_matches_closed_form(
        self, engine: BayesianInferenceEngine, default_params: ModelParameters
    ) -> None:
        """Lengths 28 and 29: sample variance 0.5 against a 28 / 9 prior."""
        inference = engine.infer([28, 29], default_params)
        expected_var = 1 / (1 / 9 + 2 / 0.5)
        expected_mean = expected_var * (28 / 9 + 2 * 28.5 / 0.5)
        assert inference.posterior.variance == pytest.approx(expected_var)
        assert inference.posterior.mean == pytest.approx(expected_mean)
        assert inference.posterior.mean == pytest.approx(28.486, abs=0.001)
        assert inference.update_strength == pytest.approx(2 / 3)
        assert inference.observations == 2

    def test_posterior_variance_never_exceeds_prior(
        self, engine: BayesianInferenceEngine, default_params: ModelParameters
    ) -> None:
        for lengths in ([30], [21, 35], [26, 31, 28, 40]):
            inference = engine.infer(lengths, default_params)
            assert inference.posterior.variance <= default_params.cycle_length_variance

    def test_posterior_mean_between_prior_and_data(
        self, engine: BayesianInferenceEngine, default_params: ModelParameters
    ) -> None:
        inference = engine.infer([33, 34, 35], default_params)
        assert 28.0 < inference.posterior.mean < 34.0

    def test_identical_lengths_use_variance_floor(
        self, engine: BayesianInferenceEngine, default_params: ModelParameters
    ) -> None:
        """Zero sample variance must not collapse the posterior to a point."""
        inference = engine.infer([28, 28, 28], default_params)
        assert inference.likelihood.variance == LIKELIHOOD_VARIANCE_FLOOR
        assert inference.posterior.variance > 0

    def test_single_observation_uses_prior_variance(
        self, engine: BayesianInferenceEngine, default_params: ModelParameters
    ) -> None:
        inference = engine.infer([30], default_params)
        assert inference.likelihood.variance == default_params.cycle_length_variance
        assert inference.posterior.mean == pytest.approx(29.0)

    def test_evidence_drops_with_disagreement(
        self, engine: BayesianInferenceEngine, default_params: ModelParameters
    ) -> None:
        close = engine.infer([28, 29], default_params)
        far = engine.infer([38, 39], default_params)
        assert 0 < far.evidence < close.evidence <= 1

    def test_infer_from_cycles(
        self,
        engine: BayesianInferenceEngine,
        default_params: ModelParameters,
        three_cycles: list[CycleRecord],
    ) -> None:
        assert engine.infer_from_cycles(three_cycles, default_params).observations == 2


class TestProbabilityDistribution:
    def test_density_sampled_over_support(self) -> None:
        dist = ProbabilityDistribution.normal(28.0, 4.0)
        assert len(dist.density) == 36
        assert dist.density[28 - 15] == pytest.approx(normal_pdf(28, 28.0, 4.0))
        assert dist.std_dev == 2.0

    def test_density_peaks_at_mean(self) -> None:
        dist = ProbabilityDistribution.normal(30.0, 2.0)
        assert max(dist.density) == dist.density[30 - 15]

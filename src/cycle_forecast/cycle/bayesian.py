"""Conjugate normal-normal Bayesian update of the cycle length.

Prior      = population / stored parameters (ModelParameters)
Likelihood = sample mean and variance of the observed cycle lengths
Posterior  = precision-weighted combination of the two

    posterior_var  = 1 / (1/prior_var + n/lik_var)
    posterior_mean = posterior_var * (prior_mean/prior_var + n*lik_mean/lik_var)

Every distribution also carries a discretised density over the support
(15–50 days by default) so the UI can plot it without redoing the maths.
"""

from __future__ import annotations

import logging
import math
import statistics
from dataclasses import dataclass
from typing import Sequence

from cycle_forecast.base import CycleRecord, ModelParameters
from cycle_forecast.config_loader import ForecastConfig, get_forecast_config
from cycle_forecast.cycle.pattern_analyzer import CyclePatternAnalyzer

logger = logging.getLogger("cycle_forecast.cycle.bayesian")

# Identical observed lengths give zero sample variance
LIKELIHOOD_VARIANCE_FLOOR = 0.25


def normal_pdf(x: float, mean: float, variance: float) -> float:
    """Normal density at ``x``."""
    return math.exp(-0.5 * (x - mean) ** 2 / variance) / math.sqrt(2 * math.pi * variance)


@dataclass(frozen=True)
class ProbabilityDistribution:
    """A normal distribution over cycle length with its sampled density.

    Attributes:
        mean:     Mean cycle length (days).
        variance: Variance (days²), always > 0.
        density:  pdf at each integer day of ``support`` (inclusive).
        support:  (low, high) day range the density is sampled over.
    """

    mean: float
    variance: float
    density: tuple[float, ...]
    support: tuple[int, int] = (15, 50)

    @property
    def std_dev(self) -> float:
        return math.sqrt(self.variance)

    @classmethod
    def normal(
        cls, mean: float, variance: float, support: tuple[int, int] = (15, 50)
    ) -> "ProbabilityDistribution":
        low, high = support
        density = tuple(normal_pdf(day, mean, variance) for day in range(low, high + 1))
        return cls(mean=mean, variance=variance, density=density, support=(low, high))


@dataclass(frozen=True)
class BayesianInference:
    """Result of one prior → posterior update.

    Attributes:
        prior:           Distribution implied by the model parameters.
        likelihood:      Distribution of the observed lengths.
        posterior:       Updated belief about the next cycle length.
        evidence:        Prior/data agreement in (0, 1]; diagnostic only.
        update_strength: n / (n + 1), how far the data moved the prior.
        observations:    Number of cycle lengths used.
    """

    prior: ProbabilityDistribution
    likelihood: ProbabilityDistribution
    posterior: ProbabilityDistribution
    evidence: float
    update_strength: float
    observations: int


class BayesianInferenceEngine:
    """Combine the stored prior with observed cycle lengths.

    Usage::

        engine = BayesianInferenceEngine()
        inference = engine.infer(lengths=[28, 29, 27], params=ModelParameters())
        print(inference.posterior.mean, inference.posterior.std_dev)
    """

    def __init__(
        self,
        config: ForecastConfig | None = None,
        analyzer: CyclePatternAnalyzer | None = None,
    ) -> None:
        self._config = config or get_forecast_config()
        self._analyzer = analyzer or CyclePatternAnalyzer(self._config)

    def infer_from_cycles(
        self, cycles: Sequence[CycleRecord], params: ModelParameters
    ) -> BayesianInference:
        """Extract cycle lengths from records and run :meth:`infer`."""
        return self.infer(self._analyzer.cycle_lengths(cycles), params)

    def infer(self, lengths: Sequence[float], params: ModelParameters) -> BayesianInference:
        """Run the conjugate update.

        Args:
            lengths: Observed cycle lengths (days).  May be empty.
            params:  Model parameters supplying the prior.

        Returns:
            BayesianInference with prior, likelihood and posterior.
        """
        support = self._config.prediction.density_support
        prior_mean = params.cycle_length_mean
        prior_var = params.cycle_length_variance
        n = len(lengths)

        if n == 0:
            lik_mean, lik_var = prior_mean, prior_var
            post_mean, post_var = prior_mean, prior_var
        else:
            lik_mean = statistics.mean(lengths)
            lik_var = statistics.variance(lengths) if n > 1 else prior_var
            lik_var = max(lik_var, LIKELIHOOD_VARIANCE_FLOOR)

            post_var = 1.0 / (1.0 / prior_var + n / lik_var)
            post_mean = post_var * (prior_mean / prior_var + n * lik_mean / lik_var)

        evidence = math.exp(-0.5 * (prior_mean - lik_mean) ** 2 / (prior_var + lik_var))
        strength = n / (n + 1)

        logger.debug(
            "Posterior from %d lengths: mean=%.3f var=%.3f (prior %.1f/%.1f, evidence %.3f)",
            n,
            post_mean,
            post_var,
            prior_mean,
            prior_var,
            evidence,
        )
        return BayesianInference(
            prior=ProbabilityDistribution.normal(prior_mean, prior_var, support),
            likelihood=ProbabilityDistribution.normal(lik_mean, lik_var, support),
            posterior=ProbabilityDistribution.normal(post_mean, post_var, support),
            evidence=evidence,
            update_strength=strength,
            observations=n,
        )

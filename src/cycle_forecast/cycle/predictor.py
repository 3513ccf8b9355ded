"""Period and ovulation prediction.

The period prediction anchors on the latest period start and adds the
rounded posterior mean cycle length.  Uncertainty is expressed three ways:

- confidence intervals (half-widths in days at 50 / 80 / 95 %)
- a discrete probability distribution over -7..+7 days
- uncertainty factors describing the data behind the prediction

The ovulation prediction is derived from the period prediction with a fixed
luteal phase, and inherits (widened) uncertainty from it.
"""

from __future__ import annotations

import logging
import math
import statistics
from datetime import date, timedelta
from typing import Sequence

from cycle_forecast.base import (
    ConfidenceInterval,
    CycleRecord,
    CycleTrend,
    FertilityWindow,
    ModelParameters,
    OvulationPrediction,
    PeriodPrediction,
    UncertaintyFactors,
)
from cycle_forecast.config_loader import ForecastConfig, get_forecast_config
from cycle_forecast.cycle.bayesian import BayesianInference, BayesianInferenceEngine
from cycle_forecast.cycle.pattern_analyzer import CyclePattern, CyclePatternAnalyzer

logger = logging.getLogger("cycle_forecast.cycle.predictor")

# Normal quantile multipliers for the 50 / 80 / 95 % intervals
INTERVAL_MULTIPLIERS = (0.67, 1.28, 1.96)

# Ovulation timing is less certain than period timing
OVULATION_INTERVAL_SCALE = (1.2, 1.3, 1.5)
OVULATION_INTERVAL_FLOOR = (1, 2, 3)
OVULATION_DATA_QUALITY_FACTOR = 0.9
OVULATION_RELIABILITY_FACTOR = 0.85

DEFAULT_INTERVALS = (3, 5, 7)

# Per-record completeness weights for data quality
_QUALITY_START = 0.3
_QUALITY_END = 0.2
_QUALITY_ENTRIES = 0.3
_QUALITY_SYMPTOMS = 0.2

# Variance (days²) at which variability saturates
_VARIANCE_SCALE = 25.0


def increasing_intervals(
    p50: float, p80: float, p95: float, floor: Sequence[int] = (1, 2, 3)
) -> ConfidenceInterval:
    """Round widths up to whole days and force p50 < p80 < p95."""
    p50 = max(floor[0], math.ceil(p50))
    p80 = max(floor[1], p50 + 1, math.ceil(p80))
    p95 = max(floor[2], p80 + 1, math.ceil(p95))
    return ConfidenceInterval(p50=p50, p80=p80, p95=p95)


def gaussian_weights(offsets: Sequence[int], scale: float) -> list[float]:
    """exp(-0.5 (d/scale)²) for every offset, normalised to sum to 1.

    Falls back to a uniform distribution when every weight underflows.
    """
    weights = [math.exp(-0.5 * (d / scale) ** 2) if scale > 0 else float(d == 0) for d in offsets]
    total = sum(weights)
    if total <= 0:
        return [1.0 / len(weights)] * len(weights)
    return [w / total for w in weights]


class PredictionService:
    """Predict the next period and ovulation from cycle history.

    Holds the current ModelParameters; the ``model_parameters`` accessor
    always returns a copy.

    Usage::

        service = PredictionService()
        period = service.predict_next_period(cycles)
        ovulation = service.predict_ovulation(cycles)
    """

    def __init__(
        self,
        params: ModelParameters | None = None,
        config: ForecastConfig | None = None,
    ) -> None:
        self._config = config or get_forecast_config()
        self._params = (params or self._config.default_parameters()).copy().validate()
        self._analyzer = CyclePatternAnalyzer(self._config)
        self._engine = BayesianInferenceEngine(self._config, self._analyzer)

    @property
    def _pr_config(self):
        return self._config.prediction

    # ------------------------------------------------------------------
    # Model parameters
    # ------------------------------------------------------------------

    @property
    def model_parameters(self) -> ModelParameters:
        return self._params.copy()

    def update_model_parameters(self, params: ModelParameters) -> None:
        """Validate and store a copy of new parameters (e.g. after recalibration)."""
        self._params = params.copy().validate()
        logger.info(
            "Model parameters updated: mean=%.2f var=%.2f lr=%.3f weight=%.2f",
            self._params.cycle_length_mean,
            self._params.cycle_length_variance,
            self._params.adaptive_learning_rate,
            self._params.personal_history_weight,
        )

    # ------------------------------------------------------------------
    # Period
    # ------------------------------------------------------------------

    def predict_next_period(
        self,
        cycles: Sequence[CycleRecord],
        as_of: date | None = None,
    ) -> PeriodPrediction:
        """Predict the next period start.

        Args:
            cycles: Historical cycle records (oldest first).
            as_of:  Reference date for the default prediction (defaults to today).

        Returns:
            PeriodPrediction.  With fewer than two usable cycles a default
            prediction (``is_default=True``) is returned instead of raising.
        """
        today = as_of or date.today()
        starts = self._analyzer.valid_start_dates(cycles)
        if len(cycles) < self._pr_config.min_cycles or not starts:
            logger.debug("Only %d cycle(s) available, using default prediction", len(cycles))
            return self.default_prediction(today)

        pattern = self._analyzer.analyze(cycles, self._params)
        inference = self._engine.infer(pattern.cycle_lengths, self._params)
        factors = self.uncertainty_factors(cycles, pattern)

        std = inference.posterior.std_dev
        multiplier = 1 + (1 - factors.data_quality) * 0.5
        intervals = increasing_intervals(*(m * std * multiplier for m in INTERVAL_MULTIPLIERS))

        half = self._pr_config.distribution_half_width
        distribution = gaussian_weights(range(-half, half + 1), std)

        next_start = starts[-1] + timedelta(days=round(inference.posterior.mean))
        return PeriodPrediction(
            next_period_start=next_start,
            confidence_intervals=intervals,
            uncertainty_factors=factors,
            probability_distribution=tuple(distribution),
            explanation=self._period_explanation(pattern, inference, intervals),
        )

    def default_prediction(self, as_of: date) -> PeriodPrediction:
        """Population-average prediction used when there is too little history."""
        pr = self._pr_config
        buckets = 2 * pr.distribution_half_width + 1
        return PeriodPrediction(
            next_period_start=as_of + timedelta(days=pr.default_cycle_length),
            confidence_intervals=ConfidenceInterval(*DEFAULT_INTERVALS),
            uncertainty_factors=UncertaintyFactors(
                data_quality=0.1,
                history_length=0,
                cycle_length_variability=0.5,
                recent_data_reliability=0.1,
                seasonal_patterns=False,
            ),
            probability_distribution=tuple([1.0 / buckets] * buckets),
            explanation=(
                f"Based on an average cycle length of {pr.default_cycle_length} days. "
                "Limited data available: log at least two cycles for a personal prediction."
            ),
            is_default=True,
        )

    # ------------------------------------------------------------------
    # Ovulation
    # ------------------------------------------------------------------

    def predict_ovulation(
        self,
        cycles: Sequence[CycleRecord],
        as_of: date | None = None,
    ) -> OvulationPrediction:
        """Predict ovulation and the fertility window for the next cycle."""
        return self.ovulation_from_period(self.predict_next_period(cycles, as_of))

    def ovulation_from_period(self, period: PeriodPrediction) -> OvulationPrediction:
        """Derive an ovulation prediction from a period prediction.

        Ovulation = next period start - luteal phase.  The fertility window
        spans the days before ovulation through the day after.
        """
        pr = self._pr_config
        ovulation = period.next_period_start - timedelta(days=pr.luteal_phase_days)
        window = FertilityWindow(
            start=ovulation - timedelta(days=pr.fertile_days_before_ovulation),
            end=ovulation + timedelta(days=pr.fertile_days_after_ovulation),
            peak_day=ovulation,
        )

        ci = period.confidence_intervals
        intervals = increasing_intervals(
            *(
                width * scale
                for width, scale in zip((ci.p50, ci.p80, ci.p95), OVULATION_INTERVAL_SCALE)
            ),
            floor=OVULATION_INTERVAL_FLOOR,
        )

        pf = period.uncertainty_factors
        factors = UncertaintyFactors(
            data_quality=pf.data_quality * OVULATION_DATA_QUALITY_FACTOR,
            history_length=pf.history_length,
            cycle_length_variability=pf.cycle_length_variability,
            recent_data_reliability=pf.recent_data_reliability * OVULATION_RELIABILITY_FACTOR,
            seasonal_patterns=pf.seasonal_patterns,
        )

        # One bucket of padding either side of the fertility window
        start_offset = -pr.fertile_days_before_ovulation - 1
        offsets = range(start_offset, pr.fertile_days_after_ovulation + 2)
        in_window = [
            -pr.fertile_days_before_ovulation <= d <= pr.fertile_days_after_ovulation
            for d in offsets
        ]
        raw = [
            math.exp(-0.5 * (d / intervals.p80) ** 2) if inside else 0.0
            for d, inside in zip(offsets, in_window)
        ]
        total = sum(raw)
        if total > 0:
            distribution = [w / total for w in raw]
        else:
            count = sum(in_window)
            distribution = [1.0 / count if inside else 0.0 for inside in in_window]

        return OvulationPrediction(
            ovulation_date=ovulation,
            fertility_window=window,
            confidence_intervals=intervals,
            uncertainty_factors=factors,
            probability_distribution=tuple(distribution),
            explanation=(
                f"Ovulation estimated {pr.luteal_phase_days} days before the predicted period "
                f"({period.next_period_start.isoformat()}). Fertile window "
                f"{window.start.isoformat()} to {window.end.isoformat()}, "
                f"±{intervals.p80:g} days at 80% confidence."
            ),
            distribution_start_offset=start_offset,
        )

    # ------------------------------------------------------------------
    # Uncertainty
    # ------------------------------------------------------------------

    def uncertainty_factors(
        self, cycles: Sequence[CycleRecord], pattern: CyclePattern
    ) -> UncertaintyFactors:
        """Describe the data behind a prediction."""
        return UncertaintyFactors(
            data_quality=self.data_quality(cycles),
            history_length=len(cycles),
            cycle_length_variability=min(1.0, pattern.variance / _VARIANCE_SCALE),
            recent_data_reliability=self.recent_reliability(pattern.cycle_lengths),
            seasonal_patterns=pattern.seasonal.has_seasonal_variation,
        )

    @staticmethod
    def data_quality(cycles: Sequence[CycleRecord]) -> float:
        """Mean per-record completeness in [0, 1]."""
        if not cycles:
            return 0.0
        scores = []
        for record in cycles:
            score = 0.0
            if record.start_date is not None:
                score += _QUALITY_START
            if record.end_date is not None:
                score += _QUALITY_END
            if record.day_entries:
                score += _QUALITY_ENTRIES
            if record.has_symptoms:
                score += _QUALITY_SYMPTOMS
            scores.append(score)
        return min(1.0, statistics.mean(scores))

    @staticmethod
    def recent_reliability(lengths: Sequence[int]) -> float:
        """Consistency of the last three cycle lengths."""
        recent = list(lengths[-3:])
        if len(recent) < 2:
            return 0.5
        return max(0.2, min(1.0, 1 - statistics.variance(recent) / _VARIANCE_SCALE))

    # ------------------------------------------------------------------
    # Explanations
    # ------------------------------------------------------------------

    @staticmethod
    def _period_explanation(
        pattern: CyclePattern,
        inference: BayesianInference,
        intervals: ConfidenceInterval,
    ) -> str:
        parts = [
            f"Based on {len(pattern.cycle_lengths)} cycle length(s) averaging "
            f"{pattern.mean_length:.1f} days, combined with your model's prior, "
            f"the expected cycle length is {inference.posterior.mean:.1f} days.",
            f"80% of the time your period should start within ±{intervals.p80:g} days.",
        ]
        if pattern.trend is not CycleTrend.STABLE:
            parts.append(f"Recent cycles look {pattern.trend.value}.")
        if pattern.outlier_indices:
            parts.append(f"{len(pattern.outlier_indices)} unusual cycle(s) widen the uncertainty.")
        if pattern.seasonal.has_seasonal_variation:
            parts.append("Your cycle length varies with the season.")
        return " ".join(parts)

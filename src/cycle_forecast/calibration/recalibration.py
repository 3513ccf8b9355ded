"""Detect miscalibration and recalibrate the model parameters.

Two decisions, both driven by the accuracy history:

1. ``assess_recalibration_need`` — is the model's stated confidence drifting
   away from how often it is actually right?  Guarded by a minimum sample
   size and a cooldown after the last recalibration.
2. ``perform_recalibration`` — fit a calibration mapping to the history,
   measure the calibration error before and after, and translate the
   mapping into bounded changes of the ModelParameters.

Strategies form a closed set: one frozen parameter dataclass per
``RecalibrationMethod``.  Every per-method behaviour is looked up in a table
keyed by the enum, so adding a method without handling it fails loudly.
"""

from __future__ import annotations

import logging
import math
import statistics
from dataclasses import dataclass, replace
from datetime import date, datetime
from enum import Enum
from typing import Callable, ClassVar, Sequence, Union

from cycle_forecast.base import AccuracyRecord, ModelParameters, Urgency
from cycle_forecast.calibration.scoring import (
    CalibrationPoint,
    brier_score,
    calibration_score,
    reliability_curve,
)
from cycle_forecast.config_loader import ForecastConfig, get_forecast_config

logger = logging.getLogger("cycle_forecast.calibration.recalibration")

# Domain bounds applied after every recalibration
MIN_VARIANCE = 0.5
MIN_LEARNING_RATE = 0.01
MAX_LEARNING_RATE = 0.5
MIN_HISTORY_WEIGHT = 0.1
MAX_HISTORY_WEIGHT = 1.0

# Calibration mappings work in logit space; keep probabilities finite
_LOGIT_EPSILON = 1e-3

_MONOTONIC_MIN_BIN_COUNT = 5
_DRIFT_WINDOW = 10
_DRIFT_THRESHOLD_DAYS = 1.0
_BAYESIAN_ERROR_WINDOW = 20
# ECE left over once bias is removed, below which bias explains the error
_BIAS_RESIDUAL = 0.05


class RecalibrationMethod(str, Enum):
    TEMPERATURE_SCALING = "temperature_scaling"
    PLATT_SCALING = "platt_scaling"
    ISOTONIC_REGRESSION = "isotonic_regression"
    BAYESIAN_UPDATE = "bayesian_update"
    NONE = "none"


# ---------------------------------------------------------------------------
# Strategy parameters (one variant per method)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TemperatureScaling:
    """p' = sigmoid(logit(p) / temperature).  temperature > 1 softens."""

    temperature: float = 1.0
    method: ClassVar[RecalibrationMethod] = RecalibrationMethod.TEMPERATURE_SCALING


@dataclass(frozen=True)
class PlattScaling:
    """p' = sigmoid(a * logit(p) + b)."""

    a: float = 1.0
    b: float = 0.0
    method: ClassVar[RecalibrationMethod] = RecalibrationMethod.PLATT_SCALING


@dataclass(frozen=True)
class IsotonicRegression:
    """Monotone step function; breakpoints are (upper confidence, calibrated value)."""

    breakpoints: tuple[tuple[float, float], ...] = ()
    method: ClassVar[RecalibrationMethod] = RecalibrationMethod.ISOTONIC_REGRESSION


@dataclass(frozen=True)
class BayesianUpdate:
    """Shrink confidences toward the observed hit rate."""

    learning_rate: float = 0.1
    target_rate: float = 0.5
    method: ClassVar[RecalibrationMethod] = RecalibrationMethod.BAYESIAN_UPDATE


@dataclass(frozen=True)
class NoRecalibration:
    method: ClassVar[RecalibrationMethod] = RecalibrationMethod.NONE


StrategyParams = Union[
    TemperatureScaling, PlattScaling, IsotonicRegression, BayesianUpdate, NoRecalibration
]

# Default-valued params per method, before fitting
_UNFITTED: dict[RecalibrationMethod, type] = {
    cls.method: cls
    for cls in (
        TemperatureScaling, PlattScaling, IsotonicRegression, BayesianUpdate, NoRecalibration
    )
}


@dataclass(frozen=True)
class RecalibrationStrategy:
    """A recommended method with its fitted parameters.

    Attributes:
        params:               Method-specific parameters (tagged by ``method``).
        confidence:           0.0–1.0 confidence that the method suits the data.
        expected_improvement: Expected reduction in calibration error.
        reasoning:            Why this method was chosen.
    """

    params: StrategyParams
    confidence: float = 0.0
    expected_improvement: float = 0.0
    reasoning: str = ""

    @property
    def method(self) -> RecalibrationMethod:
        return self.params.method


NO_STRATEGY = RecalibrationStrategy(
    params=NoRecalibration(), reasoning="No recalibration needed"
)


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CalibrationReport:
    """Calibration of a history of verified predictions.

    Attributes:
        curve:                     Non-empty reliability curve bins.
        expected_calibration_error: Population-weighted |confidence - accuracy|.
        brier_score:               Brier score of the history.
        systematic_bias:           mean(confidence) - mean(accuracy); > 0 is overconfident.
        sample_size:               Number of verified records.
        is_well_calibrated:        ECE below the threshold.
        needs_recalibration:       ECE or |bias| above its threshold.
        is_monotonic:              Observed frequency never falls as confidence rises.
    """

    curve: tuple[CalibrationPoint, ...]
    expected_calibration_error: float
    brier_score: float
    systematic_bias: float
    sample_size: int
    is_well_calibrated: bool
    needs_recalibration: bool
    is_monotonic: bool


@dataclass(frozen=True)
class CalibrationAssessment:
    triggered: bool
    urgency: Urgency
    reason: str
    recommended_strategy: RecalibrationStrategy
    estimated_improvement: float
    confidence: float
    calibration_error: float = 0.0
    systematic_bias: float = 0.0


@dataclass(frozen=True)
class RecalibrationResult:
    """Outcome of a recalibration attempt.

    ``new_parameters`` is an unchanged copy of the input when ``success`` is
    False or when the fitted mapping would not have improved calibration.
    """

    success: bool
    strategy: RecalibrationStrategy
    new_parameters: ModelParameters
    before_ece: float
    after_ece: float
    before_brier: float
    after_brier: float
    improvement_significance: float
    recommendations: tuple[str, ...]


# ---------------------------------------------------------------------------
# Calibration mappings
# ---------------------------------------------------------------------------


def _logit(p: float) -> float:
    p = min(1 - _LOGIT_EPSILON, max(_LOGIT_EPSILON, p))
    return math.log(p / (1 - p))


def _sigmoid(x: float) -> float:
    if x >= 0:
        return 1 / (1 + math.exp(-x))
    z = math.exp(x)
    return z / (1 + z)


def _frange(start: float, stop: float, step: float) -> list[float]:
    count = int(round((stop - start) / step))
    return [round(start + i * step, 6) for i in range(count + 1)]


def _map_temperature(params: TemperatureScaling, probabilities: Sequence[float]) -> list[float]:
    return [_sigmoid(_logit(p) / params.temperature) for p in probabilities]


def _map_platt(params: PlattScaling, probabilities: Sequence[float]) -> list[float]:
    return [_sigmoid(params.a * _logit(p) + params.b) for p in probabilities]


def _map_isotonic(params: IsotonicRegression, probabilities: Sequence[float]) -> list[float]:
    if not params.breakpoints:
        return list(probabilities)
    mapped = []
    for p in probabilities:
        value = params.breakpoints[-1][1]
        for upper, calibrated in params.breakpoints:
            if p <= upper:
                value = calibrated
                break
        mapped.append(value)
    return mapped


def _map_bayesian(params: BayesianUpdate, probabilities: Sequence[float]) -> list[float]:
    weight = len(probabilities) / (len(probabilities) + 1 / params.learning_rate)
    return [(1 - weight) * p + weight * params.target_rate for p in probabilities]


def _map_identity(params: StrategyParams, probabilities: Sequence[float]) -> list[float]:
    return list(probabilities)


def pool_adjacent_violators(
    probabilities: Sequence[float], outcomes: Sequence[float]
) -> tuple[tuple[float, float], ...]:
    """Isotonic fit of outcomes against probabilities.

    Returns:
        (upper probability, fitted value) per block, in increasing order.
    """
    pairs = sorted(zip(probabilities, outcomes))
    # Each block: [sum of outcomes, count, max probability]
    blocks: list[list[float]] = []
    for p, o in pairs:
        blocks.append([o, 1, p])
        while len(blocks) > 1 and blocks[-2][0] / blocks[-2][1] > blocks[-1][0] / blocks[-1][1]:
            total, count, upper = blocks.pop()
            blocks[-1][0] += total
            blocks[-1][1] += count
            blocks[-1][2] = upper
    return tuple((upper, total / count) for total, count, upper in blocks)


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class RecalibrationEngine:
    """Assess and correct calibration of the prediction model.

    Usage::

        engine = RecalibrationEngine()
        assessment = engine.assess_recalibration_need(history, params, last_run)
        if assessment.triggered:
            result = engine.perform_recalibration(history, params)
            if result.success:
                service.update_model_parameters(result.new_parameters)
    """

    def __init__(self, config: ForecastConfig | None = None) -> None:
        self._config = config or get_forecast_config()
        self._bins = self._config.accuracy.calibration_bins

        self._fitters: dict[RecalibrationMethod, Callable[..., StrategyParams]] = {
            RecalibrationMethod.TEMPERATURE_SCALING: self._fit_temperature,
            RecalibrationMethod.PLATT_SCALING: self._fit_platt,
            RecalibrationMethod.ISOTONIC_REGRESSION: self._fit_isotonic,
            RecalibrationMethod.BAYESIAN_UPDATE: self._fit_bayesian,
            RecalibrationMethod.NONE: lambda probabilities, outcomes: NoRecalibration(),
        }
        self._mappers: dict[RecalibrationMethod, Callable[..., list[float]]] = {
            RecalibrationMethod.TEMPERATURE_SCALING: _map_temperature,
            RecalibrationMethod.PLATT_SCALING: _map_platt,
            RecalibrationMethod.ISOTONIC_REGRESSION: _map_isotonic,
            RecalibrationMethod.BAYESIAN_UPDATE: _map_bayesian,
            RecalibrationMethod.NONE: _map_identity,
        }
        self._updaters: dict[RecalibrationMethod, Callable[..., ModelParameters]] = {
            RecalibrationMethod.TEMPERATURE_SCALING: self._update_temperature,
            RecalibrationMethod.PLATT_SCALING: self._update_platt,
            RecalibrationMethod.ISOTONIC_REGRESSION: self._update_isotonic,
            RecalibrationMethod.BAYESIAN_UPDATE: self._update_bayesian,
            RecalibrationMethod.NONE: lambda strategy, params, history: params.copy(),
        }

    @property
    def _rc_config(self):
        return self._config.recalibration

    @property
    def handled_methods(self) -> frozenset[RecalibrationMethod]:
        """Methods present in every dispatch table."""
        return frozenset(self._fitters) & frozenset(self._mappers) & frozenset(self._updaters)

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate_calibration(self, history: Sequence[AccuracyRecord]) -> CalibrationReport:
        """Reliability curve and calibration statistics of the verified history."""
        rc = self._rc_config
        probabilities, outcomes = self._scorable(history)
        if not probabilities:
            return CalibrationReport(
                curve=(),
                expected_calibration_error=0.0,
                brier_score=0.0,
                systematic_bias=0.0,
                sample_size=0,
                is_well_calibrated=True,
                needs_recalibration=False,
                is_monotonic=True,
            )

        curve = tuple(reliability_curve(probabilities, outcomes, self._bins))
        ece = calibration_score(probabilities, outcomes, self._bins)
        bias = statistics.mean(probabilities) - statistics.mean(outcomes)
        return CalibrationReport(
            curve=curve,
            expected_calibration_error=ece,
            brier_score=brier_score(probabilities, outcomes),
            systematic_bias=bias,
            sample_size=len(probabilities),
            is_well_calibrated=ece < rc.ece_threshold,
            needs_recalibration=ece > rc.ece_threshold or abs(bias) > rc.bias_threshold,
            is_monotonic=self._is_monotonic(curve),
        )

    # ------------------------------------------------------------------
    # Decision 1: is recalibration needed?
    # ------------------------------------------------------------------

    def assess_recalibration_need(
        self,
        history: Sequence[AccuracyRecord],
        params: ModelParameters,
        last_recalibrated_at: datetime | date | None = None,
        as_of: datetime | date | None = None,
    ) -> CalibrationAssessment:
        """Decide whether the model should be recalibrated now.

        Args:
            history:              Accuracy records (only verified ones count).
            params:               Current model parameters.
            last_recalibrated_at: When the last recalibration was applied.
            as_of:                Reference time (defaults to now).

        Returns:
            CalibrationAssessment.  Never triggered with too little data or
            inside the cooldown window.
        """
        rc = self._rc_config
        probabilities, outcomes = self._scorable(history)

        if len(probabilities) < rc.min_samples:
            missing = rc.min_samples - len(probabilities)
            return self._not_triggered(
                f"Insufficient data: need {missing} more verified prediction(s) "
                f"before recalibration (minimum {rc.min_samples})"
            )

        if last_recalibrated_at is not None:
            elapsed = (_to_date(as_of or datetime.now()) - _to_date(last_recalibrated_at)).days
            if elapsed < rc.cooldown_days:
                return self._not_triggered(
                    f"Recalibration cooldown active: last recalibrated {elapsed} day(s) ago, "
                    f"cooldown is {rc.cooldown_days} days"
                )

        report = self.validate_calibration(history)
        ece = report.expected_calibration_error
        bias = report.systematic_bias

        triggered = True
        if ece > rc.ece_threshold * 2:
            urgency, reason = Urgency.CRITICAL, f"Critical calibration error: {ece:.1%}"
            estimated = ece - rc.ece_threshold
        elif ece > rc.ece_threshold * 1.5:
            urgency, reason = Urgency.HIGH, f"High calibration error: {ece:.1%}"
            estimated = ece - rc.ece_threshold
        elif ece > rc.ece_threshold:
            urgency, reason = Urgency.MEDIUM, f"Moderate calibration error: {ece:.1%}"
            estimated = ece - rc.ece_threshold
        elif report.brier_score > rc.brier_threshold:
            urgency, reason = Urgency.MEDIUM, f"High Brier score: {report.brier_score:.3f}"
            estimated = report.brier_score - rc.brier_threshold
        elif abs(bias) > rc.bias_threshold:
            urgency, reason = Urgency.MEDIUM, ""
            estimated = abs(bias)
        else:
            triggered, urgency, reason, estimated = False, Urgency.LOW, "", 0.0

        if abs(bias) > rc.bias_threshold:
            reason = "; ".join(filter(None, [reason, _describe_bias(bias)]))
        if not triggered:
            reason = f"Calibration within tolerance (ECE {ece:.1%})"

        strategy = self.select_strategy(history, report) if triggered else NO_STRATEGY
        logger.info(
            "Recalibration assessment: triggered=%s urgency=%s ece=%.3f bias=%+.3f strategy=%s",
            triggered,
            urgency.value,
            ece,
            bias,
            strategy.method.value,
        )
        return CalibrationAssessment(
            triggered=triggered,
            urgency=urgency,
            reason=reason,
            recommended_strategy=strategy,
            estimated_improvement=max(0.0, estimated),
            confidence=strategy.confidence,
            calibration_error=ece,
            systematic_bias=bias,
        )

    def select_strategy(
        self,
        history: Sequence[AccuracyRecord],
        report: CalibrationReport | None = None,
    ) -> RecalibrationStrategy:
        """Pick the method that best matches the shape of the miscalibration."""
        rc = self._rc_config
        report = report or self.validate_calibration(history)
        ece = report.expected_calibration_error
        bias = report.systematic_bias

        if abs(bias) > rc.bias_threshold and ece - abs(bias) < _BIAS_RESIDUAL:
            method, confidence, gain, reasoning = (
                RecalibrationMethod.TEMPERATURE_SCALING,
                0.8,
                ece * 0.5,
                "Systematic overconfidence/underconfidence detected",
            )
        elif not report.is_monotonic:
            method, confidence, gain, reasoning = (
                RecalibrationMethod.ISOTONIC_REGRESSION,
                0.7,
                ece * 0.4,
                "Non-monotonic calibration curve requires isotonic regression",
            )
        elif ece > rc.ece_threshold:
            method, confidence, gain, reasoning = (
                RecalibrationMethod.PLATT_SCALING,
                0.6,
                ece * 0.3,
                "General calibration issues require sigmoid recalibration",
            )
        elif self.detect_drift(history):
            method, confidence, gain, reasoning = (
                RecalibrationMethod.BAYESIAN_UPDATE,
                0.9,
                ece * 0.6,
                "Recent prediction errors are growing; model parameters need updating",
            )
        else:
            return NO_STRATEGY

        return self.fit_strategy(method, history, confidence, gain, reasoning)

    def fit_strategy(
        self,
        method: RecalibrationMethod,
        history: Sequence[AccuracyRecord],
        confidence: float = 0.5,
        expected_improvement: float = 0.0,
        reasoning: str = "",
    ) -> RecalibrationStrategy:
        """Fit the parameters of ``method`` to the verified history."""
        probabilities, outcomes = self._scorable(history)
        params = self._fitters[method](probabilities, outcomes)
        return RecalibrationStrategy(
            params=params,
            confidence=confidence,
            expected_improvement=expected_improvement,
            reasoning=reasoning or f"{method.value.replace('_', ' ')} requested",
        )

    # ------------------------------------------------------------------
    # Decision 2: recalibrate
    # ------------------------------------------------------------------

    def perform_recalibration(
        self,
        history: Sequence[AccuracyRecord],
        params: ModelParameters,
        strategy: RecalibrationStrategy | RecalibrationMethod | None = None,
    ) -> RecalibrationResult:
        """Apply a recalibration strategy and return bounded new parameters.

        Never raises.  Insufficient data, a ``none`` strategy and arithmetic
        failures are all reported through ``success=False``.

        Args:
            history:  Accuracy records (only verified ones count).
            params:   Current model parameters (not modified).
            strategy: Strategy to apply as given.  A bare method is fitted to
                      the history first; selected and fitted from the
                      history when omitted.
        """
        rc = self._rc_config
        requested = strategy
        if isinstance(strategy, RecalibrationMethod):
            strategy = RecalibrationStrategy(
                params=_UNFITTED[strategy](),
                reasoning=f"{strategy.value.replace('_', ' ')} requested",
            )
        probabilities, outcomes = self._scorable(history)
        if len(probabilities) < rc.min_samples:
            return self._failure(
                params,
                strategy or NO_STRATEGY,
                f"Insufficient data for recalibration: {len(probabilities)} of "
                f"{rc.min_samples} verified predictions available",
            )

        try:
            report = self.validate_calibration(history)
            if isinstance(requested, RecalibrationMethod):
                strategy = self.fit_strategy(requested, history)
            strategy = strategy or self.select_strategy(history, report)
            before_ece = report.expected_calibration_error
            before_brier = report.brier_score

            if strategy.method is RecalibrationMethod.NONE:
                return self._failure(
                    params,
                    strategy,
                    "No recalibration needed: calibration is within tolerance",
                    before_ece,
                    before_brier,
                )

            mapped = self._mappers[strategy.method](strategy.params, probabilities)
            after_ece = calibration_score(mapped, outcomes, self._bins)
            after_brier = brier_score(mapped, outcomes)

            if after_ece > before_ece:
                logger.info(
                    "%s would worsen ECE (%.3f → %.3f); parameters unchanged",
                    strategy.method.value,
                    before_ece,
                    after_ece,
                )
                new_params = params.copy()
                after_ece, after_brier = before_ece, before_brier
                applied = False
            else:
                proposed = self._updaters[strategy.method](strategy, params.copy(), history)
                new_params = self.bound_parameters(params, proposed)
                applied = True

            significance = self.improvement_significance(
                before_ece, after_ece, len(probabilities)
            )
        except (ArithmeticError, ValueError):
            logger.exception(
                "Recalibration with %s failed", strategy.method.value if strategy else "auto"
            )
            return self._failure(params, strategy or NO_STRATEGY, "Recalibration failed")

        if applied:
            logger.info(
                "Applied %s: ECE %.3f → %.3f, Brier %.3f → %.3f",
                strategy.method.value,
                before_ece,
                after_ece,
                before_brier,
                after_brier,
            )
        return RecalibrationResult(
            success=True,
            strategy=strategy,
            new_parameters=new_params,
            before_ece=before_ece,
            after_ece=after_ece,
            before_brier=before_brier,
            after_brier=after_brier,
            improvement_significance=significance,
            recommendations=tuple(
                self._recommendations(strategy, applied, after_ece, significance)
            ),
        )

    # ------------------------------------------------------------------
    # Parameter bounds
    # ------------------------------------------------------------------

    def bound_parameters(
        self, current: ModelParameters, proposed: ModelParameters
    ) -> ModelParameters:
        """Limit each change to ±max_relative_step, then clamp to the domain."""
        step = self._rc_config.max_relative_step

        def limit(old: float, new: float) -> float:
            return min(old * (1 + step), max(old * (1 - step), new))

        bounded = replace(
            proposed,
            cycle_length_variance=max(
                MIN_VARIANCE,
                limit(current.cycle_length_variance, proposed.cycle_length_variance),
            ),
            period_length_variance=max(
                MIN_VARIANCE,
                limit(current.period_length_variance, proposed.period_length_variance),
            ),
            adaptive_learning_rate=min(
                MAX_LEARNING_RATE,
                max(
                    MIN_LEARNING_RATE,
                    limit(current.adaptive_learning_rate, proposed.adaptive_learning_rate),
                ),
            ),
            personal_history_weight=min(
                MAX_HISTORY_WEIGHT,
                max(
                    MIN_HISTORY_WEIGHT,
                    limit(current.personal_history_weight, proposed.personal_history_weight),
                ),
            ),
        )
        return bounded.validate()

    @staticmethod
    def improvement_significance(before: float, after: float, n: int) -> float:
        """z-like score of the ECE reduction relative to its sampling error."""
        if n <= 0:
            return 0.0
        improvement = max(0.0, before - after)
        standard_error = math.sqrt(max(before * (1 - before), 1e-9) / n)
        return improvement / standard_error

    # ------------------------------------------------------------------
    # Fitters
    # ------------------------------------------------------------------

    @staticmethod
    def _fit_temperature(
        probabilities: Sequence[float], outcomes: Sequence[float]
    ) -> TemperatureScaling:
        best = min(
            _frange(0.25, 5.0, 0.05),
            key=lambda t: brier_score(
                _map_temperature(TemperatureScaling(t), probabilities), outcomes
            ),
        )
        return TemperatureScaling(temperature=best)

    @staticmethod
    def _fit_platt(probabilities: Sequence[float], outcomes: Sequence[float]) -> PlattScaling:
        candidates = [
            PlattScaling(a, b) for a in _frange(0.1, 3.0, 0.1) for b in _frange(-2.0, 2.0, 0.1)
        ]
        return min(
            candidates,
            key=lambda c: brier_score(_map_platt(c, probabilities), outcomes),
        )

    @staticmethod
    def _fit_isotonic(
        probabilities: Sequence[float], outcomes: Sequence[float]
    ) -> IsotonicRegression:
        return IsotonicRegression(breakpoints=pool_adjacent_violators(probabilities, outcomes))

    @staticmethod
    def _fit_bayesian(
        probabilities: Sequence[float], outcomes: Sequence[float]
    ) -> BayesianUpdate:
        rate = statistics.mean(outcomes) if outcomes else 0.5
        return BayesianUpdate(target_rate=rate)

    # ------------------------------------------------------------------
    # Parameter updates
    # ------------------------------------------------------------------

    @staticmethod
    def _update_temperature(
        strategy: RecalibrationStrategy, params: ModelParameters, history
    ) -> ModelParameters:
        t = strategy.params.temperature
        params.cycle_length_variance *= t
        params.period_length_variance *= t
        params.adaptive_learning_rate *= 1 + (t - 1) * 0.1
        return params

    @staticmethod
    def _update_platt(
        strategy: RecalibrationStrategy, params: ModelParameters, history
    ) -> ModelParameters:
        a, b = strategy.params.a, strategy.params.b
        widen = 1 + (abs(a - 1) + abs(b)) * 0.1
        params.cycle_length_variance *= widen
        params.period_length_variance *= widen
        params.personal_history_weight = min(0.9, max(0.1, params.personal_history_weight * a))
        return params

    @staticmethod
    def _update_isotonic(
        strategy: RecalibrationStrategy, params: ModelParameters, history
    ) -> ModelParameters:
        params.adaptive_learning_rate = min(0.4, params.adaptive_learning_rate * 1.2)
        params.personal_history_weight = max(0.3, params.personal_history_weight * 0.9)
        return params

    @staticmethod
    def _update_bayesian(
        strategy: RecalibrationStrategy, params: ModelParameters, history
    ) -> ModelParameters:
        recent = history[-_BAYESIAN_ERROR_WINDOW:]
        if not recent:
            return params
        error = statistics.mean(abs(r.error_days or 0) for r in recent)
        rate = strategy.params.learning_rate
        params.cycle_length_variance += error * rate
        params.period_length_variance += error * rate * 0.5
        params.adaptive_learning_rate = min(
            MAX_LEARNING_RATE, params.adaptive_learning_rate + rate * 0.1
        )
        params.personal_history_weight = max(
            MIN_HISTORY_WEIGHT, params.personal_history_weight - rate * 0.1
        )
        return params

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _scorable(self, history: Sequence[AccuracyRecord]) -> tuple[list[float], list[float]]:
        verified = [r for r in history if r.is_verified]
        probabilities = [r.confidence_level for r in verified]
        outcomes = [float(r.was_accurate) for r in verified]
        return probabilities, outcomes

    @staticmethod
    def _is_monotonic(curve: Sequence[CalibrationPoint]) -> bool:
        frequencies = [p.observed_frequency for p in curve if p.count >= _MONOTONIC_MIN_BIN_COUNT]
        return all(later >= earlier for earlier, later in zip(frequencies, frequencies[1:]))

    @staticmethod
    def detect_drift(history: Sequence[AccuracyRecord]) -> bool:
        """True if the last 10 errors average over a day more than the 10 before."""
        errors = [r.error_days for r in history if r.error_days is not None]
        if len(errors) < 2 * _DRIFT_WINDOW:
            return False
        recent = statistics.mean(errors[-_DRIFT_WINDOW:])
        older = statistics.mean(errors[-2 * _DRIFT_WINDOW:-_DRIFT_WINDOW])
        return recent - older > _DRIFT_THRESHOLD_DAYS

    @staticmethod
    def _not_triggered(reason: str) -> CalibrationAssessment:
        return CalibrationAssessment(
            triggered=False,
            urgency=Urgency.LOW,
            reason=reason,
            recommended_strategy=NO_STRATEGY,
            estimated_improvement=0.0,
            confidence=0.0,
        )

    @staticmethod
    def _failure(
        params: ModelParameters,
        strategy: RecalibrationStrategy,
        reason: str,
        ece: float = 0.0,
        brier: float = 0.0,
    ) -> RecalibrationResult:
        logger.info("Recalibration not applied: %s", reason)
        return RecalibrationResult(
            success=False,
            strategy=strategy,
            new_parameters=params.copy(),
            before_ece=ece,
            after_ece=ece,
            before_brier=brier,
            after_brier=brier,
            improvement_significance=0.0,
            recommendations=(reason,),
        )

    @staticmethod
    def _recommendations(
        strategy: RecalibrationStrategy, applied: bool, after_ece: float, significance: float
    ) -> list[str]:
        name = strategy.method.value.replace("_", " ")
        if not applied:
            return [
                f"{name.capitalize()} would not have improved calibration; "
                "parameters left unchanged",
                "Continue consistent tracking to maintain calibration quality",
            ]

        recommendations = [f"Applied {name} recalibration strategy"]
        if significance > 1.96:
            recommendations.append("Significant improvement achieved (p < 0.05)")
        else:
            recommendations.append("Marginal improvement: monitor continued performance")
        if after_ece < 0.05:
            recommendations.append(
                "Excellent calibration achieved: confidence levels are now highly reliable"
            )
        elif after_ece < 0.1:
            recommendations.append(
                "Good calibration achieved: continue monitoring for further improvements"
            )
        else:
            recommendations.append(
                "Calibration improved but further optimization may be beneficial"
            )
        recommendations.append("Continue consistent tracking to maintain calibration quality")
        return recommendations


def _to_date(value: datetime | date) -> date:
    return value.date() if isinstance(value, datetime) else value


def _describe_bias(bias: float) -> str:
    direction = "overconfident" if bias > 0 else "underconfident"
    return f"Systematic bias detected: predictions are {direction} by {abs(bias):.1%}"

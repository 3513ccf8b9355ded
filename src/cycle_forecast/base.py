"""Canonical value objects for the cycle forecasting engine.

Every component consumes and produces the types defined here.  Cycle records
are borrowed read-only from the storage layer; predictions, accuracy records
and recalibration results are created per call and carry no identity beyond
their content.  ``ModelParameters`` is the only persistent, mutable value and
is always handed out as a copy.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, fields, replace
from datetime import date, datetime
from enum import Enum
from typing import Any, Mapping

logger = logging.getLogger("cycle_forecast.base")


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class InvalidModelParametersError(ValueError):
    """Raised when ModelParameters fall outside their domain bounds."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class PredictionType(str, Enum):
    PERIOD = "period"
    OVULATION = "ovulation"


class CycleTrend(str, Enum):
    STABLE = "stable"
    INCREASING = "increasing"
    DECREASING = "decreasing"
    IRREGULAR = "irregular"


class Urgency(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


def parse_date(value: date | str | None) -> date | None:
    """Leniently coerce a date, datetime or ISO string to a ``date``.

    Returns None for missing or unparseable values instead of raising, so a
    single malformed record never aborts a whole computation.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip()[:10])
    except ValueError:
        logger.debug("Unparseable date value %r ignored", value)
        return None


# ---------------------------------------------------------------------------
# Cycle history (owned by the storage layer)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DayEntry:
    """One logged day inside a cycle.

    Attributes:
        date:     Calendar date of the entry (date or ISO string).
        flow:     Flow intensity ('spotting', 'light', 'medium', 'heavy').
        symptoms: Symptom names logged that day.
    """

    date: date | str
    flow: str | None = None
    symptoms: tuple[str, ...] = ()


@dataclass(frozen=True)
class CycleRecord:
    """A single historical cycle as supplied by the storage layer.

    Attributes:
        period_start: First day of menstruation (date or ISO string).
        period_end:   Last day of menstruation, if known.
        day_entries:  Per-day flow / symptom entries.
    """

    period_start: date | str
    period_end: date | str | None = None
    day_entries: tuple[DayEntry, ...] = ()

    @property
    def start_date(self) -> date | None:
        return parse_date(self.period_start)

    @property
    def end_date(self) -> date | None:
        return parse_date(self.period_end)

    @property
    def has_symptoms(self) -> bool:
        return any(entry.symptoms for entry in self.day_entries)

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "CycleRecord":
        """Build a record from a decrypted storage dict.

        Accepts both ``periodStartDate`` / ``dayData`` (mobile client shape)
        and ``period_start`` / ``day_entries`` keys.
        """
        start = raw.get("period_start", raw.get("periodStartDate"))
        end = raw.get("period_end", raw.get("periodEndDate"))
        entries_raw = raw.get("day_entries", raw.get("dayData")) or []
        entries = tuple(
            DayEntry(
                date=entry.get("date"),
                flow=entry.get("flow", entry.get("flowIntensity")),
                symptoms=tuple(entry.get("symptoms") or ()),
            )
            for entry in entries_raw
            if isinstance(entry, Mapping)
        )
        return cls(period_start=start, period_end=end, day_entries=entries)


# ---------------------------------------------------------------------------
# Model parameters
# ---------------------------------------------------------------------------


def _snake_case(key: str) -> str:
    return "".join(f"_{ch.lower()}" if ch.isupper() else ch for ch in key)


@dataclass
class ModelParameters:
    """Bayesian model parameters persisted across sessions.

    Attributes:
        cycle_length_mean:       Prior mean cycle length (days).
        cycle_length_variance:   Prior cycle length variance (days²).
        period_length_mean:      Mean bleeding length (days).
        period_length_variance:  Bleeding length variance (days²).
        seasonal_variation:      Seasonal variation factor.
        personal_history_weight: Weight of personal history vs population prior, (0, 1].
        adaptive_learning_rate:  Step size for adaptive updates, (0, 0.5].
    """

    cycle_length_mean: float = 28.0
    cycle_length_variance: float = 9.0
    period_length_mean: float = 5.0
    period_length_variance: float = 1.0
    seasonal_variation: float = 0.1
    personal_history_weight: float = 0.8
    adaptive_learning_rate: float = 0.1

    def validate(self) -> "ModelParameters":
        errors: list[str] = []
        if self.cycle_length_mean <= 0:
            errors.append(f"cycle_length_mean must be > 0, got {self.cycle_length_mean}")
        if self.period_length_mean <= 0:
            errors.append(f"period_length_mean must be > 0, got {self.period_length_mean}")
        if self.cycle_length_variance <= 0:
            errors.append(
                f"cycle_length_variance must be > 0, got {self.cycle_length_variance}"
            )
        if self.period_length_variance <= 0:
            errors.append(
                f"period_length_variance must be > 0, got {self.period_length_variance}"
            )
        if not (0.0 < self.adaptive_learning_rate <= 0.5):
            errors.append(
                f"adaptive_learning_rate must be in (0, 0.5], got {self.adaptive_learning_rate}"
            )
        if not (0.0 < self.personal_history_weight <= 1.0):
            errors.append(
                f"personal_history_weight must be in (0, 1], got {self.personal_history_weight}"
            )
        if errors:
            raise InvalidModelParametersError("; ".join(errors))
        return self

    def copy(self) -> "ModelParameters":
        return replace(self)

    def to_dict(self) -> dict[str, float]:
        return asdict(self)

    @classmethod
    def from_dict(
        cls,
        raw: Mapping[str, Any],
        defaults: "ModelParameters | None" = None,
    ) -> "ModelParameters":
        """Merge a (possibly partial) dict over defaults and validate the result.

        camelCase keys (``cycleLengthMean``) are accepted.  Unknown keys raise,
        since they usually mean a typo in stored parameters.
        """
        raw = {_snake_case(key): value for key, value in raw.items()}
        base = (defaults or cls()).to_dict()
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(raw) - known)
        if unknown:
            raise InvalidModelParametersError(f"Unknown parameter(s): {', '.join(unknown)}")
        try:
            base.update({key: float(value) for key, value in raw.items()})
        except (TypeError, ValueError) as exc:
            raise InvalidModelParametersError(f"Non-numeric parameter value: {exc}") from exc
        return cls(**base).validate()


# ---------------------------------------------------------------------------
# Predictions
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ConfidenceInterval:
    """Half-widths (days) of the 50/80/95 % intervals around a predicted date."""

    p50: float
    p80: float
    p95: float

    def __post_init__(self) -> None:
        if min(self.p50, self.p80, self.p95) < 0:
            raise ValueError(f"Confidence interval widths must be >= 0: {self}")
        if not (self.p50 < self.p80 < self.p95):
            raise ValueError(f"Confidence intervals must satisfy p50 < p80 < p95: {self}")


@dataclass(frozen=True)
class UncertaintyFactors:
    """Inputs that drive how uncertain a prediction is.

    Attributes:
        data_quality:             0.0–1.0 completeness of the logged records.
        history_length:           Number of cycle records used.
        cycle_length_variability: 0.0–1.0 normalised cycle length variance.
        recent_data_reliability:  0.0–1.0 consistency of the latest cycles.
        seasonal_patterns:        True if seasonal variation was detected.
    """

    data_quality: float
    history_length: int
    cycle_length_variability: float
    recent_data_reliability: float
    seasonal_patterns: bool


@dataclass(frozen=True)
class PeriodPrediction:
    """Next period start with uncertainty.

    ``probability_distribution[i]`` is the probability that the period starts
    on ``next_period_start + distribution_offsets[i]`` days.
    """

    next_period_start: date
    confidence_intervals: ConfidenceInterval
    uncertainty_factors: UncertaintyFactors
    probability_distribution: tuple[float, ...]
    explanation: str
    is_default: bool = False

    @property
    def predicted_date(self) -> date:
        return self.next_period_start

    @property
    def distribution_offsets(self) -> range:
        half = len(self.probability_distribution) // 2
        return range(-half, len(self.probability_distribution) - half)


@dataclass(frozen=True)
class FertilityWindow:
    start: date
    end: date
    peak_day: date


@dataclass(frozen=True)
class OvulationPrediction:
    """Ovulation date and fertility window derived from a period prediction.

    The distribution covers ``ovulation_date - 6`` through ``ovulation_date + 2``
    with non-zero mass only inside the fertility window.
    """

    ovulation_date: date
    fertility_window: FertilityWindow
    confidence_intervals: ConfidenceInterval
    uncertainty_factors: UncertaintyFactors
    probability_distribution: tuple[float, ...]
    explanation: str
    distribution_start_offset: int = -6

    @property
    def predicted_date(self) -> date:
        return self.ovulation_date

    @property
    def distribution_offsets(self) -> range:
        start = self.distribution_start_offset
        return range(start, start + len(self.probability_distribution))


Prediction = PeriodPrediction | OvulationPrediction


# ---------------------------------------------------------------------------
# Accuracy tracking
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AccuracyRecord:
    """Outcome of one prediction once ground truth is known.

    Attributes:
        prediction_date:  The date that was predicted.
        actual_date:      The observed date, or None if it never became known.
        confidence_level: 0.0–1.0 probability the model gave to being accurate.
        was_accurate:     True if the error was within the accuracy threshold.
        error_days:       Absolute error in whole days, or None.
        brier_score:      0.0–1.0 Brier score of this single prediction.
        prediction_type:  'period' or 'ovulation'.
    """

    prediction_date: date
    actual_date: date | None
    confidence_level: float
    was_accurate: bool
    error_days: int | None
    brier_score: float
    prediction_type: PredictionType = PredictionType.PERIOD

    @property
    def is_verified(self) -> bool:
        return self.actual_date is not None


@dataclass(frozen=True)
class AccuracyMetrics:
    brier_score: float
    negative_log_likelihood: float
    calibration_score: float
    accuracy_history: tuple[AccuracyRecord, ...] = ()


@dataclass(frozen=True)
class AccuracyTrends:
    is_improving: bool
    is_deteriorating: bool
    is_stable: bool


@dataclass(frozen=True)
class AccuracyInsights:
    overall_performance: str
    calibration_quality: str
    recommendations: tuple[str, ...]
    trends: AccuracyTrends


@dataclass(frozen=True)
class AccuracyComparison:
    recent_brier_score: float
    older_brier_score: float
    brier_score_improvement: float
    recent_calibration: float
    older_calibration: float
    calibration_improvement: float
    significant_improvement: bool


# ---------------------------------------------------------------------------
# Decision context (owned by the caller)
# ---------------------------------------------------------------------------


class DecisionType(str, Enum):
    PLANNING = "planning"
    PROTECTION = "protection"
    FERTILITY = "fertility"
    HEALTH = "health"


class StakesLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


@dataclass(frozen=True)
class DecisionContext:
    """The situation a user is deciding in.

    Attributes:
        decision_type:          What the prediction is being used for.
        stakes_level:           How costly a wrong decision is.
        time_horizon:           Days until the decision has to be acted on.
        alternatives_available: Whether a fallback option exists.
        external_pressure:      0.0–1.0 pressure from outside circumstances.
    """

    decision_type: DecisionType
    stakes_level: StakesLevel
    time_horizon: float
    alternatives_available: bool = True
    external_pressure: float = 0.0


@dataclass(frozen=True)
class UserDecision:
    """A past decision and how it turned out."""

    timestamp: datetime
    context: DecisionContext
    confidence_used: float
    was_correct: bool
    experienced_regret: float
    error_days: int = 0
    anticipated_regret: float | None = None

    @property
    def decision_type(self) -> DecisionType:
        return self.context.decision_type

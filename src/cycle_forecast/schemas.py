"""Pydantic schemas for every output value object.

The engines work with plain dataclasses; these schemas are the
serialization boundary towards the UI and the storage layer.  Each schema
validates straight from the dataclass (``from_attributes``) and dumps to
JSON-native types: dates become ISO strings, enums their values.

    to_json_dict(prediction)  # -> {"next_period_start": "2024-03-26", ...}
"""

from __future__ import annotations

import datetime as dt
from dataclasses import asdict, is_dataclass
from datetime import date
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from cycle_forecast.base import (
    AccuracyComparison,
    AccuracyInsights,
    AccuracyMetrics,
    AccuracyRecord,
    ConfidenceInterval,
    ModelParameters,
    OvulationPrediction,
    PeriodPrediction,
    PredictionType,
    UncertaintyFactors,
    Urgency,
)
from cycle_forecast.calibration.adaptive import ModelUpdateResult
from cycle_forecast.calibration.recalibration import (
    CalibrationAssessment,
    CalibrationReport,
    RecalibrationMethod,
    RecalibrationResult,
    RecalibrationStrategy,
)
from cycle_forecast.cycle.bayesian import BayesianInference, ProbabilityDistribution
from cycle_forecast.decision.regret import RegretProfile, RiskTolerance
from cycle_forecast.decision.support import (
    BufferType,
    DecisionSupportRecommendation,
    RecommendationType,
    TimingWindow,
    UncertaintyLevel,
)


class ForecastBase(BaseModel):
    """Base model with shared config for all forecast schemas."""

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
        str_strip_whitespace=True,
    )


# ---------- Model parameters ----------


class ModelParametersSchema(ForecastBase):
    cycle_length_mean: float = Field(default=28.0, gt=0)
    cycle_length_variance: float = Field(default=9.0, gt=0)
    period_length_mean: float = Field(default=5.0, gt=0)
    period_length_variance: float = Field(default=1.0, gt=0)
    seasonal_variation: float = 0.1
    personal_history_weight: float = Field(default=0.8, gt=0, le=1)
    adaptive_learning_rate: float = Field(default=0.1, gt=0, le=0.5)

    def to_model_parameters(self) -> ModelParameters:
        return ModelParameters(**self.model_dump()).validate()


# ---------- Predictions ----------


class ConfidenceIntervalRead(ForecastBase):
    p50: float
    p80: float
    p95: float


class UncertaintyFactorsRead(ForecastBase):
    data_quality: float = Field(ge=0, le=1)
    history_length: int = Field(ge=0)
    cycle_length_variability: float = Field(ge=0, le=1)
    recent_data_reliability: float = Field(ge=0, le=1)
    seasonal_patterns: bool


class PeriodPredictionRead(ForecastBase):
    next_period_start: date
    confidence_intervals: ConfidenceIntervalRead
    uncertainty_factors: UncertaintyFactorsRead
    probability_distribution: list[float]
    explanation: str
    is_default: bool = False


class FertilityWindowRead(ForecastBase):
    start: date
    end: date
    peak_day: date


class OvulationPredictionRead(ForecastBase):
    ovulation_date: date
    fertility_window: FertilityWindowRead
    confidence_intervals: ConfidenceIntervalRead
    uncertainty_factors: UncertaintyFactorsRead
    probability_distribution: list[float]
    explanation: str
    distribution_start_offset: int = -6


class ProbabilityDistributionRead(ForecastBase):
    mean: float
    variance: float
    density: list[float]
    support: tuple[int, int]


class BayesianInferenceRead(ForecastBase):
    prior: ProbabilityDistributionRead
    likelihood: ProbabilityDistributionRead
    posterior: ProbabilityDistributionRead
    evidence: float
    update_strength: float
    observations: int


# ---------- Accuracy ----------


class AccuracyRecordRead(ForecastBase):
    prediction_date: date
    actual_date: date | None = None
    confidence_level: float = Field(ge=0, le=1)
    was_accurate: bool
    error_days: int | None = None
    brier_score: float = Field(ge=0, le=1)
    prediction_type: PredictionType = PredictionType.PERIOD


class AccuracyMetricsRead(ForecastBase):
    brier_score: float
    negative_log_likelihood: float
    calibration_score: float
    accuracy_history: list[AccuracyRecordRead] = Field(default_factory=list)


class AccuracyTrendsRead(ForecastBase):
    is_improving: bool
    is_deteriorating: bool
    is_stable: bool


class AccuracyInsightsRead(ForecastBase):
    overall_performance: str
    calibration_quality: str
    recommendations: list[str]
    trends: AccuracyTrendsRead


class AccuracyComparisonRead(ForecastBase):
    recent_brier_score: float
    older_brier_score: float
    brier_score_improvement: float
    recent_calibration: float
    older_calibration: float
    calibration_improvement: float
    significant_improvement: bool


# ---------- Recalibration ----------


class RecalibrationStrategyRead(ForecastBase):
    method: RecalibrationMethod
    params: dict[str, Any] = Field(default_factory=dict)
    confidence: float
    expected_improvement: float
    reasoning: str

    @field_validator("params", mode="before")
    @classmethod
    def _params_to_dict(cls, value: Any) -> Any:
        if is_dataclass(value) and not isinstance(value, type):
            return asdict(value)
        return value


class CalibrationPointRead(ForecastBase):
    bin_lower: float
    bin_upper: float
    mean_predicted: float
    observed_frequency: float
    count: int


class CalibrationReportRead(ForecastBase):
    curve: list[CalibrationPointRead]
    expected_calibration_error: float
    brier_score: float
    systematic_bias: float
    sample_size: int
    is_well_calibrated: bool
    needs_recalibration: bool
    is_monotonic: bool


class CalibrationAssessmentRead(ForecastBase):
    triggered: bool
    urgency: Urgency
    reason: str
    recommended_strategy: RecalibrationStrategyRead
    estimated_improvement: float
    confidence: float
    calibration_error: float
    systematic_bias: float


class RecalibrationResultRead(ForecastBase):
    success: bool
    strategy: RecalibrationStrategyRead
    new_parameters: ModelParametersSchema
    before_ece: float
    after_ece: float
    before_brier: float
    after_brier: float
    improvement_significance: float
    recommendations: list[str]


class ModelUpdateResultRead(ForecastBase):
    success: bool
    new_parameters: ModelParametersSchema
    accuracy_improvement: float
    calibration_improvement: float
    reason: str


# ---------- Decision support ----------


class RecommendationRead(ForecastBase):
    recommendation_type: RecommendationType
    message: str
    action_items: list[str]
    confidence_threshold: float
    expected_regret_reduction: float
    applicable_scenarios: list[str]


class AlternativeStrategyRead(ForecastBase):
    name: str
    description: str
    confidence_level: float
    buffer_days: int
    expected_accuracy: float
    expected_regret: float
    suitable_for: list[str]


class ConfidenceGuidanceRead(ForecastBase):
    recommended_range: tuple[float, float]
    explanation: str
    uncertainty_level: UncertaintyLevel
    personal_optimal_range: tuple[float, float]
    adjustment_reason: str


class TimingRecommendationRead(ForecastBase):
    window: TimingWindow
    date: dt.date
    confidence: float
    description: str
    suitable_for: list[str]


class BufferRecommendationRead(ForecastBase):
    buffer_type: BufferType
    description: str
    buffer_days: int = Field(ge=0)
    confidence: float
    reasoning: str


class OutcomeEstimateRead(ForecastBase):
    estimated_accuracy: float = Field(ge=0.1, le=0.95)
    estimated_regret: float = Field(ge=0, le=1)
    confidence_in_estimate: float
    factors_considered: list[str]


class DecisionSupportRecommendationRead(ForecastBase):
    primary_recommendation: RecommendationRead
    alternative_strategies: list[AlternativeStrategyRead]
    confidence_guidance: ConfidenceGuidanceRead
    timing_recommendations: list[TimingRecommendationRead]
    buffer_recommendations: list[BufferRecommendationRead]
    contextual_insights: list[str]
    expected_outcome: OutcomeEstimateRead
    risk_score: float = Field(ge=0, le=1)


class RegretProfileRead(ForecastBase):
    decision_count: int
    average_regret: float
    by_decision_type: dict[str, float]
    by_confidence_band: dict[str, float]
    by_time_horizon: dict[str, float]
    optimal_confidence_range: tuple[float, float]
    risk_tolerance: RiskTolerance
    regret_reduction: float

    @field_validator("by_decision_type", mode="before")
    @classmethod
    def _enum_keys(cls, value: Any) -> Any:
        if isinstance(value, dict):
            return {getattr(k, "value", k): v for k, v in value.items()}
        return value


# ---------- Serialization ----------

_SCHEMAS: dict[type, type[ForecastBase]] = {
    ModelParameters: ModelParametersSchema,
    ConfidenceInterval: ConfidenceIntervalRead,
    UncertaintyFactors: UncertaintyFactorsRead,
    PeriodPrediction: PeriodPredictionRead,
    OvulationPrediction: OvulationPredictionRead,
    ProbabilityDistribution: ProbabilityDistributionRead,
    BayesianInference: BayesianInferenceRead,
    AccuracyRecord: AccuracyRecordRead,
    AccuracyMetrics: AccuracyMetricsRead,
    AccuracyInsights: AccuracyInsightsRead,
    AccuracyComparison: AccuracyComparisonRead,
    RecalibrationStrategy: RecalibrationStrategyRead,
    CalibrationReport: CalibrationReportRead,
    CalibrationAssessment: CalibrationAssessmentRead,
    RecalibrationResult: RecalibrationResultRead,
    ModelUpdateResult: ModelUpdateResultRead,
    DecisionSupportRecommendation: DecisionSupportRecommendationRead,
    RegretProfile: RegretProfileRead,
}


def schema_for(obj: Any) -> type[ForecastBase]:
    try:
        return _SCHEMAS[type(obj)]
    except KeyError:
        raise TypeError(f"No schema registered for {type(obj).__name__}") from None


def to_json_dict(obj: Any) -> dict[str, Any]:
    """Serialize an output value object to a JSON-compatible dict.

    Raises:
        TypeError: If ``obj`` is not a known output value object.
    """
    return schema_for(obj).model_validate(obj).model_dump(mode="json")

"""Decision support recommendations.

Turns a prediction's uncertainty, the decision context and the user's past
decisions into concrete guidance:

- a primary recommendation (largest expected regret reduction)
- conservative / balanced / optimistic alternative strategies
- a recommended confidence range
- early / optimal / late timing windows
- how many buffer days to plan with
- contextual insights and an estimate of the decision's outcome
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from enum import Enum
from typing import Sequence

from cycle_forecast.base import (
    DecisionContext,
    DecisionType,
    Prediction,
    StakesLevel,
    UserDecision,
)
from cycle_forecast.config_loader import ForecastConfig, get_forecast_config
from cycle_forecast.decision.regret import RegretAnalyzer, RegretProfile, RiskTolerance

logger = logging.getLogger("cycle_forecast.decision.support")

SHORT_HORIZON_DAYS = 3
MEDIUM_HORIZON_DAYS = 7
HIGH_PRESSURE = 0.7


class UncertaintyLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class RecommendationType(str, Enum):
    CONFIDENCE_ADJUSTMENT = "confidence_adjustment"
    ALTERNATIVE_STRATEGY = "alternative_strategy"
    TIMING_BUFFER = "timing_buffer"


class TimingWindow(str, Enum):
    EARLY = "early"
    OPTIMAL = "optimal"
    LATE = "late"


class BufferType(str, Enum):
    TEMPORAL = "temporal"
    STRATEGIC = "strategic"


@dataclass(frozen=True)
class Recommendation:
    recommendation_type: RecommendationType
    message: str
    action_items: tuple[str, ...]
    confidence_threshold: float
    expected_regret_reduction: float
    applicable_scenarios: tuple[str, ...]


@dataclass(frozen=True)
class AlternativeStrategy:
    name: str
    description: str
    confidence_level: float
    buffer_days: int
    expected_accuracy: float
    expected_regret: float
    suitable_for: tuple[str, ...]


@dataclass(frozen=True)
class ConfidenceGuidance:
    recommended_range: tuple[float, float]
    explanation: str
    uncertainty_level: UncertaintyLevel
    personal_optimal_range: tuple[float, float]
    adjustment_reason: str


@dataclass(frozen=True)
class TimingRecommendation:
    window: TimingWindow
    date: date
    confidence: float
    description: str
    suitable_for: tuple[str, ...]


@dataclass(frozen=True)
class BufferRecommendation:
    buffer_type: BufferType
    description: str
    buffer_days: int
    confidence: float
    reasoning: str


@dataclass(frozen=True)
class OutcomeEstimate:
    estimated_accuracy: float
    estimated_regret: float
    confidence_in_estimate: float
    factors_considered: tuple[str, ...]


@dataclass(frozen=True)
class DecisionSupportRecommendation:
    """Everything the UI needs to guide one decision.

    Attributes:
        primary_recommendation:  The single most useful recommendation.
        alternative_strategies:  Pre-set strategies with their trade-offs.
        confidence_guidance:     Recommended confidence range and why.
        timing_recommendations:  Early / optimal / late windows.
        buffer_recommendations:  Temporal and strategic buffers.
        contextual_insights:     Observations about the context and history.
        expected_outcome:        Estimated accuracy and regret of the decision.
        risk_score:              0.0–1.0 composite decision risk.
    """

    primary_recommendation: Recommendation
    alternative_strategies: tuple[AlternativeStrategy, ...]
    confidence_guidance: ConfidenceGuidance
    timing_recommendations: tuple[TimingRecommendation, ...]
    buffer_recommendations: tuple[BufferRecommendation, ...]
    contextual_insights: tuple[str, ...]
    expected_outcome: OutcomeEstimate
    risk_score: float


FALLBACK_RECOMMENDATION = Recommendation(
    recommendation_type=RecommendationType.CONFIDENCE_ADJUSTMENT,
    message="Use your best judgment based on the prediction confidence.",
    action_items=("Consider the confidence level when making your decision",),
    confidence_threshold=0.7,
    expected_regret_reduction=0.1,
    applicable_scenarios=("all",),
)


def assess_uncertainty(prediction: Prediction) -> UncertaintyLevel:
    """Classify by the gap between the 95 % and 50 % interval widths."""
    ci = prediction.confidence_intervals
    width = ci.p95 - ci.p50
    if width > 3:
        return UncertaintyLevel.HIGH
    if width > 1.5:
        return UncertaintyLevel.MEDIUM
    return UncertaintyLevel.LOW


def _percent_range(bounds: tuple[float, float]) -> str:
    return f"{bounds[0] * 100:.0f}%-{bounds[1] * 100:.0f}%"


class DecisionSupportEngine:
    """Generate regret-aware guidance for decisions based on a prediction.

    Usage::

        engine = DecisionSupportEngine()
        support = engine.generate_decision_support(prediction, context, history)
        print(support.primary_recommendation.message)
    """

    def __init__(
        self,
        config: ForecastConfig | None = None,
        regret_analyzer: RegretAnalyzer | None = None,
    ) -> None:
        self._config = config or get_forecast_config()
        self._regret = regret_analyzer or RegretAnalyzer()

    @property
    def _ds_config(self):
        return self._config.decision_support

    def generate_decision_support(
        self,
        prediction: Prediction,
        context: DecisionContext,
        history: Sequence[UserDecision] = (),
    ) -> DecisionSupportRecommendation:
        """Build the full recommendation bundle for one decision.

        Args:
            prediction: Period or ovulation prediction the decision relies on.
            context:    The decision being made.
            history:    The user's past decisions (read only).

        Returns:
            DecisionSupportRecommendation.
        """
        uncertainty = assess_uncertainty(prediction)
        profile = self._regret.analyze(history)
        risk = self.risk_score(uncertainty, context)

        candidates = [
            *self._base_recommendations(uncertainty, context),
            *self._personalized_recommendations(context, history, profile),
            *self._risk_recommendations(risk, context),
        ]
        primary = (
            max(candidates, key=lambda r: r.expected_regret_reduction)
            if candidates
            else FALLBACK_RECOMMENDATION
        )

        logger.debug(
            "Decision support for %s/%s: uncertainty=%s risk=%.2f candidates=%d",
            context.decision_type.value,
            context.stakes_level.value,
            uncertainty.value,
            risk,
            len(candidates),
        )
        return DecisionSupportRecommendation(
            primary_recommendation=primary,
            alternative_strategies=tuple(self._alternative_strategies(context)),
            confidence_guidance=self._confidence_guidance(uncertainty, history, profile),
            timing_recommendations=tuple(self._timing_recommendations(prediction, context)),
            buffer_recommendations=tuple(self._buffer_recommendations(uncertainty, context)),
            contextual_insights=tuple(self._contextual_insights(context, history, profile)),
            expected_outcome=self.estimate_outcome(prediction, uncertainty, context, history),
            risk_score=risk,
        )

    # ------------------------------------------------------------------
    # Recommendation candidates
    # ------------------------------------------------------------------

    @staticmethod
    def _base_recommendations(
        uncertainty: UncertaintyLevel, context: DecisionContext
    ) -> list[Recommendation]:
        scenario = (context.decision_type.value,)
        recommendations = []
        if uncertainty is UncertaintyLevel.HIGH:
            recommendations.append(
                Recommendation(
                    recommendation_type=RecommendationType.CONFIDENCE_ADJUSTMENT,
                    message=(
                        "This prediction has high uncertainty. Consider using wider time buffers."
                    ),
                    action_items=(
                        "Use the 80% confidence interval instead of the most likely date",
                        "Plan for multiple scenarios",
                        "Seek additional data if possible",
                    ),
                    confidence_threshold=0.6,
                    expected_regret_reduction=0.3,
                    applicable_scenarios=scenario,
                )
            )
        if context.stakes_level is StakesLevel.HIGH:
            recommendations.append(
                Recommendation(
                    recommendation_type=RecommendationType.ALTERNATIVE_STRATEGY,
                    message=(
                        "High-stakes decision detected. Consider backup plans and a "
                        "conservative approach."
                    ),
                    action_items=(
                        "Develop contingency plans for different outcomes",
                        "Use conservative confidence levels (50-70%)",
                        "Consider delaying the decision if possible",
                    ),
                    confidence_threshold=0.7,
                    expected_regret_reduction=0.4,
                    applicable_scenarios=scenario,
                )
            )
        if context.time_horizon < SHORT_HORIZON_DAYS:
            recommendations.append(
                Recommendation(
                    recommendation_type=RecommendationType.TIMING_BUFFER,
                    message="Short planning horizon increases uncertainty. Add extra buffer time.",
                    action_items=(
                        "Add 1-2 days buffer to your plans",
                        "Monitor for early signs if possible",
                        "Have alternative options ready",
                    ),
                    confidence_threshold=0.5,
                    expected_regret_reduction=0.25,
                    applicable_scenarios=scenario,
                )
            )
        return recommendations

    def _personalized_recommendations(
        self,
        context: DecisionContext,
        history: Sequence[UserDecision],
        profile: RegretProfile,
    ) -> list[Recommendation]:
        ds = self._ds_config
        if len(history) < ds.min_history_for_personalization:
            return []

        scenario = (context.decision_type.value,)
        optimal = profile.optimal_confidence_range
        recommendations = [
            Recommendation(
                recommendation_type=RecommendationType.CONFIDENCE_ADJUSTMENT,
                message=(
                    "Based on your history, you perform best with "
                    f"{_percent_range(optimal)} confidence levels"
                ),
                action_items=(
                    f"Target confidence levels between {optimal[0] * 100:.0f}% "
                    f"and {optimal[1] * 100:.0f}%",
                    "Monitor your regret levels when outside this range",
                ),
                confidence_threshold=optimal[1],
                expected_regret_reduction=0.2,
                applicable_scenarios=scenario,
            )
        ]

        type_regret = profile.regret_for(context.decision_type)
        if type_regret is not None and type_regret > ds.high_regret_threshold:
            recommendations.append(
                Recommendation(
                    recommendation_type=RecommendationType.ALTERNATIVE_STRATEGY,
                    message=(
                        f"You tend to experience regret with {context.decision_type.value} "
                        "decisions. Consider a more cautious approach."
                    ),
                    action_items=(
                        "Use lower confidence thresholds for this decision type",
                        "Add extra buffer time",
                        "Consider seeking additional information",
                    ),
                    confidence_threshold=0.6,
                    expected_regret_reduction=0.3,
                    applicable_scenarios=scenario,
                )
            )
        elif context.stakes_level is StakesLevel.LOW and (
            (type_regret is not None and type_regret < ds.low_regret_threshold)
            or profile.risk_tolerance is RiskTolerance.CONSERVATIVE
        ):
            recommendations.append(
                Recommendation(
                    recommendation_type=RecommendationType.CONFIDENCE_ADJUSTMENT,
                    message=(
                        "Your low-stakes decisions rarely lead to regret. You might be able to "
                        "use slightly higher confidence here."
                    ),
                    action_items=(
                        "Consider 70-80% confidence for low-stakes planning",
                        "Track outcomes to build confidence",
                    ),
                    confidence_threshold=0.8,
                    expected_regret_reduction=0.1,
                    applicable_scenarios=scenario,
                )
            )
        return recommendations

    def _risk_recommendations(
        self, risk: float, context: DecisionContext
    ) -> list[Recommendation]:
        ds = self._ds_config
        scenario = (context.decision_type.value,)
        if risk > ds.high_risk_threshold:
            return [
                Recommendation(
                    recommendation_type=RecommendationType.ALTERNATIVE_STRATEGY,
                    message=(
                        "This decision has high risk potential. Consider risk mitigation "
                        "strategies."
                    ),
                    action_items=(
                        "Develop multiple contingency plans",
                        "Use conservative confidence levels (50-60%)",
                        "Consider postponing if timing allows",
                        "Seek additional data sources",
                    ),
                    confidence_threshold=0.6,
                    expected_regret_reduction=0.4,
                    applicable_scenarios=scenario,
                )
            ]
        if risk < ds.low_risk_threshold:
            return [
                Recommendation(
                    recommendation_type=RecommendationType.CONFIDENCE_ADJUSTMENT,
                    message=(
                        "This appears to be a low-risk decision. You can use higher "
                        "confidence levels."
                    ),
                    action_items=(
                        "Use 80-90% confidence levels",
                        "Plan with minimal buffer time",
                        "Focus on other higher-risk decisions",
                    ),
                    confidence_threshold=0.9,
                    expected_regret_reduction=0.1,
                    applicable_scenarios=scenario,
                )
            ]
        return []

    @staticmethod
    def risk_score(uncertainty: UncertaintyLevel, context: DecisionContext) -> float:
        """Uncertainty + stakes + horizon + no-alternatives penalty, capped at 1."""
        uncertainty_part = {
            UncertaintyLevel.HIGH: 0.4,
            UncertaintyLevel.MEDIUM: 0.2,
            UncertaintyLevel.LOW: 0.1,
        }[uncertainty]
        stakes_part = {StakesLevel.HIGH: 0.3, StakesLevel.MEDIUM: 0.2, StakesLevel.LOW: 0.1}[
            context.stakes_level
        ]
        if context.time_horizon < SHORT_HORIZON_DAYS:
            horizon_part = 0.2
        elif context.time_horizon < MEDIUM_HORIZON_DAYS:
            horizon_part = 0.1
        else:
            horizon_part = 0.05
        alternatives_part = 0.0 if context.alternatives_available else 0.1
        return min(1.0, uncertainty_part + stakes_part + horizon_part + alternatives_part)

    # ------------------------------------------------------------------
    # Bundle sections
    # ------------------------------------------------------------------

    @staticmethod
    def _alternative_strategies(context: DecisionContext) -> list[AlternativeStrategy]:
        high_stakes = context.stakes_level is StakesLevel.HIGH
        strategies = [
            AlternativeStrategy(
                name="Conservative Approach",
                description="Use wide confidence intervals and add buffer time",
                confidence_level=0.5,
                buffer_days=3 if high_stakes else 2,
                expected_accuracy=0.9,
                expected_regret=0.2,
                suitable_for=("High-stakes decisions", "When you prefer certainty"),
            ),
            AlternativeStrategy(
                name="Balanced Approach",
                description="Use moderate confidence with reasonable buffers",
                confidence_level=0.7,
                buffer_days=1,
                expected_accuracy=0.75,
                expected_regret=0.3,
                suitable_for=("Most decisions", "Regular planning"),
            ),
        ]
        if not high_stakes:
            strategies.append(
                AlternativeStrategy(
                    name="Optimistic Approach",
                    description="Use high confidence with minimal buffers",
                    confidence_level=0.9,
                    buffer_days=0,
                    expected_accuracy=0.6,
                    expected_regret=0.4,
                    suitable_for=("Low-stakes decisions", "When you prefer efficiency"),
                )
            )
        return strategies

    def _confidence_guidance(
        self,
        uncertainty: UncertaintyLevel,
        history: Sequence[UserDecision],
        profile: RegretProfile,
    ) -> ConfidenceGuidance:
        if len(history) >= self._ds_config.min_history_for_personalization:
            personal = profile.optimal_confidence_range
        else:
            personal = (0.6, 0.8)

        if uncertainty is UncertaintyLevel.HIGH:
            recommended = (0.5, 0.7)
            explanation = (
                "High uncertainty suggests using lower confidence levels and wider planning windows"
            )
            reason = "High prediction uncertainty suggests using lower confidence levels"
        elif uncertainty is UncertaintyLevel.MEDIUM:
            recommended = personal
            explanation = "Medium uncertainty allows using your personal optimal confidence range"
            reason = (
                "Medium uncertainty allows using your personal optimal range "
                f"({_percent_range(personal)})"
            )
        else:
            low, high = max(0.7, personal[0]), min(0.9, personal[1])
            # The personal range can sit entirely outside 70-90 %
            recommended = (low, high) if low < high else (0.7, 0.9)
            explanation = "Low uncertainty supports using higher confidence levels for planning"
            reason = "Low prediction uncertainty allows for higher confidence levels"

        return ConfidenceGuidance(
            recommended_range=recommended,
            explanation=explanation,
            uncertainty_level=uncertainty,
            personal_optimal_range=personal,
            adjustment_reason=reason,
        )

    @staticmethod
    def _timing_recommendations(
        prediction: Prediction, context: DecisionContext
    ) -> list[TimingRecommendation]:
        width = prediction.confidence_intervals.p50
        base = min(
            1.0,
            sum(
                p
                for offset, p in zip(
                    prediction.distribution_offsets, prediction.probability_distribution
                )
                if abs(offset) <= width
            ),
        )
        predicted = prediction.predicted_date
        windows = [
            TimingRecommendation(
                window=TimingWindow.EARLY,
                date=predicted - timedelta(days=1),
                confidence=base * 0.3,
                description="Conservative early timing with high certainty",
                suitable_for=("High-stakes decisions", "Cannot afford to be late"),
            ),
            TimingRecommendation(
                window=TimingWindow.OPTIMAL,
                date=predicted,
                confidence=base,
                description="Most likely timing based on prediction model",
                suitable_for=("Balanced decisions", "Regular planning"),
            ),
        ]
        if context.decision_type is not DecisionType.PROTECTION:
            windows.append(
                TimingRecommendation(
                    window=TimingWindow.LATE,
                    date=predicted + timedelta(days=1),
                    confidence=base * 0.7,
                    description="Later timing with moderate confidence",
                    suitable_for=("Flexible planning", "When early action is costly"),
                )
            )
        return windows

    @staticmethod
    def _buffer_recommendations(
        uncertainty: UncertaintyLevel, context: DecisionContext
    ) -> list[BufferRecommendation]:
        base = {UncertaintyLevel.HIGH: 2, UncertaintyLevel.MEDIUM: 1, UncertaintyLevel.LOW: 0}[
            uncertainty
        ]
        stakes = {StakesLevel.HIGH: 1, StakesLevel.MEDIUM: 0, StakesLevel.LOW: -1}[
            context.stakes_level
        ]
        short_horizon = context.time_horizon < SHORT_HORIZON_DAYS
        days = max(0, base + stakes + (1 if short_horizon else 0))

        reasons = []
        if uncertainty is UncertaintyLevel.HIGH:
            reasons.append("high prediction uncertainty")
        if context.stakes_level is StakesLevel.HIGH:
            reasons.append("high decision stakes")
        if short_horizon:
            reasons.append("short planning horizon")
        reasoning = (
            f"Buffer recommended due to: {', '.join(reasons)}"
            if reasons
            else "Standard buffer for this decision type"
        )

        return [
            BufferRecommendation(
                buffer_type=BufferType.TEMPORAL,
                description=f"Add {days} day(s) buffer to your planning",
                buffer_days=days,
                confidence=0.85,
                reasoning=reasoning,
            ),
            BufferRecommendation(
                buffer_type=BufferType.STRATEGIC,
                description="Develop contingency plans for different scenarios",
                buffer_days=0,
                confidence=0.9,
                reasoning="Strategic buffers reduce regret regardless of timing accuracy",
            ),
        ]

    @staticmethod
    def _contextual_insights(
        context: DecisionContext,
        history: Sequence[UserDecision],
        profile: RegretProfile,
    ) -> list[str]:
        insights = []
        if context.external_pressure > HIGH_PRESSURE:
            insights.append(
                "High external pressure detected: consider whether this decision can be delayed"
            )
        if not context.alternatives_available:
            insights.append(
                "Limited alternatives increase decision importance: use a conservative approach"
            )
        if len(history) >= 5:
            if profile.average_regret > 0.5:
                insights.append(
                    "Your history shows higher regret levels: consider more conservative "
                    "confidence levels"
                )
            else:
                insights.append(
                    "Your decision patterns look healthy: maintain your current approach"
                )
        return insights

    # ------------------------------------------------------------------
    # Outcome estimate
    # ------------------------------------------------------------------

    def estimate_outcome(
        self,
        prediction: Prediction,
        uncertainty: UncertaintyLevel,
        context: DecisionContext,
        history: Sequence[UserDecision],
    ) -> OutcomeEstimate:
        """Estimated accuracy and regret of acting on this prediction."""
        factors = prediction.uncertainty_factors
        base = {
            UncertaintyLevel.HIGH: 0.6,
            UncertaintyLevel.MEDIUM: 0.75,
            UncertaintyLevel.LOW: 0.85,
        }[uncertainty]
        base *= factors.data_quality * min(1.0, factors.history_length / 6)

        user_adjustment = 1.0
        if len(history) >= 2:
            relevant = [d for d in history if d.decision_type is context.decision_type]
            if relevant:
                hit_rate = sum(d.was_correct for d in relevant) / len(relevant)
                user_adjustment = 0.8 + hit_rate * 0.4

        context_adjustment = 1.0
        if context.stakes_level is StakesLevel.HIGH:
            context_adjustment *= 0.9
        if context.time_horizon < SHORT_HORIZON_DAYS:
            context_adjustment *= 0.95
        if context.external_pressure > HIGH_PRESSURE:
            context_adjustment *= 0.9

        accuracy = max(0.1, min(0.95, base * user_adjustment * context_adjustment))
        stakes_multiplier = {StakesLevel.HIGH: 1.3, StakesLevel.MEDIUM: 1.0, StakesLevel.LOW: 0.8}[
            context.stakes_level
        ]
        regret = max(0.0, min(1.0, (1 - accuracy) * stakes_multiplier))

        return OutcomeEstimate(
            estimated_accuracy=accuracy,
            estimated_regret=regret,
            confidence_in_estimate=(
                0.8 if len(history) >= self._ds_config.min_history_for_personalization else 0.5
            ),
            factors_considered=(
                "Prediction uncertainty",
                "Your historical performance",
                "Decision context",
                "Stakes level",
            ),
        )

"""Regret analysis of a user's past decisions.

Summarises how much regret the user experienced, broken down by decision
type, by the confidence level they relied on and by planning horizon, and
derives two personal calibration hints:

- the confidence band in which they historically regret least
- an estimated risk tolerance (conservative / moderate / aggressive)
"""

from __future__ import annotations

import logging
import statistics
from dataclasses import dataclass, field
from enum import Enum
from typing import Sequence

from cycle_forecast.base import DecisionType, StakesLevel, UserDecision

logger = logging.getLogger("cycle_forecast.decision.regret")

DEFAULT_OPTIMAL_RANGE = (0.6, 0.8)
CONFIDENCE_BANDS = ((0.5, 0.6), (0.6, 0.7), (0.7, 0.8), (0.8, 0.9), (0.9, 1.0))
PROGRESS_WINDOW = 5


class RiskTolerance(str, Enum):
    CONSERVATIVE = "conservative"
    MODERATE = "moderate"
    AGGRESSIVE = "aggressive"


@dataclass(frozen=True)
class RegretProfile:
    """Aggregated regret of a decision history.

    Attributes:
        decision_count:           Number of decisions analysed.
        average_regret:           Mean experienced regret (0.0–1.0).
        by_decision_type:         Mean regret per decision type.
        by_confidence_band:       Mean regret for 'low' (<0.5), 'medium' (<0.8), 'high'.
        by_time_horizon:          Mean regret for 'short' (<3 d), 'medium' (<7 d), 'long'.
        optimal_confidence_range: Confidence band with the lowest mean regret.
        risk_tolerance:           Estimated risk attitude.
        regret_reduction:         Earliest-window minus latest-window mean regret, ≥ 0.
    """

    decision_count: int = 0
    average_regret: float = 0.0
    by_decision_type: dict[DecisionType, float] = field(default_factory=dict)
    by_confidence_band: dict[str, float] = field(default_factory=dict)
    by_time_horizon: dict[str, float] = field(default_factory=dict)
    optimal_confidence_range: tuple[float, float] = DEFAULT_OPTIMAL_RANGE
    risk_tolerance: RiskTolerance = RiskTolerance.MODERATE
    regret_reduction: float = 0.0

    def regret_for(self, decision_type: DecisionType) -> float | None:
        return self.by_decision_type.get(decision_type)


def _regret(decision: UserDecision) -> float:
    return min(1.0, max(0.0, decision.experienced_regret))


def _confidence_band(confidence: float) -> str:
    if confidence < 0.5:
        return "low"
    if confidence < 0.8:
        return "medium"
    return "high"


def _horizon_band(days: float) -> str:
    if days < 3:
        return "short"
    if days < 7:
        return "medium"
    return "long"


def _mean_by(decisions: Sequence[UserDecision], key) -> dict:
    grouped: dict = {}
    for decision in decisions:
        grouped.setdefault(key(decision), []).append(_regret(decision))
    return {k: statistics.mean(v) for k, v in grouped.items()}


class RegretAnalyzer:
    """Analyse a user's decision history.

    Usage::

        profile = RegretAnalyzer().analyze(decisions)
        low, high = profile.optimal_confidence_range
    """

    def analyze(self, decisions: Sequence[UserDecision]) -> RegretProfile:
        if not decisions:
            return RegretProfile()

        ordered = sorted(decisions, key=lambda d: d.timestamp)
        profile = RegretProfile(
            decision_count=len(ordered),
            average_regret=statistics.mean(_regret(d) for d in ordered),
            by_decision_type=_mean_by(ordered, lambda d: d.decision_type),
            by_confidence_band=_mean_by(ordered, lambda d: _confidence_band(d.confidence_used)),
            by_time_horizon=_mean_by(ordered, lambda d: _horizon_band(d.context.time_horizon)),
            optimal_confidence_range=self.optimal_confidence_range(ordered),
            risk_tolerance=self.estimate_risk_tolerance(ordered),
            regret_reduction=self.regret_reduction(ordered),
        )
        logger.debug(
            "Regret profile over %d decisions: avg=%.2f optimal=%s tolerance=%s",
            profile.decision_count,
            profile.average_regret,
            profile.optimal_confidence_range,
            profile.risk_tolerance.value,
        )
        return profile

    @staticmethod
    def optimal_confidence_range(decisions: Sequence[UserDecision]) -> tuple[float, float]:
        """The [low, high) band among 0.5–1.0 with the lowest mean regret.

        Falls back to the default range with fewer than two decisions or
        when no decision falls in any band.
        """
        if len(decisions) < 2:
            return DEFAULT_OPTIMAL_RANGE
        best, lowest = DEFAULT_OPTIMAL_RANGE, float("inf")
        for low, high in CONFIDENCE_BANDS:
            in_band = [
                _regret(d)
                for d in decisions
                if low <= d.confidence_used < high or (high == 1.0 and d.confidence_used == 1.0)
            ]
            if in_band and statistics.mean(in_band) < lowest:
                best, lowest = (low, high), statistics.mean(in_band)
        return best

    @staticmethod
    def estimate_risk_tolerance(decisions: Sequence[UserDecision]) -> RiskTolerance:
        """Aggressive users rely on high confidence for high-stakes decisions."""
        if len(decisions) < 3:
            return RiskTolerance.MODERATE
        average_confidence = statistics.mean(d.confidence_used for d in decisions)
        high_stakes_share = sum(
            d.context.stakes_level is StakesLevel.HIGH for d in decisions
        ) / len(decisions)
        if average_confidence > 0.8 and high_stakes_share > 0.3:
            return RiskTolerance.AGGRESSIVE
        if average_confidence < 0.6 or high_stakes_share < 0.1:
            return RiskTolerance.CONSERVATIVE
        return RiskTolerance.MODERATE

    @staticmethod
    def regret_reduction(decisions: Sequence[UserDecision]) -> float:
        if len(decisions) < 2:
            return 0.0
        earlier = statistics.mean(_regret(d) for d in decisions[:PROGRESS_WINDOW])
        recent = statistics.mean(_regret(d) for d in decisions[-PROGRESS_WINDOW:])
        return max(0.0, earlier - recent)

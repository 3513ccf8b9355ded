"""Regret-aware decision support.

Modules:
    regret  — Regret profile of the user's past decisions
    support — Recommendation bundle for a decision based on a prediction
"""

from cycle_forecast.decision.regret import RegretAnalyzer, RegretProfile, RiskTolerance
from cycle_forecast.decision.support import (
    DecisionSupportEngine,
    DecisionSupportRecommendation,
    UncertaintyLevel,
)

__all__ = [
    "RegretAnalyzer",
    "RegretProfile",
    "RiskTolerance",
    "DecisionSupportEngine",
    "DecisionSupportRecommendation",
    "UncertaintyLevel",
]

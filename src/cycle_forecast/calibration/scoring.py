"""Proper scoring rules and calibration error.

All functions take paired sequences of predicted probabilities and binary
outcomes (bool or 0/1).

    brier_score             — mean squared error, 0 = perfect, 1 = worst
    negative_log_likelihood — log loss with probabilities clamped away from 0/1
    calibration_score       — expected calibration error over equal-width bins
    reliability_curve       — the per-bin data behind calibration_score
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Sequence

DEFAULT_BINS = 10
DEFAULT_EPSILON = 1e-3


class ScoringInputError(ValueError):
    """Raised when probabilities and outcomes cannot be scored together."""


@dataclass(frozen=True)
class CalibrationPoint:
    """One non-empty bin of a reliability curve."""

    bin_lower: float
    bin_upper: float
    mean_predicted: float
    observed_frequency: float
    count: int

    @property
    def gap(self) -> float:
        return abs(self.mean_predicted - self.observed_frequency)


def _check_pair(
    probabilities: Sequence[float], outcomes: Sequence[bool | int], allow_empty: bool = False
) -> None:
    if len(probabilities) != len(outcomes):
        raise ScoringInputError(
            f"Length mismatch: {len(probabilities)} probabilities vs {len(outcomes)} outcomes"
        )
    if not probabilities and not allow_empty:
        raise ScoringInputError("Cannot score an empty sequence")
    for p in probabilities:
        if not (0.0 <= p <= 1.0):
            raise ScoringInputError(f"Probability {p!r} is outside [0, 1]")


def brier_score(probabilities: Sequence[float], outcomes: Sequence[bool | int]) -> float:
    """Mean of (p - outcome)².

    Raises:
        ScoringInputError: On length mismatch, empty input, or p outside [0, 1].
    """
    _check_pair(probabilities, outcomes)
    return sum((p - float(o)) ** 2 for p, o in zip(probabilities, outcomes)) / len(probabilities)


def negative_log_likelihood(
    probabilities: Sequence[float],
    outcomes: Sequence[bool | int],
    epsilon: float = DEFAULT_EPSILON,
) -> float:
    """-mean(o·ln p + (1-o)·ln(1-p)), with p clamped to [eps, 1-eps].

    Always finite and non-negative.

    Raises:
        ScoringInputError: On length mismatch, empty input, or p outside [0, 1].
    """
    _check_pair(probabilities, outcomes)
    total = 0.0
    for p, o in zip(probabilities, outcomes):
        p = min(1.0 - epsilon, max(epsilon, p))
        o = float(o)
        total += o * math.log(p) + (1.0 - o) * math.log(1.0 - p)
    return -total / len(probabilities)


def _bin_index(p: float, bins: int) -> int:
    return min(bins - 1, int(math.floor(p * bins)))


def reliability_curve(
    probabilities: Sequence[float],
    outcomes: Sequence[bool | int],
    bins: int = DEFAULT_BINS,
) -> list[CalibrationPoint]:
    """Group predictions into equal-width bins over [0, 1].

    p = 1.0 falls into the last bin.  Empty bins are omitted.
    """
    _check_pair(probabilities, outcomes, allow_empty=True)
    grouped: dict[int, list[tuple[float, float]]] = {}
    for p, o in zip(probabilities, outcomes):
        grouped.setdefault(_bin_index(p, bins), []).append((p, float(o)))

    points = []
    for index in sorted(grouped):
        members = grouped[index]
        points.append(
            CalibrationPoint(
                bin_lower=index / bins,
                bin_upper=(index + 1) / bins,
                mean_predicted=sum(p for p, _ in members) / len(members),
                observed_frequency=sum(o for _, o in members) / len(members),
                count=len(members),
            )
        )
    return points


def calibration_score(
    probabilities: Sequence[float],
    outcomes: Sequence[bool | int],
    bins: int = DEFAULT_BINS,
) -> float:
    """Expected calibration error: population-weighted mean |confidence - accuracy|.

    Returns 0.0 for empty input.

    Raises:
        ScoringInputError: On length mismatch or p outside [0, 1].
    """
    points = reliability_curve(probabilities, outcomes, bins)
    if not points:
        return 0.0
    total = len(probabilities)
    return sum(point.count / total * point.gap for point in points)

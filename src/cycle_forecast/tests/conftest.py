"""Shared fixtures and builders for cycle forecast engine tests."""

from __future__ import annotations

import json
from datetime import date, datetime, timedelta
from pathlib import Path

import pytest

from cycle_forecast.base import (
    AccuracyRecord,
    CycleRecord,
    DecisionContext,
    DecisionType,
    ModelParameters,
    StakesLevel,
    UserDecision,
)
from cycle_forecast.config_loader import ForecastConfig, load_forecast_config

# Fixtures directory
FIXTURES_DIR = Path(__file__).parent / "fixtures"

# Reference "today" for default predictions
TEST_DATE = date(2025, 7, 1)


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------


def make_cycles(*starts: str) -> list[CycleRecord]:
    """Cycle records with only a start date."""
    return [CycleRecord(period_start=start) for start in starts]


def make_record(
    confidence: float,
    accurate: bool,
    error_days: int | None = None,
    prediction_date: date = date(2025, 1, 1),
) -> AccuracyRecord:
    """A verified accuracy record."""
    if error_days is None:
        error_days = 0 if accurate else 4
    return AccuracyRecord(
        prediction_date=prediction_date,
        actual_date=prediction_date + timedelta(days=error_days),
        confidence_level=confidence,
        was_accurate=accurate,
        error_days=error_days,
        brier_score=(confidence - float(accurate)) ** 2,
    )


def make_history(groups: list[tuple[float, int, int]]) -> list[AccuracyRecord]:
    """Records for (confidence, total, hits) groups, hits spread evenly within each group."""
    history = []
    for confidence, total, hits in groups:
        history.extend(
            make_record(confidence, (i + 1) * hits // total > i * hits // total)
            for i in range(total)
        )
    return history


def make_decision(
    decision_type: DecisionType = DecisionType.PLANNING,
    confidence: float = 0.7,
    regret: float = 0.2,
    was_correct: bool = True,
    stakes: StakesLevel = StakesLevel.MEDIUM,
    time_horizon: float = 10.0,
    day: int = 1,
) -> UserDecision:
    return UserDecision(
        timestamp=datetime(2025, 1, day, 12, 0),
        context=DecisionContext(
            decision_type=decision_type,
            stakes_level=stakes,
            time_horizon=time_horizon,
        ),
        confidence_used=confidence,
        was_correct=was_correct,
        experienced_regret=regret,
    )


# ---------------------------------------------------------------------------
# Config fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def forecast_config() -> ForecastConfig:
    """Load the real bundled forecast config for tests."""
    return load_forecast_config()


@pytest.fixture
def default_params(forecast_config: ForecastConfig) -> ModelParameters:
    return forecast_config.default_parameters()


# ---------------------------------------------------------------------------
# JSON fixture loaders
# ---------------------------------------------------------------------------


@pytest.fixture
def cycle_history_raw() -> dict:
    return json.loads((FIXTURES_DIR / "cycle_history.json").read_text())


@pytest.fixture
def regular_cycles(cycle_history_raw: dict) -> list[CycleRecord]:
    """Seven fully logged cycles, lengths 28, 29, 27, 28, 30, 28."""
    return [CycleRecord.from_dict(raw) for raw in cycle_history_raw["cycles"]]


@pytest.fixture
def three_cycles() -> list[CycleRecord]:
    """Start dates only; lengths 28 and 29."""
    return make_cycles("2024-01-01", "2024-01-29", "2024-02-27")


# ---------------------------------------------------------------------------
# Accuracy history fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def calibrated_history() -> list[AccuracyRecord]:
    """60 records whose confidence matches the observed hit rate in every bin."""
    return make_history([(0.35, 20, 7), (0.55, 20, 11), (0.75, 20, 15)])


@pytest.fixture
def overconfident_history() -> list[AccuracyRecord]:
    """The calibrated hit rates, but with confidence 0.2–0.3 too high."""
    return make_history([(0.65, 20, 7), (0.85, 20, 11), (0.95, 20, 15)])

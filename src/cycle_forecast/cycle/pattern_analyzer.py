"""Cycle pattern analysis.

Turns an ordered cycle history into the statistics every downstream
component relies on:

- cycle lengths (consecutive start-date deltas, noise filtered)
- mean and sample variance
- trend over the most recent cycles
- seasonal (calendar month) variation
- outlier cycles
- an overall pattern confidence
"""

from __future__ import annotations

import logging
import math
import statistics
from dataclasses import dataclass, field
from datetime import date
from typing import Sequence

from cycle_forecast.base import CycleRecord, CycleTrend, ModelParameters
from cycle_forecast.config_loader import ForecastConfig, get_forecast_config

logger = logging.getLogger("cycle_forecast.cycle.pattern_analyzer")


@dataclass(frozen=True)
class SeasonalPattern:
    """Calendar-month variation in cycle length.

    Attributes:
        has_seasonal_variation: True if the monthly amplitude exceeds the threshold.
        amplitude:              max - min of monthly deviation from the overall mean (days).
        reliability:            0.0–1.0, grows with the number of records.
        monthly_averages:       Average length per calendar month, index 0 = January.
        peak_month:             Calendar month (1–12) with the longest cycles.
        valley_month:           Calendar month (1–12) with the shortest cycles.
    """

    has_seasonal_variation: bool = False
    amplitude: float = 0.0
    reliability: float = 0.0
    monthly_averages: tuple[float, ...] = ()
    peak_month: int | None = None
    valley_month: int | None = None


@dataclass(frozen=True)
class CyclePattern:
    """Summary statistics of a cycle history.

    Attributes:
        cycle_lengths:   Valid cycle lengths in chronological order.
        mean_length:     Mean cycle length (prior mean if no lengths).
        variance:        Sample variance (n-1), 0.0 if fewer than 2 lengths.
        trend:           Direction of recent cycle lengths.
        seasonal:        Seasonal analysis result.
        outlier_indices: Indices into ``cycle_lengths`` with |z| above threshold.
        confidence:      0.0–1.0 pattern confidence.
        record_count:    Number of records with a usable start date.
    """

    cycle_lengths: tuple[int, ...]
    mean_length: float
    variance: float
    trend: CycleTrend = CycleTrend.STABLE
    seasonal: SeasonalPattern = field(default_factory=SeasonalPattern)
    outlier_indices: tuple[int, ...] = ()
    confidence: float = 0.0
    record_count: int = 0

    @property
    def std_dev(self) -> float:
        return math.sqrt(self.variance)

    @property
    def outliers(self) -> tuple[int, ...]:
        return tuple(self.cycle_lengths[i] for i in self.outlier_indices)


class CyclePatternAnalyzer:
    """Derive length, variance, trend, seasonality and outliers from history.

    Usage::

        analyzer = CyclePatternAnalyzer()
        pattern = analyzer.analyze(cycles)
        print(pattern.mean_length, pattern.trend)
    """

    def __init__(self, config: ForecastConfig | None = None) -> None:
        self._config = config or get_forecast_config()

    @property
    def _pa_config(self):
        return self._config.pattern

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def analyze(
        self,
        cycles: Sequence[CycleRecord],
        params: ModelParameters | None = None,
    ) -> CyclePattern:
        """Analyze a cycle history.

        Args:
            cycles: Historical cycle records (any order; sorted by start date).
            params: Model parameters; the cycle length mean is the fallback
                    for months without data.  Defaults to the configured prior.

        Returns:
            CyclePattern with all statistics populated.
        """
        params = params or self._config.default_parameters()
        starts = self.valid_start_dates(cycles)
        pairs = self._length_pairs(starts)
        lengths = [length for length, _ in pairs]

        if lengths:
            mean_length = statistics.mean(lengths)
        else:
            mean_length = params.cycle_length_mean
        variance = statistics.variance(lengths) if len(lengths) > 1 else 0.0

        pattern = CyclePattern(
            cycle_lengths=tuple(lengths),
            mean_length=mean_length,
            variance=variance,
            trend=self.detect_trend(lengths),
            seasonal=self.detect_seasonality(pairs, len(starts), params),
            outlier_indices=self.detect_outliers(lengths, mean_length, variance),
            confidence=self.pattern_confidence(lengths, mean_length, variance),
            record_count=len(starts),
        )
        logger.debug(
            "Analyzed %d records: %d lengths, mean=%.2f var=%.2f trend=%s",
            len(cycles),
            len(lengths),
            mean_length,
            variance,
            pattern.trend.value,
        )
        return pattern

    def cycle_lengths(self, cycles: Sequence[CycleRecord]) -> list[int]:
        """Return the valid consecutive start-date deltas in chronological order."""
        return [length for length, _ in self._length_pairs(self.valid_start_dates(cycles))]

    @staticmethod
    def valid_start_dates(cycles: Sequence[CycleRecord]) -> list[date]:
        """Parse and sort start dates, skipping records whose date is unusable."""
        starts = []
        for record in cycles:
            start = record.start_date
            if start is None:
                logger.debug("Skipping cycle record with unparseable start %r", record.period_start)
                continue
            starts.append(start)
        return sorted(starts)

    # ------------------------------------------------------------------
    # Individual statistics
    # ------------------------------------------------------------------

    def detect_trend(self, lengths: Sequence[int]) -> CycleTrend:
        """Classify the direction of the most recent cycle lengths.

        The window is split in half; the difference of the half means is
        stable when within one standard deviation of the window, irregular
        when the window variance is high, otherwise increasing or decreasing.
        """
        pa = self._pa_config
        if len(lengths) < 3:
            return CycleTrend.STABLE

        window = list(lengths[-pa.trend_window:])
        half = len(window) // 2
        diff = statistics.mean(window[half:]) - statistics.mean(window[:half])
        variance = statistics.variance(window)

        if diff == 0 or abs(diff) < math.sqrt(variance):
            return CycleTrend.STABLE
        if variance > pa.irregular_variance:
            return CycleTrend.IRREGULAR
        return CycleTrend.INCREASING if diff > 0 else CycleTrend.DECREASING

    def detect_seasonality(
        self,
        pairs: Sequence[tuple[int, int]],
        record_count: int,
        params: ModelParameters,
    ) -> SeasonalPattern:
        """Group lengths by the calendar month of the following cycle's start.

        Args:
            pairs:        (length, month) pairs; month is 1–12.
            record_count: Number of usable records.
            params:       Supplies the fallback mean for months without data.
        """
        pa = self._pa_config
        if record_count < pa.seasonal_min_cycles or not pairs:
            return SeasonalPattern()

        by_month: dict[int, list[int]] = {month: [] for month in range(1, 13)}
        for length, month in pairs:
            by_month[month].append(length)

        monthly = tuple(
            statistics.mean(values) if values else params.cycle_length_mean
            for _, values in sorted(by_month.items())
        )
        overall = statistics.mean(length for length, _ in pairs)
        deviations = [avg - overall for avg in monthly]
        amplitude = max(deviations) - min(deviations)

        return SeasonalPattern(
            has_seasonal_variation=amplitude > pa.seasonal_amplitude_days,
            amplitude=amplitude,
            reliability=min(1.0, record_count / pa.seasonal_full_reliability_cycles),
            monthly_averages=monthly,
            peak_month=deviations.index(max(deviations)) + 1,
            valley_month=deviations.index(min(deviations)) + 1,
        )

    def detect_outliers(
        self, lengths: Sequence[int], mean_length: float, variance: float
    ) -> tuple[int, ...]:
        """Return indices of lengths whose z-score exceeds the threshold."""
        if variance <= 0:
            return ()
        std = math.sqrt(variance)
        threshold = self._pa_config.outlier_z_score
        return tuple(
            i for i, length in enumerate(lengths) if abs(length - mean_length) / std > threshold
        )

    def pattern_confidence(
        self, lengths: Sequence[int], mean_length: float, variance: float
    ) -> float:
        """Average of data-volume confidence and consistency confidence."""
        if len(lengths) < 2 or mean_length <= 0:
            return 0.0
        volume = min(1.0, len(lengths) / self._pa_config.full_confidence_cycles)
        consistency = max(0.0, 1.0 - math.sqrt(variance) / mean_length)
        return (volume + consistency) / 2

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _length_pairs(self, starts: Sequence[date]) -> list[tuple[int, int]]:
        """(length, month of following start) for every in-range delta."""
        pa = self._pa_config
        pairs = []
        for previous, current in zip(starts, starts[1:]):
            delta = (current - previous).days
            if pa.min_cycle_days <= delta <= pa.max_cycle_days:
                pairs.append((delta, current.month))
            else:
                logger.debug("Discarding non-physiological cycle length %d days", delta)
        return pairs

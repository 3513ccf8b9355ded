"""Load, validate, and hot-reload the forecast engine configuration.

The config lives in ``forecast_config.yaml`` alongside this module (or at
``CYCLE_FORECAST_CONFIG_PATH``).  It is loaded once and cached.  Call
``reload_forecast_config()`` to re-read from disk without restarting.

Usage::

    from cycle_forecast.config_loader import get_forecast_config

    config = get_forecast_config()
    config.recalibration.min_samples        # 30
    config.model_defaults.cycle_length_mean  # 28.0
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

from cycle_forecast.base import InvalidModelParametersError, ModelParameters
from cycle_forecast.config import get_settings

logger = logging.getLogger("cycle_forecast.config")

# Path to the YAML file sitting next to this module
_CONFIG_PATH = Path(__file__).parent / "forecast_config.yaml"


# ---------------------------------------------------------------------------
# Typed config sections
# ---------------------------------------------------------------------------


@dataclass
class PatternAnalysisConfig:
    """Cycle pattern analysis thresholds."""

    min_cycle_days: int = 1
    max_cycle_days: int = 59
    trend_window: int = 6
    irregular_variance: float = 25.0
    seasonal_min_cycles: int = 12
    seasonal_amplitude_days: float = 2.0
    seasonal_full_reliability_cycles: int = 24
    outlier_z_score: float = 2.5
    full_confidence_cycles: int = 12


@dataclass
class PredictionConfig:
    """Period / ovulation prediction settings."""

    min_cycles: int = 2
    default_cycle_length: int = 28
    luteal_phase_days: int = 14
    fertile_days_before_ovulation: int = 5
    fertile_days_after_ovulation: int = 1
    distribution_half_width: int = 7
    density_support: tuple[int, int] = (15, 50)


@dataclass
class AccuracyConfig:
    """Accuracy scoring settings."""

    accurate_within_days: int = 2
    history_limit: int = 100
    calibration_bins: int = 10
    nll_epsilon: float = 1e-3
    significant_improvement: float = 0.05


@dataclass
class RecalibrationConfig:
    """Recalibration trigger and stability settings."""

    min_samples: int = 30
    cooldown_days: int = 7
    ece_threshold: float = 0.1
    bias_threshold: float = 0.1
    brier_threshold: float = 0.3
    max_relative_step: float = 0.5


@dataclass
class AdaptiveLearningConfig:
    """Feedback-driven parameter updates between recalibrations."""

    min_records: int = 3
    accuracy_threshold: float = 0.7
    min_learning_rate: float = 0.05
    max_learning_rate: float = 0.3
    min_history_weight: float = 0.3
    max_history_weight: float = 0.95
    recent_window: int = 5
    error_window: int = 10
    reset_accuracy: float = 0.3


@dataclass
class DecisionSupportConfig:
    """Decision support personalisation and risk thresholds."""

    min_history_for_personalization: int = 3
    high_regret_threshold: float = 0.5
    low_regret_threshold: float = 0.3
    high_risk_threshold: float = 0.7
    low_risk_threshold: float = 0.3


@dataclass
class ForecastConfig:
    """Complete, validated forecast configuration.

    This is the single in-memory representation of forecast_config.yaml.
    Every engine reads its thresholds from this object.

    Attributes:
        version:          Config schema version string.
        model_defaults:   Population prior ModelParameters.
        pattern:          Cycle pattern analysis thresholds.
        prediction:       Prediction settings.
        accuracy:         Accuracy scoring settings.
        recalibration:    Recalibration settings.
        adaptive:         Adaptive learning settings.
        decision_support: Decision support thresholds.
    """

    version: str = "1.0"
    model_defaults: ModelParameters = field(default_factory=ModelParameters)
    pattern: PatternAnalysisConfig = field(default_factory=PatternAnalysisConfig)
    prediction: PredictionConfig = field(default_factory=PredictionConfig)
    accuracy: AccuracyConfig = field(default_factory=AccuracyConfig)
    recalibration: RecalibrationConfig = field(default_factory=RecalibrationConfig)
    adaptive: AdaptiveLearningConfig = field(default_factory=AdaptiveLearningConfig)
    decision_support: DecisionSupportConfig = field(default_factory=DecisionSupportConfig)

    def default_parameters(self) -> ModelParameters:
        """Return a fresh copy of the population prior."""
        return self.model_defaults.copy()


# ---------------------------------------------------------------------------
# Loader / validation
# ---------------------------------------------------------------------------


class ConfigValidationError(ValueError):
    """Raised when forecast_config.yaml fails validation."""


def _load_yaml(path: Path) -> dict:
    """Read and parse a YAML file.

    Args:
        path: Path to the YAML file.

    Returns:
        Parsed dict.

    Raises:
        FileNotFoundError: If the file does not exist.
        ConfigValidationError: If the YAML is malformed.
    """
    import yaml  # pyyaml

    if not path.exists():
        raise FileNotFoundError(f"Forecast config not found: {path}")

    with path.open("r", encoding="utf-8") as fh:
        try:
            return yaml.safe_load(fh) or {}
        except yaml.YAMLError as exc:
            raise ConfigValidationError(f"YAML parse error in {path}: {exc}") from exc


def _build_section(cls: type, raw: Any, section: str, errors: list[str]) -> Any:
    """Coerce one flat YAML mapping into its config dataclass.

    Unknown keys and values that cannot be coerced to the field's default
    type are recorded in ``errors``; missing keys keep their defaults.
    """
    instance = cls()
    if raw is None:
        return instance
    if not isinstance(raw, dict):
        errors.append(f"'{section}' must be a mapping")
        return instance

    known = {f.name for f in fields(cls)}
    for key in raw:
        if key not in known:
            errors.append(f"Unknown key '{key}' in section '{section}'")

    for f in fields(cls):
        if f.name not in raw:
            continue
        value = raw[f.name]
        default = getattr(instance, f.name)
        try:
            if isinstance(default, bool):
                coerced: Any = bool(value)
            elif isinstance(default, int):
                coerced = int(value)
            elif isinstance(default, float):
                coerced = float(value)
            elif isinstance(default, tuple):
                coerced = tuple(int(v) for v in value)
            else:
                coerced = value
        except (TypeError, ValueError):
            errors.append(f"{section}.{f.name} has invalid value {value!r}")
            continue
        setattr(instance, f.name, coerced)
    return instance


def _validate_and_build(raw: dict) -> ForecastConfig:
    """Validate the raw YAML dict and construct a ForecastConfig.

    Performs structural and range validation and applies defaults for
    optional fields.

    Args:
        raw: Parsed YAML dict.

    Returns:
        Validated ForecastConfig instance.

    Raises:
        ConfigValidationError: If any field is missing, mistyped or out of range.
    """
    errors: list[str] = []

    version = str(raw.get("version", "1.0"))

    # ── Model defaults ──
    md_raw = raw.get("model_defaults") or {}
    model_defaults = ModelParameters()
    if not isinstance(md_raw, dict):
        errors.append("'model_defaults' must be a mapping")
    else:
        try:
            model_defaults = ModelParameters.from_dict(md_raw)
        except InvalidModelParametersError as exc:
            errors.append(f"model_defaults: {exc}")

    pattern = _build_section(
        PatternAnalysisConfig, raw.get("pattern_analysis"), "pattern_analysis", errors
    )
    prediction = _build_section(PredictionConfig, raw.get("prediction"), "prediction", errors)
    accuracy = _build_section(AccuracyConfig, raw.get("accuracy"), "accuracy", errors)
    recalibration = _build_section(
        RecalibrationConfig, raw.get("recalibration"), "recalibration", errors
    )
    adaptive = _build_section(
        AdaptiveLearningConfig, raw.get("adaptive_learning"), "adaptive_learning", errors
    )
    decision_support = _build_section(
        DecisionSupportConfig, raw.get("decision_support"), "decision_support", errors
    )

    # ── Range checks ──
    if not (0 < pattern.min_cycle_days < pattern.max_cycle_days):
        errors.append("pattern_analysis: require 0 < min_cycle_days < max_cycle_days")
    if pattern.trend_window < 2:
        errors.append("pattern_analysis.trend_window must be >= 2")
    if prediction.min_cycles < 2:
        errors.append("prediction.min_cycles must be >= 2 (one cycle gives no length)")
    if prediction.distribution_half_width < 1:
        errors.append("prediction.distribution_half_width must be >= 1")
    if len(prediction.density_support) != 2 or not (
        prediction.density_support[0] < prediction.density_support[1]
    ):
        errors.append("prediction.density_support must be [low, high] with low < high")
    if accuracy.history_limit < 1:
        errors.append("accuracy.history_limit must be >= 1")
    if accuracy.calibration_bins < 1:
        errors.append("accuracy.calibration_bins must be >= 1")
    if not (0.0 < accuracy.nll_epsilon < 0.5):
        errors.append("accuracy.nll_epsilon must be in (0, 0.5)")
    if recalibration.min_samples < 2:
        errors.append("recalibration.min_samples must be >= 2")
    if recalibration.cooldown_days < 0:
        errors.append("recalibration.cooldown_days must be >= 0")
    if not (0.0 < recalibration.max_relative_step <= 1.0):
        errors.append("recalibration.max_relative_step must be in (0, 1]")
    for name in ("ece_threshold", "bias_threshold", "brier_threshold"):
        value = getattr(recalibration, name)
        if not (0.0 < value < 1.0):
            errors.append(f"recalibration.{name} = {value} is out of range (0, 1)")
    if adaptive.min_records < 1:
        errors.append("adaptive_learning.min_records must be >= 1")
    if not (0.0 < adaptive.min_learning_rate <= adaptive.max_learning_rate <= 0.5):
        errors.append(
            "adaptive_learning: require 0 < min_learning_rate <= max_learning_rate <= 0.5"
        )
    if not (0.0 < adaptive.min_history_weight <= adaptive.max_history_weight <= 1.0):
        errors.append(
            "adaptive_learning: require 0 < min_history_weight <= max_history_weight <= 1"
        )
    if adaptive.recent_window < 1 or adaptive.error_window < 1:
        errors.append("adaptive_learning: recent_window and error_window must be >= 1")
    if decision_support.low_risk_threshold >= decision_support.high_risk_threshold:
        errors.append("decision_support: low_risk_threshold must be < high_risk_threshold")

    if errors:
        raise ConfigValidationError(
            f"forecast_config.yaml has {len(errors)} validation error(s):\n"
            + "\n".join(f"  • {e}" for e in errors)
        )

    # ── Valid but suspicious ──
    low, high = prediction.density_support
    if not (low <= model_defaults.cycle_length_mean <= high):
        logger.warning(
            "model_defaults.cycle_length_mean %.1f lies outside prediction.density_support "
            "[%d, %d]; prior densities will be near zero",
            model_defaults.cycle_length_mean,
            low,
            high,
        )
    if recalibration.min_samples < accuracy.calibration_bins:
        logger.warning(
            "recalibration.min_samples (%d) is below accuracy.calibration_bins (%d); "
            "calibration error will be estimated from nearly empty bins",
            recalibration.min_samples,
            accuracy.calibration_bins,
        )

    return ForecastConfig(
        version=version,
        model_defaults=model_defaults,
        pattern=pattern,
        prediction=prediction,
        accuracy=accuracy,
        recalibration=recalibration,
        adaptive=adaptive,
        decision_support=decision_support,
    )


def load_forecast_config(path: Path | None = None) -> ForecastConfig:
    """Load and validate the forecast config from disk.

    Args:
        path: Override path to YAML.  Falls back to ``Settings.config_path``,
              then to the bundled forecast_config.yaml.

    Returns:
        Validated ForecastConfig instance.
    """
    target = path or get_settings().config_path or _CONFIG_PATH
    raw = _load_yaml(Path(target))
    config = _validate_and_build(raw)
    logger.info("Loaded forecast config v%s from %s", config.version, target)
    return config


# ---------------------------------------------------------------------------
# Global singleton with hot-reload support
# ---------------------------------------------------------------------------

_config: ForecastConfig | None = None
_config_lock = threading.Lock()


def get_forecast_config() -> ForecastConfig:
    """Return the global ForecastConfig singleton, loading it on first call.

    Thread-safe.  Use ``reload_forecast_config()`` to refresh after YAML changes.
    """
    global _config
    if _config is None:
        with _config_lock:
            if _config is None:  # double-checked locking
                _config = load_forecast_config()
    return _config


def reload_forecast_config(path: Path | None = None) -> ForecastConfig:
    """Reload the config from disk and replace the global singleton.

    If validation fails, the old config is retained and the error is re-raised.

    Args:
        path: Override path to YAML.

    Returns:
        The newly loaded ForecastConfig.

    Raises:
        ConfigValidationError: If the new config is invalid.
        FileNotFoundError:     If the config file is missing.
    """
    global _config
    new_config = load_forecast_config(path)  # validate before acquiring lock
    with _config_lock:
        old_version = _config.version if _config else "none"
        _config = new_config
    logger.info("Reloaded forecast config: %s → %s", old_version, new_config.version)
    return new_config

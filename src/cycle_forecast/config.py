"""Runtime settings loaded from environment variables, plus logging setup."""

from __future__ import annotations

import logging
import sys
from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s — %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class Settings(BaseSettings):
    """All settings come from ``CYCLE_FORECAST_*`` environment variables (or .env)."""

    # --- App ---
    log_level: str = "INFO"
    environment: str = "development"  # development | staging | production

    # --- Forecast config ---
    config_path: Path | None = None  # overrides the bundled forecast_config.yaml

    model_config = SettingsConfigDict(
        env_prefix="CYCLE_FORECAST_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


@lru_cache
def get_settings() -> Settings:
    return Settings()


def configure_logging(level: str | None = None) -> logging.Logger:
    """Apply the application log format to the root logger.

    The library never calls this itself; embedding applications call it once
    at start-up.

    Args:
        level: Log level name. Defaults to ``Settings.log_level``.

    Returns:
        The package's top-level logger.
    """
    settings = get_settings()
    resolved = (level or settings.log_level).upper()
    logging.basicConfig(
        level=resolved,
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
        stream=sys.stdout,
    )
    logger = logging.getLogger("cycle_forecast")
    logger.setLevel(resolved)
    if settings.environment == "production" and resolved == "DEBUG":
        logger.warning("DEBUG logging is enabled in production; per-call numbers will be logged")
    logger.info("Logging configured at %s (%s)", resolved, settings.environment)
    return logger

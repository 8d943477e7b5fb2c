"""Runtime settings loaded from environment variables.

The metric jobs themselves live in the YAML configuration file (see
``sql_exporter.jobs``). This module covers how the process runs: where
that file is, logging, and the shutdown/in-flight behaviour.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

from sql_exporter.shutdown import DEFAULT_GRACE_PERIOD
from sql_exporter.types import InFlightPolicy

# Valid log levels
VALID_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})

DEFAULT_CONFIG_PATH = Path("config.yaml")


@dataclass(frozen=True)
class LoggingConfig:
    """Logging settings.

    Attributes:
        level: Log level name.
        json: Emit JSON lines instead of the structured text format.
        diagnostic_tags: Comma-separated diagnostic tags enabled at DEBUG.
    """

    level: str = "INFO"
    json: bool = False
    diagnostic_tags: str = ""


@dataclass(frozen=True)
class Config:
    """Application settings loaded from environment.

    This dataclass is frozen (immutable) to prevent accidental modification
    after creation.
    """

    config_path: Path = DEFAULT_CONFIG_PATH
    logging_config: LoggingConfig = field(default_factory=LoggingConfig)

    # Upper bound on the drain after shutdown is requested; 0 waits forever
    shutdown_timeout_seconds: float = DEFAULT_GRACE_PERIOD

    # Per-execution bound on each statement; None lets statements run unbounded
    query_timeout_seconds: float | None = None

    in_flight_policy: InFlightPolicy = InFlightPolicy.FINISH


def _parse_bool(value: str) -> bool:
    """Parse a string as a boolean.

    Returns:
        True if value is "true", "1", or "yes" (case-insensitive), False otherwise.
    """
    return value.lower() in ("true", "1", "yes")


def _parse_non_negative_float(value: str, name: str, default: float) -> float:
    """Parse a string as a non-negative float with validation.

    Logs a warning and returns ``default`` if the value is invalid.
    """
    try:
        parsed = float(value)
        if parsed < 0:
            logging.warning(
                "Invalid %s: %f is negative, using default %f",
                name,
                parsed,
                default,
            )
            return default
        return parsed
    except ValueError:
        logging.warning(
            "Invalid %s: '%s' is not a valid number, using default %f",
            name,
            value,
            default,
        )
        return default


def _parse_optional_timeout(value: str, name: str) -> float | None:
    """Parse an optional timeout; empty or zero means no timeout."""
    if not value.strip():
        return None
    parsed = _parse_non_negative_float(value, name, 0.0)
    return parsed if parsed > 0 else None


def _validate_log_level(value: str, default: str = "INFO") -> str:
    """Validate and normalize a log level string.

    Logs a warning and returns ``default`` if the value is invalid.
    """
    normalized = value.upper()
    if normalized not in VALID_LOG_LEVELS:
        logging.warning(
            "Invalid SQL_EXPORTER_LOG_LEVEL: '%s' is not valid, using default '%s'. Valid values: %s",
            value,
            default,
            ", ".join(sorted(VALID_LOG_LEVELS)),
        )
        return default
    return normalized


def _validate_in_flight_policy(
    value: str, default: InFlightPolicy = InFlightPolicy.FINISH
) -> InFlightPolicy:
    """Validate an in-flight policy string.

    Logs a warning and returns ``default`` if the value is invalid.
    """
    normalized = value.strip().lower()
    if not InFlightPolicy.is_valid(normalized):
        logging.warning(
            "Invalid SQL_EXPORTER_IN_FLIGHT_POLICY: '%s' is not valid, using default '%s'. "
            "Valid values: %s",
            value,
            default,
            ", ".join(sorted(InFlightPolicy.values())),
        )
        return default
    return InFlightPolicy(normalized)


def load_config(env_file: Path | None = None) -> Config:
    """Load settings from environment variables.

    Args:
        env_file: Optional path to .env file. If not provided,
                  looks for .env in current directory.

    Returns:
        Config object with loaded values. Invalid values are replaced by
        their defaults with a warning.
    """
    if env_file:
        load_dotenv(env_file)
    else:
        load_dotenv()

    logging_config = LoggingConfig(
        level=_validate_log_level(os.getenv("SQL_EXPORTER_LOG_LEVEL", "INFO")),
        json=_parse_bool(os.getenv("SQL_EXPORTER_LOG_JSON", "")),
        diagnostic_tags=os.getenv("SQL_EXPORTER_DIAGNOSTIC_TAGS", ""),
    )

    shutdown_timeout_seconds = _parse_non_negative_float(
        os.getenv("SQL_EXPORTER_SHUTDOWN_TIMEOUT_SECONDS", str(DEFAULT_GRACE_PERIOD)),
        "SQL_EXPORTER_SHUTDOWN_TIMEOUT_SECONDS",
        DEFAULT_GRACE_PERIOD,
    )

    query_timeout_seconds = _parse_optional_timeout(
        os.getenv("SQL_EXPORTER_QUERY_TIMEOUT_SECONDS", ""),
        "SQL_EXPORTER_QUERY_TIMEOUT_SECONDS",
    )

    in_flight_policy = _validate_in_flight_policy(
        os.getenv("SQL_EXPORTER_IN_FLIGHT_POLICY", InFlightPolicy.FINISH.value),
    )

    return Config(
        config_path=Path(os.getenv("SQL_EXPORTER_CONFIG", str(DEFAULT_CONFIG_PATH))),
        logging_config=logging_config,
        shutdown_timeout_seconds=shutdown_timeout_seconds,
        query_timeout_seconds=query_timeout_seconds,
        in_flight_policy=in_flight_policy,
    )


__all__ = [
    "Config",
    "DEFAULT_CONFIG_PATH",
    "LoggingConfig",
    "VALID_LOG_LEVELS",
    "load_config",
]

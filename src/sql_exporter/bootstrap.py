"""Bootstrap and dependency wiring for the SQL exporter.

This module is the composition root. It:
- Loads settings and applies CLI overrides
- Sets up logging
- Loads and validates the job configuration
- Connects to every database (failing fast)
- Creates the value sink and the supervisor

Nothing here starts a thread; that is left to ``sql_exporter.app``.
"""

from __future__ import annotations

import argparse
from dataclasses import replace
from typing import Any

from sql_exporter.config import Config, load_config
from sql_exporter.database import DatabaseHandle, connect_all
from sql_exporter.errors import ConfigurationError, DatabaseConnectionError
from sql_exporter.jobs import ExporterConfig, load_exporter_config
from sql_exporter.logging import get_logger, setup_logging
from sql_exporter.shutdown import ShutdownController
from sql_exporter.sink import PrometheusSink
from sql_exporter.supervisor import Supervisor
from sql_exporter.types import InFlightPolicy

logger = get_logger(__name__)


class BootstrapContext:
    """Container for all bootstrapped dependencies."""

    def __init__(
        self,
        config: Config,
        exporter_config: ExporterConfig,
        handles: dict[str, DatabaseHandle],
        sink: PrometheusSink,
    ) -> None:
        """Initialize the bootstrap context.

        Args:
            config: Runtime settings.
            exporter_config: Validated job configuration.
            handles: Open database handles keyed by database reference.
            sink: Value sink the jobs publish to.
        """
        self.config = config
        self.exporter_config = exporter_config
        self.handles = handles
        self.sink = sink


def apply_cli_overrides(config: Config, parsed: argparse.Namespace) -> Config:
    """Apply CLI argument overrides to the settings.

    Args:
        config: Base settings loaded from environment.
        parsed: Parsed command-line arguments.

    Returns:
        New Config instance with CLI overrides applied.
    """
    overrides: dict[str, Any] = {}

    if parsed.config:
        overrides["config_path"] = parsed.config
    if parsed.log_level:
        overrides["logging_config"] = replace(config.logging_config, level=parsed.log_level)
    if parsed.shutdown_timeout is not None:
        overrides["shutdown_timeout_seconds"] = max(0.0, parsed.shutdown_timeout)
    if parsed.query_timeout is not None:
        overrides["query_timeout_seconds"] = (
            parsed.query_timeout if parsed.query_timeout > 0 else None
        )
    if parsed.in_flight_policy:
        overrides["in_flight_policy"] = InFlightPolicy(parsed.in_flight_policy)

    if overrides:
        return replace(config, **overrides)
    return config


def bootstrap(parsed: argparse.Namespace) -> BootstrapContext | None:
    """Bootstrap the application with all dependencies.

    Args:
        parsed: Parsed command-line arguments.

    Returns:
        BootstrapContext with all initialized dependencies, or None if
        initialization failed. Failures are logged here.
    """
    config = load_config(parsed.env_file)
    config = apply_cli_overrides(config, parsed)

    setup_logging(
        config.logging_config.level,
        json_format=config.logging_config.json,
        diagnostic_tags=config.logging_config.diagnostic_tags,
    )

    logger.info("sql_exporter started")
    logger.info("Loading configuration from %s", config.config_path)
    try:
        exporter_config = load_exporter_config(config.config_path)
    except ConfigurationError as e:
        logger.critical("Failed to load configuration: %s", e)
        return None

    try:
        handles = connect_all(exporter_config.databases)
    except DatabaseConnectionError as e:
        logger.critical(
            "Failed to connect to database: %s", e, extra={"database": e.database}
        )
        return None

    return BootstrapContext(
        config=config,
        exporter_config=exporter_config,
        handles=handles,
        sink=PrometheusSink(),
    )


def create_supervisor_from_context(
    context: BootstrapContext, shutdown: ShutdownController
) -> Supervisor:
    """Create the supervisor for every configured job.

    Args:
        context: Bootstrap context with all initialized dependencies.
        shutdown: Controller owning the cancellation token.

    Returns:
        Supervisor ready to run.
    """
    return Supervisor(
        context.exporter_config.jobs,
        context.handles,
        context.sink,
        shutdown,
        in_flight=context.config.in_flight_policy,
        query_timeout=context.config.query_timeout_seconds,
    )


__all__ = [
    "BootstrapContext",
    "apply_cli_overrides",
    "bootstrap",
    "create_supervisor_from_context",
]

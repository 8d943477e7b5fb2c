"""Command-line interface argument parsing for the SQL exporter.

This module provides the CLI argument parser that handles:
- Configuration file override
- Log level override
- Environment file selection
- Shutdown grace period and in-flight query behaviour
"""

from __future__ import annotations

import argparse
from pathlib import Path

from sql_exporter.types import InFlightPolicy


def parse_args(args: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments.

    Args:
        args: Optional list of arguments to parse. If None, uses sys.argv.

    Returns:
        Parsed arguments namespace with the following attributes:
        - config: Path to the YAML configuration file
        - log_level: Logging level
        - env_file: Path to .env file
        - shutdown_timeout: Drain grace period in seconds
        - query_timeout: Per-statement timeout in seconds
        - in_flight_policy: What to do with a running statement on shutdown
    """
    parser = argparse.ArgumentParser(
        description="SQL exporter - publish SQL query results as Prometheus metrics",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to the configuration file (default: ./config.yaml)",
    )

    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Log level (overrides SQL_EXPORTER_LOG_LEVEL)",
    )

    parser.add_argument(
        "--env-file",
        type=Path,
        default=None,
        help="Path to .env file (default: ./.env)",
    )

    parser.add_argument(
        "--shutdown-timeout",
        type=float,
        default=None,
        help="Seconds to wait for jobs to stop after a termination signal, "
        "0 to wait forever (overrides SQL_EXPORTER_SHUTDOWN_TIMEOUT_SECONDS)",
    )

    parser.add_argument(
        "--query-timeout",
        type=float,
        default=None,
        help="Seconds a single statement may run (overrides SQL_EXPORTER_QUERY_TIMEOUT_SECONDS)",
    )

    parser.add_argument(
        "--in-flight-policy",
        choices=sorted(InFlightPolicy.values()),
        default=None,
        help="Whether a statement running at shutdown finishes or is abandoned "
        "(overrides SQL_EXPORTER_IN_FLIGHT_POLICY)",
    )

    return parser.parse_args(args)


__all__ = ["parse_args"]

"""Core application runner for the SQL exporter.

This module coordinates, in order:
- Bootstrap (settings, logging, configuration, database connections)
- Signal handling via the shutdown controller
- The ``/metrics`` server
- The supervisor, until a termination signal drains every job

Exit codes: 0 after a clean, fully drained shutdown; 1 on any startup
failure or when the drain grace period expires.
"""

from __future__ import annotations

from sql_exporter.bootstrap import BootstrapContext, bootstrap, create_supervisor_from_context
from sql_exporter.cli import parse_args
from sql_exporter.database import close_all
from sql_exporter.logging import get_logger
from sql_exporter.metrics_server import MetricsServer, create_metrics_app, parse_listen_address
from sql_exporter.shutdown import create_shutdown_controller
from sql_exporter.supervisor import EXIT_FAILURE

logger = get_logger(__name__)


def create_metrics_server(context: BootstrapContext) -> MetricsServer:
    """Create (without starting) the metrics server for the configured address.

    Raises:
        ValueError: If the listen address is invalid.
    """
    host, port = parse_listen_address(context.exporter_config.addr)
    return MetricsServer(host=host, port=port)


def run_application(context: BootstrapContext) -> int:
    """Run the exporter with the given context.

    Args:
        context: Bootstrap context with all dependencies.

    Returns:
        Exit code for the application.
    """
    grace_period = context.config.shutdown_timeout_seconds
    try:
        try:
            server = create_metrics_server(context)
        except ValueError as e:
            logger.critical("Invalid listen address: %s", e)
            return EXIT_FAILURE

        controller = create_shutdown_controller(
            grace_period=grace_period,
            on_shutdown=server.request_stop,
        )
        supervisor = create_supervisor_from_context(context, controller)

        try:
            server.start(create_metrics_app(context.sink))
        except (OSError, RuntimeError) as e:
            logger.critical("Failed to start metrics server: %s", e)
            return EXIT_FAILURE

        try:
            return supervisor.run()
        finally:
            server.shutdown(timeout=grace_period)
    finally:
        close_all(context.handles.values())


def main(args: list[str] | None = None) -> int:
    """Main entry point for the application.

    Args:
        args: Optional list of command-line arguments.

    Returns:
        Exit code for the application.
    """
    parsed = parse_args(args)

    context = bootstrap(parsed)
    if context is None:
        return EXIT_FAILURE

    exit_code = run_application(context)
    if exit_code == 0:
        logger.info("Program gracefully shutdown")
    return exit_code


__all__ = [
    "create_metrics_server",
    "main",
    "run_application",
]

"""Exception hierarchy for the SQL exporter.

Errors fall into two families that are handled very differently:

- Startup errors (``ConfigurationError``, ``StartupError`` and its
  subclasses) are fatal. They are raised before any job thread starts and
  make the process exit with status 1.
- Query errors (``QueryError`` and its subclasses) are local to a single
  job. The job runner logs them and stops; sibling jobs keep running.
"""

from __future__ import annotations


class ExporterError(Exception):
    """Base class for all exporter errors."""

    pass


class ConfigurationError(ExporterError):
    """Raised when the configuration file is missing, unparsable or invalid.

    Example:
        >>> raise ConfigurationError("metric 'orders_total': 'interval' must be positive")
    """

    pass


class StartupError(ExporterError):
    """Raised when the exporter cannot start its jobs."""

    pass


class DatabaseConnectionError(StartupError):
    """Raised when a database cannot be reached at startup."""

    def __init__(self, database: str, message: str) -> None:
        super().__init__(f"database '{database}': {message}")
        self.database = database


class MetricRegistrationError(StartupError):
    """Raised when a metric cannot be registered with the value sink."""

    def __init__(self, identifier: str, message: str) -> None:
        super().__init__(f"metric '{identifier}': {message}")
        self.identifier = identifier


class DuplicateMetricError(MetricRegistrationError):
    """Raised when two jobs declare the same metric identifier."""

    def __init__(self, identifier: str) -> None:
        super().__init__(identifier, "identifier is already registered")


class QueryError(ExporterError):
    """Raised when a job's statement fails to produce a value."""

    pass


class QueryResultError(QueryError):
    """Raised when a statement does not return exactly one numeric scalar."""

    pass


class QueryTimeoutError(QueryError):
    """Raised when a statement does not complete within the query timeout."""

    def __init__(self, timeout: float) -> None:
        super().__init__(f"statement did not complete within {timeout:.3f}s")
        self.timeout = timeout


__all__ = [
    "ConfigurationError",
    "DatabaseConnectionError",
    "DuplicateMetricError",
    "ExporterError",
    "MetricRegistrationError",
    "QueryError",
    "QueryResultError",
    "QueryTimeoutError",
    "StartupError",
]

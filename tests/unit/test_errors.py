"""Tests for the exporter's exception hierarchy and enums."""

from __future__ import annotations

import pytest

from sql_exporter.errors import (
    ConfigurationError,
    DatabaseConnectionError,
    DuplicateMetricError,
    ExporterError,
    MetricRegistrationError,
    QueryError,
    QueryResultError,
    QueryTimeoutError,
    StartupError,
)
from sql_exporter.types import InFlightPolicy, RunnerState


class TestHierarchy:
    """Startup errors and per-query errors must stay separate families."""

    @pytest.mark.parametrize(
        "error",
        [
            DatabaseConnectionError("shop", "unreachable"),
            MetricRegistrationError("m", "bad name"),
            DuplicateMetricError("m"),
        ],
    )
    def test_startup_errors(self, error: ExporterError) -> None:
        assert isinstance(error, StartupError)
        assert not isinstance(error, QueryError)

    @pytest.mark.parametrize(
        "error", [QueryResultError("statement returned no rows"), QueryTimeoutError(1.5)]
    )
    def test_query_errors(self, error: ExporterError) -> None:
        assert isinstance(error, QueryError)
        assert not isinstance(error, StartupError)

    def test_configuration_error_is_not_startup_error(self) -> None:
        assert not issubclass(ConfigurationError, StartupError)
        assert issubclass(ConfigurationError, ExporterError)


class TestMessages:
    def test_database_connection_error(self) -> None:
        error = DatabaseConnectionError("shop", "connection refused")

        assert str(error) == "database 'shop': connection refused"
        assert error.database == "shop"

    def test_duplicate_metric_error(self) -> None:
        error = DuplicateMetricError("orders_total")

        assert str(error) == "metric 'orders_total': identifier is already registered"
        assert error.identifier == "orders_total"

    def test_query_timeout_error(self) -> None:
        error = QueryTimeoutError(2.0)

        assert str(error) == "statement did not complete within 2.000s"
        assert error.timeout == 2.0


class TestEnums:
    def test_in_flight_policy_values(self) -> None:
        assert InFlightPolicy.values() == frozenset({"finish", "abort"})
        assert InFlightPolicy.is_valid("abort")
        assert not InFlightPolicy.is_valid("ABORT")

    def test_runner_state_is_str(self) -> None:
        assert RunnerState.STOPPED == "stopped"

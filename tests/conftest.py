"""Shared pytest fixtures for SQL exporter tests."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from pathlib import Path

import pytest

from sql_exporter.cancellation import CancellationToken
from sql_exporter.database import DatabaseHandle
from sql_exporter.shutdown import ShutdownController
from tests.helpers import make_sqlite_handle
from tests.mocks import FakeClock, RecordingSink


@pytest.fixture(autouse=True)
def _clear_exporter_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep settings tests independent of the developer's environment."""
    for name in (
        "SQL_EXPORTER_CONFIG",
        "SQL_EXPORTER_LOG_LEVEL",
        "SQL_EXPORTER_LOG_JSON",
        "SQL_EXPORTER_DIAGNOSTIC_TAGS",
        "SQL_EXPORTER_SHUTDOWN_TIMEOUT_SECONDS",
        "SQL_EXPORTER_QUERY_TIMEOUT_SECONDS",
        "SQL_EXPORTER_IN_FLIGHT_POLICY",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture(autouse=True)
def _exporter_log_level() -> Iterator[None]:
    """Let caplog see the exporter's INFO/DEBUG records."""
    exporter_logger = logging.getLogger("sql_exporter")
    previous = exporter_logger.level
    exporter_logger.setLevel(logging.DEBUG)
    yield
    exporter_logger.setLevel(previous)


@pytest.fixture
def token() -> CancellationToken:
    return CancellationToken()


@pytest.fixture
def controller(token: CancellationToken) -> ShutdownController:
    """Shutdown controller without signal handlers installed."""
    return ShutdownController(token, grace_period=5.0)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def sqlite_handle(tmp_path: Path) -> Iterator[DatabaseHandle]:
    handle = make_sqlite_handle(tmp_path)
    yield handle
    handle.close()

"""Test helper functions for SQL exporter tests.

Usage
=====

Import and use helpers directly in tests::

    from tests.helpers import make_job, make_sqlite_handle

    def test_example(tmp_path):
        job = make_job("orders_total", "SELECT COUNT(*) FROM orders", interval=1.0)
        handle = make_sqlite_handle(tmp_path)
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from pathlib import Path

from sqlalchemy import text

from sql_exporter.database import DatabaseHandle, connect_database
from sql_exporter.jobs import DatabaseConfig, QueryJob


def make_job(
    identifier: str = "test_metric",
    statement: str = "SELECT 1",
    interval: float = 1.0,
    database: str = "stub",
    help: str = "",
    labels: dict[str, str] | None = None,
) -> QueryJob:
    """Create a QueryJob with sensible defaults."""
    return QueryJob(
        identifier=identifier,
        statement=statement,
        interval=interval,
        database=database,
        help=help,
        labels=labels or {},
    )


def sqlite_url(tmp_path: Path, name: str = "shop.db") -> str:
    return f"sqlite:///{tmp_path / name}"


def make_sqlite_handle(
    tmp_path: Path,
    ref: str = "shop",
    prices: list[float] | None = None,
) -> DatabaseHandle:
    """Create a SQLite-backed handle with an ``orders`` table.

    Args:
        tmp_path: Directory for the database file.
        ref: Database reference.
        prices: Price of each order row. Defaults to three orders.
    """
    handle = connect_database(DatabaseConfig(ref=ref, url=sqlite_url(tmp_path)))
    rows = prices if prices is not None else [10.0, 20.0, 30.0]
    with handle.engine.begin() as conn:
        conn.execute(
            text("CREATE TABLE IF NOT EXISTS orders (id INTEGER PRIMARY KEY, price REAL, note TEXT)")
        )
        for price in rows:
            conn.execute(
                text("INSERT INTO orders (price, note) VALUES (:price, 'n/a')"),
                {"price": price},
            )
    return handle


def wait_until(predicate: Callable[[], bool], timeout: float = 5.0) -> bool:
    """Poll ``predicate`` until it holds or ``timeout`` seconds elapse."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


def start_thread(target: Callable[[], object], name: str = "test-thread") -> threading.Thread:
    """Start ``target`` on a daemon thread."""
    thread = threading.Thread(target=target, name=name, daemon=True)
    thread.start()
    return thread

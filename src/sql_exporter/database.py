"""Database handles shared by the job runners.

One ``DatabaseHandle`` wraps one SQLAlchemy engine, and therefore one
connection pool. Every job bound to a database executes through the same
handle; the pool multiplexes the concurrent callers and the handle adds no
locking of its own.
"""

from __future__ import annotations

from collections.abc import Iterable
from decimal import Decimal
from typing import Any

from sqlalchemy import create_engine, text
from sqlalchemy.engine import URL, Engine, make_url
from sqlalchemy.exc import ArgumentError, SQLAlchemyError

from sql_exporter.errors import DatabaseConnectionError, QueryResultError
from sql_exporter.jobs import DatabaseConfig
from sql_exporter.logging import get_logger

logger = get_logger(__name__)

_PING_STATEMENT = "SELECT 1"


def build_url(config: DatabaseConfig) -> URL:
    """Build the SQLAlchemy URL for a database.

    An explicit ``url`` wins. Otherwise the URL is assembled from the
    driver, address (``host[:port]``), credentials and database name.

    Raises:
        DatabaseConnectionError: If the URL or port cannot be parsed.
    """
    if config.url:
        try:
            return make_url(config.url)
        except ArgumentError as e:
            raise DatabaseConnectionError(config.ref, f"invalid url: {e}") from e

    host, sep, port_str = config.address.rpartition(":")
    if not sep:
        host, port_str = config.address, ""

    port: int | None = None
    if port_str:
        try:
            port = int(port_str)
        except ValueError:
            raise DatabaseConnectionError(
                config.ref, f"invalid port in address '{config.address}'"
            ) from None

    return URL.create(
        drivername=config.driver,
        username=config.user or None,
        password=config.password or None,
        host=host or None,
        port=port,
        database=config.name or None,
    )


def coerce_scalar(value: Any) -> float:
    """Convert a single result cell into a float.

    Raises:
        QueryResultError: If the value is NULL or not numeric.
    """
    if value is None:
        raise QueryResultError("statement returned NULL")
    if isinstance(value, (int, float, Decimal)):
        return float(value)
    if isinstance(value, bytes):
        value = value.decode("utf-8", errors="replace")
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            raise QueryResultError(f"statement returned non-numeric value {value!r}") from None
    raise QueryResultError(
        f"statement returned non-numeric value of type {type(value).__name__}"
    )


class DatabaseHandle:
    """An opened connection pool to one database.

    Thread Safety:
        ``query_scalar`` may be called concurrently from any number of
        threads; each call checks out its own pooled connection.
    """

    def __init__(self, ref: str, engine: Engine) -> None:
        self._ref = ref
        self._engine = engine

    @property
    def ref(self) -> str:
        """Get the database reference jobs use to find this handle."""
        return self._ref

    @property
    def engine(self) -> Engine:
        """Get the underlying SQLAlchemy engine."""
        return self._engine

    def ping(self) -> None:
        """Check that a connection can be established.

        Raises:
            sqlalchemy.exc.SQLAlchemyError: If the database is unreachable.
        """
        with self._engine.connect() as conn:
            conn.execute(text(_PING_STATEMENT))

    def query_scalar(self, statement: str) -> float:
        """Execute a statement and return its single numeric value.

        Args:
            statement: SQL that yields exactly one row with one column.

        Returns:
            The value as a float.

        Raises:
            QueryResultError: If the result is not exactly one numeric scalar.
            sqlalchemy.exc.SQLAlchemyError: If execution fails.
        """
        with self._engine.connect() as conn:
            result = conn.execute(text(statement))
            columns = list(result.keys())
            rows = result.fetchmany(2)

        if len(columns) != 1:
            raise QueryResultError(f"statement returned {len(columns)} columns, expected 1")
        if not rows:
            raise QueryResultError("statement returned no rows")
        if len(rows) > 1:
            raise QueryResultError("statement returned more than one row")
        return coerce_scalar(rows[0][0])

    def close(self) -> None:
        """Release every pooled connection."""
        self._engine.dispose()


def connect_database(config: DatabaseConfig) -> DatabaseHandle:
    """Open and verify the connection pool for one database.

    Raises:
        DatabaseConnectionError: If the database cannot be reached.
    """
    url = build_url(config)
    logger.info(
        "Connecting to database %s",
        url.render_as_string(hide_password=True),
        extra={"database": config.ref},
    )
    try:
        engine = create_engine(url, pool_pre_ping=True)
    except (ArgumentError, ImportError) as e:
        raise DatabaseConnectionError(config.ref, str(e)) from e

    handle = DatabaseHandle(config.ref, engine)
    try:
        handle.ping()
    except SQLAlchemyError as e:
        handle.close()
        raise DatabaseConnectionError(config.ref, str(e)) from e
    return handle


def connect_all(databases: Iterable[DatabaseConfig]) -> dict[str, DatabaseHandle]:
    """Connect to every database, failing fast on the first unreachable one.

    Handles opened before the failure are closed before the error propagates.

    Raises:
        DatabaseConnectionError: If any database cannot be reached.
    """
    handles: dict[str, DatabaseHandle] = {}
    try:
        for config in databases:
            handles[config.ref] = connect_database(config)
    except DatabaseConnectionError:
        close_all(handles.values())
        raise
    return handles


def close_all(handles: Iterable[DatabaseHandle]) -> None:
    """Dispose every handle, logging rather than raising on failure."""
    for handle in handles:
        try:
            handle.close()
        except SQLAlchemyError as e:
            logger.warning(
                "Failed to close database: %s", e, extra={"database": handle.ref}
            )


__all__ = [
    "DatabaseHandle",
    "build_url",
    "close_all",
    "coerce_scalar",
    "connect_all",
    "connect_database",
]

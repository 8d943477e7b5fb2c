"""Query job configuration loading and validation.

The exporter is configured by a single YAML file listing databases and,
for each database, the metrics to compute from it::

    addr: ":8080"
    databases:
      - name: shop
        address: "db.internal:3306"
        user: exporter
        password: secret
        metrics:
          - name: orders_total
            help: "Number of orders"
            statement: "SELECT COUNT(*) FROM orders"
            interval: 30s
            labels:
              region: eu

The file is validated once, before any job starts, and turned into frozen
dataclasses. Nothing here touches the network.
"""

from __future__ import annotations

import math
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any

import yaml

from sql_exporter.errors import ConfigurationError
from sql_exporter.logging import get_logger

logger = get_logger(__name__)

DEFAULT_ADDR = ":8080"
DEFAULT_DRIVER = "mysql+pymysql"

_DURATION_UNITS: dict[str, float] = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}

_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")


@dataclass(frozen=True)
class QueryJob:
    """A single metric computed by periodically running one statement.

    Attributes:
        identifier: Metric name the result is published under.
        statement: SQL text that must yield one row with one numeric column.
        interval: Polling period in seconds. Always positive and finite.
        database: Reference of the database the statement runs against.
        help: Help text attached to the metric.
        labels: Static labels attached to the metric. Stored read-only.
    """

    identifier: str
    statement: str
    interval: float
    database: str
    help: str = ""
    labels: Mapping[str, str] = field(default_factory=dict, hash=False)

    def __post_init__(self) -> None:
        if not (math.isfinite(self.interval) and self.interval > 0):
            raise ConfigurationError(
                f"metric '{self.identifier}': 'interval' must be positive and finite, "
                f"got {self.interval}"
            )
        object.__setattr__(self, "labels", MappingProxyType(dict(self.labels)))


@dataclass(frozen=True)
class DatabaseConfig:
    """Connection settings for one database and the jobs bound to it.

    Attributes:
        ref: Reference used by jobs to find their database handle. Defaults
            to ``name``.
        name: Database (schema) name.
        address: ``host[:port]`` of the server.
        user: User to authenticate as.
        password: Password for ``user``.
        driver: SQLAlchemy driver name.
        url: Full SQLAlchemy URL. When set it takes precedence over the
            individual connection fields.
        jobs: Jobs that run against this database.
    """

    ref: str
    name: str = ""
    address: str = ""
    user: str = ""
    password: str = ""
    driver: str = DEFAULT_DRIVER
    url: str | None = None
    jobs: tuple[QueryJob, ...] = ()


@dataclass(frozen=True)
class ExporterConfig:
    """Validated contents of the configuration file."""

    addr: str = DEFAULT_ADDR
    databases: tuple[DatabaseConfig, ...] = ()

    @property
    def jobs(self) -> list[QueryJob]:
        """All jobs across all databases, in file order."""
        return [job for database in self.databases for job in database.jobs]


def parse_duration(value: Any) -> float:
    """Parse a polling interval into seconds.

    Accepts Go-style duration strings (``"500ms"``, ``"30s"``, ``"1m30s"``,
    ``"1.5h"``) as well as plain numbers, which are taken as seconds.

    Raises:
        ValueError: If the value is not a recognisable duration.
    """
    if isinstance(value, bool):
        raise ValueError(f"invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        return _finite(float(value), value)
    if not isinstance(value, str):
        raise ValueError(f"invalid duration: {value!r}")

    text = value.strip()
    if not text:
        raise ValueError("invalid duration: empty string")

    try:
        seconds = float(text)
    except ValueError:
        pass
    else:
        return _finite(seconds, value)

    total = 0.0
    position = 0
    for match in _DURATION_PART.finditer(text):
        if match.start() != position:
            raise ValueError(f"invalid duration: {value!r}")
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        position = match.end()

    if position == 0 or position != len(text):
        raise ValueError(f"invalid duration: {value!r}")
    return _finite(total, value)


def _finite(seconds: float, value: Any) -> float:
    if not math.isfinite(seconds):
        raise ValueError(f"invalid duration: {value!r}")
    return seconds


def _require_str(data: dict[str, Any], key: str, where: str) -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ConfigurationError(f"{where}: '{key}' is required and must be a non-empty string")
    return value


def _optional_str(data: dict[str, Any], key: str, where: str, default: str = "") -> str:
    value = data.get(key, default)
    if value is None:
        return default
    if not isinstance(value, (str, int)) or isinstance(value, bool):
        raise ConfigurationError(f"{where}: '{key}' must be a string")
    return str(value)


def _parse_labels(raw: Any, where: str) -> dict[str, str]:
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ConfigurationError(f"{where}: 'labels' must be a mapping")
    labels: dict[str, str] = {}
    for key, value in raw.items():
        if not isinstance(key, str):
            raise ConfigurationError(f"{where}: label names must be strings, got {key!r}")
        if isinstance(value, (dict, list)) or value is None:
            raise ConfigurationError(f"{where}: label '{key}' must have a scalar value")
        labels[key] = str(value)
    return labels


def _parse_job(data: Any, database_ref: str, index: int) -> QueryJob:
    where = f"database '{database_ref}' metric #{index + 1}"
    if not isinstance(data, dict):
        raise ConfigurationError(f"{where}: must be a mapping")

    identifier = _require_str(data, "name", where)
    where = f"metric '{identifier}'"
    statement = _require_str(data, "statement", where)

    if "interval" not in data:
        raise ConfigurationError(f"{where}: 'interval' is required")
    try:
        interval = parse_duration(data["interval"])
    except ValueError as e:
        raise ConfigurationError(f"{where}: {e}") from e

    return QueryJob(
        identifier=identifier,
        statement=statement,
        interval=interval,
        database=database_ref,
        help=_optional_str(data, "help", where),
        labels=_parse_labels(data.get("labels"), where),
    )


def _parse_database(data: Any, index: int) -> DatabaseConfig:
    where = f"database #{index + 1}"
    if not isinstance(data, dict):
        raise ConfigurationError(f"{where}: must be a mapping")

    name = _optional_str(data, "name", where)
    ref = _optional_str(data, "id", where) or name
    if not ref:
        raise ConfigurationError(f"{where}: 'name' (or 'id') is required")
    where = f"database '{ref}'"

    url = data.get("url")
    if url is not None and (not isinstance(url, str) or not url.strip()):
        raise ConfigurationError(f"{where}: 'url' must be a non-empty string")

    address = _optional_str(data, "address", where)
    if url is None and not address:
        raise ConfigurationError(f"{where}: either 'url' or 'address' is required")

    metrics = data.get("metrics") or []
    if not isinstance(metrics, list):
        raise ConfigurationError(f"{where}: 'metrics' must be a list")

    return DatabaseConfig(
        ref=ref,
        name=name,
        address=address,
        user=_optional_str(data, "user", where),
        password=_optional_str(data, "password", where),
        driver=_optional_str(data, "driver", where, DEFAULT_DRIVER),
        url=url,
        jobs=tuple(_parse_job(job, ref, i) for i, job in enumerate(metrics)),
    )


def parse_exporter_config(data: Any) -> ExporterConfig:
    """Validate already-parsed YAML data.

    Raises:
        ConfigurationError: If the data does not describe a usable configuration.
    """
    if not isinstance(data, dict):
        raise ConfigurationError("configuration must be a mapping")

    addr = _optional_str(data, "addr", "configuration") or DEFAULT_ADDR

    raw_databases = data.get("databases")
    if not isinstance(raw_databases, list) or not raw_databases:
        raise ConfigurationError("no database found")

    databases = tuple(_parse_database(db, i) for i, db in enumerate(raw_databases))

    seen: set[str] = set()
    for database in databases:
        if database.ref in seen:
            raise ConfigurationError(
                f"database '{database.ref}' is declared twice; set a distinct 'id' on each"
            )
        seen.add(database.ref)

    return ExporterConfig(addr=addr, databases=databases)


def load_exporter_config(path: Path) -> ExporterConfig:
    """Load and validate the configuration file.

    Args:
        path: Path to the YAML file.

    Returns:
        The validated configuration.

    Raises:
        ConfigurationError: If the file is missing, unparsable or invalid.
    """
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e
    except FileNotFoundError:
        raise ConfigurationError(f"Configuration file not found: {path}") from None
    except OSError as e:
        raise ConfigurationError(f"Cannot read configuration file {path}: {e}") from e

    config = parse_exporter_config(data)
    logger.info(
        "Loaded %d database(s) with %d metric(s) from %s",
        len(config.databases),
        len(config.jobs),
        path,
    )
    return config


__all__ = [
    "DEFAULT_ADDR",
    "DEFAULT_DRIVER",
    "DatabaseConfig",
    "ExporterConfig",
    "QueryJob",
    "load_exporter_config",
    "parse_duration",
    "parse_exporter_config",
]

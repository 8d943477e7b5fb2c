"""SQL Exporter - publish SQL query results as Prometheus metrics."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("sql-exporter")
except PackageNotFoundError:
    # Package is not installed (e.g., running from source without pip install)
    __version__ = "0.0.0.dev0"

from sql_exporter.app import main
from sql_exporter.supervisor import Supervisor

__all__ = [
    "__version__",
    "Supervisor",
    "main",
]

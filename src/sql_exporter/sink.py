"""Value sinks: where job results are published.

The runners only depend on the ``ValueSink`` protocol. The production sink,
``PrometheusSink``, keeps one gauge per job in its own ``CollectorRegistry``
so that nothing is written to ``prometheus_client``'s global registry; the
metrics server exposes that same registry over HTTP.
"""

from __future__ import annotations

import threading
from collections.abc import Mapping
from typing import Protocol

from prometheus_client import CollectorRegistry, Gauge, generate_latest

from sql_exporter.errors import DuplicateMetricError, MetricRegistrationError
from sql_exporter.logging import get_logger

logger = get_logger(__name__)


class ValueSink(Protocol):
    """Protocol for the metric registration/observation boundary.

    Implementations must be safe for concurrent calls from many runners.
    """

    def register(self, identifier: str, help_text: str, labels: Mapping[str, str]) -> None:
        """Register a metric.

        Raises:
            DuplicateMetricError: If ``identifier`` is already registered.
            MetricRegistrationError: If the metric cannot be registered.
        """
        ...

    def observe(self, identifier: str, value: float) -> None:
        """Publish the latest value of a registered metric."""
        ...


class PrometheusSink:
    """Value sink backed by Prometheus gauges.

    Each registered identifier gets a ``Gauge`` whose label names are the
    job's static label names; the labelled child is bound once, at
    registration, and ``observe`` only sets it.

    Example:
        sink = PrometheusSink()
        sink.register("orders_total", "Number of orders", {"region": "eu"})
        sink.observe("orders_total", 42.0)
    """

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        """Initialize the sink.

        Args:
            registry: Registry to create gauges in. A fresh private registry
                is created when omitted.
        """
        self._registry = registry if registry is not None else CollectorRegistry()
        self._gauges: dict[str, Gauge] = {}
        self._lock = threading.Lock()

    @property
    def registry(self) -> CollectorRegistry:
        """Get the registry the gauges live in."""
        return self._registry

    @property
    def identifiers(self) -> list[str]:
        """Get the registered identifiers, in registration order."""
        with self._lock:
            return list(self._gauges)

    def register(self, identifier: str, help_text: str, labels: Mapping[str, str]) -> None:
        with self._lock:
            if identifier in self._gauges:
                raise DuplicateMetricError(identifier)
            try:
                gauge = Gauge(
                    identifier,
                    help_text,
                    labelnames=tuple(labels),
                    registry=self._registry,
                )
            except ValueError as e:
                # Invalid metric/label names and clashes with collectors
                # registered outside this sink.
                raise MetricRegistrationError(identifier, str(e)) from e

            self._gauges[identifier] = gauge.labels(**labels) if labels else gauge

        logger.debug("Registered metric", extra={"metric": identifier})

    def observe(self, identifier: str, value: float) -> None:
        """Set the gauge for ``identifier``.

        Raises:
            KeyError: If ``identifier`` was never registered.
        """
        with self._lock:
            gauge = self._gauges[identifier]
        gauge.set(value)

    def render(self) -> bytes:
        """Render the registry in the Prometheus text exposition format."""
        return generate_latest(self._registry)


__all__ = [
    "PrometheusSink",
    "ValueSink",
]

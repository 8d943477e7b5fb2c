"""HTTP exposition of the exporter's metrics.

This module provides the ``MetricsServer`` class that runs a uvicorn server
in a background thread, serving the value sink's registry at ``/metrics``
alongside the job runners.
"""

from __future__ import annotations

import threading
import time
from typing import TYPE_CHECKING

from prometheus_client import CONTENT_TYPE_LATEST
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import Response
from starlette.routing import Route

from sql_exporter.logging import get_logger
from sql_exporter.sink import PrometheusSink

if TYPE_CHECKING:
    import uvicorn
    from starlette.types import ASGIApp

logger = get_logger(__name__)

# Seconds to wait for uvicorn to report it is serving
STARTUP_TIMEOUT = 5.0


def parse_listen_address(addr: str) -> tuple[str, int]:
    """Split a ``[host]:port`` listen address.

    An empty host (``":8080"``) binds every interface.

    Raises:
        ValueError: If the port is missing or not a valid TCP port.
    """
    host, sep, port_str = addr.rpartition(":")
    if not sep:
        raise ValueError(f"listen address '{addr}' has no port")
    host = host.strip("[]") or "0.0.0.0"
    try:
        port = int(port_str)
    except ValueError:
        raise ValueError(f"listen address '{addr}' has an invalid port") from None
    if not 0 <= port <= 65535:
        raise ValueError(f"listen address '{addr}' has an out-of-range port")
    return host, port


def create_metrics_app(sink: PrometheusSink) -> Starlette:
    """Create the ASGI app serving ``sink``'s registry at ``/metrics``."""

    async def metrics(request: Request) -> Response:
        return Response(sink.render(), media_type=CONTENT_TYPE_LATEST)

    return Starlette(routes=[Route("/metrics", metrics, methods=["GET"])])


class MetricsServer:
    """Background server for the ``/metrics`` endpoint.

    Example:
        server = MetricsServer(host="0.0.0.0", port=8080)
        server.start(create_metrics_app(sink))

        # ... run the supervisor ...

        server.shutdown(timeout=5.0)
    """

    def __init__(self, host: str, port: int) -> None:
        self._host = host
        self._port = port
        self._server: uvicorn.Server | None = None
        self._thread: threading.Thread | None = None

    @property
    def host(self) -> str:
        return self._host

    @property
    def port(self) -> int:
        return self._port

    @property
    def is_running(self) -> bool:
        """Check if the server is currently running."""
        return self._server is not None and self._server.started

    def start(self, app: ASGIApp) -> None:
        """Start the server in a background thread.

        Blocks until the server is accepting connections.

        Raises:
            RuntimeError: If the server exits or does not come up within
                ``STARTUP_TIMEOUT`` seconds (for example, port already in use).
        """
        import uvicorn

        config = uvicorn.Config(
            app=app,
            host=self._host,
            port=self._port,
            log_level="warning",
            access_log=False,
        )
        self._server = uvicorn.Server(config)
        server = self._server

        def run_server() -> None:
            server.run()

        self._thread = threading.Thread(
            target=run_server,
            name="metrics-server",
            daemon=True,
        )
        self._thread.start()

        start_wait = time.monotonic()
        while not server.started:
            if not self._thread.is_alive():
                break
            if time.monotonic() - start_wait > STARTUP_TIMEOUT:
                break
            time.sleep(0.05)

        if not server.started:
            server.should_exit = True
            raise RuntimeError(
                f"metrics server failed to start on {self._host}:{self._port}"
            )

        logger.info("Serving metrics at http://%s:%s/metrics", self._host, self._port)

    def request_stop(self) -> None:
        """Ask the server to stop without waiting for it.

        Safe to call from a signal handler.
        """
        if self._server is not None:
            self._server.should_exit = True

    def shutdown(self, timeout: float = 5.0) -> bool:
        """Stop the server and wait for its thread.

        Args:
            timeout: Seconds to wait for the server thread. Zero or less
                waits without bound.

        Returns:
            True if the server stopped, False if it was still running when
            the timeout expired.
        """
        if self._server is None:
            return True

        logger.info("Shutting down metrics server...")
        self._server.should_exit = True

        if self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=timeout if timeout > 0 else None)
            if self._thread.is_alive():
                logger.warning("Metrics server did not stop within %.1fs", timeout)
                return False

        logger.info("Metrics server shutdown complete")
        return True


__all__ = [
    "MetricsServer",
    "create_metrics_app",
    "parse_listen_address",
]

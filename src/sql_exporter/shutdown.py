"""Graceful shutdown handling for the SQL exporter.

This module provides signal handling and shutdown coordination for:
- SIGINT (Ctrl+C) and SIGTERM handling
- Broadcasting cancellation to every job runner
- Bounding how long the exporter waits for runners to drain
"""

from __future__ import annotations

import signal
import threading
from collections.abc import Callable
from types import FrameType

from sql_exporter.cancellation import CancellationToken
from sql_exporter.logging import get_logger

logger = get_logger(__name__)

# Default upper bound, in seconds, on the post-shutdown drain
DEFAULT_GRACE_PERIOD = 5.0


class ShutdownController:
    """Turns termination signals into a single cancellation broadcast.

    The controller is the only writer of the cancellation token. Shutdown
    requests are idempotent: only the first one cancels the token and runs
    the ``on_shutdown`` callback; later ones are logged and ignored.
    """

    def __init__(
        self,
        token: CancellationToken | None = None,
        grace_period: float = DEFAULT_GRACE_PERIOD,
        on_shutdown: Callable[[], None] | None = None,
    ) -> None:
        """Initialize the shutdown controller.

        Args:
            token: Token to cancel on shutdown. A new one is created if omitted.
            grace_period: Seconds to wait for runners to stop once shutdown
                has been requested. Zero or less waits without bound.
            on_shutdown: Optional callback invoked on the first shutdown request.
        """
        self._token = token if token is not None else CancellationToken()
        self._grace_period = grace_period
        self._on_shutdown = on_shutdown
        self._requests = 0
        self._lock = threading.RLock()

    @property
    def token(self) -> CancellationToken:
        """Get the cancellation token this controller owns."""
        return self._token

    @property
    def grace_period(self) -> float:
        """Get the drain grace period in seconds."""
        return self._grace_period

    @property
    def shutdown_requested(self) -> bool:
        """Check if shutdown has been requested."""
        return self._token.is_cancelled

    @property
    def request_count(self) -> int:
        """Number of shutdown requests received so far."""
        return self._requests

    def request_shutdown(self) -> None:
        """Request graceful shutdown.

        This method can be called programmatically to initiate shutdown,
        in addition to signal-based shutdown.
        """
        with self._lock:
            self._requests += 1

        if not self._token.cancel():
            logger.info("Shutdown already in progress, ignoring repeated request")
            return

        logger.info("Shutdown requested, stopping all metric jobs")
        if self._on_shutdown is not None:
            self._on_shutdown()

    def handle_signal(self, signum: int, frame: FrameType | None) -> None:
        """Handle shutdown signals (SIGINT, SIGTERM).

        Args:
            signum: The signal number received.
            frame: The current stack frame (unused).
        """
        signal_name = signal.Signals(signum).name
        logger.info("Received %s, initiating graceful shutdown...", signal_name)
        self.request_shutdown()

    def install_signal_handlers(self) -> None:
        """Install signal handlers for SIGINT and SIGTERM."""
        signal.signal(signal.SIGINT, self.handle_signal)
        signal.signal(signal.SIGTERM, self.handle_signal)
        logger.debug("Signal handlers installed for SIGINT and SIGTERM")

    def await_drain(self, join: Callable[[float | None], list[str]]) -> bool:
        """Wait, at most for the grace period, for every runner to stop.

        Args:
            join: Callable that waits up to the given number of seconds
                (None = forever) and returns the identifiers still running.

        Returns:
            True if everything stopped in time. False if the grace period
            expired; the remaining runner threads are daemons and are
            abandoned when the process exits.
        """
        timeout = self._grace_period if self._grace_period > 0 else None
        if timeout is None:
            logger.info("Waiting for metric jobs to stop (no timeout configured)...")
        else:
            logger.info("Waiting up to %.1fs for metric jobs to stop...", timeout)

        remaining = join(timeout)
        if remaining:
            logger.warning(
                "Shutdown grace period of %.1fs expired, forcing termination "
                "with %d job(s) still running: %s",
                self._grace_period,
                len(remaining),
                ", ".join(remaining),
            )
            return False
        return True


def create_shutdown_controller(
    token: CancellationToken | None = None,
    grace_period: float = DEFAULT_GRACE_PERIOD,
    on_shutdown: Callable[[], None] | None = None,
) -> ShutdownController:
    """Create a ShutdownController and install its signal handlers.

    Args:
        token: Token to cancel on shutdown.
        grace_period: Drain grace period in seconds.
        on_shutdown: Optional callback to invoke when shutdown is requested.

    Returns:
        Configured ShutdownController with signal handlers installed.
    """
    controller = ShutdownController(token, grace_period, on_shutdown)
    controller.install_signal_handlers()
    return controller


__all__ = [
    "DEFAULT_GRACE_PERIOD",
    "ShutdownController",
    "create_shutdown_controller",
]

"""Process-wide cancellation token.

The token is written once by the shutdown controller and read by every job
runner. Once cancelled it stays cancelled.
"""

from __future__ import annotations

import threading


class CancellationToken:
    """Monotonic, broadcast cancellation signal.

    Thread Safety:
        All methods may be called from any thread, including signal handlers
        running on the main thread.
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self._lock = threading.RLock()

    @property
    def is_cancelled(self) -> bool:
        """Check if cancellation has been requested."""
        return self._event.is_set()

    def cancel(self) -> bool:
        """Set the token.

        Returns:
            True if this call cancelled the token, False if it was already
            cancelled.
        """
        with self._lock:
            if self._event.is_set():
                return False
            self._event.set()
            return True

    def wait(self, timeout: float | None = None) -> bool:
        """Block until the token is cancelled or the timeout elapses.

        Args:
            timeout: Maximum number of seconds to wait. None waits forever.

        Returns:
            True if the token is cancelled.
        """
        return self._event.wait(timeout)


__all__ = ["CancellationToken"]

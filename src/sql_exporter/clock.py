"""Time source for the job runners.

Runners never call ``time.sleep`` directly. All waiting goes through a
``Clock`` so that tests can drive the schedule with a fake clock.
"""

from __future__ import annotations

import time
from typing import Protocol

from sql_exporter.cancellation import CancellationToken


class Clock(Protocol):
    """Protocol for the runners' time source."""

    def now(self) -> float:
        """Return the current time in seconds on a monotonic scale."""
        ...

    def sleep_until(self, deadline: float, token: CancellationToken) -> bool:
        """Block until ``deadline`` or until ``token`` is cancelled.

        Returns:
            True if the token is cancelled when the wait ends.
        """
        ...


class SystemClock:
    """Clock backed by ``time.monotonic`` and the token's event."""

    def now(self) -> float:
        return time.monotonic()

    def sleep_until(self, deadline: float, token: CancellationToken) -> bool:
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            return token.is_cancelled
        return token.wait(remaining)


__all__ = [
    "Clock",
    "SystemClock",
]

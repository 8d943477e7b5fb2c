"""Type definitions and enums for the SQL exporter.

Usage:
    from sql_exporter.types import InFlightPolicy, RunnerState

    # StrEnum members compare equal to their string values
    if policy == InFlightPolicy.ABORT:
        ...

    InFlightPolicy.is_valid("finish")  # True
"""

from __future__ import annotations

from enum import StrEnum


class RunnerState(StrEnum):
    """Lifecycle states of a job runner.

    Values:
        IDLE: Constructed, first tick not yet scheduled ("idle")
        WAITING: Blocked until the next tick or cancellation ("waiting")
        EXECUTING: Running the job's statement ("executing")
        STOPPED: Terminal; the runner thread has returned ("stopped")
    """

    IDLE = "idle"
    WAITING = "waiting"
    EXECUTING = "executing"
    STOPPED = "stopped"


class InFlightPolicy(StrEnum):
    """What happens to a query that is running when shutdown is requested.

    Values:
        FINISH: The query runs to completion and its value is emitted;
            cancellation is observed at the next wait ("finish")
        ABORT: The runner stops waiting for the query as soon as the
            cancellation token is set and discards its result ("abort")
    """

    FINISH = "finish"
    ABORT = "abort"

    @classmethod
    def is_valid(cls, value: str) -> bool:
        """Check if a string value is a valid in-flight policy.

        Args:
            value: The string value to validate.

        Returns:
            True if the value matches a valid policy.
        """
        return value in cls._value2member_map_

    @classmethod
    def values(cls) -> frozenset[str]:
        """Return all valid policy values as a frozenset."""
        return frozenset(member.value for member in cls)


__all__ = [
    "InFlightPolicy",
    "RunnerState",
]

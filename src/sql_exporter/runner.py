"""Per-job polling loop.

A ``JobRunner`` owns the schedule of exactly one query job::

    IDLE -> WAITING -> EXECUTING -> WAITING -> ... -> STOPPED

``WAITING`` is the only suspension point: the runner sleeps on its clock
until the next tick is due or the cancellation token is set, whichever comes
first. When both are ready the token wins and no further statement is
started. Any failure while executing stops the runner for good; the metric
then simply stops updating.

Ticks are scheduled at a fixed rate, ``start + n * interval``. A tick that is
missed because the previous execution overran is skipped, never queued, so
at most one execution per job is ever in flight.
"""

from __future__ import annotations

import math
import threading
import time
from collections.abc import Callable
from concurrent.futures import Future, wait
from dataclasses import dataclass
from datetime import UTC, datetime

from sqlalchemy.exc import SQLAlchemyError

from sql_exporter.cancellation import CancellationToken
from sql_exporter.clock import Clock, SystemClock
from sql_exporter.database import DatabaseHandle
from sql_exporter.errors import QueryError, QueryTimeoutError
from sql_exporter.jobs import QueryJob
from sql_exporter.logging import get_logger
from sql_exporter.sink import ValueSink
from sql_exporter.types import InFlightPolicy, RunnerState

logger = get_logger(__name__)

# How often an aborting runner re-checks the token while a query is running
ABORT_POLL_INTERVAL = 0.05

# Fraction of an interval by which accumulated float error may move a tick
_TICK_TOLERANCE = 1e-9


@dataclass(frozen=True)
class MetricValue:
    """Outcome of one tick.

    Exactly one of ``value`` and ``error`` is set.
    """

    identifier: str
    timestamp: datetime
    value: float | None = None
    error: BaseException | None = None

    @property
    def succeeded(self) -> bool:
        return self.error is None


def _run_detached(fn: Callable[[str], float], statement: str, name: str) -> Future[float]:
    """Run ``fn(statement)`` on a daemon thread and return its future.

    Daemon threads never hold up interpreter exit, so a query abandoned by
    an aborting runner cannot block shutdown.
    """
    future: Future[float] = Future()

    def target() -> None:
        if not future.set_running_or_notify_cancel():
            return
        try:
            future.set_result(fn(statement))
        except BaseException as e:
            future.set_exception(e)

    threading.Thread(target=target, name=name, daemon=True).start()
    return future


class JobRunner:
    """Polling loop for a single query job.

    Thread Safety:
        ``run`` is meant to be called once, on a dedicated thread. The
        read-only properties may be inspected from any thread.
    """

    def __init__(
        self,
        job: QueryJob,
        handle: DatabaseHandle,
        sink: ValueSink,
        token: CancellationToken,
        clock: Clock | None = None,
        in_flight: InFlightPolicy = InFlightPolicy.FINISH,
        query_timeout: float | None = None,
    ) -> None:
        """Initialize the runner.

        Args:
            job: The job to run.
            handle: Handle of the database the job's statement runs against.
            sink: Where successful values are published.
            token: Shared cancellation token.
            clock: Time source. Defaults to the system clock.
            in_flight: Whether a query running at cancellation finishes
                (and is published) or is abandoned.
            query_timeout: Optional bound, in seconds, on each execution.
        """
        self._job = job
        self._handle = handle
        self._sink = sink
        self._token = token
        self._clock: Clock = clock if clock is not None else SystemClock()
        self._in_flight = in_flight
        self._query_timeout = query_timeout

        self._state = RunnerState.IDLE
        self._executions = 0
        self._observations = 0
        self._last_value: MetricValue | None = None
        self._error: BaseException | None = None
        self._log = logger.with_context(metric=job.identifier, database=job.database)

    @property
    def job(self) -> QueryJob:
        return self._job

    @property
    def state(self) -> RunnerState:
        return self._state

    @property
    def executions(self) -> int:
        """Number of ticks that started executing the statement."""
        return self._executions

    @property
    def observations(self) -> int:
        """Number of values published to the sink."""
        return self._observations

    @property
    def last_value(self) -> MetricValue | None:
        """Outcome of the most recent tick."""
        return self._last_value

    @property
    def error(self) -> BaseException | None:
        """The error that stopped the runner, if any."""
        return self._error

    def run(self) -> None:
        """Run the polling loop until cancellation or the first failure."""
        interval = self._job.interval
        start = self._clock.now()
        tick = 0

        self._log.info("Monitoring metric every %.3fs", interval)
        try:
            while True:
                tick += 1
                deadline = start + (tick - _TICK_TOLERANCE) * interval
                self._state = RunnerState.WAITING
                self._log.debug(
                    "Waiting for tick %d", tick, extra={"diagnostic_tag": "scheduling"}
                )

                cancelled = self._clock.sleep_until(deadline, self._token)
                if cancelled or self._token.is_cancelled:
                    break

                self._state = RunnerState.EXECUTING
                if not self._tick():
                    break

                # Skip ticks whose deadline passed while the statement ran.
                elapsed = (self._clock.now() - start) / interval
                due = math.ceil(elapsed - _TICK_TOLERANCE) - 1
                if due > tick:
                    skipped = due - tick
                    tick = due
                    self._log.warning(
                        "Execution overran the interval, skipped %d tick(s)", skipped
                    )
        finally:
            self._state = RunnerState.STOPPED
            self._log.info("Stopped monitoring metric")

    def _tick(self) -> bool:
        """Execute the statement once and publish the result.

        Returns:
            True if the loop should keep going.
        """
        self._executions += 1
        timestamp = datetime.now(UTC)
        try:
            value = self._execute()
            if value is None:
                self._log.info("Shutdown requested, abandoned in-flight statement")
                return False
            self._sink.observe(self._job.identifier, value)
        except (QueryError, SQLAlchemyError) as e:
            self._fail(timestamp, e)
            self._log.error(
                "Executing statement failed, metric will no longer be updated: %s",
                e,
                extra={"error_type": type(e).__name__},
            )
            return False
        except Exception as e:
            # INTENTIONAL BROAD CATCH: a runner must never take its thread
            # down with an unlogged error, including one raised by the sink.
            self._fail(timestamp, e)
            self._log.exception(
                "Unexpected error executing statement, metric will no longer be updated: %s",
                e,
                extra={"error_type": type(e).__name__},
            )
            return False

        self._observations += 1
        self._last_value = MetricValue(self._job.identifier, timestamp, value=value)
        self._log.debug(
            "Evaluated metric: %s",
            value,
            extra={"diagnostic_tag": "query", "value": value},
        )
        return True

    def _fail(self, timestamp: datetime, error: BaseException) -> None:
        self._error = error
        self._last_value = MetricValue(self._job.identifier, timestamp, error=error)

    def _execute(self) -> float | None:
        """Execute the statement according to the in-flight policy.

        Returns:
            The value, or None if the statement was abandoned because the
            token was cancelled while it ran.

        Raises:
            QueryTimeoutError: If the query timeout elapses first.
        """
        statement = self._job.statement
        if self._in_flight == InFlightPolicy.FINISH and self._query_timeout is None:
            return self._handle.query_scalar(statement)

        future = _run_detached(
            self._handle.query_scalar, statement, f"query-{self._job.identifier}"
        )

        if self._in_flight == InFlightPolicy.FINISH:
            try:
                return future.result(timeout=self._query_timeout)
            except TimeoutError:
                raise QueryTimeoutError(self._query_timeout or 0.0) from None

        give_up_at = (
            None if self._query_timeout is None else time.monotonic() + self._query_timeout
        )
        while True:
            if self._token.is_cancelled:
                return None
            timeout = ABORT_POLL_INTERVAL
            if give_up_at is not None:
                remaining = give_up_at - time.monotonic()
                if remaining <= 0:
                    raise QueryTimeoutError(self._query_timeout or 0.0)
                timeout = min(timeout, remaining)
            done, _ = wait([future], timeout=timeout)
            if done:
                return future.result()


__all__ = [
    "ABORT_POLL_INTERVAL",
    "JobRunner",
    "MetricValue",
]

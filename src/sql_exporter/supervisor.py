"""Supervisor for the set of job runners.

The supervisor validates the job set, registers every metric with the value
sink, starts one thread per job and, once shutdown is requested, waits for
all of them to stop. Runner failures are not visible here: a runner that
stops early has already logged why, and the supervisor only sees its thread
finish.

Startup is all-or-nothing. An empty job list, a job bound to an unknown
database, or a metric identifier that is declared twice fails before any
runner thread exists.
"""

from __future__ import annotations

import threading
import time
from collections import Counter
from collections.abc import Mapping, Sequence

from sql_exporter.clock import Clock
from sql_exporter.database import DatabaseHandle
from sql_exporter.errors import DuplicateMetricError, StartupError
from sql_exporter.jobs import QueryJob
from sql_exporter.logging import get_logger
from sql_exporter.runner import JobRunner
from sql_exporter.shutdown import ShutdownController
from sql_exporter.sink import ValueSink
from sql_exporter.types import InFlightPolicy

logger = get_logger(__name__)

# Slice for the main thread's wait on the token; keeps signal handlers responsive
SHUTDOWN_POLL_INTERVAL = 1.0

EXIT_OK = 0
EXIT_FAILURE = 1


class Supervisor:
    """Starts one runner thread per job and coordinates their shutdown.

    Example:
        controller = create_shutdown_controller(grace_period=5.0)
        supervisor = Supervisor(jobs, handles, PrometheusSink(), controller)
        exit_code = supervisor.run()  # blocks until shutdown and drain
    """

    def __init__(
        self,
        jobs: Sequence[QueryJob],
        handles: Mapping[str, DatabaseHandle],
        sink: ValueSink,
        shutdown: ShutdownController,
        clock: Clock | None = None,
        in_flight: InFlightPolicy = InFlightPolicy.FINISH,
        query_timeout: float | None = None,
    ) -> None:
        """Initialize the supervisor.

        Args:
            jobs: Jobs to run.
            handles: Database handles keyed by database reference.
            sink: Value sink every runner publishes to.
            shutdown: Controller owning the cancellation token and grace period.
            clock: Time source shared by the runners. Defaults to the system clock.
            in_flight: In-flight policy passed to every runner.
            query_timeout: Optional per-execution timeout passed to every runner.
        """
        self._jobs = list(jobs)
        self._handles = dict(handles)
        self._sink = sink
        self._shutdown = shutdown
        self._clock = clock
        self._in_flight = in_flight
        self._query_timeout = query_timeout
        self._runners: list[JobRunner] = []
        self._threads: list[threading.Thread] = []

    @property
    def runners(self) -> list[JobRunner]:
        """Get the runners, in job order. Empty until started."""
        return list(self._runners)

    @property
    def started(self) -> bool:
        return bool(self._threads)

    def _resolve(self) -> list[tuple[QueryJob, DatabaseHandle]]:
        if not self._jobs:
            raise StartupError("no metric jobs configured")

        counts = Counter(job.identifier for job in self._jobs)
        duplicates = sorted(identifier for identifier, n in counts.items() if n > 1)
        if duplicates:
            raise DuplicateMetricError(duplicates[0])

        resolved = []
        for job in self._jobs:
            handle = self._handles.get(job.database)
            if handle is None:
                raise StartupError(
                    f"metric '{job.identifier}' refers to unknown database '{job.database}'"
                )
            resolved.append((job, handle))
        return resolved

    def start(self) -> None:
        """Register every metric, then start one runner thread per job.

        Raises:
            StartupError: If the job set is invalid or a metric cannot be
                registered. No runner is started in that case.
            RuntimeError: If the supervisor was already started.
        """
        if self._threads:
            raise RuntimeError("Supervisor already started")

        resolved = self._resolve()

        for job, _ in resolved:
            self._sink.register(job.identifier, job.help, job.labels)

        token = self._shutdown.token
        self._runners = [
            JobRunner(
                job,
                handle,
                self._sink,
                token,
                clock=self._clock,
                in_flight=self._in_flight,
                query_timeout=self._query_timeout,
            )
            for job, handle in resolved
        ]
        self._threads = [
            threading.Thread(
                target=runner.run,
                name=f"job-{runner.job.identifier}",
                daemon=True,
            )
            for runner in self._runners
        ]
        for thread in self._threads:
            thread.start()

        logger.info("Started %d metric job(s)", len(self._threads))

    def running_jobs(self) -> list[str]:
        """Identifiers of the jobs whose thread is still alive."""
        return [
            runner.job.identifier
            for runner, thread in zip(self._runners, self._threads, strict=True)
            if thread.is_alive()
        ]

    def join(self, timeout: float | None = None) -> list[str]:
        """Wait for every runner thread to finish.

        Args:
            timeout: Overall bound in seconds, shared by all threads.
                None waits forever.

        Returns:
            Identifiers of the jobs still running when the wait ended.
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        for thread in self._threads:
            if deadline is None:
                thread.join()
            else:
                thread.join(max(0.0, deadline - time.monotonic()))
        return self.running_jobs()

    def wait_for_shutdown(self) -> None:
        """Block until the cancellation token is set."""
        token = self._shutdown.token
        while not token.wait(SHUTDOWN_POLL_INTERVAL):
            pass

    def run(self) -> int:
        """Run every job until shutdown is requested and the runners drain.

        Returns:
            0 after a clean shutdown, 1 on a startup error or when the drain
            grace period expired.
        """
        try:
            self.start()
        except StartupError as e:
            logger.critical("Failed to start metric jobs: %s", e)
            return EXIT_FAILURE

        self.wait_for_shutdown()

        if not self._shutdown.await_drain(self.join):
            return EXIT_FAILURE

        logger.info("All metric jobs stopped")
        return EXIT_OK


__all__ = [
    "EXIT_FAILURE",
    "EXIT_OK",
    "SHUTDOWN_POLL_INTERVAL",
    "Supervisor",
]

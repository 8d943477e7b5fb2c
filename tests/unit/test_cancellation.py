"""Tests for the cancellation token and the system clock."""

from __future__ import annotations

import threading
import time

from sql_exporter.cancellation import CancellationToken
from sql_exporter.clock import SystemClock


class TestCancellationToken:
    def test_starts_uncancelled(self) -> None:
        token = CancellationToken()

        assert not token.is_cancelled
        assert token.wait(0) is False

    def test_cancel_is_monotonic(self) -> None:
        token = CancellationToken()

        assert token.cancel() is True
        assert token.cancel() is False
        assert token.is_cancelled

    def test_wait_wakes_on_cancel(self) -> None:
        token = CancellationToken()
        timer = threading.Timer(0.05, token.cancel)
        timer.start()

        started = time.monotonic()
        assert token.wait(5.0) is True
        assert time.monotonic() - started < 5.0
        timer.join()

    def test_every_waiter_observes_cancel(self) -> None:
        token = CancellationToken()
        results: list[bool] = []
        lock = threading.Lock()

        def waiter() -> None:
            woke = token.wait(5.0)
            with lock:
                results.append(woke)

        threads = [threading.Thread(target=waiter) for _ in range(5)]
        for thread in threads:
            thread.start()
        token.cancel()
        for thread in threads:
            thread.join(timeout=5)

        assert results == [True] * 5


class TestSystemClock:
    def test_now_is_monotonic(self) -> None:
        clock = SystemClock()

        first = clock.now()
        second = clock.now()

        assert second >= first

    def test_past_deadline_returns_immediately(self) -> None:
        clock = SystemClock()
        token = CancellationToken()

        assert clock.sleep_until(clock.now() - 1.0, token) is False

    def test_past_deadline_reports_cancellation(self) -> None:
        clock = SystemClock()
        token = CancellationToken()
        token.cancel()

        assert clock.sleep_until(clock.now() - 1.0, token) is True

    def test_sleeps_until_deadline(self) -> None:
        clock = SystemClock()
        token = CancellationToken()
        deadline = clock.now() + 0.05

        assert clock.sleep_until(deadline, token) is False
        assert clock.now() >= deadline - 0.01

    def test_cancel_interrupts_sleep(self) -> None:
        clock = SystemClock()
        token = CancellationToken()
        timer = threading.Timer(0.05, token.cancel)
        timer.start()

        started = clock.now()
        assert clock.sleep_until(started + 30.0, token) is True
        assert clock.now() - started < 30.0
        timer.join()

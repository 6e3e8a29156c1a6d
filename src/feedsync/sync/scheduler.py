"""In-process scheduler for named periodic tasks."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from datetime import timedelta
from enum import Enum

logger = logging.getLogger(__name__)


class ExistingWorkPolicy(str, Enum):
    """What to do when a schedule with the same name is already registered."""

    REPLACE = "replace"
    KEEP = "keep"


class _PeriodicTask:
    def __init__(
        self,
        *,
        name: str,
        tag: str | None,
        period: timedelta,
        task: Callable[[], object],
        initial_delay: timedelta,
    ) -> None:
        self.name = name
        self.tag = tag
        self.period_seconds = period.total_seconds()
        self.initial_delay_seconds = max(0.0, initial_delay.total_seconds())
        self.task = task
        self.runs = 0
        self._stop = threading.Event()
        self._running = threading.Event()
        self._thread = threading.Thread(
            target=self._loop,
            daemon=True,
            name=f"feedsync-schedule-{name}",
        )

    @property
    def cancelled(self) -> bool:
        return self._stop.is_set()

    @property
    def running(self) -> bool:
        return self._running.is_set()

    def start(self) -> None:
        self._thread.start()

    def cancel(self) -> None:
        self._stop.set()

    def join(self, timeout: float | None) -> None:
        if self._thread is not threading.current_thread() and self._thread.is_alive():
            self._thread.join(timeout=timeout)

    def _loop(self) -> None:
        delay = self.initial_delay_seconds
        while not self._stop.wait(timeout=delay):
            self._running.set()
            try:
                self.task()
            except Exception:
                logger.exception("Scheduled task %s failed", self.name)
            finally:
                self.runs += 1
                self._running.clear()
            delay = self.period_seconds


class PeriodicScheduler:
    """Runs each named task on its own daemon thread at a fixed period.

    A name identifies at most one live schedule: registering it again either
    replaces the previous schedule or keeps it, depending on the policy.
    Cancelling never interrupts a run in progress; the loop ends after it.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._tasks: dict[str, _PeriodicTask] = {}
        self._retired: list[_PeriodicTask] = []
        self._closed = False

    def enqueue_unique_periodic(
        self,
        name: str,
        period: timedelta,
        task: Callable[[], object],
        *,
        tag: str | None = None,
        policy: ExistingWorkPolicy = ExistingWorkPolicy.REPLACE,
        initial_delay: timedelta = timedelta(0),
    ) -> bool:
        """Register `task`; returns False when an existing schedule was kept."""

        if period.total_seconds() <= 0:
            raise ValueError("period must be > 0")

        with self._lock:
            if self._closed:
                raise RuntimeError("Scheduler is shut down")
            existing = self._tasks.get(name)
            if existing is not None and not existing.cancelled:
                if policy is ExistingWorkPolicy.KEEP:
                    return False
                existing.cancel()
                self._retired.append(existing)
                logger.info("Replaced periodic schedule %s", name)

            scheduled = _PeriodicTask(
                name=name,
                tag=tag,
                period=period,
                task=task,
                initial_delay=initial_delay,
            )
            self._tasks[name] = scheduled
            scheduled.start()
            return True

    def cancel(self, name: str) -> bool:
        with self._lock:
            scheduled = self._tasks.pop(name, None)
            if scheduled is None:
                return False
            scheduled.cancel()
            self._retired.append(scheduled)
        return True

    def count_by_tag(self, tag: str) -> int:
        """Number of live schedules with `tag`, plus replaced ones still running."""

        with self._lock:
            self._retired = [scheduled for scheduled in self._retired if scheduled.running]
            live = [scheduled for scheduled in self._tasks.values() if not scheduled.cancelled]
            return sum(1 for scheduled in [*live, *self._retired] if scheduled.tag == tag)

    def runs(self, name: str) -> int:
        with self._lock:
            scheduled = self._tasks.get(name)
            return scheduled.runs if scheduled is not None else 0

    def shutdown(self, *, timeout: float | None = 15.0) -> None:
        with self._lock:
            self._closed = True
            tasks = [*self._tasks.values(), *self._retired]
            self._tasks, self._retired = {}, []
        for scheduled in tasks:
            scheduled.cancel()
        for scheduled in tasks:
            scheduled.join(timeout)

    def __enter__(self) -> PeriodicScheduler:
        return self

    def __exit__(self, *_: object) -> None:
        self.shutdown()

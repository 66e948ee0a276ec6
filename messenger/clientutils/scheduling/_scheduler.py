import asyncio
import inspect
import math
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from functools import partial
from logging import getLogger
from typing import Any

import arrow
from humps import pascalize

from messenger.clientutils.configuration.models import FirstFirePolicy, SchedulerConfig, TimeIntervalConfig
from messenger.clientutils.exceptions import InvalidTaskError
from messenger.clientutils.metrics import SchedulerMetrics, safe_get
from messenger.clientutils.scheduling._timers import AsyncioTimerBackend, TimerBackend, TimerHandle

TaskTarget = Callable[[], Awaitable[Any] | None]


def _to_epoch_millis(value: float | datetime | str) -> float:
    if isinstance(value, bool):
        raise InvalidTaskError(f"Invalid firing date {value!r}")
    if isinstance(value, int | float):
        if not math.isfinite(value):
            raise InvalidTaskError(f"Invalid firing date {value!r}")
        return float(value)
    try:
        return arrow.get(value).timestamp() * 1000
    except (TypeError, ValueError) as e:
        raise InvalidTaskError(f"Invalid firing date {value!r}") from e


@dataclass
class TaskEntry:
    """
    A unit of coarse background work.

    Args:
        key: Identifies the task within its interval. The same key may be reused for a different interval.
        firing_date: Anchor for the firing boundaries ``firing_date + n * interval_delay``. Epoch milliseconds, or
            anything ``arrow.get`` understands (such as a ``datetime``).
        interval_delay: Repeat period in milliseconds. Tasks with the same period share one timer.
        task: Zero-argument callable, typically a coroutine function.
        repeat: Fire on every tick until cancelled. By default a task fires once and is then retired.
    """

    key: str
    firing_date: float | datetime | str
    interval_delay: float
    task: TaskTarget
    repeat: bool = False

    def __post_init__(self) -> None:
        if not isinstance(self.key, str) or not self.key:
            raise InvalidTaskError("Task key must be a non-empty string")
        if (
            isinstance(self.interval_delay, bool)
            or not isinstance(self.interval_delay, int | float)
            or not math.isfinite(self.interval_delay)
            or self.interval_delay <= 0
        ):
            raise InvalidTaskError(f"Interval delay for '{self.key}' must be a positive number of milliseconds")
        if not callable(self.task):
            raise InvalidTaskError(f"Task '{self.key}' is not callable")

        self.firing_date = _to_epoch_millis(self.firing_date)

    @classmethod
    def from_interval(
        cls,
        *,
        key: str,
        interval: str | TimeIntervalConfig,
        task: TaskTarget,
        firing_date: float | datetime | str = 0,
        repeat: bool = False,
    ) -> "TaskEntry":
        """
        Create a task entry from an interval expression.

        Args:
            key: Identifies the task within its interval.
            interval: A string representing the time interval (e.g., "5m" for 5 minutes).
            task: Zero-argument callable, typically a coroutine function.
            firing_date: Anchor for the firing boundaries. Defaults to the epoch.
            repeat: Fire on every tick until cancelled.
        """
        if not isinstance(interval, TimeIntervalConfig):
            interval = TimeIntervalConfig(interval)

        return TaskEntry(
            key=key,
            firing_date=firing_date,
            interval_delay=interval.milliseconds,
            task=task,
            repeat=repeat,
        )


@dataclass(eq=False)
class _Registration:
    entry: TaskEntry
    due: float


@dataclass(eq=False)
class _Bucket:
    interval: float
    timer: TimerHandle | None = None
    # Nominal time of the next tick, on the boundaries the timer was phased on
    next_tick: float = 0
    tasks: dict[str, _Registration] = field(default_factory=dict)
    fired: dict[str, bool] = field(default_factory=dict)


class LowPrecisionTaskScheduler:
    """
    Scheduler for coarse background work, coalescing all tasks with the same interval onto one shared timer.

    The number of live timers is bounded by the number of distinct intervals in use, not by the number of tasks. The
    price is precision: the first task registered for an interval decides the phase of that interval's timer, and tasks
    added later fire on that timer's ticks rather than on their own boundaries.

    A task is dispatched at most once per tick. Dispatching starts the task in the background; the tick never waits
    for it, and a task raising an exception is logged and retried on the next tick without affecting its siblings.

    All methods must be called from the thread running the event loop.

    Args:
        backend: Timer backend to run on. Defaults to the running asyncio loop.
        first_fire: When a newly registered task first becomes due.
        metrics: Metrics collection to report to. No metrics are reported if omitted.
    """

    def __init__(
        self,
        backend: TimerBackend | None = None,
        *,
        first_fire: FirstFirePolicy = FirstFirePolicy.NEXT_BOUNDARY,
        metrics: SchedulerMetrics | None = None,
    ) -> None:
        self._backend = backend or AsyncioTimerBackend()
        self._first_fire = first_fire
        self._metrics = metrics

        self._buckets: dict[float, _Bucket] = {}
        self._running: set[asyncio.Task[None]] = set()

        self._logger = getLogger(__name__)

    @classmethod
    def from_config(cls, config: SchedulerConfig, backend: TimerBackend | None = None) -> "LowPrecisionTaskScheduler":
        return cls(
            backend,
            first_fire=config.first_fire,
            metrics=safe_get(SchedulerMetrics) if config.metrics else None,
        )

    def add_task(self, entry: TaskEntry | None = None, **kwargs: Any) -> None:
        """
        Register a task, replacing any task with the same key and interval.

        Accepts either a ``TaskEntry`` or the fields of one as keyword arguments:

        .. code-block:: python

            scheduler.add_task(key="refresh", firing_date=0, interval_delay=60_000, task=refresh)

        Raises:
            InvalidTaskError: If the key is empty, the interval is not positive or the task is not callable.
        """
        if entry is None:
            entry = TaskEntry(**kwargs)
        elif kwargs:
            raise TypeError("add_task takes either a TaskEntry or keyword arguments, not both")

        now = self._backend.now()
        boundary = self._next_boundary(entry, now)
        if self._first_fire is FirstFirePolicy.CATCH_UP and entry.firing_date <= now:
            due = entry.firing_date
        else:
            due = boundary

        bucket = self._buckets.get(entry.interval_delay)
        if bucket is None:
            bucket = _Bucket(interval=entry.interval_delay, next_tick=boundary)
            bucket.timer = self._backend.call_every(entry.interval_delay, partial(self._tick, bucket), boundary - now)
            self._buckets[entry.interval_delay] = bucket
            if self._metrics:
                self._metrics.active_intervals.inc()
            self._logger.debug(
                f"Started timer for {entry.interval_delay} ms interval, first tick at {_format_millis(boundary)}"
            )

        if entry.key not in bucket.tasks and self._metrics:
            self._metrics.registered_tasks.inc()
        bucket.tasks[entry.key] = _Registration(entry=entry, due=due)
        bucket.fired.pop(entry.key, None)

        self._logger.debug(
            f"Added task {entry.key} to {entry.interval_delay} ms interval, due at {_format_millis(due)}"
        )

    def cancel_task(self, key: str, interval_delay: float) -> None:
        """
        Remove a task. Cancelling an unknown task does nothing.

        Invocations that have already been dispatched run to completion.
        """
        bucket = self._buckets.get(interval_delay)
        if bucket is None or key not in bucket.tasks:
            return

        self._remove(bucket, key)
        self._logger.debug(f"Cancelled task {key} in {interval_delay} ms interval")

    def trigger(self, key: str, interval_delay: float) -> bool:
        """
        Dispatch a task immediately, outside its interval's cadence.

        The invocation counts as the task's firing for the current window.

        Returns:
            ``False`` if the task is unknown or has already fired in the current window, ``True`` otherwise.
        """
        bucket = self._buckets.get(interval_delay)
        if bucket is None or key not in bucket.tasks:
            return False
        if bucket.fired.get(key):
            self._logger.warning(f"Task {key} already fired in the current window")
            return False

        bucket.fired[key] = True
        self._dispatch(bucket, bucket.tasks[key])
        return True

    def has_task(self, key: str, interval_delay: float) -> bool:
        bucket = self._buckets.get(interval_delay)
        return bucket is not None and key in bucket.tasks

    @property
    def intervals(self) -> list[float]:
        """
        Intervals that currently have a running timer.
        """
        return sorted(self._buckets)

    def __len__(self) -> int:
        return sum(len(bucket.tasks) for bucket in self._buckets.values())

    def close(self) -> None:
        """
        Stop all timers and drop every registered task.

        Invocations that have already been dispatched are not affected, use ``drain`` to wait for them.
        """
        for bucket in self._buckets.values():
            if bucket.timer is not None:
                bucket.timer.cancel()
            if self._metrics:
                self._metrics.registered_tasks.dec(len(bucket.tasks))
                self._metrics.active_intervals.dec()

        if self._buckets:
            self._logger.info(f"Stopped {len(self._buckets)} interval timer(s)")
        self._buckets.clear()

    async def drain(self) -> None:
        """
        Wait until all dispatched invocations have finished.
        """
        while self._running:
            await asyncio.gather(*list(self._running), return_exceptions=True)

    def _next_boundary(self, entry: TaskEntry, now: float) -> float:
        anchor = float(entry.firing_date)
        if anchor > now:
            return anchor
        periods = math.floor((now - anchor) / entry.interval_delay) + 1
        return anchor + periods * entry.interval_delay

    def _is_current(self, bucket: _Bucket, registration: _Registration) -> bool:
        return (
            self._buckets.get(bucket.interval) is bucket and bucket.tasks.get(registration.entry.key) is registration
        )

    def _remove(self, bucket: _Bucket, key: str) -> None:
        if bucket.tasks.pop(key, None) is not None and self._metrics:
            self._metrics.registered_tasks.dec()
        bucket.fired.pop(key, None)

        if not bucket.tasks:
            if bucket.timer is not None:
                bucket.timer.cancel()
            del self._buckets[bucket.interval]
            if self._metrics:
                self._metrics.active_intervals.dec()
            self._logger.debug(f"Stopped timer for {bucket.interval} ms interval")

    def _tick(self, bucket: _Bucket) -> None:
        if self._buckets.get(bucket.interval) is not bucket:
            return

        # A tick opens a new window for repeating tasks
        for key, registration in bucket.tasks.items():
            if registration.entry.repeat:
                bucket.fired[key] = False

        tick = self._tick_time(bucket)
        for key, registration in list(bucket.tasks.items()):
            if bucket.fired.get(key) or registration.due > tick:
                continue

            bucket.fired[key] = True
            self._dispatch(bucket, registration)

    def _tick_time(self, bucket: _Bucket) -> float:
        # Nominal boundary of this tick. now() only decides how many periods the timer missed
        tick = bucket.next_tick
        behind = self._backend.now() - tick
        if behind >= bucket.interval:
            tick += math.floor(behind / bucket.interval) * bucket.interval
        bucket.next_tick = tick + bucket.interval
        return tick

    def _dispatch(self, bucket: _Bucket, registration: _Registration) -> None:
        entry = registration.entry
        self._logger.info(f"Starting task {entry.key}")

        running = self._backend.spawn(self._run(bucket, registration), name=f"Run{pascalize(entry.key)}")
        self._running.add(running)
        running.add_done_callback(self._running.discard)

        if self._metrics:
            self._metrics.task_runs.inc()

    async def _run(self, bucket: _Bucket, registration: _Registration) -> None:
        entry = registration.entry
        try:
            result = entry.task()
            if inspect.isawaitable(result):
                await result

        except Exception:
            self._logger.exception(f"Task {entry.key} in {entry.interval_delay} ms interval failed")
            if self._metrics:
                self._metrics.task_failures.inc()
            if self._is_current(bucket, registration):
                bucket.fired[entry.key] = False
            return

        if entry.repeat:
            self._logger.debug(f"Task {entry.key} done. Next tick at {_format_millis(bucket.next_tick)}")
        elif self._is_current(bucket, registration):
            self._remove(bucket, entry.key)
            self._logger.debug(f"Task {entry.key} done and retired")


def _format_millis(timestamp: float) -> str:
    return arrow.get(timestamp / 1000).isoformat()

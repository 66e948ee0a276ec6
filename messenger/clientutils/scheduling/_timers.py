"""
Timer primitives the scheduler runs on.

All times are expressed in milliseconds. ``now()`` is an epoch timestamp, since task anchors are epoch timestamps too.
"""

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Callable, Coroutine
from itertools import count
from time import time
from typing import Any

__all__ = ["AsyncioTimerBackend", "ManualTimerBackend", "TimerBackend", "TimerHandle"]


class TimerHandle(ABC):
    @abstractmethod
    def cancel(self) -> None:
        pass

    @property
    @abstractmethod
    def cancelled(self) -> bool:
        pass


class TimerBackend(ABC):
    """
    Clock, repeating timer and task spawner used by the scheduler.
    """

    @abstractmethod
    def now(self) -> float:
        """
        Current time as epoch milliseconds.
        """

    @abstractmethod
    def call_every(self, period: float, callback: Callable[[], None], first_delay: float) -> TimerHandle:
        """
        Start a repeating timer.

        Args:
            period: Milliseconds between ticks, must be positive.
            callback: Called on every tick.
            first_delay: Milliseconds until the first tick.

        Returns:
            A handle that stops the timer when cancelled.
        """

    @abstractmethod
    def spawn(self, coro: Coroutine[Any, Any, None], name: str) -> "asyncio.Task[None]":
        """
        Start ``coro`` in the background without waiting for it.
        """


class _LoopTimer(TimerHandle):
    def __init__(
        self,
        loop: asyncio.AbstractEventLoop,
        period: float,
        callback: Callable[[], None],
        first_delay: float,
    ) -> None:
        self._loop = loop
        self._period = period / 1000
        self._callback = callback
        self._cancelled = False

        self._next = loop.time() + max(first_delay, 0) / 1000
        self._handle = loop.call_at(self._next, self._fire)

    def _fire(self) -> None:
        # Re-arm before running the callback so the callback is free to cancel us
        self._next += self._period
        now = self._loop.time()
        while self._next <= now:
            self._next += self._period
        self._handle = self._loop.call_at(self._next, self._fire)

        self._callback()

    def cancel(self) -> None:
        self._cancelled = True
        self._handle.cancel()

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class AsyncioTimerBackend(TimerBackend):
    """
    Timer backend running on an asyncio event loop.

    Ticks are placed on the loop's monotonic clock, so they do not drift when a callback runs late. If the loop is
    stalled for longer than a period, the missed ticks are skipped instead of fired in a burst.

    Args:
        loop: Event loop to schedule on. Defaults to the running loop at the time of first use.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def now(self) -> float:
        return time() * 1000

    def call_every(self, period: float, callback: Callable[[], None], first_delay: float) -> TimerHandle:
        if period <= 0:
            raise ValueError("Timer period must be positive")
        return _LoopTimer(self._get_loop(), period, callback, first_delay)

    def spawn(self, coro: Coroutine[Any, Any, None], name: str) -> "asyncio.Task[None]":
        return self._get_loop().create_task(coro, name=name)


class _ManualTimer(TimerHandle):
    def __init__(self, period: float, callback: Callable[[], None], due: float, order: int) -> None:
        self.period = period
        self.callback = callback
        self.due = due
        self.order = order
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class ManualTimerBackend(TimerBackend):
    """
    Timer backend with a virtual clock that only moves when ``advance`` is called.

    Useful for deterministic tests of code built on the scheduler:

    .. code-block:: python

        timers = ManualTimerBackend(start=0)
        scheduler = LowPrecisionTaskScheduler(backend=timers)
        scheduler.add_task(key="refresh", firing_date=0, interval_delay=1000, task=refresh)

        timers.advance(1001)
        await asyncio.sleep(0)

    Spawned tasks are put on the running asyncio loop, so ``advance`` must be called from a coroutine whenever a timer
    is expected to dispatch work.

    Args:
        start: Initial value of the virtual clock, in epoch milliseconds.
    """

    def __init__(self, start: float = 0) -> None:
        self._now = float(start)
        self._timers: list[_ManualTimer] = []
        self._order = count()

    def now(self) -> float:
        return self._now

    def call_every(self, period: float, callback: Callable[[], None], first_delay: float) -> TimerHandle:
        if period <= 0:
            raise ValueError("Timer period must be positive")
        timer = _ManualTimer(period, callback, self._now + max(first_delay, 0), next(self._order))
        self._timers.append(timer)
        return timer

    def spawn(self, coro: Coroutine[Any, Any, None], name: str) -> "asyncio.Task[None]":
        return asyncio.get_running_loop().create_task(coro, name=name)

    def advance(self, milliseconds: float) -> None:
        """
        Move the clock forward, firing every timer tick that falls inside the skipped span in time order.
        """
        target = self._now + milliseconds
        while True:
            self._timers = [t for t in self._timers if not t.cancelled]
            due = [t for t in self._timers if t.due <= target]
            if not due:
                break

            timer = min(due, key=lambda t: (t.due, t.order))
            self._now = timer.due
            timer.due += timer.period
            timer.callback()

        self._now = target

    @property
    def active_timers(self) -> int:
        """
        Number of timers that have not been cancelled.
        """
        return len([t for t in self._timers if not t.cancelled])

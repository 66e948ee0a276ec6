"""
This module provides a low precision scheduler for recurring background work.

Many logically independent tasks tend to share a handful of repeat intervals, such as re-checking state every minute.
Instead of running one timer per task, ``LowPrecisionTaskScheduler`` keeps a single shared timer per distinct interval
and fires every task registered for that interval on the shared timer's ticks. This bounds the number of live timers to
the number of intervals in use, at the cost of per-task timing precision.
"""

from ._scheduler import LowPrecisionTaskScheduler, TaskEntry, TaskTarget
from ._timers import AsyncioTimerBackend, ManualTimerBackend, TimerBackend, TimerHandle

__all__ = [
    "AsyncioTimerBackend",
    "LowPrecisionTaskScheduler",
    "ManualTimerBackend",
    "TaskEntry",
    "TaskTarget",
    "TimerBackend",
    "TimerHandle",
]

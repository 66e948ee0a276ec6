#  Copyright 2026 The messenger-client-utils Authors
#
#  Licensed under the Apache License, Version 2.0 (the "License");
#  you may not use this file except in compliance with the License.
#  You may obtain a copy of the License at
#
#      http://www.apache.org/licenses/LICENSE-2.0
#
#  Unless required by applicable law or agreed to in writing, software
#  distributed under the License is distributed on an "AS IS" BASIS,
#  WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
#  See the License for the specific language governing permissions and
#  limitations under the License.

"""
Module containing Prometheus metrics for the client utilities.

Metrics are registered in the default Prometheus registry, which does not allow two metrics with the same name. Always
obtain metric collections through ``safe_get``:

.. code-block:: python

    metrics = safe_get(SchedulerMetrics)
    scheduler = LowPrecisionTaskScheduler(metrics=metrics)
"""

from typing import Any, Dict, Type, TypeVar

from prometheus_client import Counter, Gauge

_metrics_singularities: Dict[type, Any] = {}


T = TypeVar("T")


def safe_get(cls: Type[T], *args: Any, **kwargs: Any) -> T:
    """
    A factory for instances of metrics collections.

    Since Prometheus doesn't allow multiple metrics with the same name, a metrics collection must never be created more
    than once. This function creates an instance of the given class on the first call and stores it, any subsequent
    calls with the same class as argument will return the same instance.

    .. code-block:: python

        >>> a = safe_get(SchedulerMetrics)  # This will create a new instance of SchedulerMetrics
        >>> b = safe_get(SchedulerMetrics)  # This will return the same instance
        >>> a is b
        True


    Args:
        cls: Metrics class to either create or get a cached version of

    Returns:
        An instance of given class
    """
    global _metrics_singularities

    if cls not in _metrics_singularities:
        _metrics_singularities[cls] = cls(*args, **kwargs)

    return _metrics_singularities[cls]


class SchedulerMetrics:
    """
    Metrics reported by ``LowPrecisionTaskScheduler``.

    The collection includes the following metrics:
     * <prefix>_scheduler_active_intervals      Number of interval buckets with a running timer
     * <prefix>_scheduler_registered_tasks      Number of registered tasks across all buckets
     * <prefix>_scheduler_task_runs_total       Number of dispatched task invocations
     * <prefix>_scheduler_task_failures_total   Number of task invocations that raised

    Args:
        prefix: Prefix for metric names
    """

    def __init__(self, prefix: str = "messenger_client") -> None:
        prefix = prefix.strip().replace(" ", "_")

        self.active_intervals = Gauge(
            f"{prefix}_scheduler_active_intervals", "Number of interval buckets with a running timer"
        )
        self.registered_tasks = Gauge(
            f"{prefix}_scheduler_registered_tasks", "Number of registered tasks across all buckets"
        )
        self.task_runs = Counter(f"{prefix}_scheduler_task_runs", "Number of dispatched task invocations")
        self.task_failures = Counter(f"{prefix}_scheduler_task_failures", "Number of task invocations that raised")

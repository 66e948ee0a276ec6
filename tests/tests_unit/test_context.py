import asyncio
import logging
from unittest.mock import AsyncMock

import pytest

from messenger.clientutils.configuration.models import ClientConfig, SchedulerConfig
from messenger.clientutils.context import ClientContext
from messenger.clientutils.scheduling import LowPrecisionTaskScheduler, ManualTimerBackend, TaskEntry


def test_context_lifecycle(restore_root_logger: logging.Logger, timers: ManualTimerBackend, settle) -> None:
    task = AsyncMock()
    context = ClientContext(ClientConfig(scheduler=SchedulerConfig(metrics=False)), backend=timers)

    with pytest.raises(RuntimeError):
        context.scheduler

    async def scenario() -> None:
        async with context:
            assert context.started
            context.scheduler.add_task(TaskEntry.from_interval(key="k", interval="1s", task=task, repeat=True))

            timers.advance(1001)
            await settle()

        assert not context.started
        assert timers.active_timers == 0

        timers.advance(5000)
        await settle()

    asyncio.run(scenario())

    task.assert_called_once()


def test_contexts_are_isolated(timers: ManualTimerBackend) -> None:
    config = ClientConfig(scheduler=SchedulerConfig(metrics=False))
    first = ClientContext(config, backend=timers, configure_logging=False)
    second = ClientContext(config, backend=timers, configure_logging=False)
    first.start()
    second.start()

    assert isinstance(first.scheduler, LowPrecisionTaskScheduler)
    assert first.scheduler is not second.scheduler

    first.scheduler.add_task(key="k", firing_date=0, interval_delay=1000, task=AsyncMock())
    first.close()

    assert len(second.scheduler) == 0
    assert timers.active_timers == 0

    second.close()
    second.close()


def test_context_cannot_start_twice(timers: ManualTimerBackend) -> None:
    context = ClientContext(ClientConfig(), backend=timers, configure_logging=False)
    context.start()

    with pytest.raises(RuntimeError, match="already started"):
        context.start()

    context.close()


def test_aclose_waits_for_running_tasks(timers: ManualTimerBackend, blocking_task) -> None:
    config = ClientConfig(scheduler=SchedulerConfig(metrics=False))
    context = ClientContext(config, backend=timers, configure_logging=False)

    async def scenario() -> None:
        context.start()
        context.scheduler.add_task(key="k", firing_date=0, interval_delay=1000, task=blocking_task)
        timers.advance(1001)

        closing = asyncio.ensure_future(context.aclose())
        await asyncio.sleep(0)
        assert not closing.done()

        blocking_task.release()
        await asyncio.wait_for(closing, timeout=1)

    asyncio.run(scenario())

    assert blocking_task.finished == 1

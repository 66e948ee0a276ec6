import asyncio
from time import time
from unittest.mock import AsyncMock

import pytest

from messenger.clientutils.scheduling import AsyncioTimerBackend, LowPrecisionTaskScheduler, ManualTimerBackend


def test_manual_backend_fires_in_time_order() -> None:
    timers = ManualTimerBackend(start=100)
    fired: list[tuple[str, float]] = []

    timers.call_every(300, lambda: fired.append(("slow", timers.now())), first_delay=300)
    timers.call_every(200, lambda: fired.append(("fast", timers.now())), first_delay=100)

    timers.advance(650)

    assert fired == [
        ("fast", 200),
        ("slow", 400),
        ("fast", 400),
        ("fast", 600),
        ("slow", 700),
    ]
    assert timers.now() == 750


def test_manual_backend_cancel_from_callback() -> None:
    timers = ManualTimerBackend()
    fired: list[float] = []

    def callback() -> None:
        fired.append(timers.now())
        if len(fired) == 2:
            handle.cancel()

    handle = timers.call_every(10, callback, first_delay=10)
    timers.advance(100)

    assert fired == [10, 20]
    assert handle.cancelled
    assert timers.active_timers == 0


def test_manual_backend_rejects_non_positive_period() -> None:
    with pytest.raises(ValueError):
        ManualTimerBackend().call_every(0, lambda: None, first_delay=0)


def test_asyncio_backend_now_is_epoch_millis() -> None:
    assert AsyncioTimerBackend().now() == pytest.approx(time() * 1000, abs=1000)


def test_asyncio_backend_repeats_until_cancelled() -> None:
    async def scenario() -> tuple[int, int, bool]:
        backend = AsyncioTimerBackend()
        ticks: list[float] = []

        handle = backend.call_every(10, lambda: ticks.append(backend.now()), first_delay=10)
        await asyncio.sleep(0.1)
        handle.cancel()

        count = len(ticks)
        await asyncio.sleep(0.05)
        return count, len(ticks), handle.cancelled

    count, after_cancel, cancelled = asyncio.run(scenario())

    assert count >= 3
    assert after_cancel == count
    assert cancelled


def test_asyncio_backend_rejects_non_positive_period() -> None:
    async def scenario() -> None:
        AsyncioTimerBackend().call_every(-1, lambda: None, first_delay=0)

    with pytest.raises(ValueError):
        asyncio.run(scenario())


def test_scheduler_on_asyncio_loop() -> None:
    once = AsyncMock()
    repeating = AsyncMock()

    async def scenario() -> None:
        backend = AsyncioTimerBackend()
        scheduler = LowPrecisionTaskScheduler(backend=backend)

        scheduler.add_task(key="once", firing_date=backend.now(), interval_delay=20, task=once)
        scheduler.add_task(key="again", firing_date=backend.now(), interval_delay=20, task=repeating, repeat=True)
        await asyncio.sleep(0.2)

        scheduler.close()
        await scheduler.drain()

    asyncio.run(scenario())

    once.assert_called_once()
    assert repeating.call_count >= 2

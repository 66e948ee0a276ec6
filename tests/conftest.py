import asyncio
import logging
from collections.abc import Awaitable, Callable, Generator

import pytest

from messenger.clientutils.scheduling import LowPrecisionTaskScheduler, ManualTimerBackend


async def settle(rounds: int = 5) -> None:
    """
    Give spawned tasks a few loop iterations to run.
    """
    for _ in range(rounds):
        await asyncio.sleep(0)


class BlockingTask:
    """
    Task that records its calls and stays in flight until released.
    """

    def __init__(self) -> None:
        self.calls = 0
        self.finished = 0
        self._release: asyncio.Event | None = None

    async def __call__(self) -> None:
        self.calls += 1
        if self._release is None:
            self._release = asyncio.Event()
        await self._release.wait()
        self.finished += 1

    def release(self) -> None:
        if self._release is not None:
            self._release.set()


@pytest.fixture
def timers() -> ManualTimerBackend:
    return ManualTimerBackend(start=0)


@pytest.fixture
def scheduler(timers: ManualTimerBackend) -> Generator[LowPrecisionTaskScheduler, None, None]:
    scheduler = LowPrecisionTaskScheduler(backend=timers)
    yield scheduler
    scheduler.close()


@pytest.fixture
def restore_root_logger() -> Generator[logging.Logger, None, None]:
    root = logging.getLogger()
    # pytest's own capture handlers come and go with each test phase, only restore the others
    handlers = [h for h in root.handlers if not type(h).__module__.startswith("_pytest")]
    level = root.level
    yield root
    for handler in list(root.handlers):
        if handler not in handlers and not type(handler).__module__.startswith("_pytest"):
            root.removeHandler(handler)
            handler.close()
    for handler in handlers:
        if handler not in root.handlers:
            root.addHandler(handler)
    root.setLevel(level)


@pytest.fixture
def blocking_task() -> BlockingTask:
    return BlockingTask()


@pytest.fixture(name="settle")
def settle_fixture() -> Callable[..., Awaitable[None]]:
    return settle

"""
Module containing the ``ClientContext``, the owner of the shared client utilities for one client instance.

.. code-block:: python

    config = load_file(Path("client.yaml"), ClientConfig)

    async with ClientContext(config) as context:
        context.scheduler.add_task(
            TaskEntry.from_interval(key="refresh-keys", interval="1h", task=refresh_keys, repeat=True)
        )
        ...
"""

from logging import getLogger
from types import TracebackType

from messenger.clientutils.configuration.models import ClientConfig, LogLevel
from messenger.clientutils.logger import setup_logging
from messenger.clientutils.scheduling import LowPrecisionTaskScheduler, TimerBackend

__all__ = ["ClientContext"]


class ClientContext:
    """
    Creates and tears down the scheduler and logging setup for a client.

    Every context owns its own scheduler, so several clients (or tests) in one process never share timers.

    Args:
        config: Client configuration.
        backend: Timer backend for the scheduler. Defaults to the running asyncio loop.
        configure_logging: Install the configured log handlers on the root logger when started.
        log_level_override: Use this level for all log handlers instead of the configured ones.
    """

    def __init__(
        self,
        config: ClientConfig,
        backend: TimerBackend | None = None,
        *,
        configure_logging: bool = True,
        log_level_override: LogLevel | None = None,
    ) -> None:
        self.config = config
        self._backend = backend
        self._configure_logging = configure_logging
        self._log_level_override = log_level_override

        self._scheduler: LowPrecisionTaskScheduler | None = None
        self._logger = getLogger(__name__)

    @property
    def scheduler(self) -> LowPrecisionTaskScheduler:
        """
        The context's scheduler.

        Raises:
            RuntimeError: If the context has not been started, or has been closed.
        """
        if self._scheduler is None:
            raise RuntimeError("Client context is not started")
        return self._scheduler

    @property
    def started(self) -> bool:
        return self._scheduler is not None

    def start(self) -> None:
        if self._scheduler is not None:
            raise RuntimeError("Client context is already started")

        if self._configure_logging:
            setup_logging(self.config.log_handlers, self._log_level_override)

        self._scheduler = LowPrecisionTaskScheduler.from_config(self.config.scheduler, self._backend)
        self._logger.info("Client context started")

    def close(self) -> None:
        """
        Stop all scheduler timers. Closing a context that is not started does nothing.
        """
        if self._scheduler is None:
            return

        self._scheduler.close()
        self._scheduler = None
        self._logger.info("Client context closed")

    async def aclose(self) -> None:
        """
        Stop all scheduler timers and wait for running task invocations to finish.
        """
        scheduler = self._scheduler
        self.close()
        if scheduler is not None:
            await scheduler.drain()

    async def __aenter__(self) -> "ClientContext":
        self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.aclose()

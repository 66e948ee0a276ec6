"""
This module configures logging for applications built on the client utilities.

Library modules only ever log through ``logging.getLogger(__name__)``, and leave handler setup to the application.
``setup_logging`` installs handlers on the root logger according to a list of handler configurations.
"""

import datetime
import logging
import os
import time
from collections.abc import Iterable
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path

from typing_extensions import assert_never

from messenger.clientutils.configuration.models import (
    LogConsoleHandlerConfig,
    LogFileHandlerConfig,
    LogHandlerConfig,
    LogLevel,
)

__all__ = ["RobustFileHandler", "setup_logging"]


def _resolve_log_level(level: str) -> int:
    return {"NOTSET": 0, "DEBUG": 10, "INFO": 20, "WARNING": 30, "ERROR": 40, "CRITICAL": 50}[level.upper()]


class RobustFileHandler(TimedRotatingFileHandler):
    """
    A TimedRotatingFileHandler that gracefully handles directory/permission issues.

    It can automatically create log directories, and raises an error early if the file cannot be created or accessed so
    callers can fall back to console logging.
    """

    def __init__(
        self,
        filename: Path,
        create_dirs: bool = True,
        when: str = "h",
        interval: int = 1,
        backupCount: int = 0,
        encoding: str | None = None,
        delay: bool = False,
        utc: bool = False,
        atTime: datetime.time | None = None,
        errors: str | None = None,
    ) -> None:
        self.create_dirs = create_dirs

        if self.create_dirs:
            directory = filename.parent
            directory.mkdir(parents=True, exist_ok=True)
            if not os.access(directory, os.W_OK):
                raise PermissionError(f"Cannot write to directory: {directory}")

        super().__init__(
            filename,
            when=when,
            interval=interval,
            backupCount=backupCount,
            encoding=encoding,
            delay=delay,
            utc=utc,
            atTime=atTime,
            errors=errors,
        )

        self.stream.write("")
        self.stream.flush()


def setup_logging(handlers: Iterable[LogHandlerConfig], level_override: LogLevel | None = None) -> None:
    """
    Replace the root logger's handlers with the configured ones.

    Timestamps are written in UTC. A file handler that cannot be created is replaced by console logging.

    Args:
        handlers: Handler configurations, typically ``ClientConfig.log_handlers``.
        level_override: Use this level for every handler instead of the configured ones.
    """
    handlers = list(handlers)
    logger = logging.getLogger(__name__)

    if level_override:
        min_level = _resolve_log_level(level_override.value)
    elif handlers:
        min_level = min([_resolve_log_level(h.level.value) for h in handlers])
    else:
        min_level = logging.WARNING

    root = logging.getLogger()
    root.setLevel(min_level)

    fmt = logging.Formatter(
        "%(asctime)s.%(msecs)03d UTC [%(levelname)-8s] %(process)d %(taskName)s - %(message)s",
        "%Y-%m-%d %H:%M:%S",
        defaults={"taskName": None},
    )
    # Set logging to UTC
    fmt.converter = time.gmtime

    # Remove any previous logging handlers
    for handler in list(root.handlers):
        root.removeHandler(handler)

    for handler_config in handlers:
        level_for_handler = _resolve_log_level((level_override or handler_config.level).value)
        match handler_config:
            case LogConsoleHandlerConfig():
                sh = logging.StreamHandler()
                sh.setFormatter(fmt)
                sh.setLevel(level_for_handler)

                root.addHandler(sh)

            case LogFileHandlerConfig() as file_handler:
                try:
                    fh = RobustFileHandler(
                        filename=file_handler.path,
                        when="midnight",
                        utc=True,
                        backupCount=file_handler.retention,
                        create_dirs=True,
                    )
                    fh.setLevel(level_for_handler)
                    fh.setFormatter(fmt)

                    root.addHandler(fh)
                except (OSError, PermissionError) as e:
                    if not any(type(h) is logging.StreamHandler for h in root.handlers):
                        sh = logging.StreamHandler()
                        sh.setFormatter(fmt)
                        sh.setLevel(level_for_handler)
                        root.addHandler(sh)
                    logger.warning(
                        f"Could not create or write to log file {file_handler.path}: {e}. Defaulted to console logging."
                    )

            case _:
                assert_never(handler_config)

"""
Module containing pre-built models for the client utilities configuration.
"""

import re
from datetime import timedelta
from enum import Enum
from pathlib import Path
from typing import Annotated, Any, Literal

from humps import kebabize
from pydantic import BaseModel, ConfigDict, Field, GetCoreSchemaHandler
from pydantic_core import CoreSchema, core_schema

from messenger.clientutils.exceptions import InvalidConfigError

__all__ = [
    "ClientConfig",
    "ConfigModel",
    "FirstFirePolicy",
    "LogConsoleHandlerConfig",
    "LogFileHandlerConfig",
    "LogHandlerConfig",
    "LogLevel",
    "SchedulerConfig",
    "TimeIntervalConfig",
]


class ConfigModel(BaseModel):
    """
    Base model for configuration objects, setting the correct pydantic options for client config.
    """

    model_config = ConfigDict(
        alias_generator=kebabize,
        populate_by_name=True,
        extra="forbid",
    )


class TimeIntervalConfig:
    """
    Configuration parameter for setting a time interval.

    Accepts expressions such as ``250ms``, ``30s``, ``5m``, ``1h`` or ``2d``. A bare number is read as seconds.
    """

    _UNITS = {"ms": 1, "s": 1000, "m": 60 * 1000, "h": 60 * 60 * 1000, "d": 24 * 60 * 60 * 1000}

    def __init__(self, expression: str | int) -> None:
        self._interval, self._expression = TimeIntervalConfig._parse_expression(expression)

    @classmethod
    def __get_pydantic_core_schema__(cls, source_type: Any, handler: GetCoreSchemaHandler) -> CoreSchema:  # noqa: ANN401
        return core_schema.no_info_after_validator_function(cls, handler(str | int))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TimeIntervalConfig):
            return NotImplemented
        return self._interval == other._interval

    def __hash__(self) -> int:
        return hash(self._interval)

    @classmethod
    def _parse_expression(cls, expression: str | int) -> tuple[int, str]:
        # Pure numbers are seconds
        try:
            seconds = int(expression)
        except ValueError:
            pass
        else:
            if seconds < 0:
                raise InvalidConfigError(f"Invalid interval '{expression}', intervals can not be negative")
            return seconds * cls._UNITS["s"], f"{expression}s"

        match = re.fullmatch(r"(\d+)[ \t]*(ms|s|m|h|d)", str(expression).strip())
        if not match:
            raise InvalidConfigError(f"Invalid interval pattern '{expression}'")

        number, unit = match.groups()
        return int(number) * cls._UNITS[unit], str(expression)

    @property
    def milliseconds(self) -> int:
        """
        Time interval as number of milliseconds.
        """
        return self._interval

    @property
    def seconds(self) -> float:
        """
        Time interval as number of seconds.

        This is a float since the underlying interval is in milliseconds.
        """
        return self._interval / 1000

    @property
    def timedelta(self) -> timedelta:
        """
        Time interval as a timedelta object.
        """
        return timedelta(milliseconds=self._interval)

    def __int__(self) -> int:
        return self._interval

    def __str__(self) -> str:
        return self._expression

    def __repr__(self) -> str:
        return self._expression


class LogLevel(Enum):
    """
    Enumeration of log levels.
    """

    CRITICAL = "CRITICAL"
    ERROR = "ERROR"
    WARNING = "WARNING"
    INFO = "INFO"
    DEBUG = "DEBUG"

    @classmethod
    def _missing_(cls, value: object) -> "LogLevel":
        if not isinstance(value, str):
            raise ValueError(f"{value} is not a valid log level")
        for member in cls:
            if member.value == value.upper():
                return member
        raise ValueError(f"{value} is not a valid log level")


class LogFileHandlerConfig(ConfigModel):
    """
    Configuration for a log handler that writes to a file, with daily rotation.
    """

    type: Literal["file"]
    path: Path
    level: LogLevel
    retention: int = 7


class LogConsoleHandlerConfig(ConfigModel):
    """
    Configuration for a log handler that writes to standard output.
    """

    type: Literal["console"]
    level: LogLevel


LogHandlerConfig = Annotated[LogFileHandlerConfig | LogConsoleHandlerConfig, Field(discriminator="type")]


class FirstFirePolicy(Enum):
    """
    When a newly registered task first becomes due.

    Attributes:
        NEXT_BOUNDARY: At the first ``firing_date + n * interval`` boundary after registration.
        CATCH_UP: Immediately, if ``firing_date`` has already passed. The task then fires on the next tick of its
            interval.
    """

    NEXT_BOUNDARY = "next-boundary"
    CATCH_UP = "catch-up"


class SchedulerConfig(ConfigModel):
    first_fire: FirstFirePolicy = FirstFirePolicy.NEXT_BOUNDARY
    metrics: bool = True


def _default_log_handlers() -> list[LogHandlerConfig]:
    return [LogConsoleHandlerConfig(type="console", level=LogLevel.INFO)]


class ClientConfig(ConfigModel):
    """
    Top level configuration for the client utilities.
    """

    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    log_handlers: list[LogHandlerConfig] = Field(default_factory=_default_log_handlers)

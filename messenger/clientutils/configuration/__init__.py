"""
Configuration models and loaders for the client utilities.
"""

from .loaders import ConfigFormat, load_dict, load_file, load_io
from .models import (
    ClientConfig,
    ConfigModel,
    FirstFirePolicy,
    LogConsoleHandlerConfig,
    LogFileHandlerConfig,
    LogHandlerConfig,
    LogLevel,
    SchedulerConfig,
    TimeIntervalConfig,
)

__all__ = [
    "ClientConfig",
    "ConfigFormat",
    "ConfigModel",
    "FirstFirePolicy",
    "LogConsoleHandlerConfig",
    "LogFileHandlerConfig",
    "LogHandlerConfig",
    "LogLevel",
    "SchedulerConfig",
    "TimeIntervalConfig",
    "load_dict",
    "load_file",
    "load_io",
]

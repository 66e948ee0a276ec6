"""
Module containing functions and classes for loading configuration files.
"""

import json
import os
import re
from enum import Enum
from pathlib import Path
from typing import Any, TextIO, TypeVar

import yaml
from pydantic import ValidationError
from yaml.scanner import ScannerError

from messenger.clientutils.configuration.models import ConfigModel
from messenger.clientutils.exceptions import InvalidConfigError

__all__ = ["ConfigFormat", "load_dict", "load_file", "load_io"]


_T = TypeVar("_T", bound=ConfigModel)


class ConfigFormat(Enum):
    """
    Enumeration of supported configuration file formats.

    Attributes:
        JSON: Represents the JSON configuration file format.
        YAML: Represents the YAML configuration file format.
    """

    JSON = "json"
    YAML = "yaml"


class _EnvLoader(yaml.SafeLoader):
    pass


def _env_constructor(_: yaml.SafeLoader, node: yaml.Node) -> bool | str:
    bool_values = {
        "true": True,
        "false": False,
    }
    expanded_value = os.path.expandvars(node.value)
    return bool_values.get(expanded_value.lower(), expanded_value)


_EnvLoader.add_implicit_resolver("!env", re.compile(r"\$\{([^}^{]+)\}"), None)
_EnvLoader.add_constructor("!env", _env_constructor)


def _load_yaml_dict_raw(source: TextIO | str) -> dict[str, Any]:
    try:
        config_dict = yaml.load(source, Loader=_EnvLoader)  # noqa: S506
    except ScannerError as e:
        location = e.problem_mark or e.context_mark
        formatted_location = (
            f" at line {location.line + 1}, column {location.column + 1}" if location is not None else ""
        )
        cause = e.problem or e.context
        raise InvalidConfigError(f"Invalid YAML{formatted_location}: {cause or ''}") from e

    if config_dict is None:
        return {}
    if not isinstance(config_dict, dict):
        raise InvalidConfigError("The root node of the YAML document must be an object")

    return config_dict


def load_file(path: Path, schema: type[_T]) -> _T:
    """
    Load a configuration file from the given path and parse it into the specified schema.

    Args:
        path: Path to the configuration file.
        schema: The schema class to parse the configuration into.

    Returns:
        An instance of the schema populated with the configuration data.

    Raises:
        InvalidConfigError: If the file type is unknown or the configuration is invalid.
    """
    if path.suffix in [".yaml", ".yml"]:
        file_format = ConfigFormat.YAML
    elif path.suffix == ".json":
        file_format = ConfigFormat.JSON
    else:
        raise InvalidConfigError(f"Unknown file type {path.suffix}")

    with open(path) as stream:
        return load_io(stream, file_format, schema)


def load_io(stream: TextIO, file_format: ConfigFormat, schema: type[_T]) -> _T:
    """
    Load a configuration from a stream (e.g., file or string) and parse it into the specified schema.

    Environment variables written as ``${NAME}`` in YAML documents are expanded.

    Args:
        stream: A text stream containing the configuration data.
        file_format: The format of the configuration data.
        schema: The schema class to parse the configuration into.

    Returns:
        An instance of the schema populated with the configuration data.

    Raises:
        InvalidConfigError: If the configuration is invalid.
    """
    if file_format == ConfigFormat.JSON:
        try:
            data = json.load(stream)
        except json.JSONDecodeError as e:
            raise InvalidConfigError(f"Invalid JSON at line {e.lineno}, column {e.colno}: {e.msg}") from e

    elif file_format == ConfigFormat.YAML:
        data = _load_yaml_dict_raw(stream)

    return load_dict(data, schema)


def _make_loc_str(loc: tuple) -> str:
    loc_str = ""
    needs_sep = False
    for lo in loc:
        if not needs_sep:
            loc_str = f"{loc_str}{lo}"
            needs_sep = True
        else:
            loc_str = f"{loc_str}[{lo}]" if isinstance(lo, int) else f"{loc_str}.{lo}"

    return loc_str


def load_dict(data: dict, schema: type[_T]) -> _T:
    """
    Load a configuration from a dictionary and parse it into the specified schema.

    Args:
        data: A dictionary containing the configuration data.
        schema: The schema class to parse the configuration into.

    Returns:
        An instance of the schema populated with the configuration data.

    Raises:
        InvalidConfigError: If the configuration is invalid.
    """
    try:
        return schema.model_validate(data)

    except ValidationError as e:
        messages = []
        for err in e.errors():
            loc = err.get("loc")
            if loc is None:
                continue

            loc_str = _make_loc_str(loc)

            if "ctx" in err and "error" in err["ctx"]:
                exc = err["ctx"]["error"]
                if isinstance(exc, ValueError | AssertionError):
                    messages.append(f"{exc!s}: {loc_str}")
                    continue

            messages.append(f"{err.get('msg')}: {loc_str}")

        raise InvalidConfigError(", ".join(messages), details=messages) from e

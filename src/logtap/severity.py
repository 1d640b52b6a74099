"""Severity scale and level resolution.

Severities are ordered by verbosity: a message at severity S is emitted
when S <= the effective threshold.

    SILENT(0) < ERROR(1) < WARN(2) < INFO(3) < DEBUG(4) < TRACE(5)

Level inputs arrive in several shapes (name, rank, or a config carrying
either). resolve() recognizes them in a fixed order and falls back to a
default for anything else.
"""

from __future__ import annotations

__all__ = [
    "DEFAULT_SEVERITY",
    "LevelInput",
    "LogConfig",
    "LogOptions",
    "Severity",
    "config_field",
    "from_name",
    "from_rank",
    "is_log_config",
    "resolve",
]

from collections.abc import Mapping
from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Union


class Severity(IntEnum):
    """Ordered log severity. Higher rank means more verbose."""

    SILENT = 0
    ERROR = 1
    WARN = 2
    INFO = 3
    DEBUG = 4
    TRACE = 5


DEFAULT_SEVERITY = Severity.INFO

# Case-insensitive name lookup, including TRACE synonyms
_NAMES: dict[str, Severity] = {
    **{severity.name: severity for severity in Severity},
    "SILLY": Severity.TRACE,
    "VERBOSE": Severity.TRACE,
}

# Keys that mark a mapping as a logger config
_CONFIG_KEYS = ("level", "label", "prefix")


@dataclass(frozen=True)
class LogConfig:
    """Logger creation options.

    Attributes:
        level: Requested severity, as a name or rank.
        label: Display label (defaults to the logger id).
        prefix: Text prepended to every emitted line.
    """

    level: str | int | None = None
    label: str | None = None
    prefix: str | None = None


LevelInput = Union[str, int, Severity]
LogOptions = Union[LevelInput, LogConfig, Mapping[str, Any], None]


def from_name(value: object) -> Severity | None:
    """Look up a severity by name (case-insensitive).

    Returns:
        The matching Severity, or None for unknown names and non-strings.
    """
    if not isinstance(value, str):
        return None
    return _NAMES.get(value.upper())


def from_rank(value: object) -> Severity | None:
    """Look up a severity by numeric rank.

    Returns:
        The matching Severity, or None for out-of-range values and non-ints.
    """
    # bool is an int subclass; True must not read as ERROR
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    try:
        return Severity(value)
    except ValueError:
        return None


def is_log_config(value: object) -> bool:
    """Check whether value is a logger config rather than a bare level.

    A LogConfig instance always qualifies. A mapping qualifies when it
    carries at least one of the config keys.
    """
    if isinstance(value, LogConfig):
        return True
    if isinstance(value, Mapping):
        return any(key in value for key in _CONFIG_KEYS)
    return False


def config_field(options: object, name: str) -> Any:
    """Read a field from a LogConfig or config mapping, else None."""
    if isinstance(options, LogConfig):
        return getattr(options, name)
    if isinstance(options, Mapping):
        return options.get(name)
    return None


def _level_of(value: object) -> Severity | None:
    return from_name(value) if isinstance(value, str) else from_rank(value)


def resolve(value: LogOptions, default: Severity = DEFAULT_SEVERITY) -> Severity:
    """Resolve any accepted level input to a Severity.

    Precedence: level name, then numeric rank, then the ``level`` field of
    a config. Anything unrecognized (at any depth) yields ``default``.

    Args:
        value: Name, rank, LogConfig, config mapping, or None.
        default: Severity returned when nothing matches.

    Returns:
        The resolved Severity.

    Example:
        >>> resolve("warn")
        <Severity.WARN: 2>
        >>> resolve({"level": 4})
        <Severity.DEBUG: 4>
        >>> resolve({"level": "bogus"})
        <Severity.INFO: 3>
    """
    if value is None:
        return default
    if isinstance(value, Severity):
        return value

    direct = _level_of(value)
    if direct is not None:
        return direct

    if is_log_config(value):
        nested = _level_of(config_field(value, "level"))
        if nested is not None:
            return nested

    return default

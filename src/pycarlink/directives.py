"""Directive wire codec.

Commands travel as ``KEY=VALUE;`` segments with no escaping.  Values are
enum tokens, integers, or comma-joined integer tuples.  This module is
the only place that reads that text form; everything past it works with
:class:`~pycarlink.models.directives.ParsedCommand`.

Parsing is tolerant: empty and trailing segments are ignored, and a
segment that cannot be parsed is skipped without failing the rest of
the command.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable

from pycarlink.exceptions import MalformedDirectiveError
from pycarlink.models.directives import (
    CalibrationDirective,
    Directive,
    DoorAction,
    DoorDirective,
    EngineDirective,
    HeaterDirective,
    LevelDirective,
    NoSleepDirective,
    OtaDirective,
    ParsedCommand,
    PreheatDirective,
    RebootDirective,
    SleepDirective,
    UnknownDirective,
)
from pycarlink.models.state import EngineMode

_logger = logging.getLogger(__name__)

SEGMENT_SEPARATOR = ";"
KEY_VALUE_SEPARATOR = "="
TUPLE_SEPARATOR = ","

_FLAG_TOKENS: dict[str, bool] = {"0": False, "1": True, "OFF": False, "ON": True}


def _parse_int(value: str) -> int:
    return int(value.strip())


def _parse_int_tuple(value: str) -> tuple[int, ...]:
    if not value.strip():
        raise ValueError("empty tuple")
    return tuple(_parse_int(part) for part in value.split(TUPLE_SEPARATOR))


def _parse_flag(value: str) -> bool:
    token = value.strip().upper()
    if token not in _FLAG_TOKENS:
        raise ValueError(f"expected 0 or 1, got {value!r}")
    return _FLAG_TOKENS[token]


def _parse_preheat(value: str) -> PreheatDirective:
    fields = _parse_int_tuple(value)
    if len(fields) != 4:
        raise ValueError(f"expected 4 fields, got {len(fields)}")
    delay_s, duration_s, auto_ready, level = fields
    if auto_ready not in (0, 1):
        raise ValueError(f"auto_ready must be 0 or 1, got {auto_ready}")
    return PreheatDirective(delay_s=delay_s, duration_s=duration_s, auto_ready=bool(auto_ready), level=level)


_PARSERS: dict[str, Callable[[str], Directive]] = {
    "ENGINE": lambda value: EngineDirective(mode=EngineMode(value)),
    "HEATER": lambda value: HeaterDirective(on=_parse_flag(value)),
    "LEVEL": lambda value: LevelDirective(level=_parse_int(value)),
    "DOOR": lambda value: DoorDirective(action=DoorAction(value)),
    "NOSLEEP": lambda value: NoSleepDirective(seconds=_parse_int(value)),
    "PREHEAT": _parse_preheat,
    "SLEEP": lambda value: SleepDirective(values=_parse_int_tuple(value)),
    "REBOOT": lambda value: RebootDirective(value=value or "1"),
    "OTA": lambda value: OtaDirective(value=value or "1"),
}

CALIBRATION_PREFIX = "CAL"


def parse_directive(segment: str) -> Directive:
    """Parse one ``KEY=VALUE`` segment (without the trailing ``;``).

    Keys are case-insensitive.  Keys the server does not model come back
    as :class:`UnknownDirective` so they can be relayed unchanged.

    Raises
    ------
    MalformedDirectiveError
        The segment has no ``=``, an empty key, or a value that does not
        fit a modelled key.
    """
    key, sep, value = segment.partition(KEY_VALUE_SEPARATOR)
    key = key.strip().upper()
    value = value.strip()
    if not sep:
        raise MalformedDirectiveError(f"Missing '=' in {segment!r}", segment=segment)
    if not key:
        raise MalformedDirectiveError(f"Empty key in {segment!r}", segment=segment)

    try:
        parser = _PARSERS.get(key)
        if parser is not None:
            return parser(value)
        if key.startswith(CALIBRATION_PREFIX):
            return CalibrationDirective(name=key, values=_parse_int_tuple(value))
    except ValueError as exc:
        raise MalformedDirectiveError(f"Invalid value for {key}: {exc}", segment=segment) from exc

    return UnknownDirective(name=key, value=value)


def parse_command(text: str) -> ParsedCommand:
    """Split *text* into directives, skipping malformed segments."""
    stripped = text.strip()
    directives: list[Directive] = []
    malformed: list[str] = []
    for raw_segment in stripped.split(SEGMENT_SEPARATOR):
        segment = raw_segment.strip()
        if not segment:
            continue
        try:
            directives.append(parse_directive(segment))
        except MalformedDirectiveError as exc:
            _logger.debug("Skipping malformed directive: %s", exc)
            malformed.append(segment)
    return ParsedCommand(text=stripped, directives=tuple(directives), malformed=tuple(malformed))


def format_command(directives: Iterable[Directive]) -> str:
    """Serialise directives to wire text, e.g. ``ENGINE=ACC;HEATER=1;``."""
    return "".join(directive.to_wire() for directive in directives)

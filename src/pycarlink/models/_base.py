"""Base model, enum and wire coercions shared by pycarlink models.

Every model inherits from :class:`CarLinkBaseModel` which provides:

* frozen instances, so stores replace models instead of mutating them;
* ``populate_by_name`` so wire aliases (``batt``, ``seq``) and field
  names (``battery_mv``, ``sequence``) are both accepted.

Device firmware sends every value as a query-string token.  The
:data:`WireInt` and :data:`WireBool` annotated types coerce those tokens
the way the firmware expects the server to: anything that does not
parse as a number reads as ``0``.

Wire enums inherit from :class:`CarLinkStrEnum` which matches tokens
case-insensitively.
"""

from __future__ import annotations

import enum
import math
import re
from datetime import UTC, datetime
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict


_INT_PREFIX = re.compile(r"^\s*([+-]?\d+)")


def parse_wire_int(value: Any) -> int:
    """Coerce a wire token to ``int``.

    Reads the leading integer of the token (``"12.5"`` → ``12``,
    ``"40mV"`` → ``40``); blanks and garbage read as ``0``.
    """
    if value is None or isinstance(value, bool):
        return int(bool(value))
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return 0 if math.isnan(value) else int(value)
    match = _INT_PREFIX.match(str(value))
    if match is None:
        return 0
    return int(match.group(1))


def parse_wire_bool(value: Any) -> bool:
    """Coerce a wire token to ``bool`` (``"1"``, ``"on"``, ``"true"`` are truthy)."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in {"on", "true", "yes"}:
        return True
    return parse_wire_int(value) != 0


def parse_utc_datetime(value: Any) -> datetime | None:
    """Accept epoch seconds or datetimes; naive datetimes are taken as UTC."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo is not None else value.replace(tzinfo=UTC)
    try:
        return datetime.fromtimestamp(float(value), tz=UTC)
    except (OverflowError, OSError) as exc:
        raise ValueError(f"timestamp out of range: {value!r}") from exc


WireInt = Annotated[int, BeforeValidator(parse_wire_int)]
"""``int`` that reads unparsable wire tokens as ``0``."""

WireBool = Annotated[bool, BeforeValidator(parse_wire_bool)]
"""``bool`` parsed from ``0``/``1`` style wire tokens."""

UtcDatetime = Annotated[datetime | None, BeforeValidator(parse_utc_datetime)]
"""Timezone-aware UTC datetime, also accepting epoch seconds."""


class CarLinkStrEnum(enum.StrEnum):
    """Base for wire token enums.

    Tokens are matched case-insensitively and with surrounding
    whitespace ignored, so ``"ready "`` resolves to ``READY``.
    """

    @classmethod
    def _missing_(cls, value: object) -> CarLinkStrEnum | None:
        if isinstance(value, str):
            normalized = value.strip().upper()
            for member in cls:
                if member.value == normalized:
                    return member
        return None


class CarLinkBaseModel(BaseModel):
    """Base for pycarlink models."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
    )

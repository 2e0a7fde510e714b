"""Directive models.

A command travels as ``KEY=VALUE;`` text.  At the boundary it is parsed
(see :mod:`pycarlink.directives`) into a tuple of the typed directives
below, discriminated by ``kind``.  ``to_wire()`` turns a directive back
into its text segment.
"""

from __future__ import annotations

from typing import Annotated, ClassVar, Literal

from pydantic import Field

from pycarlink.models._base import CarLinkBaseModel, CarLinkStrEnum
from pycarlink.models.state import EngineMode


class DoorAction(CarLinkStrEnum):
    LOCK = "LOCK"
    UNLOCK = "UNLOCK"


def _join_ints(values: tuple[int, ...]) -> str:
    return ",".join(str(v) for v in values)


class _DirectiveBase(CarLinkBaseModel):
    KEY: ClassVar[str] = ""

    @property
    def key(self) -> str:
        return self.KEY

    def wire_value(self) -> str:
        raise NotImplementedError

    def to_wire(self) -> str:
        """Return the ``KEY=VALUE;`` segment for this directive."""
        return f"{self.key}={self.wire_value()};"


class EngineDirective(_DirectiveBase):
    """``ENGINE=OFF|ACC|IGN|READY``."""

    KEY: ClassVar[str] = "ENGINE"
    kind: Literal["engine"] = "engine"
    mode: EngineMode

    def wire_value(self) -> str:
        return self.mode.value


class HeaterDirective(_DirectiveBase):
    """``HEATER=0|1``."""

    KEY: ClassVar[str] = "HEATER"
    kind: Literal["heater"] = "heater"
    on: bool

    def wire_value(self) -> str:
        return "1" if self.on else "0"


class LevelDirective(_DirectiveBase):
    """``LEVEL=<n>``; the requested value is kept, clamping happens on apply."""

    KEY: ClassVar[str] = "LEVEL"
    kind: Literal["level"] = "level"
    level: int

    def wire_value(self) -> str:
        return str(self.level)


class DoorDirective(_DirectiveBase):
    """``DOOR=LOCK|UNLOCK``."""

    KEY: ClassVar[str] = "DOOR"
    kind: Literal["door"] = "door"
    action: DoorAction

    def wire_value(self) -> str:
        return self.action.value


class NoSleepDirective(_DirectiveBase):
    """``NOSLEEP=<seconds>``: keep the device awake for a while."""

    KEY: ClassVar[str] = "NOSLEEP"
    kind: Literal["nosleep"] = "nosleep"
    seconds: int = Field(ge=0)

    def wire_value(self) -> str:
        return str(self.seconds)


class PreheatDirective(_DirectiveBase):
    """``PREHEAT=<delay_s>,<duration_s>,<auto_ready>,<level>``.

    All-zero fields mean "cancel any armed or running preheat".
    """

    KEY: ClassVar[str] = "PREHEAT"
    kind: Literal["preheat"] = "preheat"
    delay_s: int = Field(ge=0)
    duration_s: int = Field(ge=0)
    auto_ready: bool = False
    level: int = Field(default=0, ge=0, le=9)

    @classmethod
    def cancel(cls) -> PreheatDirective:
        return cls(delay_s=0, duration_s=0, auto_ready=False, level=0)

    @property
    def is_cancel(self) -> bool:
        return self.delay_s == 0 and self.duration_s == 0

    def wire_value(self) -> str:
        return _join_ints((self.delay_s, self.duration_s, int(self.auto_ready), self.level))


class SleepDirective(_DirectiveBase):
    """``SLEEP=<n>[,<n>...]``: sleep-interval configuration pushed to the device."""

    KEY: ClassVar[str] = "SLEEP"
    kind: Literal["sleep"] = "sleep"
    values: tuple[int, ...] = Field(min_length=1)

    def wire_value(self) -> str:
        return _join_ints(self.values)


class CalibrationDirective(_DirectiveBase):
    """``CAL<name>=<n>[,<n>...]``, e.g. ``CALTANK=45000;``."""

    kind: Literal["calibration"] = "calibration"
    name: str = Field(pattern=r"^CAL[A-Z0-9_]*$")
    values: tuple[int, ...] = Field(min_length=1)

    @property
    def key(self) -> str:
        return self.name

    def wire_value(self) -> str:
        return _join_ints(self.values)


class RebootDirective(_DirectiveBase):
    """``REBOOT=1``."""

    KEY: ClassVar[str] = "REBOOT"
    kind: Literal["reboot"] = "reboot"
    value: str = "1"

    def wire_value(self) -> str:
        return self.value


class OtaDirective(_DirectiveBase):
    """``OTA=<token>``: trigger a firmware update check."""

    KEY: ClassVar[str] = "OTA"
    kind: Literal["ota"] = "ota"
    value: str = "1"

    def wire_value(self) -> str:
        return self.value


class UnknownDirective(_DirectiveBase):
    """Any other key; relayed to the device untouched."""

    kind: Literal["unknown"] = "unknown"
    name: str = Field(min_length=1)
    value: str = ""

    @property
    def key(self) -> str:
        return self.name

    def wire_value(self) -> str:
        return self.value


Directive = Annotated[
    EngineDirective
    | HeaterDirective
    | LevelDirective
    | DoorDirective
    | NoSleepDirective
    | PreheatDirective
    | SleepDirective
    | CalibrationDirective
    | RebootDirective
    | OtaDirective
    | UnknownDirective,
    Field(discriminator="kind"),
]
"""Closed set of directive kinds."""


class ParsedCommand(CarLinkBaseModel):
    """A command string split into typed directives.

    ``text`` is the wire form exactly as queued and delivered; an
    acknowledgment is matched against it.  ``malformed`` holds the
    segments the parser skipped.
    """

    text: str
    directives: tuple[Directive, ...] = ()
    malformed: tuple[str, ...] = ()

    def of_kind(self, kind: str) -> list[Directive]:
        return [d for d in self.directives if d.kind == kind]

    @property
    def has_preheat(self) -> bool:
        return any(d.kind == "preheat" for d in self.directives)

    @property
    def is_preheat_only(self) -> bool:
        """True when the command holds ``PREHEAT`` directives and nothing else."""
        return bool(self.directives) and not self.malformed and all(d.kind == "preheat" for d in self.directives)

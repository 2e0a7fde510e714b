"""Desired and actual device state models."""

from __future__ import annotations

import enum
from typing import Annotated, Any

from pydantic import BeforeValidator, Field

from pycarlink._constants import LEVEL_MAX, LEVEL_OFF
from pycarlink.models._base import CarLinkBaseModel, CarLinkStrEnum, UtcDatetime, WireBool, WireInt, parse_wire_int
from pycarlink.models.schedule import PreheatSchedule, SleepSchedule


class EngineMode(CarLinkStrEnum):
    """Ignition position driven by the controller."""

    OFF = "OFF"
    ACC = "ACC"
    IGN = "IGN"
    READY = "READY"


class PreheatState(enum.IntEnum):
    """Device-reported progress of a preheat routine (``ph`` telemetry field)."""

    UNKNOWN = -1
    IDLE = 0
    ARMED = 1
    RUNNING = 2

    @classmethod
    def _missing_(cls, value: object) -> PreheatState:
        return cls.UNKNOWN


def _parse_reported_engine(value: Any) -> EngineMode:
    """Missing or unknown engine tokens read as ``OFF``."""
    if isinstance(value, EngineMode):
        return value
    if value is None:
        return EngineMode.OFF
    try:
        return EngineMode(str(value))
    except ValueError:
        return EngineMode.OFF


def _parse_reported_level(value: Any) -> int:
    return max(LEVEL_OFF, min(LEVEL_MAX, parse_wire_int(value)))


def _parse_optional_int(value: Any) -> int | None:
    if value is None or value == "":
        return None
    return parse_wire_int(value)


def _parse_preheat_state(value: Any) -> PreheatState | None:
    parsed = _parse_optional_int(value)
    return None if parsed is None else PreheatState(parsed)


ReportedEngine = Annotated[EngineMode, BeforeValidator(_parse_reported_engine)]
ReportedLevel = Annotated[int, BeforeValidator(_parse_reported_level)]


class DesiredState(CarLinkBaseModel):
    """Last user-intended configuration.

    Only the directive parser changes it, through
    :func:`pycarlink.state.policy.apply_directive`.  Controls render this
    state for immediate feedback; it says nothing about what the device
    has actually done.
    """

    engine: EngineMode = EngineMode.OFF
    heater: bool = False
    level: int = Field(default=LEVEL_OFF, ge=LEVEL_OFF, le=LEVEL_MAX)


class TelemetryReport(CarLinkBaseModel):
    """One telemetry report, i.e. the device's actual state.

    Field aliases are the query parameter names the firmware sends
    (``batt``, ``tank``, ``cons``, ``seq``, ``ph``, ``ph_left``).
    Unparsable numbers read as ``0`` and a missing engine reads as
    ``OFF``, so a report is never rejected.

    A report always describes the whole device: the store replaces the
    previous report with it and never merges fields.
    """

    engine: ReportedEngine = EngineMode.OFF
    heater: WireBool = False
    level: ReportedLevel = LEVEL_OFF
    battery_mv: WireInt = Field(default=0, alias="batt")
    tank_ml: WireInt = Field(default=0, alias="tank")
    consumed_ml: WireInt = Field(default=0, alias="cons")
    sequence: WireInt = Field(default=0, alias="seq")
    preheat_state: Annotated[PreheatState | None, BeforeValidator(_parse_preheat_state)] = Field(
        default=None, alias="ph"
    )
    preheat_remaining_s: Annotated[int | None, BeforeValidator(_parse_optional_int)] = Field(
        default=None, alias="ph_left"
    )
    timestamp: UtcDatetime = None
    """Server receive time; set by the store, never taken from the device."""

    @property
    def battery_volts(self) -> float:
        return self.battery_mv / 1000.0


class StateSnapshot(CarLinkBaseModel):
    """Operator read model: desired next to actual state."""

    device: str
    desired: DesiredState
    actual: TelemetryReport | None = None
    online: bool = False
    age_s: float | None = None
    """Seconds since the last telemetry report, ``None`` before the first one."""
    queue_length: int = 0
    history_size: int = 0
    preheat: PreheatSchedule = Field(default_factory=PreheatSchedule)
    sleep: SleepSchedule = Field(default_factory=SleepSchedule)

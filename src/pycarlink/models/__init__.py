"""Pydantic models for directives, device state, history and schedules."""

from pycarlink.models._base import CarLinkBaseModel, CarLinkStrEnum
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
from pycarlink.models.history import CommandStatus, HistoryEntry
from pycarlink.models.schedule import PreheatSchedule, SleepSchedule
from pycarlink.models.state import DesiredState, EngineMode, PreheatState, StateSnapshot, TelemetryReport

__all__ = [
    "CalibrationDirective",
    "CarLinkBaseModel",
    "CarLinkStrEnum",
    "CommandStatus",
    "DesiredState",
    "Directive",
    "DoorAction",
    "DoorDirective",
    "EngineDirective",
    "EngineMode",
    "HeaterDirective",
    "HistoryEntry",
    "LevelDirective",
    "NoSleepDirective",
    "OtaDirective",
    "ParsedCommand",
    "PreheatDirective",
    "PreheatSchedule",
    "PreheatState",
    "RebootDirective",
    "SleepDirective",
    "SleepSchedule",
    "StateSnapshot",
    "TelemetryReport",
    "UnknownDirective",
]

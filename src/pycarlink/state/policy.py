"""Deterministic state policy.

Pure functions only: how a directive changes the desired state, and
whether a device counts as online.  No parsing happens here; callers
pass already-typed directives and timestamps.
"""

from __future__ import annotations

from datetime import datetime

from pycarlink._constants import LEVEL_OFF, clamp_level
from pycarlink.models.directives import Directive, EngineDirective, HeaterDirective, LevelDirective
from pycarlink.models.state import DesiredState


def apply_directive(desired: DesiredState, directive: Directive) -> DesiredState:
    """Return *desired* updated by one directive.

    Only ``ENGINE``, ``HEATER`` and ``LEVEL`` touch the desired state:

    - ``HEATER=0`` turns the heater off and forces the level to 0.
    - ``HEATER=1`` turns it on; a level of 0 becomes 1.
    - ``LEVEL=n`` clamps n into 1-9 and turns the heater on.
    """
    if isinstance(directive, EngineDirective):
        return desired.model_copy(update={"engine": directive.mode})
    if isinstance(directive, HeaterDirective):
        if not directive.on:
            return desired.model_copy(update={"heater": False, "level": LEVEL_OFF})
        return desired.model_copy(update={"heater": True, "level": clamp_level(desired.level)})
    if isinstance(directive, LevelDirective):
        return desired.model_copy(update={"heater": True, "level": clamp_level(directive.level)})
    return desired


def telemetry_age_s(now: datetime, last_seen: datetime | None) -> float | None:
    if last_seen is None:
        return None
    return (now - last_seen).total_seconds()


def is_online(now: datetime, last_seen: datetime | None, timeout_s: float) -> bool:
    """A device is online while its last report is younger than *timeout_s*.

    A device that never reported is offline.
    """
    age = telemetry_age_s(now, last_seen)
    if age is None:
        return False
    return age < timeout_s

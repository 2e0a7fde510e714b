"""Preheat and sleep schedule models."""

from __future__ import annotations

from pydantic import Field, model_validator

from pycarlink import _constants as const
from pycarlink.models._base import CarLinkBaseModel, WireBool, WireInt


class PreheatSchedule(CarLinkBaseModel):
    """One-shot "warm up before driving" configuration.

    ``hour``/``minute`` are wall-clock time in the device's local frame,
    resolved through the geolocation time cache when the schedule is
    armed.
    """

    enabled: WireBool = False
    hour: int = Field(default=7, ge=0, le=23)
    minute: int = Field(default=0, ge=0, le=59)
    heater_level: int = Field(default=5, ge=const.LEVEL_MIN, le=const.LEVEL_MAX)
    preheat_duration_s: int = Field(default=900, ge=0)
    auto_ready: WireBool = False
    """Put the engine in READY once the warm-up completes."""

    @model_validator(mode="after")
    def _require_duration_when_enabled(self) -> PreheatSchedule:
        if self.enabled and self.preheat_duration_s <= 0:
            raise ValueError("preheat_duration_s must be positive when the schedule is enabled")
        return self


class SleepSchedule(CarLinkBaseModel):
    """Sleep-interval tuple fetched by the device.

    Serialised on the wire as ``SLEEP=<awake_poll_s>,<sleep_poll_s>,<idle_before_sleep_s>;``.
    """

    awake_poll_s: WireInt = Field(default=const.SLEEP_AWAKE_POLL_S, ge=1)
    """Poll interval while the device is awake."""
    sleep_poll_s: WireInt = Field(default=const.SLEEP_POLL_S, ge=1)
    """Wake-up interval while the device is sleeping."""
    idle_before_sleep_s: WireInt = Field(default=const.SLEEP_IDLE_S, ge=0)
    """Idle time before the device goes back to sleep."""

    def as_tuple(self) -> tuple[int, int, int]:
        return (self.awake_poll_s, self.sleep_poll_s, self.idle_before_sleep_s)

"""One-shot preheat scheduling.

The server never runs a timer for preheat.  When the operator enables
the schedule it computes, once, how many seconds remain until the
configured local start time and sends that delay to the device in a
single ``PREHEAT`` directive; from then on the device owns the
countdown.  Disabling sends an all-zero ``PREHEAT`` directive, which
the device treats as "cancel whatever is armed or running".
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from pycarlink.models.directives import PreheatDirective
from pycarlink.models.schedule import PreheatSchedule

_logger = logging.getLogger(__name__)


def compute_preheat_delay(now_utc: datetime, offset_s: int, hour: int, minute: int) -> int:
    """Seconds from now until the next local *hour*:*minute*.

    ``now_utc + offset_s`` is the device's local time.  A start time
    that is not strictly in the future today rolls over to tomorrow, so
    the result never exceeds one day.
    """
    now_local = now_utc + timedelta(seconds=offset_s)
    target = now_local.replace(hour=hour, minute=minute, second=0, microsecond=0)
    if target <= now_local:
        target += timedelta(days=1)
    return max(0, int((target - now_local).total_seconds()))


class PreheatScheduler:
    """Holds one device's preheat schedule and turns changes into directives.

    The scheduler only tracks the configuration.  Whether a warm-up is
    armed or running is reported by the device in telemetry.
    """

    def __init__(self, schedule: PreheatSchedule | None = None) -> None:
        self._schedule = schedule or PreheatSchedule()

    @property
    def schedule(self) -> PreheatSchedule:
        return self._schedule

    def plan(self, schedule: PreheatSchedule, now_utc: datetime, offset_s: int) -> PreheatDirective:
        """Store *schedule* and return the directive that applies it.

        Enabled schedules produce an arming directive with a freshly
        computed delay; disabled ones produce the cancel directive.
        """
        self._schedule = schedule
        if not schedule.enabled:
            _logger.debug("Preheat disabled; sending cancel")
            return PreheatDirective.cancel()

        delay_s = compute_preheat_delay(now_utc, offset_s, schedule.hour, schedule.minute)
        _logger.debug(
            "Preheat armed for %02d:%02d (offset %ds): starts in %ds for %ds",
            schedule.hour,
            schedule.minute,
            offset_s,
            delay_s,
            schedule.preheat_duration_s,
        )
        return PreheatDirective(
            delay_s=delay_s,
            duration_s=schedule.preheat_duration_s,
            auto_ready=schedule.auto_ready,
            level=schedule.heater_level,
        )

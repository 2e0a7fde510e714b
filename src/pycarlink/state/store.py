"""Desired-state and actual-state stores."""

from __future__ import annotations

from datetime import datetime

from pycarlink.models.directives import ParsedCommand
from pycarlink.models.state import DesiredState, TelemetryReport
from pycarlink.state.policy import apply_directive


class DesiredStateStore:
    """Holds the last user-intended engine/heater/level configuration."""

    def __init__(self) -> None:
        self._state = DesiredState()

    @property
    def state(self) -> DesiredState:
        return self._state

    def apply(self, command: ParsedCommand) -> DesiredState:
        """Apply each directive of *command* in order and return the result."""
        state = self._state
        for directive in command.directives:
            state = apply_directive(state, directive)
        self._state = state
        return state


class ActualStateStore:
    """Holds the last telemetry report.

    Last write wins: a new report replaces the previous one wholesale.
    Fields missing from a report are *not* carried over from the older
    one, since the firmware always sends its complete state.
    """

    def __init__(self) -> None:
        self._report: TelemetryReport | None = None

    @property
    def report(self) -> TelemetryReport | None:
        return self._report

    @property
    def last_seen(self) -> datetime | None:
        return self._report.timestamp if self._report is not None else None

    def replace(self, report: TelemetryReport, received_at: datetime) -> TelemetryReport:
        self._report = report.model_copy(update={"timestamp": received_at})
        return self._report

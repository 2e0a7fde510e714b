"""Command delivery and state reconciliation for polling devices.

:class:`Coordinator` owns one :class:`DeviceChannel` per device id.
Each channel has its own command queue, history ledger, desired and
actual state, schedules and geolocation cache.  One coordinator-wide
lock guards every store; critical sections are short and never await.

Typical flow::

    coordinator.enqueue("ENGINE=ACC;")        # operator
    coordinator.dequeue()                     # device poll -> "ENGINE=ACC;"
    coordinator.acknowledge("ENGINE=ACC;", "OK")
    coordinator.report_telemetry({"engine": "ACC", "batt": "12600"})
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from pycarlink._constants import DEFAULT_DEVICE_ID, NONE_SENTINEL
from pycarlink.config import CarLinkConfig
from pycarlink.directives import parse_command
from pycarlink.exceptions import InvalidParameterError, MissingParameterError
from pycarlink.geo import GeoLookup, GeoTimeCache
from pycarlink.models.directives import ParsedCommand, PreheatDirective
from pycarlink.models.history import CommandStatus, HistoryEntry
from pycarlink.models.schedule import PreheatSchedule, SleepSchedule
from pycarlink.models.state import DesiredState, StateSnapshot, TelemetryReport
from pycarlink.scheduler import PreheatScheduler
from pycarlink.state.history import HistoryLedger
from pycarlink.state.policy import is_online, telemetry_age_s
from pycarlink.state.queue import CommandQueue, QueuedCommand
from pycarlink.state.store import ActualStateStore, DesiredStateStore

_logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _normalize_device(device: str | None) -> str:
    value = (device or "").strip()
    return value or DEFAULT_DEVICE_ID


def parse_ack_status(status: str | CommandStatus | None) -> CommandStatus:
    """Map a device status token to a terminal status; blank means ``OK``."""
    if isinstance(status, CommandStatus):
        parsed = status
    elif status is None or not status.strip():
        return CommandStatus.OK
    else:
        try:
            parsed = CommandStatus(status)
        except ValueError as exc:
            raise InvalidParameterError(f"Unknown status {status!r}", parameter="status") from exc
    if not parsed.is_terminal:
        raise InvalidParameterError(f"Status {parsed} cannot acknowledge a command", parameter="status")
    return parsed


@dataclass
class DeviceChannel:
    """Everything the coordinator knows about one device."""

    device: str
    queue: CommandQueue
    history: HistoryLedger
    geo: GeoTimeCache
    desired: DesiredStateStore = field(default_factory=DesiredStateStore)
    actual: ActualStateStore = field(default_factory=ActualStateStore)
    preheat: PreheatScheduler = field(default_factory=PreheatScheduler)
    sleep: SleepSchedule = field(default_factory=SleepSchedule)
    last_address: str | None = None


class Coordinator:
    """Server side of the polling protocol.

    Parameters
    ----------
    config
        Service configuration (history size, liveness timeout, geo
        cache tuning, default sleep schedule).
    clock
        Returns the current UTC time.  Tests inject a fixed clock.
    geo_lookup
        External address-to-offset lookup shared by all devices.
        ``None`` pins every device to ``config.default_utc_offset_s``.
    """

    def __init__(
        self,
        config: CarLinkConfig,
        *,
        clock: Callable[[], datetime] = _utcnow,
        geo_lookup: GeoLookup | None = None,
    ) -> None:
        self._config = config
        self._clock = clock
        self._geo_lookup = geo_lookup if config.geo_enabled else None
        self._lock = threading.Lock()
        self._channels: dict[str, DeviceChannel] = {}

    @property
    def config(self) -> CarLinkConfig:
        return self._config

    def now(self) -> datetime:
        return self._clock()

    def devices(self) -> list[str]:
        with self._lock:
            return sorted(self._channels)

    def _channel(self, device: str | None) -> DeviceChannel:
        """Return the channel for *device*, creating it on first use.  Caller holds the lock."""
        device_id = _normalize_device(device)
        channel = self._channels.get(device_id)
        if channel is None:
            config = self._config
            channel = DeviceChannel(
                device=device_id,
                queue=CommandQueue(),
                history=HistoryLedger(config.history_size),
                geo=GeoTimeCache(
                    self._geo_lookup,
                    clock=self._clock,
                    refresh_interval_s=config.geo_refresh_interval_s,
                    retry_interval_s=config.geo_retry_interval_s,
                    timeout_s=config.geo_lookup_timeout_s,
                    default_offset_s=config.default_utc_offset_s,
                ),
                sleep=SleepSchedule(
                    awake_poll_s=config.sleep_awake_poll_s,
                    sleep_poll_s=config.sleep_poll_s,
                    idle_before_sleep_s=config.sleep_idle_s,
                ),
            )
            self._channels[device_id] = channel
        return channel

    # ------------------------------------------------------------------
    # Command queue
    # ------------------------------------------------------------------

    def _enqueue_locked(self, channel: DeviceChannel, command: ParsedCommand) -> HistoryEntry:
        now = self._clock()
        channel.queue.enqueue(QueuedCommand(command=command, enqueued_at=now))
        entry = channel.history.record(HistoryEntry(command=command.text, timestamp=now))
        channel.desired.apply(command)
        if command.malformed:
            _logger.info(
                "Queued %r for %s; %d malformed segment(s) left for the device: %s",
                command.text,
                channel.device,
                len(command.malformed),
                ", ".join(command.malformed),
            )
        else:
            _logger.info("Queued %r for %s", command.text, channel.device)
        return entry

    def enqueue(self, command: str | None, *, device: str | None = None) -> HistoryEntry:
        """Queue *command* for delivery and return its ``QUEUED`` history entry.

        The text is queued as given.  Its ``ENGINE``/``HEATER``/``LEVEL``
        directives update the desired state immediately; malformed
        segments are skipped for that purpose only.

        Raises
        ------
        MissingParameterError
            *command* is empty.  Nothing is queued or recorded.
        """
        if command is None or not command.strip():
            raise MissingParameterError("Missing cmd parameter", parameter="cmd")
        parsed = parse_command(command)
        with self._lock:
            return self._enqueue_locked(self._channel(device), parsed)

    def dequeue(self, *, device: str | None = None) -> str:
        """Deliver the oldest queued command, or ``"NONE"``.

        Each queued command is handed to exactly one poll.
        """
        with self._lock:
            channel = self._channel(device)
            entry = channel.queue.dequeue()
        if entry is None:
            return NONE_SENTINEL
        _logger.info("Delivered %r to %s", entry.text, channel.device)
        return entry.text

    def pending_commands(self, *, device: str | None = None) -> list[str]:
        with self._lock:
            return [entry.text for entry in self._channel(device).queue.pending()]

    def queue_length(self, *, device: str | None = None) -> int:
        with self._lock:
            return len(self._channel(device).queue)

    def clear_queue(self, *, device: str | None = None) -> int:
        """Drop every queued command.  History is left as is."""
        with self._lock:
            channel = self._channel(device)
            count = channel.queue.clear()
        _logger.info("Cleared %d queued command(s) for %s", count, channel.device)
        return count

    # ------------------------------------------------------------------
    # History / acknowledgments
    # ------------------------------------------------------------------

    def acknowledge(
        self,
        command: str | None,
        status: str | CommandStatus | None = None,
        *,
        device: str | None = None,
    ) -> HistoryEntry | None:
        """Record the device's result for a delivered command.

        ``"NONE"`` (and blank) acknowledgments are ignored and return
        ``None``.  Otherwise the oldest matching ``QUEUED`` entry is
        resolved, or a resolved entry is appended if none matches.

        Raises
        ------
        InvalidParameterError
            *status* is not ``OK``, ``ERROR`` or ``SCHEDULED``.
        """
        text = (command or "").strip()
        if not text or text.upper() == NONE_SENTINEL:
            return None
        resolved_status = parse_ack_status(status)
        with self._lock:
            channel = self._channel(device)
            entry = channel.history.acknowledge(text, resolved_status, self._clock())
        _logger.info("Ack from %s: %r -> %s", channel.device, text, entry.status)
        return entry

    def history(self, *, device: str | None = None) -> list[HistoryEntry]:
        with self._lock:
            return self._channel(device).history.entries()

    def clear_history(self, *, device: str | None = None) -> int:
        with self._lock:
            channel = self._channel(device)
            count = channel.history.clear()
        _logger.info("Cleared %d history entries for %s", count, channel.device)
        return count

    # ------------------------------------------------------------------
    # State reconciliation
    # ------------------------------------------------------------------

    def report_telemetry(
        self,
        fields: Mapping[str, Any] | TelemetryReport,
        *,
        device: str | None = None,
        address: str | None = None,
    ) -> TelemetryReport:
        """Replace the device's actual state with a new report.

        The report is stamped with the coordinator clock; a device-sent
        ``timestamp`` is ignored.  *address* is the network address the
        report came from; it drives the geolocation cache.
        """
        if isinstance(fields, TelemetryReport):
            report = fields
        else:
            report = TelemetryReport.model_validate({k: v for k, v in fields.items() if k != "timestamp"})
        with self._lock:
            channel = self._channel(device)
            stored = channel.actual.replace(report, self._clock())
            if address:
                channel.last_address = address
        _logger.debug(
            "Telemetry from %s: engine=%s heater=%s level=%d batt=%dmV seq=%d",
            channel.device,
            stored.engine,
            int(stored.heater),
            stored.level,
            stored.battery_mv,
            stored.sequence,
        )
        return stored

    def desired_state(self, *, device: str | None = None) -> DesiredState:
        with self._lock:
            return self._channel(device).desired.state

    def actual_state(self, *, device: str | None = None) -> TelemetryReport | None:
        with self._lock:
            return self._channel(device).actual.report

    def is_online(self, *, device: str | None = None) -> bool:
        with self._lock:
            last_seen = self._channel(device).actual.last_seen
        return is_online(self._clock(), last_seen, self._config.online_timeout_s)

    def snapshot(self, *, device: str | None = None) -> StateSnapshot:
        """Desired and actual state side by side, plus liveness."""
        now = self._clock()
        with self._lock:
            channel = self._channel(device)
            actual = channel.actual.report
            last_seen = channel.actual.last_seen
            return StateSnapshot(
                device=channel.device,
                desired=channel.desired.state,
                actual=actual,
                online=is_online(now, last_seen, self._config.online_timeout_s),
                age_s=telemetry_age_s(now, last_seen),
                queue_length=len(channel.queue),
                history_size=len(channel.history),
                preheat=channel.preheat.schedule,
                sleep=channel.sleep,
            )

    # ------------------------------------------------------------------
    # Schedules
    # ------------------------------------------------------------------

    def preheat_schedule(self, *, device: str | None = None) -> PreheatSchedule:
        with self._lock:
            return self._channel(device).preheat.schedule

    async def set_preheat_schedule(self, schedule: PreheatSchedule, *, device: str | None = None) -> PreheatDirective:
        """Apply a new preheat schedule and queue the matching directive.

        Queued commands made only of ``PREHEAT`` directives are withdrawn
        first, so at most one schedule directive is pending.  Commands
        that mix ``PREHEAT`` with other directives stay queued.  Withdrawn
        commands keep their ``QUEUED`` history entries, since the device
        never received them.

        Enabling queues a directive with the delay until the next local
        start time; disabling queues the all-zero cancel directive.  The
        delay is computed here, once.
        """
        with self._lock:
            channel = self._channel(device)
            address = channel.last_address
        offset_s = await channel.geo.resolve_offset(address) if schedule.enabled else channel.geo.offset_seconds

        with self._lock:
            directive = channel.preheat.plan(schedule, self._clock(), offset_s)
            withdrawn = channel.queue.remove_where(lambda entry: entry.command.is_preheat_only)
            command = ParsedCommand(text=directive.to_wire(), directives=(directive,))
            self._enqueue_locked(channel, command)
        for entry in withdrawn:
            _logger.info("Withdrew undelivered %r for %s", entry.text, channel.device)
        return directive

    def sleep_schedule(self, *, device: str | None = None) -> SleepSchedule:
        with self._lock:
            return self._channel(device).sleep

    def set_sleep_schedule(self, schedule: SleepSchedule, *, device: str | None = None) -> SleepSchedule:
        """Replace the sleep-interval tuple the device fetches on its next poll."""
        with self._lock:
            channel = self._channel(device)
            channel.sleep = schedule
        _logger.info("Sleep schedule for %s set to %s", channel.device, schedule.as_tuple())
        return schedule

    # ------------------------------------------------------------------
    # Geolocation
    # ------------------------------------------------------------------

    def utc_offset(self, *, device: str | None = None) -> int:
        """Cached UTC offset for the device; never blocks."""
        with self._lock:
            return self._channel(device).geo.offset_seconds

    def refresh_geo_in_background(self, *, device: str | None = None) -> asyncio.Task[int] | None:
        """Start a lookup for the device's last address if its cache is stale."""
        with self._lock:
            channel = self._channel(device)
            address = channel.last_address
        return channel.geo.refresh_in_background(address)

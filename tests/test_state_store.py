from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest
from pydantic import ValidationError

from pycarlink.config import CarLinkConfig
from pycarlink.coordinator import Coordinator
from pycarlink.directives import parse_command
from pycarlink.models.state import DesiredState, EngineMode, PreheatState, TelemetryReport
from pycarlink.state.policy import apply_directive, is_online
from pycarlink.state.store import ActualStateStore, DesiredStateStore


class _Clock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


def _dt() -> datetime:
    return datetime(2026, 1, 1, tzinfo=UTC)


def _coordinator(clock: _Clock) -> Coordinator:
    return Coordinator(CarLinkConfig(shared_secret="s3cret", geo_enabled=False), clock=clock)


# ------------------------------------------------------------------
# Desired state
# ------------------------------------------------------------------


def test_heater_off_forces_level_zero() -> None:
    store = DesiredStateStore()
    store.apply(parse_command("HEATER=1;LEVEL=7;"))

    state = store.apply(parse_command("HEATER=0;"))

    assert state == DesiredState(engine=EngineMode.OFF, heater=False, level=0)


def test_level_while_heater_off_turns_heater_on() -> None:
    store = DesiredStateStore()

    state = store.apply(parse_command("LEVEL=5;"))

    assert state.heater is True
    assert state.level == 5


@pytest.mark.parametrize(("requested", "expected"), [(0, 1), (-3, 1), (9, 9), (12, 9)])
def test_level_is_clamped(requested: int, expected: int) -> None:
    state = apply_directive(DesiredState(), parse_command(f"LEVEL={requested};").directives[0])
    assert state.level == expected


def test_heater_on_without_level_starts_at_level_one() -> None:
    store = DesiredStateStore()
    assert store.apply(parse_command("HEATER=1;")).level == 1


def test_directives_apply_in_order() -> None:
    store = DesiredStateStore()
    assert store.apply(parse_command("LEVEL=6;HEATER=0;")).level == 0
    assert store.apply(parse_command("HEATER=0;LEVEL=6;")).level == 6


def test_other_directives_never_touch_desired_state() -> None:
    store = DesiredStateStore()
    before = store.state

    store.apply(parse_command("DOOR=LOCK;CALTANK=45000;SLEEP=5,300,600;REBOOT=1;OTA=1;PREHEAT=60,900,1,9;"))

    assert store.state == before


def test_enqueue_updates_desired_state_immediately() -> None:
    coordinator = _coordinator(_Clock(_dt()))

    coordinator.enqueue("ENGINE=READY;LEVEL=4;")

    assert coordinator.desired_state() == DesiredState(engine=EngineMode.READY, heater=True, level=4)
    assert coordinator.actual_state() is None


# ------------------------------------------------------------------
# Actual state
# ------------------------------------------------------------------


def test_telemetry_parses_wire_aliases() -> None:
    report = TelemetryReport.model_validate(
        {
            "engine": "ready",
            "heater": "1",
            "level": "6",
            "batt": "12650",
            "tank": "41000",
            "cons": "350",
            "seq": "17",
            "ph": "2",
            "ph_left": "540",
        }
    )

    assert report.engine is EngineMode.READY
    assert report.heater is True
    assert report.level == 6
    assert report.battery_mv == 12650
    assert report.battery_volts == pytest.approx(12.65)
    assert report.tank_ml == 41000
    assert report.consumed_ml == 350
    assert report.sequence == 17
    assert report.preheat_state is PreheatState.RUNNING
    assert report.preheat_remaining_s == 540


def test_telemetry_reads_missing_and_garbage_fields_as_defaults() -> None:
    report = TelemetryReport.model_validate({"engine": "WARP", "batt": "abc", "level": "42", "seq": "7x"})

    assert report.engine is EngineMode.OFF
    assert report.battery_mv == 0
    assert report.level == 9
    assert report.sequence == 7
    assert report.preheat_state is None
    assert report.preheat_remaining_s is None


def test_telemetry_replaces_previous_report_wholesale() -> None:
    store = ActualStateStore()
    store.replace(TelemetryReport.model_validate({"engine": "ACC", "batt": "12000", "ph": "1"}), _dt())

    report = store.replace(TelemetryReport.model_validate({"engine": "IGN"}), _dt() + timedelta(seconds=30))

    assert report.engine is EngineMode.IGN
    assert report.battery_mv == 0
    assert report.preheat_state is None
    assert report.timestamp == _dt() + timedelta(seconds=30)


def test_report_telemetry_stamps_server_time() -> None:
    clock = _Clock(_dt())
    coordinator = _coordinator(clock)

    report = coordinator.report_telemetry({"engine": "ACC", "timestamp": "0"})

    assert report.timestamp == _dt()
    assert coordinator.actual_state() == report


# ------------------------------------------------------------------
# Liveness
# ------------------------------------------------------------------


def test_is_online_threshold() -> None:
    now = _dt()
    assert is_online(now, now, 120.0)
    assert is_online(now, now - timedelta(seconds=119), 120.0)
    assert not is_online(now, now - timedelta(seconds=120), 120.0)
    assert not is_online(now, now - timedelta(seconds=200), 120.0)
    assert not is_online(now, None, 120.0)


def test_coordinator_liveness_follows_telemetry_recency() -> None:
    clock = _Clock(_dt())
    coordinator = _coordinator(clock)
    assert not coordinator.is_online()

    coordinator.report_telemetry({"engine": "OFF"})
    assert coordinator.is_online()

    clock.advance(200)
    assert not coordinator.is_online()


def test_snapshot_combines_desired_and_actual() -> None:
    clock = _Clock(_dt())
    coordinator = _coordinator(clock)
    coordinator.enqueue("HEATER=1;LEVEL=3;")
    coordinator.report_telemetry({"engine": "ACC", "heater": "0", "level": "0"})
    clock.advance(15)

    snapshot = coordinator.snapshot()

    assert snapshot.device == "default"
    assert snapshot.desired.heater is True
    assert snapshot.actual is not None
    assert snapshot.actual.heater is False
    assert snapshot.online is True
    assert snapshot.age_s == pytest.approx(15.0)
    assert snapshot.queue_length == 1
    assert snapshot.history_size == 1


@pytest.mark.parametrize("value", ["abc", 1e20, "-1e20"])
def test_out_of_range_or_garbage_timestamp_is_a_validation_error(value: object) -> None:
    with pytest.raises(ValidationError):
        TelemetryReport.model_validate({"timestamp": value})


def test_report_telemetry_drops_device_timestamp_before_validation() -> None:
    coordinator = _coordinator(_Clock(_dt()))

    report = coordinator.report_telemetry({"engine": "IGN", "timestamp": "1e20"})

    assert report.engine is EngineMode.IGN
    assert report.timestamp == _dt()

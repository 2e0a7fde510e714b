from __future__ import annotations

import pytest

from pycarlink.directives import format_command, parse_command, parse_directive
from pycarlink.exceptions import MalformedDirectiveError
from pycarlink.models.directives import (
    CalibrationDirective,
    DoorAction,
    DoorDirective,
    EngineDirective,
    HeaterDirective,
    LevelDirective,
    NoSleepDirective,
    OtaDirective,
    PreheatDirective,
    RebootDirective,
    SleepDirective,
    UnknownDirective,
)
from pycarlink.models.state import EngineMode


def test_parse_command_builds_typed_directives_in_order() -> None:
    parsed = parse_command("ENGINE=READY;HEATER=1;LEVEL=5;DOOR=LOCK;NOSLEEP=600;")

    assert parsed.text == "ENGINE=READY;HEATER=1;LEVEL=5;DOOR=LOCK;NOSLEEP=600;"
    assert parsed.malformed == ()
    assert parsed.directives == (
        EngineDirective(mode=EngineMode.READY),
        HeaterDirective(on=True),
        LevelDirective(level=5),
        DoorDirective(action=DoorAction.LOCK),
        NoSleepDirective(seconds=600),
    )


def test_parse_command_tolerates_empty_and_trailing_segments() -> None:
    parsed = parse_command("  ;;ENGINE=ACC;;  ; ")

    assert parsed.directives == (EngineDirective(mode=EngineMode.ACC),)
    assert parsed.malformed == ()


def test_parse_command_without_trailing_separator() -> None:
    parsed = parse_command("HEATER=0")
    assert parsed.directives == (HeaterDirective(on=False),)


def test_malformed_segment_is_skipped_and_rest_applied() -> None:
    parsed = parse_command("ENGINE=WARP;GARBAGE;LEVEL=abc;=5;HEATER=1;")

    assert parsed.directives == (HeaterDirective(on=True),)
    assert parsed.malformed == ("ENGINE=WARP", "GARBAGE", "LEVEL=abc", "=5")


def test_keys_and_enum_values_are_case_insensitive() -> None:
    parsed = parse_command("engine=ready;door=unlock;")
    assert parsed.directives == (
        EngineDirective(mode=EngineMode.READY),
        DoorDirective(action=DoorAction.UNLOCK),
    )


def test_preheat_tuple_is_parsed() -> None:
    directive = parse_directive("PREHEAT=120,180,1,5")

    assert directive == PreheatDirective(delay_s=120, duration_s=180, auto_ready=True, level=5)
    assert not directive.is_cancel


@pytest.mark.parametrize("segment", ["PREHEAT=1,2,3", "PREHEAT=1,2,2,5", "PREHEAT=1,x,0,5", "PREHEAT=-1,0,0,0"])
def test_invalid_preheat_tuple_is_malformed(segment: str) -> None:
    with pytest.raises(MalformedDirectiveError) as excinfo:
        parse_directive(segment)
    assert excinfo.value.segment == segment


def test_sleep_calibration_and_maintenance_directives() -> None:
    parsed = parse_command("SLEEP=5,300,600;CALTANK=45000;CALBATT=12,6;REBOOT=1;OTA=1;")

    assert parsed.directives == (
        SleepDirective(values=(5, 300, 600)),
        CalibrationDirective(name="CALTANK", values=(45000,)),
        CalibrationDirective(name="CALBATT", values=(12, 6)),
        RebootDirective(value="1"),
        OtaDirective(value="1"),
    )


def test_unknown_keys_are_relayed_untouched() -> None:
    parsed = parse_command("HORN=2;")
    assert parsed.directives == (UnknownDirective(name="HORN", value="2"),)
    assert format_command(parsed.directives) == "HORN=2;"


def test_heater_rejects_values_other_than_on_off() -> None:
    with pytest.raises(MalformedDirectiveError):
        parse_directive("HEATER=2")


def test_format_command_round_trips_wire_text() -> None:
    text = "ENGINE=ACC;HEATER=1;LEVEL=7;PREHEAT=32400,900,0,5;"
    assert format_command(parse_command(text).directives) == text


def test_preheat_cancel_is_all_zero() -> None:
    cancel = PreheatDirective.cancel()
    assert cancel.is_cancel
    assert cancel.to_wire() == "PREHEAT=0,0,0,0;"


def test_has_preheat() -> None:
    assert parse_command("PREHEAT=0,0,0,0;").has_preheat
    assert not parse_command("ENGINE=OFF;").has_preheat

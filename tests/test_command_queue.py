from __future__ import annotations

import threading
from datetime import UTC, datetime, timedelta

import pytest

from pycarlink.config import CarLinkConfig
from pycarlink.coordinator import Coordinator
from pycarlink.directives import parse_command
from pycarlink.exceptions import MissingParameterError
from pycarlink.models.history import CommandStatus
from pycarlink.state.queue import CommandQueue, QueuedCommand


class _Clock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


def _coordinator(**overrides: object) -> Coordinator:
    config = CarLinkConfig(shared_secret="s3cret", geo_enabled=False, **overrides)  # type: ignore[arg-type]
    return Coordinator(config, clock=_Clock(datetime(2026, 1, 1, 12, 0, tzinfo=UTC)))


def test_dequeue_order_matches_enqueue_order_and_each_command_is_delivered_once() -> None:
    coordinator = _coordinator()
    commands = [f"NOSLEEP={n};" for n in range(1, 11)] + ["ENGINE=ACC;", "ENGINE=ACC;", "DOOR=LOCK;"]

    for command in commands:
        coordinator.enqueue(command)
    delivered = [coordinator.dequeue() for _ in commands]

    assert delivered == commands
    assert coordinator.dequeue() == "NONE"
    assert coordinator.queue_length() == 0


def test_dequeue_on_empty_queue_returns_none_and_leaves_history_unchanged() -> None:
    coordinator = _coordinator()
    coordinator.enqueue("ENGINE=ACC;")
    coordinator.dequeue()
    before = coordinator.history()

    assert coordinator.dequeue() == "NONE"
    assert coordinator.history() == before


@pytest.mark.parametrize("command", [None, "", "   "])
def test_enqueue_rejects_empty_command_without_mutating_state(command: str | None) -> None:
    coordinator = _coordinator()

    with pytest.raises(MissingParameterError) as excinfo:
        coordinator.enqueue(command)

    assert excinfo.value.parameter == "cmd"
    assert coordinator.queue_length() == 0
    assert coordinator.history() == []


def test_enqueue_records_queued_history_entry() -> None:
    coordinator = _coordinator()

    entry = coordinator.enqueue("ENGINE=IGN;")

    assert entry.command == "ENGINE=IGN;"
    assert entry.status is CommandStatus.QUEUED
    assert coordinator.history() == [entry]


def test_malformed_command_text_is_still_queued_untouched() -> None:
    coordinator = _coordinator()

    coordinator.enqueue("ENGINE=WARP;LEVEL=3;")

    assert coordinator.dequeue() == "ENGINE=WARP;LEVEL=3;"
    assert coordinator.desired_state().level == 3


def test_clear_queue_keeps_history() -> None:
    coordinator = _coordinator()
    coordinator.enqueue("ENGINE=ACC;")
    coordinator.enqueue("ENGINE=OFF;")

    assert coordinator.clear_queue() == 2
    assert coordinator.dequeue() == "NONE"
    assert len(coordinator.history()) == 2


def test_devices_have_independent_queues() -> None:
    coordinator = _coordinator()
    coordinator.enqueue("ENGINE=ACC;", device="car-a")
    coordinator.enqueue("ENGINE=READY;", device="car-b")

    assert coordinator.dequeue(device="car-b") == "ENGINE=READY;"
    assert coordinator.dequeue(device="car-b") == "NONE"
    assert coordinator.dequeue(device="car-a") == "ENGINE=ACC;"
    assert coordinator.dequeue() == "NONE"
    assert coordinator.devices() == ["car-a", "car-b", "default"]


def test_blank_device_id_maps_to_default_channel() -> None:
    coordinator = _coordinator()
    coordinator.enqueue("ENGINE=ACC;", device="  ")
    assert coordinator.dequeue() == "ENGINE=ACC;"


def test_concurrent_pollers_never_receive_the_same_command() -> None:
    coordinator = _coordinator()
    commands = [f"NOSLEEP={n};" for n in range(500)]
    for command in commands:
        coordinator.enqueue(command)

    delivered: list[str] = []
    delivered_lock = threading.Lock()

    def _poll() -> None:
        while True:
            command = coordinator.dequeue()
            if command == "NONE":
                return
            with delivered_lock:
                delivered.append(command)

    threads = [threading.Thread(target=_poll) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert sorted(delivered) == sorted(commands)
    assert len(set(delivered)) == len(commands)


def test_remove_where_preserves_order_of_remaining_entries() -> None:
    queue = CommandQueue()
    at = datetime(2026, 1, 1, tzinfo=UTC)
    for text in ("ENGINE=ACC;", "PREHEAT=10,20,0,5;", "DOOR=LOCK;", "PREHEAT=0,0,0,0;", "ENGINE=OFF;"):
        queue.enqueue(QueuedCommand(command=parse_command(text), enqueued_at=at))

    removed = queue.remove_where(lambda entry: entry.command.has_preheat)

    assert [entry.text for entry in removed] == ["PREHEAT=10,20,0,5;", "PREHEAT=0,0,0,0;"]
    assert [entry.text for entry in queue.pending()] == ["ENGINE=ACC;", "DOOR=LOCK;", "ENGINE=OFF;"]

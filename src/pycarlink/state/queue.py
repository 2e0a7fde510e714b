"""Per-device FIFO of commands awaiting delivery."""

from __future__ import annotations

from collections import deque
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from pycarlink.models.directives import ParsedCommand


@dataclass(frozen=True, slots=True)
class QueuedCommand:
    """A parsed command waiting for the next device poll."""

    command: ParsedCommand
    enqueued_at: datetime

    @property
    def text(self) -> str:
        return self.command.text


class CommandQueue:
    """Strict FIFO: entries are delivered in the order they were queued.

    Engine, heater, calibration and scheduling commands share this one
    queue; there are no priorities.  Queued commands never expire.
    """

    def __init__(self) -> None:
        self._entries: deque[QueuedCommand] = deque()

    def __len__(self) -> int:
        return len(self._entries)

    def enqueue(self, entry: QueuedCommand) -> None:
        self._entries.append(entry)

    def dequeue(self) -> QueuedCommand | None:
        """Remove and return the head, or ``None`` when empty."""
        if not self._entries:
            return None
        return self._entries.popleft()

    def remove_where(self, predicate: Callable[[QueuedCommand], bool]) -> list[QueuedCommand]:
        """Drop every entry matching *predicate*, keeping the others in order."""
        removed = [entry for entry in self._entries if predicate(entry)]
        if removed:
            self._entries = deque(entry for entry in self._entries if not predicate(entry))
        return removed

    def clear(self) -> int:
        count = len(self._entries)
        self._entries.clear()
        return count

    def pending(self) -> list[QueuedCommand]:
        return list(self._entries)

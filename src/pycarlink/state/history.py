"""Bounded command history with acknowledgment matching."""

from __future__ import annotations

import logging
from collections import deque
from datetime import datetime

from pycarlink._constants import DEFAULT_HISTORY_SIZE
from pycarlink.models.history import CommandStatus, HistoryEntry

_logger = logging.getLogger(__name__)


class HistoryLedger:
    """Append-only log of issued commands, capped at *capacity* entries.

    Appending to a full ledger evicts the oldest entry.  Entries are
    frozen models; a status transition swaps the entry in place so its
    position (issue order) is preserved.
    """

    def __init__(self, capacity: int = DEFAULT_HISTORY_SIZE) -> None:
        if capacity < 1:
            raise ValueError(f"capacity must be positive, got {capacity}")
        self._capacity = capacity
        self._entries: deque[HistoryEntry] = deque(maxlen=capacity)

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def capacity(self) -> int:
        return self._capacity

    def record(self, entry: HistoryEntry) -> HistoryEntry:
        if len(self._entries) == self.capacity:
            evicted = self._entries[0]
            _logger.debug("History full; evicting %r (%s)", evicted.command, evicted.status)
        self._entries.append(entry)
        return entry

    def acknowledge(self, command: str, status: CommandStatus, at: datetime) -> HistoryEntry:
        """Resolve the oldest ``QUEUED`` entry whose text equals *command*.

        Exactly one entry changes per call, so identical pending commands
        resolve oldest first.  Without a match (never queued, or already
        evicted) a resolved entry is appended instead, keeping the
        acknowledgment visible.
        """
        if not status.is_terminal:
            raise ValueError(f"Acknowledgment status must be terminal, got {status}")

        for index, entry in enumerate(self._entries):
            if entry.status is CommandStatus.QUEUED and entry.command == command:
                resolved = entry.model_copy(update={"status": status, "resolved_at": at})
                self._entries[index] = resolved
                return resolved

        _logger.info("Acknowledgment for %r has no queued history entry; recording it as %s", command, status)
        return self.record(HistoryEntry(command=command, status=status, timestamp=at, resolved_at=at))

    def entries(self) -> list[HistoryEntry]:
        """Entries oldest first."""
        return list(self._entries)

    def clear(self) -> int:
        count = len(self._entries)
        self._entries.clear()
        return count

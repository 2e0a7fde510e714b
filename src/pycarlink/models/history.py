"""Command history models."""

from __future__ import annotations

from datetime import datetime

from pycarlink.models._base import CarLinkBaseModel, CarLinkStrEnum


class CommandStatus(CarLinkStrEnum):
    """Lifecycle status of an issued command.

    ``QUEUED`` is the only non-terminal status; an acknowledgment moves
    an entry to one of the others exactly once.
    """

    QUEUED = "QUEUED"
    OK = "OK"
    ERROR = "ERROR"
    SCHEDULED = "SCHEDULED"

    @property
    def is_terminal(self) -> bool:
        return self is not CommandStatus.QUEUED


class HistoryEntry(CarLinkBaseModel):
    """One issued command and its last known status.

    ``timestamp`` is the time the entry was created; a status transition
    keeps it so entries stay ordered by issue time.
    """

    command: str
    status: CommandStatus = CommandStatus.QUEUED
    timestamp: datetime
    resolved_at: datetime | None = None
    """When the status left ``QUEUED``; ``None`` while pending."""

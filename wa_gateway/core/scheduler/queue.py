"""
Pending schedule entries.

All access goes through one asyncio.Lock. take_due() removes due entries
in the same critical section that selects them, so an entry is handed to
exactly one tick and entries added mid-tick are never lost.
"""

from __future__ import annotations

import asyncio
from datetime import datetime

from shared.config.logging import get_logger
from wa_gateway.core.scheduler.models import ScheduleEntry

logger = get_logger(__name__)


class ScheduleQueue:
    """Lock-guarded collection of entries that have not fired yet."""

    def __init__(self) -> None:
        self._entries: list[ScheduleEntry] = []
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    async def add(self, entry: ScheduleEntry) -> int:
        """Append an entry. Returns the pending count."""
        async with self._lock:
            self._entries.append(entry)
            pending = len(self._entries)
        logger.info(
            "Message scheduled",
            entry_id=entry.id,
            due_at=entry.due_at.isoformat(),
            targets=len(entry.contacts),
            pending=pending,
        )
        return pending

    async def take_due(self, now: datetime) -> list[ScheduleEntry]:
        """
        Partition into due and not-yet-due.

        Due entries are removed and returned in submission order; the
        pending collection becomes exactly the not-yet-due entries.
        """
        async with self._lock:
            due: list[ScheduleEntry] = []
            remaining: list[ScheduleEntry] = []
            for entry in self._entries:
                (due if entry.is_due(now) else remaining).append(entry)
            self._entries = remaining
        return due

    async def pending(self) -> list[ScheduleEntry]:
        """Snapshot of pending entries."""
        async with self._lock:
            return list(self._entries)

    async def clear(self) -> int:
        async with self._lock:
            count = len(self._entries)
            self._entries.clear()
        return count

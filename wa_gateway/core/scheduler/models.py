"""
Schedule entries and dispatch outcomes.

Times are held as timezone-aware UTC datetimes. The original dateTime
string is kept so get_scheduled echoes back exactly what the client sent.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_schedule_time(value: str) -> datetime:
    """
    Parse an RFC 3339 / ISO-8601 timestamp.

    A trailing "Z" is accepted. A timestamp without an offset is taken
    as UTC.

    Raises:
        ValueError: value is not a valid timestamp.
    """
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


@dataclass
class RecurringConfig:
    """Recurrence request as sent by the dashboard. Stored, not acted on."""

    interval: str = ""
    end_date: str = ""

    def to_dict(self) -> dict[str, str]:
        return {"interval": self.interval, "endDate": self.end_date}


@dataclass
class ScheduleEntry:
    """A message waiting for its trigger time."""

    message: str
    contacts: list[str]
    due_at: datetime
    date_time: str
    is_recurring: bool = False
    recurring_config: RecurringConfig | None = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    created_at: datetime = field(default_factory=utcnow)

    def is_due(self, now: datetime) -> bool:
        return self.due_at <= now

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "message": self.message,
            "contacts": list(self.contacts),
            "dateTime": self.date_time,
            "isRecurring": self.is_recurring,
        }
        if self.recurring_config is not None:
            data["recurringConfig"] = self.recurring_config.to_dict()
        return data


@dataclass
class DispatchOutcome:
    """Per-entry result of one dispatch tick."""

    entry: ScheduleEntry
    successful: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.successful + self.failed

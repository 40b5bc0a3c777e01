"""
Scheduled Messaging Module.

- models.py: ScheduleEntry, RecurringConfig, DispatchOutcome
- queue.py: Lock-guarded pending collection
- dispatcher.py: Periodic dispatch loop
"""

from wa_gateway.core.scheduler.models import (
    DispatchOutcome,
    RecurringConfig,
    ScheduleEntry,
    parse_schedule_time,
    utcnow,
)
from wa_gateway.core.scheduler.queue import ScheduleQueue
from wa_gateway.core.scheduler.dispatcher import ScheduledDispatcher

__all__ = [
    "DispatchOutcome",
    "RecurringConfig",
    "ScheduleEntry",
    "parse_schedule_time",
    "utcnow",
    "ScheduleQueue",
    "ScheduledDispatcher",
]

"""
WA Gateway Core Module.

- connection/: Connection lifecycle and message delivery
- scheduler/: Scheduled message queue and dispatch loop
- messaging.py: Client-facing messaging operations
"""

from wa_gateway.core.connection import (
    ConnectionLifecycle,
    ConnectionBroadcaster,
    is_ws_connected,
)
from wa_gateway.core.scheduler import ScheduleQueue, ScheduledDispatcher

__all__ = [
    # Connection module
    "ConnectionLifecycle",
    "ConnectionBroadcaster",
    "is_ws_connected",
    # Scheduler module
    "ScheduleQueue",
    "ScheduledDispatcher",
]

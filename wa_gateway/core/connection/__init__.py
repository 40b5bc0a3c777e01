"""
Connection Management Module.

Components composed by ConnectionManager:
- lifecycle.py: Connection accept/teardown/shutdown
- broadcaster.py: Broadcast and unicast
"""

from wa_gateway.core.connection.lifecycle import ConnectionLifecycle
from wa_gateway.core.connection.broadcaster import ConnectionBroadcaster, is_ws_connected

__all__ = [
    "ConnectionLifecycle",
    "ConnectionBroadcaster",
    "is_ws_connected",
]

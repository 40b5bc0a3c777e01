"""
Connection management components.

Per-connection state, the registry of live connections and keepalive.
"""

from wa_gateway.components.connection.state import (
    ConnectionClosedError,
    ConnectionEntry,
    ConnectionStatus,
)
from wa_gateway.components.connection.registry import ConnectionRegistry
from wa_gateway.components.connection.heartbeat import KeepaliveTask, handle_heartbeat

__all__ = [
    "ConnectionClosedError",
    "ConnectionEntry",
    "ConnectionStatus",
    "ConnectionRegistry",
    "KeepaliveTask",
    "handle_heartbeat",
]

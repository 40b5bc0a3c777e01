"""
Connection Registry - the set of live client connections.

Membership changes and snapshots happen under a single asyncio.Lock.
Callers never perform socket I/O while holding it: they take a
snapshot() and write to the copy.
"""

from __future__ import annotations

import asyncio
from types import MappingProxyType
from typing import TYPE_CHECKING

from shared.config.logging import get_logger

if TYPE_CHECKING:
    from fastapi import WebSocket
    from wa_gateway.components.connection.state import ConnectionEntry

logger = get_logger(__name__)


class ConnectionRegistry:
    """
    Registered connections keyed by their websocket.

    Thread Safety:
    - register/unregister/snapshot/get take the registry lock
    - `members` and `count` are lock-free views for stats only
    """

    def __init__(self) -> None:
        self._entries: dict["WebSocket", "ConnectionEntry"] = {}
        self._lock = asyncio.Lock()

    @property
    def lock(self) -> asyncio.Lock:
        return self._lock

    @property
    def members(self) -> MappingProxyType["WebSocket", "ConnectionEntry"]:
        """Read-only view. Do not iterate across an await."""
        return MappingProxyType(self._entries)

    @property
    def count(self) -> int:
        return len(self._entries)

    async def register(self, entry: "ConnectionEntry") -> int:
        """
        Add an entry. Returns the member count after insertion.

        A socket already present is replaced by the new entry.
        """
        async with self._lock:
            self._entries[entry.websocket] = entry
            total = len(self._entries)
        logger.info(
            "Client registered",
            connection_id=entry.connection_id,
            total=total,
        )
        return total

    async def unregister(self, websocket: "WebSocket") -> "ConnectionEntry | None":
        """
        Remove a socket's entry. Idempotent.

        Returns:
            The removed entry, or None if the socket was not registered.
        """
        async with self._lock:
            entry = self._entries.pop(websocket, None)
            total = len(self._entries)
        if entry is not None:
            logger.info(
                "Client unregistered",
                connection_id=entry.connection_id,
                total=total,
            )
        return entry

    async def snapshot(self) -> list["ConnectionEntry"]:
        """Copy of the current members, taken under the lock."""
        async with self._lock:
            return list(self._entries.values())

    async def get(self, websocket: "WebSocket") -> "ConnectionEntry | None":
        async with self._lock:
            return self._entries.get(websocket)

    async def contains(self, websocket: "WebSocket") -> bool:
        async with self._lock:
            return websocket in self._entries

    async def drain(self) -> list["ConnectionEntry"]:
        """Remove and return every entry. Used at shutdown."""
        async with self._lock:
            entries = list(self._entries.values())
            self._entries.clear()
        return entries

    def get_stats(self) -> dict[str, int]:
        return {"registered_connections": len(self._entries)}

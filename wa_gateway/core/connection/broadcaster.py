"""
Connection Broadcaster.

Handles sending messages to registered client connections:
- broadcast() fans a message out to every registered connection
- unicast() sends to one connection if it is still registered

A connection whose write fails (error or write deadline) is torn down
and unregistered. Neither operation raises to its caller.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, TYPE_CHECKING

from starlette.websockets import WebSocketState

from shared.config.logging import get_logger
from wa_gateway.components.core.constants import WSCloseCode, WSConstants

if TYPE_CHECKING:
    from fastapi import WebSocket
    from wa_gateway.components.connection.registry import ConnectionRegistry
    from wa_gateway.components.connection.state import ConnectionEntry
    from wa_gateway.components.metrics.collector import MetricsCollector

logger = get_logger(__name__)

TeardownCallback = Callable[..., Awaitable[Any]]


def is_ws_connected(ws: "WebSocket") -> bool:
    """
    Check if WebSocket is in connected state before sending.

    Starlette WebSockets have limited state visibility:
    - CONNECTING: Initial state (not observable here)
    - CONNECTED: Active connection
    - DISCONNECTED: Closed connection

    Transitional states are not exposed, so connections may appear
    connected briefly after disconnect initiated.
    """
    return (
        ws.client_state == WebSocketState.CONNECTED
        and ws.application_state == WebSocketState.CONNECTED
    )


class ConnectionBroadcaster:
    """
    Sends messages to registered connections.

    Fan-out works on a registry snapshot, in parallel batches of
    `batch_size`. Writes to a single connection are serialized by the
    entry's own write lock, so a broadcast and a unicast can never
    interleave frames on one socket.
    """

    def __init__(
        self,
        registry: "ConnectionRegistry",
        metrics: "MetricsCollector",
        teardown: TeardownCallback,
        batch_size: int = WSConstants.BROADCAST_BATCH_SIZE,
        write_timeout: float = WSConstants.WRITE_TIMEOUT,
    ) -> None:
        """
        Args:
            registry: Registered connections
            metrics: Collects broadcast metrics
            teardown: Closes and unregisters a failed entry
            batch_size: Connections written to in parallel
            write_timeout: Per-frame write deadline
        """
        self._registry = registry
        self._metrics = metrics
        self._teardown = teardown
        self._batch_size = max(1, batch_size)
        self._write_timeout = write_timeout

    async def _send_to_entry(
        self,
        entry: "ConnectionEntry",
        payload: dict[str, Any],
    ) -> bool:
        """
        Send to a single entry, returning success status.

        On failure the entry is torn down before returning.
        """
        if entry.closed:
            return False
        if not is_ws_connected(entry.websocket):
            await self._teardown(entry, reason="not_connected")
            return False
        try:
            await entry.send_json(payload, timeout=self._write_timeout)
            return True
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.debug(
                "Send failed",
                connection_id=entry.connection_id,
                error=type(e).__name__,
            )
            await self._teardown(entry, code=WSCloseCode.GOING_AWAY, reason="write_failed")
            return False

    async def broadcast(self, payload: dict[str, Any]) -> int:
        """
        Send a message to all registered clients.

        Returns:
            Number of connections that received the message.
        """
        entries = await self._registry.snapshot()
        message_type = payload.get("type")
        if not entries:
            logger.debug("No clients connected, skipping broadcast", message_type=message_type)
            return 0

        sent = 0
        failed = 0

        for i in range(0, len(entries), self._batch_size):
            batch = entries[i : i + self._batch_size]
            results = await asyncio.gather(
                *[self._send_to_entry(entry, payload) for entry in batch],
                return_exceptions=True,
            )

            for idx, result in enumerate(results):
                if result is True:
                    sent += 1
                else:
                    failed += 1
                    if isinstance(result, BaseException):
                        logger.debug(
                            "Batch send exception",
                            batch_index=idx,
                            error=str(result),
                        )

        self._metrics.increment_broadcast_total_sync()
        if failed > 0:
            self._metrics.increment_broadcast_failed_sync()
            self._metrics.add_failed_recipients_sync(failed)
            logger.info(
                "Broadcast completed with failures",
                message_type=message_type,
                sent=sent,
                failed=failed,
                total=len(entries),
            )
        else:
            logger.debug("Broadcast completed", message_type=message_type, sent=sent)

        return sent

    async def unicast(self, websocket: "WebSocket", payload: dict[str, Any]) -> bool:
        """
        Send a message to one client.

        A socket that is not registered (already gone) is skipped.

        Returns:
            True if the message was written.
        """
        entry = await self._registry.get(websocket)
        if entry is None:
            logger.debug(
                "Connection not registered, skipping send",
                message_type=payload.get("type"),
            )
            return False

        self._metrics.increment_unicast_total_sync()
        ok = await self._send_to_entry(entry, payload)
        if not ok:
            self._metrics.increment_unicast_failed_sync()
        return ok

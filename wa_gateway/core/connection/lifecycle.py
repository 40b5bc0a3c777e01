"""
Connection Lifecycle Management.

Handles client connection acceptance, teardown and process shutdown.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from shared.config.logging import get_logger
from wa_gateway.components.connection.heartbeat import KeepaliveTask
from wa_gateway.components.connection.state import ConnectionEntry
from wa_gateway.components.core.constants import WSCloseCode, WSConstants

if TYPE_CHECKING:
    from fastapi import WebSocket
    from wa_gateway.components.connection.registry import ConnectionRegistry
    from wa_gateway.components.metrics.collector import MetricsCollector

logger = get_logger(__name__)

# Upper bound on the websocket handshake
WS_ACCEPT_TIMEOUT = 5.0


class ConnectionLifecycle:
    """
    Manages the lifecycle of client connections.

    Responsibilities:
    - Accept new connections and register them
    - Start each connection's keepalive task
    - Unregister and close connections exactly once
    - Close every connection at shutdown
    """

    def __init__(
        self,
        registry: "ConnectionRegistry",
        metrics: "MetricsCollector",
        shutdown_event: asyncio.Event,
        read_timeout: float = WSConstants.READ_TIMEOUT,
        initial_read_timeout: float = WSConstants.INITIAL_READ_TIMEOUT,
        write_timeout: float = WSConstants.WRITE_TIMEOUT,
        ping_interval: float = WSConstants.PING_INTERVAL,
    ) -> None:
        self._registry = registry
        self._metrics = metrics
        self._shutdown = shutdown_event
        self._read_timeout = read_timeout
        self._initial_read_timeout = initial_read_timeout
        self._write_timeout = write_timeout
        self._ping_interval = ping_interval

    @property
    def is_shutdown(self) -> bool:
        """Whether shutdown has been initiated."""
        return self._shutdown.is_set()

    async def connect(
        self,
        websocket: "WebSocket",
        connection_id: str,
        timeout: float = WS_ACCEPT_TIMEOUT,
    ) -> ConnectionEntry:
        """
        Accept a WebSocket connection and register it.

        Raises:
            ConnectionError: If the server is shutting down or the accept failed.
        """
        if self.is_shutdown:
            raise ConnectionError("Server is shutting down")

        try:
            await asyncio.wait_for(websocket.accept(), timeout=timeout)
        except asyncio.TimeoutError:
            raise ConnectionError("WebSocket accept timed out")
        except asyncio.CancelledError:
            raise
        except Exception as e:
            raise ConnectionError(f"WebSocket accept failed: {e}")

        entry = ConnectionEntry(
            websocket,
            connection_id,
            read_timeout=self._read_timeout,
            initial_read_timeout=self._initial_read_timeout,
        )
        await self._registry.register(entry)
        self._metrics.increment_connections_opened_sync()

        KeepaliveTask(
            entry,
            self._shutdown,
            interval=self._ping_interval,
            write_timeout=self._write_timeout,
            on_failure=self.disconnect,
            metrics=self._metrics,
        ).start()

        return entry

    async def disconnect(
        self,
        entry: ConnectionEntry,
        code: int = WSCloseCode.NORMAL,
        reason: str = "",
    ) -> bool:
        """
        Unregister and close a connection. Safe to call from any task,
        any number of times.

        Returns:
            True if this call performed the close.
        """
        await self._registry.unregister(entry.websocket)
        performed = await entry.close(code=code, reason=reason, timeout=self._write_timeout)
        if performed:
            self._metrics.increment_connections_closed_sync()
            logger.debug(
                "Connection closed",
                connection_id=entry.connection_id,
                code=int(code),
                reason=reason or None,
            )
        return performed

    async def shutdown(self, code: int = WSCloseCode.GOING_AWAY) -> int:
        """
        Signal shutdown and close every registered connection.

        Returns:
            Number of connections closed.
        """
        self._shutdown.set()
        entries = await self._registry.drain()
        if not entries:
            return 0

        results = await asyncio.gather(
            *[
                entry.close(code=code, reason="server shutdown", timeout=self._write_timeout)
                for entry in entries
            ],
            return_exceptions=True,
        )
        closed = sum(1 for r in results if r is True)
        for _ in range(closed):
            self._metrics.increment_connections_closed_sync()
        logger.info("Closed connections for shutdown", closed=closed, total=len(entries))
        return closed

"""
WebSocket Connection Manager.

Thin orchestrator that composes the gateway's components:
- ConnectionRegistry: Live connections
- ConnectionLifecycle: Accept / teardown / shutdown
- ConnectionBroadcaster: Broadcast and unicast
- TransportConnector + TransportEventRouter: Transport session and its events
- ScheduleQueue + ScheduledDispatcher: Scheduled messages
- MessagingService: Client commands that use the transport

Endpoints and the HTTP surface only talk to this class.
"""

from __future__ import annotations

import asyncio
from typing import Any, TYPE_CHECKING

from shared.config.logging import get_logger
from shared.config.settings import Settings, get_settings
from wa_gateway.components.connection.registry import ConnectionRegistry
from wa_gateway.components.connection.state import ConnectionEntry
from wa_gateway.components.core.constants import WSCloseCode
from wa_gateway.components.events import types as envelopes
from wa_gateway.components.events.router import PairingArtifactCache, TransportEventRouter
from wa_gateway.components.metrics.collector import MetricsCollector
from wa_gateway.core.connection import ConnectionBroadcaster, ConnectionLifecycle
from wa_gateway.core.messaging import MessagingService
from wa_gateway.core.scheduler import ScheduledDispatcher, ScheduleQueue
from wa_gateway.transport.base import MessagingTransport
from wa_gateway.transport.connector import TransportConnector
from wa_gateway.transport.memory import InMemoryTransport

if TYPE_CHECKING:
    from fastapi import WebSocket

logger = get_logger(__name__)

__all__ = ["ConnectionManager"]


class ConnectionManager:
    """
    Owns every long-lived component of the gateway.

    One process-wide shutdown event is shared by the keepalive tasks, the
    connector and the dispatch loop; shutdown() sets it.

    Usage:
        manager = ConnectionManager(transport, settings)
        await manager.start()
        ...
        await manager.shutdown()
    """

    def __init__(
        self,
        transport: MessagingTransport | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.settings = settings if settings is not None else get_settings()
        s = self.settings

        self._shutdown_event = asyncio.Event()
        self.registry = ConnectionRegistry()
        self.metrics = MetricsCollector()
        self.transport: MessagingTransport = (
            transport if transport is not None else InMemoryTransport()
        )

        # Connection components
        self.lifecycle = ConnectionLifecycle(
            registry=self.registry,
            metrics=self.metrics,
            shutdown_event=self._shutdown_event,
            read_timeout=s.ws_read_timeout,
            initial_read_timeout=s.ws_initial_read_timeout,
            write_timeout=s.ws_write_timeout,
            ping_interval=s.ws_ping_interval,
        )
        self.broadcaster = ConnectionBroadcaster(
            registry=self.registry,
            metrics=self.metrics,
            teardown=self.lifecycle.disconnect,
            batch_size=s.ws_broadcast_batch_size,
            write_timeout=s.ws_write_timeout,
        )

        # Transport components
        self.connector = TransportConnector(
            self.transport,
            self._shutdown_event,
            retry_wait=s.connect_retry_wait,
        )
        self.router = TransportEventRouter(
            self,
            cache=PairingArtifactCache(ttl=s.qr_cache_ttl),
            qr_broadcast_delay=s.qr_broadcast_delay,
        )
        self.transport.add_event_handler(self.router.handle)

        # Scheduling and client commands
        self.schedule_queue = ScheduleQueue()
        self.dispatcher = ScheduledDispatcher(
            self.schedule_queue,
            self.transport,
            self,
            self._shutdown_event,
            interval=s.schedule_check_interval,
            metrics=self.metrics,
        )
        self.service = MessagingService(
            self.transport,
            self,
            self.schedule_queue,
            scheduling_enabled=s.enable_scheduling,
        )

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def total_connections(self) -> int:
        """Total number of registered connections."""
        return self.registry.count

    @property
    def is_shutting_down(self) -> bool:
        return self._shutdown_event.is_set()

    @property
    def shutdown_event(self) -> asyncio.Event:
        return self._shutdown_event

    # =========================================================================
    # Connection lifecycle (delegate to ConnectionLifecycle)
    # =========================================================================

    async def connect(self, websocket: "WebSocket", connection_id: str) -> ConnectionEntry:
        """Accept, register and start keepalive for a new client."""
        entry = await self.lifecycle.connect(websocket, connection_id)
        logger.debug("Client registered", total=self.registry.count)
        return entry

    async def disconnect(
        self,
        entry: ConnectionEntry,
        code: int = WSCloseCode.NORMAL,
        reason: str = "",
    ) -> bool:
        return await self.lifecycle.disconnect(entry, code=code, reason=reason)

    async def greet(self, websocket: "WebSocket") -> None:
        """
        Tell a newly registered client the current session state.

        Authenticated: authenticated + ready. Otherwise the cached QR code,
        if it is still fresh.
        """
        if self.transport.is_logged_in():
            await self.unicast(websocket, envelopes.authenticated())
            await self.unicast(websocket, envelopes.ready())
            return

        qr = self.router.cache.get_fresh()
        if qr is not None:
            await self.unicast(websocket, envelopes.qr_code(qr))

    # =========================================================================
    # Delivery (delegate to ConnectionBroadcaster)
    # =========================================================================

    async def broadcast(self, payload: dict[str, Any]) -> int:
        """Send a message to all registered clients. Never raises."""
        return await self.broadcaster.broadcast(payload)

    async def unicast(self, websocket: "WebSocket", payload: dict[str, Any]) -> bool:
        """Send a message to one client if it is still registered."""
        return await self.broadcaster.unicast(websocket, payload)

    # =========================================================================
    # Background components
    # =========================================================================

    def start_transport(self) -> None:
        """Start connecting the transport. Safe to call for every new client."""
        if self.is_shutting_down:
            return
        self.connector.start()

    async def start(self) -> None:
        """Apply the start-up session policy and start the dispatch loop."""
        await self.connector.prepare(
            force_fresh_login=self.settings.force_fresh_login,
            auto_reconnect=self.settings.enable_auto_reconnect,
        )
        if self.settings.enable_scheduling:
            await self.dispatcher.start()
        else:
            logger.info("Scheduling disabled, dispatch loop not started")

    async def shutdown(self) -> int:
        """
        Stop everything: close clients, stop the dispatch loop, cancel
        pending QR broadcasts and disconnect the transport.

        Returns:
            Number of client connections closed.
        """
        closed = await self.lifecycle.shutdown(code=WSCloseCode.GOING_AWAY)
        await self.dispatcher.stop()
        await self.router.close()
        await self.connector.stop()
        logger.info("Connection manager shut down", closed=closed)
        return closed

    # =========================================================================
    # Statistics
    # =========================================================================

    async def get_stats(self) -> dict[str, Any]:
        """Stats used by /health and /metrics."""
        return {
            "total_connections": self.registry.count,
            "transport_logged_in": self.transport.is_logged_in(),
            "transport_connected": self.connector.connected,
            "scheduled_pending": len(self.schedule_queue),
            "scheduling_enabled": self.dispatcher.running,
            "shutting_down": self.is_shutting_down,
            "metrics": await self.metrics.get_snapshot(),
        }

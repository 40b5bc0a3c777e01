"""
Transport Event Router - turns transport session events into client
notifications.

Each transport event maps to exactly one broadcast. The router also owns
the pairing artifact (QR code) cache so that a client connecting between
two QR rotations still sees the current code.

Usage:
    router = TransportEventRouter(connection_manager)
    transport.add_event_handler(router.handle)
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Callable, Protocol

from shared.config.logging import get_logger
from wa_gateway.components.core.constants import WSConstants
from wa_gateway.components.events import types as envelopes
from wa_gateway.transport.base import TransportEvent, TransportEventKind

logger = get_logger(__name__)


class BroadcasterProtocol(Protocol):
    """Protocol for ConnectionManager to avoid circular imports."""

    async def broadcast(self, message: dict) -> int: ...


@dataclass
class RoutingResult:
    """Result of routing one transport event."""

    event: TransportEventKind
    message_type: str | None = None
    sent: int = 0
    deferred: bool = False

    @property
    def handled(self) -> bool:
        return self.message_type is not None


class PairingArtifactCache:
    """
    Latest pairing artifact and when it arrived.

    Newest wins: set() replaces whatever was there. clear() runs when the
    device pairs, so later clients are never shown a stale code.
    """

    def __init__(
        self,
        ttl: float = WSConstants.QR_CACHE_TTL,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = ttl
        self._clock = clock
        self._artifact: str | None = None
        self._stored_at: float = 0.0

    def set(self, artifact: str) -> None:
        self._artifact = artifact
        self._stored_at = self._clock()

    def clear(self) -> None:
        self._artifact = None
        self._stored_at = 0.0

    @property
    def current(self) -> str | None:
        """Cached artifact regardless of age."""
        return self._artifact

    def age(self) -> float | None:
        if self._artifact is None:
            return None
        return self._clock() - self._stored_at

    def get_fresh(self) -> str | None:
        """Cached artifact if younger than the TTL, else None."""
        age = self.age()
        if age is None or age >= self._ttl:
            return None
        return self._artifact


# Events that map to a disconnected{message} notification
_DISCONNECT_MESSAGES: dict[TransportEventKind, str] = {
    TransportEventKind.STREAM_REPLACED: "Session was replaced by another connection.",
    TransportEventKind.LOGGED_OUT: "Logged out from WhatsApp.",
    TransportEventKind.DISCONNECTED: "WhatsApp connection lost.",
}


def _error_message(event: TransportEvent) -> str | None:
    if event.kind is TransportEventKind.TEMPORARY_BAN:
        return f"Temporarily banned by WhatsApp ({event.detail})"
    if event.kind is TransportEventKind.STREAM_ERROR:
        return f"Stream error: {event.detail}"
    if event.kind is TransportEventKind.CONNECT_FAILURE:
        return f"Connection failed: {event.detail}"
    return None


class TransportEventRouter:
    """
    Routes transport events to connected clients.

    Routing rules:
    - qr: cache the newest code, broadcast qr_code after a short delay
    - paired: clear the cache, drop queued qr_code broadcasts, broadcast
      authenticated
    - connected: broadcast ready
    - stream_replaced / logged_out / disconnected: broadcast disconnected
    - temporary_ban / stream_error / connect_failure: broadcast error
    """

    def __init__(
        self,
        manager: BroadcasterProtocol,
        cache: PairingArtifactCache | None = None,
        qr_broadcast_delay: float = WSConstants.QR_BROADCAST_DELAY,
    ):
        self._manager = manager
        self.cache = cache if cache is not None else PairingArtifactCache()
        self._qr_delay = qr_broadcast_delay
        self._pending: set[asyncio.Task] = set()

    async def handle(self, event: TransportEvent) -> None:
        """Event handler registered on the transport."""
        await self.route_event(event)

    async def route_event(self, event: TransportEvent) -> RoutingResult:
        result = RoutingResult(event=event.kind)

        if event.kind is TransportEventKind.QR:
            if not event.codes:
                return result
            code = event.codes[0]
            self.cache.set(code)
            logger.info("QR code received, broadcasting to clients")
            result.message_type = "qr_code"
            result.deferred = True
            self._spawn(self._broadcast_later(envelopes.qr_code(code)))
            return result

        if event.kind is TransportEventKind.PAIRED:
            logger.info("Device paired successfully")
            self.cache.clear()
            await self._cancel_pending()
            message = envelopes.authenticated()
        elif event.kind is TransportEventKind.CONNECTED:
            logger.info("Transport connected and ready")
            message = envelopes.ready()
        elif event.kind in _DISCONNECT_MESSAGES:
            logger.warning("Transport session lost", event_kind=event.kind.value)
            message = envelopes.disconnected(_DISCONNECT_MESSAGES[event.kind])
        else:
            error_text = _error_message(event)
            if error_text is None:
                logger.debug("Unhandled transport event", event_kind=event.kind.value)
                return result
            logger.warning("Transport error event", event_kind=event.kind.value, detail=event.detail)
            message = envelopes.error(error_text)

        result.message_type = message["type"]
        result.sent = await self._manager.broadcast(message)
        return result

    def _spawn(self, coro) -> None:
        task = asyncio.create_task(coro, name="qr_broadcast")
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _broadcast_later(self, message: dict) -> None:
        # Let sockets that are mid-upgrade finish registering first
        await asyncio.sleep(self._qr_delay)
        await self._manager.broadcast(message)

    async def drain(self) -> None:
        """Wait for deferred broadcasts. Used by tests."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def close(self) -> None:
        """Cancel deferred broadcasts that have not fired yet."""
        await self._cancel_pending()

    async def _cancel_pending(self) -> None:
        for task in list(self._pending):
            task.cancel()
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
        self._pending.clear()

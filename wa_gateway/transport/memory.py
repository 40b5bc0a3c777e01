"""In-memory messaging transport for development and tests.

Behaves like a real client from the gateway's point of view: it emits a QR
event on connect when no session is stored, flips to logged in on pair(),
and records every text it is asked to send.

Usage:
    transport = InMemoryTransport(contacts={...})
    transport.fail_sends_to.add("628111")   # sends to this user raise
    await transport.pair()                  # emits paired + connected
"""

from __future__ import annotations

import asyncio
import uuid

from shared.config.logging import get_logger
from wa_gateway.transport.base import (
    AlreadyConnectedError,
    EventHandler,
    TransportError,
    TransportEvent,
    TransportEventKind,
)
from wa_gateway.transport.jid import JID, ContactInfo

log = get_logger(__name__)


class InMemoryTransport:
    """Loopback transport that never touches the network."""

    def __init__(
        self,
        logged_in: bool = False,
        contacts: dict[JID, ContactInfo] | None = None,
        connect_failures: int = 0,
    ) -> None:
        self.contacts: dict[JID, ContactInfo] = dict(contacts or {})
        self.sent: list[tuple[JID, str]] = []
        self.fail_sends_to: set[str] = set()
        self.logout_error: str | None = None
        self.auto_reconnect = True
        self.connect_calls = 0

        self._logged_in = logged_in
        self._stored_session = logged_in
        self._connected = False
        self._connect_failures = connect_failures
        self._handlers: list[EventHandler] = []

    # =========================================================================
    # State
    # =========================================================================

    def is_logged_in(self) -> bool:
        return self._logged_in

    def has_stored_session(self) -> bool:
        return self._stored_session

    @property
    def connected(self) -> bool:
        return self._connected

    def set_auto_reconnect(self, enabled: bool) -> None:
        self.auto_reconnect = enabled

    def add_event_handler(self, handler: EventHandler) -> None:
        self._handlers.append(handler)

    async def emit(self, event: TransportEvent) -> None:
        """Deliver an event to every registered handler, in order."""
        for handler in list(self._handlers):
            await handler(event)

    # =========================================================================
    # Session
    # =========================================================================

    async def connect(self) -> None:
        self.connect_calls += 1
        if self._connected:
            raise AlreadyConnectedError("websocket is already connected")
        if self._connect_failures > 0:
            self._connect_failures -= 1
            raise TransportError("simulated connect failure")

        self._connected = True
        log.info("in-memory transport connected", logged_in=self._logged_in)

        if self._logged_in:
            await self.emit(TransportEvent(TransportEventKind.CONNECTED))
        else:
            code = f"2@{uuid.uuid4().hex}"
            await self.emit(TransportEvent(TransportEventKind.QR, codes=(code,)))

    async def disconnect(self) -> None:
        if not self._connected:
            return
        self._connected = False
        await self.emit(TransportEvent(TransportEventKind.DISCONNECTED))

    async def pair(self) -> None:
        """Simulate the user scanning the QR code."""
        self._logged_in = True
        self._stored_session = True
        await self.emit(TransportEvent(TransportEventKind.PAIRED))
        await self.emit(TransportEvent(TransportEventKind.CONNECTED))

    async def logout(self) -> None:
        if self.logout_error is not None:
            raise TransportError(self.logout_error)
        self._logged_in = False
        self._stored_session = False
        self._connected = False
        await self.emit(TransportEvent(TransportEventKind.LOGGED_OUT))

    async def delete_stored_session(self) -> None:
        self._logged_in = False
        self._stored_session = False

    # =========================================================================
    # Messaging
    # =========================================================================

    async def send_text(self, to: JID, text: str) -> str:
        if not self._logged_in:
            raise TransportError("not logged in")
        # Yield like a real network call would
        await asyncio.sleep(0)
        if to.user in self.fail_sends_to or str(to) in self.fail_sends_to:
            raise TransportError(f"server rejected message to {to}")
        self.sent.append((to, text))
        return uuid.uuid4().hex[:16].upper()

    async def get_all_contacts(self) -> dict[JID, ContactInfo]:
        if not self._logged_in:
            raise TransportError("not logged in")
        return dict(self.contacts)

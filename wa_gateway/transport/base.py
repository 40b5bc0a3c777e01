"""
Messaging transport boundary.

The gateway never talks to the messaging network directly. It drives an
object that satisfies MessagingTransport and reacts to the TransportEvents
that object emits. The concrete client (session storage, encryption, wire
protocol) lives outside this package.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, Protocol, runtime_checkable

from wa_gateway.transport.jid import JID, ContactInfo, InvalidContactError

__all__ = [
    "TransportEventKind",
    "TransportEvent",
    "EventHandler",
    "MessagingTransport",
    "TransportError",
    "AlreadyConnectedError",
    "InvalidContactError",
]


class TransportEventKind(str, Enum):
    """Session events the transport reports."""

    QR = "qr"
    PAIRED = "paired"
    CONNECTED = "connected"
    STREAM_REPLACED = "stream_replaced"
    LOGGED_OUT = "logged_out"
    DISCONNECTED = "disconnected"
    TEMPORARY_BAN = "temporary_ban"
    STREAM_ERROR = "stream_error"
    CONNECT_FAILURE = "connect_failure"


@dataclass(frozen=True)
class TransportEvent:
    """
    One session event.

    `codes` is only populated for QR events (newest pairing code first).
    `detail` carries the ban reason, stream error code or failure message.
    """

    kind: TransportEventKind
    codes: tuple[str, ...] = field(default_factory=tuple)
    detail: str = ""


EventHandler = Callable[[TransportEvent], Awaitable[None]]


class TransportError(Exception):
    """Transport operation failed (send, logout, contact fetch, connect)."""


class AlreadyConnectedError(TransportError):
    """connect() called on a transport that already has a live socket."""


@runtime_checkable
class MessagingTransport(Protocol):
    """Operations the gateway needs from the messaging client."""

    def is_logged_in(self) -> bool: ...

    def has_stored_session(self) -> bool: ...

    def set_auto_reconnect(self, enabled: bool) -> None: ...

    def add_event_handler(self, handler: EventHandler) -> None: ...

    async def connect(self) -> None: ...

    async def disconnect(self) -> None: ...

    async def send_text(self, to: JID, text: str) -> str: ...

    async def get_all_contacts(self) -> dict[JID, ContactInfo]: ...

    async def logout(self) -> None: ...

    async def delete_stored_session(self) -> None: ...

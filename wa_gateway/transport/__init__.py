"""
Messaging transport boundary.

- base.py: MessagingTransport protocol, events, errors
- jid.py: Contact id parsing and display helpers
- connector.py: Connect-with-retry and start-up session policy
- memory.py: Loopback transport for development and tests
"""

from wa_gateway.transport.base import (
    AlreadyConnectedError,
    EventHandler,
    MessagingTransport,
    TransportError,
    TransportEvent,
    TransportEventKind,
)
from wa_gateway.transport.jid import (
    DEFAULT_USER_SERVER,
    JID,
    ContactInfo,
    InvalidContactError,
    format_number,
    parse_contact_jid,
    pick_name,
)
from wa_gateway.transport.connector import TransportConnector
from wa_gateway.transport.memory import InMemoryTransport

__all__ = [
    "AlreadyConnectedError",
    "EventHandler",
    "MessagingTransport",
    "TransportError",
    "TransportEvent",
    "TransportEventKind",
    "DEFAULT_USER_SERVER",
    "JID",
    "ContactInfo",
    "InvalidContactError",
    "format_number",
    "parse_contact_jid",
    "pick_name",
    "TransportConnector",
    "InMemoryTransport",
]

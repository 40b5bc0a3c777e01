"""
Connection correlation for logs.

Every client connection gets a short id. The id is stored in a context
variable while the connection's read loop and keepalive task run, so any
record logged from inside them can be traced back to the client.
"""

import uuid
from contextvars import ContextVar, Token

# Context variable for connection id (task-local under asyncio)
connection_id_var: ContextVar[str] = ContextVar("connection_id", default="")


def new_connection_id() -> str:
    """Generate a short connection id."""
    return uuid.uuid4().hex[:8]


def get_connection_id() -> str:
    """Get the current connection id."""
    return connection_id_var.get()


def bind_connection_id(connection_id: str) -> Token:
    """Bind a connection id to the current context. Returns a reset token."""
    return connection_id_var.set(connection_id)


def reset_connection_id(token: Token) -> None:
    """Restore the connection id that was bound before bind_connection_id()."""
    connection_id_var.reset(token)


class ConnectionIdFilter:
    """
    Logging filter that adds connection_id to log records.

    Usage:
        import logging
        handler = logging.StreamHandler()
        handler.addFilter(ConnectionIdFilter())
    """

    def filter(self, record) -> bool:
        record.connection_id = connection_id_var.get() or "-"
        return True

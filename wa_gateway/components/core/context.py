"""
WebSocket Context for audit logging.

Encapsulates connection metadata for consistent audit logging and the
helper used to make client-supplied text safe to log.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, TYPE_CHECKING

if TYPE_CHECKING:
    from fastapi import WebSocket


# Control characters and Unicode direction overrides
_CONTROL_CHAR_PATTERN = re.compile(
    r'[\x00-\x1f\x7f-\x9f'  # ASCII control characters
    r'\u200b-\u200f'  # Zero-width and direction marks
    r'\u202a-\u202e'  # Bidirectional text formatting (RTL override, etc.)
    r'\u2066-\u2069'  # Isolate formatting characters
    r'\ufeff]'  # BOM / Zero-width no-break space
)


def sanitize_log_data(data: Any, max_length: int = 100) -> str:
    """
    Sanitize client-provided data before logging.

    Message bodies, contact ids and command types all come from the
    dashboard and are logged on failure paths.

    Truncates first so escaping cannot push the result past max_length
    by a variable amount.

    Args:
        data: Raw client data. Non-strings are converted with str().
        max_length: Maximum length to include in logs.

    Returns:
        Sanitized, truncated string safe for structured logging.
    """
    if not isinstance(data, str):
        data = str(data)

    truncated = data[:max_length] if len(data) > max_length else data
    was_truncated = len(data) > max_length

    sanitized = _CONTROL_CHAR_PATTERN.sub('', truncated)

    # Replace backslashes first to avoid double-escaping
    sanitized = sanitized.replace('\\', '\\\\')
    sanitized = sanitized.replace('"', '\\"')

    if was_truncated:
        return sanitized + "..."
    return sanitized


@dataclass
class WebSocketContext:
    """
    Context object for WebSocket connection metadata.

    Usage:
        ctx = WebSocketContext.from_websocket(websocket, "/ws", connection_id)
        ctx.audit("CONNECT")
        # ... later
        ctx.audit("DISCONNECT", reason="client_disconnect")
    """

    endpoint: str
    connection_id: str
    origin: str | None = None
    remote: str | None = None

    @classmethod
    def from_websocket(
        cls,
        websocket: "WebSocket",
        endpoint: str,
        connection_id: str,
    ) -> "WebSocketContext":
        """Create context from a WebSocket connection."""
        client = getattr(websocket, "client", None)
        remote = f"{client.host}:{client.port}" if client else None
        return cls(
            endpoint=endpoint,
            connection_id=connection_id,
            origin=websocket.headers.get("origin"),
            remote=remote,
        )

    def to_audit_dict(self, event_type: str, **extra: Any) -> dict[str, Any]:
        """
        Convert to dictionary for audit logging.

        Only includes non-None fields to reduce log noise.
        """
        result: dict[str, Any] = {
            "event_type": event_type,
            "endpoint": self.endpoint,
            "connection_id": self.connection_id,
        }
        if self.origin:
            result["origin"] = self.origin
        if self.remote:
            result["remote"] = self.remote

        result.update(extra)
        return result

    def audit(
        self,
        event_type: str,
        logger_func: Any = None,
        **extra: Any,
    ) -> None:
        """
        Log an audit event.

        Args:
            event_type: The audit event type.
            logger_func: Optional custom logger function (default: audit_ws_connection).
            **extra: Additional fields to log.
        """
        if logger_func is None:
            from shared.config.logging import audit_ws_connection
            logger_func = audit_ws_connection

        logger_func(**self.to_audit_dict(event_type, **extra))

"""
WebSocket Endpoint Mixins.

Each mixin handles a single concern for WebSocket endpoints.

Mixins:
    MessageValidationMixin: Message size check
    OriginValidationMixin: WebSocket origin header validation
    ConnectionLifecycleMixin: Connect / disconnect / reject logging

Usage:
    class MyEndpoint(MessageValidationMixin, OriginValidationMixin, WebSocketEndpointBase):
        ...
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

from fastapi import WebSocket

from shared.config.logging import get_logger
from wa_gateway.components.core.constants import WSCloseCode, validate_websocket_origin

if TYPE_CHECKING:
    from wa_gateway.components.connection.state import ConnectionEntry
    from wa_gateway.components.core.context import WebSocketContext
    from wa_gateway.connection_manager import ConnectionManager

logger = get_logger(__name__)


# =============================================================================
# Protocols for mixin dependencies
# =============================================================================


class HasWebSocket(Protocol):
    """Protocol for classes with websocket attribute."""

    websocket: WebSocket
    endpoint_name: str
    context: "WebSocketContext | None"


class HasManager(Protocol):
    """Protocol for classes with manager attribute."""

    manager: "ConnectionManager"
    entry: "ConnectionEntry | None"


# =============================================================================
# MessageValidationMixin
# =============================================================================


class MessageValidationMixin:
    """
    Mixin for inbound frame validation.

    Requires:
        - self.manager: ConnectionManager
        - self.entry: ConnectionEntry
        - self.endpoint_name: str
    """

    async def validate_message_size(self: HasManager, data: str) -> bool:
        """
        Validate message size against configured limit.

        Returns:
            True if valid, False if too large (connection closed with 1009).
        """
        max_size = self.manager.settings.ws_max_message_size
        if len(data) <= max_size:
            return True

        logger.warning(
            "Message size exceeded limit",
            size=len(data),
            max_size=max_size,
        )
        if self.entry is not None:
            await self.manager.disconnect(
                self.entry,
                code=WSCloseCode.MESSAGE_TOO_BIG,
                reason="Message too large",
            )
        return False


# =============================================================================
# OriginValidationMixin
# =============================================================================


class OriginValidationMixin:
    """
    Mixin for WebSocket origin header validation.

    Requires:
        - self.websocket: WebSocket
        - self.manager: ConnectionManager
    """

    def validate_origin(self: "HasWebSocket & HasManager") -> bool:
        """Check the Origin header against ALLOWED_ORIGINS."""
        return validate_websocket_origin(self.get_origin(), self.manager.settings)

    def get_origin(self: HasWebSocket) -> str | None:
        """Get origin header from websocket."""
        return self.websocket.headers.get("origin")


# =============================================================================
# ConnectionLifecycleMixin
# =============================================================================


class ConnectionLifecycleMixin:
    """
    Mixin for connection lifecycle logging.

    Every event is written twice: once to the module logger for operators
    and once to the audit logger for the connection trail.
    """

    def log_connect(self: HasWebSocket) -> None:
        """Log connection event."""
        logger.info(
            "Client connected",
            **self.context.to_audit_dict("CONNECT") if self.context else {},
        )
        if self.context:
            self.context.audit("CONNECT")

    def log_disconnect(self: HasWebSocket, reason: str = "client_disconnect") -> None:
        """Log disconnection event."""
        logger.info(
            "Client disconnected",
            **(
                self.context.to_audit_dict("DISCONNECT", reason=reason)
                if self.context
                else {}
            ),
        )
        if self.context:
            self.context.audit("DISCONNECT", reason=reason)

    def log_connect_rejected(self: HasWebSocket, reason: str) -> None:
        """Log connection rejection event."""
        logger.warning(
            "Connection rejected",
            endpoint=self.endpoint_name,
            origin=self.context.origin if self.context else None,
            reason=reason,
        )
        if self.context:
            self.context.audit("CONNECT_REJECTED", reason=reason)


__all__ = [
    "MessageValidationMixin",
    "OriginValidationMixin",
    "ConnectionLifecycleMixin",
    # Protocols
    "HasWebSocket",
    "HasManager",
]

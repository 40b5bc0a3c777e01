"""
WebSocket Endpoint Base Class.

Owns one client connection from handshake to teardown:
origin check, registration, greeting, the read loop and its error
taxonomy, and the final unregister/close.

Read loop outcomes:
- normal close (1000/1001/1006) or reset-class error: stop quietly
- any other close code: stop, count it as an abnormal closure
- read deadline expired: refresh the deadline and keep reading
- any other read error: log, refresh, keep reading (bounded)
- oversize frame: close with 1009
- exception while handling one frame: tear down this connection only
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from fastapi import WebSocket, WebSocketDisconnect

from shared.config.logging import get_logger
from shared.infrastructure.correlation import (
    bind_connection_id,
    new_connection_id,
    reset_connection_id,
)
from wa_gateway.components.connection.heartbeat import handle_heartbeat
from wa_gateway.components.core.constants import (
    EXPECTED_CLOSE_CODES,
    WSCloseCode,
    WSConstants,
)
from wa_gateway.components.core.context import WebSocketContext
from wa_gateway.components.endpoints.mixins import (
    ConnectionLifecycleMixin,
    MessageValidationMixin,
    OriginValidationMixin,
)

if TYPE_CHECKING:
    from wa_gateway.components.connection.state import ConnectionEntry
    from wa_gateway.connection_manager import ConnectionManager

logger = get_logger(__name__)

# Errors that mean the peer is gone; the loop stops without complaint
_RESET_ERRORS = (ConnectionResetError, BrokenPipeError, ConnectionAbortedError)


def _is_closed_runtime_error(exc: BaseException) -> bool:
    # Starlette raises RuntimeError when reading a socket that already
    # received (or sent) a disconnect
    if not isinstance(exc, RuntimeError):
        return False
    text = str(exc).lower()
    return "disconnect" in text or "not connected" in text or "closed" in text


class WebSocketEndpointBase(
    MessageValidationMixin,
    OriginValidationMixin,
    ConnectionLifecycleMixin,
    ABC,
):
    """
    Base class for WebSocket endpoints.

    Subclasses implement:
    - on_connect(): runs once the connection is registered
    - handle_message(): processes one non-heartbeat frame

    Usage:
        endpoint = HubEndpoint(websocket, manager, "/ws")
        await endpoint.run()
    """

    def __init__(
        self,
        websocket: WebSocket,
        manager: "ConnectionManager",
        endpoint_name: str,
        max_consecutive_errors: int = WSConstants.MAX_CONSECUTIVE_READ_ERRORS,
    ):
        """
        Args:
            websocket: The WebSocket connection.
            manager: ConnectionManager instance.
            endpoint_name: Path used in logs and audit records (e.g. "/ws").
            max_consecutive_errors: Unclassified read errors tolerated in a row.
        """
        self.websocket = websocket
        self.manager = manager
        self.endpoint_name = endpoint_name
        self.max_consecutive_errors = max_consecutive_errors

        self.context: WebSocketContext | None = None
        self.entry: "ConnectionEntry | None" = None
        self._consecutive_errors = 0

    @abstractmethod
    async def on_connect(self) -> None:
        """Called after the connection is accepted and registered."""

    @abstractmethod
    async def handle_message(self, entry: "ConnectionEntry", data: str) -> None:
        """
        Handle a non-heartbeat message.

        Args:
            entry: The registered connection the frame arrived on.
            data: The text frame as received.
        """

    async def run(self) -> None:
        """
        Main entry point - run the WebSocket endpoint.

        Handles the complete lifecycle:
        1. Validate origin
        2. Accept and register
        3. Greeting (on_connect)
        4. Message loop
        5. Unregister and close
        """
        connection_id = new_connection_id()
        token = bind_connection_id(connection_id)
        try:
            self.context = WebSocketContext.from_websocket(
                self.websocket, self.endpoint_name, connection_id
            )
            await self._run(connection_id)
        finally:
            reset_connection_id(token)

    async def _run(self, connection_id: str) -> None:
        # Step 1: Origin
        if not self.validate_origin():
            self.manager.metrics.increment_rejected_origin_sync()
            self.log_connect_rejected("invalid_origin")
            try:
                await self.websocket.close(
                    code=WSCloseCode.POLICY_VIOLATION,
                    reason="Origin not allowed",
                )
            except RuntimeError:
                pass
            return

        # Step 2: Accept and register
        try:
            entry = await self.manager.connect(self.websocket, connection_id)
        except ConnectionError as e:
            self.log_connect_rejected(str(e))
            return

        self.entry = entry
        self.log_connect()

        reason = "client_disconnect"
        try:
            # Step 3: Greeting
            await self.on_connect()
            # Step 4: Message loop
            reason = await self._message_loop(entry)
        except asyncio.CancelledError:
            reason = "cancelled"
            raise
        except Exception as e:
            reason = "fault"
            self.manager.metrics.increment_connection_faults_sync()
            logger.error(
                "Connection handler failed, tearing down connection",
                error=str(e),
                exc_info=True,
            )
            if self.entry is not None:
                await self.manager.disconnect(
                    self.entry, code=WSCloseCode.SERVER_ERROR, reason="internal error"
                )
        finally:
            # Step 5: Unregister (no-op close if already torn down)
            await self.manager.disconnect(self.entry)
            self.log_disconnect(reason)

    async def _message_loop(self, entry: "ConnectionEntry") -> str:
        """
        Read frames until the connection ends.

        Returns:
            The reason the loop stopped, for the disconnect audit record.
        """
        while not entry.closed:
            if self.manager.is_shutting_down:
                return "server_shutdown"

            try:
                data = await self._receive_with_timeout(entry)
            except WebSocketDisconnect as e:
                if e.code in EXPECTED_CLOSE_CODES:
                    return "client_disconnect"
                self.manager.metrics.increment_abnormal_closures_sync()
                logger.warning("Unexpected close from client", code=e.code)
                return f"abnormal_close_{e.code}"
            except asyncio.TimeoutError:
                # Idle past the deadline: the keepalive decides whether the
                # peer is still there
                entry.refresh_read_deadline()
                continue
            except _RESET_ERRORS:
                return "connection_reset"
            except asyncio.CancelledError:
                raise
            except Exception as e:
                if _is_closed_runtime_error(e):
                    return "connection_closed"
                self._consecutive_errors += 1
                logger.warning(
                    "Read error",
                    error_type=type(e).__name__,
                    error=str(e),
                    consecutive=self._consecutive_errors,
                )
                if self._consecutive_errors >= self.max_consecutive_errors:
                    self.manager.metrics.increment_connection_faults_sync()
                    await self.manager.disconnect(
                        entry, code=WSCloseCode.PROTOCOL_ERROR, reason="read errors"
                    )
                    return "read_errors"
                entry.refresh_read_deadline()
                continue

            self._consecutive_errors = 0

            if not await self.validate_message_size(data):
                return "message_too_big"

            if await handle_heartbeat(entry, data, self.manager.settings.ws_write_timeout):
                continue

            try:
                await self.handle_message(entry, data)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self.manager.metrics.increment_connection_faults_sync()
                logger.error(
                    "Error handling message, tearing down connection",
                    error=str(e),
                    exc_info=True,
                )
                await self.manager.disconnect(
                    entry, code=WSCloseCode.SERVER_ERROR, reason="internal error"
                )
                return "fault"

        return "closed"

    async def _receive_with_timeout(self, entry: "ConnectionEntry") -> str:
        """
        Receive one text frame before the entry's read deadline.

        Raises:
            asyncio.TimeoutError: The deadline passed first.
        """
        return await asyncio.wait_for(
            self.websocket.receive_text(),
            timeout=entry.time_until_read_deadline(),
        )

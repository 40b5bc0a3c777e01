"""
Client command handling.

CommandDispatcher decodes one text frame, routes it by its case-insensitive
"type" and reports failures to the sending client only. HubEndpoint is the
concrete endpoint served on "/" and "/ws".
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from fastapi import WebSocket
from pydantic import BaseModel, ValidationError

from shared.config.logging import get_logger
from shared.utils.exceptions import GatewayError
from wa_gateway.components.connection.heartbeat import reply_pong
from wa_gateway.components.core.constants import CommandType
from wa_gateway.components.core.context import sanitize_log_data
from wa_gateway.components.endpoints.base import WebSocketEndpointBase
from wa_gateway.components.endpoints.schemas import (
    BroadcastCommand,
    ChatCommand,
    CommandEnvelope,
    ScheduleCommand,
)
from wa_gateway.components.events import types as envelopes

if TYPE_CHECKING:
    from wa_gateway.components.connection.state import ConnectionEntry
    from wa_gateway.connection_manager import ConnectionManager

logger = get_logger(__name__)


def _first_error(exc: ValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return str(exc)
    err = errors[0]
    location = ".".join(str(part) for part in err.get("loc", ()))
    return f"{location}: {err.get('msg')}" if location else str(err.get("msg"))


class CommandDispatcher:
    """
    Routes decoded client commands to hub operations.

    Usage:
        dispatcher = CommandDispatcher(manager)
        await dispatcher.dispatch(entry, '{"type":"get_contacts"}')
    """

    def __init__(self, manager: "ConnectionManager"):
        self._manager = manager
        self._service = manager.service
        self._handlers = {
            CommandType.GET_CONTACTS: self._get_contacts,
            CommandType.SEND_BROADCAST: self._send_broadcast,
            CommandType.SEND_CHAT: self._send_chat,
            CommandType.SCHEDULE_MESSAGE: self._schedule_message,
            CommandType.GET_SCHEDULED: self._get_scheduled,
            CommandType.LOGOUT: self._logout,
            CommandType.PING: self._ping,
            CommandType.PONG: self._pong,
        }

    async def dispatch(self, entry: "ConnectionEntry", data: str) -> str | None:
        """
        Handle one text frame.

        Returns:
            The normalised command type that was handled, or None if the
            frame was rejected.
        """
        websocket = entry.websocket
        metrics = self._manager.metrics

        try:
            payload = json.loads(data)
        except json.JSONDecodeError as e:
            metrics.increment_commands_malformed_sync()
            logger.debug("Malformed client payload", payload=sanitize_log_data(data))
            await self._reply_error(websocket, f"invalid payload: {e}")
            return None

        if not isinstance(payload, dict):
            metrics.increment_commands_malformed_sync()
            await self._reply_error(websocket, "invalid payload: expected a JSON object")
            return None

        try:
            envelope = CommandEnvelope.model_validate(payload)
        except ValidationError as e:
            metrics.increment_commands_malformed_sync()
            await self._reply_error(websocket, f"invalid payload: {_first_error(e)}")
            return None

        command_type = envelope.type.strip().lower()
        handler = self._handlers.get(command_type)
        if handler is None:
            metrics.increment_commands_unknown_sync()
            logger.debug("Unknown command", command_type=sanitize_log_data(envelope.type))
            await self._reply_error(websocket, f"unknown command: {envelope.type}")
            return None

        metrics.increment_commands_processed_sync()
        try:
            await handler(entry, payload)
        except GatewayError as e:
            await self._reply_error(websocket, e.message)
        return command_type

    async def _reply_error(self, websocket: WebSocket, message: str) -> None:
        await self._manager.unicast(websocket, envelopes.error(message))

    async def _parse(
        self,
        websocket: WebSocket,
        model: type[BaseModel],
        payload: dict[str, Any],
        label: str,
    ) -> Any:
        try:
            return model.model_validate(payload)
        except ValidationError as e:
            self._manager.metrics.increment_commands_malformed_sync()
            await self._reply_error(websocket, f"invalid {label}: {_first_error(e)}")
            return None

    # =========================================================================
    # Commands
    # =========================================================================

    async def _get_contacts(self, entry: "ConnectionEntry", payload: dict[str, Any]) -> None:
        await self._service.send_contacts(entry.websocket)

    async def _send_broadcast(self, entry: "ConnectionEntry", payload: dict[str, Any]) -> None:
        command = await self._parse(entry.websocket, BroadcastCommand, payload, "broadcast payload")
        if command is not None:
            await self._service.send_broadcast(command)

    async def _send_chat(self, entry: "ConnectionEntry", payload: dict[str, Any]) -> None:
        command = await self._parse(entry.websocket, ChatCommand, payload, "chat message")
        if command is not None:
            await self._service.send_chat(command)

    async def _schedule_message(self, entry: "ConnectionEntry", payload: dict[str, Any]) -> None:
        command = await self._parse(entry.websocket, ScheduleCommand, payload, "schedule request")
        if command is None:
            return
        await self._service.schedule_message(command)
        await self._manager.unicast(entry.websocket, envelopes.schedule_success())

    async def _get_scheduled(self, entry: "ConnectionEntry", payload: dict[str, Any]) -> None:
        messages = await self._service.scheduled_messages()
        await self._manager.broadcast(envelopes.scheduled_messages(messages))

    async def _logout(self, entry: "ConnectionEntry", payload: dict[str, Any]) -> None:
        await self._service.logout()

    async def _ping(self, entry: "ConnectionEntry", payload: dict[str, Any]) -> None:
        entry.refresh_read_deadline()
        await reply_pong(entry, self._manager.settings.ws_write_timeout)

    async def _pong(self, entry: "ConnectionEntry", payload: dict[str, Any]) -> None:
        entry.refresh_read_deadline()


class HubEndpoint(WebSocketEndpointBase):
    """
    The dashboard endpoint.

    Features:
    - Starts the transport on the first connection
    - Greets new clients with the current session state
    - Dispatches JSON commands
    """

    def __init__(
        self,
        websocket: WebSocket,
        manager: "ConnectionManager",
        endpoint_name: str = "/ws",
    ):
        super().__init__(websocket=websocket, manager=manager, endpoint_name=endpoint_name)
        self._dispatcher = CommandDispatcher(manager)

    async def on_connect(self) -> None:
        self.manager.start_transport()
        await self.manager.greet(self.websocket)

    async def handle_message(self, entry: "ConnectionEntry", data: str) -> None:
        await self._dispatcher.dispatch(entry, data)

"""
Messaging Service.

Implements the client commands that go through the messaging transport:
contact listing, broadcast jobs, chat, scheduling and logout.

Validation failures raise GatewayError subclasses; the command dispatcher
turns them into an error envelope for the requesting client only.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any, Protocol, TYPE_CHECKING

from shared.config.logging import get_logger
from shared.utils.exceptions import (
    InvalidPayloadError,
    OperationFailedError,
    TransportNotReadyError,
    UnsupportedMediaError,
)
from wa_gateway.components.core.context import sanitize_log_data
from wa_gateway.components.events import types as envelopes
from wa_gateway.components.events.types import ContactPayload
from wa_gateway.core.scheduler.models import (
    RecurringConfig,
    ScheduleEntry,
    parse_schedule_time,
)
from wa_gateway.core.scheduler.queue import ScheduleQueue
from wa_gateway.transport.base import MessagingTransport, TransportError
from wa_gateway.transport.jid import (
    DEFAULT_USER_SERVER,
    InvalidContactError,
    format_number,
    parse_contact_jid,
    pick_name,
)

if TYPE_CHECKING:
    from fastapi import WebSocket
    from wa_gateway.components.endpoints.schemas import (
        BroadcastCommand,
        ChatCommand,
        ScheduleCommand,
    )

logger = get_logger(__name__)

# Upper bound on fetching the contact list from the transport
CONTACTS_FETCH_TIMEOUT = 15.0


class ClientSender(Protocol):
    """Protocol for ConnectionManager to avoid circular imports."""

    async def broadcast(self, message: dict) -> int: ...

    async def unicast(self, websocket: "WebSocket", message: dict) -> bool: ...


class MessagingService:
    """
    Client-facing messaging operations.

    Usage:
        service = MessagingService(transport, manager, schedule_queue)
        await service.send_broadcast(websocket, command)
    """

    def __init__(
        self,
        transport: MessagingTransport,
        sender: ClientSender,
        schedule_queue: ScheduleQueue,
        scheduling_enabled: bool = True,
    ) -> None:
        self._transport = transport
        self._sender = sender
        self._schedule_queue = schedule_queue
        self._scheduling_enabled = scheduling_enabled
        self._chat_log: dict[str, list[dict[str, Any]]] = {}
        self._chat_lock = asyncio.Lock()

    @property
    def transport(self) -> MessagingTransport:
        return self._transport

    def _require_logged_in(self) -> None:
        if not self._transport.is_logged_in():
            raise TransportNotReadyError()

    # =========================================================================
    # Contacts
    # =========================================================================

    async def list_contacts(self) -> list[ContactPayload]:
        """
        Contacts on the default user server, sorted by number.

        Raises:
            TransportNotReadyError: transport is not logged in.
            OperationFailedError: the transport could not list contacts.
        """
        self._require_logged_in()
        try:
            contacts = await asyncio.wait_for(
                self._transport.get_all_contacts(),
                timeout=CONTACTS_FETCH_TIMEOUT,
            )
        except (TransportError, asyncio.TimeoutError) as e:
            raise OperationFailedError(f"Failed to fetch contacts: {str(e) or 'timeout'}")

        result = [
            ContactPayload(
                id=str(jid),
                name=pick_name(info),
                number=format_number(jid.user),
            )
            for jid, info in contacts.items()
            if jid.server == DEFAULT_USER_SERVER
        ]
        result.sort(key=lambda c: c.number)
        return result

    async def send_contacts(self, websocket: "WebSocket") -> None:
        contacts = await self.list_contacts()
        await self._sender.unicast(websocket, envelopes.contacts(contacts))

    # =========================================================================
    # Broadcast job
    # =========================================================================

    async def send_broadcast(self, command: "BroadcastCommand") -> tuple[int, int]:
        """
        Send one text to many contacts, reporting progress to every client.

        Per-contact failures (bad id, transport error) are counted and
        reported; they never stop the batch.

        Returns:
            (successful, failed)
        """
        self._require_logged_in()
        if not command.message or not command.contacts:
            raise InvalidPayloadError("Message and contact list are required.")
        if command.media is not None:
            raise UnsupportedMediaError()

        total = len(command.contacts)
        successful = 0
        failed = 0

        await self._sender.broadcast(envelopes.broadcast_started(command.message, total))
        logger.info("Starting broadcast", total=total)

        for index, contact_id in enumerate(command.contacts, start=1):
            display = ContactPayload(id=contact_id, number=contact_id)
            error_message: str | None = None

            try:
                jid = parse_contact_jid(contact_id)
            except InvalidContactError as e:
                error_message = f"invalid number format: {e}"
            else:
                try:
                    await self._transport.send_text(jid, command.message)
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    error_message = str(e) or type(e).__name__

            if error_message is None:
                successful += 1
            else:
                failed += 1
                logger.debug(
                    "Broadcast recipient failed",
                    contact=sanitize_log_data(contact_id),
                    error=error_message,
                )

            await self._sender.broadcast(
                envelopes.broadcast_progress(index, total, display, error_message)
            )

        await self._sender.broadcast(envelopes.broadcast_complete(successful, failed, total))
        logger.info("Broadcast completed", successful=successful, failed=failed, total=total)
        return successful, failed

    # =========================================================================
    # Chat
    # =========================================================================

    async def send_chat(self, command: "ChatCommand") -> dict[str, Any]:
        """
        Record a chat message, send it if the transport is up, and share it
        with every client. Transport send failures are only logged.
        """
        if not command.contact_id or not command.message:
            raise InvalidPayloadError("Contact ID and message are required")

        record = {
            "contactId": command.contact_id,
            "message": command.message,
            "timestamp": datetime.now(timezone.utc).isoformat(timespec="seconds"),
        }
        async with self._chat_lock:
            self._chat_log.setdefault(command.contact_id, []).append(record)

        if self._transport.is_logged_in():
            try:
                jid = parse_contact_jid(command.contact_id)
                await self._transport.send_text(jid, command.message)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning(
                    "Failed to send chat message",
                    contact=sanitize_log_data(command.contact_id),
                    error=str(e),
                )

        await self._sender.broadcast(envelopes.chat_message(command.contact_id, record))
        return record

    async def chat_history(self, contact_id: str) -> list[dict[str, Any]]:
        async with self._chat_lock:
            return list(self._chat_log.get(contact_id, []))

    # =========================================================================
    # Scheduling
    # =========================================================================

    async def schedule_message(self, command: "ScheduleCommand") -> ScheduleEntry:
        """
        Validate and enqueue a scheduled message.

        Raises:
            InvalidPayloadError: missing fields or an unparseable dateTime.
            OperationFailedError: scheduling is turned off, nothing would fire.
        """
        if not self._scheduling_enabled:
            raise OperationFailedError("Message scheduling is disabled")
        if not command.message or not command.date_time or not command.contacts:
            raise InvalidPayloadError("Message, date/time, and contacts are required")

        try:
            due_at = parse_schedule_time(command.date_time)
        except ValueError:
            raise InvalidPayloadError(
                f"Invalid dateTime: {sanitize_log_data(command.date_time, max_length=40)}"
            )

        recurring = None
        if command.recurring_config is not None:
            recurring = RecurringConfig(
                interval=command.recurring_config.interval,
                end_date=command.recurring_config.end_date,
            )

        entry = ScheduleEntry(
            message=command.message,
            contacts=list(command.contacts),
            due_at=due_at,
            date_time=command.date_time,
            is_recurring=command.is_recurring,
            recurring_config=recurring,
        )
        await self._schedule_queue.add(entry)
        return entry

    async def scheduled_messages(self) -> list[dict[str, Any]]:
        return [entry.to_dict() for entry in await self._schedule_queue.pending()]

    # =========================================================================
    # Session
    # =========================================================================

    async def logout(self) -> bool:
        """
        Log the transport out. No-op when not logged in.

        Returns:
            True if a logout was performed.

        Raises:
            OperationFailedError: the transport refused to log out.
        """
        if not self._transport.is_logged_in():
            return False
        try:
            await self._transport.logout()
        except TransportError as e:
            raise OperationFailedError(f"Logout failed: {e}")
        logger.info("Transport logged out on client request")
        return True

"""
Tests for MessagingService: contacts, broadcast jobs, chat, scheduling and logout.
"""

import pytest

from conftest import sample_contacts
from shared.utils.exceptions import (
    InvalidPayloadError,
    OperationFailedError,
    TransportNotReadyError,
    UnsupportedMediaError,
)
from wa_gateway.components.endpoints.schemas import (
    BroadcastCommand,
    ChatCommand,
    ScheduleCommand,
)
from wa_gateway.core.messaging import MessagingService
from wa_gateway.core.scheduler import ScheduleQueue
from wa_gateway.transport.jid import JID
from wa_gateway.transport.memory import InMemoryTransport


class RecordingSender:
    def __init__(self):
        self.broadcasts: list[dict] = []
        self.unicasts: list[tuple[object, dict]] = []

    async def broadcast(self, message: dict) -> int:
        self.broadcasts.append(message)
        return 1

    async def unicast(self, websocket, message: dict) -> bool:
        self.unicasts.append((websocket, message))
        return True


@pytest.fixture
def transport():
    return InMemoryTransport(logged_in=True, contacts=sample_contacts())


@pytest.fixture
def sender():
    return RecordingSender()


@pytest.fixture
def queue():
    return ScheduleQueue()


@pytest.fixture
def service(transport, sender, queue):
    return MessagingService(transport, sender, queue)


class TestContacts:
    @pytest.mark.asyncio
    async def test_lists_user_contacts_sorted_and_formatted(self, service):
        contacts = await service.list_contacts()

        assert [c.to_dict() for c in contacts] == [
            {
                "id": "6281234567@s.whatsapp.net",
                "number": "081234567",
                "isMyContact": True,
                "isFromCSV": False,
                "name": "Budi Santoso",
            },
            {
                "id": "6289876543@s.whatsapp.net",
                "number": "089876543",
                "isMyContact": True,
                "isFromCSV": False,
                "name": "Sari",
            },
            {
                "id": "4915112345@s.whatsapp.net",
                "number": "4915112345",
                "isMyContact": True,
                "isFromCSV": False,
            },
        ]

    @pytest.mark.asyncio
    async def test_requires_login(self, sender, queue):
        service = MessagingService(InMemoryTransport(logged_in=False), sender, queue)

        with pytest.raises(TransportNotReadyError):
            await service.list_contacts()

    @pytest.mark.asyncio
    async def test_send_contacts_unicasts(self, service, sender):
        await service.send_contacts("ws-1")

        websocket, message = sender.unicasts[0]
        assert websocket == "ws-1"
        assert message["type"] == "contacts"
        assert len(message["contacts"]) == 3
        assert sender.broadcasts == []


class TestBroadcastJob:
    @pytest.mark.asyncio
    async def test_progress_reports_every_recipient(self, service, sender, transport):
        transport.fail_sends_to.add("b")

        result = await service.send_broadcast(BroadcastCommand(message="x", contacts=["a", "b"]))

        assert result == (1, 1)
        assert [m["type"] for m in sender.broadcasts] == [
            "broadcast_started",
            "broadcast_progress",
            "broadcast_progress",
            "broadcast_complete",
        ]
        first, second = sender.broadcasts[1], sender.broadcasts[2]
        assert first["success"] is True and "error" not in first
        assert "success" not in second and second["error"]
        assert second["contact"] == {"id": "b", "number": "b", "isMyContact": True, "isFromCSV": False}

    @pytest.mark.asyncio
    async def test_normalizes_contact_ids(self, service, transport):
        await service.send_broadcast(
            BroadcastCommand(message="x", contacts=["+62 812 3", "628555@c.us"])
        )

        assert [jid for jid, _ in transport.sent] == [JID("628123"), JID("628555")]

    @pytest.mark.asyncio
    async def test_invalid_contact_counts_as_failure(self, service, sender):
        successful, failed = await service.send_broadcast(
            BroadcastCommand(message="x", contacts=["  ", "6281234"])
        )

        assert (successful, failed) == (1, 1)
        assert sender.broadcasts[1]["error"].startswith("invalid number format")

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "command",
        [
            BroadcastCommand(message="", contacts=["a"]),
            BroadcastCommand(message="x", contacts=[]),
        ],
    )
    async def test_missing_fields_rejected(self, service, sender, command):
        with pytest.raises(InvalidPayloadError):
            await service.send_broadcast(command)
        assert sender.broadcasts == []

    @pytest.mark.asyncio
    async def test_media_rejected(self, service, sender):
        command = BroadcastCommand.model_validate(
            {"message": "x", "contacts": ["a"], "media": {"data": "aGk=", "mimetype": "image/png"}}
        )

        with pytest.raises(UnsupportedMediaError):
            await service.send_broadcast(command)
        assert sender.broadcasts == []

    @pytest.mark.asyncio
    async def test_requires_login(self, sender, queue):
        service = MessagingService(InMemoryTransport(logged_in=False), sender, queue)

        with pytest.raises(TransportNotReadyError):
            await service.send_broadcast(BroadcastCommand(message="x", contacts=["a"]))


class TestChat:
    @pytest.mark.asyncio
    async def test_chat_is_logged_sent_and_shared(self, service, sender, transport):
        record = await service.send_chat(ChatCommand(contact_id="6281234", message="hello"))

        assert transport.sent == [(JID("6281234"), "hello")]
        assert await service.chat_history("6281234") == [record]
        assert sender.broadcasts == [
            {"type": "chat_message", "contactId": "6281234", "message": record}
        ]

    @pytest.mark.asyncio
    async def test_failed_send_is_only_logged(self, service, sender, transport):
        transport.fail_sends_to.add("6281234")

        await service.send_chat(ChatCommand(contact_id="6281234", message="hello"))

        assert len(await service.chat_history("6281234")) == 1
        assert sender.broadcasts[0]["type"] == "chat_message"

    @pytest.mark.asyncio
    async def test_chat_while_logged_out_is_recorded(self, sender, queue):
        transport = InMemoryTransport(logged_in=False)
        service = MessagingService(transport, sender, queue)

        await service.send_chat(ChatCommand(contact_id="6281234", message="hello"))

        assert transport.sent == []
        assert len(await service.chat_history("6281234")) == 1

    @pytest.mark.asyncio
    async def test_missing_fields_rejected(self, service):
        with pytest.raises(InvalidPayloadError):
            await service.send_chat(ChatCommand(contact_id="", message="hello"))


class TestScheduling:
    @pytest.mark.asyncio
    async def test_schedule_enqueues_entry(self, service, queue):
        command = ScheduleCommand.model_validate(
            {
                "message": "hi",
                "contacts": ["6281234"],
                "dateTime": "2030-01-01T09:00:00Z",
                "isRecurring": True,
                "recurringConfig": {"interval": "weekly", "endDate": "2030-02-01"},
            }
        )

        entry = await service.schedule_message(command)

        assert len(queue) == 1
        assert entry.due_at.isoformat() == "2030-01-01T09:00:00+00:00"
        assert await service.scheduled_messages() == [entry.to_dict()]
        assert entry.to_dict()["recurringConfig"] == {"interval": "weekly", "endDate": "2030-02-01"}

    @pytest.mark.asyncio
    async def test_schedule_does_not_need_login(self, sender, queue):
        service = MessagingService(InMemoryTransport(logged_in=False), sender, queue)

        await service.schedule_message(
            ScheduleCommand(message="hi", contacts=["6281234"], date_time="2030-01-01T09:00:00")
        )

        assert len(queue) == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "command",
        [
            ScheduleCommand(message="", contacts=["a"], date_time="2030-01-01T00:00:00Z"),
            ScheduleCommand(message="hi", contacts=[], date_time="2030-01-01T00:00:00Z"),
            ScheduleCommand(message="hi", contacts=["a"], date_time=""),
            ScheduleCommand(message="hi", contacts=["a"], date_time="next tuesday"),
        ],
    )
    async def test_invalid_requests_rejected(self, service, queue, command):
        with pytest.raises(InvalidPayloadError):
            await service.schedule_message(command)
        assert len(queue) == 0

    @pytest.mark.asyncio
    async def test_schedule_refused_when_scheduling_disabled(self, transport, sender, queue):
        service = MessagingService(transport, sender, queue, scheduling_enabled=False)

        with pytest.raises(OperationFailedError, match="Message scheduling is disabled"):
            await service.schedule_message(
                ScheduleCommand(message="hi", contacts=["6281234"], date_time="2030-01-01T09:00:00Z")
            )
        assert len(queue) == 0


class TestLogout:
    @pytest.mark.asyncio
    async def test_logout(self, service, transport):
        assert await service.logout() is True
        assert not transport.is_logged_in()

    @pytest.mark.asyncio
    async def test_logout_when_logged_out_is_noop(self, sender, queue):
        service = MessagingService(InMemoryTransport(logged_in=False), sender, queue)

        assert await service.logout() is False

    @pytest.mark.asyncio
    async def test_logout_failure(self, service, transport):
        transport.logout_error = "rejected"

        with pytest.raises(OperationFailedError, match="Logout failed: rejected"):
            await service.logout()
        assert transport.is_logged_in()

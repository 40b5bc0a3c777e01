"""
Tests for the hub endpoint: handshake, read loop and command dispatch.

Tests verify:
- Greeting reflects the transport session state
- Malformed and unknown commands are reported to the sender only
- Idle timeouts never close a connection
- Reset, abnormal close, oversize frames and handler faults tear down
  only the affected connection
"""

import asyncio
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio

from conftest import FakeWebSocket, make_settings, sample_contacts, wait_until
from wa_gateway.components.core.constants import WSCloseCode
from wa_gateway.components.endpoints.handlers import HubEndpoint
from wa_gateway.connection_manager import ConnectionManager
from wa_gateway.transport.memory import InMemoryTransport


async def _start(manager, ws: FakeWebSocket | None = None, name: str = "/ws"):
    ws = ws or FakeWebSocket()
    endpoint = HubEndpoint(ws, manager, name)
    task = asyncio.create_task(endpoint.run())
    await wait_until(lambda: endpoint.entry is not None)
    return ws, endpoint, task


async def _finish(ws: FakeWebSocket, task: asyncio.Task) -> None:
    ws.push_disconnect()
    await asyncio.wait_for(task, timeout=1.0)


@pytest_asyncio.fixture
async def make_manager(tmp_path):
    """Factory for managers with custom settings."""
    created = []

    def _make(transport=None, **overrides):
        transport = transport or InMemoryTransport(logged_in=True, contacts=sample_contacts())
        mgr = ConnectionManager(transport, make_settings(**overrides))
        created.append(mgr)
        return mgr

    yield _make
    for mgr in created:
        await mgr.shutdown()


class TestGreeting:
    """State pushed to a newly registered client."""

    @pytest.mark.asyncio
    async def test_logged_in_client_gets_authenticated_then_ready(self, manager):
        ws, _, task = await _start(manager)

        await wait_until(lambda: len(ws.messages()) >= 2)
        assert ws.types()[:2] == ["authenticated", "ready"]

        await _finish(ws, task)

    @pytest.mark.asyncio
    async def test_unpaired_client_gets_fresh_qr(self, make_manager):
        manager = make_manager(transport=InMemoryTransport(logged_in=False))
        manager.router.cache.set("2@cached")

        ws, _, task = await _start(manager)

        await wait_until(lambda: ws.messages("qr_code"))
        assert ws.messages()[0] == {"type": "qr_code", "qr": "2@cached"}

        await _finish(ws, task)

    @pytest.mark.asyncio
    async def test_first_client_starts_transport_once(self, manager, transport):
        ws1, _, task1 = await _start(manager)
        ws2, _, task2 = await _start(manager)

        await wait_until(lambda: manager.connector.connected)
        assert transport.connect_calls == 1

        await _finish(ws1, task1)
        await _finish(ws2, task2)


class TestReadLoop:
    """Read loop error taxonomy."""

    @pytest.mark.asyncio
    async def test_normal_close_unregisters(self, manager):
        ws, _, task = await _start(manager)

        await _finish(ws, task)

        assert manager.total_connections == 0
        assert manager.metrics.get_snapshot_sync()["connections_abnormal_closures"] == 0

    @pytest.mark.asyncio
    async def test_idle_timeout_keeps_connection(self, make_manager):
        manager = make_manager(ws_initial_read_timeout=0.02, ws_read_timeout=0.02)
        ws, endpoint, task = await _start(manager)

        await asyncio.sleep(0.15)

        assert not task.done()
        assert not endpoint.entry.closed
        assert manager.total_connections == 1

        ws.push({"type": "get_scheduled"})
        await wait_until(lambda: ws.messages("scheduled_messages"))
        await _finish(ws, task)

    @pytest.mark.asyncio
    async def test_abnormal_close_is_counted(self, manager):
        ws, _, task = await _start(manager)

        ws.push_disconnect(code=WSCloseCode.SERVER_ERROR)
        await asyncio.wait_for(task, timeout=1.0)

        assert manager.total_connections == 0
        assert manager.metrics.get_snapshot_sync()["connections_abnormal_closures"] == 1

    @pytest.mark.asyncio
    async def test_reset_stops_loop_quietly(self, manager):
        ws, _, task = await _start(manager)

        ws.push_error(ConnectionResetError("reset by peer"))
        await asyncio.wait_for(task, timeout=1.0)

        snapshot = manager.metrics.get_snapshot_sync()
        assert manager.total_connections == 0
        assert snapshot["connections_faults"] == 0
        assert snapshot["connections_abnormal_closures"] == 0

    @pytest.mark.asyncio
    async def test_transient_read_errors_are_survived(self, manager):
        ws, _, task = await _start(manager)

        for _ in range(3):
            ws.push_error(ValueError("bad frame"))
        ws.push({"type": "get_scheduled"})

        await wait_until(lambda: ws.messages("scheduled_messages"))
        assert not task.done()

        await _finish(ws, task)

    @pytest.mark.asyncio
    async def test_repeated_read_errors_close_connection(self, manager):
        ws, endpoint, task = await _start(manager)

        for _ in range(endpoint.max_consecutive_errors):
            ws.push_error(ValueError("bad frame"))
        await asyncio.wait_for(task, timeout=1.0)

        assert ws.close_calls[0] == (WSCloseCode.PROTOCOL_ERROR, "read errors")
        assert manager.total_connections == 0

    @pytest.mark.asyncio
    async def test_oversize_frame_closes_with_1009(self, make_manager):
        manager = make_manager(ws_max_message_size=16)
        ws, _, task = await _start(manager)

        ws.push("x" * 64)
        await asyncio.wait_for(task, timeout=1.0)

        assert ws.close_calls[0] == (WSCloseCode.MESSAGE_TOO_BIG, "Message too large")
        assert manager.total_connections == 0

    @pytest.mark.asyncio
    async def test_handler_fault_tears_down_only_that_connection(self, manager):
        ws_bad, endpoint, task_bad = await _start(manager)
        ws_ok, _, task_ok = await _start(manager)
        endpoint._dispatcher.dispatch = AsyncMock(side_effect=ValueError("boom"))

        ws_bad.push({"type": "get_contacts"})
        await asyncio.wait_for(task_bad, timeout=1.0)

        assert ws_bad.close_calls[0][0] == WSCloseCode.SERVER_ERROR
        assert manager.metrics.get_snapshot_sync()["connections_faults"] == 1
        assert manager.total_connections == 1
        assert not task_ok.done()

        ws_ok.push({"type": "get_scheduled"})
        await wait_until(lambda: ws_ok.messages("scheduled_messages"))
        await _finish(ws_ok, task_ok)

    @pytest.mark.asyncio
    async def test_frames_are_dispatched_with_registered_entry(self, manager):
        ws, endpoint, task = await _start(manager)
        endpoint._dispatcher.dispatch = AsyncMock(return_value="get_contacts")

        ws.push({"type": "get_contacts"})
        await wait_until(lambda: endpoint._dispatcher.dispatch.await_count == 1)

        entry, data = endpoint._dispatcher.dispatch.await_args.args
        assert entry is endpoint.entry
        assert entry is await manager.registry.get(ws)
        assert "get_contacts" in data
        await _finish(ws, task)

    @pytest.mark.asyncio
    async def test_rejected_origin_is_closed_before_accept(self, make_manager):
        manager = make_manager(allowed_origins="https://dashboard.example")
        ws = FakeWebSocket(origin="https://evil.example")

        await asyncio.wait_for(HubEndpoint(ws, manager).run(), timeout=1.0)

        assert not ws.accepted
        assert ws.close_calls == [(WSCloseCode.POLICY_VIOLATION, "Origin not allowed")]
        assert manager.metrics.get_snapshot_sync()["connections_rejected_origin"] == 1

    @pytest.mark.asyncio
    async def test_allowed_origin_is_accepted(self, make_manager):
        manager = make_manager(allowed_origins="https://dashboard.example")
        ws, _, task = await _start(manager, FakeWebSocket(origin="https://dashboard.example"))

        assert ws.accepted
        await _finish(ws, task)


class TestCommandDispatch:
    """Command decoding and routing."""

    @pytest.mark.asyncio
    async def test_malformed_payload_reports_error_and_keeps_connection(self, manager):
        ws, _, task = await _start(manager)

        ws.push("{not json")
        await wait_until(lambda: ws.messages("error"))

        assert ws.messages("error")[0]["message"].startswith("invalid payload:")
        assert not task.done()
        assert manager.metrics.get_snapshot_sync()["commands_malformed"] == 1

        await _finish(ws, task)

    @pytest.mark.asyncio
    async def test_non_object_payload_is_malformed(self, manager):
        ws, _, task = await _start(manager)

        ws.push("[1, 2, 3]")
        await wait_until(lambda: ws.messages("error"))

        assert ws.messages("error")[0]["message"] == "invalid payload: expected a JSON object"
        await _finish(ws, task)

    @pytest.mark.asyncio
    async def test_unknown_command_reported_to_sender_only(self, manager):
        ws, _, task = await _start(manager)
        other, _, other_task = await _start(manager)

        ws.push({"type": "FOO"})
        await wait_until(lambda: ws.messages("error"))

        assert ws.messages("error") == [{"type": "error", "message": "unknown command: FOO"}]
        assert other.messages("error") == []
        assert manager.metrics.get_snapshot_sync()["commands_unknown"] == 1

        await _finish(ws, task)
        await _finish(other, other_task)

    @pytest.mark.asyncio
    async def test_type_is_case_insensitive(self, manager):
        ws, _, task = await _start(manager)

        ws.push({"type": "GET_Scheduled"})
        await wait_until(lambda: ws.messages("scheduled_messages"))

        assert ws.messages("scheduled_messages") == [{"type": "scheduled_messages", "messages": []}]
        await _finish(ws, task)

    @pytest.mark.asyncio
    async def test_json_ping_command_gets_pong(self, manager):
        ws, _, task = await _start(manager)

        ws.push({"type": "PING"})
        await wait_until(lambda: ws.messages("pong"))

        await _finish(ws, task)

    @pytest.mark.asyncio
    async def test_get_contacts(self, manager):
        ws, _, task = await _start(manager)

        ws.push({"type": "get_contacts"})
        await wait_until(lambda: ws.messages("contacts"))

        numbers = [c["number"] for c in ws.messages("contacts")[0]["contacts"]]
        assert numbers == ["081234567", "089876543", "4915112345"]
        await _finish(ws, task)

    @pytest.mark.asyncio
    async def test_broadcast_scenario(self, manager, transport):
        transport.fail_sends_to.add("b")
        ws, _, task = await _start(manager)
        observer, _, observer_task = await _start(manager)

        ws.push({"type": "send_broadcast", "message": "x", "contacts": ["a", "b"]})
        await wait_until(lambda: observer.messages("broadcast_complete"))

        job = [m for m in observer.messages() if m["type"].startswith("broadcast_")]
        assert job[0] == {"type": "broadcast_started", "message": "x", "total": 2}
        assert job[1]["current"] == 1 and job[1]["success"] is True
        assert job[2]["current"] == 2 and "error" in job[2]
        assert job[3] == {"type": "broadcast_complete", "successful": 1, "failed": 1, "total": 2}

        await _finish(ws, task)
        await _finish(observer, observer_task)

    @pytest.mark.asyncio
    async def test_broadcast_payload_type_error(self, manager):
        ws, _, task = await _start(manager)

        ws.push({"type": "send_broadcast", "message": "x", "contacts": "not-a-list"})
        await wait_until(lambda: ws.messages("error"))

        assert ws.messages("error")[0]["message"].startswith("invalid broadcast payload:")
        await _finish(ws, task)

    @pytest.mark.asyncio
    async def test_broadcast_media_is_rejected(self, manager):
        ws, _, task = await _start(manager)

        ws.push({
            "type": "send_broadcast",
            "message": "x",
            "contacts": ["a"],
            "media": {"data": "aGk=", "mimetype": "image/png", "filename": "a.png"},
        })
        await wait_until(lambda: ws.messages("error"))

        assert ws.messages("error")[0]["message"] == "Media sending is not supported by this backend"
        assert ws.messages("broadcast_started") == []
        await _finish(ws, task)

    @pytest.mark.asyncio
    async def test_schedule_success_goes_to_sender_only(self, manager):
        ws, _, task = await _start(manager)
        other, _, other_task = await _start(manager)

        ws.push({
            "type": "schedule_message",
            "message": "hi",
            "contacts": ["6281234@s.whatsapp.net"],
            "dateTime": "2999-01-01T00:00:00Z",
        })
        await wait_until(lambda: ws.messages("schedule_success"))

        assert other.messages("schedule_success") == []
        assert len(manager.schedule_queue) == 1

        await _finish(ws, task)
        await _finish(other, other_task)

    @pytest.mark.asyncio
    async def test_scheduled_list_reaches_every_client(self, manager):
        ws, _, task = await _start(manager)
        other, _, other_task = await _start(manager)

        ws.push({
            "type": "schedule_message",
            "message": "hi",
            "contacts": ["6281234"],
            "dateTime": "2999-01-01T00:00:00Z",
        })
        await wait_until(lambda: ws.messages("schedule_success"))
        ws.push({"type": "get_scheduled"})
        await wait_until(lambda: other.messages("scheduled_messages"))
        await wait_until(lambda: ws.messages("scheduled_messages"))

        for client in (ws, other):
            [listing] = client.messages("scheduled_messages")
            assert [m["message"] for m in listing["messages"]] == ["hi"]

        await _finish(ws, task)
        await _finish(other, other_task)

    @pytest.mark.asyncio
    async def test_schedule_refused_when_scheduling_disabled(self, make_manager):
        manager = make_manager(enable_scheduling=False)
        ws, _, task = await _start(manager)

        ws.push({
            "type": "schedule_message",
            "message": "hi",
            "contacts": ["6281234"],
            "dateTime": "2999-01-01T00:00:00Z",
        })
        await wait_until(lambda: ws.messages("error"))

        assert ws.messages("error") == [{"type": "error", "message": "Message scheduling is disabled"}]
        assert ws.messages("schedule_success") == []
        assert len(manager.schedule_queue) == 0
        await _finish(ws, task)

    @pytest.mark.asyncio
    async def test_schedule_with_bad_date_is_rejected(self, manager):
        ws, _, task = await _start(manager)

        ws.push({
            "type": "schedule_message",
            "message": "hi",
            "contacts": ["6281234"],
            "dateTime": "tomorrow-ish",
        })
        await wait_until(lambda: ws.messages("error"))

        assert ws.messages("error")[0]["message"].startswith("Invalid dateTime")
        assert len(manager.schedule_queue) == 0
        await _finish(ws, task)

    @pytest.mark.asyncio
    async def test_chat_is_shared_with_every_client(self, manager, transport):
        ws, _, task = await _start(manager)
        other, _, other_task = await _start(manager)

        ws.push({"type": "send_chat", "contactId": "6281234", "message": "hello"})
        await wait_until(lambda: other.messages("chat_message"))

        chat = other.messages("chat_message")[0]
        assert chat["contactId"] == "6281234"
        assert chat["message"]["message"] == "hello"
        assert [text for _, text in transport.sent] == ["hello"]

        await _finish(ws, task)
        await _finish(other, other_task)

    @pytest.mark.asyncio
    async def test_logout_failure_is_reported(self, manager, transport):
        transport.logout_error = "server said no"
        ws, _, task = await _start(manager)

        ws.push({"type": "logout"})
        await wait_until(lambda: ws.messages("error"))

        assert ws.messages("error")[0]["message"] == "Logout failed: server said no"
        await _finish(ws, task)

    @pytest.mark.asyncio
    async def test_past_schedule_is_sent_on_next_tick(self, manager, transport):
        ws, _, task = await _start(manager)

        ws.push({
            "type": "schedule_message",
            "message": "hi",
            "contacts": ["6281234@s.whatsapp.net"],
            "dateTime": "2024-01-01T00:00:00Z",
        })
        await wait_until(lambda: ws.messages("schedule_success"))
        await manager.dispatcher.run_once()

        assert ws.messages("scheduled_sent") == [
            {"type": "scheduled_sent", "message": "hi", "successful": 1, "failed": 0}
        ]
        assert len(manager.schedule_queue) == 0
        assert [text for _, text in transport.sent] == ["hi"]

        await _finish(ws, task)

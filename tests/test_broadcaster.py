"""
Tests for broadcast / unicast delivery and connection lifecycle.

Tests verify:
- Broadcast reaches exactly the connections still open at send time
- A failed write removes the connection from the registry
- Unicast to an unregistered socket is a no-op
- Slow connections are bounded by the write deadline
"""

import asyncio

import pytest

from conftest import FakeWebSocket, make_settings
from wa_gateway.components.core.constants import WSCloseCode
from wa_gateway.connection_manager import ConnectionManager


async def _connect(manager, count: int, **kwargs) -> list[FakeWebSocket]:
    sockets = []
    for i in range(count):
        ws = FakeWebSocket(**kwargs)
        await manager.connect(ws, f"conn{i}")
        sockets.append(ws)
    return sockets


class TestBroadcast:
    """Fan-out to every registered connection."""

    @pytest.mark.asyncio
    async def test_broadcast_reaches_every_connection(self, manager):
        sockets = await _connect(manager, 3)

        sent = await manager.broadcast({"type": "ready"})

        assert sent == 3
        for ws in sockets:
            assert ws.types() == ["ready"]

    @pytest.mark.asyncio
    async def test_broadcast_with_no_clients_returns_zero(self, manager):
        assert await manager.broadcast({"type": "ready"}) == 0

    @pytest.mark.asyncio
    async def test_failed_write_removes_connection(self, manager):
        healthy = await _connect(manager, 2)
        broken = FakeWebSocket(fail_sends=True)
        await manager.connect(broken, "broken")

        first = await manager.broadcast({"type": "ready"})
        second = await manager.broadcast({"type": "ready"})

        assert first == 2
        assert second == 2
        assert manager.total_connections == 2
        assert broken.closed
        assert broken.close_calls[0][0] == WSCloseCode.GOING_AWAY
        for ws in healthy:
            assert ws.types() == ["ready", "ready"]

    @pytest.mark.asyncio
    async def test_failure_metrics_recorded(self, manager):
        await _connect(manager, 1)
        await _connect(manager, 2, fail_sends=True)

        await manager.broadcast({"type": "ready"})
        snapshot = manager.metrics.get_snapshot_sync()

        assert snapshot["broadcasts_total"] == 1
        assert snapshot["broadcasts_failed"] == 1
        assert snapshot["broadcasts_failed_recipients"] == 2

    @pytest.mark.asyncio
    async def test_closed_connection_is_skipped(self, manager):
        sockets = await _connect(manager, 2)
        entry = await manager.registry.get(sockets[0])
        await entry.close()

        sent = await manager.broadcast({"type": "ready"})

        assert sent == 1
        assert sockets[0].types() == []

    @pytest.mark.asyncio
    async def test_slow_connection_bounded_by_write_deadline(self, manager):
        fast = await _connect(manager, 1)
        await _connect(manager, 1, send_delay=5.0)

        loop = asyncio.get_running_loop()
        started = loop.time()
        sent = await manager.broadcast({"type": "ready"})
        elapsed = loop.time() - started

        assert sent == 1
        assert elapsed < manager.settings.ws_write_timeout + 0.5
        assert fast[0].types() == ["ready"]
        assert manager.total_connections == 1

    @pytest.mark.asyncio
    async def test_batches_cover_every_connection(self, transport):
        mgr = ConnectionManager(transport, make_settings(ws_broadcast_batch_size=2))
        try:
            sockets = await _connect(mgr, 5)
            assert await mgr.broadcast({"type": "ready"}) == 5
            assert all(ws.types() == ["ready"] for ws in sockets)
        finally:
            await mgr.shutdown()


class TestUnicast:
    """Delivery to a single connection."""

    @pytest.mark.asyncio
    async def test_unicast_to_registered_connection(self, manager):
        target, other = await _connect(manager, 2)

        assert await manager.unicast(target, {"type": "error", "message": "x"}) is True
        assert target.types() == ["error"]
        assert other.types() == []

    @pytest.mark.asyncio
    async def test_unicast_to_unregistered_socket_is_noop(self, manager):
        stranger = FakeWebSocket()

        assert await manager.unicast(stranger, {"type": "ready"}) is False
        assert stranger.sent == []

    @pytest.mark.asyncio
    async def test_unicast_failure_tears_down_connection(self, manager):
        (broken,) = await _connect(manager, 1, fail_sends=True)

        assert await manager.unicast(broken, {"type": "ready"}) is False
        assert manager.total_connections == 0
        assert manager.metrics.get_snapshot_sync()["unicasts_failed"] == 1


class TestLifecycle:
    """Accept, teardown and shutdown."""

    @pytest.mark.asyncio
    async def test_connect_accepts_and_registers(self, manager):
        ws = FakeWebSocket()

        entry = await manager.connect(ws, "abc")

        assert ws.accepted
        assert entry.connection_id == "abc"
        assert manager.total_connections == 1
        assert entry.keepalive_task is not None

    @pytest.mark.asyncio
    async def test_disconnect_twice_closes_once(self, manager):
        ws = FakeWebSocket()
        entry = await manager.connect(ws, "abc")

        assert await manager.disconnect(entry) is True
        assert await manager.disconnect(entry) is False
        assert len(ws.close_calls) == 1
        assert manager.metrics.get_snapshot_sync()["connections_closed"] == 1

    @pytest.mark.asyncio
    async def test_shutdown_closes_everything_and_refuses_new_clients(self, manager):
        sockets = await _connect(manager, 3)

        closed = await manager.shutdown()

        assert closed == 3
        assert manager.total_connections == 0
        assert all(ws.close_calls == [(WSCloseCode.GOING_AWAY, "server shutdown")] for ws in sockets)
        with pytest.raises(ConnectionError):
            await manager.connect(FakeWebSocket(), "late")

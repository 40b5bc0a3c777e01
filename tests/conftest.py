"""
Pytest configuration and fixtures for gateway tests.
"""

import asyncio
import json
from types import SimpleNamespace
from typing import Any

import pytest
import pytest_asyncio
from fastapi import WebSocketDisconnect
from starlette.websockets import WebSocketState

from shared.config.settings import Settings
from wa_gateway.components.core.constants import WSCloseCode
from wa_gateway.connection_manager import ConnectionManager
from wa_gateway.transport.jid import JID, ContactInfo
from wa_gateway.transport.memory import InMemoryTransport


class FakeWebSocket:
    """
    In-memory stand-in for a Starlette WebSocket.

    Frames written by the server are decoded into `sent`. Frames for the
    server to read are queued with push(); push_disconnect() queues a
    client close.
    """

    def __init__(
        self,
        origin: str | None = None,
        fail_sends: bool = False,
        send_delay: float = 0.0,
    ):
        self.headers: dict[str, str] = {"origin": origin} if origin else {}
        self.client = SimpleNamespace(host="127.0.0.1", port=51234)
        self.client_state = WebSocketState.CONNECTING
        self.application_state = WebSocketState.CONNECTING
        self.fail_sends = fail_sends
        self.send_delay = send_delay
        self.sent: list[Any] = []
        self.accepted = False
        self.close_calls: list[tuple[int, str]] = []
        self._inbox: asyncio.Queue = asyncio.Queue()

    # Server side ---------------------------------------------------------

    async def accept(self) -> None:
        self.accepted = True
        self.client_state = WebSocketState.CONNECTED
        self.application_state = WebSocketState.CONNECTED

    async def send_json(self, data: Any) -> None:
        await self._send(data)

    async def send_text(self, text: str) -> None:
        try:
            await self._send(json.loads(text))
        except json.JSONDecodeError:
            await self._send(text)

    async def _send(self, frame: Any) -> None:
        if self.send_delay:
            await asyncio.sleep(self.send_delay)
        if self.fail_sends:
            raise ConnectionResetError("peer went away")
        self.sent.append(frame)

    async def receive_text(self) -> str:
        item = await self._inbox.get()
        if isinstance(item, BaseException):
            raise item
        return item

    async def close(self, code: int = 1000, reason: str | None = None) -> None:
        self.close_calls.append((code, reason or ""))
        self.client_state = WebSocketState.DISCONNECTED
        self.application_state = WebSocketState.DISCONNECTED
        self._inbox.put_nowait(WebSocketDisconnect(code=WSCloseCode.NORMAL))

    # Client side ---------------------------------------------------------

    def push(self, frame: str | dict) -> None:
        if isinstance(frame, dict):
            frame = json.dumps(frame)
        self._inbox.put_nowait(frame)

    def push_error(self, exc: BaseException) -> None:
        self._inbox.put_nowait(exc)

    def push_disconnect(self, code: int = WSCloseCode.NORMAL) -> None:
        self._inbox.put_nowait(WebSocketDisconnect(code=code))

    @property
    def closed(self) -> bool:
        return bool(self.close_calls)

    def messages(self, message_type: str | None = None) -> list[dict]:
        frames = [f for f in self.sent if isinstance(f, dict)]
        if message_type is None:
            return frames
        return [f for f in frames if f.get("type") == message_type]

    def types(self) -> list[str]:
        return [f.get("type") for f in self.messages()]


def make_settings(**overrides: Any) -> Settings:
    """Settings isolated from the developer's .env and environment."""
    values: dict[str, Any] = {
        "environment": "test",
        "debug": False,
        "allowed_origins": "",
        "qr_broadcast_delay": 0.0,
        "ws_ping_interval": 30.0,
        "ws_write_timeout": 1.0,
        "connect_retry_wait": 0.01,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def sample_contacts() -> dict[JID, ContactInfo]:
    return {
        JID("6281234567"): ContactInfo(full_name="Budi Santoso"),
        JID("6289876543"): ContactInfo(push_name="Sari"),
        JID("4915112345"): ContactInfo(),
        JID("120363000000", "g.us"): ContactInfo(full_name="Family group"),
    }


async def wait_until(predicate, timeout: float = 1.0, interval: float = 0.005) -> None:
    """Poll until predicate() is truthy or fail the test."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            pytest.fail("condition not met before timeout")
        await asyncio.sleep(interval)


@pytest.fixture
def settings(tmp_path) -> Settings:
    return make_settings(whatsapp_data_dir=str(tmp_path / "data"))


@pytest.fixture
def transport() -> InMemoryTransport:
    """Logged-in transport with a few contacts."""
    return InMemoryTransport(logged_in=True, contacts=sample_contacts())


@pytest.fixture
def fake_ws():
    return FakeWebSocket


@pytest_asyncio.fixture
async def manager(transport, settings):
    """A fresh ConnectionManager, shut down after the test."""
    mgr = ConnectionManager(transport, settings)
    yield mgr
    await mgr.shutdown()

"""
Per-connection state.

A ConnectionEntry owns one client socket, the lock that serializes writes
to it, its read deadline and the handle of its keepalive task.

Status moves one way only: OPEN -> CLOSING -> CLOSED. close() performs
the teardown exactly once no matter how many tasks race to call it
(read loop, keepalive, broadcaster, shutdown).
"""

from __future__ import annotations

import asyncio
import time
from enum import Enum
from typing import Any, TYPE_CHECKING

from shared.config.logging import get_logger
from wa_gateway.components.core.constants import WSCloseCode, WSConstants

if TYPE_CHECKING:
    from fastapi import WebSocket

logger = get_logger(__name__)


class ConnectionStatus(str, Enum):
    OPEN = "open"
    CLOSING = "closing"
    CLOSED = "closed"


class ConnectionClosedError(ConnectionError):
    """Write attempted on an entry that is already closing or closed."""


class ConnectionEntry:
    """
    State for one registered client connection.

    The entry is keyed by its websocket in the registry, so two entries
    for the same socket can never coexist.
    """

    def __init__(
        self,
        websocket: "WebSocket",
        connection_id: str,
        read_timeout: float = WSConstants.READ_TIMEOUT,
        initial_read_timeout: float = WSConstants.INITIAL_READ_TIMEOUT,
    ) -> None:
        self.websocket = websocket
        self.connection_id = connection_id
        self.read_timeout = read_timeout
        self.connected_at = time.time()

        self._status = ConnectionStatus.OPEN
        self._write_lock = asyncio.Lock()
        self._keepalive_task: asyncio.Task | None = None
        self._read_deadline = time.monotonic() + initial_read_timeout

    def __repr__(self) -> str:
        return f"<ConnectionEntry {self.connection_id} {self._status.value}>"

    @property
    def status(self) -> ConnectionStatus:
        return self._status

    @property
    def closed(self) -> bool:
        """True once teardown has started. Never flips back."""
        return self._status is not ConnectionStatus.OPEN

    # =========================================================================
    # Read deadline
    # =========================================================================

    def refresh_read_deadline(self, timeout: float | None = None) -> None:
        """Push the read deadline forward by timeout (default: read_timeout)."""
        self._read_deadline = time.monotonic() + (
            timeout if timeout is not None else self.read_timeout
        )

    @property
    def read_deadline(self) -> float:
        """Deadline on the time.monotonic() clock."""
        return self._read_deadline

    def time_until_read_deadline(self) -> float:
        """Seconds left before the read deadline. Never negative."""
        return max(0.0, self._read_deadline - time.monotonic())

    # =========================================================================
    # Keepalive handle
    # =========================================================================

    def attach_keepalive(self, task: asyncio.Task) -> None:
        if self.closed:
            task.cancel()
            return
        self._keepalive_task = task

    @property
    def keepalive_task(self) -> asyncio.Task | None:
        return self._keepalive_task

    # =========================================================================
    # Writes
    # =========================================================================

    async def send_json(
        self,
        message: dict[str, Any],
        timeout: float = WSConstants.WRITE_TIMEOUT,
    ) -> None:
        """
        Write one JSON frame under the entry's write lock.

        Raises:
            ConnectionClosedError: The entry is closing or closed.
            asyncio.TimeoutError: The frame was not flushed within timeout.
            Exception: Whatever the underlying socket raised.
        """
        await self._write(self.websocket.send_json, message, timeout)

    async def send_text(
        self,
        text: str,
        timeout: float = WSConstants.WRITE_TIMEOUT,
    ) -> None:
        """Write one text frame under the entry's write lock."""
        await self._write(self.websocket.send_text, text, timeout)

    async def _write(self, send, payload: Any, timeout: float) -> None:
        if self.closed:
            raise ConnectionClosedError(f"connection {self.connection_id} is closed")
        async with self._write_lock:
            # Re-check: close() may have run while waiting for the lock
            if self.closed:
                raise ConnectionClosedError(f"connection {self.connection_id} is closed")
            await asyncio.wait_for(send(payload), timeout=timeout)

    # =========================================================================
    # Teardown
    # =========================================================================

    async def close(
        self,
        code: int = WSCloseCode.NORMAL,
        reason: str = "",
        timeout: float = WSConstants.WRITE_TIMEOUT,
    ) -> bool:
        """
        Tear the connection down.

        Order: cancel keepalive, mark closed, release the socket.

        Returns:
            True if this call performed the teardown, False if another
            caller already had.
        """
        if self._status is not ConnectionStatus.OPEN:
            return False
        self._status = ConnectionStatus.CLOSING

        task = self._keepalive_task
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()

        self._status = ConnectionStatus.CLOSED

        try:
            await asyncio.wait_for(
                self.websocket.close(code=code, reason=reason),
                timeout=timeout,
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            # Socket already gone (peer closed first, or handshake state mismatch)
            logger.debug(
                "Socket close raised",
                connection_id=self.connection_id,
                error=type(e).__name__,
            )
        return True

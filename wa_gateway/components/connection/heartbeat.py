"""
Keepalive for client connections.

Each registered connection gets one KeepaliveTask that writes a JSON ping
frame every `interval` seconds. A probe that cannot be written within the
write timeout means the peer is gone: the task hands the entry to the
failure callback (which tears it down) and exits.

Incoming heartbeats are handled by handle_heartbeat(): a ping is answered
with a pong, and both pings and pongs push the read deadline forward.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, TYPE_CHECKING

from shared.config.logging import get_logger
from wa_gateway.components.core.constants import (
    MSG_PING_JSON,
    MSG_PING_PLAIN,
    MSG_PONG_JSON,
    WSConstants,
)

if TYPE_CHECKING:
    from wa_gateway.components.connection.state import ConnectionEntry
    from wa_gateway.components.metrics.collector import MetricsCollector

_heartbeat_logger = get_logger(__name__)

FailureCallback = Callable[["ConnectionEntry"], Awaitable[None]]


class KeepaliveTask:
    """
    Periodic ping writer for a single connection.

    Stops when any of these happen:
    - the task is cancelled (entry.close() does this)
    - the process-wide shutdown event is set
    - a probe write fails
    """

    def __init__(
        self,
        entry: "ConnectionEntry",
        shutdown_event: asyncio.Event,
        interval: float = WSConstants.PING_INTERVAL,
        write_timeout: float = WSConstants.WRITE_TIMEOUT,
        on_failure: FailureCallback | None = None,
        metrics: "MetricsCollector | None" = None,
    ) -> None:
        self._entry = entry
        self._shutdown = shutdown_event
        self._interval = interval
        self._write_timeout = write_timeout
        self._on_failure = on_failure
        self._metrics = metrics
        self._probes_sent = 0

    @property
    def probes_sent(self) -> int:
        return self._probes_sent

    def start(self) -> asyncio.Task:
        """Spawn the task and attach it to the entry as its keepalive handle."""
        task = asyncio.create_task(
            self.run(),
            name=f"keepalive_{self._entry.connection_id}",
        )
        self._entry.attach_keepalive(task)
        return task

    async def run(self) -> None:
        entry = self._entry
        try:
            while not entry.closed:
                # Sleep one interval, waking early on shutdown
                try:
                    await asyncio.wait_for(self._shutdown.wait(), timeout=self._interval)
                    return
                except asyncio.TimeoutError:
                    pass

                if entry.closed:
                    return

                try:
                    await entry.send_text(MSG_PING_JSON, timeout=self._write_timeout)
                    self._probes_sent += 1
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    _heartbeat_logger.info(
                        "Keepalive probe failed, closing connection",
                        connection_id=entry.connection_id,
                        error=type(e).__name__,
                    )
                    if self._metrics is not None:
                        self._metrics.increment_keepalive_failures_sync()
                    if self._on_failure is not None:
                        await self._on_failure(entry)
                    else:
                        await entry.close()
                    return
        except asyncio.CancelledError:
            _heartbeat_logger.debug(
                "Keepalive cancelled",
                connection_id=entry.connection_id,
            )


def is_ping_frame(data: str) -> bool:
    return data == MSG_PING_PLAIN or data == MSG_PING_JSON


def is_pong_frame(data: str) -> bool:
    return data == MSG_PONG_JSON


async def handle_heartbeat(
    entry: "ConnectionEntry",
    data: str,
    write_timeout: float = WSConstants.WRITE_TIMEOUT,
) -> bool:
    """
    Centralized heartbeat handling.

    Responds to ping messages with pong. Supports both plain text
    and JSON formatted pings. A pong from the client only refreshes the
    read deadline.

    Args:
        entry: The connection the frame arrived on.
        data: The received message data.
        write_timeout: Deadline for the pong write.

    Returns:
        True if message was a heartbeat and was handled, False otherwise.
    """
    if is_pong_frame(data):
        entry.refresh_read_deadline()
        return True

    if is_ping_frame(data):
        entry.refresh_read_deadline()
        await reply_pong(entry, write_timeout)
        return True

    return False


async def reply_pong(
    entry: "ConnectionEntry",
    write_timeout: float = WSConstants.WRITE_TIMEOUT,
) -> None:
    """Answer a client ping. Failures are left for the keepalive/read loop to detect."""
    try:
        await entry.send_text(MSG_PONG_JSON, timeout=write_timeout)
    except (ConnectionError, RuntimeError, OSError, asyncio.TimeoutError):
        # Connection may have closed - caller will handle cleanup
        pass
    except asyncio.CancelledError:
        raise
    except Exception as e:
        _heartbeat_logger.warning(
            "Unexpected error sending heartbeat response",
            connection_id=entry.connection_id,
            error=type(e).__name__,
            message=str(e),
        )

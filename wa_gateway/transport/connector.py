"""
Transport connector.

Brings the messaging transport up once per process and keeps retrying
until it connects:
- start() is idempotent; the first client connection triggers it
- connect() is retried every `retry_wait` seconds
- an AlreadyConnectedError counts as success
- shutdown interrupts the wait between attempts immediately
"""

from __future__ import annotations

import asyncio

from shared.config.logging import get_logger
from wa_gateway.components.core.constants import WSConstants
from wa_gateway.transport.base import (
    AlreadyConnectedError,
    MessagingTransport,
    TransportError,
)

logger = get_logger(__name__)


class TransportConnector:
    """
    Owns the transport's connect lifecycle.

    Usage:
        connector = TransportConnector(transport, shutdown_event)
        await connector.prepare(force_fresh_login=False, auto_reconnect=True)
        connector.start()      # safe to call from every new client
        ...
        await connector.stop()
    """

    def __init__(
        self,
        transport: MessagingTransport,
        shutdown_event: asyncio.Event,
        retry_wait: float = WSConstants.CONNECT_RETRY_WAIT,
    ) -> None:
        self._transport = transport
        self._shutdown = shutdown_event
        self._retry_wait = retry_wait
        self._started = False
        self._connected = False
        self._attempts = 0
        self._task: asyncio.Task | None = None

    @property
    def started(self) -> bool:
        return self._started

    @property
    def connected(self) -> bool:
        return self._connected

    @property
    def attempts(self) -> int:
        return self._attempts

    async def prepare(
        self,
        force_fresh_login: bool = False,
        auto_reconnect: bool = True,
    ) -> None:
        """
        Apply start-up session policy before the first connect.

        With force_fresh_login, a stored session is logged out so the next
        connect produces a new QR code. If the logout itself fails the
        stored session is deleted instead.
        """
        self._transport.set_auto_reconnect(auto_reconnect)

        if not self._transport.has_stored_session():
            logger.info("No stored transport session, a QR code will be generated")
            return

        if not force_fresh_login:
            logger.info("Stored transport session found, will reconnect with it")
            return

        logger.info("FORCE_FRESH_LOGIN enabled, logging out of stored session")
        try:
            await self._transport.logout()
            logger.info("Logged out of stored session")
        except TransportError as e:
            logger.warning("Logout failed, deleting stored session", error=str(e))
            try:
                await self._transport.delete_stored_session()
            except TransportError as delete_error:
                logger.error("Could not delete stored session", error=str(delete_error))

    def start(self) -> None:
        """Begin connecting in the background. Later calls are no-ops."""
        if self._started:
            return
        self._started = True
        logger.info("Starting transport connection")
        self._task = asyncio.create_task(self._connect_loop(), name="transport_connector")

    async def stop(self) -> None:
        """Cancel any pending retry and disconnect the transport."""
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        if self._started:
            try:
                await self._transport.disconnect()
            except TransportError as e:
                logger.warning("Transport disconnect failed", error=str(e))
        logger.info("Transport connector stopped")

    async def wait_connected(self) -> None:
        """Wait for the background connect loop to finish. Used by tests."""
        if self._task is not None:
            await asyncio.shield(self._task)

    async def _connect_loop(self) -> None:
        while not self._shutdown.is_set():
            if self._attempts > 0:
                logger.info("Retrying transport connect", attempt=self._attempts)
            self._attempts += 1

            try:
                await self._transport.connect()
                self._connected = True
                logger.info("Transport connected")
                return
            except AlreadyConnectedError:
                self._connected = True
                logger.info("Transport already connected")
                return
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning(
                    "Transport connect failed",
                    error=str(e),
                    retry_in=self._retry_wait,
                )

            # Wait before the next attempt, or exit on shutdown
            try:
                await asyncio.wait_for(self._shutdown.wait(), timeout=self._retry_wait)
                return
            except asyncio.TimeoutError:
                continue

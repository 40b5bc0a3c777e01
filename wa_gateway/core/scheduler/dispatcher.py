"""
Scheduled dispatch loop.

Every `interval` seconds the dispatcher takes the due entries off the
queue, sends each one to its contacts one at a time, and then broadcasts
one scheduled_sent notification per executed entry. Entries are never
re-enqueued: a per-contact failure is counted and reported, not retried.

The loop waits on "next tick OR shutdown" so stop() and process shutdown
take effect immediately.
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Callable, Protocol, TYPE_CHECKING

from shared.config.logging import get_logger
from wa_gateway.components.core.constants import WSConstants
from wa_gateway.components.core.context import sanitize_log_data
from wa_gateway.components.events import types as envelopes
from wa_gateway.core.scheduler.models import DispatchOutcome, ScheduleEntry, utcnow
from wa_gateway.core.scheduler.queue import ScheduleQueue
from wa_gateway.transport.base import MessagingTransport
from wa_gateway.transport.jid import InvalidContactError, parse_contact_jid

if TYPE_CHECKING:
    from wa_gateway.components.metrics.collector import MetricsCollector

logger = get_logger(__name__)


class BroadcasterProtocol(Protocol):
    async def broadcast(self, message: dict) -> int: ...


class ScheduledDispatcher:
    """
    Runs the scheduled-message loop.

    Usage:
        dispatcher = ScheduledDispatcher(queue, transport, manager, shutdown_event)
        await dispatcher.start()
        ...
        await dispatcher.stop()
    """

    def __init__(
        self,
        queue: ScheduleQueue,
        transport: MessagingTransport,
        broadcaster: BroadcasterProtocol,
        shutdown_event: asyncio.Event,
        interval: float = WSConstants.SCHEDULE_CHECK_INTERVAL,
        metrics: "MetricsCollector | None" = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._queue = queue
        self._transport = transport
        self._broadcaster = broadcaster
        self._shutdown = shutdown_event
        self._interval = interval if interval > 0 else WSConstants.SCHEDULE_CHECK_INTERVAL
        self._metrics = metrics
        self._clock = clock
        self._running = False
        self._task: asyncio.Task | None = None
        self._ticks = 0

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def running(self) -> bool:
        return self._running

    @property
    def ticks(self) -> int:
        return self._ticks

    async def start(self) -> None:
        """Start the dispatch loop."""
        if self._running:
            logger.warning("Scheduled dispatcher already running")
            return

        self._running = True
        self._task = asyncio.create_task(self._run_loop(), name="scheduled_dispatcher")
        logger.info("Scheduled dispatcher started", interval=self._interval)

    async def stop(self) -> None:
        """Stop the dispatch loop gracefully."""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Scheduled dispatcher stopped")

    async def _run_loop(self) -> None:
        """Main dispatch loop."""
        while self._running and not self._shutdown.is_set():
            try:
                await asyncio.wait_for(self._shutdown.wait(), timeout=self._interval)
                break
            except asyncio.TimeoutError:
                pass

            try:
                await self.run_once()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error("Scheduled dispatch tick failed", error=str(e), exc_info=True)

        self._running = False

    async def run_once(self, now: datetime | None = None) -> list[DispatchOutcome]:
        """
        Execute one tick.

        Returns:
            One outcome per executed entry, in submission order.
        """
        self._ticks += 1
        now = now or self._clock()
        due = await self._queue.take_due(now)
        if not due:
            return []

        logger.info("Dispatching scheduled messages", due=len(due), pending=len(self._queue))

        outcomes = []
        for entry in due:
            outcomes.append(await self._execute(entry))

        for outcome in outcomes:
            await self._broadcaster.broadcast(
                envelopes.scheduled_sent(
                    outcome.entry.message,
                    outcome.successful,
                    outcome.failed,
                )
            )
        return outcomes

    async def _execute(self, entry: ScheduleEntry) -> DispatchOutcome:
        outcome = DispatchOutcome(entry=entry)

        if entry.is_recurring:
            logger.warning(
                "Recurring schedule fired once; recurrence is not re-enqueued",
                entry_id=entry.id,
            )

        if not self._transport.is_logged_in():
            # Consumed anyway; every target is reported as failed
            logger.warning(
                "Cannot send scheduled message, transport not logged in",
                entry_id=entry.id,
            )
            outcome.failed = len(entry.contacts)
            outcome.errors.append("transport not logged in")
            self._record(outcome)
            return outcome

        for contact_id in entry.contacts:
            try:
                jid = parse_contact_jid(contact_id)
            except InvalidContactError as e:
                outcome.failed += 1
                outcome.errors.append(str(e))
                continue

            try:
                await self._transport.send_text(jid, entry.message)
                outcome.successful += 1
            except asyncio.CancelledError:
                raise
            except Exception as e:
                outcome.failed += 1
                outcome.errors.append(str(e))
                logger.warning(
                    "Failed to send scheduled message",
                    entry_id=entry.id,
                    contact=sanitize_log_data(contact_id),
                    error=str(e),
                )

        logger.info(
            "Scheduled message sent",
            entry_id=entry.id,
            successful=outcome.successful,
            failed=outcome.failed,
        )
        self._record(outcome)
        return outcome

    def _record(self, outcome: DispatchOutcome) -> None:
        if self._metrics is not None:
            self._metrics.record_scheduled_execution_sync(outcome.successful, outcome.failed)

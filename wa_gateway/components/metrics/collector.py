"""
Metrics Collector for WA Gateway.

Centralizes metrics collection for observability.
Thread-safe counter operations for concurrent access.
"""

from __future__ import annotations

import asyncio
import threading
from dataclasses import dataclass
from typing import Any


@dataclass
class BroadcastMetrics:
    """Metrics for fan-out and single-client sends."""
    total: int = 0
    failed: int = 0
    recipients_failed: int = 0
    unicast_total: int = 0
    unicast_failed: int = 0


@dataclass
class ConnectionMetrics:
    """Metrics for connection management."""
    opened: int = 0
    closed: int = 0
    abnormal_closures: int = 0
    faults: int = 0
    keepalive_failures: int = 0
    rejected_origin: int = 0


@dataclass
class CommandMetrics:
    """Metrics for inbound client commands."""
    processed: int = 0
    malformed: int = 0
    unknown: int = 0


@dataclass
class ScheduleMetrics:
    """Metrics for the scheduled dispatch loop."""
    executed: int = 0
    targets_sent: int = 0
    targets_failed: int = 0


class MetricsCollector:
    """
    Thread-safe metrics collector for the WA Gateway.

    Counters are bumped from the hot path with the *_sync methods, which
    only take a threading.Lock and never yield to the event loop.

    Usage:
        metrics = MetricsCollector()
        metrics.increment_broadcast_total_sync()
        stats = metrics.get_snapshot_sync()
    """

    def __init__(self):
        """Initialize metrics collector."""
        self._lock = asyncio.Lock()
        self._sync_lock = threading.Lock()
        self._broadcast = BroadcastMetrics()
        self._connection = ConnectionMetrics()
        self._command = CommandMetrics()
        self._schedule = ScheduleMetrics()

    # ==========================================================================
    # Broadcast Metrics
    # ==========================================================================

    def increment_broadcast_total_sync(self) -> None:
        with self._sync_lock:
            self._broadcast.total += 1

    def increment_broadcast_failed_sync(self) -> None:
        with self._sync_lock:
            self._broadcast.failed += 1

    def add_failed_recipients_sync(self, count: int) -> None:
        with self._sync_lock:
            self._broadcast.recipients_failed += count

    def increment_unicast_total_sync(self) -> None:
        with self._sync_lock:
            self._broadcast.unicast_total += 1

    def increment_unicast_failed_sync(self) -> None:
        with self._sync_lock:
            self._broadcast.unicast_failed += 1

    # ==========================================================================
    # Connection Metrics
    # ==========================================================================

    def increment_connections_opened_sync(self) -> None:
        with self._sync_lock:
            self._connection.opened += 1

    def increment_connections_closed_sync(self) -> None:
        with self._sync_lock:
            self._connection.closed += 1

    def increment_abnormal_closures_sync(self) -> None:
        """Read loop ended on an unexpected close."""
        with self._sync_lock:
            self._connection.abnormal_closures += 1

    def increment_connection_faults_sync(self) -> None:
        """Unexpected exception inside a read-loop iteration."""
        with self._sync_lock:
            self._connection.faults += 1

    def increment_keepalive_failures_sync(self) -> None:
        with self._sync_lock:
            self._connection.keepalive_failures += 1

    def increment_rejected_origin_sync(self) -> None:
        with self._sync_lock:
            self._connection.rejected_origin += 1

    # ==========================================================================
    # Command Metrics
    # ==========================================================================

    def increment_commands_processed_sync(self) -> None:
        with self._sync_lock:
            self._command.processed += 1

    def increment_commands_malformed_sync(self) -> None:
        with self._sync_lock:
            self._command.malformed += 1

    def increment_commands_unknown_sync(self) -> None:
        with self._sync_lock:
            self._command.unknown += 1

    # ==========================================================================
    # Schedule Metrics
    # ==========================================================================

    def record_scheduled_execution_sync(self, sent: int, failed: int) -> None:
        """Record one executed schedule entry and its per-target outcome."""
        with self._sync_lock:
            self._schedule.executed += 1
            self._schedule.targets_sent += sent
            self._schedule.targets_failed += failed

    # ==========================================================================
    # Snapshot
    # ==========================================================================

    async def get_snapshot(self) -> dict[str, Any]:
        """
        Get a snapshot of all metrics.

        Returns a copy to prevent modification of internal state.
        """
        async with self._lock:
            return self.get_snapshot_sync()

    def get_snapshot_sync(self) -> dict[str, Any]:
        """Get metrics snapshot (sync version for health checks)."""
        with self._sync_lock:
            return self._get_snapshot_internal()

    def _get_snapshot_internal(self) -> dict[str, Any]:
        """
        Internal method to build snapshot dict.

        Metric names follow the pattern {category}_{metric} where category
        is plural (broadcasts, connections, commands, scheduled).
        """
        return {
            # Broadcast metrics
            "broadcasts_total": self._broadcast.total,
            "broadcasts_failed": self._broadcast.failed,
            "broadcasts_failed_recipients": self._broadcast.recipients_failed,
            "unicasts_total": self._broadcast.unicast_total,
            "unicasts_failed": self._broadcast.unicast_failed,
            # Connection metrics
            "connections_opened": self._connection.opened,
            "connections_closed": self._connection.closed,
            "connections_abnormal_closures": self._connection.abnormal_closures,
            "connections_faults": self._connection.faults,
            "connections_keepalive_failures": self._connection.keepalive_failures,
            "connections_rejected_origin": self._connection.rejected_origin,
            # Command metrics
            "commands_processed": self._command.processed,
            "commands_malformed": self._command.malformed,
            "commands_unknown": self._command.unknown,
            # Schedule metrics
            "scheduled_executed": self._schedule.executed,
            "scheduled_targets_sent": self._schedule.targets_sent,
            "scheduled_targets_failed": self._schedule.targets_failed,
        }

"""
Prometheus Metrics Export for WA Gateway.

Formats internal metrics in Prometheus exposition format.
No external dependencies required.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, TYPE_CHECKING

if TYPE_CHECKING:
    from wa_gateway.connection_manager import ConnectionManager


# =============================================================================
# Metric Types
# =============================================================================


class MetricType(str, Enum):
    """Prometheus metric types."""

    COUNTER = "counter"
    GAUGE = "gauge"


@dataclass
class MetricDefinition:
    """
    Definition of a metric for Prometheus output.

    `source` is the key looked up in the stats dict; keys under the
    "metrics" sub-dict are prefixed with "metrics.".
    """

    name: str
    help_text: str
    metric_type: MetricType
    source: str
    default: float | int = 0


# =============================================================================
# Metric Definitions
# =============================================================================

METRIC_DEFINITIONS: list[MetricDefinition] = [
    # Gauges
    MetricDefinition(
        name="wagateway_connections_total",
        help_text="Current number of registered WebSocket clients",
        metric_type=MetricType.GAUGE,
        source="total_connections",
    ),
    MetricDefinition(
        name="wagateway_transport_logged_in",
        help_text="1 when the messaging transport has an authenticated session",
        metric_type=MetricType.GAUGE,
        source="transport_logged_in",
    ),
    MetricDefinition(
        name="wagateway_scheduled_pending",
        help_text="Schedule entries waiting for their due time",
        metric_type=MetricType.GAUGE,
        source="scheduled_pending",
    ),

    # Broadcast counters
    MetricDefinition(
        name="wagateway_broadcasts_total",
        help_text="Total fan-out operations",
        metric_type=MetricType.COUNTER,
        source="metrics.broadcasts_total",
    ),
    MetricDefinition(
        name="wagateway_broadcasts_failed",
        help_text="Fan-out operations with at least one failed recipient",
        metric_type=MetricType.COUNTER,
        source="metrics.broadcasts_failed",
    ),
    MetricDefinition(
        name="wagateway_broadcasts_failed_recipients",
        help_text="Total failed recipients across all fan-outs",
        metric_type=MetricType.COUNTER,
        source="metrics.broadcasts_failed_recipients",
    ),
    MetricDefinition(
        name="wagateway_unicasts_total",
        help_text="Total single-client sends",
        metric_type=MetricType.COUNTER,
        source="metrics.unicasts_total",
    ),
    MetricDefinition(
        name="wagateway_unicasts_failed",
        help_text="Failed single-client sends",
        metric_type=MetricType.COUNTER,
        source="metrics.unicasts_failed",
    ),

    # Connection counters
    MetricDefinition(
        name="wagateway_connections_opened",
        help_text="Connections registered since start",
        metric_type=MetricType.COUNTER,
        source="metrics.connections_opened",
    ),
    MetricDefinition(
        name="wagateway_connections_closed",
        help_text="Connections torn down since start",
        metric_type=MetricType.COUNTER,
        source="metrics.connections_closed",
    ),
    MetricDefinition(
        name="wagateway_connections_abnormal_closures",
        help_text="Read loops ended by an unexpected close",
        metric_type=MetricType.COUNTER,
        source="metrics.connections_abnormal_closures",
    ),
    MetricDefinition(
        name="wagateway_connections_faults",
        help_text="Connections torn down by an unexpected handler error",
        metric_type=MetricType.COUNTER,
        source="metrics.connections_faults",
    ),
    MetricDefinition(
        name="wagateway_keepalive_failures",
        help_text="Keepalive probes that could not be written",
        metric_type=MetricType.COUNTER,
        source="metrics.connections_keepalive_failures",
    ),

    # Command counters
    MetricDefinition(
        name="wagateway_commands_processed",
        help_text="Client commands dispatched",
        metric_type=MetricType.COUNTER,
        source="metrics.commands_processed",
    ),
    MetricDefinition(
        name="wagateway_commands_malformed",
        help_text="Client frames that were not valid JSON commands",
        metric_type=MetricType.COUNTER,
        source="metrics.commands_malformed",
    ),
    MetricDefinition(
        name="wagateway_commands_unknown",
        help_text="Client commands with an unknown type",
        metric_type=MetricType.COUNTER,
        source="metrics.commands_unknown",
    ),

    # Scheduler counters
    MetricDefinition(
        name="wagateway_scheduled_executed",
        help_text="Schedule entries executed",
        metric_type=MetricType.COUNTER,
        source="metrics.scheduled_executed",
    ),
    MetricDefinition(
        name="wagateway_scheduled_targets_sent",
        help_text="Scheduled per-contact sends that succeeded",
        metric_type=MetricType.COUNTER,
        source="metrics.scheduled_targets_sent",
    ),
    MetricDefinition(
        name="wagateway_scheduled_targets_failed",
        help_text="Scheduled per-contact sends that failed",
        metric_type=MetricType.COUNTER,
        source="metrics.scheduled_targets_failed",
    ),
]


# =============================================================================
# Prometheus Formatter
# =============================================================================


class PrometheusFormatter:
    """
    Formats metrics in Prometheus text exposition format.

    Reference: https://prometheus.io/docs/instrumenting/exposition_formats/

    Usage:
        formatter = PrometheusFormatter()
        output = formatter.format_all_metrics(stats)
    """

    def __init__(self, definitions: list[MetricDefinition] | None = None):
        self._definitions = definitions if definitions is not None else METRIC_DEFINITIONS

    def format_metric(
        self,
        name: str,
        value: float | int,
        help_text: str,
        metric_type: MetricType,
        labels: dict[str, str] | None = None,
    ) -> str:
        """
        Format a single metric in Prometheus format.

        Args:
            name: Metric name.
            value: Metric value.
            help_text: Help text description.
            metric_type: Prometheus metric type.
            labels: Optional label key-value pairs.

        Returns:
            Prometheus-formatted metric string.
        """
        lines = [
            f"# HELP {name} {help_text}",
            f"# TYPE {name} {metric_type.value}",
        ]
        if labels:
            label_str = ",".join(f'{k}="{v}"' for k, v in labels.items())
            lines.append(f"{name}{{{label_str}}} {value}")
        else:
            lines.append(f"{name} {value}")
        return "\n".join(lines)

    @staticmethod
    def _lookup(stats: dict[str, Any], definition: MetricDefinition) -> float | int:
        if definition.source.startswith("metrics."):
            source = stats.get("metrics", {})
            key = definition.source[len("metrics."):]
        else:
            source = stats
            key = definition.source
        value = source.get(key, definition.default)
        if isinstance(value, bool):
            return int(value)
        return value

    def format_all_metrics(self, stats: dict[str, Any]) -> str:
        """
        Format all metrics from ConnectionManager stats.

        Args:
            stats: Stats dictionary from ConnectionManager.get_stats().

        Returns:
            Complete Prometheus exposition format string.
        """
        lines = [
            self.format_metric(
                d.name,
                self._lookup(stats, d),
                d.help_text,
                d.metric_type,
            )
            for d in self._definitions
        ]

        lines.append(self.format_metric(
            "wagateway_scrape_timestamp",
            int(time.time()),
            "Timestamp of metrics scrape",
            MetricType.GAUGE,
        ))

        return "\n".join(lines) + "\n"


# =============================================================================
# Singleton formatter
# =============================================================================

_formatter: PrometheusFormatter | None = None


def get_prometheus_formatter() -> PrometheusFormatter:
    """Get singleton Prometheus formatter."""
    global _formatter
    if _formatter is None:
        _formatter = PrometheusFormatter()
    return _formatter


async def generate_prometheus_metrics(manager: "ConnectionManager") -> str:
    """
    Generate Prometheus metrics from ConnectionManager.

    Args:
        manager: ConnectionManager instance.

    Returns:
        Prometheus exposition format string.
    """
    stats = await manager.get_stats()
    return get_prometheus_formatter().format_all_metrics(stats)

"""
Metrics and observability components.

Internal metrics collection and Prometheus exposition.
"""

from wa_gateway.components.metrics.collector import (
    MetricsCollector,
    BroadcastMetrics,
    ConnectionMetrics,
    CommandMetrics,
    ScheduleMetrics,
)
from wa_gateway.components.metrics.prometheus import (
    PrometheusFormatter,
    generate_prometheus_metrics,
)

__all__ = [
    # Metrics collector
    "MetricsCollector",
    "BroadcastMetrics",
    "ConnectionMetrics",
    "CommandMetrics",
    "ScheduleMetrics",
    # Prometheus
    "PrometheusFormatter",
    "generate_prometheus_metrics",
]

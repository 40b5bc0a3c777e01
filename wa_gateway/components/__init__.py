"""
WA Gateway Components.

Organized into domain-specific modules:
- core/       - Foundational components (constants, context)
- connection/ - Connection state, registry, keepalive
- events/     - Outbound envelopes and transport event routing
- endpoints/  - WebSocket endpoints (base, mixins, handlers, schemas)
- metrics/    - Observability (collector, prometheus)

Endpoints are not re-exported here; import them from
wa_gateway.components.endpoints.
"""

# =============================================================================
# Core Components
# =============================================================================
from wa_gateway.components.core.constants import (
    WSCloseCode,
    WSConstants,
    MSG_PING_PLAIN,
    MSG_PING_JSON,
    MSG_PONG_JSON,
    validate_websocket_origin,
)
from wa_gateway.components.core.context import WebSocketContext, sanitize_log_data

# =============================================================================
# Connection Management
# =============================================================================
from wa_gateway.components.connection.state import ConnectionEntry, ConnectionStatus
from wa_gateway.components.connection.registry import ConnectionRegistry
from wa_gateway.components.connection.heartbeat import KeepaliveTask, handle_heartbeat

# =============================================================================
# Metrics
# =============================================================================
from wa_gateway.components.metrics.collector import MetricsCollector
from wa_gateway.components.metrics.prometheus import (
    PrometheusFormatter,
    generate_prometheus_metrics,
)

# =============================================================================
# Events
# =============================================================================
from wa_gateway.components.events.router import (
    PairingArtifactCache,
    RoutingResult,
    TransportEventRouter,
)

__all__ = [
    # Core
    "WSCloseCode",
    "WSConstants",
    "MSG_PING_PLAIN",
    "MSG_PING_JSON",
    "MSG_PONG_JSON",
    "validate_websocket_origin",
    "WebSocketContext",
    "sanitize_log_data",
    # Connection
    "ConnectionEntry",
    "ConnectionStatus",
    "ConnectionRegistry",
    "KeepaliveTask",
    "handle_heartbeat",
    # Metrics
    "MetricsCollector",
    "PrometheusFormatter",
    "generate_prometheus_metrics",
    # Events
    "PairingArtifactCache",
    "RoutingResult",
    "TransportEventRouter",
]

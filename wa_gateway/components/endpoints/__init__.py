"""
WebSocket endpoint components.

Base class, mixins, command schemas and the concrete hub endpoint.
"""

from wa_gateway.components.endpoints.base import WebSocketEndpointBase
from wa_gateway.components.endpoints.mixins import (
    MessageValidationMixin,
    OriginValidationMixin,
    ConnectionLifecycleMixin,
)
from wa_gateway.components.endpoints.handlers import CommandDispatcher, HubEndpoint

__all__ = [
    # Base class
    "WebSocketEndpointBase",
    # Mixins
    "MessageValidationMixin",
    "OriginValidationMixin",
    "ConnectionLifecycleMixin",
    # Handlers
    "CommandDispatcher",
    "HubEndpoint",
]

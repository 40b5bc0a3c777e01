"""
Event handling components.

Outbound envelopes and transport event routing.
"""

from wa_gateway.components.events.types import ContactPayload, Envelope
from wa_gateway.components.events.router import (
    PairingArtifactCache,
    RoutingResult,
    TransportEventRouter,
)

__all__ = [
    "ContactPayload",
    "Envelope",
    "PairingArtifactCache",
    "RoutingResult",
    "TransportEventRouter",
]

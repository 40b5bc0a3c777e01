"""
Utilities module: Exceptions.
"""

from shared.utils.exceptions import (
    GatewayError,
    InvalidPayloadError,
    OperationFailedError,
    StartupError,
    TransportNotReadyError,
    UnsupportedMediaError,
)

__all__ = [
    "GatewayError",
    "InvalidPayloadError",
    "OperationFailedError",
    "StartupError",
    "TransportNotReadyError",
    "UnsupportedMediaError",
]

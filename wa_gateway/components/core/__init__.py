"""
Core WA Gateway components.

Foundational components: constants and connection context.
"""

from wa_gateway.components.core.constants import WSCloseCode, WSConstants
from wa_gateway.components.core.context import WebSocketContext, sanitize_log_data

__all__ = [
    # Constants
    "WSCloseCode",
    "WSConstants",
    # Context
    "WebSocketContext",
    "sanitize_log_data",
]

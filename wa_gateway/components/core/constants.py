"""
WA Gateway Constants.

Centralized constants with documentation explaining rationale for each value.
Runtime values come from shared.config.settings; the constants here are the
defaults and the values that are not worth configuring.
"""

from enum import IntEnum
from typing import Final

__all__ = [
    "WSCloseCode",
    "WSConstants",
    "MessageType",
    "CommandType",
    "MSG_PING_PLAIN",
    "MSG_PING_JSON",
    "MSG_PONG_JSON",
    "HEALTHZ_BODY",
    "ROOT_BANNER",
    "validate_websocket_origin",
]


class WSCloseCode(IntEnum):
    """
    WebSocket close codes used by the gateway.

    Standard codes (1000-1999) from RFC 6455.
    """

    NORMAL = 1000  # Normal closure
    GOING_AWAY = 1001  # Server shutting down or client navigating away
    PROTOCOL_ERROR = 1002  # Protocol error
    ABNORMAL = 1006  # Connection dropped without a close frame
    POLICY_VIOLATION = 1008  # Origin rejected
    MESSAGE_TOO_BIG = 1009  # Message too large to process
    SERVER_ERROR = 1011  # Unexpected server error


# Close codes that end a read loop without being reported as failures
EXPECTED_CLOSE_CODES: Final[frozenset[int]] = frozenset(
    {WSCloseCode.NORMAL, WSCloseCode.GOING_AWAY, WSCloseCode.ABNORMAL}
)


class WSConstants:
    """
    WA Gateway operational constants.

    Each constant is documented with the rationale for its value.
    The timing constants mirror the Settings defaults and are used when a
    component is built without settings (mostly in tests).
    """

    # ==========================================================================
    # Timeout Constants
    # ==========================================================================

    # INITIAL_READ_TIMEOUT: 60 seconds
    # Rationale: A fresh client may sit idle while the user scans the QR
    # code. The first pong moves the deadline to READ_TIMEOUT.
    INITIAL_READ_TIMEOUT: Final[float] = 60.0

    # READ_TIMEOUT: 5 minutes
    # Rationale: Far longer than PING_INTERVAL so a healthy idle client
    # always refreshes its deadline several times before it expires.
    READ_TIMEOUT: Final[float] = 300.0

    # WRITE_TIMEOUT: 30 seconds
    # Rationale: A single frame that cannot be flushed in 30s means the
    # peer stopped reading. The connection is closed instead of stalling
    # the broadcaster.
    WRITE_TIMEOUT: Final[float] = 30.0

    # PING_INTERVAL: 20 seconds
    # Rationale: Below common proxy idle timeouts (30-60s).
    PING_INTERVAL: Final[float] = 20.0

    # ==========================================================================
    # Read Loop Constants
    # ==========================================================================

    # MAX_CONSECUTIVE_READ_ERRORS: 10
    # Rationale: Unclassified read errors are logged and the loop continues.
    # A socket that fails every read would spin forever, so after this many
    # back-to-back failures the connection is torn down.
    MAX_CONSECUTIVE_READ_ERRORS: Final[int] = 10

    # ==========================================================================
    # Broadcast Constants
    # ==========================================================================

    # BROADCAST_BATCH_SIZE: 50
    # Rationale: Connections are written to in parallel batches of this
    # size. Keeps a single slow client from serializing the whole fan-out
    # without spawning thousands of tasks at once.
    BROADCAST_BATCH_SIZE: Final[int] = 50

    # ==========================================================================
    # Pairing Artifact Constants
    # ==========================================================================

    # QR_CACHE_TTL: 5 minutes
    # Rationale: A QR code older than this has been rotated by the server.
    QR_CACHE_TTL: Final[float] = 300.0

    # QR_BROADCAST_DELAY: 200 ms
    # Rationale: Lets sockets that just finished their upgrade register
    # before the first QR fan-out.
    QR_BROADCAST_DELAY: Final[float] = 0.2

    # ==========================================================================
    # Scheduler / Connector Constants
    # ==========================================================================

    SCHEDULE_CHECK_INTERVAL: Final[float] = 30.0
    CONNECT_RETRY_WAIT: Final[float] = 5.0


class MessageType:
    """Outbound envelope types (server -> client)."""

    QR_CODE: Final[str] = "qr_code"
    AUTHENTICATED: Final[str] = "authenticated"
    READY: Final[str] = "ready"
    DISCONNECTED: Final[str] = "disconnected"
    ERROR: Final[str] = "error"
    CONTACTS: Final[str] = "contacts"
    BROADCAST_STARTED: Final[str] = "broadcast_started"
    BROADCAST_PROGRESS: Final[str] = "broadcast_progress"
    BROADCAST_COMPLETE: Final[str] = "broadcast_complete"
    CHAT_MESSAGE: Final[str] = "chat_message"
    SCHEDULE_SUCCESS: Final[str] = "schedule_success"
    SCHEDULED_MESSAGES: Final[str] = "scheduled_messages"
    SCHEDULED_SENT: Final[str] = "scheduled_sent"
    PONG: Final[str] = "pong"


class CommandType:
    """Inbound command types (client -> server), compared lowercased."""

    GET_CONTACTS: Final[str] = "get_contacts"
    SEND_BROADCAST: Final[str] = "send_broadcast"
    SEND_CHAT: Final[str] = "send_chat"
    SCHEDULE_MESSAGE: Final[str] = "schedule_message"
    GET_SCHEDULED: Final[str] = "get_scheduled"
    LOGOUT: Final[str] = "logout"
    PING: Final[str] = "ping"
    PONG: Final[str] = "pong"


# Message type constants for heartbeat protocol
MSG_PING_PLAIN: Final[str] = "ping"
MSG_PING_JSON: Final[str] = '{"type":"ping"}'
MSG_PONG_JSON: Final[str] = '{"type":"pong"}'

# Fixed HTTP bodies
HEALTHZ_BODY: Final[str] = "ok"
ROOT_BANNER: Final[str] = "WhatsApp broadcast backend is running.\n"


def validate_websocket_origin(origin: str | None, settings: object) -> bool:
    """
    Validate WebSocket origin header against allowed origins.

    An empty allowed_origins setting accepts every origin, which matches
    how the dashboard is deployed next to the gateway in development.

    Args:
        origin: The Origin header value, or None if not present.
        settings: Settings object with an allowed_origins attribute.

    Returns:
        True if origin is allowed, False otherwise.
    """
    import logging
    _logger = logging.getLogger(__name__)

    allowed_origins_str = getattr(settings, "allowed_origins", None)
    if not allowed_origins_str:
        return True

    allowed = [o.strip() for o in allowed_origins_str.split(",") if o.strip()]

    # Non-browser clients (CLI tools, tests) do not send Origin
    if not origin:
        return True

    if origin in allowed:
        return True

    _logger.warning(
        "WebSocket connection rejected: origin not in allowed list",
        extra={"origin": origin, "allowed_count": len(allowed)},
    )
    return False

"""
Gateway exceptions with automatic logging.

Usage:
    from shared.utils.exceptions import InvalidPayloadError, TransportNotReadyError

    raise InvalidPayloadError("Message and contacts are required")
    raise TransportNotReadyError()
"""

from typing import Any

from shared.config.logging import get_logger

logger = get_logger(__name__)


class GatewayError(Exception):
    """
    Base exception with automatic logging.

    The message is safe to send back to the client that caused it.
    """

    def __init__(
        self,
        message: str,
        log_level: str = "warning",
        **log_context: Any,
    ):
        log_fn = getattr(logger, log_level, logger.warning)
        log_fn(message, error_type=type(self).__name__, **log_context)

        super().__init__(message)
        self.message = message


class InvalidPayloadError(GatewayError):
    """
    Client sent a command that is malformed or missing required fields.

    Reported to the originating client only; the connection stays open.
    """

    def __init__(self, message: str, **log_context: Any):
        super().__init__(message, log_level="debug", **log_context)


class UnsupportedMediaError(InvalidPayloadError):
    """Client asked to send a media payload, which the gateway does not support."""

    def __init__(self, **log_context: Any):
        super().__init__("Media sending is not supported by this backend", **log_context)


class OperationFailedError(GatewayError):
    """A valid request failed downstream (transport refused, timed out)."""

    def __init__(self, message: str, **log_context: Any):
        super().__init__(message, log_level="warning", **log_context)


class TransportNotReadyError(GatewayError):
    """Operation needs an authenticated transport session."""

    def __init__(self, **log_context: Any):
        super().__init__("WhatsApp is not connected yet", log_level="info", **log_context)


class StartupError(GatewayError):
    """
    Process-fatal condition detected during startup.

    Only raised from the application lifespan; never at runtime.
    """

    def __init__(self, message: str, **log_context: Any):
        super().__init__(message, log_level="critical", **log_context)

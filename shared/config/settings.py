"""
Application settings loaded from environment variables.
Uses pydantic-settings for type-safe configuration.
"""

from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Fallback when SCHEDULE_CHECK_INTERVAL is zero or negative
DEFAULT_SCHEDULE_CHECK_INTERVAL = 30


class Settings(BaseSettings):
    """Application settings with defaults for development."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    environment: str = "development"
    debug: bool = True

    # Server
    port: int = 3000
    # Comma-separated list of allowed origins (empty accepts any origin)
    allowed_origins: str = ""

    # Transport session storage
    whatsapp_data_dir: str = "./data"
    # Log out of a stored session at start-up so a fresh QR code is produced
    force_fresh_login: bool = False
    enable_auto_reconnect: bool = True
    # Seconds to wait between transport connect attempts
    connect_retry_wait: float = 5.0

    # Scheduling
    enable_scheduling: bool = True
    schedule_check_interval: int = DEFAULT_SCHEDULE_CHECK_INTERVAL

    # WebSocket
    ws_read_timeout: float = 300.0  # Read deadline after any pong/ping
    ws_initial_read_timeout: float = 60.0  # First deadline, leaves time for QR delivery
    ws_write_timeout: float = 30.0  # Per-frame write deadline
    ws_ping_interval: float = 20.0  # Keepalive probe period
    ws_max_message_size: int = 1 << 20  # 1 MiB
    ws_broadcast_batch_size: int = 50  # Connections written to in parallel

    # Pairing artifact (QR code) cache
    qr_cache_ttl: float = 300.0  # Cached QR older than this is not resent
    qr_broadcast_delay: float = 0.2  # Settle time before broadcasting a new QR

    @field_validator("schedule_check_interval")
    @classmethod
    def _clamp_schedule_interval(cls, value: int) -> int:
        if value <= 0:
            return DEFAULT_SCHEDULE_CHECK_INTERVAL
        return value

    def validate_runtime(self) -> list[str]:
        """
        Check settings for values that will misbehave at runtime.
        Returns a list of problems. Empty list means all checks pass.
        """
        errors = []

        if self.ws_ping_interval >= self.ws_read_timeout:
            errors.append(
                "WS_PING_INTERVAL should be shorter than WS_READ_TIMEOUT "
                "so healthy idle clients refresh their read deadline"
            )

        if self.ws_write_timeout <= 0:
            errors.append("WS_WRITE_TIMEOUT must be positive")

        if self.ws_broadcast_batch_size <= 0:
            errors.append("WS_BROADCAST_BATCH_SIZE must be positive")

        if self.environment == "production":
            if self.debug:
                errors.append("DEBUG must be False in production")
            if not self.allowed_origins:
                errors.append(
                    "ALLOWED_ORIGINS should be set in production (comma-separated list of allowed domains)"
                )

        return errors


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Convenience exports
settings = get_settings()

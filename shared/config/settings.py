"""
Application settings loaded from environment variables.
Uses pydantic-settings for type-safe configuration.

Every key can be overridden with a LIVE_SESSION_ prefixed environment
variable (e.g. LIVE_SESSION_JOIN_TIMEOUT=8) or a .env file.
"""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Client settings with defaults for local development."""

    model_config = SettingsConfigDict(
        env_prefix="LIVE_SESSION_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    environment: str = "development"
    debug: bool = True

    # Endpoints
    # The WebSocket URL is completed with the session code (and the session id for hosts)
    ws_base_url: str = "ws://localhost:8080/ws"
    api_base_url: str = "http://localhost:8080/api"
    http_timeout: float = 10.0

    # Session protocol timeouts (seconds)
    connect_timeout: float = 10.0
    join_timeout: float = 5.0

    # Transport keepalive, mirrors the 4 s STOMP heartbeats used by the server
    ws_ping_interval: float = 4.0
    ws_ping_timeout: float = 8.0
    ws_max_message_size: int = 1024 * 1024  # 1 MB, rosters of ~100 participants fit easily

    # Leaderboard fan-out
    leaderboard_throttle_ms: int = 300

    # Reconnect policy (caller layer, see live_session.reconnect)
    reconnect_initial_delay: float = 1.0
    reconnect_max_delay: float = 30.0
    reconnect_max_attempts: int = 10

    # Avatar used for join frames and for roster entries without one
    default_avatar_url: str = "https://api.dicebear.com/9.x/pixel-art/svg"

    @property
    def leaderboard_throttle_seconds(self) -> float:
        """Throttle window expressed in seconds."""
        return self.leaderboard_throttle_ms / 1000.0

    def validate_production(self) -> list[str]:
        """
        Validate settings that must be changed before running in production.
        Returns a list of validation errors. Empty list means all checks pass.
        """
        errors = []

        if self.environment == "production":
            if self.debug:
                errors.append("DEBUG must be False in production")
            if not self.ws_base_url.startswith("wss://"):
                errors.append("WS_BASE_URL must use wss:// in production")
            if not self.api_base_url.startswith("https://"):
                errors.append("API_BASE_URL must use https:// in production")

        if self.join_timeout <= 0 or self.connect_timeout <= 0:
            errors.append("CONNECT_TIMEOUT and JOIN_TIMEOUT must be positive")
        if self.leaderboard_throttle_ms < 0:
            errors.append("LEADERBOARD_THROTTLE_MS must not be negative")

        return errors


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Convenience export
settings = get_settings()

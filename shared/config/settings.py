"""
Gateway configuration, read from the environment and an optional .env file.
"""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Gateway settings with defaults for development."""

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
    ws_gateway_host: str = "0.0.0.0"
    ws_gateway_port: int = 3030
    ws_path: str = "/ws"
    server_name: str = "zone-news-ws"
    # Comma-separated list of allowed origins (empty allows any origin in development)
    allowed_origins: str = ""

    # Client credentials (shared with the token issuer)
    jwt_secret: str = "dev-secret-change-me-in-production"
    jwt_algorithm: str = "HS256"

    # Control API pre-shared secret. Empty rejects every call.
    internal_token: str = ""

    # Redis bus
    redis_url: str = "redis://localhost:6379"
    redis_pool_max_connections: int = 20
    redis_socket_timeout: int = 5
    redis_max_reconnect_attempts: int = 20
    redis_max_reconnect_delay: float = 30.0
    redis_pubsub_cleanup_timeout: float = 5.0
    bus_enabled: bool = True
    bus_channels: list[str] = [
        "news:new",
        "news:update",
        "reactions:update",
        "user:notification",
        "system:broadcast",
    ]

    # Preference / article store
    database_url: str = "sqlite:///./zone_news.db"
    preference_lookup_timeout: float = 2.0
    preference_cache_ttl: float = 60.0
    preference_cache_max_size: int = 5000

    # WebSocket tuning
    ws_heartbeat_interval: float = 30.0
    ws_send_timeout: float = 5.0
    ws_max_message_size: int = 64 * 1024  # 64 KB
    ws_broadcast_batch_size: int = 50
    ws_snapshot_limit: int = 10

    def validate_production_secrets(self) -> list[str]:
        """
        List configuration problems worth logging at startup.

        Outside production only an empty control API secret is reported.
        """
        problems = []

        if not self.internal_token:
            problems.append("INTERNAL_TOKEN is empty; the control API will reject every call")

        if self.environment != "production":
            return problems

        if _is_weak(self.jwt_secret):
            problems.append("JWT_SECRET is a placeholder or shorter than 32 characters")
        if self.internal_token and _is_weak(self.internal_token):
            problems.append("INTERNAL_TOKEN is a placeholder or shorter than 32 characters")
        if self.debug:
            problems.append("DEBUG is enabled")
        if not self.allowed_origins:
            problems.append("ALLOWED_ORIGINS is empty; every origin would be accepted")

        return problems


_PLACEHOLDER_SECRETS = frozenset(
    {"dev-secret-change-me-in-production", "secret", "password", "changeme", "default"}
)


def _is_weak(secret: str) -> bool:
    return secret in _PLACEHOLDER_SECRETS or len(secret) < 32


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Convenience exports
settings = get_settings()

DATABASE_URL = settings.database_url
REDIS_URL = settings.redis_url

"""Application settings and configuration.

This module defines all configuration options for the OpenMkt relay service.
Settings are loaded from environment variables with sensible defaults.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Settings can be overridden via environment variables or .env files.
    """

    # Application metadata
    app_name: str = Field(default="OpenMkt Relay", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    debug: bool = Field(default=False, alias="DEBUG")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Upstream AT Protocol services
    primary_service_url: str = Field(default="https://bsky.social", alias="PRIMARY_SERVICE_URL")
    chat_service_url: str = Field(default="https://api.bsky.chat", alias="CHAT_SERVICE_URL")
    chat_service_did: str = Field(default="did:web:api.bsky.chat", alias="CHAT_SERVICE_DID")
    chat_proxy_header: str = Field(
        default="did:web:api.bsky.chat#bsky_chat",
        alias="CHAT_PROXY_HEADER",
    )
    profile_base_url: str = Field(default="https://bsky.app/profile", alias="PROFILE_BASE_URL")
    http_timeout_seconds: float = Field(default=10.0, alias="HTTP_TIMEOUT_SECONDS")

    # Bot (introduction relay) account
    bot_handle: str | None = Field(default=None, alias="BOT_HANDLE")
    bot_app_password: str | None = Field(default=None, alias="BOT_APP_PASSWORD")
    admin_handle: str = Field(default="openmkt.app", alias="ADMIN_HANDLE")

    # Interest rate limiting
    rate_limit_window_seconds: int = Field(default=60 * 60, alias="RATE_LIMIT_WINDOW_SECONDS")
    rate_limit_max_requests: int = Field(default=5, alias="RATE_LIMIT_MAX_REQUESTS")
    rate_limit_backend: str = Field(default="memory", alias="RATE_LIMIT_BACKEND")
    redis_url: str = Field(default="redis://localhost:6379", alias="REDIS_URL")

    # Stored chat sessions and periodic maintenance
    chat_session_max_idle_seconds: int = Field(
        default=7 * 24 * 60 * 60,
        alias="CHAT_SESSION_MAX_IDLE_SECONDS",
    )
    maintenance_interval_seconds: float = Field(
        default=60 * 60,
        alias="MAINTENANCE_INTERVAL_SECONDS",
    )

    # CORS configuration for web frontend access
    cors_origins: list[str] = Field(
        default=["*"],
        alias="CORS_ORIGINS",
    )
    cors_allow_credentials: bool = Field(default=True, alias="CORS_ALLOW_CREDENTIALS")
    cors_allow_methods: list[str] = Field(
        default=["GET", "POST", "DELETE", "OPTIONS"],
        alias="CORS_ALLOW_METHODS",
    )
    cors_allow_headers: list[str] = Field(
        default=["*"],
        alias="CORS_ALLOW_HEADERS",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        validate_assignment=True,
        extra="ignore",
    )

    @property
    def bot_configured(self) -> bool:
        """Return True when both bot credentials are present."""
        return bool(self.bot_handle and self.bot_app_password)

    @property
    def rate_limit_window_minutes(self) -> int:
        """Return the rate-limit window expressed in whole minutes."""
        return max(1, self.rate_limit_window_seconds // 60)


settings = Settings()

"""Application settings and configuration.

This module defines all configuration options for the Secret Santa Stage
application. Settings are loaded from environment variables with sensible defaults.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from secret_santa.services.crypto import decode_encryption_key

# Base64 of the 32-byte development key; override ENCRYPTION_KEY in production.
DEV_ENCRYPTION_KEY = "ZGV2LWVuY3J5cHRpb24ta2V5LTMyLWJ5dGVzISEhISE="


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Settings can be overridden via environment variables or .env files.
    """

    # Application metadata
    app_name: str = Field(default="Secret Santa Stage", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    debug: bool = Field(default=False, alias="DEBUG")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Security and authentication
    secret_key: str = Field(alias="SECRET_KEY")
    jwt_algorithm: str = Field(default="HS256", alias="JWT_ALGORITHM")
    access_token_expire_minutes: int = Field(
        default=60 * 24 * 30,
        alias="ACCESS_TOKEN_EXPIRE_MINUTES",
    )

    # Database configuration
    database_url: str = Field(default="sqlite:///./secret_santa.db", alias="DATABASE_URL")
    test_database_url: str | None = Field(default=None, alias="TEST_DATABASE_URL")
    use_testing_database: bool = Field(default=False, alias="USE_TEST_DATABASE")
    sql_debug: bool = Field(default=False, alias="SQL_DEBUG")

    # Chat content encryption at rest (base64 encoded, 32 bytes once decoded)
    encryption_key: str = Field(default=DEV_ENCRYPTION_KEY, alias="ENCRYPTION_KEY")

    # Draw limits
    draw_max_attempts: int = Field(default=10_000, alias="DRAW_MAX_ATTEMPTS")
    draw_time_budget_seconds: float | None = Field(
        default=5.0,
        alias="DRAW_TIME_BUDGET_SECONDS",
    )
    min_participants: int = Field(default=3, alias="MIN_PARTICIPANTS")

    # Live chat connection tuning
    chat_write_wait_seconds: float = Field(default=10.0, alias="CHAT_WRITE_WAIT_SECONDS")
    chat_pong_wait_seconds: float = Field(default=60.0, alias="CHAT_PONG_WAIT_SECONDS")
    chat_ping_period_seconds: float = Field(default=54.0, alias="CHAT_PING_PERIOD_SECONDS")
    chat_max_frame_bytes: int = Field(default=512 * 1024, alias="CHAT_MAX_FRAME_BYTES")
    chat_send_queue_size: int = Field(default=256, alias="CHAT_SEND_QUEUE_SIZE")

    # CORS configuration for web frontend access
    cors_origins: list[str] = Field(
        default=["http://localhost:3000"],
        alias="CORS_ORIGINS",
    )
    cors_allow_credentials: bool = Field(default=True, alias="CORS_ALLOW_CREDENTIALS")
    cors_allow_methods: list[str] = Field(
        default=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        alias="CORS_ALLOW_METHODS",
    )
    cors_allow_headers: list[str] = Field(
        default=["Origin", "Content-Type", "Authorization"],
        alias="CORS_ALLOW_HEADERS",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        validate_assignment=True,
        extra="ignore",
    )

    @property
    def database_url_sync(self) -> str:
        """Return a sync-compatible database URL for tooling such as Alembic."""
        url = self.effective_database_url
        if url.startswith("postgresql+asyncpg"):
            return url.replace("postgresql+asyncpg", "postgresql+psycopg", 1)
        return url

    @property
    def effective_database_url(self) -> str:
        """Return the database URL respecting testing overrides.

        Returns:
            The active database URL (test database if in testing mode, otherwise production)
        """
        if self.use_testing_database and self.test_database_url:
            return self.test_database_url
        return self.database_url

    @property
    def encryption_key_bytes(self) -> bytes:
        """Return the decoded 32-byte message encryption key.

        Raises:
            ValueError: If the configured key does not decode to 32 bytes
        """
        return decode_encryption_key(self.encryption_key)


settings = Settings()  # type: ignore[call-arg]

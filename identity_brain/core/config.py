from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="allow",
    )

    APP_ENV: Literal["development", "production", "test"] = "production"
    LOG_LEVEL: str = "INFO"

    # Persistence
    STORAGE_BACKEND: Literal["memory", "redis"] = "memory"
    REDIS_URL: str = "redis://redis:6379/0"
    # Maximum number of connections Redis client will open per process
    REDIS_MAX_CONNECTIONS: int = 20
    REDIS_KEY_PREFIX: str = "identity_brain:"
    # How long a per-identity write lock may be held before Redis expires it
    REDIS_LOCK_TIMEOUT_SECONDS: float = 10.0
    REDIS_LOCK_BLOCKING_TIMEOUT_SECONDS: float = 5.0

    # Embeddings
    OPENAI_API_KEY: str | None = None
    EMBEDDING_API_BASE: str = "https://api.openai.com/v1"
    EMBEDDING_MODEL: str = "text-embedding-3-small"
    EMBEDDING_DIMENSIONS: int = 1536
    EMBEDDING_TIMEOUT_SECONDS: float = 15.0

    # Sync
    MODULE_TIMEOUT_MS: int = 30000
    SYNC_COOLDOWN_SECONDS: int = 300  # 5 minutes
    SYNC_LOCK_TIMEOUT_SECONDS: int = 60


settings = Settings()

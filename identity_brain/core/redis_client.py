from typing import Optional

import redis.asyncio as redis
from loguru import logger

from identity_brain.core.config import settings


class RedisConnection:
    """
    Shared Redis client for the process.
    Lazily connects on first use and keeps a bounded connection pool.
    """

    _instance: Optional["RedisConnection"] = None

    def __init__(self, url: str | None = None):
        self.url = url or settings.REDIS_URL
        self._client: redis.Redis | None = None

    @classmethod
    def get_instance(cls) -> "RedisConnection":
        if cls._instance is None:
            cls._instance = RedisConnection()
        return cls._instance

    async def get_client(self) -> redis.Redis:
        if self._client is None:
            if not self.url:
                raise RuntimeError("REDIS_URL is not configured")

            logger.info("Initializing shared Redis client")
            self._client = redis.from_url(
                self.url,
                decode_responses=True,
                encoding="utf-8",
                socket_connect_timeout=5,
                socket_timeout=5,
                max_connections=settings.REDIS_MAX_CONNECTIONS,
                health_check_interval=30,
                socket_keepalive=True,
            )
        return self._client

    async def close(self) -> None:
        """Close and disconnect the shared Redis client (call on shutdown)."""
        if self._client is None:
            return
        try:
            await self._client.aclose()
            logger.info("Shared Redis client closed")
        except (redis.RedisError, OSError) as exc:
            logger.warning(f"Failed to close Redis client: {exc}")
        finally:
            self._client = None


redis_connection = RedisConnection.get_instance()

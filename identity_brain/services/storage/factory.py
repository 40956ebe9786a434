from enum import Enum

from loguru import logger

from identity_brain.core.config import settings
from identity_brain.services.storage.base import StateRepository
from identity_brain.services.storage.memory import InMemoryStateRepository
from identity_brain.services.storage.redis import RedisStateRepository


class StorageBackend(Enum):
    MEMORY = "memory"
    REDIS = "redis"


def get_repository(backend: StorageBackend | str | None = None) -> StateRepository:
    """Build the repository selected by STORAGE_BACKEND (or the explicit backend)."""
    if isinstance(backend, StorageBackend):
        selected = backend
    else:
        selected = StorageBackend(backend or settings.STORAGE_BACKEND)
    repository_map = {
        StorageBackend.MEMORY: InMemoryStateRepository,
        StorageBackend.REDIS: RedisStateRepository,
    }
    logger.info(f"Using {selected.value} storage backend")
    return repository_map[selected]()

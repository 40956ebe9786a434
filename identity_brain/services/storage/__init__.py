"""
Persistence layer for identity states, snapshots, personas, sync jobs and events.

Every backend implements StateRepository; writers go through a per-identity
transaction so the load/snapshot/store sequence never interleaves.
"""

from identity_brain.services.storage.base import StateRepository, StateTransaction
from identity_brain.services.storage.factory import StorageBackend, get_repository
from identity_brain.services.storage.memory import InMemoryStateRepository
from identity_brain.services.storage.redis import RedisStateRepository

__all__ = [
    "StateRepository",
    "StateTransaction",
    "InMemoryStateRepository",
    "RedisStateRepository",
    "StorageBackend",
    "get_repository",
]

"""
Shared fixtures: a frozen clock, a deterministic embedding provider and a fully
wired in-memory identity brain.
"""

import hashlib

import pytest
import pytest_asyncio

from identity_brain.core.clock import FrozenClock
from identity_brain.core.constants import EMBEDDING_DIMENSIONS
from identity_brain.core.errors import ValidationError
from identity_brain.services.bundle import IdentityBrainBundle
from identity_brain.services.embeddings.math import normalize
from identity_brain.services.storage.memory import InMemoryStateRepository
from identity_brain.services.sync.assets import InMemoryAssetSource


class FakeEmbeddingProvider:
    """Hashes the text into a unit vector so equal texts embed identically."""

    model = "fake-embedding-3-small"

    def __init__(self, dimensions: int = EMBEDDING_DIMENSIONS):
        self.dimensions = dimensions
        self.calls: list[str] = []

    async def embed(self, text: str) -> list[float]:
        if not text or not text.strip():
            raise ValidationError("Cannot embed empty text")
        self.calls.append(text)
        digest = hashlib.sha256(text.encode("utf-8")).digest()
        raw = [float((digest[i % len(digest)] + i) % 17 - 8) or 1.0 for i in range(self.dimensions)]
        return normalize(raw)


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def repository():
    return InMemoryStateRepository()


@pytest.fixture
def assets(clock):
    return InMemoryAssetSource(clock)


@pytest.fixture
def provider():
    return FakeEmbeddingProvider()


@pytest.fixture
def brain(repository, provider, assets, clock):
    return IdentityBrainBundle(repository=repository, provider=provider, assets=assets, clock=clock)


@pytest.fixture
def store(brain):
    return brain.store


@pytest_asyncio.fixture
async def identity(brain):
    """A freshly created identity for user-1 with a name and occupation."""
    return await brain.store.create(
        "user-1",
        {"core_attributes": {"name": "Sam", "occupation": "Designer", "interests": ["climbing"]}},
    )

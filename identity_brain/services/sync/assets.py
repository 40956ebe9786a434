from collections import defaultdict
from collections.abc import Collection
from datetime import datetime
from typing import Protocol

from identity_brain.core.clock import Clock, system_clock
from identity_brain.models.identity import new_id
from identity_brain.models.sync import RecentGeneration


class AssetSource(Protocol):
    """Read access to a user's photos and generated content, owned by other services."""

    async def count_photos(self, user_id: str) -> int: ...

    async def recent_generations(self, user_id: str, limit: int = 10) -> list[RecentGeneration]: ...

    async def count_content(self, user_id: str, content_types: Collection[str]) -> int: ...


class InMemoryAssetSource:
    """Process-local asset source for tests and local runs."""

    def __init__(self, clock: Clock = system_clock):
        self.clock = clock
        self._photos: defaultdict[str, int] = defaultdict(int)
        self._generations: defaultdict[str, list[RecentGeneration]] = defaultdict(list)

    def add_photos(self, user_id: str, count: int = 1) -> None:
        self._photos[user_id] += count

    def add_generation(self, user_id: str, content_type: str, created_at: datetime | None = None) -> RecentGeneration:
        generation = RecentGeneration(id=new_id(), content_type=content_type, created_at=created_at or self.clock.now())
        self._generations[user_id].append(generation)
        return generation

    async def count_photos(self, user_id: str) -> int:
        return self._photos.get(user_id, 0)

    async def recent_generations(self, user_id: str, limit: int = 10) -> list[RecentGeneration]:
        # newest first; among equal timestamps the later insert wins
        ordered = list(reversed(self._generations.get(user_id, [])))
        ordered.sort(key=lambda g: g.created_at, reverse=True)
        return ordered[:limit]

    async def count_content(self, user_id: str, content_types: Collection[str]) -> int:
        return sum(1 for g in self._generations.get(user_id, []) if g.content_type in content_types)

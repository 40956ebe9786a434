from collections.abc import Iterable
from typing import Any

from loguru import logger

from identity_brain.core.clock import Clock, system_clock
from identity_brain.core.errors import NotFoundError
from identity_brain.core.security import redact_id
from identity_brain.models.sync import SyncEvent, SyncEventType
from identity_brain.services.storage.base import StateRepository


class SyncEventService:
    """
    Append-only log of changes that other modules should pick up.
    Sequence numbers are per user and strictly increasing from 1.
    """

    def __init__(self, repository: StateRepository, clock: Clock = system_clock):
        self.repository = repository
        self.clock = clock

    async def create_event(
        self, user_id: str, event_type: SyncEventType, payload: dict[str, Any] | None = None
    ) -> SyncEvent:
        sequence = await self.repository.next_event_sequence(user_id)
        event = SyncEvent(
            user_id=user_id,
            event_type=event_type,
            payload=payload or {},
            sequence_number=sequence,
            created_at=self.clock.now(),
        )
        await self.repository.save_event(event)
        logger.debug(f"[{redact_id(user_id)}] Recorded {event_type} event #{sequence}")
        return event

    async def get_event(self, event_id: str) -> SyncEvent | None:
        return await self.repository.get_event(event_id)

    async def get_unprocessed(self, user_id: str, limit: int = 100) -> list[SyncEvent]:
        events = await self.repository.list_events(user_id)
        return [e for e in events if e.processed_at is None][:limit]

    async def mark_processed(self, event_id: str, error: str | None = None) -> SyncEvent:
        event = await self.repository.get_event(event_id)
        if event is None:
            raise NotFoundError("Sync event")
        event.processed_at = self.clock.now()
        event.error = error
        await self.repository.save_event(event)
        return event

    async def mark_many_processed(self, event_ids: Iterable[str], error: str | None = None) -> list[SyncEvent]:
        return [await self.mark_processed(event_id, error) for event_id in event_ids]

    async def recent_events(self, user_id: str, limit: int = 50) -> list[SyncEvent]:
        """Newest first."""
        events = await self.repository.list_events(user_id)
        return list(reversed(events))[:limit]

    async def count_unprocessed(self, user_id: str) -> int:
        events = await self.repository.list_events(user_id)
        return sum(1 for e in events if e.processed_at is None)

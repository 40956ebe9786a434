from collections import defaultdict
from collections.abc import AsyncIterator, Iterable
from contextlib import asynccontextmanager

from loguru import logger

from identity_brain.core.errors import AlreadyExistsError, InternalError
from identity_brain.core.locks import KeyedLock
from identity_brain.core.security import redact_id
from identity_brain.models.identity import IdentityState, VersionSnapshot
from identity_brain.models.persona import Persona
from identity_brain.models.sync import SyncEvent, SyncJob
from identity_brain.services.storage.base import StateRepository, StateTransaction, VersionType


class _MemoryTransaction(StateTransaction):
    def __init__(self, repo: "InMemoryStateRepository", identity_id: str):
        self._repo = repo
        self._identity_id = identity_id
        self._state: IdentityState | None = None
        self._inserted: list[VersionSnapshot] = []
        self._deleted: set[str] = set()

    async def load_state(self) -> IdentityState | None:
        if self._state is not None:
            return self._state.model_copy(deep=True)
        stored = self._repo._states.get(self._identity_id)
        return stored.model_copy(deep=True) if stored else None

    async def save_state(self, state: IdentityState) -> None:
        self._state = state.model_copy(deep=True)

    async def insert_snapshot(self, snapshot: VersionSnapshot) -> None:
        self._inserted.append(snapshot)

    async def list_snapshots(self, version_type: VersionType | None = None) -> list[VersionSnapshot]:
        committed = [self._repo._snapshots[sid] for sid in self._repo._snapshot_order[self._identity_id]]
        return [
            s
            for s in committed + self._inserted
            if s.id not in self._deleted and (version_type is None or s.version_type == version_type)
        ]

    async def delete_snapshots(self, snapshot_ids: Iterable[str]) -> None:
        self._deleted.update(snapshot_ids)

    def commit(self) -> None:
        if self._state is not None:
            if self._identity_id not in self._repo._states:
                raise InternalError(f"Identity {redact_id(self._identity_id)} vanished during transaction")
            self._repo._states[self._identity_id] = self._state
        order = self._repo._snapshot_order[self._identity_id]
        for snapshot in self._inserted:
            self._repo._snapshots[snapshot.id] = snapshot
            order.append(snapshot.id)
        for snapshot_id in self._deleted:
            self._repo._snapshots.pop(snapshot_id, None)
            if snapshot_id in order:
                order.remove(snapshot_id)


class InMemoryStateRepository(StateRepository):
    """
    Process-local repository. Used for tests and single-process deployments.
    A per-identity asyncio.Lock serializes transactions on the same identity.
    """

    def __init__(self):
        self._states: dict[str, IdentityState] = {}
        self._user_index: dict[str, str] = {}
        self._snapshots: dict[str, VersionSnapshot] = {}
        self._snapshot_order: defaultdict[str, list[str]] = defaultdict(list)
        self._personas: defaultdict[str, dict[str, Persona]] = defaultdict(dict)
        self._jobs: dict[str, SyncJob] = {}
        self._events: dict[str, SyncEvent] = {}
        self._event_sequences: defaultdict[str, int] = defaultdict(int)
        self._locks = KeyedLock()

    @asynccontextmanager
    async def transaction(self, identity_id: str) -> AsyncIterator[StateTransaction]:
        async with self._locks.hold(identity_id):
            tx = _MemoryTransaction(self, identity_id)
            yield tx
            tx.commit()

    async def create_state(self, state: IdentityState, personas: list[Persona]) -> None:
        if state.user_id in self._user_index:
            raise AlreadyExistsError("Identity brain")
        self._states[state.id] = state.model_copy(deep=True)
        self._user_index[state.user_id] = state.id
        for persona in personas:
            self._personas[state.id][persona.persona_type] = persona.model_copy(deep=True)
        logger.debug(f"[{redact_id(state.user_id)}] Stored new identity {redact_id(state.id)}")

    async def get_state(self, identity_id: str) -> IdentityState | None:
        stored = self._states.get(identity_id)
        return stored.model_copy(deep=True) if stored else None

    async def get_state_by_user(self, user_id: str) -> IdentityState | None:
        identity_id = self._user_index.get(user_id)
        return await self.get_state(identity_id) if identity_id else None

    async def delete_state(self, identity_id: str) -> bool:
        async with self._locks.hold(identity_id):
            state = self._states.pop(identity_id, None)
            if state is None:
                return False
            self._user_index.pop(state.user_id, None)
            for snapshot_id in self._snapshot_order.pop(identity_id, []):
                self._snapshots.pop(snapshot_id, None)
            self._personas.pop(identity_id, None)
        return True

    async def list_snapshots(self, identity_id: str, version_type: VersionType | None = None) -> list[VersionSnapshot]:
        snapshots = [self._snapshots[sid] for sid in self._snapshot_order.get(identity_id, [])]
        return [s for s in snapshots if version_type is None or s.version_type == version_type]

    async def get_snapshot(self, snapshot_id: str) -> VersionSnapshot | None:
        return self._snapshots.get(snapshot_id)

    async def delete_snapshot(self, snapshot_id: str) -> None:
        snapshot = self._snapshots.get(snapshot_id)
        if snapshot is None:
            return
        async with self._locks.hold(snapshot.identity_id):
            self._snapshots.pop(snapshot_id, None)
            order = self._snapshot_order.get(snapshot.identity_id, [])
            if snapshot_id in order:
                order.remove(snapshot_id)

    async def list_personas(self, identity_id: str) -> list[Persona]:
        return [p.model_copy(deep=True) for p in self._personas.get(identity_id, {}).values()]

    async def save_personas(self, personas: list[Persona]) -> None:
        for persona in personas:
            self._personas[persona.identity_id][persona.persona_type] = persona.model_copy(deep=True)

    async def delete_persona(self, identity_id: str, persona_type: str) -> None:
        self._personas.get(identity_id, {}).pop(persona_type, None)

    async def save_job(self, job: SyncJob) -> None:
        self._jobs[job.id] = job.model_copy(deep=True)

    async def get_job(self, job_id: str) -> SyncJob | None:
        job = self._jobs.get(job_id)
        return job.model_copy(deep=True) if job else None

    async def list_jobs(self, user_id: str) -> list[SyncJob]:
        # insertion order breaks ties between jobs created at the same instant
        ranked = [(j.created_at, i, j) for i, j in enumerate(self._jobs.values()) if j.user_id == user_id]
        ranked.sort(key=lambda item: (item[0], item[1]), reverse=True)
        return [j.model_copy(deep=True) for _, _, j in ranked]

    async def next_event_sequence(self, user_id: str) -> int:
        self._event_sequences[user_id] += 1
        return self._event_sequences[user_id]

    async def save_event(self, event: SyncEvent) -> None:
        self._events[event.id] = event.model_copy(deep=True)

    async def get_event(self, event_id: str) -> SyncEvent | None:
        event = self._events.get(event_id)
        return event.model_copy(deep=True) if event else None

    async def list_events(self, user_id: str) -> list[SyncEvent]:
        events = [e.model_copy(deep=True) for e in self._events.values() if e.user_id == user_id]
        return sorted(events, key=lambda e: e.sequence_number)

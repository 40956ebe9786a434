from collections.abc import AsyncIterator, Iterable
from contextlib import asynccontextmanager

import redis.asyncio as redis
from loguru import logger
from redis.exceptions import LockError

from identity_brain.core.config import settings
from identity_brain.core.errors import AlreadyExistsError, ConflictError, InternalError
from identity_brain.core.redis_client import RedisConnection, redis_connection
from identity_brain.core.security import redact_id
from identity_brain.models.identity import IdentityState, VersionSnapshot
from identity_brain.models.persona import Persona
from identity_brain.models.sync import SyncEvent, SyncJob
from identity_brain.services.storage.base import StateRepository, StateTransaction, VersionType


class _RedisTransaction(StateTransaction):
    """Stages writes in memory and flushes them in a single MULTI/EXEC pipeline."""

    def __init__(self, repo: "RedisStateRepository", client: redis.Redis, identity_id: str):
        self._repo = repo
        self._client = client
        self._identity_id = identity_id
        self._state: IdentityState | None = None
        self._inserted: list[tuple[VersionSnapshot, int]] = []
        self._deleted: set[str] = set()

    async def load_state(self) -> IdentityState | None:
        if self._state is not None:
            return self._state.model_copy(deep=True)
        return await self._repo.get_state(self._identity_id)

    async def save_state(self, state: IdentityState) -> None:
        self._state = state.model_copy(deep=True)

    async def insert_snapshot(self, snapshot: VersionSnapshot) -> None:
        # the lock is held, so the counter gives a strict creation order
        score = await self._client.incr(self._repo._key("snapshot_seq", self._identity_id))
        self._inserted.append((snapshot, score))

    async def list_snapshots(self, version_type: VersionType | None = None) -> list[VersionSnapshot]:
        committed = await self._repo.list_snapshots(self._identity_id)
        staged = [snapshot for snapshot, _ in self._inserted]
        return [
            s
            for s in committed + staged
            if s.id not in self._deleted and (version_type is None or s.version_type == version_type)
        ]

    async def delete_snapshots(self, snapshot_ids: Iterable[str]) -> None:
        self._deleted.update(snapshot_ids)

    async def commit(self) -> None:
        if self._state is not None and not await self._client.exists(self._repo._key("state", self._identity_id)):
            raise InternalError(f"Identity {redact_id(self._identity_id)} vanished during transaction")

        order_key = self._repo._key("snapshots", self._identity_id)
        async with self._client.pipeline(transaction=True) as pipe:
            if self._state is not None:
                pipe.set(self._repo._key("state", self._identity_id), self._state.model_dump_json())
            for snapshot, score in self._inserted:
                pipe.set(self._repo._key("snapshot", snapshot.id), snapshot.model_dump_json())
                pipe.zadd(order_key, {snapshot.id: score})
            for snapshot_id in self._deleted:
                pipe.delete(self._repo._key("snapshot", snapshot_id))
                pipe.zrem(order_key, snapshot_id)
            await pipe.execute()


class RedisStateRepository(StateRepository):
    """
    Redis-backed repository.

    Layout (all keys share REDIS_KEY_PREFIX):
        state:{identity_id}        JSON identity document
        user:{user_id}             identity id of the user
        snapshots:{identity_id}    ZSET of snapshot ids scored by creation order
        snapshot:{snapshot_id}     JSON snapshot
        personas:{identity_id}     HASH persona_type -> JSON persona
        job:{job_id} / jobs:{user_id}      JSON job / ZSET by creation time
        event:{event_id} / events:{user_id} JSON event / ZSET by sequence number
        lock:{identity_id}         write lock held for the duration of a transaction
    """

    def __init__(self, connection: RedisConnection | None = None, key_prefix: str | None = None):
        self._connection = connection or redis_connection
        self.key_prefix = key_prefix if key_prefix is not None else settings.REDIS_KEY_PREFIX

    def _key(self, kind: str, ident: str) -> str:
        return f"{self.key_prefix}{kind}:{ident}"

    async def _client(self) -> redis.Redis:
        return await self._connection.get_client()

    @asynccontextmanager
    async def transaction(self, identity_id: str) -> AsyncIterator[StateTransaction]:
        client = await self._client()
        lock = client.lock(
            self._key("lock", identity_id),
            timeout=settings.REDIS_LOCK_TIMEOUT_SECONDS,
            blocking_timeout=settings.REDIS_LOCK_BLOCKING_TIMEOUT_SECONDS,
        )
        if not await lock.acquire():
            raise ConflictError(f"Identity {redact_id(identity_id)} is locked by another writer")
        try:
            tx = _RedisTransaction(self, client, identity_id)
            yield tx
            await tx.commit()
        finally:
            try:
                await lock.release()
            except LockError as exc:
                # lock expired while we held it; the pipeline already ran atomically
                logger.warning(f"Lost write lock for identity {redact_id(identity_id)}: {exc}")

    async def create_state(self, state: IdentityState, personas: list[Persona]) -> None:
        client = await self._client()
        claimed = await client.set(self._key("user", state.user_id), state.id, nx=True)
        if not claimed:
            raise AlreadyExistsError("Identity brain")
        async with client.pipeline(transaction=True) as pipe:
            pipe.set(self._key("state", state.id), state.model_dump_json())
            if personas:
                pipe.hset(
                    self._key("personas", state.id),
                    mapping={p.persona_type: p.model_dump_json() for p in personas},
                )
            await pipe.execute()
        logger.debug(f"[{redact_id(state.user_id)}] Stored new identity {redact_id(state.id)} in Redis")

    async def get_state(self, identity_id: str) -> IdentityState | None:
        client = await self._client()
        raw = await client.get(self._key("state", identity_id))
        return IdentityState.model_validate_json(raw) if raw else None

    async def get_state_by_user(self, user_id: str) -> IdentityState | None:
        client = await self._client()
        identity_id = await client.get(self._key("user", user_id))
        return await self.get_state(identity_id) if identity_id else None

    async def delete_state(self, identity_id: str) -> bool:
        async with self.transaction(identity_id):
            client = await self._client()
            state = await self.get_state(identity_id)
            if state is None:
                return False
            snapshot_ids = await client.zrange(self._key("snapshots", identity_id), 0, -1)
            async with client.pipeline(transaction=True) as pipe:
                pipe.delete(
                    self._key("state", identity_id),
                    self._key("user", state.user_id),
                    self._key("snapshots", identity_id),
                    self._key("snapshot_seq", identity_id),
                    self._key("personas", identity_id),
                )
                for snapshot_id in snapshot_ids:
                    pipe.delete(self._key("snapshot", snapshot_id))
                await pipe.execute()
        return True

    async def list_snapshots(self, identity_id: str, version_type: VersionType | None = None) -> list[VersionSnapshot]:
        client = await self._client()
        snapshot_ids = await client.zrange(self._key("snapshots", identity_id), 0, -1)
        if not snapshot_ids:
            return []
        raws = await client.mget([self._key("snapshot", sid) for sid in snapshot_ids])
        snapshots = [VersionSnapshot.model_validate_json(raw) for raw in raws if raw]
        return [s for s in snapshots if version_type is None or s.version_type == version_type]

    async def get_snapshot(self, snapshot_id: str) -> VersionSnapshot | None:
        client = await self._client()
        raw = await client.get(self._key("snapshot", snapshot_id))
        return VersionSnapshot.model_validate_json(raw) if raw else None

    async def delete_snapshot(self, snapshot_id: str) -> None:
        snapshot = await self.get_snapshot(snapshot_id)
        if snapshot is None:
            return
        async with self.transaction(snapshot.identity_id) as tx:
            await tx.delete_snapshots([snapshot_id])

    async def list_personas(self, identity_id: str) -> list[Persona]:
        client = await self._client()
        raw = await client.hgetall(self._key("personas", identity_id))
        return [Persona.model_validate_json(value) for value in raw.values()]

    async def save_personas(self, personas: list[Persona]) -> None:
        if not personas:
            return
        client = await self._client()
        async with client.pipeline(transaction=True) as pipe:
            for persona in personas:
                pipe.hset(self._key("personas", persona.identity_id), persona.persona_type, persona.model_dump_json())
            await pipe.execute()

    async def delete_persona(self, identity_id: str, persona_type: str) -> None:
        client = await self._client()
        await client.hdel(self._key("personas", identity_id), persona_type)

    async def save_job(self, job: SyncJob) -> None:
        client = await self._client()
        async with client.pipeline(transaction=True) as pipe:
            pipe.set(self._key("job", job.id), job.model_dump_json())
            pipe.zadd(self._key("jobs", job.user_id), {job.id: job.created_at.timestamp()})
            await pipe.execute()

    async def get_job(self, job_id: str) -> SyncJob | None:
        client = await self._client()
        raw = await client.get(self._key("job", job_id))
        return SyncJob.model_validate_json(raw) if raw else None

    async def list_jobs(self, user_id: str) -> list[SyncJob]:
        client = await self._client()
        job_ids = await client.zrevrange(self._key("jobs", user_id), 0, -1)
        if not job_ids:
            return []
        raws = await client.mget([self._key("job", jid) for jid in job_ids])
        return [SyncJob.model_validate_json(raw) for raw in raws if raw]

    async def next_event_sequence(self, user_id: str) -> int:
        client = await self._client()
        return int(await client.incr(self._key("event_seq", user_id)))

    async def save_event(self, event: SyncEvent) -> None:
        client = await self._client()
        async with client.pipeline(transaction=True) as pipe:
            pipe.set(self._key("event", event.id), event.model_dump_json())
            pipe.zadd(self._key("events", event.user_id), {event.id: event.sequence_number})
            await pipe.execute()

    async def get_event(self, event_id: str) -> SyncEvent | None:
        client = await self._client()
        raw = await client.get(self._key("event", event_id))
        return SyncEvent.model_validate_json(raw) if raw else None

    async def list_events(self, user_id: str) -> list[SyncEvent]:
        client = await self._client()
        event_ids = await client.zrange(self._key("events", user_id), 0, -1)
        if not event_ids:
            return []
        raws = await client.mget([self._key("event", eid) for eid in event_ids])
        return [SyncEvent.model_validate_json(raw) for raw in raws if raw]

    async def close(self) -> None:
        await self._connection.close()

from collections.abc import Callable
from typing import Any

import pydantic
from loguru import logger
from pydantic import BaseModel

from identity_brain.core.clock import Clock, system_clock
from identity_brain.core.constants import COMPLETION_WEIGHTS, MAX_AUTO_VERSIONS
from identity_brain.core.errors import NotFoundError, ValidationError
from identity_brain.core.security import redact_id
from identity_brain.models.identity import (
    EMBEDDING_FIELDS,
    AestheticState,
    CoreAttributes,
    IdentityState,
    LearningState,
    SyncStatus,
    VersionSnapshot,
)
from identity_brain.models.persona import Persona
from identity_brain.services.identity.personas import build_default_personas
from identity_brain.services.storage.base import StateRepository, StateTransaction

SECTION_MODELS: dict[str, type[BaseModel]] = {
    "core_attributes": CoreAttributes,
    "aesthetic_state": AestheticState,
    "learning_state": LearningState,
}
WRITABLE_FIELDS = frozenset(SECTION_MODELS) | frozenset(EMBEDDING_FIELDS)

SectionBuilder = Callable[[IdentityState], dict[str, Any]]


def _comparable(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    return value


def coerce_sections(sections: dict[str, Any]) -> dict[str, Any]:
    """Validate a partial section mapping into typed section values."""
    unknown = set(sections) - WRITABLE_FIELDS
    if unknown:
        raise ValidationError(f"Unknown identity sections: {', '.join(sorted(unknown))}")

    coerced: dict[str, Any] = {}
    for field, value in sections.items():
        if field in SECTION_MODELS:
            model = SECTION_MODELS[field]
            if value is None:
                raise ValidationError(f"Section '{field}' cannot be null")
            try:
                coerced[field] = model.model_validate(value.model_dump() if isinstance(value, BaseModel) else value)
            except pydantic.ValidationError as e:
                raise ValidationError(f"Invalid {field}: {e.errors()[0]['msg']}") from e
        else:
            coerced[field] = [float(x) for x in value] if value is not None else None
    return coerced


def calculate_completion(core: CoreAttributes) -> int:
    """Weighted 0-100 score of how many core attributes are filled in."""
    score = 0
    for field, weight in COMPLETION_WEIGHTS.items():
        value = getattr(core, field, None)
        if value is None:
            continue
        if isinstance(value, (str, list)) and not value:
            continue
        score += weight
    return score


class IdentityStateStore:
    """
    Owns the identity document of every user.

    Each mutation runs inside a per-identity transaction: load, snapshot the
    pre-update content when a supplied section actually changes, replace the
    supplied sections, bump current_version, persist. Auto snapshots are kept
    to the most recent MAX_AUTO_VERSIONS; manual ones are never pruned.
    """

    def __init__(self, repository: StateRepository, clock: Clock = system_clock):
        self.repository = repository
        self.clock = clock

    # Lookups

    async def get_by_id(self, identity_id: str) -> IdentityState | None:
        return await self.repository.get_state(identity_id)

    async def get_by_user_id(self, user_id: str) -> IdentityState | None:
        return await self.repository.get_state_by_user(user_id)

    async def require(self, identity_id: str) -> IdentityState:
        state = await self.repository.get_state(identity_id)
        if state is None:
            raise NotFoundError("Identity state")
        return state

    async def require_for_user(self, user_id: str) -> IdentityState:
        state = await self.repository.get_state_by_user(user_id)
        if state is None:
            raise NotFoundError("Identity state")
        return state

    async def get_with_personas(self, identity_id: str) -> tuple[IdentityState, list[Persona]]:
        state = await self.require(identity_id)
        personas = await self.repository.list_personas(identity_id)
        return state, personas

    # Lifecycle

    async def create(self, user_id: str, initial_sections: dict[str, Any] | None = None) -> IdentityState:
        """
        Create the identity for a user, plus the four default personas.

        Raises:
            AlreadyExistsError: the user already has an identity
        """
        sections = coerce_sections(initial_sections or {})
        if any(field in EMBEDDING_FIELDS for field in sections):
            raise ValidationError("Embeddings cannot be supplied on create")

        now = self.clock.now()
        state = IdentityState(user_id=user_id, created_at=now, updated_at=now, **sections)
        personas = build_default_personas(state.id, now)
        await self.repository.create_state(state, personas)
        logger.info(f"[{redact_id(user_id)}] Created identity {redact_id(state.id)}")
        return state

    async def delete(self, identity_id: str) -> bool:
        deleted = await self.repository.delete_state(identity_id)
        if deleted:
            logger.info(f"Deleted identity {redact_id(identity_id)} with its snapshots and personas")
        return deleted

    # Mutations

    async def update(self, identity_id: str, sections: dict[str, Any], snapshot: bool = True) -> IdentityState:
        """
        Replace the supplied sections wholesale.

        Args:
            identity_id: Identity to update
            sections: Mapping of section or embedding name to its new value
            snapshot: Record an auto snapshot of the pre-update content when something changed

        Returns:
            The persisted identity
        """
        coerced = coerce_sections(sections)
        return await self.modify(identity_id, lambda _state: coerced, snapshot=snapshot)

    async def modify(self, identity_id: str, build: SectionBuilder, snapshot: bool = True) -> IdentityState:
        """
        Like update(), but the new sections are computed from the freshly loaded state
        inside the transaction, so read-modify-write callers cannot lose updates.
        """
        async with self.repository.transaction(identity_id) as tx:
            state = await tx.load_state()
            if state is None:
                raise NotFoundError("Identity state")

            sections = coerce_sections(build(state.model_copy(deep=True)))
            changed = [field for field, value in sections.items() if _comparable(value) != state.section_dump(field)]
            now = self.clock.now()

            if snapshot and changed:
                await tx.insert_snapshot(VersionSnapshot.capture(state, now))
                await self._prune_auto_snapshots(tx)
                state.current_version += 1
                logger.debug(
                    f"Identity {redact_id(identity_id)} now at version {state.current_version} "
                    f"(changed: {', '.join(changed)})"
                )

            for field, value in sections.items():
                setattr(state, field, value)
            state.updated_at = now
            await tx.save_state(state)

        return state

    async def _prune_auto_snapshots(self, tx: StateTransaction) -> None:
        autos = await tx.list_snapshots("auto")
        excess = len(autos) - MAX_AUTO_VERSIONS
        if excess > 0:
            await tx.delete_snapshots(s.id for s in autos[:excess])

    async def update_core_attributes(self, identity_id: str, updates: dict[str, Any]) -> IdentityState:
        return await self.modify(
            identity_id,
            lambda state: {"core_attributes": {**state.core_attributes.model_dump(), **updates}},
        )

    async def update_aesthetic_state(self, identity_id: str, updates: dict[str, Any]) -> IdentityState:
        return await self.modify(
            identity_id,
            lambda state: {"aesthetic_state": {**state.aesthetic_state.model_dump(), **updates}},
        )

    async def update_learning_state(self, identity_id: str, updates: dict[str, Any]) -> IdentityState:
        return await self.modify(
            identity_id,
            lambda state: {"learning_state": {**state.learning_state.model_dump(), **updates}},
            snapshot=False,
        )

    async def transform_learning_state(
        self, identity_id: str, transform: Callable[[LearningState], LearningState]
    ) -> IdentityState:
        """Apply a pure function to the learning state under the identity's transaction (no snapshot)."""
        return await self.modify(
            identity_id,
            lambda state: {"learning_state": transform(state.learning_state)},
            snapshot=False,
        )

    async def update_sync_status(self, identity_id: str, status: SyncStatus) -> IdentityState:
        async with self.repository.transaction(identity_id) as tx:
            state = await tx.load_state()
            if state is None:
                raise NotFoundError("Identity state")
            now = self.clock.now()
            state.sync_status = SyncStatus(status)
            if state.sync_status == SyncStatus.COMPLETED:
                state.last_synced_at = now
            state.updated_at = now
            await tx.save_state(state)
        return state

    # Versions

    async def create_manual_snapshot(self, identity_id: str, name: str | None = None) -> str:
        """Capture the current content under a name. current_version does not change."""
        async with self.repository.transaction(identity_id) as tx:
            state = await tx.load_state()
            if state is None:
                raise NotFoundError("Identity state")
            snapshot = VersionSnapshot.capture(state, self.clock.now(), version_type="manual", snapshot_name=name)
            await tx.insert_snapshot(snapshot)
        logger.info(
            f"Manual snapshot '{name}' of identity {redact_id(identity_id)} at version {snapshot.version_number}"
        )
        return snapshot.id

    async def get_by_version_number(self, identity_id: str, version_number: int) -> VersionSnapshot | None:
        """Most recently created snapshot carrying the given version number."""
        matches = [
            s for s in await self.repository.list_snapshots(identity_id) if s.version_number == version_number
        ]
        return matches[-1] if matches else None

    async def rollback(self, identity_id: str, version_number: int) -> IdentityState:
        """
        Restore the content of a snapshot as a new version.

        The pre-rollback content is itself snapshotted first, so nothing is lost.
        """
        target = await self.get_by_version_number(identity_id, version_number)
        if target is None:
            raise NotFoundError("Version", f"Version {version_number} not found")

        state = await self.update(
            identity_id,
            {
                "core_attributes": target.core_attributes,
                "aesthetic_state": target.aesthetic_state,
                "learning_state": target.learning_state,
                "identity_embedding": target.identity_embedding,
                "content_embedding": target.content_embedding,
            },
        )
        logger.info(
            f"Rolled back identity {redact_id(identity_id)} to version {version_number} "
            f"(now version {state.current_version})"
        )
        return state

    async def completion_score(self, identity_id: str) -> int:
        state = await self.require(identity_id)
        return calculate_completion(state.core_attributes)

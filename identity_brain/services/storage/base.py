from abc import ABC, abstractmethod
from collections.abc import Iterable
from contextlib import AbstractAsyncContextManager
from typing import Literal

from identity_brain.models.identity import IdentityState, VersionSnapshot
from identity_brain.models.persona import Persona
from identity_brain.models.sync import SyncEvent, SyncJob

VersionType = Literal["auto", "manual"]


class StateTransaction(ABC):
    """
    Unit of work scoped to one identity.

    Reads see the transaction's own staged writes. Nothing becomes visible to
    other callers until the surrounding context exits without an exception.
    """

    @abstractmethod
    async def load_state(self) -> IdentityState | None:
        pass

    @abstractmethod
    async def save_state(self, state: IdentityState) -> None:
        pass

    @abstractmethod
    async def insert_snapshot(self, snapshot: VersionSnapshot) -> None:
        pass

    @abstractmethod
    async def list_snapshots(self, version_type: VersionType | None = None) -> list[VersionSnapshot]:
        """Snapshots of this identity, oldest first by creation."""
        pass

    @abstractmethod
    async def delete_snapshots(self, snapshot_ids: Iterable[str]) -> None:
        pass


class StateRepository(ABC):
    """
    Persistence interface consumed by the identity brain.

    Every read-modify-write of an identity goes through transaction(identity_id),
    which serializes writers of the same identity.
    """

    @abstractmethod
    def transaction(self, identity_id: str) -> AbstractAsyncContextManager[StateTransaction]:
        pass

    # Identity states

    @abstractmethod
    async def create_state(self, state: IdentityState, personas: list[Persona]) -> None:
        """Insert a new identity with its personas. Raises AlreadyExistsError if the user has one."""
        pass

    @abstractmethod
    async def get_state(self, identity_id: str) -> IdentityState | None:
        pass

    @abstractmethod
    async def get_state_by_user(self, user_id: str) -> IdentityState | None:
        pass

    @abstractmethod
    async def delete_state(self, identity_id: str) -> bool:
        """Delete an identity together with its snapshots and personas."""
        pass

    # Snapshots

    @abstractmethod
    async def list_snapshots(self, identity_id: str, version_type: VersionType | None = None) -> list[VersionSnapshot]:
        pass

    @abstractmethod
    async def get_snapshot(self, snapshot_id: str) -> VersionSnapshot | None:
        pass

    @abstractmethod
    async def delete_snapshot(self, snapshot_id: str) -> None:
        pass

    # Personas

    @abstractmethod
    async def list_personas(self, identity_id: str) -> list[Persona]:
        pass

    @abstractmethod
    async def save_personas(self, personas: list[Persona]) -> None:
        pass

    @abstractmethod
    async def delete_persona(self, identity_id: str, persona_type: str) -> None:
        pass

    # Sync jobs

    @abstractmethod
    async def save_job(self, job: SyncJob) -> None:
        pass

    @abstractmethod
    async def get_job(self, job_id: str) -> SyncJob | None:
        pass

    @abstractmethod
    async def list_jobs(self, user_id: str) -> list[SyncJob]:
        """Jobs of a user, newest first."""
        pass

    # Sync events

    @abstractmethod
    async def next_event_sequence(self, user_id: str) -> int:
        pass

    @abstractmethod
    async def save_event(self, event: SyncEvent) -> None:
        pass

    @abstractmethod
    async def get_event(self, event_id: str) -> SyncEvent | None:
        pass

    @abstractmethod
    async def list_events(self, user_id: str) -> list[SyncEvent]:
        """Events of a user ordered by sequence number."""
        pass

    async def close(self) -> None:
        return None

from loguru import logger

from identity_brain.core.errors import ForbiddenError, NotFoundError
from identity_brain.core.security import redact_id
from identity_brain.models.identity import IdentityState, VersionSnapshot
from identity_brain.services.identity.store import IdentityStateStore


class VersionService:
    """Read and housekeeping operations over an identity's snapshot history."""

    def __init__(self, store: IdentityStateStore):
        self.store = store
        self.repository = store.repository

    async def list_versions(self, identity_id: str, limit: int = 20, offset: int = 0) -> list[VersionSnapshot]:
        snapshots = await self.repository.list_snapshots(identity_id)
        newest_first = list(reversed(snapshots))
        return newest_first[offset : offset + limit]

    async def get_by_version_number(self, identity_id: str, version_number: int) -> VersionSnapshot | None:
        return await self.store.get_by_version_number(identity_id, version_number)

    async def get_snapshot(self, snapshot_id: str) -> VersionSnapshot | None:
        return await self.repository.get_snapshot(snapshot_id)

    async def create_manual_snapshot(self, identity_id: str, name: str | None = None) -> str:
        return await self.store.create_manual_snapshot(identity_id, name)

    async def rollback(self, identity_id: str, version_number: int) -> IdentityState:
        return await self.store.rollback(identity_id, version_number)

    async def delete_version(self, identity_id: str, snapshot_id: str) -> None:
        """
        Delete a manual snapshot. Auto snapshots are managed by pruning only.

        Raises:
            NotFoundError: no such snapshot for this identity
            ForbiddenError: the snapshot is an auto snapshot
        """
        snapshot = await self.repository.get_snapshot(snapshot_id)
        if snapshot is None or snapshot.identity_id != identity_id:
            raise NotFoundError("Version")
        if snapshot.version_type != "manual":
            raise ForbiddenError("Only manual snapshots can be deleted")
        await self.repository.delete_snapshot(snapshot_id)
        logger.info(f"Deleted manual snapshot {redact_id(snapshot_id)} of identity {redact_id(identity_id)}")

    async def version_count(self, identity_id: str) -> dict[str, int]:
        snapshots = await self.repository.list_snapshots(identity_id)
        manual = sum(1 for s in snapshots if s.version_type == "manual")
        return {"total": len(snapshots), "auto": len(snapshots) - manual, "manual": manual}

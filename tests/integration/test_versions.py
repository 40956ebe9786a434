import pydantic
import pytest

from identity_brain.core.errors import ForbiddenError, NotFoundError


async def bump(brain, identity_id, count, start=0):
    for i in range(start, start + count):
        await brain.store.update_core_attributes(identity_id, {"name": f"Name {i}"})


@pytest.mark.asyncio
async def test_auto_snapshots_are_pruned_to_five(brain, identity):
    await bump(brain, identity.id, 7)

    counts = await brain.versions.version_count(identity.id)
    assert counts == {"total": 5, "auto": 5, "manual": 0}
    versions = await brain.versions.list_versions(identity.id)
    assert [v.version_number for v in versions] == [7, 6, 5, 4, 3]


@pytest.mark.asyncio
async def test_manual_snapshots_survive_pruning(brain, identity):
    snapshot_id = await brain.versions.create_manual_snapshot(identity.id, "before redesign")
    await bump(brain, identity.id, 8)

    counts = await brain.versions.version_count(identity.id)
    assert counts == {"total": 6, "auto": 5, "manual": 1}
    manual = await brain.versions.get_snapshot(snapshot_id)
    assert manual.snapshot_name == "before redesign"
    assert manual.version_number == 1
    assert manual.core_attributes.name == "Sam"


@pytest.mark.asyncio
async def test_manual_snapshot_does_not_change_version(brain, identity):
    await brain.versions.create_manual_snapshot(identity.id, "checkpoint")
    state = await brain.store.get_by_id(identity.id)
    assert state.current_version == 1


@pytest.mark.asyncio
async def test_manual_snapshot_of_unknown_identity(brain):
    with pytest.raises(NotFoundError):
        await brain.versions.create_manual_snapshot("missing", "x")


@pytest.mark.asyncio
async def test_rollback_restores_content_as_new_version(brain, identity, provider):
    await brain.embeddings.regenerate_embeddings(identity.id)
    original = await brain.store.get_by_id(identity.id)
    await brain.store.update(identity.id, {"core_attributes": {"name": "Changed"}, "identity_embedding": None})

    rolled_back = await brain.versions.rollback(identity.id, 1)

    assert rolled_back.current_version == 3
    assert rolled_back.core_attributes.name == "Sam"
    assert rolled_back.core_attributes.occupation == "Designer"
    assert rolled_back.identity_embedding == original.identity_embedding
    # the pre-rollback state is kept as version 2
    pre_rollback = await brain.versions.get_by_version_number(identity.id, 2)
    assert pre_rollback.core_attributes.name == "Changed"
    assert pre_rollback.identity_embedding is None


@pytest.mark.asyncio
async def test_rollback_to_unknown_version(brain, identity):
    with pytest.raises(NotFoundError):
        await brain.versions.rollback(identity.id, 42)


@pytest.mark.asyncio
async def test_rollback_to_identical_content_is_a_noop(brain, identity):
    await brain.versions.create_manual_snapshot(identity.id, "same")
    state = await brain.versions.rollback(identity.id, 1)
    assert state.current_version == 1
    assert (await brain.versions.version_count(identity.id))["auto"] == 0


@pytest.mark.asyncio
async def test_version_number_lookup_prefers_latest_snapshot(brain, identity):
    await brain.versions.create_manual_snapshot(identity.id, "first")
    await brain.store.update_core_attributes(identity.id, {"name": "Next"})

    found = await brain.versions.get_by_version_number(identity.id, 1)
    assert found.version_type == "auto"
    assert await brain.versions.get_by_version_number(identity.id, 99) is None


@pytest.mark.asyncio
async def test_list_versions_paginates(brain, identity):
    await bump(brain, identity.id, 4)
    page = await brain.versions.list_versions(identity.id, limit=2, offset=1)
    assert [v.version_number for v in page] == [3, 2]


@pytest.mark.asyncio
async def test_delete_version_only_for_manual(brain, identity):
    manual_id = await brain.versions.create_manual_snapshot(identity.id, "temp")
    await bump(brain, identity.id, 1)
    auto = (await brain.versions.list_versions(identity.id))[0]
    assert auto.version_type == "auto"

    with pytest.raises(ForbiddenError):
        await brain.versions.delete_version(identity.id, auto.id)

    await brain.versions.delete_version(identity.id, manual_id)
    assert await brain.versions.get_snapshot(manual_id) is None

    with pytest.raises(NotFoundError):
        await brain.versions.delete_version(identity.id, manual_id)


@pytest.mark.asyncio
async def test_delete_version_of_other_identity(brain, identity):
    other = await brain.store.create("user-2")
    manual_id = await brain.versions.create_manual_snapshot(other.id, "theirs")
    with pytest.raises(NotFoundError):
        await brain.versions.delete_version(identity.id, manual_id)


@pytest.mark.asyncio
async def test_snapshots_are_immutable(brain, identity):
    snapshot_id = await brain.versions.create_manual_snapshot(identity.id, "frozen")
    snapshot = await brain.versions.get_snapshot(snapshot_id)
    with pytest.raises(pydantic.ValidationError):
        snapshot.snapshot_name = "thawed"

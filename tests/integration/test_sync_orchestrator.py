import pytest

from identity_brain.core.errors import ConflictError, NotFoundError, RateLimitedError, ValidationError
from identity_brain.models.identity import SyncStatus
from identity_brain.models.sync import JobStatus, ModuleOutcome, ModuleStatus, SyncJob
from identity_brain.services.sync.orchestrator import SyncOptions


class FlakyModule:
    name = "dating_module"

    def __init__(self, failures: int):
        self.failures = failures

    async def run(self, user_id, context):
        if self.failures > 0:
            self.failures -= 1
            raise RuntimeError("dating provider down")
        return ModuleOutcome(items_processed=0)


@pytest.mark.asyncio
async def test_trigger_sync_all_runs_every_module(brain, identity, clock):
    progress = []
    result = await brain.orchestrator.trigger_sync_all("user-1", on_progress=progress.append)

    assert result.job.status == JobStatus.COMPLETED
    assert result.job.completed_modules == 5
    assert result.job.current_module is None
    assert result.job.completed_at == clock.now()
    assert set(result.results) == set(result.job.module_results)
    assert result.duration_ms >= 0
    assert len(progress) == 11

    stored = await brain.orchestrator.get_sync_job(result.job.id, "user-1")
    assert stored.status == JobStatus.COMPLETED
    assert stored.triggered_by == "manual"

    state = await brain.store.get_by_user_id("user-1")
    assert state.sync_status == SyncStatus.COMPLETED
    assert state.last_synced_at == clock.now()

    events = await brain.events.recent_events("user-1")
    assert [e.event_type for e in events] == ["sync_all_triggered"]
    assert events[0].payload == {"job_id": result.job.id, "triggered_by": "manual"}


@pytest.mark.asyncio
async def test_skip_modules_reduce_total(brain, identity):
    result = await brain.orchestrator.trigger_sync_all(
        "user-1", SyncOptions(skip_modules=["photo_engine"], triggered_by="feedback")
    )
    assert result.job.total_modules == 4
    assert "photo_engine" not in result.results
    assert result.job.triggered_by == "feedback"


@pytest.mark.asyncio
async def test_cooldown_blocks_until_forced(brain, identity, clock):
    await brain.orchestrator.trigger_sync_all("user-1")

    clock.advance(seconds=60)
    with pytest.raises(RateLimitedError) as exc_info:
        await brain.orchestrator.trigger_sync_all("user-1")
    assert exc_info.value.retry_after_seconds == 240

    status = await brain.orchestrator.get_sync_status("user-1")
    assert status.can_sync is False
    assert status.cooldown_remaining_seconds == pytest.approx(240)

    forced = await brain.orchestrator.trigger_sync_all("user-1", SyncOptions(force=True))
    assert forced.job.status == JobStatus.COMPLETED

    clock.advance(minutes=5)
    assert (await brain.orchestrator.get_sync_status("user-1")).can_sync is True
    await brain.orchestrator.trigger_sync_all("user-1")


@pytest.mark.asyncio
async def test_running_job_conflicts_until_stale(brain, identity, repository, clock):
    running = SyncJob(
        user_id="user-1", status=JobStatus.IN_PROGRESS, total_modules=5, started_at=clock.now(), created_at=clock.now()
    )
    await repository.save_job(running)

    with pytest.raises(ConflictError):
        await brain.orchestrator.trigger_sync_all("user-1", SyncOptions(force=True))
    assert (await brain.orchestrator.get_sync_status("user-1")).is_running

    clock.advance(seconds=61)
    result = await brain.orchestrator.trigger_sync_all("user-1")
    assert result.job.status == JobStatus.COMPLETED

    stale = await brain.orchestrator.get_sync_job(running.id, "user-1")
    assert stale.status == JobStatus.FAILED
    assert stale.error == "Sync timed out"


@pytest.mark.asyncio
async def test_sync_requires_identity(brain):
    with pytest.raises(NotFoundError):
        await brain.orchestrator.trigger_sync_all("nobody")
    assert (await brain.orchestrator.list_sync_jobs("nobody")).total == 0


@pytest.mark.asyncio
async def test_unexpected_error_fails_job_and_identity(brain, identity, monkeypatch):
    async def explode(user_id):
        raise RuntimeError("context store offline")

    monkeypatch.setattr(brain.context, "build_generation_context", explode)

    with pytest.raises(RuntimeError):
        await brain.orchestrator.trigger_sync_all("user-1")

    page = await brain.orchestrator.list_sync_jobs("user-1")
    assert page.jobs[0].status == JobStatus.FAILED
    assert page.jobs[0].error == "context store offline"
    assert (await brain.store.get_by_user_id("user-1")).sync_status == SyncStatus.FAILED


@pytest.mark.asyncio
async def test_module_failure_is_recorded_and_retryable(brain, identity):
    brain.executor.registry.register(FlakyModule(failures=1))

    result = await brain.orchestrator.trigger_sync_all("user-1")
    assert result.job.status == JobStatus.COMPLETED
    assert result.job.has_failures
    assert result.results["dating_module"].error == "dating provider down"

    retried = await brain.orchestrator.retry_sync_job(result.job.id, "user-1")
    assert retried.results["dating_module"].status == ModuleStatus.COMPLETED
    assert retried.job.status == JobStatus.COMPLETED
    assert not retried.job.has_failures

    with pytest.raises(ValidationError):
        await brain.orchestrator.retry_sync_job(result.job.id, "user-1")


@pytest.mark.asyncio
async def test_retry_still_failing_marks_job_failed(brain, identity):
    brain.executor.registry.register(FlakyModule(failures=2))
    result = await brain.orchestrator.trigger_sync_all("user-1")

    retried = await brain.orchestrator.retry_sync_job(result.job.id, "user-1")
    assert retried.job.status == JobStatus.FAILED
    assert retried.results["dating_module"].status == ModuleStatus.FAILED


@pytest.mark.asyncio
async def test_retry_saves_progress_while_running(brain, identity, repository):
    brain.executor.registry.register(FlakyModule(failures=1))
    result = await brain.orchestrator.trigger_sync_all("user-1")
    seen = []

    async def record(progress):
        stored = await repository.get_job(result.job.id)
        seen.append((stored.module_results["dating_module"].status, len(stored.module_results)))

    await brain.orchestrator.retry_sync_job(result.job.id, "user-1", on_progress=record)

    assert (ModuleStatus.IN_PROGRESS, 5) in seen
    assert seen[-1] == (ModuleStatus.COMPLETED, 5)
    stored = await repository.get_job(result.job.id)
    assert stored.current_module is None
    assert stored.completed_modules == 5


@pytest.mark.asyncio
async def test_retry_rejects_running_jobs(brain, identity, repository, clock):
    running = SyncJob(user_id="user-1", status=JobStatus.IN_PROGRESS, total_modules=5, started_at=clock.now())
    await repository.save_job(running)
    with pytest.raises(ValidationError):
        await brain.orchestrator.retry_sync_job(running.id, "user-1")


@pytest.mark.asyncio
async def test_jobs_are_scoped_to_their_user(brain, identity):
    result = await brain.orchestrator.trigger_sync_all("user-1")
    with pytest.raises(NotFoundError):
        await brain.orchestrator.get_sync_job(result.job.id, "user-2")


@pytest.mark.asyncio
async def test_list_sync_jobs_newest_first(brain, identity, clock):
    first = await brain.orchestrator.trigger_sync_all("user-1")
    clock.advance(minutes=10)
    second = await brain.orchestrator.trigger_sync_all("user-1")

    page = await brain.orchestrator.list_sync_jobs("user-1", limit=1)
    assert page.total == 2
    assert [j.id for j in page.jobs] == [second.job.id]
    assert (await brain.orchestrator.list_sync_jobs("user-1", offset=1)).jobs[0].id == first.job.id

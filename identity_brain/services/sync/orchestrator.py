import inspect
import math
import time
from datetime import timedelta

from loguru import logger
from pydantic import BaseModel, Field

from identity_brain.core.clock import Clock, ensure_aware, system_clock
from identity_brain.core.config import settings
from identity_brain.core.errors import ConflictError, NotFoundError, RateLimitedError, ValidationError
from identity_brain.core.locks import KeyedLock
from identity_brain.core.security import redact_id
from identity_brain.models.identity import IdentityState, SyncStatus
from identity_brain.models.sync import (
    ExecutionProgress,
    JobStatus,
    ModuleResults,
    SyncJob,
    TriggeredBy,
)
from identity_brain.services.identity.store import IdentityStateStore
from identity_brain.services.sync.context import ContextBuilder
from identity_brain.services.sync.events import SyncEventService
from identity_brain.services.sync.executor import ALL_MODULES, ExecutionOptions, ProgressCallback, SyncExecutor


class SyncOptions(BaseModel):
    force: bool = False
    triggered_by: TriggeredBy = "manual"
    skip_modules: list[str] = Field(default_factory=list)


class SyncResult(BaseModel):
    job: SyncJob
    results: ModuleResults
    duration_ms: int


class SyncStatusReport(BaseModel):
    is_running: bool
    current_job: SyncJob | None = None
    last_sync: SyncJob | None = None
    can_sync: bool
    cooldown_remaining_seconds: float = 0.0


class SyncJobPage(BaseModel):
    jobs: list[SyncJob]
    total: int


class SyncOrchestrator:
    """
    Coordinates a full sync-all run for one user:
    validate (running job, cooldown, identity) -> mark identity in_progress -> create job
    -> build context -> record event -> run modules -> complete job -> final identity status.
    """

    def __init__(
        self,
        store: IdentityStateStore,
        executor: SyncExecutor,
        context_builder: ContextBuilder,
        events: SyncEventService,
        clock: Clock = system_clock,
        cooldown_seconds: int | None = None,
        lock_timeout_seconds: int | None = None,
    ):
        self.store = store
        self.repository = store.repository
        self.executor = executor
        self.context_builder = context_builder
        self.events = events
        self.clock = clock
        self.cooldown = timedelta(
            seconds=settings.SYNC_COOLDOWN_SECONDS if cooldown_seconds is None else cooldown_seconds
        )
        self.lock_timeout = timedelta(
            seconds=settings.SYNC_LOCK_TIMEOUT_SECONDS if lock_timeout_seconds is None else lock_timeout_seconds
        )
        # serializes validate + job creation per user inside this process
        self._claims = KeyedLock()

    async def _fail_job(self, job: SyncJob, error: str) -> SyncJob:
        job.status = JobStatus.FAILED
        job.error = error
        job.completed_at = self.clock.now()
        job.current_module = None
        await self.repository.save_job(job)
        return job

    def _last_completed(self, jobs: list[SyncJob]) -> SyncJob | None:
        completed = [j for j in jobs if j.status == JobStatus.COMPLETED and j.completed_at is not None]
        return max(completed, key=lambda j: ensure_aware(j.completed_at), default=None)

    def _cooldown_remaining(self, last_sync: SyncJob | None) -> float:
        if last_sync is None or last_sync.completed_at is None:
            return 0.0
        elapsed = self.clock.now() - ensure_aware(last_sync.completed_at)
        return max(0.0, (self.cooldown - elapsed).total_seconds())

    def _tracker(self, job: SyncJob, on_progress: ProgressCallback | None) -> ProgressCallback:
        """Persist each progress report into the job, then forward it to the caller."""
        earlier = dict(job.module_results)

        async def track(progress: ExecutionProgress) -> None:
            job.module_results = {**earlier, **progress.results}
            job.completed_modules = sum(1 for r in job.module_results.values() if r.status.is_terminal)
            job.current_module = progress.current_module
            await self.repository.save_job(job)
            if on_progress is not None:
                maybe_awaitable = on_progress(progress)
                if inspect.isawaitable(maybe_awaitable):
                    await maybe_awaitable

        return track

    async def _validate(self, user_id: str, force: bool) -> IdentityState:
        jobs = await self.repository.list_jobs(user_id)
        now = self.clock.now()

        for job in jobs:
            if job.status != JobStatus.IN_PROGRESS:
                continue
            started = ensure_aware(job.started_at) if job.started_at else now
            if now - started > self.lock_timeout:
                logger.warning(f"[{redact_id(user_id)}] Failing stale sync job {redact_id(job.id)}")
                await self._fail_job(job, "Sync timed out")
            else:
                raise ConflictError("Sync already in progress", {"job_id": job.id})

        if not force:
            remaining = self._cooldown_remaining(self._last_completed(jobs))
            if remaining > 0:
                wait = math.ceil(remaining)
                raise RateLimitedError(f"Please wait {wait} seconds before syncing again", retry_after_seconds=wait)

        state = await self.store.get_by_user_id(user_id)
        if state is None:
            raise NotFoundError("Identity state", "Identity not found. Set up the profile first.")
        return state

    async def trigger_sync_all(
        self,
        user_id: str,
        options: SyncOptions | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> SyncResult:
        options = options or SyncOptions()
        start = time.monotonic()
        modules = [m for m in ALL_MODULES if m not in set(options.skip_modules)]

        async with self._claims.hold(user_id):
            state = await self._validate(user_id, options.force)
            now = self.clock.now()
            job = SyncJob(
                user_id=user_id,
                status=JobStatus.IN_PROGRESS,
                triggered_by=options.triggered_by,
                total_modules=len(modules),
                started_at=now,
                created_at=now,
            )
            await self.repository.save_job(job)
            await self.store.update_sync_status(state.id, SyncStatus.IN_PROGRESS)

        logger.info(f"[{redact_id(user_id)}] Sync job {redact_id(job.id)} started ({options.triggered_by})")

        try:
            context = await self.context_builder.build_generation_context(user_id)
            await self.events.create_event(
                user_id,
                "sync_all_triggered",
                {"job_id": job.id, "triggered_by": options.triggered_by},
            )
            results = await self.executor.execute_module_sync(
                user_id,
                context,
                ExecutionOptions(modules=list(ALL_MODULES), skip_modules=options.skip_modules),
                self._tracker(job, on_progress),
            )

            job.status = JobStatus.COMPLETED
            job.completed_at = self.clock.now()
            job.module_results = results
            job.completed_modules = sum(1 for r in results.values() if r.status.is_terminal)
            job.current_module = None
            await self.repository.save_job(job)
            await self.store.update_sync_status(state.id, SyncStatus.COMPLETED)
        except Exception as e:
            logger.error(f"[{redact_id(user_id)}] Sync job {redact_id(job.id)} failed: {e}")
            await self._fail_job(job, str(e) or e.__class__.__name__)
            try:
                await self.store.update_sync_status(state.id, SyncStatus.FAILED)
            except NotFoundError:
                logger.warning(f"[{redact_id(user_id)}] Identity disappeared during sync")
            raise

        duration_ms = int((time.monotonic() - start) * 1000)
        logger.info(
            f"[{redact_id(user_id)}] Sync job {redact_id(job.id)} completed in {duration_ms}ms "
            f"({'with' if job.has_failures else 'without'} failed modules)"
        )
        return SyncResult(job=job, results=results, duration_ms=duration_ms)

    async def get_sync_status(self, user_id: str) -> SyncStatusReport:
        jobs = await self.repository.list_jobs(user_id)
        current = next((j for j in jobs if j.status == JobStatus.IN_PROGRESS), None)
        last_sync = self._last_completed(jobs)
        remaining = 0.0 if current else self._cooldown_remaining(last_sync)
        return SyncStatusReport(
            is_running=current is not None,
            current_job=current,
            last_sync=last_sync,
            can_sync=current is None and remaining == 0,
            cooldown_remaining_seconds=remaining,
        )

    async def get_sync_job(self, job_id: str, user_id: str) -> SyncJob:
        job = await self.repository.get_job(job_id)
        if job is None or job.user_id != user_id:
            raise NotFoundError("Sync job")
        return job

    async def list_sync_jobs(self, user_id: str, limit: int = 20, offset: int = 0) -> SyncJobPage:
        jobs = await self.repository.list_jobs(user_id)
        return SyncJobPage(jobs=jobs[offset : offset + limit], total=len(jobs))

    async def retry_sync_job(
        self, job_id: str, user_id: str, on_progress: ProgressCallback | None = None
    ) -> SyncResult:
        """Re-run the failed modules of a finished job and fold the new results into it."""
        start = time.monotonic()
        job = await self.get_sync_job(job_id, user_id)
        if job.status not in (JobStatus.FAILED, JobStatus.COMPLETED):
            raise ValidationError("Can only retry failed or completed jobs")
        if not job.has_failures:
            raise ValidationError("No failed modules to retry")

        context = await self.context_builder.build_generation_context(user_id)
        results = await self.executor.retry_failed_modules(
            user_id, context, job.module_results, self._tracker(job, on_progress)
        )

        job.module_results = results
        job.status = JobStatus.FAILED if job.has_failures else JobStatus.COMPLETED
        job.completed_modules = sum(1 for r in results.values() if r.status.is_terminal)
        job.current_module = None
        job.completed_at = self.clock.now()
        job.error = None
        await self.repository.save_job(job)

        logger.info(f"[{redact_id(user_id)}] Retried sync job {redact_id(job.id)}: now {job.status.value}")
        return SyncResult(job=job, results=results, duration_ms=int((time.monotonic() - start) * 1000))

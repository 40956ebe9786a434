import asyncio
import inspect
from collections.abc import Awaitable, Callable

from loguru import logger
from pydantic import BaseModel, Field

from identity_brain.core.clock import Clock, system_clock
from identity_brain.core.config import settings
from identity_brain.core.constants import SYNC_MODULES
from identity_brain.core.security import redact_id
from identity_brain.models.sync import (
    ExecutionProgress,
    GenerationContext,
    ModuleResult,
    ModuleResults,
    ModuleStatus,
)
from identity_brain.services.sync.context import module_context
from identity_brain.services.sync.modules import ModuleRegistry

ALL_MODULES: tuple[str, ...] = SYNC_MODULES

ProgressCallback = Callable[[ExecutionProgress], Awaitable[None] | None]


class ExecutionOptions(BaseModel):
    modules: list[str] | None = None
    skip_modules: list[str] = Field(default_factory=list)
    timeout_ms: int = Field(default_factory=lambda: settings.MODULE_TIMEOUT_MS, gt=0)


def _copy_results(results: ModuleResults) -> ModuleResults:
    return {name: result.model_copy(deep=True) for name, result in results.items()}


class SyncExecutor:
    """
    Runs module refreshes concurrently for one user.

    Each module goes pending -> in_progress -> completed | failed | skipped. A module
    that raises or exceeds the timeout is marked failed (its task is cancelled on
    timeout); the others keep running. execute_module_sync always returns a result
    for every requested module and never raises for module failures.
    """

    def __init__(self, registry: ModuleRegistry, clock: Clock = system_clock):
        self.registry = registry
        self.clock = clock

    async def _notify(self, on_progress: ProgressCallback | None, progress: ExecutionProgress) -> None:
        if on_progress is None:
            return
        try:
            maybe_awaitable = on_progress(progress)
            if inspect.isawaitable(maybe_awaitable):
                await maybe_awaitable
        except Exception as e:
            logger.warning(f"Progress callback failed: {e}")

    async def execute_module_sync(
        self,
        user_id: str,
        context: GenerationContext,
        options: ExecutionOptions | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> ModuleResults:
        options = options or ExecutionOptions()
        requested = options.modules if options.modules is not None else list(ALL_MODULES)
        skip = set(options.skip_modules)
        names = [name for name in dict.fromkeys(requested) if name not in skip]
        timeout = options.timeout_ms / 1000

        results: ModuleResults = {name: ModuleResult(module=name) for name in names}
        total = len(names)
        completed = 0

        async def report(current: str | None) -> None:
            progress = ExecutionProgress(
                total_modules=total,
                completed_modules=completed,
                current_module=current,
                results=_copy_results(results),
            )
            await self._notify(on_progress, progress)

        async def run_one(name: str) -> None:
            nonlocal completed
            started_at = self.clock.now()
            results[name] = ModuleResult(module=name, status=ModuleStatus.IN_PROGRESS, started_at=started_at)
            await report(name)

            module = self.registry.get(name)
            if module is None:
                results[name] = ModuleResult(
                    module=name,
                    status=ModuleStatus.SKIPPED,
                    started_at=started_at,
                    completed_at=self.clock.now(),
                    details={"reason": "Unknown module"},
                )
            else:
                try:
                    outcome = await asyncio.wait_for(module.run(user_id, module_context(context, name)), timeout)
                    results[name] = ModuleResult(
                        module=name,
                        status=ModuleStatus.COMPLETED,
                        started_at=started_at,
                        completed_at=self.clock.now(),
                        items_processed=outcome.items_processed,
                        details=outcome.details,
                    )
                except asyncio.TimeoutError:
                    logger.warning(f"[{redact_id(user_id)}] Module {name} timed out after {options.timeout_ms}ms")
                    results[name] = ModuleResult(
                        module=name,
                        status=ModuleStatus.FAILED,
                        started_at=started_at,
                        completed_at=self.clock.now(),
                        error=f"Module execution timeout after {options.timeout_ms}ms",
                    )
                except Exception as e:
                    logger.warning(f"[{redact_id(user_id)}] Module {name} failed: {e}")
                    results[name] = ModuleResult(
                        module=name,
                        status=ModuleStatus.FAILED,
                        started_at=started_at,
                        completed_at=self.clock.now(),
                        error=str(e) or e.__class__.__name__,
                    )

            completed += 1
            await report(name if completed < total else None)

        await report(None)
        await asyncio.gather(*(run_one(name) for name in names))

        logger.info(
            f"[{redact_id(user_id)}] Module sync finished: "
            + ", ".join(f"{name}={result.status.value}" for name, result in results.items())
        )
        return results

    async def retry_failed_modules(
        self,
        user_id: str,
        context: GenerationContext,
        previous_results: ModuleResults,
        on_progress: ProgressCallback | None = None,
        timeout_ms: int | None = None,
    ) -> ModuleResults:
        """
        Re-run only the failed modules and merge their new results over the previous ones.
        Returns previous_results itself when nothing failed.
        """
        failed = [name for name, result in previous_results.items() if result.status == ModuleStatus.FAILED]
        if not failed:
            return previous_results

        options = ExecutionOptions(modules=failed)
        if timeout_ms is not None:
            options.timeout_ms = timeout_ms
        retried = await self.execute_module_sync(user_id, context, options, on_progress)
        return {**previous_results, **retried}

"""
Sync-All: refresh every downstream module from the current identity in one run.
"""

from identity_brain.services.sync.assets import AssetSource, InMemoryAssetSource
from identity_brain.services.sync.context import ContextBuilder, module_context
from identity_brain.services.sync.events import SyncEventService
from identity_brain.services.sync.executor import ALL_MODULES, ExecutionOptions, SyncExecutor
from identity_brain.services.sync.modules import ModuleRegistry, SyncModule, default_registry
from identity_brain.services.sync.orchestrator import SyncOptions, SyncOrchestrator, SyncResult

__all__ = [
    "ALL_MODULES",
    "AssetSource",
    "InMemoryAssetSource",
    "ContextBuilder",
    "module_context",
    "SyncEventService",
    "ExecutionOptions",
    "SyncExecutor",
    "ModuleRegistry",
    "SyncModule",
    "default_registry",
    "SyncOptions",
    "SyncOrchestrator",
    "SyncResult",
]

from identity_brain.core.clock import Clock, system_clock
from identity_brain.core.logging import setup_logging
from identity_brain.services.embeddings.provider import EmbeddingProvider, OpenAIEmbeddingProvider
from identity_brain.services.embeddings.service import EmbeddingService
from identity_brain.services.identity.personas import PersonaService
from identity_brain.services.identity.store import IdentityStateStore
from identity_brain.services.identity.versions import VersionService
from identity_brain.services.learning.engine import LearningEngine
from identity_brain.services.storage.base import StateRepository
from identity_brain.services.storage.factory import get_repository
from identity_brain.services.sync.assets import AssetSource, InMemoryAssetSource
from identity_brain.services.sync.context import ContextBuilder
from identity_brain.services.sync.events import SyncEventService
from identity_brain.services.sync.executor import SyncExecutor
from identity_brain.services.sync.modules import ModuleRegistry, default_registry
from identity_brain.services.sync.orchestrator import SyncOrchestrator


class IdentityBrainBundle:
    """
    A unified bundle for all identity brain services, wired to one repository.
    Provides a clean interface for an outer API layer.
    """

    def __init__(
        self,
        repository: StateRepository | None = None,
        provider: EmbeddingProvider | None = None,
        assets: AssetSource | None = None,
        registry: ModuleRegistry | None = None,
        clock: Clock = system_clock,
        configure_logging: bool = False,
    ):
        if configure_logging:
            setup_logging()
        self.repository = repository or get_repository()
        self.provider = provider or OpenAIEmbeddingProvider()
        self.assets = assets or InMemoryAssetSource(clock)
        self.clock = clock

        self.store = IdentityStateStore(self.repository, clock)
        self.versions = VersionService(self.store)
        self.personas = PersonaService(self.repository, clock)
        self.embeddings = EmbeddingService(self.store, self.personas, self.provider)
        self.learning = LearningEngine(self.store, clock)

        self.events = SyncEventService(self.repository, clock)
        self.context = ContextBuilder(self.store, self.assets)
        self.executor = SyncExecutor(registry or default_registry(self.assets), clock)
        self.orchestrator = SyncOrchestrator(self.store, self.executor, self.context, self.events, clock)

    async def close(self):
        """Close the embedding HTTP client and the storage connection."""
        close_provider = getattr(self.provider, "close", None)
        if close_provider is not None:
            await close_provider()
        await self.repository.close()

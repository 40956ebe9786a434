from typing import Protocol

from identity_brain.models.sync import GenerationContext, ModuleOutcome
from identity_brain.services.sync.assets import AssetSource


class SyncModule(Protocol):
    name: str

    async def run(self, user_id: str, context: GenerationContext) -> ModuleOutcome: ...


class PhotoEngineModule:
    """Checks the user's photo set against the refreshed identity."""

    name = "photo_engine"

    def __init__(self, assets: AssetSource):
        self.assets = assets

    async def run(self, user_id: str, context: GenerationContext) -> ModuleOutcome:
        photos = await self.assets.count_photos(user_id)
        return ModuleOutcome(
            items_processed=photos,
            details={
                "photos_found": photos,
                "analyzed": 0,
                "skipped": photos,
                "reason": "Full re-analysis runs through the photo endpoints",
            },
        )


class ContentInventoryModule:
    """
    Base for modules whose refresh is an inventory of previously generated content.
    Subclasses set the module name, the content types they own and the detail key.
    """

    name: str = ""
    content_types: tuple[str, ...] = ()
    detail_key: str = "existing_content"
    reason: str = "Existing content preserved, regenerate individually as needed"

    def __init__(self, assets: AssetSource):
        self.assets = assets

    async def run(self, user_id: str, context: GenerationContext) -> ModuleOutcome:
        existing = await self.assets.count_content(user_id, self.content_types)
        return ModuleOutcome(
            items_processed=existing,
            details={self.detail_key: existing, "regenerated": 0, "reason": self.reason},
        )


class BioGeneratorModule(ContentInventoryModule):
    name = "bio_generator"
    content_types = ("bio",)
    detail_key = "existing_bios"
    reason = "Full regeneration runs through the bio endpoints"


class CareerModule(ContentInventoryModule):
    name = "career_module"
    content_types = ("resume", "cover_letter", "linkedin_summary")
    detail_key = "existing_documents"
    reason = "Career documents preserved, regenerate individually as needed"


class DatingModule(ContentInventoryModule):
    name = "dating_module"
    content_types = ("dating_profile", "dating_prompt", "message")
    detail_key = "existing_content"
    reason = "Dating content preserved, regenerate individually as needed"


class AestheticModule:
    """Reports which styling recommendations the identity already carries."""

    name = "aesthetic_module"

    async def run(self, user_id: str, context: GenerationContext) -> ModuleOutcome:
        aesthetic = context.identity.aesthetic_state
        return ModuleOutcome(
            items_processed=1,
            details={
                "has_color_palette": aesthetic.color_palette is not None,
                "has_style_archetype": bool(aesthetic.style_archetype),
                "has_hair": bool(aesthetic.hair_suggestions),
                "has_makeup": bool(aesthetic.makeup_suggestions),
                "has_wardrobe": bool(aesthetic.wardrobe_guidance),
                "regenerated": 0,
                "reason": "Aesthetic recommendations preserved, regenerate individually as needed",
            },
        )


class ModuleRegistry:
    """Name -> module lookup used by the executor. Unknown names resolve to None."""

    def __init__(self, modules: list[SyncModule] | None = None):
        self._modules: dict[str, SyncModule] = {}
        for module in modules or []:
            self.register(module)

    def register(self, module: SyncModule) -> None:
        self._modules[module.name] = module

    def unregister(self, name: str) -> None:
        self._modules.pop(name, None)

    def get(self, name: str) -> SyncModule | None:
        return self._modules.get(name)

    @property
    def names(self) -> list[str]:
        return list(self._modules)

    def __contains__(self, name: object) -> bool:
        return name in self._modules


def default_registry(assets: AssetSource) -> ModuleRegistry:
    return ModuleRegistry(
        [
            PhotoEngineModule(assets),
            BioGeneratorModule(assets),
            CareerModule(assets),
            DatingModule(assets),
            AestheticModule(),
        ]
    )

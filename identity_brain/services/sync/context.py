from loguru import logger

from identity_brain.core.constants import DEFAULT_PERSONAS
from identity_brain.core.errors import NotFoundError
from identity_brain.core.security import redact_id
from identity_brain.models.identity import LearningState
from identity_brain.models.persona import Persona
from identity_brain.models.sync import GenerationContext, GenerationPreferences, IdentityContext
from identity_brain.services.identity.store import IdentityStateStore
from identity_brain.services.sync.assets import AssetSource

RECENT_GENERATIONS_LIMIT = 10

LENGTH_PREFERENCES = {"short": "concise", "medium": "standard", "long": "detailed"}
DEFAULT_TONE_WEIGHTS = {"professional": 1.0, "friendly": 1.0}

# Personas each module may see; None means all of them.
MODULE_PERSONAS: dict[str, tuple[str, ...] | None] = {
    "photo_engine": (),
    "bio_generator": None,
    "career_module": ("professional", "private"),
    "dating_module": ("dating", "social", "private"),
    "aesthetic_module": (),
}
PHOTO_MODULES = frozenset({"photo_engine", "dating_module", "aesthetic_module"})


def extract_preferences(learning: LearningState, active_persona: Persona | None) -> GenerationPreferences:
    """
    Derive generation preferences from what the learning engine has picked up.

    Preferred tones get equal weight; without any, a neutral professional/friendly
    mix is used. Style markers come from the active persona.
    """
    patterns = learning.content_patterns
    tone_weights = {tone: 1.0 for tone in patterns.preferred_tone} or dict(DEFAULT_TONE_WEIGHTS)
    length = LENGTH_PREFERENCES.get(patterns.preferred_length or "", "standard")
    markers = list(active_persona.style_markers) if active_persona else []
    return GenerationPreferences(tone_weights=tone_weights, length_preference=length, style_markers=markers)


class ContextBuilder:
    def __init__(self, store: IdentityStateStore, assets: AssetSource):
        self.store = store
        self.assets = assets

    async def build_generation_context(self, user_id: str) -> GenerationContext:
        state = await self.store.get_by_user_id(user_id)
        if state is None:
            raise NotFoundError("Identity state")

        personas = await self.store.repository.list_personas(state.id)
        by_type: dict[str, Persona | None] = {persona_type: None for persona_type in DEFAULT_PERSONAS}
        for persona in personas:
            by_type[persona.persona_type] = persona
        active = next((p for p in personas if p.is_active), None)

        photo_count = await self.assets.count_photos(user_id)
        recent = await self.assets.recent_generations(user_id, RECENT_GENERATIONS_LIMIT)
        logger.debug(
            f"[{redact_id(user_id)}] Built generation context at version {state.current_version} "
            f"({photo_count} photos, {len(recent)} recent generations)"
        )

        return GenerationContext(
            user_id=user_id,
            identity=IdentityContext(
                identity_id=state.id,
                core_attributes=state.core_attributes,
                aesthetic_state=state.aesthetic_state,
                learning_state=state.learning_state,
                identity_embedding=state.identity_embedding,
                current_version=state.current_version,
            ),
            personas=by_type,
            photo_count=photo_count,
            recent_generations=recent,
            preferences=extract_preferences(state.learning_state, active),
        )


def module_context(context: GenerationContext, module: str) -> GenerationContext:
    """Narrow the shared context to what one module is meant to use. Unknown modules get everything."""
    narrowed = context.model_copy(deep=True)
    if module not in MODULE_PERSONAS:
        return narrowed

    allowed = MODULE_PERSONAS[module]
    narrowed.personas = {
        persona_type: persona if allowed is None or persona_type in allowed else None
        for persona_type, persona in narrowed.personas.items()
    }
    if module not in PHOTO_MODULES:
        narrowed.photo_count = 0
    return narrowed

from datetime import datetime

from loguru import logger
from pydantic import BaseModel

from identity_brain.core.constants import EMBEDDING_BLEND_RATIO
from identity_brain.core.errors import ValidationError
from identity_brain.core.security import redact_id
from identity_brain.models.identity import IdentityState
from identity_brain.models.persona import Persona
from identity_brain.services.embeddings.math import blend
from identity_brain.services.embeddings.provider import EmbeddingProvider
from identity_brain.services.identity.personas import PersonaService
from identity_brain.services.identity.store import IdentityStateStore


class EmbeddingStatus(BaseModel):
    has_identity_embedding: bool
    has_content_embedding: bool
    embedding_model: str | None = None
    last_updated_at: datetime | None = None


def build_identity_text(state: IdentityState) -> str:
    """Flatten the identity into the deterministic text that gets embedded."""
    core = state.core_attributes
    aesthetic = state.aesthetic_state
    patterns = state.learning_state.content_patterns
    parts: list[str] = []

    if core.name:
        parts.append(f"Name: {core.name}")
    if core.occupation:
        parts.append(f"Occupation: {core.occupation}")
    if core.location:
        parts.append(f"Location: {core.location}")

    for label, items in (
        ("Personality", core.personality),
        ("Values", core.values),
        ("Interests", core.interests),
        ("Goals", core.goals),
        ("Unique traits", core.quirks),
    ):
        if items:
            parts.append(f"{label}: {', '.join(items)}")

    if core.communication_style:
        parts.append(f"Communication style: {core.communication_style}")
    if aesthetic.style_archetype:
        parts.append(f"Style archetype: {aesthetic.style_archetype}")
    if aesthetic.color_palette and aesthetic.color_palette.season:
        parts.append(f"Color season: {aesthetic.color_palette.season}")

    if patterns.preferred_tone:
        parts.append(f"Preferred tone: {', '.join(patterns.preferred_tone)}")
    if patterns.favorite_topics:
        parts.append(f"Favorite topics: {', '.join(patterns.favorite_topics)}")

    return ". ".join(parts)


def build_persona_text(persona: Persona) -> str:
    parts = [f"Context: {persona.name}"]
    if persona.description:
        parts.append(persona.description)
    tones = persona.dominant_tones()
    if tones:
        parts.append(f"Tone: {', '.join(tones)}")
    if persona.style_markers:
        parts.append(f"Style: {', '.join(persona.style_markers)}")
    return ". ".join(parts)


class EmbeddingService:
    """
    Keeps the identity and content embeddings of an identity in sync with its content.

    The content embedding is the identity embedding nudged towards the active
    persona (80/20 blend), or a copy of the identity embedding when no persona is active.
    """

    def __init__(self, store: IdentityStateStore, personas: PersonaService, provider: EmbeddingProvider):
        self.store = store
        self.personas = personas
        self.provider = provider

    async def regenerate_embeddings(self, identity_id: str) -> IdentityState:
        state = await self.store.require(identity_id)
        identity_text = build_identity_text(state)
        if not identity_text:
            raise ValidationError("Identity has no content to embed")

        identity_embedding = await self.provider.embed(identity_text)
        content_embedding = identity_embedding

        active = await self.personas.get_active(identity_id)
        if active is not None:
            persona_embedding = await self.provider.embed(build_persona_text(active))
            content_embedding = blend(identity_embedding, persona_embedding, EMBEDDING_BLEND_RATIO)

        updated = await self.store.update(
            identity_id,
            {"identity_embedding": identity_embedding, "content_embedding": content_embedding},
            snapshot=False,
        )
        logger.info(
            f"Regenerated embeddings for identity {redact_id(identity_id)} "
            f"(persona: {active.persona_type if active else 'none'})"
        )
        return updated

    async def get_embedding_status(self, identity_id: str) -> EmbeddingStatus:
        state = await self.store.require(identity_id)
        has_identity = state.identity_embedding is not None
        return EmbeddingStatus(
            has_identity_embedding=has_identity,
            has_content_embedding=state.content_embedding is not None,
            embedding_model=self.provider.model if has_identity else None,
            last_updated_at=state.updated_at if has_identity else None,
        )

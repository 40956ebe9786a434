from datetime import datetime
from typing import Any

import pydantic
from loguru import logger

from identity_brain.core.clock import Clock, system_clock
from identity_brain.core.constants import DEFAULT_ACTIVE_PERSONA, DEFAULT_PERSONAS
from identity_brain.core.errors import (
    AlreadyExistsError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from identity_brain.core.security import redact_id
from identity_brain.models.persona import ContentRules, Persona, PersonaConfig
from identity_brain.services.storage.base import StateRepository

# Raw templates; callers only ever see PersonaConfig copies built from these.
_PERSONA_TEMPLATES: dict[str, dict[str, Any]] = {
    "professional": {
        "name": "Professional",
        "description": "For work, LinkedIn, resumes, and career-related content",
        "tone_weights": {"confident": 0.8, "friendly": 0.5, "witty": 0.3, "vulnerable": 0.2, "direct": 0.8},
        "content_rules": {"formality": "formal", "include_emoji": False},
    },
    "dating": {
        "name": "Dating",
        "description": "For dating profiles, conversations, and romantic contexts",
        "tone_weights": {"confident": 0.6, "friendly": 0.8, "witty": 0.7, "vulnerable": 0.5, "direct": 0.4},
        "content_rules": {"formality": "casual", "include_emoji": True},
    },
    "social": {
        "name": "Social",
        "description": "For social media, casual posts, and general online presence",
        "tone_weights": {"confident": 0.5, "friendly": 0.8, "witty": 0.6, "vulnerable": 0.4, "direct": 0.5},
        "content_rules": {"formality": "casual", "include_emoji": True},
    },
    "private": {
        "name": "Private",
        "description": "Personal notes and private content",
        "tone_weights": {"confident": 0.5, "friendly": 0.5, "witty": 0.5, "vulnerable": 0.8, "direct": 0.5},
        "content_rules": {"formality": "casual"},
    },
}

UPDATABLE_FIELDS = frozenset({"name", "description", "tone_weights", "style_markers", "content_rules"})


def default_persona_config(persona_type: str) -> PersonaConfig:
    """Return a fresh, immutable default configuration for one of the core persona types."""
    template = _PERSONA_TEMPLATES.get(persona_type)
    if template is None:
        raise ValidationError(f"No default configuration for persona type '{persona_type}'")
    return PersonaConfig(
        name=template["name"],
        description=template["description"],
        tone_weights=dict(template["tone_weights"]),
        content_rules=ContentRules(**template["content_rules"]),
    )


def build_default_personas(
    identity_id: str, now: datetime, persona_types: tuple[str, ...] = DEFAULT_PERSONAS
) -> list[Persona]:
    personas = []
    for persona_type in persona_types:
        config = default_persona_config(persona_type)
        personas.append(
            Persona(
                identity_id=identity_id,
                persona_type=persona_type,
                name=config.name,
                description=config.description,
                tone_weights=dict(config.tone_weights),
                content_rules=config.content_rules.model_copy(deep=True),
                is_active=persona_type == DEFAULT_ACTIVE_PERSONA,
                created_at=now,
                updated_at=now,
            )
        )
    return personas


class PersonaService:
    """
    Manages the personas attached to an identity.

    The four core personas are created with the identity and can be edited or
    activated but never removed. Custom persona types can be added alongside them.
    """

    def __init__(self, repository: StateRepository, clock: Clock = system_clock):
        self.repository = repository
        self.clock = clock

    async def _require_identity(self, identity_id: str) -> None:
        if await self.repository.get_state(identity_id) is None:
            raise NotFoundError("Identity state")

    async def create_defaults(self, identity_id: str) -> list[Persona]:
        """Create whichever core personas the identity is missing."""
        await self._require_identity(identity_id)
        existing = {p.persona_type for p in await self.repository.list_personas(identity_id)}
        missing = tuple(t for t in DEFAULT_PERSONAS if t not in existing)
        if not missing:
            return []
        personas = build_default_personas(identity_id, self.clock.now(), missing)
        if existing:
            # keep whatever the user already activated
            for persona in personas:
                persona.is_active = False
        await self.repository.save_personas(personas)
        logger.info(f"Created {len(personas)} default personas for identity {redact_id(identity_id)}")
        return personas

    async def list_personas(self, identity_id: str) -> list[Persona]:
        personas = await self.repository.list_personas(identity_id)
        order = {persona_type: i for i, persona_type in enumerate(DEFAULT_PERSONAS)}
        return sorted(personas, key=lambda p: (order.get(p.persona_type, len(order)), p.created_at))

    async def get_by_type(self, identity_id: str, persona_type: str) -> Persona | None:
        for persona in await self.repository.list_personas(identity_id):
            if persona.persona_type == persona_type:
                return persona
        return None

    async def get_active(self, identity_id: str) -> Persona | None:
        for persona in await self.list_personas(identity_id):
            if persona.is_active:
                return persona
        return None

    async def create(
        self,
        identity_id: str,
        persona_type: str,
        name: str,
        description: str | None = None,
        tone_weights: dict[str, float] | None = None,
        style_markers: list[str] | None = None,
        content_rules: ContentRules | dict[str, Any] | None = None,
    ) -> Persona:
        await self._require_identity(identity_id)
        if await self.get_by_type(identity_id, persona_type) is not None:
            raise AlreadyExistsError(f"Persona '{persona_type}'")

        now = self.clock.now()
        try:
            persona = Persona(
                identity_id=identity_id,
                persona_type=persona_type,
                name=name,
                description=description,
                tone_weights=tone_weights or {},
                style_markers=style_markers or [],
                content_rules=content_rules or ContentRules(),
                created_at=now,
                updated_at=now,
            )
        except pydantic.ValidationError as e:
            raise ValidationError(f"Invalid persona: {e.errors()[0]['msg']}") from e

        await self.repository.save_personas([persona])
        return persona

    async def update(self, identity_id: str, persona_type: str, updates: dict[str, Any]) -> Persona:
        unknown = set(updates) - UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(f"Cannot update persona fields: {', '.join(sorted(unknown))}")

        persona = await self.get_by_type(identity_id, persona_type)
        if persona is None:
            raise NotFoundError("Persona")

        merged = {**persona.model_dump(), **updates, "updated_at": self.clock.now()}
        try:
            updated = Persona.model_validate(merged)
        except pydantic.ValidationError as e:
            raise ValidationError(f"Invalid persona update: {e.errors()[0]['msg']}") from e

        await self.repository.save_personas([updated])
        return updated

    async def activate(self, identity_id: str, persona_type: str) -> Persona:
        """Make one persona active and deactivate every other persona of the identity."""
        personas = await self.repository.list_personas(identity_id)
        if not any(p.persona_type == persona_type for p in personas):
            raise NotFoundError("Persona")

        now = self.clock.now()
        changed = []
        target = None
        for persona in personas:
            should_be_active = persona.persona_type == persona_type
            if should_be_active:
                target = persona
            if persona.is_active != should_be_active:
                persona.is_active = should_be_active
                persona.updated_at = now
                changed.append(persona)

        await self.repository.save_personas(changed)
        logger.debug(f"Activated persona '{persona_type}' for identity {redact_id(identity_id)}")
        return target

    async def remove(self, identity_id: str, persona_type: str) -> None:
        if persona_type in DEFAULT_PERSONAS:
            raise ForbiddenError(f"Core persona '{persona_type}' cannot be removed")
        if await self.get_by_type(identity_id, persona_type) is None:
            raise NotFoundError("Persona")
        await self.repository.delete_persona(identity_id, persona_type)

import pytest

from identity_brain.core.errors import NotFoundError, ValidationError
from identity_brain.services.embeddings.math import blend, magnitude
from identity_brain.services.embeddings.service import build_identity_text, build_persona_text


@pytest.mark.asyncio
async def test_identity_text_follows_fixed_order(brain):
    state = await brain.store.create(
        "user-7",
        {
            "core_attributes": {
                "name": "Robin",
                "occupation": "Chef",
                "location": "Porto",
                "personality": ["warm", "curious"],
                "values": ["craft"],
                "interests": ["surfing"],
                "goals": ["open a bistro"],
                "quirks": ["collects spoons"],
                "communication_style": "playful",
            },
            "aesthetic_state": {"style_archetype": "relaxed", "color_palette": {"season": "summer"}},
            "learning_state": {"content_patterns": {"preferred_tone": ["inclusive"], "favorite_topics": ["cooking"]}},
        },
    )

    assert build_identity_text(state) == (
        "Name: Robin. Occupation: Chef. Location: Porto. Personality: warm, curious. Values: craft. "
        "Interests: surfing. Goals: open a bistro. Unique traits: collects spoons. Communication style: playful. "
        "Style archetype: relaxed. Color season: summer. Preferred tone: inclusive. Favorite topics: cooking"
    )


@pytest.mark.asyncio
async def test_persona_text_lists_dominant_tones(brain, identity):
    professional = await brain.personas.get_by_type(identity.id, "professional")
    professional.style_markers = ["bullet points"]

    assert build_persona_text(professional) == (
        "Context: Professional. For work, LinkedIn, resumes, and career-related content. "
        "Tone: confident, direct. Style: bullet points"
    )


@pytest.mark.asyncio
async def test_regenerate_blends_active_persona(brain, identity, provider):
    state = await brain.embeddings.regenerate_embeddings(identity.id)

    identity_vector = await provider.embed(build_identity_text(state))
    professional = await brain.personas.get_active(identity.id)
    persona_vector = await provider.embed(build_persona_text(professional))

    assert state.identity_embedding == identity_vector
    assert state.content_embedding == pytest.approx(blend(identity_vector, persona_vector, 0.8))
    assert magnitude(state.content_embedding) == pytest.approx(1.0)
    assert len(state.identity_embedding) == 1536
    assert state.current_version == 1


@pytest.mark.asyncio
async def test_regenerate_without_active_persona_copies_identity_embedding(brain, identity, repository):
    personas = await repository.list_personas(identity.id)
    for persona in personas:
        persona.is_active = False
    await repository.save_personas(personas)

    state = await brain.embeddings.regenerate_embeddings(identity.id)
    assert state.content_embedding == state.identity_embedding


@pytest.mark.asyncio
async def test_regenerate_requires_content(brain, provider):
    empty = await brain.store.create("user-empty")
    with pytest.raises(ValidationError):
        await brain.embeddings.regenerate_embeddings(empty.id)
    assert provider.calls == []


@pytest.mark.asyncio
async def test_regenerate_unknown_identity(brain):
    with pytest.raises(NotFoundError):
        await brain.embeddings.regenerate_embeddings("missing")


@pytest.mark.asyncio
async def test_embedding_status(brain, identity, clock):
    status = await brain.embeddings.get_embedding_status(identity.id)
    assert status.has_identity_embedding is False
    assert status.embedding_model is None

    clock.advance(minutes=1)
    await brain.embeddings.regenerate_embeddings(identity.id)
    status = await brain.embeddings.get_embedding_status(identity.id)
    assert status.has_identity_embedding and status.has_content_embedding
    assert status.embedding_model == "fake-embedding-3-small"
    assert status.last_updated_at == clock.now()

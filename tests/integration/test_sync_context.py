import pytest

from identity_brain.core.errors import NotFoundError
from identity_brain.services.sync.context import module_context


@pytest.mark.asyncio
async def test_context_collects_identity_personas_and_assets(brain, identity, assets, clock):
    assets.add_photos("user-1", 2)
    for i in range(12):
        clock.advance(minutes=1)
        assets.add_generation("user-1", "bio" if i % 2 else "resume")
    await brain.personas.update(identity.id, "professional", {"style_markers": ["crisp"]})
    await brain.store.update_learning_state(
        identity.id, {"content_patterns": {"preferred_tone": ["polite", "inclusive"], "preferred_length": "long"}}
    )

    context = await brain.context.build_generation_context("user-1")

    assert context.identity.identity_id == identity.id
    assert context.identity.core_attributes.name == "Sam"
    assert set(context.personas) == {"professional", "dating", "social", "private"}
    assert context.photo_count == 2
    assert len(context.recent_generations) == 10
    assert context.recent_generations[0].created_at == clock.now()
    assert context.preferences.tone_weights == {"polite": 1.0, "inclusive": 1.0}
    assert context.preferences.length_preference == "detailed"
    assert context.preferences.style_markers == ["crisp"]


@pytest.mark.asyncio
async def test_context_defaults_without_learning(brain, identity):
    context = await brain.context.build_generation_context("user-1")
    assert context.preferences.tone_weights == {"professional": 1.0, "friendly": 1.0}
    assert context.preferences.length_preference == "standard"


@pytest.mark.asyncio
async def test_context_for_unknown_user(brain):
    with pytest.raises(NotFoundError):
        await brain.context.build_generation_context("nobody")


@pytest.mark.asyncio
async def test_module_context_narrows_personas_and_photos(brain, identity, assets):
    assets.add_photos("user-1", 4)
    context = await brain.context.build_generation_context("user-1")

    career = module_context(context, "career_module")
    assert career.personas["professional"] is not None
    assert career.personas["dating"] is None
    assert career.photo_count == 0

    dating = module_context(context, "dating_module")
    assert dating.personas["professional"] is None
    assert dating.personas["dating"] is not None
    assert dating.photo_count == 4

    photos = module_context(context, "photo_engine")
    assert all(p is None for p in photos.personas.values())

    assert module_context(context, "unknown") == context
    assert context.personas["dating"] is not None

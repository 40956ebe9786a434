import pydantic
import pytest

from identity_brain.core.clock import FrozenClock
from identity_brain.core.errors import ValidationError
from identity_brain.services.identity.personas import build_default_personas, default_persona_config


def test_default_configs_for_core_types():
    professional = default_persona_config("professional")
    assert professional.name == "Professional"
    assert professional.tone_weights["confident"] == 0.8
    assert professional.content_rules.formality == "formal"
    assert professional.content_rules.include_emoji is False

    dating = default_persona_config("dating")
    assert dating.tone_weights["friendly"] == 0.8
    assert dating.content_rules.include_emoji is True

    assert default_persona_config("private").tone_weights["vulnerable"] == 0.8


def test_default_config_is_immutable_and_fresh():
    config = default_persona_config("social")
    with pytest.raises(pydantic.ValidationError):
        config.name = "Changed"

    config.tone_weights["witty"] = 0.0
    assert default_persona_config("social").tone_weights["witty"] == 0.6


def test_unknown_persona_type_has_no_default():
    with pytest.raises(ValidationError):
        default_persona_config("astronaut")


def test_build_default_personas_activates_professional_only():
    personas = build_default_personas("identity-1", FrozenClock().now())
    assert [p.persona_type for p in personas] == ["professional", "dating", "social", "private"]
    assert [p.is_active for p in personas] == [True, False, False, False]
    assert all(p.identity_id == "identity-1" for p in personas)

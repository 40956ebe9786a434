from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from identity_brain.models.identity import new_id, utc_now


class ContentRules(BaseModel):
    max_length: int | None = None
    min_length: int | None = None
    include_emoji: bool | None = None
    formality: Literal["casual", "neutral", "formal"] | None = None
    exclude_topics: list[str] = Field(default_factory=list)


class PersonaConfig(BaseModel):
    """Immutable template a persona is created from."""

    model_config = ConfigDict(frozen=True)

    name: str
    description: str
    tone_weights: dict[str, float]
    content_rules: ContentRules


class Persona(BaseModel):
    """A named lens (professional, dating, ...) applied on top of the identity."""

    id: str = Field(default_factory=new_id)
    identity_id: str
    persona_type: str
    name: str
    description: str | None = None
    tone_weights: dict[str, float] = Field(default_factory=dict)
    style_markers: list[str] = Field(default_factory=list)
    content_rules: ContentRules = Field(default_factory=ContentRules)
    is_active: bool = False
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @field_validator("tone_weights")
    @classmethod
    def _weights_in_range(cls, value: dict[str, float]) -> dict[str, float]:
        for tone, weight in value.items():
            if not 0.0 <= weight <= 1.0:
                raise ValueError(f"Tone weight for '{tone}' must be between 0 and 1, got {weight}")
        return value

    def dominant_tones(self, threshold: float = 0.5) -> list[str]:
        return [tone for tone, weight in self.tone_weights.items() if weight > threshold]

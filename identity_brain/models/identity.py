from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from identity_brain.core.constants import INITIAL_VERSION

SECTION_FIELDS: tuple[str, ...] = ("core_attributes", "aesthetic_state", "learning_state")
EMBEDDING_FIELDS: tuple[str, ...] = ("identity_embedding", "content_embedding")

Rating = Literal["positive", "negative", "neutral"]
LengthBucket = Literal["short", "medium", "long"]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return uuid4().hex


class SyncStatus(str, Enum):
    IDLE = "idle"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


class CoreAttributes(BaseModel):
    """
    Who the user is. Known fields are typed; anything else a client sends is kept
    as an extension field so older documents stay readable.
    """

    model_config = ConfigDict(extra="allow")

    name: str | None = None
    age: int | None = None
    location: str | None = None
    occupation: str | None = None
    interests: list[str] = Field(default_factory=list)
    values: list[str] = Field(default_factory=list)
    personality: list[str] = Field(default_factory=list)
    goals: list[str] = Field(default_factory=list)
    quirks: list[str] = Field(default_factory=list)
    communication_style: str | None = None


class ColorPalette(BaseModel):
    model_config = ConfigDict(extra="allow")

    primary: str | None = None
    secondary: list[str] = Field(default_factory=list)
    accents: list[str] = Field(default_factory=list)
    neutrals: list[str] = Field(default_factory=list)
    avoid: list[str] = Field(default_factory=list)
    season: Literal["spring", "summer", "autumn", "winter"] | None = None
    undertone: Literal["warm", "cool", "neutral"] | None = None


class AestheticState(BaseModel):
    """Styling recommendations derived by the aesthetic module."""

    model_config = ConfigDict(extra="allow")

    color_palette: ColorPalette | None = None
    style_archetype: str | None = None
    hair_suggestions: list[str] = Field(default_factory=list)
    makeup_suggestions: list[str] = Field(default_factory=list)
    wardrobe_guidance: list[str] = Field(default_factory=list)
    last_analyzed_at: datetime | None = None


class FeedbackEntry(BaseModel):
    content_id: str
    content_type: str
    rating: Rating
    comment: str | None = None
    timestamp: datetime
    decay_weight: float = 1.0


class ContentPatterns(BaseModel):
    preferred_length: LengthBucket | None = None
    preferred_tone: list[str] = Field(default_factory=list)
    avoid_topics: list[str] = Field(default_factory=list)
    favorite_topics: list[str] = Field(default_factory=list)


class PerformanceMetrics(BaseModel):
    total_generations: int = 0
    positive_ratings: int = 0
    negative_ratings: int = 0
    average_score: float = 0.0


class LearningState(BaseModel):
    """Aggregated feedback. Newest feedback entry first."""

    model_config = ConfigDict(extra="allow")

    feedback_history: list[FeedbackEntry] = Field(default_factory=list)
    content_patterns: ContentPatterns = Field(default_factory=ContentPatterns)
    performance_metrics: PerformanceMetrics = Field(default_factory=PerformanceMetrics)
    last_learned_at: datetime | None = None


class IdentityState(BaseModel):
    """
    The single living identity document for a user.

    Only the state store mutates it; everything else works on copies.
    """

    id: str = Field(default_factory=new_id)
    user_id: str
    core_attributes: CoreAttributes = Field(default_factory=CoreAttributes)
    aesthetic_state: AestheticState = Field(default_factory=AestheticState)
    learning_state: LearningState = Field(default_factory=LearningState)
    identity_embedding: list[float] | None = None
    content_embedding: list[float] | None = None
    sync_status: SyncStatus = SyncStatus.IDLE
    current_version: int = INITIAL_VERSION
    last_synced_at: datetime | None = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    def section_dump(self, field: str) -> Any:
        """JSON-compatible dump of a section or embedding, used for value-equality checks."""
        value = getattr(self, field)
        if isinstance(value, BaseModel):
            return value.model_dump(mode="json")
        return value


class VersionSnapshot(BaseModel):
    """Immutable copy of an identity taken just before it changed."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    identity_id: str
    version_number: int
    version_type: Literal["auto", "manual"] = "auto"
    snapshot_name: str | None = None
    core_attributes: CoreAttributes
    aesthetic_state: AestheticState
    learning_state: LearningState
    identity_embedding: list[float] | None = None
    content_embedding: list[float] | None = None
    created_at: datetime = Field(default_factory=utc_now)

    @classmethod
    def capture(
        cls,
        state: IdentityState,
        created_at: datetime,
        version_type: Literal["auto", "manual"] = "auto",
        snapshot_name: str | None = None,
    ) -> "VersionSnapshot":
        copy = state.model_copy(deep=True)
        return cls(
            identity_id=state.id,
            version_number=state.current_version,
            version_type=version_type,
            snapshot_name=snapshot_name,
            core_attributes=copy.core_attributes,
            aesthetic_state=copy.aesthetic_state,
            learning_state=copy.learning_state,
            identity_embedding=copy.identity_embedding,
            content_embedding=copy.content_embedding,
            created_at=created_at,
        )

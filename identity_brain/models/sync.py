from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field

from identity_brain.models.identity import (
    AestheticState,
    CoreAttributes,
    LearningState,
    new_id,
    utc_now,
)
from identity_brain.models.persona import Persona

SyncEventType = Literal[
    "content_generated",
    "feedback_received",
    "photo_analyzed",
    "profile_updated",
    "sync_all_triggered",
]
TriggeredBy = Literal["manual", "auto", "feedback"]


class ModuleStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"

    @property
    def is_terminal(self) -> bool:
        return self in (ModuleStatus.COMPLETED, ModuleStatus.FAILED, ModuleStatus.SKIPPED)


class JobStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class ModuleResult(BaseModel):
    module: str
    status: ModuleStatus = ModuleStatus.PENDING
    started_at: datetime | None = None
    completed_at: datetime | None = None
    items_processed: int | None = None
    error: str | None = None
    details: dict[str, Any] | None = None


ModuleResults = dict[str, ModuleResult]


class ModuleOutcome(BaseModel):
    """What a module's run() hands back on success."""

    items_processed: int | None = None
    details: dict[str, Any] = Field(default_factory=dict)


class ExecutionProgress(BaseModel):
    total_modules: int
    completed_modules: int
    current_module: str | None = None
    results: ModuleResults = Field(default_factory=dict)


class SyncJob(BaseModel):
    id: str = Field(default_factory=new_id)
    user_id: str
    status: JobStatus = JobStatus.PENDING
    triggered_by: TriggeredBy | None = None
    total_modules: int
    completed_modules: int = 0
    current_module: str | None = None
    module_results: ModuleResults = Field(default_factory=dict)
    error: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    created_at: datetime = Field(default_factory=utc_now)

    @property
    def has_failures(self) -> bool:
        return any(r.status == ModuleStatus.FAILED for r in self.module_results.values())


class SyncEvent(BaseModel):
    id: str = Field(default_factory=new_id)
    user_id: str
    event_type: SyncEventType
    payload: dict[str, Any] = Field(default_factory=dict)
    sequence_number: int
    processed_at: datetime | None = None
    error: str | None = None
    created_at: datetime = Field(default_factory=utc_now)


class IdentityContext(BaseModel):
    identity_id: str
    core_attributes: CoreAttributes
    aesthetic_state: AestheticState
    learning_state: LearningState
    identity_embedding: list[float] | None = None
    current_version: int


class RecentGeneration(BaseModel):
    id: str
    content_type: str
    created_at: datetime


class GenerationPreferences(BaseModel):
    tone_weights: dict[str, float] = Field(default_factory=dict)
    length_preference: Literal["concise", "standard", "detailed"] = "standard"
    style_markers: list[str] = Field(default_factory=list)


class GenerationContext(BaseModel):
    """Everything a module needs to regenerate its content for one user."""

    user_id: str
    identity: IdentityContext
    personas: dict[str, Persona | None] = Field(default_factory=dict)
    photo_count: int = 0
    recent_generations: list[RecentGeneration] = Field(default_factory=list)
    preferences: GenerationPreferences = Field(default_factory=GenerationPreferences)

from datetime import datetime
from typing import Literal

from loguru import logger
from pydantic import BaseModel

from identity_brain.core.clock import Clock, system_clock
from identity_brain.core.constants import (
    MAX_FEEDBACK_HISTORY,
    MAX_PREFERRED_TONES,
    MAX_TOPICS,
    TREND_MIN_PREVIOUS,
    TREND_THRESHOLD,
    TREND_TOLERANCE,
    TREND_WINDOW,
)
from identity_brain.core.security import redact_id
from identity_brain.models.identity import FeedbackEntry, IdentityState, LearningState, Rating
from identity_brain.services.identity.store import IdentityStateStore
from identity_brain.services.learning.decay import apply_decay, weighted_positive_rate
from identity_brain.services.learning.patterns import extract_content_patterns

Trend = Literal["improving", "declining", "stable"]


class FeedbackInput(BaseModel):
    content_id: str
    content_type: str
    rating: Rating
    comment: str | None = None
    # Generated text the feedback refers to; drives tone/topic learning when present.
    content: str | None = None


class LearningInsights(BaseModel):
    total_feedback: int
    positive_rate: float
    weighted_positive_rate: float
    preferred_tones: list[str]
    favorite_topics: list[str]
    avoid_topics: list[str]
    recent_trend: Trend


def _merge_unique(current: list[str], additions: list[str], cap: int) -> list[str]:
    return list(dict.fromkeys([*current, *additions]))[:cap]


def fold_feedback(learning: LearningState, feedback: FeedbackInput, now: datetime) -> LearningState:
    """
    Fold one feedback signal into the learning state. Pure: returns a new state.
    """
    learning = learning.model_copy(deep=True)

    entry = FeedbackEntry(
        content_id=feedback.content_id,
        content_type=feedback.content_type,
        rating=feedback.rating,
        comment=feedback.comment,
        timestamp=now,
        decay_weight=1.0,
    )
    history = [entry, *learning.feedback_history][:MAX_FEEDBACK_HISTORY]
    learning.feedback_history = apply_decay(history, now)

    patterns = learning.content_patterns
    if feedback.content:
        signals = extract_content_patterns(feedback.content)
        if feedback.rating == "positive":
            patterns.preferred_tone = _merge_unique(patterns.preferred_tone, signals.tones, MAX_PREFERRED_TONES)
            patterns.favorite_topics = _merge_unique(patterns.favorite_topics, signals.keywords, MAX_TOPICS)
            patterns.preferred_length = signals.length
        elif feedback.rating == "negative":
            patterns.avoid_topics = _merge_unique(patterns.avoid_topics, signals.keywords, MAX_TOPICS)

    metrics = learning.performance_metrics
    metrics.total_generations += 1
    if feedback.rating == "positive":
        metrics.positive_ratings += 1
    elif feedback.rating == "negative":
        metrics.negative_ratings += 1
    rated = metrics.positive_ratings + metrics.negative_ratings
    if rated > 0:
        metrics.average_score = metrics.positive_ratings / rated

    learning.last_learned_at = now
    return learning


def recent_trend(history: list[FeedbackEntry]) -> Trend:
    """Compare the positive share of the newest window against the window before it."""
    if len(history) < TREND_WINDOW:
        return "stable"
    recent = history[:TREND_WINDOW]
    previous = history[TREND_WINDOW : TREND_WINDOW * 2]
    if len(previous) < TREND_MIN_PREVIOUS:
        return "stable"

    recent_rate = sum(1 for f in recent if f.rating == "positive") / len(recent)
    previous_rate = sum(1 for f in previous if f.rating == "positive") / len(previous)
    swing = recent_rate - previous_rate
    # window rates are k/n fractions, so an exact 0.1 swing can land a hair below it
    if swing >= TREND_THRESHOLD - TREND_TOLERANCE:
        return "improving"
    if swing <= -(TREND_THRESHOLD - TREND_TOLERANCE):
        return "declining"
    return "stable"


class LearningEngine:
    """
    Turns user feedback into stable preference summaries.

    Learning writes never create version snapshots.
    """

    def __init__(self, store: IdentityStateStore, clock: Clock = system_clock):
        self.store = store
        self.clock = clock

    async def process_feedback(self, identity_id: str, feedback: FeedbackInput | dict) -> IdentityState:
        if isinstance(feedback, dict):
            feedback = FeedbackInput.model_validate(feedback)
        now = self.clock.now()
        state = await self.store.transform_learning_state(
            identity_id, lambda learning: fold_feedback(learning, feedback, now)
        )
        logger.debug(
            f"Processed {feedback.rating} feedback on {feedback.content_type} for identity {redact_id(identity_id)}"
        )
        return state

    async def get_learning_insights(self, identity_id: str) -> LearningInsights:
        state = await self.store.require(identity_id)
        learning = state.learning_state
        metrics = learning.performance_metrics
        patterns = learning.content_patterns
        history = apply_decay(learning.feedback_history, self.clock.now())

        rated = metrics.positive_ratings + metrics.negative_ratings
        return LearningInsights(
            total_feedback=len(history),
            positive_rate=metrics.positive_ratings / rated if rated > 0 else 0.0,
            weighted_positive_rate=weighted_positive_rate(history),
            preferred_tones=list(patterns.preferred_tone),
            favorite_topics=list(patterns.favorite_topics),
            avoid_topics=list(patterns.avoid_topics),
            recent_trend=recent_trend(history),
        )

    async def clear_learning_history(self, identity_id: str) -> IdentityState:
        state = await self.store.update(identity_id, {"learning_state": LearningState()}, snapshot=False)
        logger.info(f"Cleared learning history for identity {redact_id(identity_id)}")
        return state

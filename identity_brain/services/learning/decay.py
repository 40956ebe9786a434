from collections.abc import Sequence
from datetime import datetime

from identity_brain.core.clock import ensure_aware
from identity_brain.core.constants import DECAY_HALF_LIFE_DAYS, DECAY_WEIGHT_CEILING, DECAY_WEIGHT_FLOOR
from identity_brain.models.identity import FeedbackEntry

SECONDS_PER_DAY = 86400.0


def calculate_decay_weight(timestamp: datetime, now: datetime) -> float:
    """
    Exponential decay with a 30 day half-life, clamped to [0.01, 1.0].

    Args:
        timestamp: When the feedback was given
        now: Reference time

    Returns:
        1.0 for fresh (or future-dated) feedback, halving every 30 days of age
    """
    age_days = (ensure_aware(now) - ensure_aware(timestamp)).total_seconds() / SECONDS_PER_DAY
    if age_days <= 0:
        return DECAY_WEIGHT_CEILING
    weight = 2 ** (-age_days / DECAY_HALF_LIFE_DAYS)
    return max(DECAY_WEIGHT_FLOOR, min(DECAY_WEIGHT_CEILING, weight))


def apply_decay(history: Sequence[FeedbackEntry], now: datetime) -> list[FeedbackEntry]:
    """Copies of the entries with their decay weight recomputed against now."""
    return [
        entry.model_copy(update={"decay_weight": calculate_decay_weight(entry.timestamp, now)}) for entry in history
    ]


def weighted_positive_rate(history: Sequence[FeedbackEntry]) -> float:
    """
    Share of positive feedback among rated entries, each entry counted by its decay weight.
    Neutral feedback is ignored. Returns 0.0 when nothing is rated.
    """
    positive = 0.0
    rated = 0.0
    for entry in history:
        if entry.rating == "neutral":
            continue
        rated += entry.decay_weight
        if entry.rating == "positive":
            positive += entry.decay_weight
    return positive / rated if rated > 0 else 0.0

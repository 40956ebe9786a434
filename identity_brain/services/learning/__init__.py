from identity_brain.services.learning.decay import apply_decay, calculate_decay_weight, weighted_positive_rate
from identity_brain.services.learning.engine import FeedbackInput, LearningEngine, LearningInsights
from identity_brain.services.learning.patterns import ContentSignals, extract_content_patterns

__all__ = [
    "LearningEngine",
    "FeedbackInput",
    "LearningInsights",
    "ContentSignals",
    "extract_content_patterns",
    "calculate_decay_weight",
    "apply_decay",
    "weighted_positive_rate",
]

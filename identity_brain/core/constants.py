"""
Core constants used across the identity brain. Keep these simple and documented.
"""

from typing import Final

# Versioning: auto snapshots kept per identity (manual snapshots are never pruned)
MAX_AUTO_VERSIONS: Final[int] = 5
INITIAL_VERSION: Final[int] = 1

# Embeddings (text-embedding-3-small)
EMBEDDING_DIMENSIONS: Final[int] = 1536
EMBEDDING_BLEND_RATIO: Final[float] = 0.8  # 80% identity, 20% persona context

# Learning
MAX_FEEDBACK_HISTORY: Final[int] = 100
DECAY_HALF_LIFE_DAYS: Final[float] = 30.0
DECAY_WEIGHT_FLOOR: Final[float] = 0.01
DECAY_WEIGHT_CEILING: Final[float] = 1.0
MAX_PREFERRED_TONES: Final[int] = 10
MAX_TOPICS: Final[int] = 20
MAX_KEYWORDS_PER_CONTENT: Final[int] = 5
SHORT_CONTENT_WORDS: Final[int] = 50
MEDIUM_CONTENT_WORDS: Final[int] = 200
TREND_WINDOW: Final[int] = 10
TREND_MIN_PREVIOUS: Final[int] = 5
TREND_THRESHOLD: Final[float] = 0.1
TREND_TOLERANCE: Final[float] = 1e-9

# Personas
DEFAULT_PERSONAS: Final[tuple[str, ...]] = ("professional", "dating", "social", "private")
DEFAULT_ACTIVE_PERSONA: Final[str] = "professional"

# Sync-All
SYNC_MODULES: Final[tuple[str, ...]] = (
    "photo_engine",
    "bio_generator",
    "career_module",
    "dating_module",
    "aesthetic_module",
)

# Completion score: weight of each core attribute (sums to 100)
COMPLETION_WEIGHTS: Final[dict[str, int]] = {
    "name": 15,
    "occupation": 15,
    "interests": 15,
    "location": 10,
    "values": 10,
    "personality": 10,
    "goals": 10,
    "age": 5,
    "quirks": 5,
    "communication_style": 5,
}

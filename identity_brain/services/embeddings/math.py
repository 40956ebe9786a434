import math
from collections.abc import Sequence

from identity_brain.core.constants import EMBEDDING_BLEND_RATIO
from identity_brain.core.errors import ValidationError

# norms below this are rounding residue, not direction
ZERO_NORM_EPSILON = 1e-12


def _check_dimensions(a: Sequence[float], b: Sequence[float]) -> None:
    if len(a) != len(b):
        raise ValidationError(
            f"Embedding dimension mismatch: {len(a)} vs {len(b)}",
            {"left": len(a), "right": len(b)},
        )


def magnitude(vector: Sequence[float]) -> float:
    return math.sqrt(sum(x * x for x in vector))


def normalize(vector: Sequence[float]) -> list[float]:
    """L2-normalize a vector. A zero (or near-zero) vector comes back as the zero vector."""
    norm = magnitude(vector)
    if norm < ZERO_NORM_EPSILON:
        return [0.0] * len(vector)
    return [x / norm for x in vector]


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Cosine similarity between two embeddings.

    Returns 0.0 when either vector has zero magnitude.
    """
    _check_dimensions(a, b)
    norm_a = magnitude(a)
    norm_b = magnitude(b)
    if norm_a == 0 or norm_b == 0:
        return 0.0
    dot = sum(x * y for x, y in zip(a, b))
    return dot / (norm_a * norm_b)


def blend(
    primary: Sequence[float],
    secondary: Sequence[float],
    primary_weight: float = EMBEDDING_BLEND_RATIO,
) -> list[float]:
    """
    Weighted combination of two embeddings, renormalized to unit length.

    Args:
        primary: Dominant embedding (identity)
        secondary: Adjusting embedding (persona context)
        primary_weight: Share of the primary vector, the secondary gets the rest

    Returns:
        Blended unit vector (or the zero vector if the weighted sum cancels out)
    """
    _check_dimensions(primary, secondary)
    secondary_weight = 1.0 - primary_weight
    combined = [p * primary_weight + s * secondary_weight for p, s in zip(primary, secondary)]
    return normalize(combined)

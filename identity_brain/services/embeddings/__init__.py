from identity_brain.services.embeddings.math import blend, cosine_similarity, normalize
from identity_brain.services.embeddings.provider import EmbeddingProvider, OpenAIEmbeddingProvider
from identity_brain.services.embeddings.service import (
    EmbeddingService,
    EmbeddingStatus,
    build_identity_text,
    build_persona_text,
)

__all__ = [
    "blend",
    "cosine_similarity",
    "normalize",
    "EmbeddingProvider",
    "OpenAIEmbeddingProvider",
    "EmbeddingService",
    "EmbeddingStatus",
    "build_identity_text",
    "build_persona_text",
]

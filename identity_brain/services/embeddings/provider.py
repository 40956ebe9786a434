from typing import Any, Protocol

import httpx
from loguru import logger

from identity_brain.core.base_client import BaseClient
from identity_brain.core.config import settings
from identity_brain.core.errors import ServiceError, ValidationError


class EmbeddingProvider(Protocol):
    model: str

    async def embed(self, text: str) -> list[float]: ...


class OpenAIEmbeddingProvider(BaseClient):
    """
    Client for an OpenAI-compatible /embeddings endpoint.
    """

    provider_name = "openai"

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        model: str | None = None,
        dimensions: int | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        key = api_key or settings.OPENAI_API_KEY
        headers = {"Content-Type": "application/json"}
        if key:
            headers["Authorization"] = f"Bearer {key}"
        super().__init__(
            base_url=base_url or settings.EMBEDDING_API_BASE,
            timeout=settings.EMBEDDING_TIMEOUT_SECONDS,
            headers=headers,
            transport=transport,
        )
        self.model = model or settings.EMBEDDING_MODEL
        self.dimensions = dimensions or settings.EMBEDDING_DIMENSIONS

    async def embed(self, text: str) -> list[float]:
        if not text or not text.strip():
            raise ValidationError("Cannot embed empty text")

        payload: dict[str, Any] = {"model": self.model, "input": text}
        try:
            data = await self.post("/embeddings", json=payload)
        except httpx.HTTPStatusError as e:
            raise ServiceError(
                f"Embedding request failed with status {e.response.status_code}",
                provider=self.provider_name,
                details={"status": e.response.status_code},
            ) from e
        except httpx.RequestError as e:
            raise ServiceError(f"Embedding request failed: {e}", provider=self.provider_name) from e
        except ValueError as e:
            # response body was not JSON
            raise ServiceError(f"Invalid embedding response: {e}", provider=self.provider_name) from e

        try:
            vector = data["data"][0]["embedding"]
        except (KeyError, IndexError, TypeError) as e:
            logger.error(f"Unexpected embedding payload shape from {self.base_url}: {str(data)[:200]}")
            raise ServiceError("Embedding response missing data", provider=self.provider_name) from e

        if len(vector) != self.dimensions:
            raise ServiceError(
                f"Expected {self.dimensions}-dimensional embedding, got {len(vector)}",
                provider=self.provider_name,
            )
        return [float(x) for x in vector]

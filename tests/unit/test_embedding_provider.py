import json

import httpx
import pytest

from identity_brain.core.errors import ServiceError, ValidationError
from identity_brain.services.embeddings.provider import OpenAIEmbeddingProvider


def make_provider(handler, dimensions: int = 4) -> OpenAIEmbeddingProvider:
    return OpenAIEmbeddingProvider(
        api_key="sk-test",
        base_url="https://embeddings.test/v1",
        model="text-embedding-3-small",
        dimensions=dimensions,
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.asyncio
async def test_embed_posts_model_and_input():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers.get("Authorization")
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"data": [{"embedding": [0.1, 0.2, 0.3, 0.4]}]})

    provider = make_provider(handler)
    vector = await provider.embed("Name: Sam")
    await provider.close()

    assert vector == [0.1, 0.2, 0.3, 0.4]
    assert seen["url"] == "https://embeddings.test/v1/embeddings"
    assert seen["auth"] == "Bearer sk-test"
    assert seen["body"] == {"model": "text-embedding-3-small", "input": "Name: Sam"}


@pytest.mark.asyncio
async def test_embed_rejects_empty_text():
    provider = make_provider(lambda request: httpx.Response(500))
    with pytest.raises(ValidationError):
        await provider.embed("   ")


@pytest.mark.asyncio
async def test_client_error_maps_to_service_error_without_retry():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(401, json={"error": "bad key"})

    provider = make_provider(handler)
    with pytest.raises(ServiceError) as exc_info:
        await provider.embed("hello")

    assert len(calls) == 1
    assert exc_info.value.provider == "openai"
    assert exc_info.value.details["status"] == 401


@pytest.mark.asyncio
async def test_retryable_status_is_retried():
    responses = iter(
        [
            httpx.Response(503),
            httpx.Response(200, json={"data": [{"embedding": [1.0, 0.0, 0.0, 0.0]}]}),
        ]
    )
    provider = make_provider(lambda request: next(responses))
    provider.max_retries = 2

    assert await provider.embed("hello") == [1.0, 0.0, 0.0, 0.0]


@pytest.mark.asyncio
async def test_wrong_dimension_is_a_service_error():
    provider = make_provider(lambda request: httpx.Response(200, json={"data": [{"embedding": [1.0, 2.0]}]}))
    with pytest.raises(ServiceError, match="4-dimensional"):
        await provider.embed("hello")


@pytest.mark.asyncio
async def test_malformed_payload_is_a_service_error():
    provider = make_provider(lambda request: httpx.Response(200, json={"object": "list"}))
    with pytest.raises(ServiceError, match="missing data"):
        await provider.embed("hello")


@pytest.mark.asyncio
async def test_transport_failure_is_a_service_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    provider = make_provider(handler)
    provider.max_retries = 1
    with pytest.raises(ServiceError, match="connection refused"):
        await provider.embed("hello")

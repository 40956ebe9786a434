import asyncio
from typing import Any

import httpx
from loguru import logger

RETRYABLE_STATUS_CODES = {408, 429, 500, 502, 503, 504}


class BaseClient:
    """
    Base asynchronous HTTP client for external providers, with retry and backoff.
    """

    def __init__(
        self,
        base_url: str = "",
        timeout: float = 10.0,
        max_retries: int = 3,
        headers: dict[str, str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url
        self.timeout = timeout
        self.max_retries = max_retries
        self.headers = headers or {}
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def get_client(self) -> httpx.AsyncClient:
        """Get or create the httpx.AsyncClient instance."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                headers=self.headers,
                follow_redirects=True,
                transport=self._transport,
            )
        return self._client

    async def close(self):
        """Close the underlying HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    @staticmethod
    def _is_retryable(exc: Exception) -> bool:
        if isinstance(exc, httpx.HTTPStatusError):
            return exc.response.status_code in RETRYABLE_STATUS_CODES
        return isinstance(exc, httpx.RequestError)

    async def _request(self, method: str, url: str, max_tries: int | None = None, **kwargs) -> httpx.Response:
        """Send a request, retrying transport errors and retryable status codes with exponential backoff."""
        client = await self.get_client()
        tries = max_tries or self.max_retries

        for attempt in range(1, tries + 1):
            try:
                response = await client.request(method, url, **kwargs)
                response.raise_for_status()
                return response
            except (httpx.HTTPStatusError, httpx.RequestError) as e:
                if not self._is_retryable(e) or attempt == tries:
                    logger.error(f"Request failed ({method} {url}) after {attempt} attempt(s): {e}")
                    raise
                wait_time = 0.5 * (2 ** (attempt - 1))
                logger.warning(
                    f"Request failed ({method} {url}): {e}. Retrying in {wait_time}s... (Attempt {attempt}/{tries})"
                )
                await asyncio.sleep(wait_time)

        raise httpx.RequestError("Request failed for unknown reasons")

    async def post(self, url: str, json: dict[str, Any] | None = None, **kwargs) -> dict[str, Any]:
        """Perform a POST request and return the JSON response."""
        response = await self._request("POST", url, json=json, **kwargs)
        return response.json()

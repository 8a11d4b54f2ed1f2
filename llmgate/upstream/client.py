"""HTTP client for the upstream OpenAI-compatible provider."""

import logging
from typing import Any, AsyncIterator, Dict, Optional

import httpx

from llmgate.config.loader import UpstreamConfig
from llmgate.upstream.exceptions import UpstreamError, UpstreamResponseError, UpstreamTimeoutError
from llmgate.upstream.models import UpstreamReply

logger = logging.getLogger(__name__)


class UpstreamClient:
    """Forwards chat and text completions to the configured provider.

    Non-2xx replies are not errors: their status and body are relayed as-is.
    """

    def __init__(self, config: UpstreamConfig, client: Optional[httpx.AsyncClient] = None):
        self.config = config
        self._client = client

    @property
    def client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.config.timeout_seconds)
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def chat_completions(self, payload: Dict[str, Any]) -> UpstreamReply:
        return await self._post("/chat/completions", payload)

    async def completions(self, payload: Dict[str, Any]) -> UpstreamReply:
        return await self._post("/completions", payload)

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.config.api_key:
            headers["Authorization"] = f"Bearer {self.config.api_key}"
        return headers

    async def _post(self, endpoint: str, payload: Dict[str, Any]) -> UpstreamReply:
        url = f"{self.config.api_url}{endpoint}"
        request = self.client.build_request("POST", url, json=payload, headers=self._headers())
        streamed = payload.get("stream") is True

        try:
            response = await self.client.send(request, stream=streamed)
        except httpx.TimeoutException as e:
            raise UpstreamTimeoutError(
                f"Upstream request timed out after {self.config.timeout_seconds}s: {e}"
            )
        except httpx.HTTPError as e:
            raise UpstreamError(f"Upstream error: {e}")

        if streamed:
            return UpstreamReply(status_code=response.status_code, chunks=self._relay(response))

        try:
            body = response.json()
        except ValueError:
            raise UpstreamResponseError(
                "Upstream returned non-JSON response", status_code=response.status_code
            )

        if response.status_code >= 400:
            logger.warning(f"Upstream {endpoint} returned {response.status_code}")
        return UpstreamReply(status_code=response.status_code, body=body)

    @staticmethod
    async def _relay(response: httpx.Response) -> AsyncIterator[bytes]:
        try:
            async for chunk in response.aiter_bytes():
                yield chunk
        except httpx.HTTPError as e:
            logger.error(f"Stream error: {e}")
        finally:
            await response.aclose()

"""HTTP delivery of flush payloads to a remote collector."""

from collections.abc import Mapping
from typing import Any

import httpx

from telemetripy.core.encoding.ndjson import dumps


class HttpCollector:
    """Posts flush payloads as JSON with bearer auth.

    A transport error or a non-2xx response raises, which the manager
    treats as a delivery failure.

    Args:
        endpoint: Collector URL.
        api_key: Bearer token.
        timeout: Request timeout in seconds.
        client: Shared ``httpx.AsyncClient``; when omitted the collector
            creates and owns one.
    """

    def __init__(
        self,
        endpoint: str,
        api_key: str,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.endpoint = endpoint
        self._api_key = api_key
        self._timeout = timeout
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def send(self, payload: Mapping[str, Any]) -> None:
        response = await self._get_client().post(
            self.endpoint,
            content=dumps(payload),
            headers={
                "Content-Type": "application/json",
                "Authorization": f"Bearer {self._api_key}",
            },
            timeout=self._timeout,
        )
        response.raise_for_status()

    async def aclose(self) -> None:
        """Close the HTTP client if this collector created it."""
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

"""
Infrastructure adapter: httpx.AsyncClient → IApiTransport.
All httpx-specific details (client, headers, exceptions) are confined here;
the scheduler and the controller depend only on IApiTransport.

No timeout is applied unless one is configured: a request that never answers
keeps its concurrency slot for the lifetime of the agent.
"""

from typing import Optional

import httpx

from src.domain.entities.api_response import ApiResponse
from src.domain.errors import ApiTransportError
from src.domain.ports.api_transport_port import IApiTransport


class HttpxApiTransport(IApiTransport):
    """Unauthenticated GET requests to the GitHub REST API, or token-authenticated ones."""

    API_URL = "https://api.github.com"
    ACCEPT = "application/vnd.github.v3+json"

    def __init__(
        self,
        token: Optional[str] = None,
        base_url: str = API_URL,
        timeout: Optional[float] = None,
        http_transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """
        Args:
            token:          GitHub token sent as "Authorization: token <token>".
            base_url:       API root; endpoints are appended to it.
            timeout:        Per-request timeout in seconds. None waits forever.
            http_transport: Optional httpx transport (e.g. httpx.MockTransport in tests).
        """
        headers = {"Accept": self.ACCEPT}
        if token:
            headers["Authorization"] = f"token {token}"
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers=headers,
            timeout=timeout,
            transport=http_transport,
        )

    async def get(self, endpoint: str) -> ApiResponse:
        try:
            response = await self._client.get(endpoint)
        except (httpx.HTTPError, httpx.InvalidURL, httpx.StreamError) as exc:
            raise ApiTransportError(f"GET {endpoint} failed: {exc!r}") from exc
        return ApiResponse(
            endpoint=endpoint,
            status_code=response.status_code,
            text=response.text,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

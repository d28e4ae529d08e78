"""
Port (interface) for API transports.
Infrastructure adapters (e.g. HttpxApiTransport) must implement this interface.
The transport is shape-agnostic: it never interprets response bodies.
"""

from abc import ABC, abstractmethod

from src.domain.entities.api_response import ApiResponse


class IApiTransport(ABC):
    @abstractmethod
    async def get(self, endpoint: str) -> ApiResponse:
        """Perform a GET on a path-relative endpoint (e.g. '/user').

        Any HTTP status, error statuses included, is returned as an ApiResponse.

        Raises:
            ApiTransportError: if no response could be obtained.
        """
        ...

    @abstractmethod
    async def aclose(self) -> None:
        """Release connections held by the transport."""
        ...

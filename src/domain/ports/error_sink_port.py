"""
Port (interface) for the caller-visible error channel of an ApiAgent.
The agent reports at most one error per instance: the one that deactivated it.
"""

from abc import ABC, abstractmethod

from src.domain.errors import FetchError


class IErrorSink(ABC):
    @abstractmethod
    def report(self, error: FetchError) -> None: ...

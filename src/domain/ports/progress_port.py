"""
Port (interface) for busy/idle observers of an ApiAgent (e.g. a progress spinner).
Calls alternate strictly: on_busy, on_idle, on_busy, ...
"""

from abc import ABC, abstractmethod


class IProgressObserver(ABC):
    @abstractmethod
    def on_busy(self) -> None:
        """The agent dispatched a request while idle."""
        ...

    @abstractmethod
    def on_idle(self) -> None:
        """No request is in flight and nothing more will be dispatched for now."""
        ...

"""
Port (interface) for consumers of the rows produced by WorkflowStatusController.
Indices refer to the controller's StatusTable at the time of the call.
"""

from abc import ABC, abstractmethod

from src.domain.entities.status_row import StatusRow


class IStatusObserver(ABC):
    @abstractmethod
    def on_start(self, user: str, authenticated: bool) -> None:
        """The traversal identity is known and the repository listing begins."""
        ...

    @abstractmethod
    def on_row_inserted(self, index: int, row: StatusRow) -> None: ...

    @abstractmethod
    def on_row_resolved(self, index: int, row: StatusRow) -> None: ...

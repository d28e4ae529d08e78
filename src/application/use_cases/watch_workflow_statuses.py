"""
Use-case: list the latest workflow run of every repository of a GitHub user.
Depends only on Domain ports and entities and on the application services;
the transport is injected, no HTTP library is imported here.

Each call builds its own ApiAgent and controller, so concurrent or restarted
traversals never share scheduling state.
"""

import asyncio
from dataclasses import dataclass
from typing import AsyncGenerator, Optional

from src.application.services.api_agent import ApiAgent
from src.application.services.status_controller import PER_PAGE, WorkflowStatusController
from src.domain.entities.status_row import StatusRow
from src.domain.errors import FetchError
from src.domain.ports.api_transport_port import IApiTransport
from src.domain.ports.error_sink_port import IErrorSink
from src.domain.ports.progress_port import IProgressObserver
from src.domain.ports.status_observer_port import IStatusObserver


@dataclass(frozen=True)
class StatusReport:
    user: Optional[str]
    authenticated: bool
    rows: list[StatusRow]
    error: Optional[FetchError]


def serialize_row(row: StatusRow, include_raw: bool = False) -> dict:
    """Flatten a row into JSON-ready primitives."""
    run = None
    if row.run is not None:
        run = {
            "id": row.run.id,
            "html_url": row.run.html_url,
            "status": row.run.status,
            "conclusion": row.run.conclusion,
        }
        if include_raw:
            run["raw"] = row.run.raw
    data = {
        "repository": row.repository_name,
        "repository_label": row.repository.label,
        "repository_url": row.repository.html_url,
        "workflow": row.workflow.name,
        "workflow_id": row.workflow.id,
        "workflow_url": row.workflow.html_url,
        "state": row.workflow.state,
        "resolved": row.resolved,
        "run": run,
    }
    if include_raw:
        data["repository_raw"] = row.repository.raw
        data["workflow_raw"] = row.workflow.raw
    return data


def serialize_error(error: FetchError) -> dict:
    kind = getattr(error, "kind", None)
    return {
        "kind": kind.value if kind is not None else "internal",
        "status_code": getattr(error, "status_code", None),
        "endpoint": error.endpoint,
        "message": error.message,
        "documentation_url": getattr(error, "documentation_url", None),
    }


class _ErrorCollector(IErrorSink):
    def __init__(self) -> None:
        self.error: Optional[FetchError] = None

    def report(self, error: FetchError) -> None:
        self.error = error


class _EventChannel(IStatusObserver, IErrorSink, IProgressObserver):
    """Turns controller and agent notifications into queued event dicts.

    None is queued when the agent goes idle: the traversal is over.
    """

    def __init__(self) -> None:
        self.events: asyncio.Queue = asyncio.Queue()

    def on_start(self, user: str, authenticated: bool) -> None:
        self.events.put_nowait({"type": "start", "user": user, "authenticated": authenticated})

    def on_row_inserted(self, index: int, row: StatusRow) -> None:
        self.events.put_nowait({"type": "row_inserted", "index": index, "row": serialize_row(row)})

    def on_row_resolved(self, index: int, row: StatusRow) -> None:
        self.events.put_nowait({"type": "row_resolved", "index": index, "row": serialize_row(row)})

    def report(self, error: FetchError) -> None:
        self.events.put_nowait({"type": "error", **serialize_error(error)})

    def on_busy(self) -> None:
        pass

    def on_idle(self) -> None:
        self.events.put_nowait(None)


class WatchWorkflowStatusesUseCase:
    def __init__(
        self,
        transport: IApiTransport,
        connections_limit: int = 1,
        per_page: int = PER_PAGE,
    ) -> None:
        """
        Args:
            transport:         IApiTransport implementation (e.g. HttpxApiTransport).
                               Owned by the caller, never closed here.
            connections_limit: Maximum number of simultaneous requests.
            per_page:          Page size of the paginated listings.
        """
        if connections_limit < 1:
            raise ValueError(f"connections_limit must be >= 1, got {connections_limit}")
        self._transport = transport
        self._connections_limit = connections_limit
        self._per_page = per_page

    async def execute(
        self,
        user: Optional[str] = None,
        default_branch: bool = True,
    ) -> AsyncGenerator[dict, None]:
        """Stream traversal events as they happen.

        Yields dicts whose "type" is one of:
            start         {"user": str, "authenticated": bool}
            row_inserted  {"index": int, "row": dict}  run lookup pending
            row_resolved  {"index": int, "row": dict}
            error         {"kind", "status_code", "endpoint", "message", "documentation_url"}
            done          {"rows": int}  always last

        Closing the generator early deactivates the traversal and waits for
        the requests already in flight, whose continuations are skipped.
        """
        channel = _EventChannel()
        agent = ApiAgent(
            self._transport,
            self._connections_limit,
            error_sink=channel,
            progress=channel,
        )
        controller = WorkflowStatusController(agent, observer=channel, per_page=self._per_page)
        controller.process(user, default_branch)
        try:
            while True:
                event = await channel.events.get()
                if event is None:
                    break
                yield event
            yield {"type": "done", "rows": len(controller.table)}
        finally:
            controller.deactivate()
            # In-flight requests must finish before the caller closes the transport.
            await agent.join()

    async def collect(
        self,
        user: Optional[str] = None,
        default_branch: bool = True,
    ) -> StatusReport:
        """Run the traversal to completion and return the sorted rows.

        A fatal error does not raise: it is returned in StatusReport.error along
        with the rows gathered before it happened.
        """
        errors = _ErrorCollector()
        agent = ApiAgent(
            self._transport,
            self._connections_limit,
            error_sink=errors,
        )
        controller = WorkflowStatusController(agent, per_page=self._per_page)
        controller.process(user, default_branch)
        try:
            await agent.join()
        finally:
            controller.deactivate()
        return StatusReport(
            user=controller.user,
            authenticated=controller.authenticated,
            rows=controller.table.rows,
            error=errors.error,
        )

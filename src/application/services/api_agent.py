"""
Application service: bounded-concurrency, priority-ordered API request dispatcher.

The agent throttles API calls, with the goal of preventing or reducing:
  > 403: You have triggered an abuse detection mechanism.
    Please wait a few minutes before you try again.

Scheduling model:
  - Everything runs on one asyncio event loop; state is only touched between
    awaits, so no locks are needed.
  - At most `connections_limit` requests are in flight. Queued requests are
    dispatched highest priority first, FIFO among equal priorities.
  - The first fatal error (any exception raised by the transport, any status
    >= 400, an invalid JSON body, a raising continuation) deactivates the
    agent for good and is reported once to the IErrorSink. In-flight requests finish but their
    continuations are skipped; queued requests are never dispatched.

The transport (IApiTransport) is injected; no HTTP library is imported here.
"""

import asyncio
import logging
from typing import Any, Callable, Optional

from src.domain.entities.api_response import ApiResponse
from src.domain.entities.fetch_task import FetchTask
from src.domain.errors import ApiError, ApiTransportError, ContinuationError, FetchError
from src.domain.ports.api_transport_port import IApiTransport
from src.domain.ports.error_sink_port import IErrorSink
from src.domain.ports.progress_port import IProgressObserver
from src.domain.scheduling.priority_queue import PriorityQueue

logger = logging.getLogger(__name__)

DEFAULT_PRIORITY = 0


class ApiAgent:
    def __init__(
        self,
        transport: IApiTransport,
        connections_limit: int = 1,
        error_sink: Optional[IErrorSink] = None,
        progress: Optional[IProgressObserver] = None,
    ) -> None:
        if connections_limit < 1:
            raise ValueError(f"connections_limit must be >= 1, got {connections_limit}")
        self._transport = transport
        self._connections_limit = connections_limit
        self._error_sink = error_sink
        self._progress = progress
        self._pending: PriorityQueue[FetchTask] = PriorityQueue()
        self._in_flight = 0
        self._active = True
        self._busy = False
        self._idle = asyncio.Event()
        self._idle.set()
        self._requests: set[asyncio.Task] = set()

    @property
    def active(self) -> bool:
        return self._active

    @property
    def in_flight(self) -> int:
        return self._in_flight

    @property
    def pending(self) -> int:
        return self._pending.size()

    @property
    def connections_limit(self) -> int:
        return self._connections_limit

    def submit(
        self,
        endpoint: str,
        callback: Optional[Callable[[Any], None]] = None,
        priority: int = DEFAULT_PRIORITY,
    ) -> None:
        """Queue a GET of *endpoint*; *callback* receives the parsed JSON body.

        Must be called from a coroutine or callback running on the event loop.
        The request dispatched immediately (if there is spare capacity) is the
        highest-priority queued one, which is not necessarily this one.

        Raises:
            ValueError: if *endpoint* is not path-relative.
        """
        if not endpoint.startswith("/"):
            raise ValueError(f"invalid endpoint: {endpoint!r}")
        self._pending.push(FetchTask(endpoint, callback, priority), priority)
        if self._active and self._in_flight < self._connections_limit:
            self._dispatch(self._pending.pop())

    def deactivate(self) -> None:
        """Stop all future dispatch and continuations. Irreversible and idempotent."""
        if not self._active:
            return
        self._deactivate()
        if self._in_flight == 0:
            self._mark_idle()

    async def join(self) -> None:
        """Wait until nothing is in flight and nothing more will be dispatched."""
        await self._idle.wait()

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def _dispatch(self, task: FetchTask) -> None:
        self._in_flight += 1
        self._mark_busy()
        logger.debug(
            "GET %s (priority %d, %d/%d in flight, %d queued)",
            task.endpoint,
            task.priority,
            self._in_flight,
            self._connections_limit,
            self._pending.size(),
        )
        request = asyncio.get_running_loop().create_task(self._request(task))
        self._requests.add(request)
        request.add_done_callback(self._requests.discard)

    async def _request(self, task: FetchTask) -> None:
        response: Optional[ApiResponse] = None
        error: Optional[FetchError] = None
        try:
            response = await self._transport.get(task.endpoint)
        except ApiTransportError as exc:
            error = ApiError.from_transport(exc, task.endpoint)
        except Exception as exc:
            # Transports are expected to raise ApiTransportError only.
            logger.exception("Transport raised an unexpected error for %s", task.endpoint)
            error = ApiError.from_transport(exc, task.endpoint)
            error.__cause__ = exc
        finally:
            self._in_flight -= 1

        if self._active:
            if error is None:
                error = self._complete(task, response)
            if error is not None:
                self._fail(error, response)
        self._advance()

    def _complete(self, task: FetchTask, response: ApiResponse) -> Optional[FetchError]:
        """Run the continuation of a finished request; return the error to raise, if any."""
        if response.status_code >= 400:
            return ApiError.from_status(response.status_code, response.text, task.endpoint)
        if not response.ok:
            logger.warning("Ignoring %d response for %s", response.status_code, task.endpoint)
            return None
        if task.callback is None:
            return None
        try:
            payload = response.json()
        except ValueError:
            return ApiError.invalid_response(response.status_code, task.endpoint)
        try:
            task.callback(payload)
        except Exception as exc:
            logger.exception("Continuation for %s raised", task.endpoint)
            error = ContinuationError(task.endpoint, exc)
            error.__cause__ = exc
            return error
        return None

    def _deactivate(self) -> None:
        self._active = False
        logger.info(
            "Agent deactivated: %d request(s) in flight, %d queued request(s) dropped",
            self._in_flight,
            self._pending.size(),
        )

    def _fail(self, error: FetchError, response: Optional[ApiResponse]) -> None:
        # Idle is signalled afterwards by _advance, so observers see the error first.
        self._deactivate()
        if response is not None and response.status_code >= 400:
            logger.error("%s\n%s", response.status_code, response.text)
        else:
            logger.error("%s failed: %s", error.endpoint, error.message)
        if self._error_sink is not None:
            self._error_sink.report(error)

    def _advance(self) -> None:
        if self._active and self._pending.size() > 0:
            if self._in_flight < self._connections_limit:
                self._dispatch(self._pending.pop())
        elif self._in_flight == 0:
            self._mark_idle()

    # ------------------------------------------------------------------
    # Busy / idle transitions
    # ------------------------------------------------------------------

    def _mark_busy(self) -> None:
        if self._busy:
            return
        self._busy = True
        self._idle.clear()
        if self._progress is not None:
            self._progress.on_busy()

    def _mark_idle(self) -> None:
        if not self._busy:
            return
        self._busy = False
        self._idle.set()
        if self._progress is not None:
            self._progress.on_idle()

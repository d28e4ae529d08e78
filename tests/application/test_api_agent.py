"""Tests for ApiAgent scheduling, concurrency bound, idling and error handling."""

import asyncio
from unittest.mock import MagicMock, call

import pytest

from src.application.services.api_agent import ApiAgent
from src.application.services.status_controller import REPOS_PRIORITY, RUN_PRIORITY
from src.domain.errors import ApiErrorKind, ApiTransportError, ContinuationError
from src.domain.ports.error_sink_port import IErrorSink
from src.domain.ports.progress_port import IProgressObserver


def ok(_endpoint):
    return (200, {"ok": True})


class TestSubmitValidation:
    def test_endpoint_must_be_path_relative(self, fake_transport):
        agent = ApiAgent(fake_transport())
        with pytest.raises(ValueError, match="invalid endpoint"):
            agent.submit("users/octocat")

    def test_connections_limit_must_be_positive(self, fake_transport):
        with pytest.raises(ValueError):
            ApiAgent(fake_transport(), connections_limit=0)

    def test_default_limit_is_one(self, fake_transport):
        assert ApiAgent(fake_transport()).connections_limit == 1


class TestDispatch:
    @pytest.mark.asyncio
    async def test_continuation_receives_parsed_body(self, fake_transport):
        transport = fake_transport({"/user": (200, {"login": "octocat"})})
        received = []
        agent = ApiAgent(transport)
        agent.submit("/user", received.append)
        await agent.join()
        assert received == [{"login": "octocat"}]

    @pytest.mark.asyncio
    async def test_queue_order_wins_over_arrival_order(self, fake_transport, settle_loop):
        transport = fake_transport(fallback=ok, hold=True)
        agent = ApiAgent(transport, connections_limit=1)
        agent.submit("/a", priority=1)
        agent.submit("/b", priority=1)
        agent.submit("/c", priority=3)
        agent.submit("/d", priority=2)
        agent.submit("/e", priority=3)
        await settle_loop()
        assert transport.calls == ["/a"]
        while transport.waiting:
            transport.release()
            await settle_loop()
        await agent.join()
        assert transport.calls == ["/a", "/c", "/e", "/d", "/b"]

    @pytest.mark.asyncio
    async def test_leaf_lookup_dispatches_before_new_listing(self, fake_transport, settle_loop):
        transport = fake_transport(fallback=ok, hold=True)
        agent = ApiAgent(transport, connections_limit=1)
        agent.submit("/blocker")
        agent.submit("/users/octocat/repos?page=2", priority=REPOS_PRIORITY)
        agent.submit("/repos/octocat/x/actions/workflows/1/runs", priority=RUN_PRIORITY)
        await settle_loop()
        transport.release("/blocker")
        await settle_loop()
        assert transport.calls[-1] == "/repos/octocat/x/actions/workflows/1/runs"

    @pytest.mark.asyncio
    async def test_in_flight_never_exceeds_limit(self, fake_transport, settle_loop):
        transport = fake_transport(fallback=ok, hold=True)
        agent = ApiAgent(transport, connections_limit=2)
        for index in range(6):
            agent.submit(f"/items/{index}")
        await settle_loop()
        assert agent.in_flight == 2
        assert agent.pending == 4
        while transport.waiting:
            transport.release()
            await settle_loop()
            assert agent.in_flight <= 2
        await agent.join()
        assert transport.max_in_flight == 2
        assert len(transport.calls) == 6

    @pytest.mark.asyncio
    async def test_continuation_submissions_respect_limit(self, fake_transport):
        transport = fake_transport(fallback=ok)
        agent = ApiAgent(transport, connections_limit=3)

        def fan_out(_body):
            for index in range(10):
                agent.submit(f"/children/{index}")

        agent.submit("/parent", fan_out)
        await agent.join()
        assert len(transport.calls) == 11
        assert transport.max_in_flight <= 3

    @pytest.mark.asyncio
    async def test_non_success_non_error_status_is_ignored(self, fake_transport):
        transport = fake_transport({"/user": (304, "")})
        callback = MagicMock()
        agent = ApiAgent(transport)
        agent.submit("/user", callback)
        await agent.join()
        callback.assert_not_called()
        assert agent.active


class TestIdle:
    @pytest.mark.asyncio
    async def test_drain_signals_idle_once(self, fake_transport):
        progress = MagicMock(spec=IProgressObserver)
        agent = ApiAgent(fake_transport(fallback=ok), connections_limit=2, progress=progress)
        for index in range(3):
            agent.submit(f"/items/{index}")
        await agent.join()
        assert progress.mock_calls == [call.on_busy(), call.on_idle()]
        assert agent.in_flight == 0
        assert agent.pending == 0

    @pytest.mark.asyncio
    async def test_chained_continuations_do_not_idle_early(self, fake_transport):
        progress = MagicMock(spec=IProgressObserver)
        agent = ApiAgent(fake_transport(fallback=ok), progress=progress)

        def first(_body):
            agent.submit("/second", lambda _: agent.submit("/third"))

        agent.submit("/first", first)
        await agent.join()
        assert progress.mock_calls == [call.on_busy(), call.on_idle()]

    @pytest.mark.asyncio
    async def test_each_drain_signals_idle_again(self, fake_transport):
        progress = MagicMock(spec=IProgressObserver)
        agent = ApiAgent(fake_transport(fallback=ok), progress=progress)
        agent.submit("/first")
        await agent.join()
        agent.submit("/second")
        await agent.join()
        assert progress.mock_calls == [call.on_busy(), call.on_idle()] * 2


class TestDeactivation:
    @pytest.mark.asyncio
    async def test_deactivation_halts_dispatch(self, fake_transport, settle_loop):
        transport = fake_transport(fallback=ok, hold=True)
        callback = MagicMock()
        agent = ApiAgent(transport, connections_limit=1)
        for endpoint in ("/a", "/b", "/c"):
            agent.submit(endpoint, callback)
        await settle_loop()
        agent.deactivate()
        assert not agent.active
        transport.release("/a")
        await agent.join()
        callback.assert_not_called()
        assert transport.calls == ["/a"]
        assert agent.pending == 2

    @pytest.mark.asyncio
    async def test_submit_after_deactivation_only_queues(self, fake_transport, settle_loop):
        transport = fake_transport(fallback=ok)
        agent = ApiAgent(transport)
        agent.deactivate()
        agent.submit("/user")
        await settle_loop()
        assert transport.calls == []
        assert agent.pending == 1

    @pytest.mark.asyncio
    async def test_deactivate_is_idempotent(self, fake_transport):
        progress = MagicMock(spec=IProgressObserver)
        agent = ApiAgent(fake_transport(fallback=ok), progress=progress)
        agent.submit("/user")
        agent.deactivate()
        agent.deactivate()
        await agent.join()
        assert progress.mock_calls == [call.on_busy(), call.on_idle()]


class TestFatalErrors:
    @pytest.mark.asyncio
    async def test_not_found_deactivates_and_reports_once(self, fake_transport, settle_loop):
        transport = fake_transport({"/ok": (200, {})}, hold=True)
        sink = MagicMock(spec=IErrorSink)
        callback = MagicMock()
        agent = ApiAgent(transport, connections_limit=2, error_sink=sink)
        agent.submit("/missing", callback)
        agent.submit("/ok", callback)
        agent.submit("/later", callback)
        await settle_loop()
        transport.release("/missing")
        await settle_loop()
        assert not agent.active
        sink.report.assert_called_once()
        error = sink.report.call_args.args[0]
        assert error.kind is ApiErrorKind.NOT_FOUND
        assert error.endpoint == "/missing"
        assert "Not Found" in error.message
        transport.release("/ok")
        await agent.join()
        callback.assert_not_called()
        assert transport.calls == ["/missing", "/ok"]

    @pytest.mark.asyncio
    async def test_concurrent_failures_report_once(self, fake_transport):
        sink = MagicMock(spec=IErrorSink)
        agent = ApiAgent(fake_transport(), connections_limit=2, error_sink=sink)
        agent.submit("/missing/1")
        agent.submit("/missing/2")
        await agent.join()
        sink.report.assert_called_once()

    @pytest.mark.asyncio
    async def test_error_reported_before_idle(self, fake_transport):
        manager = MagicMock()
        agent = ApiAgent(
            fake_transport(),
            error_sink=manager.sink,
            progress=manager.progress,
        )
        agent.submit("/missing")
        await agent.join()
        assert [name for name, _, _ in manager.mock_calls] == [
            "progress.on_busy",
            "sink.report",
            "progress.on_idle",
        ]

    @pytest.mark.asyncio
    async def test_transport_failure_is_fatal(self, fake_transport):
        transport = fake_transport({"/user": ApiTransportError("connection refused")})
        sink = MagicMock(spec=IErrorSink)
        agent = ApiAgent(transport, error_sink=sink)
        agent.submit("/user", MagicMock())
        await agent.join()
        error = sink.report.call_args.args[0]
        assert error.kind is ApiErrorKind.TRANSPORT
        assert "connection refused" in error.message
        assert not agent.active

    @pytest.mark.asyncio
    async def test_unexpected_transport_exception_is_fatal(self, fake_transport):
        transport = fake_transport(
            {"/user": RuntimeError("client has been closed")},
            fallback=ok,
        )
        sink = MagicMock(spec=IErrorSink)
        agent = ApiAgent(transport, error_sink=sink)
        agent.submit("/user", MagicMock())
        agent.submit("/next")
        await asyncio.wait_for(agent.join(), 1)

        assert not agent.active
        assert agent.in_flight == 0
        assert agent.pending == 1
        assert transport.calls == ["/user"]
        sink.report.assert_called_once()
        error = sink.report.call_args.args[0]
        assert error.kind is ApiErrorKind.TRANSPORT
        assert "client has been closed" in error.message
        assert isinstance(error.__cause__, RuntimeError)

    @pytest.mark.asyncio
    async def test_invalid_json_is_fatal(self, fake_transport):
        transport = fake_transport({"/user": (200, "not json")})
        sink = MagicMock(spec=IErrorSink)
        callback = MagicMock()
        agent = ApiAgent(transport, error_sink=sink)
        agent.submit("/user", callback)
        await agent.join()
        callback.assert_not_called()
        assert sink.report.call_args.args[0].kind is ApiErrorKind.INVALID_RESPONSE

    @pytest.mark.asyncio
    async def test_raising_continuation_is_fatal(self, fake_transport):
        transport = fake_transport(fallback=ok)
        sink = MagicMock(spec=IErrorSink)
        agent = ApiAgent(transport, error_sink=sink)
        agent.submit("/user", MagicMock(side_effect=RuntimeError("bad payload")))
        agent.submit("/never")
        await agent.join()
        error = sink.report.call_args.args[0]
        assert isinstance(error, ContinuationError)
        assert isinstance(error.__cause__, RuntimeError)
        assert transport.calls == ["/user"]

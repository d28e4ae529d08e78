"""Shared fakes and GitHub payload fixtures."""

import asyncio
import json
from types import SimpleNamespace
from typing import Callable, Optional

import pytest

from src.application.services.status_controller import repos_endpoint, run_endpoint, workflows_endpoint
from src.domain.entities.api_response import ApiResponse
from src.domain.ports.api_transport_port import IApiTransport

NOT_FOUND_BODY = {
    "message": "Not Found",
    "documentation_url": "https://docs.github.com/rest",
}


class FakeTransport(IApiTransport):
    """In-memory IApiTransport recording every call.

    routes map an endpoint to (status_code, payload) or to an exception to raise.
    A str payload is sent verbatim, anything else as JSON. Unmatched endpoints
    go to `fallback` when set, else answer 404 with GitHub's error body.
    With hold=True each request waits for release() before answering.
    """

    def __init__(
        self,
        routes: Optional[dict] = None,
        fallback: Optional[Callable[[str], object]] = None,
        hold: bool = False,
    ) -> None:
        self.routes = dict(routes or {})
        self.fallback = fallback
        self.hold = hold
        self.calls: list[str] = []
        self.waiting: list[tuple[str, asyncio.Event]] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self.closed = False

    def route(self, endpoint: str, payload, status_code: int = 200) -> None:
        self.routes[endpoint] = (status_code, payload)

    async def get(self, endpoint: str) -> ApiResponse:
        self.calls.append(endpoint)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.hold:
                gate = asyncio.Event()
                self.waiting.append((endpoint, gate))
                await gate.wait()
            else:
                await asyncio.sleep(0)
            result = self.routes.get(endpoint)
            if result is None and self.fallback is not None:
                result = self.fallback(endpoint)
            if result is None:
                result = (404, NOT_FOUND_BODY)
            if isinstance(result, Exception):
                raise result
            status_code, payload = result
            text = payload if isinstance(payload, str) else json.dumps(payload)
            return ApiResponse(endpoint=endpoint, status_code=status_code, text=text)
        finally:
            self.in_flight -= 1

    def release(self, endpoint: Optional[str] = None) -> None:
        """Let the oldest held request (or the oldest one for *endpoint*) answer."""
        for index, (held, gate) in enumerate(self.waiting):
            if endpoint is None or held == endpoint:
                del self.waiting[index]
                gate.set()
                return
        raise AssertionError(f"no held request for {endpoint!r}")

    async def aclose(self) -> None:
        self.closed = True


async def settle(rounds: int = 20) -> None:
    """Let every ready task of the event loop run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


def repo_payload(name, owner="octocat", private=False, archived=False, default_branch="main"):
    return {
        "name": name,
        "full_name": f"{owner}/{name}",
        "owner": {"login": owner},
        "html_url": f"https://github.com/{owner}/{name}",
        "private": private,
        "archived": archived,
        "default_branch": default_branch,
    }


def workflow_payload(workflow_id, name, state="active"):
    return {
        "id": workflow_id,
        "name": name,
        "state": state,
        "html_url": f"https://github.com/workflows/{workflow_id}",
    }


def run_payload(run_id, status="completed", conclusion="success"):
    return {
        "id": run_id,
        "html_url": f"https://github.com/runs/{run_id}",
        "status": status,
        "conclusion": conclusion,
    }


def workflows_page(workflows, total_count=None):
    return {
        "total_count": len(workflows) if total_count is None else total_count,
        "workflows": workflows,
    }


def runs_page(runs):
    return {"total_count": len(runs), "workflow_runs": runs}


@pytest.fixture
def gh():
    """Payload builders and endpoint helpers for GitHub fixtures."""
    return SimpleNamespace(
        repo=repo_payload,
        workflow=workflow_payload,
        run=run_payload,
        workflows_page=workflows_page,
        runs_page=runs_page,
        repos_endpoint=repos_endpoint,
        workflows_endpoint=workflows_endpoint,
        run_endpoint=run_endpoint,
    )


@pytest.fixture
def fake_transport():
    """Factory for FakeTransport instances."""
    return FakeTransport


@pytest.fixture
def settle_loop():
    return settle


@pytest.fixture
def octocat_routes():
    """A small account: three repositories, three workflows, two runs.

    Sorted row keys: "hello-world build", "spoon-knife ci", "spoon-knife deploy".
    github/linguist has no workflow; Deploy has no run.
    """
    return {
        repos_endpoint("octocat", 1): (200, [
            repo_payload("Spoon-Knife"),
            repo_payload("linguist", owner="github", archived=True, default_branch="master"),
            repo_payload("hello-world", private=True),
        ]),
        workflows_endpoint("octocat/Spoon-Knife", 1): (200, workflows_page([
            workflow_payload(12, "Deploy"),
            workflow_payload(11, "CI"),
        ])),
        workflows_endpoint("github/linguist", 1): (200, workflows_page([])),
        workflows_endpoint("octocat/hello-world", 1): (200, workflows_page([
            workflow_payload(21, "Build", state="disabled_manually"),
        ])),
        run_endpoint("octocat/Spoon-Knife", 11, "main"): (200, runs_page([run_payload(1001)])),
        run_endpoint("octocat/Spoon-Knife", 12, "main"): (200, runs_page([])),
        run_endpoint("octocat/hello-world", 21, "main"): (200, runs_page([
            run_payload(2001, status="in_progress", conclusion=None),
        ])),
    }


@pytest.fixture
def octocat_transport(octocat_routes):
    return FakeTransport(octocat_routes)

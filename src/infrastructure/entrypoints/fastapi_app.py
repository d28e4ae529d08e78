"""
FastAPI entry point: streams workflow statuses as Server-Sent Events.

This module is the Composition Root for HTTP runs: every request gets its own
HttpxApiTransport and WatchWorkflowStatusesUseCase (hence its own ApiAgent),
so a client that disconnects and retries never shares a queue with the
abandoned traversal.

The GitHub token is read from the request's "Authorization: Bearer <token>"
header and forwarded upstream; without one the configured GITHUB_TOKEN is used.

Run locally:
    uvicorn src.infrastructure.entrypoints.fastapi_app:app --reload --port 8000
"""

import json
import logging
from typing import Callable, Optional

from dotenv import load_dotenv
from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

load_dotenv()

from src.application.use_cases.watch_workflow_statuses import WatchWorkflowStatusesUseCase
from src.domain.ports.api_transport_port import IApiTransport
from src.infrastructure.config.settings import Settings
from src.infrastructure.observability.logging_config import configure_logging

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Composition Root: configuration is read once at startup
# ---------------------------------------------------------------------------
_settings = Settings.from_env()
configure_logging(_settings.log_level)

TransportFactory = Callable[[Optional[str]], IApiTransport]

# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------
app = FastAPI(title="GitHub Actions Status API")


class StatusQuery(BaseModel):
    user: str | None = None
    default_branch: bool = True
    connections_limit: int | None = Field(default=None, ge=1)


def get_settings() -> Settings:
    return _settings


def get_transport_factory(settings: Settings = Depends(get_settings)) -> TransportFactory:
    """FastAPI dependency: build a transport for a token (None: configured token)."""
    return settings.create_transport


def get_request_token(request: Request) -> str | None:
    """FastAPI dependency: the GitHub token carried by the Authorization header, if any."""
    auth_header = request.headers.get("Authorization", "")
    if not auth_header:
        return None
    if not auth_header.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Invalid Authorization header.")
    return auth_header.split(" ", 1)[1].strip() or None


@app.post("/statuses")
async def stream_statuses(
    body: StatusQuery,
    token: str | None = Depends(get_request_token),
    settings: Settings = Depends(get_settings),
    transport_factory: TransportFactory = Depends(get_transport_factory),
):
    """Stream traversal events as Server-Sent Events, ending with [DONE]."""
    if body.user is None and token is None and settings.token is None:
        raise HTTPException(status_code=400, detail="A token or a user is required.")

    logger.info("Streaming workflow statuses of %s", body.user or "the authenticated user")
    transport = transport_factory(token)
    use_case = WatchWorkflowStatusesUseCase(
        transport,
        connections_limit=body.connections_limit or settings.connections_limit,
    )

    async def event_stream():
        events = use_case.execute(user=body.user, default_branch=body.default_branch)
        try:
            async for event in events:
                yield f"data: {json.dumps(event)}\n\n"
            yield "data: [DONE]\n\n"
        finally:
            # Runs on client disconnect too: the traversal is deactivated and
            # drained before the client is closed.
            await events.aclose()
            await transport.aclose()

    return StreamingResponse(event_stream(), media_type="text/event-stream")


@app.get("/health")
async def health():
    return {"status": "ok"}

"""
Process configuration read from environment variables.

Entrypoints call python-dotenv's load_dotenv() before Settings.from_env(), so a
local .env file can provide the same variables:

    GITHUB_TOKEN              token used when none is given explicitly
    GITHUB_API_URL            API root (default https://api.github.com)
    GITHUB_CONNECTIONS_LIMIT  maximum simultaneous requests (default 1)
    GITHUB_REQUEST_TIMEOUT    per-request timeout in seconds (default: none)
    LOG_LEVEL                 logging level name (default INFO)

Blank variables count as unset.
"""

import logging
import os
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from src.infrastructure.github.httpx_transport import HttpxApiTransport


class Settings(BaseModel):
    api_url: str = HttpxApiTransport.API_URL
    token: Optional[str] = None
    connections_limit: int = Field(default=1, ge=1)
    request_timeout: Optional[float] = Field(default=None, gt=0)
    log_level: str = "INFO"

    @field_validator("log_level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        level = value.upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"unknown log level: {value!r}")
        return level

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from os.environ.

        Raises:
            pydantic.ValidationError: if a variable holds an invalid value.
        """
        env = {
            "api_url": _env("GITHUB_API_URL"),
            "token": _env("GITHUB_TOKEN"),
            "connections_limit": _env("GITHUB_CONNECTIONS_LIMIT"),
            "request_timeout": _env("GITHUB_REQUEST_TIMEOUT"),
            "log_level": _env("LOG_LEVEL"),
        }
        return cls(**{key: value for key, value in env.items() if value is not None})

    def create_transport(self, token: Optional[str] = None) -> HttpxApiTransport:
        """Build a transport using *token*, or the configured token when None."""
        return HttpxApiTransport(
            token=token if token is not None else self.token,
            base_url=self.api_url,
            timeout=self.request_timeout,
        )


def _env(name: str) -> Optional[str]:
    value = os.environ.get(name, "").strip()
    return value or None

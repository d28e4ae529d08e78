"""
Domain entity for a raw API response as returned by an IApiTransport.
Zero external dependencies: pure Python dataclasses only.
"""

import json
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class ApiResponse:
    endpoint: str
    status_code: int
    text: str

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    def json(self) -> Any:
        """Parse the body. Raises ValueError when it is not valid JSON."""
        return json.loads(self.text)

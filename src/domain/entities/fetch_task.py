"""
Domain entity for one logical API request waiting in, or taken from, the queue.
Zero external dependencies: pure Python dataclasses only.
"""

from dataclasses import dataclass
from typing import Any, Callable, Optional


@dataclass(frozen=True)
class FetchTask:
    endpoint: str
    callback: Optional[Callable[[Any], None]]
    priority: int

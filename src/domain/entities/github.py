"""
Domain entities for the GitHub resources walked by the status traversal.
Zero external dependencies: pure Python dataclasses only.

Only the fields the status rows need are promoted to attributes; the full API
payload is kept in `raw` for detail views and JSON output.
"""

from dataclasses import dataclass, field
from typing import Optional


@dataclass(frozen=True)
class AuthenticatedUser:
    login: str
    raw: dict = field(default_factory=dict, compare=False, repr=False)


@dataclass(frozen=True)
class Repository:
    name: str
    full_name: str
    owner_login: str
    html_url: str
    default_branch: Optional[str]
    private: bool
    archived: bool
    raw: dict = field(default_factory=dict, compare=False, repr=False)

    @property
    def label(self) -> Optional[str]:
        if self.private and self.archived:
            return "Private archived"
        if self.private:
            return "Private"
        if self.archived:
            return "Archived"
        return None


@dataclass(frozen=True)
class Workflow:
    id: int
    name: str
    # Observed states: 'active', 'disabled_manually', 'disabled_inactivity'
    state: Optional[str]
    html_url: Optional[str]
    raw: dict = field(default_factory=dict, compare=False, repr=False)


@dataclass(frozen=True)
class WorkflowRun:
    id: int
    html_url: Optional[str]
    # Observed statuses: 'queued', 'in_progress', 'completed'
    status: Optional[str]
    # Observed conclusions: 'success', 'failure', 'cancelled', None.
    # None pairs with the 'queued' and 'in_progress' statuses.
    conclusion: Optional[str]
    raw: dict = field(default_factory=dict, compare=False, repr=False)

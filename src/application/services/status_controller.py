"""
Application service: walks repositories → workflows → latest run through an ApiAgent.

Business decisions owned here:
  - Priority tiers grow with depth, so work that finishes a row already on
    screen is preferred over listing new repositories.
  - PER_PAGE is the GitHub maximum. Repository listings end on the first short
    page, so the page size sent must be exactly the one compared against.
  - Workflow listings end when the running count reaches total_count.
  - Rows are kept sorted by "repository workflow", case-insensitively.

Every page continuation submits the next page to the agent rather than
recursing, so deep pagination never grows the call stack.
"""

import logging
from typing import Optional
from urllib.parse import quote, urlencode

from src.application.services.api_agent import ApiAgent
from src.domain.entities.github import AuthenticatedUser, Repository, Workflow, WorkflowRun
from src.domain.entities.status_row import StatusRow, StatusTable
from src.domain.ports.status_observer_port import IStatusObserver

logger = logging.getLogger(__name__)

# Do not set PER_PAGE above 100. That's the max permitted value, and the
# repository pagination assumes no items remain once a page returns fewer.
PER_PAGE = 100

AUTHENTICATED_USER_PRIORITY = 4
RUN_PRIORITY = 3
WORKFLOWS_PRIORITY = 2
REPOS_PRIORITY = 1


def repos_endpoint(user: Optional[str], page: int, per_page: int = PER_PAGE) -> str:
    """Repositories of *user*, or of the authenticated user (private ones included) when None."""
    params = urlencode({"page": page, "per_page": per_page})
    if user is None:
        return f"/user/repos?{params}"
    return f"/users/{quote(user, safe='')}/repos?{params}"


def workflows_endpoint(full_name: str, page: int, per_page: int = PER_PAGE) -> str:
    params = urlencode({"page": page, "per_page": per_page})
    return f"/repos/{full_name}/actions/workflows?{params}"


def run_endpoint(full_name: str, workflow_id: int, branch: Optional[str] = None) -> str:
    params = {"per_page": 1}
    if branch is not None:
        params["branch"] = branch
    return f"/repos/{full_name}/actions/workflows/{workflow_id}/runs?{urlencode(params)}"


class WorkflowStatusController:
    """Produces one StatusRow per (repository, workflow) pair of a user.

    The agent is owned by the caller; deactivating it (directly or through
    deactivate()) stops the traversal, since every later continuation is skipped.
    """

    def __init__(
        self,
        agent: ApiAgent,
        observer: Optional[IStatusObserver] = None,
        per_page: int = PER_PAGE,
    ) -> None:
        if not 1 <= per_page <= PER_PAGE:
            raise ValueError(f"per_page must be between 1 and {PER_PAGE}, got {per_page}")
        self._agent = agent
        self._observer = observer
        self._per_page = per_page
        self._table = StatusTable()
        self._started = False
        self.user: Optional[str] = None
        self.authenticated = False

    @property
    def table(self) -> StatusTable:
        return self._table

    def process(self, user: Optional[str] = None, default_branch: bool = True) -> None:
        """Start the traversal. Must be called on the running event loop.

        Args:
            user:           Login whose public repositories are listed. None
                            resolves the authenticated user first and lists
                            its repositories, private ones included.
            default_branch: Only consider runs on each repository's default
                            branch. False considers runs on any branch.

        Raises:
            RuntimeError: if this controller already processed a traversal.
        """
        if self._started:
            raise RuntimeError("a controller processes a single traversal")
        self._started = True
        if user is None:
            self._process_authenticated_user(
                lambda me: self._start(me.login, default_branch, authenticated=True)
            )
        else:
            self._start(user, default_branch, authenticated=False)

    def deactivate(self) -> None:
        # Deactivating the agent is sufficient: it stops every pending continuation.
        self._agent.deactivate()

    # ------------------------------------------------------------------
    # Traversal
    # ------------------------------------------------------------------

    def _start(self, user: str, default_branch: bool, authenticated: bool) -> None:
        self.user = user
        self.authenticated = authenticated
        logger.info("Listing workflows of %s%s", user, " (authenticated)" if authenticated else "")
        if self._observer is not None:
            self._observer.on_start(user, authenticated)

        def on_repo(repo: Repository) -> None:
            self._process_workflows(
                repo.full_name,
                lambda workflow: self._add_row(user, repo, workflow, default_branch),
            )

        self._process_repos(user, authenticated, on_repo)

    def _process_repos(self, user: str, authenticated: bool, callback, page: int = 1) -> None:
        def request_callback(repos: list) -> None:
            # The top level response is a bare list, unlike the other calls
            # that return an object with 'total_count' and the items.
            for payload in repos:
                callback(self._parse_repository(payload))
            if len(repos) == self._per_page:
                self._process_repos(user, authenticated, callback, page + 1)

        endpoint = repos_endpoint(None if authenticated else user, page, self._per_page)
        self._agent.submit(endpoint, request_callback, REPOS_PRIORITY)

    def _process_workflows(self, full_name: str, callback, page: int = 1, count: int = 0) -> None:
        def request_callback(response: dict) -> None:
            total_count = response.get("total_count", 0)
            workflows = response.get("workflows", [])
            for payload in workflows:
                callback(self._parse_workflow(payload))
            seen = count + len(workflows)
            if workflows and seen < total_count:
                self._process_workflows(full_name, callback, page + 1, seen)

        endpoint = workflows_endpoint(full_name, page, self._per_page)
        self._agent.submit(endpoint, request_callback, WORKFLOWS_PRIORITY)

    def _process_run(self, full_name: str, workflow_id: int, branch: Optional[str], callback) -> None:
        def request_callback(response: dict) -> None:
            run = None
            runs = response.get("workflow_runs", [])
            if response.get("total_count", 0) > 0 and runs:
                run = self._parse_run(runs[0])
            callback(run)

        self._agent.submit(run_endpoint(full_name, workflow_id, branch), request_callback, RUN_PRIORITY)

    def _process_authenticated_user(self, callback) -> None:
        def request_callback(response: dict) -> None:
            callback(AuthenticatedUser(login=response["login"], raw=response))

        self._agent.submit("/user", request_callback, AUTHENTICATED_USER_PRIORITY)

    def _add_row(self, user: str, repo: Repository, workflow: Workflow, default_branch: bool) -> None:
        name = repo.name if repo.owner_login.lower() == user.lower() else repo.full_name
        index, row = self._table.add(name, repo, workflow)
        if self._observer is not None:
            self._observer.on_row_inserted(index, row)

        def on_run(run: Optional[WorkflowRun]) -> None:
            self._resolve_row(row, run)

        branch = repo.default_branch if default_branch else None
        self._process_run(repo.full_name, workflow.id, branch, on_run)

    def _resolve_row(self, row: StatusRow, run: Optional[WorkflowRun]) -> None:
        index, resolved = self._table.resolve(row, run)
        if self._observer is not None:
            self._observer.on_row_resolved(index, resolved)

    # ------------------------------------------------------------------
    # Payload parsing
    # ------------------------------------------------------------------

    @staticmethod
    def _parse_repository(payload: dict) -> Repository:
        return Repository(
            name=payload["name"],
            full_name=payload["full_name"],
            owner_login=payload.get("owner", {}).get("login", ""),
            html_url=payload.get("html_url", ""),
            default_branch=payload.get("default_branch"),
            private=bool(payload.get("private", False)),
            archived=bool(payload.get("archived", False)),
            raw=payload,
        )

    @staticmethod
    def _parse_workflow(payload: dict) -> Workflow:
        return Workflow(
            id=payload["id"],
            name=payload["name"],
            state=payload.get("state"),
            html_url=payload.get("html_url"),
            raw=payload,
        )

    @staticmethod
    def _parse_run(payload: dict) -> WorkflowRun:
        return WorkflowRun(
            id=payload["id"],
            html_url=payload.get("html_url"),
            status=payload.get("status"),
            conclusion=payload.get("conclusion"),
            raw=payload,
        )

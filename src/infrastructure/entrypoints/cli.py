"""
CLI entry point: print the latest run of every workflow of a GitHub user.

This module is the Composition Root for terminal runs: it wires Settings,
HttpxApiTransport and WatchWorkflowStatusesUseCase, then renders the
StatusReport with rich.

    gh-actions-status --user octocat
    GITHUB_TOKEN=<token> gh-actions-status      # authenticated user, private repos included
    python -m src.infrastructure.entrypoints.cli --user octocat --connections 4 --json
"""

import argparse
import asyncio
import sys
from typing import Optional, Sequence

from dotenv import load_dotenv
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table
from rich.text import Text

from src.application.use_cases.watch_workflow_statuses import (
    StatusReport,
    WatchWorkflowStatusesUseCase,
    serialize_error,
    serialize_row,
)
from src.domain.entities.status_row import StatusRow
from src.infrastructure.config.settings import Settings
from src.infrastructure.observability.logging_config import configure_logging

EM_DASH = "—"
COLUMNS = ["", "repository", "workflow", "state", "run", "status", "conclusion"]


def build_parser(settings: Settings) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="gh-actions-status",
        description="Show the latest GitHub Actions run of every workflow of a user.",
    )
    parser.add_argument(
        "--user", "-u",
        help="GitHub login to inspect. Defaults to the owner of the token, "
             "in which case private repositories are included.",
    )
    parser.add_argument(
        "--token", "-t",
        help="GitHub token (default: $GITHUB_TOKEN).",
    )
    parser.add_argument(
        "--connections", "-c", type=int, default=settings.connections_limit,
        help="Maximum number of simultaneous API requests (default: %(default)s).",
    )
    parser.add_argument(
        "--all-branches", action="store_true",
        help="Consider runs on any branch, not only the default branch.",
    )
    parser.add_argument("--json", action="store_true", help="Print JSON instead of a table.")
    parser.add_argument(
        "--log-level", default=settings.log_level,
        help="Logging level (default: %(default)s).",
    )
    return parser


def _cell(value: Optional[object], url: Optional[str] = None) -> Text:
    if value is None:
        return Text(EM_DASH)
    return Text(str(value), style=f"link {url}" if url else "")


def _repository_cell(row: StatusRow) -> Text:
    cell = _cell(row.repository_name, row.repository.html_url)
    if row.repository.label is not None:
        cell.append(" ")
        cell.append(row.repository.label, style="dim")
    return cell


def render_table(report: StatusReport) -> Table:
    title = report.user or ""
    if report.authenticated:
        title += " (Authenticated)"
    table = Table(title=title, show_header=True, header_style="bold")
    for column in COLUMNS:
        table.add_column(column)
    for number, row in enumerate(report.rows, start=1):
        run = row.run
        if not row.resolved:
            run_cells = [Text("pending", style="dim") for _ in range(3)]
        else:
            run_cells = [
                _cell(run.id if run else None, run.html_url if run else None),
                _cell(run.status if run else None),
                _cell(run.conclusion if run else None),
            ]
        table.add_row(
            str(number),
            _repository_cell(row),
            _cell(row.workflow.name, row.workflow.html_url),
            _cell(row.workflow.state),
            *run_cells,
        )
    return table


async def _run(args: argparse.Namespace, settings: Settings, console: Console) -> StatusReport:
    transport = settings.create_transport(args.token)
    try:
        use_case = WatchWorkflowStatusesUseCase(transport, connections_limit=args.connections)
        with console.status("Fetching workflow statuses ..."):
            return await use_case.collect(args.user, default_branch=not args.all_branches)
    finally:
        await transport.aclose()


def main(argv: Optional[Sequence[str]] = None) -> int:
    load_dotenv()
    err_console = Console(stderr=True)
    try:
        settings = Settings.from_env()
    except ValidationError as exc:
        err_console.print(f"Invalid configuration:\n{exc}", markup=False)
        return 2

    parser = build_parser(settings)
    args = parser.parse_args(argv)
    if args.user is None and not (args.token or settings.token):
        parser.error("A token or a user is required.")
    if args.connections < 1:
        parser.error("--connections must be at least 1.")
    configure_logging(args.log_level)

    console = Console()
    try:
        report = asyncio.run(_run(args, settings, err_console))
    except KeyboardInterrupt:
        err_console.print("Cancelled.")
        return 130

    if args.json:
        console.print_json(data={
            "user": report.user,
            "authenticated": report.authenticated,
            "rows": [serialize_row(row, include_raw=True) for row in report.rows],
            "error": serialize_error(report.error) if report.error else None,
        })
    elif report.rows or report.error is None:
        console.print(render_table(report))

    if report.error is not None:
        err_console.print(report.error.message, style="red", markup=False)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())

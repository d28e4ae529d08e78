"""
Domain entities for the workflow status rows and their sorted store.
Zero external dependencies: pure Python dataclasses and the bisect module.
"""

from bisect import bisect_left, bisect_right
from dataclasses import dataclass, replace
from typing import Iterator, Optional

from src.domain.entities.github import Repository, Workflow, WorkflowRun


def row_key(repository_name: str, workflow_name: str) -> str:
    return repository_name.lower() + " " + workflow_name.lower()


@dataclass(frozen=True)
class StatusRow:
    """One (repository, workflow) line.

    repository_name is the display name: the bare repository name when it is
    owned by the traversed user, the full "owner/name" otherwise.
    run is None both while the lookup is pending and when the workflow has no
    run; `resolved` tells the two apart.
    """

    row_id: int
    repository_name: str
    repository: Repository
    workflow: Workflow
    run: Optional[WorkflowRun] = None
    resolved: bool = False

    @property
    def key(self) -> str:
        return row_key(self.repository_name, self.workflow.name)


class StatusTable:
    """Rows ordered by key, case-insensitively, regardless of arrival order.

    Invariant: the table is sorted after every insertion. New rows are placed
    by binary search over the existing keys (after any equal keys, so
    duplicates keep arrival order); the table is never re-sorted.
    """

    def __init__(self) -> None:
        self._keys: list[str] = []
        self._rows: list[StatusRow] = []
        self._next_row_id = 0

    def __len__(self) -> int:
        return len(self._rows)

    def __iter__(self) -> Iterator[StatusRow]:
        return iter(list(self._rows))

    def __getitem__(self, index: int) -> StatusRow:
        return self._rows[index]

    @property
    def rows(self) -> list[StatusRow]:
        return list(self._rows)

    def keys(self) -> list[str]:
        return list(self._keys)

    def add(self, repository_name: str, repository: Repository, workflow: Workflow) -> tuple[int, StatusRow]:
        """Create an unresolved row and insert it. Returns (index, row)."""
        row = StatusRow(
            row_id=self._next_row_id,
            repository_name=repository_name,
            repository=repository,
            workflow=workflow,
        )
        self._next_row_id += 1
        return self.insert(row), row

    def insert(self, row: StatusRow) -> int:
        key = row.key
        index = bisect_right(self._keys, key)
        self._keys.insert(index, key)
        self._rows.insert(index, row)
        return index

    def resolve(self, row: StatusRow, run: Optional[WorkflowRun]) -> tuple[int, StatusRow]:
        """Record the run lookup result for *row*. Returns (index, resolved row).

        Raises:
            KeyError: if *row* is not in this table.
        """
        key = row.key
        for index in range(bisect_left(self._keys, key), bisect_right(self._keys, key)):
            if self._rows[index].row_id == row.row_id:
                resolved = replace(self._rows[index], run=run, resolved=True)
                self._rows[index] = resolved
                return index, resolved
        raise KeyError(f"row {row.row_id} ({key!r}) is not in the table")

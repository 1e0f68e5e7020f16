"""Abstract store interface.

The poller and the webhook handler both read and mutate tracked PRs through
BaseStore and never through a concrete backend, so SQLite and in-memory
stores are interchangeable.

Both triggers run on their own schedules with no shared transaction. The
contract therefore offers three atomic primitives that the callers build on:

- ``create_pr`` is unique on ``pr_number``.
- ``update_pr`` is a compare-and-swap on ``version``.
- ``transition_status`` and ``append_change`` check and write in one step.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable
from datetime import datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from prwatch_store.models import PRChange, TrackedPR


class BaseStore(ABC):
    """Pluggable persistence for tracked PRs and their change history.

    Implementations must be safe to call from several threads at once: the
    reconciliation loop and concurrent webhook deliveries share one store.
    """

    @abstractmethod
    def create_pr(self, pr: TrackedPR) -> TrackedPR:
        """Insert a new tracked PR and return it with ``id`` set.

        Raises DuplicatePRError if ``pr_number`` is already tracked, in any status.
        """

    @abstractmethod
    def get_pr(self, pr_id: int) -> TrackedPR | None:
        """Return the tracked PR with this row id, or None."""

    @abstractmethod
    def get_pr_by_number(self, pr_number: int) -> TrackedPR | None:
        """Return the tracked PR with this source-host number, or None."""

    @abstractmethod
    def list_prs(self, status: str | None = None) -> list[TrackedPR]:
        """Return tracked PRs in creation order, optionally filtered by status."""

    @abstractmethod
    def update_pr(self, pr: TrackedPR) -> TrackedPR:
        """Write every mutable field of ``pr`` if its ``version`` is still current.

        Returns the stored row with the bumped version. Raises StaleRecordError
        when another writer got there first, and NotFoundError if the row is gone.
        """

    @abstractmethod
    def transition_status(
        self,
        pr_number: int,
        allowed: Iterable[str],
        to_status: str,
        at: datetime,
        merged_at: datetime | None = None,
    ) -> TrackedPR | None:
        """Atomically move a PR to ``to_status`` if its current status is in ``allowed``.

        ``merged_at`` is stamped when given; an existing stamp is never cleared.
        Returns the updated row, or None when the row is missing or was not in
        an allowed status (so exactly one concurrent caller wins the transition).
        """

    @abstractmethod
    def append_change(self, change: PRChange, skip_if_same_head: bool = True) -> PRChange | None:
        """Append a change record and return it with ``id`` set.

        With ``skip_if_same_head`` the insert is skipped (None returned) when the
        most recent change for the PR already has the same ``commit_sha``. The
        check and the insert happen atomically.
        """

    @abstractmethod
    def list_changes(self, tracked_pr_id: int) -> list[PRChange]:
        """Return a PR's changes, oldest first."""

    @abstractmethod
    def count_by_status(self) -> dict[str, int]:
        """Return the number of tracked PRs per status. Missing statuses are omitted."""

    def latest_change(self, tracked_pr_id: int) -> PRChange | None:
        """Return the most recent change, which defines the last known commit."""
        changes = self.list_changes(tracked_pr_id)
        return changes[-1] if changes else None

    def tracked_numbers(self) -> set[int]:
        """Return every tracked PR number, in any status."""
        return {pr.pr_number for pr in self.list_prs()}

    def close(self) -> None:
        """Release any resources held by the store (connections, file handles).

        Optional. The default is a no-op so callers can always call close() safely.
        """

"""In-process store with no persistence across restarts.

Selected with `store: memory` in prwatch.yml. Useful for trial runs and as
the fixture backend in tests. Honours the same atomicity contract as
SQLiteStore by holding one lock around every read-check-write.
"""

from __future__ import annotations

import copy
import threading
from collections import Counter
from collections.abc import Iterable
from dataclasses import replace
from datetime import datetime

from prwatch_store.base import BaseStore
from prwatch_store.errors import DuplicatePRError, NotFoundError, StaleRecordError
from prwatch_store.models import PRChange, TrackedPR


class MemoryStore(BaseStore):
    """Keeps tracked PRs and changes in dicts; returns copies so callers cannot bypass update_pr()."""

    def __init__(self):
        self._lock = threading.RLock()
        self._prs: dict[int, TrackedPR] = {}
        self._by_number: dict[int, int] = {}
        self._changes: dict[int, list[PRChange]] = {}
        self._next_pr_id = 1
        self._next_change_id = 1

    def create_pr(self, pr: TrackedPR) -> TrackedPR:
        with self._lock:
            if pr.pr_number in self._by_number:
                raise DuplicatePRError(pr.pr_number)
            stored = replace(copy.deepcopy(pr), id=self._next_pr_id, version=0)
            self._next_pr_id += 1
            self._prs[stored.id] = stored
            self._by_number[stored.pr_number] = stored.id
            return copy.deepcopy(stored)

    def get_pr(self, pr_id: int) -> TrackedPR | None:
        with self._lock:
            pr = self._prs.get(pr_id)
            return copy.deepcopy(pr) if pr else None

    def get_pr_by_number(self, pr_number: int) -> TrackedPR | None:
        with self._lock:
            pr_id = self._by_number.get(pr_number)
            return self.get_pr(pr_id) if pr_id is not None else None

    def list_prs(self, status: str | None = None) -> list[TrackedPR]:
        with self._lock:
            prs = [p for _, p in sorted(self._prs.items())]
            if status is not None:
                prs = [p for p in prs if p.status == status]
            return copy.deepcopy(prs)

    def update_pr(self, pr: TrackedPR) -> TrackedPR:
        with self._lock:
            current = self._prs.get(pr.id)
            if current is None:
                raise NotFoundError(f"PR #{pr.pr_number} is not tracked")
            if current.version != pr.version:
                raise StaleRecordError(pr.pr_number, pr.version)
            stored = replace(
                copy.deepcopy(pr),
                pr_number=current.pr_number,
                created_at=current.created_at,
                version=current.version + 1,
            )
            self._prs[pr.id] = stored
            return copy.deepcopy(stored)

    def transition_status(
        self,
        pr_number: int,
        allowed: Iterable[str],
        to_status: str,
        at: datetime,
        merged_at: datetime | None = None,
    ) -> TrackedPR | None:
        with self._lock:
            pr_id = self._by_number.get(pr_number)
            if pr_id is None:
                return None
            current = self._prs[pr_id]
            if current.status not in set(allowed):
                return None
            current.status = to_status
            current.updated_at = at
            if merged_at is not None:
                current.merged_at = merged_at
            current.version += 1
            return copy.deepcopy(current)

    def append_change(self, change: PRChange, skip_if_same_head: bool = True) -> PRChange | None:
        with self._lock:
            history = self._changes.setdefault(change.tracked_pr_id, [])
            if skip_if_same_head and history and history[-1].commit_sha == change.commit_sha:
                return None
            stored = replace(copy.deepcopy(change), id=self._next_change_id)
            self._next_change_id += 1
            history.append(stored)
            return copy.deepcopy(stored)

    def list_changes(self, tracked_pr_id: int) -> list[PRChange]:
        with self._lock:
            return copy.deepcopy(self._changes.get(tracked_pr_id, []))

    def count_by_status(self) -> dict[str, int]:
        with self._lock:
            return dict(Counter(p.status for p in self._prs.values()))

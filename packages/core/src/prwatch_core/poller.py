"""Periodic reconciliation against the source host.

Each cycle runs four phases one after another:

  A. discover: evaluate up to MAX_NEW_PRS_PER_CYCLE untracked open PRs
  B. refresh: fold reviewers/draft from the open listing into open rows
  C. drift: open rows missing from the listing: fetch state, close them
  D. deep check: up to MAX_TRACKED_CHECKS_PER_CYCLE open rows: detect new
                  head commits (and closes the listing did not reveal)

Errors are per entity: a failed fetch skips that PR for this cycle and it is
retried on the next one. Cycles never overlap: the worker thread waits for a
cycle to finish before scheduling the next, and a concurrent run_cycle()
call is skipped.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING

from prwatch_core.config import DEFAULT_POLL_INTERVAL
from prwatch_core.exceptions import PRWatchError, TransientFetchError
from prwatch_core.matcher import check_interest
from prwatch_store.errors import StoreError
from prwatch_store.models import OPEN, utcnow

if TYPE_CHECKING:
    from prwatch_core.gh.pull_request import PullSummary, SourceHost
    from prwatch_core.ownership import OwnershipCache
    from prwatch_core.tracker import Tracker
    from prwatch_store.models import TrackedPR

logger = logging.getLogger(__name__)

MAX_NEW_PRS_PER_CYCLE = 5
MAX_TRACKED_CHECKS_PER_CYCLE = 10

# Errors that skip a single PR for the current cycle.
_ENTITY_ERRORS = (PRWatchError, StoreError)


@dataclass
class CycleReport:
    started_at: datetime = field(default_factory=utcnow)
    skipped: bool = False
    aborted: bool = False
    open_prs: int = 0
    evaluated: int = 0
    deferred: int = 0
    created: int = 0
    refreshed: int = 0
    transitioned: int = 0
    checked: int = 0
    changes: int = 0
    errors: int = 0


class Poller:
    def __init__(
        self,
        host: SourceHost,
        tracker: Tracker,
        ownership: OwnershipCache,
        config: dict,
        interval: float | None = None,
        max_new: int = MAX_NEW_PRS_PER_CYCLE,
        max_checks: int = MAX_TRACKED_CHECKS_PER_CYCLE,
    ):
        self.host = host
        self.tracker = tracker
        self.store = tracker.store
        self.ownership = ownership
        self.config = config
        self.interval = float(interval if interval is not None else config.get("poll_interval", DEFAULT_POLL_INTERVAL))
        self.max_new = max_new
        self.max_checks = max_checks

        self._cycle_lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        # pr_number -> head sha of untracked PRs that did not match; re-evaluated when the head moves
        self._rejected: dict[int, str] = {}
        # last pr_number deep-checked, so phase D rotates through all open rows
        self._cursor = 0

    # ------------------------------------------------------------------ #
    # Scheduling                                                           #
    # ------------------------------------------------------------------ #

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="prwatch-poller", daemon=True)
        self._thread.start()
        logger.info("Poller started with %ss interval", self.interval)

    def stop(self, timeout: float = 10.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            if self._thread.is_alive():
                logger.warning("Poller did not stop within %ss; abandoning in-flight cycle", timeout)
            self._thread = None
        logger.info("Poller stopped")

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _run(self) -> None:
        while not self._stop.is_set():
            try:
                self.run_cycle()
            except Exception:
                logger.exception("Poll cycle failed")
            if self._stop.wait(self.interval):
                break

    # ------------------------------------------------------------------ #
    # Cycle                                                                #
    # ------------------------------------------------------------------ #

    def run_cycle(self) -> CycleReport:
        if not self._cycle_lock.acquire(blocking=False):
            logger.warning("Previous poll cycle still running; skipping this one")
            return CycleReport(skipped=True)
        try:
            return self._cycle()
        finally:
            self._cycle_lock.release()

    def _cycle(self) -> CycleReport:
        report = CycleReport()
        logger.info("Polling %s", self.host.full_name)

        try:
            open_pulls = self.host.list_open_pulls()
        except TransientFetchError as e:
            logger.warning("Could not list open PRs; retrying next cycle: %s", e)
            report.errors += 1
            report.aborted = True
            return report
        report.open_prs = len(open_pulls)

        self._discover(open_pulls, report)
        open_numbers = {pr.number for pr in open_pulls}
        self._refresh(open_pulls, report)
        self._sync_drift(open_numbers, report)
        self._deep_check(open_numbers, report)

        logger.info(
            "Cycle done: %d evaluated, %d new, %d closed, %d checked, %d change(s), %d error(s)",
            report.evaluated,
            report.created,
            report.transitioned,
            report.checked,
            report.changes,
            report.errors,
        )
        return report

    def _stopping(self) -> bool:
        return self._stop.is_set()

    def _discover(self, open_pulls: list[PullSummary], report: CycleReport) -> None:
        tracked = self.store.tracked_numbers()
        open_numbers = {pr.number for pr in open_pulls}
        # Forget rejections for PRs that are no longer open.
        for number in list(self._rejected):
            if number not in open_numbers:
                del self._rejected[number]

        candidates = [
            pr for pr in open_pulls if pr.number not in tracked and self._rejected.get(pr.number) != pr.head_sha
        ]
        for pr in candidates:
            if report.evaluated >= self.max_new:
                report.deferred = len(candidates) - report.evaluated
                logger.info("Reached %d new PRs limit, deferring %d to next cycle", self.max_new, report.deferred)
                break
            if self._stopping():
                return
            report.evaluated += 1
            try:
                files = self.host.list_pull_files(pr.number)
                match = check_interest(pr.title, pr.body, pr.branch, files, self.config, self.ownership)
                if not match.is_interesting:
                    self._rejected[pr.number] = pr.head_sha
                    continue
                details = self.host.get_pull_details(pr.number)
                if self.tracker.track_new(pr, match, details) is not None:
                    report.created += 1
            except _ENTITY_ERRORS as e:
                report.errors += 1
                logger.warning("Skipping PR #%d this cycle: %s", pr.number, e)

    def _refresh(self, open_pulls: list[PullSummary], report: CycleReport) -> None:
        tracked_open = {pr.pr_number for pr in self.store.list_prs(status=OPEN)}
        for pr in open_pulls:
            if pr.number not in tracked_open:
                continue
            try:
                if self.tracker.refresh_metadata(pr.number, pr.requested_reviewers, pr.draft):
                    report.refreshed += 1
            except _ENTITY_ERRORS as e:
                report.errors += 1
                logger.warning("Could not refresh PR #%d: %s", pr.number, e)

    def _sync_drift(self, open_numbers: set[int], report: CycleReport) -> None:
        for tracked in self.store.list_prs(status=OPEN):
            if tracked.pr_number in open_numbers:
                continue
            if self._stopping():
                return
            try:
                state = self.host.get_pull_state(tracked.pr_number)
                if state.is_closed and self.tracker.mark_closed(tracked.pr_number, state.merged) is not None:
                    report.transitioned += 1
            except _ENTITY_ERRORS as e:
                report.errors += 1
                logger.warning("Could not sync PR #%d: %s", tracked.pr_number, e)

    def _deep_check(self, open_numbers: set[int], report: CycleReport) -> None:
        remaining = [pr for pr in self.store.list_prs(status=OPEN) if pr.pr_number in open_numbers]
        for tracked in self._next_batch(remaining):
            if self._stopping():
                return
            report.checked += 1
            try:
                self._check(tracked, report)
            except _ENTITY_ERRORS as e:
                report.errors += 1
                logger.warning("Could not check PR #%d: %s", tracked.pr_number, e)

    def _next_batch(self, prs: list[TrackedPR]) -> list[TrackedPR]:
        """Pick up to max_checks PRs, continuing after the last one checked and wrapping around."""
        ordered = sorted(prs, key=lambda p: p.pr_number)
        after = [p for p in ordered if p.pr_number > self._cursor]
        batch = (after + [p for p in ordered if p.pr_number <= self._cursor])[: self.max_checks]
        if len(ordered) > self.max_checks:
            logger.info("Checking %d of %d tracked PRs, deferring the rest", len(batch), len(ordered))
        if batch:
            self._cursor = batch[-1].pr_number
        return batch

    def _check(self, tracked: TrackedPR, report: CycleReport) -> None:
        state = self.host.get_pull_state(tracked.pr_number)
        if state.is_closed:
            if self.tracker.mark_closed(tracked.pr_number, state.merged) is not None:
                report.transitioned += 1
            return

        last = self.store.latest_change(tracked.id)
        if last is not None and last.commit_sha == state.head_sha:
            return

        files = self.host.list_pull_files(tracked.pr_number)
        change = self.tracker.record_change(tracked, state.head_sha, files, title=state.title, reviewers=state.reviewers)
        if change is not None:
            report.changes += 1

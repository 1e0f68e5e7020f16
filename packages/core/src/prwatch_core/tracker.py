"""Tracked-PR lifecycle shared by the poller and the webhook handler.

    (untracked) -> open                on first positive match
    open        -> merged | closed     source host reports it closed
    open        -> dismissed           user dismisses it
    dismissed   -> open                user re-tracks it

merged and closed are final, so a PR is announced as merged at most once.

Both triggers mutate the same rows with no shared transaction, so every
write goes through one of the store's atomic primitives:

- creation relies on the store's uniqueness on pr_number; losing the race
  means "already tracked" and produces no event
- open -> merged/closed is a conditional transition; only the caller that
  performs it emits the merge event
- a change is appended only if the last recorded commit differs; only an
  actual insert emits a code-change event
- metadata updates are compare-and-swap with a bounded re-read loop
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from typing import TYPE_CHECKING

from prwatch_core.notifiers.events import CodeChangeEvent, MergeEvent, NewPREvent
from prwatch_core.summary import summarize
from prwatch_store.errors import DuplicatePRError, InvalidTransitionError, NotFoundError, StaleRecordError
from prwatch_store.models import CLOSED, DISMISSED, MERGED, OPEN, PRChange, TrackedPR, utcnow

if TYPE_CHECKING:
    from datetime import datetime

    from prwatch_core.gh.pull_request import FileChange, PullDetails, PullSummary
    from prwatch_core.matcher import MatchResult
    from prwatch_core.notifiers.dispatcher import Dispatcher
    from prwatch_store.base import BaseStore

logger = logging.getLogger(__name__)

_CAS_ATTEMPTS = 3


class Tracker:
    def __init__(self, store: BaseStore, dispatcher: Dispatcher, clock: Callable[[], datetime] = utcnow):
        self.store = store
        self.dispatcher = dispatcher
        self._clock = clock

    def track_new(self, pr: PullSummary, match: MatchResult, details: PullDetails) -> TrackedPR | None:
        """Start tracking an interesting PR and announce it.

        Returns None if the PR is already tracked, in any status.
        """
        now = self._clock()
        record = TrackedPR(
            pr_number=pr.number,
            title=pr.title,
            author=pr.author,
            url=pr.url,
            branch=pr.branch,
            description=pr.body,
            reviewers=list(dict.fromkeys(pr.requested_reviewers)),
            status=OPEN,
            is_draft=pr.draft,
            match_reason=match.reason,
            match_details=match.to_details(),
            opened_at=pr.created_at or now,
            created_at=now,
            updated_at=now,
        )
        try:
            record = self.store.create_pr(record)
        except DuplicatePRError:
            logger.debug("PR #%d is already tracked", pr.number)
            return None

        logger.info("Tracking PR #%d (%s): %s", pr.number, match.reason, pr.title)
        self.dispatcher.dispatch(
            NewPREvent(
                pr_number=pr.number,
                title=pr.title,
                author=pr.author,
                url=pr.url,
                branch=pr.branch,
                match_result=match,
                files_changed=details.changed_files,
                additions=details.additions,
                deletions=details.deletions,
                description=pr.body,
            )
        )
        return record

    def record_change(
        self,
        tracked: TrackedPR,
        head_sha: str,
        files: Sequence[FileChange],
        title: str | None = None,
        reviewers: Sequence[str] | None = None,
    ) -> PRChange | None:
        """Record a new head commit for an open PR and announce it.

        Returns None without side effects when ``head_sha`` is already the
        last recorded commit.
        """
        now = self._clock()
        stats, summary = summarize(files)
        change = self.store.append_change(
            PRChange(
                tracked_pr_id=tracked.id,
                commit_sha=head_sha,
                summary=summary,
                files_changed=[f.filename for f in files],
                diff_stats=stats,
                created_at=now,
                notified_at=now,
            )
        )
        if change is None:
            logger.debug("PR #%d: %s already recorded", tracked.pr_number, head_sha[:7])
            return None

        logger.info("PR #%d has new commits (%s): %s", tracked.pr_number, head_sha[:7], stats)

        def apply(pr: TrackedPR) -> bool:
            if title:
                pr.title = title
            if reviewers:
                pr.merge_reviewers(list(reviewers))
            pr.updated_at = now
            return True

        updated = self._update(tracked.pr_number, apply) or tracked
        self.dispatcher.dispatch(
            CodeChangeEvent(
                pr_number=tracked.pr_number,
                title=updated.title,
                url=updated.url,
                commit_sha=head_sha,
                files_changed=list(change.files_changed),
                diff_stats=stats,
                summary=summary,
            )
        )
        return change

    def refresh_metadata(self, pr_number: int, reviewers: Sequence[str], draft: bool) -> bool:
        """Union in new reviewers and overwrite the draft flag. Returns True if the row changed."""

        def apply(pr: TrackedPR) -> bool:
            changed = pr.merge_reviewers(list(reviewers))
            if pr.is_draft != draft:
                pr.is_draft = draft
                changed = True
            return changed

        return self._update(pr_number, apply, only_if=OPEN) is not None

    def mark_closed(self, pr_number: int, merged: bool) -> TrackedPR | None:
        """Move an open PR to merged or closed. Returns None if it was not open."""
        now = self._clock()
        status = MERGED if merged else CLOSED
        updated = self.store.transition_status(pr_number, (OPEN,), status, at=now, merged_at=now if merged else None)
        if updated is None:
            logger.debug("PR #%d is not open; ignoring close", pr_number)
            return None

        logger.info("PR #%d is now %s", pr_number, status)
        if merged:
            self.dispatcher.dispatch(
                MergeEvent(pr_number=pr_number, title=updated.title, author=updated.author, url=updated.url)
            )
        return updated

    def dismiss(self, pr_number: int) -> TrackedPR:
        return self._transition(pr_number, (OPEN,), DISMISSED)

    def retrack(self, pr_number: int) -> TrackedPR:
        return self._transition(pr_number, (DISMISSED,), OPEN)

    def _transition(self, pr_number: int, allowed: tuple[str, ...], to_status: str) -> TrackedPR:
        updated = self.store.transition_status(pr_number, allowed, to_status, at=self._clock())
        if updated is not None:
            logger.info("PR #%d is now %s", pr_number, to_status)
            return updated
        current = self.store.get_pr_by_number(pr_number)
        if current is None:
            raise NotFoundError(f"PR #{pr_number} is not tracked")
        raise InvalidTransitionError(pr_number, current.status, to_status)

    def _update(
        self,
        pr_number: int,
        apply: Callable[[TrackedPR], bool],
        only_if: str | None = None,
    ) -> TrackedPR | None:
        """Read-modify-write with compare-and-swap; re-reads on conflict.

        Returns the written row, or None when nothing was written (row gone,
        status filter not met, or ``apply`` reported no change).
        """
        for _ in range(_CAS_ATTEMPTS):
            current = self.store.get_pr_by_number(pr_number)
            if current is None or (only_if is not None and current.status != only_if):
                return None
            if not apply(current):
                return None
            try:
                return self.store.update_pr(current)
            except StaleRecordError:
                logger.debug("PR #%d changed underneath us; retrying", pr_number)
        raise StaleRecordError(pr_number, current.version)

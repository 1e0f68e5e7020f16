"""Human-readable summaries of a PR's changed files."""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from prwatch_core.gh.pull_request import FileChange

MOST_CHANGED_LIMIT = 5


def diff_stats(files: Sequence[FileChange]) -> str:
    additions = sum(f.additions for f in files)
    deletions = sum(f.deletions for f in files)
    return f"{len(files)} files, +{additions} -{deletions}"


def build_change_summary(files: Sequence[FileChange]) -> str:
    """Count files per status (in first-seen order), then list the most-changed files."""
    by_status: dict[str, int] = {}
    for f in files:
        by_status[f.status] = by_status.get(f.status, 0) + 1
    parts = [f"{count} file(s) {status}" for status, count in by_status.items()]

    # sorted() is stable, so ties keep their original order.
    ranked = sorted(files, key=lambda f: f.additions + f.deletions, reverse=True)
    top = ", ".join(f"{f.filename} (+{f.additions}/-{f.deletions})" for f in ranked[:MOST_CHANGED_LIMIT])

    return f"{', '.join(parts)}. Most changed: {top}"


def summarize(files: Sequence[FileChange]) -> tuple[str, str]:
    """Return ``(diff_stats, summary)`` for a file list."""
    return diff_stats(files), build_change_summary(files)

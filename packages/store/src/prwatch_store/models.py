"""Tracked pull request data models.

Decoupled from prwatch_core so the store layer can be used on its own: the
core maps its match results and file lists onto these types before writing.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone

OPEN = "open"
MERGED = "merged"
CLOSED = "closed"
DISMISSED = "dismissed"

STATUSES = (OPEN, MERGED, CLOSED, DISMISSED)

MATCH_REASONS = ("keyword", "ownership", "both", "none")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


@dataclass
class TeamMatch:
    """Files of a PR owned by one team, in the PR's file order."""

    team: str
    files: list[str] = field(default_factory=list)


@dataclass
class MatchDetails:
    """Evidence behind a PR's match reason."""

    keywords: list[str] = field(default_factory=list)
    teams: list[TeamMatch] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "keywords": list(self.keywords),
            "teams": [{"team": t.team, "files": list(t.files)} for t in self.teams],
        }

    @classmethod
    def from_dict(cls, d: dict | None) -> MatchDetails:
        d = d or {}
        return cls(
            keywords=list(d.get("keywords", [])),
            teams=[TeamMatch(team=t.get("team", ""), files=list(t.get("files", []))) for t in d.get("teams", [])],
        )


@dataclass
class TrackedPR:
    """A pull request under observation.

    Exactly one row exists per ``pr_number``. Rows are never deleted:
    ``dismissed`` and a re-tracked ``open`` are states of the same row.
    ``version`` is bumped by the store on every write and is used for
    compare-and-swap updates.
    """

    pr_number: int
    title: str
    author: str
    url: str
    branch: str
    description: str = ""
    reviewers: list[str] = field(default_factory=list)
    status: str = OPEN
    is_draft: bool = False
    match_reason: str = "none"
    match_details: MatchDetails = field(default_factory=MatchDetails)
    opened_at: datetime | None = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    merged_at: datetime | None = None
    id: int | None = None
    version: int = 0

    def merge_reviewers(self, incoming: list[str]) -> bool:
        """Add reviewers not yet recorded. Never removes. Returns True if anything was added."""
        added = False
        for login in incoming:
            if login and login not in self.reviewers:
                self.reviewers.append(login)
                added = True
        return added

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "pr_number": self.pr_number,
            "title": self.title,
            "author": self.author,
            "url": self.url,
            "branch": self.branch,
            "description": self.description,
            "reviewers": list(self.reviewers),
            "status": self.status,
            "is_draft": self.is_draft,
            "match_reason": self.match_reason,
            "match_details": self.match_details.to_dict(),
            "opened_at": _iso(self.opened_at),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
            "merged_at": _iso(self.merged_at),
            "version": self.version,
        }


@dataclass
class PRChange:
    """One detected commit on a tracked PR. Append-only."""

    tracked_pr_id: int
    commit_sha: str
    summary: str
    files_changed: list[str] = field(default_factory=list)
    diff_stats: str = ""
    created_at: datetime = field(default_factory=utcnow)
    notified_at: datetime | None = None
    id: int | None = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tracked_pr_id": self.tracked_pr_id,
            "commit_sha": self.commit_sha,
            "summary": self.summary,
            "files_changed": list(self.files_changed),
            "diff_stats": self.diff_stats,
            "created_at": _iso(self.created_at),
            "notified_at": _iso(self.notified_at),
        }

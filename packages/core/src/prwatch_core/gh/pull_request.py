from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime

import requests
from github import Auth, Github, GithubException

from prwatch_core.exceptions import TransientFetchError

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 100
DEFAULT_TIMEOUT = 15  # seconds per HTTP request


@dataclass
class FileChange:
    filename: str
    status: str
    additions: int = 0
    deletions: int = 0
    patch: str | None = None


@dataclass
class PullSummary:
    """One entry of the open-PR listing (or a webhook payload's pull_request)."""

    number: int
    title: str
    body: str
    author: str
    url: str
    branch: str
    head_sha: str
    state: str = "open"
    created_at: datetime | None = None
    draft: bool = False
    requested_reviewers: list[str] = field(default_factory=list)


@dataclass
class PullState:
    """Authoritative state of a single PR."""

    number: int
    state: str
    merged: bool
    head_sha: str
    title: str
    draft: bool = False
    reviewers: list[str] = field(default_factory=list)

    @property
    def is_closed(self) -> bool:
        return self.state == "closed"


@dataclass
class PullDetails:
    number: int
    title: str
    author: str
    url: str
    branch: str
    base_branch: str
    state: str
    merged: bool
    additions: int
    deletions: int
    changed_files: int


@contextmanager
def _source_call(what: str):
    try:
        yield
    except (GithubException, requests.RequestException) as e:
        raise TransientFetchError(f"{what} failed: {e}") from e


def _login(user) -> str:
    return getattr(user, "login", None) or "unknown"


def _reviewer_logins(pr) -> list[str]:
    return [u.login for u in (pr.requested_reviewers or []) if getattr(u, "login", None)]


def paginate(paginated, page_size: int) -> Iterator:
    """Walk a PaginatedList page by page, stopping at the first short page."""
    page = 0
    while True:
        items = paginated.get_page(page)
        yield from items
        if len(items) < page_size:
            return
        page += 1


def pull_summary_from_payload(pr: dict) -> PullSummary:
    """Build a PullSummary from a webhook ``pull_request`` object."""
    created = pr.get("created_at")
    return PullSummary(
        number=pr["number"],
        title=pr.get("title") or "",
        body=pr.get("body") or "",
        author=(pr.get("user") or {}).get("login") or "unknown",
        url=pr.get("html_url") or "",
        branch=(pr.get("head") or {}).get("ref") or "",
        head_sha=(pr.get("head") or {}).get("sha") or "",
        state=pr.get("state") or "open",
        created_at=datetime.fromisoformat(created.replace("Z", "+00:00")) if created else None,
        draft=bool(pr.get("draft")),
        requested_reviewers=[r["login"] for r in pr.get("requested_reviewers") or [] if r.get("login")],
    )


class SourceHost:
    """Read-only view of one GitHub repository.

    Every method raises TransientFetchError on API or transport failure,
    except get_file_content which returns None.
    """

    def __init__(self, repo, page_size: int = DEFAULT_PAGE_SIZE):
        self._repo = repo
        self.page_size = page_size

    @classmethod
    def connect(
        cls,
        repo_name: str,
        token: str,
        timeout: float = DEFAULT_TIMEOUT,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> SourceHost:
        gh = Github(auth=Auth.Token(token), timeout=int(timeout), per_page=page_size)
        with _source_call(f"get_repo({repo_name})"):
            repo = gh.get_repo(repo_name)
        return cls(repo, page_size=page_size)

    @property
    def full_name(self) -> str:
        return self._repo.full_name

    def list_open_pulls(self) -> list[PullSummary]:
        with _source_call("list open pulls"):
            pulls = self._repo.get_pulls(state="open", sort="updated", direction="desc")
            return [
                PullSummary(
                    number=pr.number,
                    title=pr.title or "",
                    body=pr.body or "",
                    author=_login(pr.user),
                    url=pr.html_url,
                    branch=pr.head.ref,
                    head_sha=pr.head.sha,
                    state=pr.state,
                    created_at=pr.created_at,
                    draft=bool(pr.draft),
                    requested_reviewers=_reviewer_logins(pr),
                )
                for pr in paginate(pulls, self.page_size)
            ]

    def get_pull_state(self, pr_number: int) -> PullState:
        with _source_call(f"get PR #{pr_number}"):
            pr = self._repo.get_pull(pr_number)
            return PullState(
                number=pr.number,
                state=pr.state,
                merged=bool(pr.merged),
                head_sha=pr.head.sha,
                title=pr.title or "",
                draft=bool(pr.draft),
                reviewers=_reviewer_logins(pr),
            )

    def get_pull_details(self, pr_number: int) -> PullDetails:
        with _source_call(f"get PR #{pr_number} details"):
            pr = self._repo.get_pull(pr_number)
            return PullDetails(
                number=pr.number,
                title=pr.title or "",
                author=_login(pr.user),
                url=pr.html_url,
                branch=pr.head.ref,
                base_branch=pr.base.ref,
                state=pr.state,
                merged=bool(pr.merged),
                additions=pr.additions or 0,
                deletions=pr.deletions or 0,
                changed_files=pr.changed_files or 0,
            )

    def list_pull_files(self, pr_number: int) -> list[FileChange]:
        with _source_call(f"list files of PR #{pr_number}"):
            pr = self._repo.get_pull(pr_number)
            return [_to_file_change(f) for f in paginate(pr.get_files(), self.page_size)]

    def get_file_content(self, path: str, ref: str | None = None) -> str | None:
        """Return a file's text at ``ref`` (default branch when None), or None if it cannot be read."""
        try:
            contents = self._repo.get_contents(path, ref=ref) if ref else self._repo.get_contents(path)
        except (GithubException, requests.RequestException) as e:
            logger.debug("Could not fetch %s@%s: %s", path, ref or "default", e)
            return None
        if isinstance(contents, list):
            # path is a directory
            return None
        return contents.decoded_content.decode("utf-8", errors="replace")

    def get_incremental_files(self, base_sha: str, head_sha: str) -> list[FileChange]:
        """Return files changed between two commits using GitHub's compare API."""
        with _source_call(f"compare {base_sha[:7]}...{head_sha[:7]}"):
            comparison = self._repo.compare(base_sha, head_sha)
            return [_to_file_change(f) for f in comparison.files]


def _to_file_change(f) -> FileChange:
    return FileChange(
        filename=f.filename,
        status=f.status,
        additions=f.additions or 0,
        deletions=f.deletions or 0,
        patch=f.patch,
    )

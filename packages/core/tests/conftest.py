"""Shared fixtures: an in-memory GitHub stand-in and a wired tracker."""

from __future__ import annotations

from collections import Counter
from dataclasses import replace
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from prwatch_core.exceptions import TransientFetchError
from prwatch_core.gh.pull_request import FileChange, PullDetails, PullState, PullSummary
from prwatch_core.notifiers.base import BaseNotifier
from prwatch_core.notifiers.dispatcher import Dispatcher
from prwatch_core.ownership import OwnershipCache
from prwatch_core.tracker import Tracker
from prwatch_store.memory import MemoryStore

CREATED = datetime(2024, 5, 1, 9, 30, tzinfo=timezone.utc)


class FakeHost:
    """Source host backed by dicts. Mutate it between cycles to simulate GitHub."""

    full_name = "owner/repo"

    def __init__(self):
        self.summaries: dict[int, PullSummary] = {}
        self.states: dict[int, PullState] = {}
        self.files: dict[int, list[FileChange]] = {}
        self.contents: dict[str, str] = {}
        self.failing: set[int] = set()
        self.list_error: Exception | None = None
        self.calls: Counter = Counter()

    def add_pull(
        self,
        number,
        title="Update docs",
        body="",
        branch="docs/update",
        files=None,
        head_sha=None,
        reviewers=None,
        draft=False,
    ):
        head_sha = head_sha or f"{number:04d}" + "0" * 36
        self.summaries[number] = PullSummary(
            number=number,
            title=title,
            body=body,
            author="alice",
            url=f"https://github.com/owner/repo/pull/{number}",
            branch=branch,
            head_sha=head_sha,
            created_at=CREATED,
            draft=draft,
            requested_reviewers=list(reviewers or []),
        )
        self.states[number] = PullState(
            number=number,
            state="open",
            merged=False,
            head_sha=head_sha,
            title=title,
            draft=draft,
            reviewers=list(reviewers or []),
        )
        self.files[number] = list(files or [FileChange("README.md", "modified", 1, 1)])
        return self.summaries[number]

    def push(self, number, head_sha, files=None, title=None):
        self.summaries[number] = replace(self.summaries[number], head_sha=head_sha, title=title or self.summaries[number].title)
        self.states[number] = replace(self.states[number], head_sha=head_sha, title=title or self.states[number].title)
        if files is not None:
            self.files[number] = list(files)

    def close(self, number, merged=False):
        self.states[number] = replace(self.states[number], state="closed", merged=merged)

    def _check(self, number):
        if number in self.failing:
            raise TransientFetchError(f"get PR #{number} failed: 502 Bad Gateway")

    def list_open_pulls(self):
        self.calls["list_open_pulls"] += 1
        if self.list_error is not None:
            raise self.list_error
        return [s for n, s in self.summaries.items() if self.states[n].state == "open"]

    def get_pull_state(self, number):
        self.calls["get_pull_state"] += 1
        self._check(number)
        return replace(self.states[number])

    def get_pull_details(self, number):
        self.calls["get_pull_details"] += 1
        self._check(number)
        s = self.summaries[number]
        files = self.files[number]
        return PullDetails(
            number=number,
            title=s.title,
            author=s.author,
            url=s.url,
            branch=s.branch,
            base_branch="main",
            state=self.states[number].state,
            merged=self.states[number].merged,
            additions=sum(f.additions for f in files),
            deletions=sum(f.deletions for f in files),
            changed_files=len(files),
        )

    def list_pull_files(self, number):
        self.calls["list_pull_files"] += 1
        self._check(number)
        return list(self.files[number])

    def get_file_content(self, path, ref=None):
        self.calls["get_file_content"] += 1
        return self.contents.get(path)


class RecordingNotifier(BaseNotifier):
    def __init__(self):
        self.events = []

    def _deliver(self, event, subject, body):
        self.events.append(event)

    def kinds(self):
        return [e.kind for e in self.events]


@pytest.fixture
def host():
    h = FakeHost()
    h.contents["teams/platform.yml"] = "paths:\n  - src/auth/**\n  - .github/workflows/*.yml\n"
    return h


@pytest.fixture
def config():
    return {
        "repo": "owner/repo",
        "keywords": ["auth"],
        "teams": [{"name": "platform", "ownership_file": "teams/platform.yml"}],
        "notifications": {"on_new_pr": True, "on_code_change": True, "on_merge": True},
        "poll_interval": 120,
    }


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def tracker(store, notifier, config):
    return Tracker(store, Dispatcher(notifier, config["notifications"]))


@pytest.fixture
def ownership(host):
    return OwnershipCache(host.get_file_content)


@pytest.fixture
def mock_repo():
    """A MagicMock PyGithub Repository."""
    return MagicMock()

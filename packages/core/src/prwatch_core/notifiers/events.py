"""Typed notification events emitted by the tracker."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, ClassVar, Union

if TYPE_CHECKING:
    from prwatch_core.matcher import MatchResult


@dataclass
class NewPREvent:
    kind: ClassVar[str] = "new_pr"

    pr_number: int
    title: str
    author: str
    url: str
    branch: str
    match_result: MatchResult
    files_changed: int
    additions: int
    deletions: int
    description: str = ""


@dataclass
class CodeChangeEvent:
    kind: ClassVar[str] = "code_change"

    pr_number: int
    title: str
    url: str
    commit_sha: str
    files_changed: list[str] = field(default_factory=list)
    diff_stats: str = ""
    summary: str = ""


@dataclass
class MergeEvent:
    kind: ClassVar[str] = "merge"

    pr_number: int
    title: str
    author: str
    url: str


Event = Union[NewPREvent, CodeChangeEvent, MergeEvent]

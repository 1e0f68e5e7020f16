"""Interest matching: does a pull request touch something we care about?

Two independent passes over the PR:

- keywords: case-insensitive substring search over title, body, branch and
  every changed filename
- ownership: which configured teams own at least one changed file

``evaluate`` is pure. ``check_interest`` resolves the ownership patterns
through an OwnershipCache first and then calls it.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from prwatch_core.utils.glob import match_any
from prwatch_store.models import MatchDetails, TeamMatch

if TYPE_CHECKING:
    from prwatch_core.gh.pull_request import FileChange
    from prwatch_core.ownership import OwnershipCache

KEYWORD = "keyword"
OWNERSHIP = "ownership"
BOTH = "both"
NONE = "none"


@dataclass
class MatchResult:
    is_interesting: bool
    reason: str
    matched_keywords: list[str] = field(default_factory=list)
    matched_teams: list[TeamMatch] = field(default_factory=list)

    def to_details(self) -> MatchDetails:
        return MatchDetails(
            keywords=list(self.matched_keywords),
            teams=[TeamMatch(team=t.team, files=list(t.files)) for t in self.matched_teams],
        )


def find_keyword_matches(
    keywords: Sequence[str],
    title: str,
    body: str,
    branch: str,
    files: Sequence[FileChange],
) -> list[str]:
    searchable = " ".join([title or "", body or "", branch or "", *(f.filename for f in files)]).lower()
    return [kw for kw in keywords if kw and kw.lower() in searchable]


def find_ownership_matches(
    owned_paths: Mapping[str, Sequence[str]],
    files: Sequence[FileChange],
) -> list[TeamMatch]:
    matches = []
    for team, patterns in owned_paths.items():
        if not patterns:
            continue
        matched = [f.filename for f in files if match_any(f.filename, patterns)]
        if matched:
            matches.append(TeamMatch(team=team, files=matched))
    return matches


def classify(has_keywords: bool, has_ownership: bool) -> str:
    if has_keywords and has_ownership:
        return BOTH
    if has_keywords:
        return KEYWORD
    if has_ownership:
        return OWNERSHIP
    return NONE


def evaluate(
    title: str,
    body: str,
    branch: str,
    changed_files: Sequence[FileChange],
    keywords: Sequence[str],
    owned_paths: Mapping[str, Sequence[str]],
) -> MatchResult:
    """Match a PR against keywords and team ownership.

    ``owned_paths`` maps team name to its glob patterns, in configuration
    order; the result lists teams in that order and each team's files in
    the PR's file order.
    """
    matched_keywords = find_keyword_matches(keywords, title, body, branch, changed_files)
    matched_teams = find_ownership_matches(owned_paths, changed_files)
    reason = classify(bool(matched_keywords), bool(matched_teams))
    return MatchResult(
        is_interesting=reason != NONE,
        reason=reason,
        matched_keywords=matched_keywords,
        matched_teams=matched_teams,
    )


def check_interest(
    title: str,
    body: str,
    branch: str,
    changed_files: Sequence[FileChange],
    config: dict,
    ownership: OwnershipCache,
) -> MatchResult:
    owned_paths = ownership.resolve_all(config.get("teams") or [])
    return evaluate(title, body, branch, changed_files, config.get("keywords") or [], owned_paths)

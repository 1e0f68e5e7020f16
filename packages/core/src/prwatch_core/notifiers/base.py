"""Base notifier implementing the Template Method pattern.

All notifiers share the same rendering:
    notify() → render_subject() + render_body()
             → _deliver()   ← only this differs per notifier

Subclasses implement _deliver only. It should raise on failure; the
Dispatcher turns exceptions into logged NotificationDispatchErrors.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from prwatch_core.notifiers.events import CodeChangeEvent, MergeEvent, NewPREvent

if TYPE_CHECKING:
    from prwatch_core.matcher import MatchResult
    from prwatch_core.notifiers.events import Event

SUBJECT_PREFIX = "[PR Notifier]"

# Per-team file list and changed-file list caps in rendered bodies.
_TEAM_FILES_SHOWN = 5
_CHANGED_FILES_SHOWN = 20
_DESCRIPTION_CHARS = 3000


def format_match_details(match: MatchResult) -> list[str]:
    lines = []
    if match.matched_keywords:
        lines.append("Keywords matched: " + ", ".join(match.matched_keywords))
    for tm in match.matched_teams:
        shown = ", ".join(tm.files[:_TEAM_FILES_SHOWN])
        more = f" (+{len(tm.files) - _TEAM_FILES_SHOWN} more)" if len(tm.files) > _TEAM_FILES_SHOWN else ""
        lines.append(f'Team "{tm.team}" owns files: {shown}{more}')
    return lines


def truncate_description(body: str) -> str:
    body = (body or "").strip()
    if len(body) > _DESCRIPTION_CHARS:
        return body[:_DESCRIPTION_CHARS] + "\n… (truncated)"
    return body


class BaseNotifier(ABC):

    # ------------------------------------------------------------------ #
    # Public interface                                                     #
    # ------------------------------------------------------------------ #

    def notify(self, event: Event) -> None:
        self._deliver(event, self.render_subject(event), self.render_body(event))

    # ------------------------------------------------------------------ #
    # Abstract: implement in each notifier                                 #
    # ------------------------------------------------------------------ #

    @abstractmethod
    def _deliver(self, event: Event, subject: str, body: list[str]) -> None:
        """Send one rendered notification. Raise on failure."""

    # ------------------------------------------------------------------ #
    # Shared rendering                                                     #
    # ------------------------------------------------------------------ #

    def render_subject(self, event: Event) -> str:
        if isinstance(event, NewPREvent):
            return f"{SUBJECT_PREFIX} Interesting PR #{event.pr_number}: {event.title}"
        if isinstance(event, CodeChangeEvent):
            return f"{SUBJECT_PREFIX} Changes in PR #{event.pr_number}: {event.title}"
        if isinstance(event, MergeEvent):
            return f"{SUBJECT_PREFIX} PR #{event.pr_number} merged: {event.title}"
        raise TypeError(f"Unknown event type: {type(event).__name__}")

    def render_body(self, event: Event) -> list[str]:
        if isinstance(event, NewPREvent):
            lines = [
                f"Author:  {event.author}",
                f"Branch:  {event.branch}",
                f"Changes: {event.files_changed} files +{event.additions} -{event.deletions}",
            ]
            description = truncate_description(event.description)
            if description:
                lines += ["", description]
            lines += ["", "Why this is interesting:", *format_match_details(event.match_result)]
        elif isinstance(event, CodeChangeEvent):
            lines = [f"Commit: {event.commit_sha[:7]}", f"Stats:  {event.diff_stats}", "", "Changed files:"]
            lines += [f"  {name}" for name in event.files_changed[:_CHANGED_FILES_SHOWN]]
            if len(event.files_changed) > _CHANGED_FILES_SHOWN:
                lines.append(f"  ...and {len(event.files_changed) - _CHANGED_FILES_SHOWN} more")
            lines += ["", f"Summary: {event.summary}"]
        elif isinstance(event, MergeEvent):
            lines = [f"#{event.pr_number} - {event.title} has been merged.", f"Author: {event.author}"]
        else:
            raise TypeError(f"Unknown event type: {type(event).__name__}")
        return lines + ["", event.url]

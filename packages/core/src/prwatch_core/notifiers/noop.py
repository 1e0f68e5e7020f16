"""No-op notifier, selected with `notifications.notifier: none`.

State is still tracked; nothing is delivered.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from prwatch_core.notifiers.base import BaseNotifier

if TYPE_CHECKING:
    from prwatch_core.notifiers.events import Event


class NoOpNotifier(BaseNotifier):
    def _deliver(self, event: Event, subject: str, body: list[str]) -> None:
        pass  # intentional no-op

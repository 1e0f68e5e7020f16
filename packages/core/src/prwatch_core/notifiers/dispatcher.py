"""Fire-and-forget delivery of tracker events.

A failed delivery is logged and reported as False; it never propagates, so
the state change that produced the event is never rolled back.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from prwatch_core.exceptions import NotificationDispatchError

if TYPE_CHECKING:
    from prwatch_core.notifiers.base import BaseNotifier
    from prwatch_core.notifiers.events import Event

logger = logging.getLogger(__name__)

# event kind -> notifications toggle in prwatch.yml
TOGGLES = {
    "new_pr": "on_new_pr",
    "code_change": "on_code_change",
    "merge": "on_merge",
}


class Dispatcher:
    def __init__(self, notifier: BaseNotifier, toggles: dict | None = None):
        self._notifier = notifier
        self._toggles = toggles or {}

    def enabled(self, kind: str) -> bool:
        return bool(self._toggles.get(TOGGLES[kind], True))

    def dispatch(self, event: Event) -> bool:
        if not self.enabled(event.kind):
            logger.debug("%s notifications disabled; PR #%d not announced", event.kind, event.pr_number)
            return False
        try:
            self._notifier.notify(event)
        except Exception as e:
            logger.error("%s", NotificationDispatchError(event.kind, event.pr_number, e))
            return False
        logger.info("Sent %s notification for PR #%d", event.kind, event.pr_number)
        return True

from __future__ import annotations

from typing import TYPE_CHECKING

from rich.console import Console
from rich.panel import Panel
from rich.text import Text

from prwatch_core.notifiers.base import BaseNotifier

if TYPE_CHECKING:
    from prwatch_core.notifiers.events import Event


class ConsoleNotifier(BaseNotifier):
    """Prints each notification as a rich panel."""

    _BORDER = {"new_pr": "magenta", "code_change": "yellow", "merge": "green"}

    def __init__(self, console: Console | None = None):
        self.console = console or Console()

    def _deliver(self, event: Event, subject: str, body: list[str]) -> None:
        self.console.print(
            Panel(
                Text("\n".join(body)),
                title=Text(subject, style="bold"),
                title_align="left",
                border_style=self._BORDER.get(event.kind, "white"),
            )
        )

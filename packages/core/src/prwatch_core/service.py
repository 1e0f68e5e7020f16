"""Wires one watched repository into a running service.

All process-level state (ownership cache, poll timer, HTTP server) is owned
by a WatchService instance and lives between start() and stop().
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from prwatch_core.config import validate_config
from prwatch_core.exceptions import ConfigError
from prwatch_core.notifiers.console import ConsoleNotifier
from prwatch_core.notifiers.dispatcher import Dispatcher
from prwatch_core.notifiers.noop import NoOpNotifier
from prwatch_core.ownership import OwnershipCache
from prwatch_core.poller import Poller
from prwatch_core.server import WebhookServer
from prwatch_core.tracker import Tracker
from prwatch_core.webhook import WebhookHandler

if TYPE_CHECKING:
    from prwatch_core.gh.pull_request import SourceHost
    from prwatch_core.notifiers.base import BaseNotifier
    from prwatch_store.base import BaseStore

logger = logging.getLogger(__name__)


def build_notifier(config: dict) -> BaseNotifier:
    kind = (config.get("notifications") or {}).get("notifier", "console")
    if kind == "none":
        return NoOpNotifier()
    if kind == "console":
        return ConsoleNotifier()
    raise ConfigError(f"Unknown notifier: {kind!r}. Choose 'console' or 'none'.")


class WatchService:
    def __init__(
        self,
        config: dict,
        store: BaseStore,
        host: SourceHost,
        notifier: BaseNotifier | None = None,
    ):
        self.config = validate_config(config)
        self.store = store
        self.host = host
        self.dispatcher = Dispatcher(notifier or build_notifier(config), config.get("notifications"))
        self.tracker = Tracker(store, self.dispatcher)
        self.ownership = OwnershipCache(host.get_file_content)
        self.poller = Poller(host, self.tracker, self.ownership, config)
        self.webhook = WebhookHandler(host, self.tracker, self.ownership, config, secret=config.get("webhook_secret"))
        self.server: WebhookServer | None = None

    def start(self, serve_http: bool = True) -> None:
        if serve_http:
            self.server = WebhookServer(
                self.webhook,
                self.tracker,
                host=self.config.get("webhook_host", "127.0.0.1"),
                port=int(self.config.get("webhook_port", 8787)),
            )
            self.server.start()
        self.poller.start()

    def stop(self) -> None:
        self.poller.stop()
        if self.server is not None:
            self.server.shutdown()
            self.server = None
        self.ownership.invalidate()
        logger.info("Service stopped")

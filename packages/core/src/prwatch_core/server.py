"""HTTP surface: webhook receiver plus a small JSON API over tracked PRs.

Routes:
  POST  /webhook, /api/webhooks/github   GitHub pull_request deliveries
  GET   /healthz
  GET   /api/prs[?status=open|merged|closed|dismissed|all]
  GET   /api/prs/<number>
  PATCH /api/prs/<number>                {"action": "dismiss" | "retrack"}
"""

from __future__ import annotations

import json
import logging
import re
import threading
from http import HTTPStatus
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import TYPE_CHECKING, Any
from urllib.parse import parse_qs, urlsplit

from prwatch_store.errors import InvalidTransitionError, NotFoundError
from prwatch_store.models import STATUSES

if TYPE_CHECKING:
    from prwatch_core.tracker import Tracker
    from prwatch_core.webhook import WebhookHandler

logger = logging.getLogger(__name__)

WEBHOOK_PATHS = ("/webhook", "/api/webhooks/github")
_PR_PATH_RE = re.compile(r"^/api/prs/(\d+)/?$")
_MAX_BODY_BYTES = 25 * 1024 * 1024  # GitHub caps payloads at 25 MB


def list_prs_payload(tracker: Tracker, status: str | None = None) -> list[dict]:
    store = tracker.store
    prs = store.list_prs(status=status if status in STATUSES else None)
    prs.sort(key=lambda p: p.updated_at, reverse=True)
    payload = []
    for pr in prs:
        item = pr.to_dict()
        latest = store.latest_change(pr.id)
        item["latest_change"] = latest.to_dict() if latest else None
        payload.append(item)
    return payload


def pr_detail_payload(tracker: Tracker, pr_number: int) -> dict | None:
    pr = tracker.store.get_pr_by_number(pr_number)
    if pr is None:
        return None
    item = pr.to_dict()
    item["changes"] = [c.to_dict() for c in reversed(tracker.store.list_changes(pr.id))]
    return item


def _make_handler(webhook: WebhookHandler, tracker: Tracker) -> type[BaseHTTPRequestHandler]:
    class Handler(BaseHTTPRequestHandler):
        def log_message(self, fmt: str, *args: Any) -> None:
            logger.debug("http %s - %s", self.address_string(), fmt % args)

        def _respond(self, code: int, payload: Any) -> None:
            data = json.dumps(payload).encode("utf-8")
            self.send_response(code)
            self.send_header("Content-Type", "application/json")
            self.send_header("Content-Length", str(len(data)))
            self.end_headers()
            self.wfile.write(data)

        def _read_body(self) -> bytes | None:
            length = int(self.headers.get("Content-Length", "0") or 0)
            if length > _MAX_BODY_BYTES:
                self._respond(HTTPStatus.REQUEST_ENTITY_TOO_LARGE, {"error": "payload too large"})
                return None
            return self.rfile.read(length)

        def do_GET(self) -> None:  # noqa: N802
            url = urlsplit(self.path)
            if url.path == "/healthz":
                self._respond(HTTPStatus.OK, {"ok": True})
                return
            if url.path.rstrip("/") == "/api/prs":
                status = parse_qs(url.query).get("status", [None])[0]
                self._respond(HTTPStatus.OK, list_prs_payload(tracker, status))
                return
            match = _PR_PATH_RE.match(url.path)
            if match:
                detail = pr_detail_payload(tracker, int(match.group(1)))
                if detail is None:
                    self._respond(HTTPStatus.NOT_FOUND, {"error": "PR not found"})
                else:
                    self._respond(HTTPStatus.OK, detail)
                return
            self._respond(HTTPStatus.NOT_FOUND, {"error": "not found"})

        def do_POST(self) -> None:  # noqa: N802
            if urlsplit(self.path).path not in WEBHOOK_PATHS:
                self._respond(HTTPStatus.NOT_FOUND, {"error": "not found"})
                return
            body = self._read_body()
            if body is None:
                return
            result = webhook.handle(dict(self.headers.items()), body)
            self._respond(result.status, result.body)

        def do_PATCH(self) -> None:  # noqa: N802
            match = _PR_PATH_RE.match(urlsplit(self.path).path)
            if not match:
                self._respond(HTTPStatus.NOT_FOUND, {"error": "not found"})
                return
            body = self._read_body()
            if body is None:
                return
            try:
                action = json.loads(body or b"{}").get("action")
            except (ValueError, AttributeError):
                action = None

            pr_number = int(match.group(1))
            try:
                if action == "dismiss":
                    pr = tracker.dismiss(pr_number)
                elif action == "retrack":
                    pr = tracker.retrack(pr_number)
                else:
                    self._respond(HTTPStatus.BAD_REQUEST, {"error": "action must be 'dismiss' or 'retrack'"})
                    return
            except NotFoundError:
                self._respond(HTTPStatus.NOT_FOUND, {"error": "PR not found"})
                return
            except InvalidTransitionError as e:
                self._respond(HTTPStatus.CONFLICT, {"error": str(e)})
                return
            self._respond(HTTPStatus.OK, pr.to_dict())

    return Handler


class WebhookServer:
    """Threaded HTTP server; each request runs on its own thread."""

    def __init__(self, webhook: WebhookHandler, tracker: Tracker, host: str = "127.0.0.1", port: int = 8787):
        self._httpd = ThreadingHTTPServer((host, port), _make_handler(webhook, tracker))
        self._httpd.daemon_threads = True
        self._thread: threading.Thread | None = None

    @property
    def address(self) -> tuple[str, int]:
        host, port = self._httpd.server_address[:2]
        return host, port

    def start(self) -> None:
        """Serve on a background thread."""
        self._thread = threading.Thread(target=self._httpd.serve_forever, name="prwatch-http", daemon=True)
        self._thread.start()
        logger.info("Listening on http://%s:%s%s", *self.address, WEBHOOK_PATHS[0])

    def shutdown(self) -> None:
        self._httpd.shutdown()
        self._httpd.server_close()
        if self._thread is not None:
            self._thread.join(5)
            self._thread = None

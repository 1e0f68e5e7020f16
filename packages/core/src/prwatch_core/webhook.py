"""GitHub `pull_request` webhook consumer.

Transport-agnostic: ``WebhookHandler.handle`` takes the raw headers and body
and returns a status code plus a JSON-able payload. ``prwatch_core.server``
binds it to HTTP.

Status codes:
  401  signature missing or wrong
  400  body is not JSON
  500  processing failed; GitHub redelivers the event
  200  processed, or an event/action we do not act on
"""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from prwatch_core.exceptions import AuthError
from prwatch_core.gh.pull_request import pull_summary_from_payload
from prwatch_core.matcher import check_interest
from prwatch_store.models import OPEN

if TYPE_CHECKING:
    from prwatch_core.gh.pull_request import SourceHost
    from prwatch_core.ownership import OwnershipCache
    from prwatch_core.tracker import Tracker

logger = logging.getLogger(__name__)

EVENT_HEADER = "x-github-event"
SIGNATURE_HEADER = "x-hub-signature-256"
PULL_REQUEST_EVENT = "pull_request"


@dataclass
class WebhookResponse:
    status: int
    body: dict = field(default_factory=dict)


def sign(secret: str, body: bytes) -> str:
    return "sha256=" + hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def verify_signature(secret: str | None, body: bytes, signature: str | None) -> None:
    """Raise AuthError unless ``signature`` is the HMAC-SHA256 of ``body`` under ``secret``.

    With no secret configured, verification is skipped.
    """
    if not secret:
        return
    if not signature:
        raise AuthError(f"missing {SIGNATURE_HEADER} header")
    if not hmac.compare_digest(signature.encode("utf-8"), sign(secret, body).encode("utf-8")):
        raise AuthError("signature mismatch")


def _header(headers: Mapping[str, str], name: str) -> str | None:
    for key, value in headers.items():
        if key.lower() == name:
            return value
    return None


class WebhookHandler:
    def __init__(
        self,
        host: SourceHost,
        tracker: Tracker,
        ownership: OwnershipCache,
        config: dict,
        secret: str | None = None,
    ):
        self.host = host
        self.tracker = tracker
        self.store = tracker.store
        self.ownership = ownership
        self.config = config
        self.secret = secret
        if not secret:
            logger.warning("WEBHOOK_SECRET not set, skipping signature verification")

    def handle(self, headers: Mapping[str, str], body: bytes) -> WebhookResponse:
        try:
            verify_signature(self.secret, body, _header(headers, SIGNATURE_HEADER))
        except AuthError as e:
            logger.warning("Rejected webhook delivery: %s", e)
            return WebhookResponse(401, {"error": "Invalid signature"})

        event = _header(headers, EVENT_HEADER)
        if event != PULL_REQUEST_EVENT:
            return WebhookResponse(200, {"message": "Ignored event"})

        try:
            payload = json.loads(body.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError):
            return WebhookResponse(400, {"error": "Invalid JSON payload"})
        if not isinstance(payload, dict):
            return WebhookResponse(400, {"error": "Payload must be a JSON object"})

        action = payload.get("action")
        handlers = {
            "opened": self._on_opened,
            "reopened": self._on_opened,
            "synchronize": self._on_synchronize,
            "closed": self._on_closed,
        }
        handler = handlers.get(action)
        if handler is None:
            return WebhookResponse(200, {"message": "OK"})

        try:
            handler(payload)
        except Exception:
            logger.exception("Error handling pull_request event (%s)", action)
            return WebhookResponse(500, {"error": "Internal processing error"})
        return WebhookResponse(200, {"message": "OK"})

    def _on_opened(self, payload: dict) -> None:
        pr = pull_summary_from_payload(payload["pull_request"])
        if self.store.get_pr_by_number(pr.number) is not None:
            logger.debug("PR #%d already tracked; ignoring %s", pr.number, payload.get("action"))
            return

        files = self.host.list_pull_files(pr.number)
        match = check_interest(pr.title, pr.body, pr.branch, files, self.config, self.ownership)
        if not match.is_interesting:
            logger.debug("PR #%d did not match", pr.number)
            return

        details = self.host.get_pull_details(pr.number)
        self.tracker.track_new(pr, match, details)

    def _on_synchronize(self, payload: dict) -> None:
        pr = payload["pull_request"]
        tracked = self.store.get_pr_by_number(pr["number"])
        if tracked is None or tracked.status != OPEN:
            return

        head_sha = payload.get("after") or (pr.get("head") or {}).get("sha") or ""
        files = self.host.list_pull_files(tracked.pr_number)
        self.tracker.record_change(tracked, head_sha, files, title=pr.get("title"))

    def _on_closed(self, payload: dict) -> None:
        pr = payload["pull_request"]
        if self.store.get_pr_by_number(pr["number"]) is None:
            return
        self.tracker.mark_closed(pr["number"], bool(pr.get("merged")))

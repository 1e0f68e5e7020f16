"""Tests for the pull_request webhook handler."""

import json

import pytest

from prwatch_core.exceptions import AuthError
from prwatch_core.gh.pull_request import FileChange
from prwatch_core.poller import Poller
from prwatch_core.webhook import WebhookHandler, sign, verify_signature
from prwatch_store.models import CLOSED, DISMISSED, MERGED, OPEN

SECRET = "It's a Secret to Everybody"
AUTH_FILE = FileChange("src/auth/login.py", "modified", 10, 2)


@pytest.fixture
def handler(host, tracker, ownership, config):
    return WebhookHandler(host, tracker, ownership, config, secret=SECRET)


def _payload(action, number=1, title="Harden auth", branch="fix/auth", head_sha="a" * 40, merged=False, after=None):
    payload = {
        "action": action,
        "number": number,
        "pull_request": {
            "number": number,
            "title": title,
            "body": "",
            "user": {"login": "alice"},
            "html_url": f"https://github.com/owner/repo/pull/{number}",
            "head": {"ref": branch, "sha": head_sha},
            "state": "closed" if action == "closed" else "open",
            "merged": merged,
            "created_at": "2024-05-01T09:30:00Z",
            "draft": False,
            "requested_reviewers": [],
        },
    }
    if after:
        payload["after"] = after
    return payload


def _deliver(handler, payload, event="pull_request", secret=SECRET, signature=None):
    body = json.dumps(payload).encode()
    headers = {"X-GitHub-Event": event, "Content-Type": "application/json"}
    if secret is not None:
        headers["X-Hub-Signature-256"] = signature or sign(secret, body)
    return handler.handle(headers, body)


class TestSignature:
    def test_known_digest(self):
        # GitHub's documented example
        assert (
            sign(SECRET, b"Hello, World!")
            == "sha256=757107ea0eb2509fc211221cce984b8a37570b6d7586c22c46f4379c8b043e17"
        )

    def test_verify_accepts_valid(self):
        verify_signature(SECRET, b"{}", sign(SECRET, b"{}"))

    def test_verify_rejects_missing_and_wrong(self):
        with pytest.raises(AuthError):
            verify_signature(SECRET, b"{}", None)
        with pytest.raises(AuthError):
            verify_signature(SECRET, b"{}", sign("other", b"{}"))

    def test_no_secret_skips_verification(self):
        verify_signature(None, b"{}", None)

    def test_bad_signature_is_401(self, handler, store):
        response = _deliver(handler, _payload("opened"), signature="sha256=" + "0" * 64)
        assert response.status == 401
        assert store.list_prs() == []

    def test_unsigned_delivery_accepted_without_secret(self, host, tracker, ownership, config, store):
        host.add_pull(1, title="Harden auth", files=[AUTH_FILE])
        handler = WebhookHandler(host, tracker, ownership, config, secret=None)
        assert _deliver(handler, _payload("opened"), secret=None).status == 200
        assert store.tracked_numbers() == {1}


class TestRouting:
    def test_other_event_ignored(self, handler):
        response = _deliver(handler, {"zen": "Keep it logically awesome."}, event="ping")
        assert response.status == 200
        assert response.body == {"message": "Ignored event"}

    def test_unhandled_action_acknowledged(self, handler, store):
        assert _deliver(handler, _payload("labeled")).status == 200
        assert store.list_prs() == []

    def test_invalid_json_is_400(self, handler):
        body = b"not json"
        headers = {"X-GitHub-Event": "pull_request", "X-Hub-Signature-256": sign(SECRET, body)}
        assert handler.handle(headers, body).status == 400

    @pytest.mark.parametrize("body", [b"[1, 2]", b'"opened"', b"null"])
    def test_non_object_json_is_400(self, handler, store, body):
        headers = {"X-GitHub-Event": "pull_request", "X-Hub-Signature-256": sign(SECRET, body)}
        assert handler.handle(headers, body).status == 400
        assert store.list_prs() == []

    def test_processing_error_is_500(self, handler, host):
        host.add_pull(1, title="Harden auth", files=[AUTH_FILE])
        host.failing.add(1)
        assert _deliver(handler, _payload("opened")).status == 500


class TestOpened:
    def test_tracks_interesting_pr(self, handler, host, store, notifier):
        host.add_pull(1, title="Harden auth", files=[AUTH_FILE])

        assert _deliver(handler, _payload("opened")).status == 200

        row = store.get_pr_by_number(1)
        assert row.status == OPEN
        assert row.match_reason == "both"
        assert notifier.kinds() == ["new_pr"]

    def test_uninteresting_pr_not_tracked(self, handler, host, store):
        host.add_pull(1, title="Typo", files=[FileChange("README.md", "modified", 1, 1)])
        assert _deliver(handler, _payload("opened", title="Typo", branch="docs/typo")).status == 200
        assert store.list_prs() == []

    def test_idempotent(self, handler, host, store, notifier):
        host.add_pull(1, title="Harden auth", files=[AUTH_FILE])
        _deliver(handler, _payload("opened"))
        _deliver(handler, _payload("reopened"))

        assert len(store.list_prs()) == 1
        assert notifier.kinds() == ["new_pr"]

    def test_reopen_does_not_revive_dismissed(self, handler, host, tracker, store):
        host.add_pull(1, title="Harden auth", files=[AUTH_FILE])
        _deliver(handler, _payload("opened"))
        tracker.dismiss(1)

        _deliver(handler, _payload("reopened"))

        assert store.get_pr_by_number(1).status == DISMISSED


class TestSynchronize:
    def test_records_change_for_open_pr(self, handler, host, store, notifier):
        host.add_pull(1, title="Harden auth", files=[AUTH_FILE])
        _deliver(handler, _payload("opened"))

        response = _deliver(handler, _payload("synchronize", title="Harden auth v2", after="b" * 40))

        assert response.status == 200
        tracked = store.get_pr_by_number(1)
        assert store.latest_change(tracked.id).commit_sha == "b" * 40
        assert tracked.title == "Harden auth v2"
        assert notifier.kinds() == ["new_pr", "code_change"]

    def test_redelivery_of_same_head_is_not_recorded_twice(self, handler, host, store, notifier):
        host.add_pull(1, title="Harden auth", files=[AUTH_FILE])
        _deliver(handler, _payload("opened"))
        _deliver(handler, _payload("synchronize", after="b" * 40))
        _deliver(handler, _payload("synchronize", after="b" * 40))

        tracked = store.get_pr_by_number(1)
        assert len(store.list_changes(tracked.id)) == 1
        assert notifier.kinds().count("code_change") == 1

    def test_webhook_then_poller_records_one_change(self, handler, host, tracker, ownership, config, store, notifier):
        host.add_pull(1, title="Harden auth", files=[AUTH_FILE])
        _deliver(handler, _payload("opened"))
        host.push(1, "b" * 40)
        _deliver(handler, _payload("synchronize", after="b" * 40))

        Poller(host, tracker, ownership, config).run_cycle()

        tracked = store.get_pr_by_number(1)
        assert [c.commit_sha for c in store.list_changes(tracked.id)] == ["b" * 40]
        assert notifier.kinds().count("code_change") == 1

    def test_untracked_or_closed_pr_ignored(self, handler, host, tracker, store):
        assert _deliver(handler, _payload("synchronize", number=9, after="b" * 40)).status == 200

        host.add_pull(1, title="Harden auth", files=[AUTH_FILE])
        _deliver(handler, _payload("opened"))
        tracker.mark_closed(1, merged=False)
        _deliver(handler, _payload("synchronize", after="c" * 40))

        assert store.list_changes(store.get_pr_by_number(1).id) == []


class TestClosed:
    def test_merged(self, handler, host, store, notifier):
        host.add_pull(1, title="Harden auth", files=[AUTH_FILE])
        _deliver(handler, _payload("opened"))

        _deliver(handler, _payload("closed", merged=True))

        row = store.get_pr_by_number(1)
        assert row.status == MERGED
        assert row.merged_at is not None
        assert notifier.kinds() == ["new_pr", "merge"]

    def test_closed_twice_is_noop(self, handler, host, store, notifier):
        host.add_pull(1, title="Harden auth", files=[AUTH_FILE])
        _deliver(handler, _payload("opened"))
        _deliver(handler, _payload("closed"))
        before = store.get_pr_by_number(1)

        assert _deliver(handler, _payload("closed")).status == 200

        after = store.get_pr_by_number(1)
        assert after.status == CLOSED
        assert after.version == before.version

    def test_closed_after_poller_drift_sync(self, handler, host, tracker, ownership, config, store, notifier):
        host.add_pull(1, title="Harden auth", files=[AUTH_FILE])
        poller = Poller(host, tracker, ownership, config)
        poller.run_cycle()
        host.close(1, merged=True)
        poller.run_cycle()

        _deliver(handler, _payload("closed", merged=True))

        assert store.get_pr_by_number(1).status == MERGED
        assert notifier.kinds().count("merge") == 1

    def test_untracked_ignored(self, handler, store):
        assert _deliver(handler, _payload("closed", number=5)).status == 200
        assert store.list_prs() == []

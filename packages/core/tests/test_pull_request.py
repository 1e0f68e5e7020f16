"""Tests for the GitHub source host wrapper."""

from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
import requests
from github import GithubException

from prwatch_core.exceptions import TransientFetchError
from prwatch_core.gh.pull_request import SourceHost, paginate, pull_summary_from_payload

SHA = "a" * 40
SHA2 = "b" * 40


def _paginated(pages):
    """A PaginatedList stand-in whose get_page(n) returns pages[n]."""
    paginated = MagicMock()
    paginated.get_page.side_effect = lambda n: pages[n] if n < len(pages) else []
    return paginated


def _gh_pull(number=1, title="Fix auth bug", state="open", merged=False, reviewers=("bob",)):
    return SimpleNamespace(
        number=number,
        title=title,
        body=None,
        user=SimpleNamespace(login="alice"),
        html_url=f"https://github.com/owner/repo/pull/{number}",
        head=SimpleNamespace(ref="fix/auth", sha=SHA),
        base=SimpleNamespace(ref="main"),
        state=state,
        merged=merged,
        created_at=None,
        draft=False,
        requested_reviewers=[SimpleNamespace(login=r) for r in reviewers],
        additions=12,
        deletions=3,
        changed_files=2,
    )


def _gh_file(name, status="modified", additions=1, deletions=0):
    return SimpleNamespace(filename=name, status=status, additions=additions, deletions=deletions, patch="@@")


class TestPaginate:
    def test_stops_after_short_page(self):
        paginated = _paginated([[1, 2], [3, 4], [5]])
        assert list(paginate(paginated, page_size=2)) == [1, 2, 3, 4, 5]
        assert paginated.get_page.call_count == 3

    def test_full_last_page_needs_one_empty_fetch(self):
        paginated = _paginated([[1, 2], [3, 4]])
        assert list(paginate(paginated, page_size=2)) == [1, 2, 3, 4]
        assert paginated.get_page.call_count == 3

    def test_empty_listing(self):
        paginated = _paginated([])
        assert list(paginate(paginated, page_size=100)) == []
        assert paginated.get_page.call_count == 1


class TestSourceHost:
    def test_list_open_pulls_maps_fields(self, mock_repo):
        mock_repo.get_pulls.return_value = _paginated([[_gh_pull(1), _gh_pull(2, title=None)]])
        host = SourceHost(mock_repo, page_size=100)

        pulls = host.list_open_pulls()

        mock_repo.get_pulls.assert_called_once_with(state="open", sort="updated", direction="desc")
        assert [p.number for p in pulls] == [1, 2]
        assert pulls[0].author == "alice"
        assert pulls[0].branch == "fix/auth"
        assert pulls[0].head_sha == SHA
        assert pulls[0].body == ""
        assert pulls[0].requested_reviewers == ["bob"]
        assert pulls[1].title == ""

    def test_get_pull_state(self, mock_repo):
        mock_repo.get_pull.return_value = _gh_pull(7, state="closed", merged=True)
        state = SourceHost(mock_repo).get_pull_state(7)

        assert state.is_closed
        assert state.merged is True
        assert state.reviewers == ["bob"]

    def test_get_pull_details(self, mock_repo):
        mock_repo.get_pull.return_value = _gh_pull(7)
        details = SourceHost(mock_repo).get_pull_details(7)
        assert (details.additions, details.deletions, details.changed_files) == (12, 3, 2)
        assert details.base_branch == "main"

    def test_list_pull_files_paginates(self, mock_repo):
        mock_repo.get_pull.return_value.get_files.return_value = _paginated(
            [[_gh_file("a.py"), _gh_file("b.py")], [_gh_file("c.py", status="added", additions=5)]]
        )
        files = SourceHost(mock_repo, page_size=2).list_pull_files(3)

        assert [f.filename for f in files] == ["a.py", "b.py", "c.py"]
        assert files[2].status == "added"
        assert files[2].additions == 5

    def test_github_error_becomes_transient(self, mock_repo):
        mock_repo.get_pull.side_effect = GithubException(502, {"message": "Bad Gateway"}, None)
        with pytest.raises(TransientFetchError):
            SourceHost(mock_repo).get_pull_state(1)

    def test_transport_error_becomes_transient(self, mock_repo):
        mock_repo.get_pulls.side_effect = requests.ConnectionError("reset by peer")
        with pytest.raises(TransientFetchError):
            SourceHost(mock_repo).list_open_pulls()

    def test_get_file_content_decodes(self, mock_repo):
        mock_repo.get_contents.return_value = SimpleNamespace(decoded_content=b"- src/**\n")
        assert SourceHost(mock_repo).get_file_content("owners.yml") == "- src/**\n"
        mock_repo.get_contents.assert_called_once_with("owners.yml")

    def test_get_file_content_missing_returns_none(self, mock_repo):
        mock_repo.get_contents.side_effect = GithubException(404, {"message": "Not Found"}, None)
        assert SourceHost(mock_repo).get_file_content("owners.yml") is None

    def test_get_file_content_directory_returns_none(self, mock_repo):
        mock_repo.get_contents.return_value = [MagicMock(), MagicMock()]
        assert SourceHost(mock_repo).get_file_content("owners") is None

    def test_get_incremental_files_uses_compare(self, mock_repo):
        mock_repo.compare.return_value.files = [_gh_file("a.py"), _gh_file("b.py", status="removed")]

        result = SourceHost(mock_repo).get_incremental_files(SHA, SHA2)

        mock_repo.compare.assert_called_once_with(SHA, SHA2)
        assert [(f.filename, f.status) for f in result] == [("a.py", "modified"), ("b.py", "removed")]

    def test_get_incremental_files_error_becomes_transient(self, mock_repo):
        mock_repo.compare.side_effect = GithubException(404, {"message": "No common ancestor"}, None)
        with pytest.raises(TransientFetchError, match="compare"):
            SourceHost(mock_repo).get_incremental_files(SHA, SHA2)


class TestPullSummaryFromPayload:
    def test_parses_webhook_pull_request(self):
        pr = pull_summary_from_payload(
            {
                "number": 42,
                "title": "Rotate auth keys",
                "body": None,
                "user": {"login": "alice"},
                "html_url": "https://github.com/owner/repo/pull/42",
                "head": {"ref": "chore/keys", "sha": SHA},
                "state": "open",
                "created_at": "2024-05-01T09:30:00Z",
                "draft": True,
                "requested_reviewers": [{"login": "bob"}, {"login": "carol"}],
            }
        )
        assert pr.number == 42
        assert pr.body == ""
        assert pr.branch == "chore/keys"
        assert pr.head_sha == SHA
        assert pr.draft is True
        assert pr.requested_reviewers == ["bob", "carol"]
        assert pr.created_at.year == 2024
        assert pr.created_at.tzinfo is not None

    def test_tolerates_missing_optional_fields(self):
        pr = pull_summary_from_payload({"number": 1})
        assert pr.author == "unknown"
        assert pr.created_at is None
        assert pr.requested_reviewers == []

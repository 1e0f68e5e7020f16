"""Tests for the team ownership cache."""

import logging
import textwrap

import yaml

from prwatch_core.exceptions import TransientFetchError
from prwatch_core.ownership import CACHE_TTL_SECONDS, OwnershipCache, extract_paths

PLATFORM = {"name": "platform", "ownership_file": "teams/platform.yml"}
FRONTEND = {"name": "frontend", "ownership_file": "teams/frontend.yml"}


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class TestExtractPaths:
    def test_flat_list(self):
        assert extract_paths(["src/auth/**", "docs/*.md"]) == ["src/auth/**", "docs/*.md"]

    def test_nested_mapping_depth_first_in_order(self):
        doc = yaml.safe_load(
            textwrap.dedent(
                """
            backend:
              auth: src/auth/**
              ci:
                - .github/workflows/auth.yml
                - deploy/auth/*
            frontend:
              - web/login/**
            """
            )
        )
        assert extract_paths(doc) == [
            "src/auth/**",
            ".github/workflows/auth.yml",
            "deploy/auth/*",
            "web/login/**",
        ]

    def test_non_string_scalars_ignored(self):
        assert extract_paths({"paths": ["src/**", 42, None, True], "enabled": False}) == ["src/**"]

    def test_single_scalar_and_empty(self):
        assert extract_paths("src/**") == ["src/**"]
        assert extract_paths(None) == []
        assert extract_paths({}) == []


class TestOwnershipCache:
    def test_fetches_and_caches_within_ttl(self, mocker):
        fetch = mocker.Mock(return_value="- src/auth/**\n")
        clock = FakeClock()
        cache = OwnershipCache(fetch, clock=clock)

        assert cache.resolve_owned_paths(PLATFORM) == ["src/auth/**"]
        clock.now += CACHE_TTL_SECONDS - 1
        assert cache.resolve_owned_paths(PLATFORM) == ["src/auth/**"]

        fetch.assert_called_once_with("teams/platform.yml")

    def test_refetches_after_ttl(self, mocker):
        fetch = mocker.Mock(side_effect=["- src/auth/**\n", "- src/auth/**\n- src/session/**\n"])
        clock = FakeClock()
        cache = OwnershipCache(fetch, clock=clock)

        cache.resolve_owned_paths(PLATFORM)
        clock.now += CACHE_TTL_SECONDS
        assert cache.resolve_owned_paths(PLATFORM) == ["src/auth/**", "src/session/**"]
        assert fetch.call_count == 2

    def test_missing_file_returns_empty_and_is_not_cached(self, mocker, caplog):
        fetch = mocker.Mock(side_effect=[None, "- src/auth/**\n"])
        cache = OwnershipCache(fetch, clock=FakeClock())

        with caplog.at_level(logging.WARNING, logger="prwatch_core.ownership"):
            assert cache.resolve_owned_paths(PLATFORM) == []
        assert "platform" in caplog.text

        # retried immediately, no TTL wait
        assert cache.resolve_owned_paths(PLATFORM) == ["src/auth/**"]

    def test_transport_error_returns_empty(self, mocker):
        fetch = mocker.Mock(side_effect=TransientFetchError("timeout"))
        cache = OwnershipCache(fetch, clock=FakeClock())
        assert cache.resolve_owned_paths(PLATFORM) == []

    def test_invalid_yaml_returns_empty(self, mocker):
        fetch = mocker.Mock(return_value="paths: [unclosed\n")
        cache = OwnershipCache(fetch, clock=FakeClock())
        assert cache.resolve_owned_paths(PLATFORM) == []

    def test_returned_list_is_a_copy(self, mocker):
        cache = OwnershipCache(mocker.Mock(return_value="- src/**\n"), clock=FakeClock())
        cache.resolve_owned_paths(PLATFORM).append("junk")
        assert cache.resolve_owned_paths(PLATFORM) == ["src/**"]

    def test_resolve_all_keeps_team_order_and_isolates_failures(self):
        contents = {"teams/frontend.yml": "- web/**\n"}
        cache = OwnershipCache(contents.get, clock=FakeClock())

        resolved = cache.resolve_all([FRONTEND, PLATFORM])

        assert list(resolved) == ["frontend", "platform"]
        assert resolved["frontend"] == ["web/**"]
        assert resolved["platform"] == []

    def test_resolve_all_without_teams(self, mocker):
        fetch = mocker.Mock()
        assert OwnershipCache(fetch).resolve_all([]) == {}
        fetch.assert_not_called()

    def test_invalidate_forces_refetch(self, mocker):
        fetch = mocker.Mock(return_value="- src/**\n")
        cache = OwnershipCache(fetch, clock=FakeClock())
        cache.resolve_owned_paths(PLATFORM)
        cache.invalidate("platform")
        cache.resolve_owned_paths(PLATFORM)
        assert fetch.call_count == 2

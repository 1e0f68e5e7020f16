"""Team ownership patterns, fetched from YAML files in the watched repository.

Each configured team points at an ownership file on the default branch. The
file's shape is free-form: every string leaf, at any depth, is read as a
glob pattern. For example all three of these declare the same two patterns::

    - src/auth/**
    - .github/workflows/auth.yml

    paths: [src/auth/**, .github/workflows/auth.yml]

    backend:
      auth: src/auth/**
      ci:
        - .github/workflows/auth.yml

Results are cached per team for an hour. Failed fetches are not cached.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Mapping
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass

import yaml

from prwatch_core.exceptions import OwnershipFetchError, TransientFetchError

logger = logging.getLogger(__name__)

CACHE_TTL_SECONDS = 60 * 60
_MAX_FETCH_WORKERS = 4


def extract_paths(node) -> list[str]:
    """Collect every string leaf of a parsed YAML document, depth-first, in encounter order."""
    if isinstance(node, str):
        return [node]
    if isinstance(node, Mapping):
        children = node.values()
    elif isinstance(node, (list, tuple)):
        children = node
    else:
        # numbers, booleans, null
        return []
    paths: list[str] = []
    for child in children:
        paths.extend(extract_paths(child))
    return paths


@dataclass
class _Entry:
    paths: list[str]
    fetched_at: float


class OwnershipCache:
    """TTL cache of team name -> owned path patterns.

    ``fetch_content`` takes a repository path and returns its text on the
    default branch, or None when the file is missing or unreachable.
    Concurrent refreshes of the same team are not coordinated: both compute
    the same value and the last write wins.
    """

    def __init__(
        self,
        fetch_content: Callable[[str], str | None],
        ttl: float = CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._fetch_content = fetch_content
        self._ttl = ttl
        self._clock = clock
        self._entries: dict[str, _Entry] = {}
        self._lock = threading.Lock()  # guards the dict only, never held across a fetch

    def resolve_owned_paths(self, team: dict) -> list[str]:
        name = team["name"]
        with self._lock:
            entry = self._entries.get(name)
        if entry is not None and self._clock() - entry.fetched_at < self._ttl:
            return list(entry.paths)

        try:
            paths = self._load(name, team["ownership_file"])
        except OwnershipFetchError as e:
            logger.warning("%s", e)
            return []

        with self._lock:
            self._entries[name] = _Entry(paths=paths, fetched_at=self._clock())
        logger.debug("Loaded %d ownership pattern(s) for team %s", len(paths), name)
        return list(paths)

    def resolve_all(self, teams: list[dict]) -> dict[str, list[str]]:
        """Resolve every team independently. The result keeps the configured team order."""
        if not teams:
            return {}
        workers = min(len(teams), _MAX_FETCH_WORKERS)
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="prwatch-ownership") as pool:
            resolved = list(pool.map(self.resolve_owned_paths, teams))
        return {team["name"]: paths for team, paths in zip(teams, resolved)}

    def invalidate(self, name: str | None = None) -> None:
        with self._lock:
            if name is None:
                self._entries.clear()
            else:
                self._entries.pop(name, None)

    def _load(self, name: str, path: str) -> list[str]:
        try:
            content = self._fetch_content(path)
        except TransientFetchError as e:
            raise OwnershipFetchError(name, path, str(e)) from e
        if content is None:
            raise OwnershipFetchError(name, path, "file not found or unreachable")
        try:
            return extract_paths(yaml.safe_load(content))
        except yaml.YAMLError as e:
            raise OwnershipFetchError(name, path, f"invalid YAML: {e}") from e

"""GitHub token lookup for the watcher.

Sources, first hit wins:
  1. GITHUB_TOKEN
  2. the GitHub CLI session (`gh auth token`), for local runs after `gh auth login`
"""

from __future__ import annotations

import logging
import os
import subprocess

logger = logging.getLogger(__name__)

_GH_TIMEOUT = 5  # seconds


def _token_from_gh_cli() -> str | None:
    try:
        result = subprocess.run(["gh", "auth", "token"], capture_output=True, text=True, timeout=_GH_TIMEOUT)
    except (FileNotFoundError, subprocess.TimeoutExpired) as e:
        logger.debug("gh CLI token lookup unavailable: %s", e)
        return None
    if result.returncode != 0:
        return None
    return result.stdout.strip() or None


def resolve_github_token() -> str | None:
    """Return a GitHub token, or None when neither source provides one."""
    token = os.environ.get("GITHUB_TOKEN")
    if token:
        return token
    token = _token_from_gh_cli()
    if token:
        logger.debug("Using GitHub token from the gh CLI session")
    return token

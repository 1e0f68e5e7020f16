import os
import re
from pathlib import Path
from typing import Optional

import yaml

from prwatch_core.exceptions import ConfigError

DEFAULT_POLL_INTERVAL = 120  # seconds

DEFAULT_NOTIFICATIONS: dict = {
    "on_new_pr": True,
    "on_code_change": True,
    "on_merge": True,
    "notifier": "console",  # "console" | "none"
}

DEFAULT_CONFIG: dict = {
    "repo": None,  # owner/name, required
    "keywords": [],  # case-insensitive substrings, reported in this order
    "teams": [],  # [{name, ownership_file}], evaluated in this order
    "notifications": DEFAULT_NOTIFICATIONS,
    "poll_interval": DEFAULT_POLL_INTERVAL,
    "github_timeout": 15,
    "page_size": 100,
    "store": "sqlite",
    "store_path": ".prwatch.db",
    "webhook_host": "127.0.0.1",
    "webhook_port": 8787,
}

NOTIFIERS = ("console", "none")

_REPO_RE = re.compile(r"^[\w.-]+/[\w.-]+$")


def load_config(config_path: str = "prwatch.yml", cli_overrides: Optional[dict] = None) -> dict:
    """
    Load configuration by merging (in order of precedence):
      1. Built-in defaults
      2. prwatch.yml in the current directory
      3. CLI argument overrides
      4. PRWATCH_POLL_INTERVAL for the poll interval
    """
    config = {
        **DEFAULT_CONFIG,
        "keywords": list(DEFAULT_CONFIG["keywords"]),
        "teams": list(DEFAULT_CONFIG["teams"]),
        "notifications": dict(DEFAULT_NOTIFICATIONS),
    }

    path = Path(config_path)
    if path.exists():
        with open(path) as f:
            file_config = yaml.safe_load(f) or {}
        notifications = file_config.pop("notifications", None) or {}
        config.update(file_config)
        config["notifications"].update(notifications)

    if cli_overrides:
        for key, value in cli_overrides.items():
            if value is not None:
                config[key] = value

    interval = os.environ.get("PRWATCH_POLL_INTERVAL")
    if interval:
        try:
            config["poll_interval"] = float(interval)
        except ValueError:
            raise ConfigError(f"PRWATCH_POLL_INTERVAL must be a number of seconds, got {interval!r}")

    # Resolve credentials from environment variables
    config["github_token"] = os.environ.get("GITHUB_TOKEN")
    config["webhook_secret"] = os.environ.get("WEBHOOK_SECRET")

    return config


def validate_config(config: dict) -> dict:
    """Raise ConfigError unless the config can drive a watcher. Returns the config unchanged."""
    repo = config.get("repo")
    if not repo:
        raise ConfigError("repo is required (owner/name)")
    if not _REPO_RE.match(str(repo)):
        raise ConfigError(f"repo must look like owner/name, got {repo!r}")

    if not isinstance(config.get("keywords") or [], list):
        raise ConfigError("keywords must be a list")

    for i, team in enumerate(config.get("teams") or []):
        if not isinstance(team, dict) or not team.get("name") or not team.get("ownership_file"):
            raise ConfigError(f"teams[{i}] needs both 'name' and 'ownership_file'")

    notifier = (config.get("notifications") or {}).get("notifier", "console")
    if notifier not in NOTIFIERS:
        raise ConfigError(f"notifications.notifier must be one of {', '.join(NOTIFIERS)}, got {notifier!r}")

    try:
        if float(config.get("poll_interval", DEFAULT_POLL_INTERVAL)) <= 0:
            raise ConfigError("poll_interval must be positive")
    except (TypeError, ValueError):
        raise ConfigError(f"poll_interval must be a number, got {config.get('poll_interval')!r}")

    return config


"""CLI entry point for prwatch.

Commands:
  serve    run the poller and the webhook server until interrupted
  poll     run a single reconciliation cycle and print what it did
  prs      list tracked pull requests
  show     one tracked PR with its change history
  dismiss  stop following a tracked PR
  retrack  resume following a dismissed PR
  stats    tracked PR counts by status and match reason
"""

from __future__ import annotations

import importlib.metadata
import logging

import click
from rich.console import Console
from rich.logging import RichHandler

from prwatch_cli.commands.poll import poll_cmd
from prwatch_cli.commands.prs import dismiss_cmd, prs_cmd, retrack_cmd, show_cmd
from prwatch_cli.commands.serve import serve_cmd
from prwatch_cli.commands.stats import stats_cmd

console = Console()


def _build_store(config: dict):
    """Instantiate the configured store from prwatch.yml settings.

      store: sqlite → SQLiteStore at store_path (default .prwatch.db)
      store: memory → MemoryStore (nothing survives a restart)

    Store selection is a CLI concern; the core only sees a BaseStore.
    """
    store_type = config.get("store", "sqlite")

    if store_type == "sqlite":
        from prwatch_store.sqlite import SQLiteStore

        return SQLiteStore(db_path=config.get("store_path", ".prwatch.db"))

    if store_type == "memory":
        from prwatch_store.memory import MemoryStore

        return MemoryStore()

    raise click.UsageError(f"Unknown store {store_type!r} in config. Use 'sqlite' or 'memory'.")


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )
    # PyGithub and urllib3 are chatty at DEBUG
    logging.getLogger("github").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)


@click.group()
@click.version_option(
    version=importlib.metadata.version("prwatch"),
    prog_name="prwatch",
)
@click.option(
    "--config",
    "config_path",
    default="prwatch.yml",
    show_default=True,
    help="Path to the configuration file.",
    envvar="PRWATCH_CONFIG",
)
@click.option("--repo", default=None, help="Repository to watch (owner/name). Overrides config file.")
@click.option("--verbose", "-v", is_flag=True, help="Log debug output.")
@click.pass_context
def main(ctx: click.Context, config_path: str, repo: str | None, verbose: bool):
    """Watch a GitHub repository for pull requests your team cares about."""
    from prwatch_cli.auth import resolve_github_token
    from prwatch_core.config import load_config
    from prwatch_core.exceptions import ConfigError

    _configure_logging(verbose)
    ctx.ensure_object(dict)

    try:
        config = load_config(config_path, cli_overrides={"repo": repo})
    except ConfigError as e:
        raise click.UsageError(str(e))

    # Resolve token early so all subcommands share the same resolution.
    token = resolve_github_token()
    if token:
        config["github_token"] = token

    store = _build_store(config)
    ctx.obj["store"] = store
    ctx.obj["config"] = config
    ctx.call_on_close(store.close)


main.add_command(serve_cmd)
main.add_command(poll_cmd)
main.add_command(prs_cmd)
main.add_command(show_cmd)
main.add_command(dismiss_cmd)
main.add_command(retrack_cmd)
main.add_command(stats_cmd)

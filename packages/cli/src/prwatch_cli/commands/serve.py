"""Serve command: poll and receive webhooks until interrupted."""

from __future__ import annotations

import threading

import click
from rich.console import Console

from prwatch_core.config import validate_config
from prwatch_core.exceptions import ConfigError, TransientFetchError
from prwatch_core.gh.pull_request import SourceHost
from prwatch_core.service import WatchService

console = Console()


def build_service(ctx: click.Context) -> WatchService:
    """Validate the config, connect to GitHub and wire a WatchService. Shared with `poll`."""
    config = ctx.obj["config"]
    try:
        validate_config(config)
    except ConfigError as e:
        raise click.UsageError(str(e))

    token = config.get("github_token")
    if not token:
        raise click.UsageError(
            "No GitHub token found. Set GITHUB_TOKEN or run `gh auth login` first.\n"
            "Create a token at https://github.com/settings/tokens"
        )

    try:
        host = SourceHost.connect(
            config["repo"],
            token,
            timeout=config.get("github_timeout", 15),
            page_size=config.get("page_size", 100),
        )
    except TransientFetchError as e:
        raise click.ClickException(f"Could not open {config['repo']}: {e}")

    return WatchService(config, ctx.obj["store"], host)


def _wait_for_interrupt() -> None:
    stop = threading.Event()
    while not stop.wait(1.0):
        pass


@click.command("serve")
@click.option("--host", "webhook_host", default=None, help="Address for the webhook server. Overrides config file.")
@click.option("--port", "webhook_port", type=int, default=None, help="Port for the webhook server. Overrides config file.")
@click.option("--interval", type=float, default=None, help="Seconds between poll cycles. Overrides config file.")
@click.option("--no-webhook", is_flag=True, help="Only poll; do not start the HTTP server.")
@click.pass_context
def serve_cmd(ctx, webhook_host: str | None, webhook_port: int | None, interval: float | None, no_webhook: bool):
    """Watch the configured repository until Ctrl-C.

    Runs a reconciliation cycle right away and then every poll interval. Unless
    --no-webhook is given, also serves GitHub pull_request webhooks on
    POST /webhook so changes are picked up without waiting for the next cycle.

    \b
    Environment variables:
      GITHUB_TOKEN     GitHub token (or use gh CLI)
      WEBHOOK_SECRET   Webhook secret; signatures are not checked when unset
    """
    config = ctx.obj["config"]
    for key, value in (("webhook_host", webhook_host), ("webhook_port", webhook_port), ("poll_interval", interval)):
        if value is not None:
            config[key] = value

    service = build_service(ctx)
    service.start(serve_http=not no_webhook)

    console.print(f"[bold]Watching [cyan]{config['repo']}[/cyan][/bold] every {service.poller.interval:g}s")
    if service.server is not None:
        host, port = service.server.address
        console.print(f"Webhook endpoint: http://{host}:{port}/webhook")
    console.print("[dim]Press Ctrl-C to stop.[/dim]")

    try:
        _wait_for_interrupt()
    except KeyboardInterrupt:
        console.print("\nShutting down...")
    finally:
        service.stop()

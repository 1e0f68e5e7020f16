"""Poll command: one reconciliation cycle, in the foreground."""

from __future__ import annotations

from dataclasses import fields

import click
from rich.console import Console
from rich.table import Table

from prwatch_cli.commands.serve import build_service

console = Console()


@click.command("poll")
@click.pass_context
def poll_cmd(ctx):
    """Run a single poll cycle against GitHub and report what changed.

    Notifications are sent exactly as `prwatch serve` would send them.
    """
    service = build_service(ctx)
    report = service.poller.run_cycle()

    if report.aborted:
        raise click.ClickException("Could not list open pull requests; see the log above.")

    table = Table(title=f"Poll cycle: {ctx.obj['config']['repo']}", show_header=True, header_style="bold cyan")
    table.add_column("Step")
    table.add_column("Count", justify="right")
    for f in fields(report):
        if f.name in ("started_at", "skipped", "aborted"):
            continue
        table.add_row(f.name.replace("_", " "), str(getattr(report, f.name)))
    console.print(table)

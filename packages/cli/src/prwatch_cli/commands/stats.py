"""Stats command: what is being tracked, grouped by status and match reason."""

from __future__ import annotations

from collections import Counter

import click
from rich.console import Console
from rich.table import Table

from prwatch_store.models import MATCH_REASONS, STATUSES

console = Console()


@click.command("stats")
@click.pass_context
def stats_cmd(ctx):
    """Show tracked PR counts by status and by why they matched."""
    store = ctx.obj["store"]
    counts = store.count_by_status()
    total = sum(counts.values())
    if not total:
        console.print("[yellow]No tracked pull requests yet.[/yellow]")
        return

    repo = ctx.obj["config"].get("repo") or "repository"
    console.print(f"\n[bold]Tracked PRs for [cyan]{repo}[/cyan][/bold]")
    console.print(f"  Total: {total}")

    status_table = Table(title="By Status", show_header=True)
    status_table.add_column("Status", style="bold")
    status_table.add_column("Count", justify="right")
    status_table.add_column("% of total", justify="right")
    for status in STATUSES:
        count = counts.get(status, 0)
        status_table.add_row(status, str(count), f"{count / total * 100:.1f}%")
    console.print(status_table)

    reasons = Counter(pr.match_reason for pr in store.list_prs())
    reason_table = Table(title="By Match Reason", show_header=True)
    reason_table.add_column("Reason", style="bold")
    reason_table.add_column("Count", justify="right")
    for reason in MATCH_REASONS:
        if reasons.get(reason):
            reason_table.add_row(reason, str(reasons[reason]))
    console.print(reason_table)

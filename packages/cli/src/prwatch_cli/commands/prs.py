"""Prs / show / dismiss / retrack commands: inspect and curate tracked PRs."""

from __future__ import annotations

import click
from rich.console import Console
from rich.table import Table

from prwatch_core.notifiers.dispatcher import Dispatcher
from prwatch_core.notifiers.noop import NoOpNotifier
from prwatch_core.tracker import Tracker
from prwatch_store.errors import InvalidTransitionError, NotFoundError
from prwatch_store.models import CLOSED, DISMISSED, MERGED, OPEN, STATUSES

console = Console()

_STATUS_STYLE = {
    OPEN: "green",
    MERGED: "magenta",
    CLOSED: "red",
    DISMISSED: "dim",
}


def _fmt_time(value) -> str:
    return value.strftime("%Y-%m-%d %H:%M") if value else "-"


def _styled(status: str) -> str:
    style = _STATUS_STYLE.get(status, "white")
    return f"[{style}]{status}[/{style}]"


@click.command("prs")
@click.option(
    "--status",
    type=click.Choice([*STATUSES, "all"]),
    default=OPEN,
    show_default=True,
    help="Only show PRs in this status.",
)
@click.option("--limit", default=20, show_default=True, help="Maximum number of PRs to show.")
@click.pass_context
def prs_cmd(ctx, status: str, limit: int):
    """List tracked pull requests, most recently updated first."""
    store = ctx.obj["store"]
    prs = store.list_prs(status=None if status == "all" else status)
    if not prs:
        console.print("[yellow]No tracked pull requests found.[/yellow]")
        return

    prs = sorted(prs, key=lambda p: p.updated_at, reverse=True)[:limit]

    table = Table(title=f"Tracked PRs ({status})", show_header=True, header_style="bold cyan")
    table.add_column("PR", style="bold", width=6)
    table.add_column("Title", max_width=40)
    table.add_column("Author", max_width=16)
    table.add_column("Status", width=10)
    table.add_column("Match", width=10)
    table.add_column("Commits", justify="right", width=8)
    table.add_column("Updated", width=17)

    for pr in prs:
        table.add_row(
            f"#{pr.pr_number}",
            pr.title[:40],
            pr.author,
            _styled(pr.status),
            pr.match_reason,
            str(len(store.list_changes(pr.id))),
            _fmt_time(pr.updated_at),
        )

    console.print(table)


@click.command("show")
@click.argument("pr_number", type=int)
@click.pass_context
def show_cmd(ctx, pr_number: int):
    """Show a tracked PR, why it matched, and every recorded change."""
    store = ctx.obj["store"]
    pr = store.get_pr_by_number(pr_number)
    if pr is None:
        raise click.ClickException(f"PR #{pr_number} is not tracked.")

    draft = " [dim](draft)[/dim]" if pr.is_draft else ""
    console.print(f"\n[bold]#{pr.pr_number} {pr.title}[/bold]{draft}")
    console.print(f"  {pr.url}")
    console.print(f"  Author:    {pr.author}")
    console.print(f"  Branch:    {pr.branch}")
    console.print(f"  Status:    {_styled(pr.status)}")
    console.print(f"  Reviewers: {', '.join(pr.reviewers) or '-'}")
    console.print(f"  Tracked:   {_fmt_time(pr.created_at)}")
    if pr.merged_at:
        console.print(f"  Merged:    {_fmt_time(pr.merged_at)}")

    console.print(f"\n[bold]Matched on {pr.match_reason}[/bold]")
    if pr.match_details.keywords:
        console.print(f"  Keywords: {', '.join(pr.match_details.keywords)}")
    for tm in pr.match_details.teams:
        console.print(f"  Team {tm.team}: {', '.join(tm.files)}")

    changes = list(reversed(store.list_changes(pr.id)))
    if not changes:
        console.print("\n[dim]No changes recorded yet.[/dim]")
        return

    table = Table(title="Changes", show_header=True, header_style="bold cyan")
    table.add_column("SHA", width=8)
    table.add_column("Stats", width=22)
    table.add_column("Summary")
    table.add_column("Detected", width=17)
    for change in changes:
        table.add_row(change.commit_sha[:7], change.diff_stats, change.summary, _fmt_time(change.created_at))
    console.print(table)


def _transition(ctx, pr_number: int, action: str) -> None:
    # Dismiss and retrack emit no events, so nothing needs delivering here.
    tracker = Tracker(ctx.obj["store"], Dispatcher(NoOpNotifier()))
    try:
        pr = tracker.dismiss(pr_number) if action == "dismiss" else tracker.retrack(pr_number)
    except NotFoundError:
        raise click.ClickException(f"PR #{pr_number} is not tracked.")
    except InvalidTransitionError as e:
        raise click.ClickException(str(e))
    console.print(f"PR #{pr.pr_number} is now {_styled(pr.status)}.")


@click.command("dismiss")
@click.argument("pr_number", type=int)
@click.pass_context
def dismiss_cmd(ctx, pr_number: int):
    """Stop following a tracked PR. It is kept and can be re-tracked later."""
    _transition(ctx, pr_number, "dismiss")


@click.command("retrack")
@click.argument("pr_number", type=int)
@click.pass_context
def retrack_cmd(ctx, pr_number: int):
    """Resume following a dismissed PR."""
    _transition(ctx, pr_number, "retrack")

"""
Forksync CLI - Status command.

Shows every tracked fork grouped by host with its ahead/behind counts.
"""

import typer
from rich.console import Console
from rich.table import Table

from forksync.cli import common
from forksync.cli.common import STATUS_STYLES, format_count, format_time
from forksync.cli.errors import handle_errors
from forksync.core.models import SyncStatus
from forksync.core.services import StatusService

console = Console()


def status(
    host: str | None = typer.Option(None, "--host", help="Only this host label"),
) -> None:
    """
    Show the sync status of every fork, grouped by host.

    Forks that were never synced show as unknown.

    Examples:
        forksync status
        forksync status --host gh
    """
    with handle_errors():
        view = StatusService(common.get_context()).status(host)

    if not view.hosts:
        console.print("[dim]No hosts registered. Run [bold]forksync host add[/bold].[/dim]")
        return

    for group in view.hosts:
        table = Table(title=f"{group.host.label} ({group.host.domain})")
        table.add_column("Fork", style="cyan")
        table.add_column("Upstream")
        table.add_column("Status")
        table.add_column("Ahead", justify="right")
        table.add_column("Behind", justify="right")
        table.add_column("Strategy")
        table.add_column("Last sync")
        for fork in group.forks:
            state = fork.state
            table.add_row(
                fork.repo.full_name,
                fork.repo.parent_full_name or "?",
                STATUS_STYLES[fork.status],
                format_count(state.ahead),
                format_count(state.behind),
                state.strategy.value if state.strategy else "[dim]default[/dim]",
                format_time(state.last_synced_at),
            )
        if not group.forks:
            table.add_row("[dim]no forks[/dim]", "", "", "", "", "", "")
        console.print(table)

    counts = view.counts
    parts = [f"{counts[s]} {s.value}" for s in SyncStatus if counts[s]]
    console.print(f"{view.total} fork(s): " + (", ".join(parts) if parts else "none"))


__all__ = ["status"]

"""
Forksync CLI - History command.

Lists sync history entries newest first.
"""

import typer
from rich.console import Console
from rich.table import Table

from forksync.cli import common
from forksync.cli.common import OUTCOME_STYLES, format_count, format_time, short_sha
from forksync.cli.errors import handle_errors
from forksync.core.services import StatusService
from forksync.core.views import DEFAULT_LIMIT

console = Console()


def history(
    repo_ref: str | None = typer.Argument(
        None, metavar="[REPO]", help="id, owner/name or label:owner/name"
    ),
    limit: int = typer.Option(DEFAULT_LIMIT, "--limit", "-l", help="Maximum entries to show"),
) -> None:
    """
    Show recent sync history, newest first.

    Examples:
        forksync history
        forksync history alice/widgets --limit 5
    """
    with handle_errors():
        service = StatusService(common.get_context())
        records = service.history(repo_ref, limit)
        names = service.repo_names()

    if not records:
        console.print("[dim]No sync history yet.[/dim]")
        return

    table = Table(title="History")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Started")
    table.add_column("Repository", style="cyan")
    table.add_column("Strategy")
    table.add_column("Outcome")
    table.add_column("Phase")
    table.add_column("Ahead", justify="right")
    table.add_column("Behind", justify="right")
    table.add_column("Head")
    table.add_column("Message", overflow="fold")
    for record in records:
        strategy = record.strategy.value + (" (dry run)" if record.dry_run else "")
        head = short_sha(record.after_sha or record.before_sha)
        table.add_row(
            str(record.seq),
            format_time(record.started_at),
            names.get(record.repo_id, f"#{record.repo_id} (removed)"),
            strategy,
            OUTCOME_STYLES[record.outcome],
            record.phase.value,
            format_count(record.ahead),
            format_count(record.behind),
            head,
            record.message,
        )
    console.print(table)


__all__ = ["history"]

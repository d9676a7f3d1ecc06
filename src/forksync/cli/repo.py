"""
Forksync CLI - Repo commands.

List known repositories and set a fork's merge strategy.
"""

import typer
from rich.console import Console
from rich.table import Table

from forksync.cli import common
from forksync.cli.errors import ExitCode, handle_errors, print_error
from forksync.core.models import MergeStrategy
from forksync.core.services import StatusService, SyncService

console = Console()
app = typer.Typer(
    name="repo",
    help="List repositories and set per-repo options",
    no_args_is_help=True,
)


@app.command(name="list")
def list_repos(
    host: str | None = typer.Option(None, "--host", help="Only this host label"),
    forks: bool = typer.Option(False, "--forks", help="Only forks"),
    pattern: str | None = typer.Option(
        None, "--pattern", help="Glob over owner/name, e.g. 'acme/*'"
    ),
) -> None:
    """
    List repositories known to forksync.

    Examples:
        forksync repo list
        forksync repo list --forks --host gh
        forksync repo list --pattern 'acme/*'
    """
    with handle_errors():
        service = StatusService(common.get_context())
        repos = service.repos(host, forks_only=forks, pattern=pattern)
        hosts = {h.id: h.label for h in service.ctx.store.list_hosts()}

    if not repos:
        console.print("[dim]No repositories. Run [bold]forksync scan[/bold].[/dim]")
        return

    table = Table(title=f"Repositories ({len(repos)})")
    table.add_column("ID", justify="right", style="dim")
    table.add_column("Host", style="cyan")
    table.add_column("Repository")
    table.add_column("Fork of")
    table.add_column("Branch")
    table.add_column("Local path", overflow="fold")
    for repo in repos:
        table.add_row(
            str(repo.id),
            hosts.get(repo.host_id, "?"),
            repo.full_name,
            repo.parent_full_name or ("?" if repo.is_fork else ""),
            repo.default_branch,
            str(repo.local_path) if repo.local_path else "[dim]-[/dim]",
        )
    console.print(table)


@app.command()
def strategy(
    repo_ref: str = typer.Argument(..., metavar="REPO", help="id, owner/name or label:owner/name"),
    value: str = typer.Argument(
        ..., metavar="STRATEGY", help="ff, merge, rebase, or 'default' to clear"
    ),
) -> None:
    """
    Set the merge strategy used when syncing one fork.

    A --strategy given to sync still takes precedence.

    Examples:
        forksync repo strategy alice/widgets rebase
        forksync repo strategy gh:alice/widgets default
    """
    chosen: MergeStrategy | None
    if value.lower() == "default":
        chosen = None
    else:
        try:
            chosen = MergeStrategy(value.lower())
        except ValueError:
            print_error(
                f"Unknown strategy '{value}'",
                solution="use one of: ff, merge, rebase, default",
            )
            raise typer.Exit(ExitCode.USER_ERROR)

    with handle_errors():
        repo = SyncService(common.get_context()).set_strategy(repo_ref, chosen)

    label = chosen.value if chosen else "the configured default"
    console.print(f"[green]✓[/green] {repo.full_name} will sync with {label}")


__all__ = ["app"]

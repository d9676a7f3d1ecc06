"""
Forksync CLI - Scan command.

Discovers repositories on registered hosts and on disk, reconciles the
two views and stores the result.
"""

from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from forksync.cli import common
from forksync.cli.errors import handle_errors
from forksync.core.services import ScanScope, ScanService

console = Console()


def scan(
    paths: list[Path] | None = typer.Option(
        None,
        "--path",
        "-p",
        help="Directory to search for working copies (repeatable; overrides scan_paths)",
        file_okay=False,
    ),
    hosts: list[str] | None = typer.Option(
        None,
        "--host",
        help="Only scan this host label (repeatable)",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="List local-only repositories and duplicate working copies",
    ),
) -> None:
    """
    Discover forks and reconcile them with local working copies.

    Running scan twice in a row without changes leaves the store untouched.

    Examples:
        forksync scan
        forksync scan --host gh
        forksync scan --path ~/src --path ~/work
    """
    scope = ScanScope(host_labels=tuple(hosts or ()), paths=tuple(paths or ()))

    with handle_errors():
        report = ScanService(common.get_context()).scan(scope)

    result = report.result
    applied = report.applied

    table = Table(title="Scan", show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value", justify="right")
    table.add_row("Hosts", str(len(report.hosts)))
    table.add_row("Remote repositories", str(report.remote_count))
    table.add_row("Local working copies", str(report.local_count))
    table.add_row("Matched", str(len(result.matched)))
    table.add_row("Remote only", str(len(result.remote_only)))
    table.add_row("Local only", str(len(result.local_only)))
    table.add_row("Duplicates", str(len(result.conflicts)))
    console.print(table)

    if applied.mutated:
        console.print(
            f"[green]✓[/green] {applied.created} created, {applied.updated} updated, "
            f"{applied.parents_created} parent record(s) added"
        )
    else:
        console.print("[green]✓[/green] Already up to date")

    if applied.skipped_local:
        console.print(
            f"[yellow]⚠[/yellow]  {len(applied.skipped_local)} local working copies "
            "belong to no registered host"
        )

    if verbose:
        for local in result.local_only:
            origin = local.remote_url or "no origin"
            console.print(f"  [dim]local only:[/dim] {local.path} ({origin})")
        for dup in result.conflicts:
            console.print(f"  [dim]duplicate:[/dim] {dup.key} kept {dup.kept}")
            for path in dup.ignored:
                console.print(f"    [dim]ignored {path}[/dim]")


__all__ = ["scan"]

"""
Forksync CLI - Config command.

Create and inspect the layered JSON configuration.
"""

import typer
from rich.console import Console
from rich.syntax import Syntax

from forksync.cli.errors import handle_errors
from forksync.core.config import ForkSyncConfig, get_user_config_path, load_config, save_user_config

console = Console()
app = typer.Typer(
    name="config",
    help="Create and inspect configuration",
    no_args_is_help=True,
)


@app.command()
def init(
    force: bool = typer.Option(
        False,
        "--force",
        "-f",
        help="Overwrite an existing user config file",
    ),
) -> None:
    """
    Write a user config file with the default settings.

    Examples:
        forksync config init
        forksync config init --force
    """
    path = get_user_config_path()
    if path.exists() and not force:
        console.print(f"[yellow]Config already exists:[/yellow] {path}")
        console.print("[dim]Use --force to overwrite it.[/dim]")
        raise typer.Exit(1)

    with handle_errors():
        save_user_config(ForkSyncConfig(), path)
    console.print(f"[green]✓[/green] Wrote {path}")


@app.command()
def show() -> None:
    """
    Print the effective configuration after all layers are merged.

    Precedence: FORKSYNC_* environment > .forksync.json > user config > defaults.
    """
    with handle_errors():
        config = load_config()
    console.print(Syntax(config.model_dump_json(indent=2), "json"))
    console.print(f"[dim]database: {config.db_path}[/dim]")
    console.print(f"[dim]clone root: {config.resolved_clone_root}[/dim]")


__all__ = ["app"]

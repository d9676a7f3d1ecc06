"""
Forksync CLI - Main application entry point.

This module sets up the Typer CLI application with all subcommands.
"""

import logging

import typer
from rich.console import Console

from forksync import __version__
from forksync.cli import config, history, host, repo, scan, status, sync

# Help panel names for command grouping
PANEL_SYNC = "Keep Forks in Sync"
PANEL_SETUP = "Set Up Accounts"
PANEL_INSTALL = "Manage Your Installation"

app = typer.Typer(
    name="forksync",
    help="Keep your forks in sync with their upstream repositories",
    no_args_is_help=True,
    add_completion=True,
    context_settings={"help_option_names": ["--help", "-h"]},
)

console = Console()


@app.callback()
def main(
    ctx: typer.Context,
    debug: bool = typer.Option(
        False,
        "--debug",
        help="Enable debug output with detailed logging",
    ),
) -> None:
    """
    Forksync - discover your forks and bring them up to date.

    Quick Start:
        1. forksync host add gh --kind github   # Register an account
        2. forksync scan                        # Discover forks and clones
        3. forksync sync all --dry-run          # See what is behind
        4. forksync sync all                    # Fast-forward everything

    Documentation:
        forksync --help                         # This message
        forksync <command> --help               # Help for specific command
    """
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s [%(threadName)s] %(message)s",
    )

    # Store debug flag in context for subcommands
    ctx.obj = {"debug": debug}


# =============================================================================
# Keep Forks in Sync
# =============================================================================

app.command(name="scan", rich_help_panel=PANEL_SYNC)(scan.scan)
app.command(name="sync", rich_help_panel=PANEL_SYNC)(sync.sync)
app.command(name="status", rich_help_panel=PANEL_SYNC)(status.status)
app.command(name="history", rich_help_panel=PANEL_SYNC)(history.history)
app.add_typer(repo.app, name="repo", rich_help_panel=PANEL_SYNC)


# =============================================================================
# Set Up Accounts
# =============================================================================

app.add_typer(host.app, name="host", rich_help_panel=PANEL_SETUP)
app.add_typer(config.app, name="config", rich_help_panel=PANEL_SETUP)


# =============================================================================
# Manage Your Installation
# =============================================================================


@app.command(rich_help_panel=PANEL_INSTALL)
def version() -> None:
    """Show forksync version and exit."""
    console.print(f"forksync version {__version__}")
    raise typer.Exit(0)


def cli_main() -> None:
    """Main CLI entry point."""
    app()


__all__ = ["app", "cli_main"]

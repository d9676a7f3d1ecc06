"""
Forksync CLI - Host commands.

Register hosting accounts and manage their tokens.
"""

import typer
from rich.console import Console
from rich.table import Table

from forksync.cli import common
from forksync.cli.common import format_time
from forksync.cli.errors import handle_errors
from forksync.core.models import HostKind, RateLimitInfo
from forksync.core.services import HostService

console = Console()
app = typer.Typer(
    name="host",
    help="Manage hosting accounts",
    no_args_is_help=True,
)


def _format_rate_limit(info: RateLimitInfo | None) -> str:
    if info is None:
        return "-"
    if info.remaining is None:
        return "unlimited"
    text = f"{info.remaining}/{info.limit}" if info.limit is not None else str(info.remaining)
    if info.reset_at is not None:
        text += f" (resets {format_time(info.reset_at)})"
    return text


@app.command()
def add(
    label: str = typer.Argument(..., help="Unique name for this account, e.g. 'gh'"),
    kind: HostKind = typer.Option(
        HostKind.GITHUB,
        "--kind",
        "-k",
        help="Provider type",
        case_sensitive=False,
    ),
    token: str = typer.Option(
        ...,
        "--token",
        "-t",
        prompt=True,
        hide_input=True,
        envvar="FORKSYNC_TOKEN",
        help="Personal access token (prompted when omitted)",
    ),
    api_url: str | None = typer.Option(
        None,
        "--api-url",
        help="API base URL for self-hosted instances",
    ),
    domain: str | None = typer.Option(
        None,
        "--domain",
        help="Host name used in clone URLs (defaults to the provider's)",
    ),
    no_verify: bool = typer.Option(
        False,
        "--no-verify",
        help="Store the token without checking it against the provider",
    ),
) -> None:
    """
    Register a hosting account.

    The token is kept in the OS keyring, never in the state database.

    Examples:
        forksync host add gh --kind github
        forksync host add work --kind gitlab --api-url https://git.example.com/api/v4
    """
    with handle_errors():
        host = HostService(common.get_context()).add_host(
            label, kind, token, api_url=api_url, domain=domain, verify=not no_verify
        )
    who = f" as [bold]{host.username}[/bold]" if host.username else ""
    console.print(f"[green]✓[/green] Added host {host.label} ({host.kind.value}){who}")


@app.command(name="list")
def list_hosts() -> None:
    """List registered hosts."""
    with handle_errors():
        hosts = HostService(common.get_context()).list_hosts()

    if not hosts:
        console.print("[dim]No hosts registered. Run [bold]forksync host add[/bold].[/dim]")
        return

    table = Table(title="Hosts")
    table.add_column("Label", style="cyan")
    table.add_column("Kind")
    table.add_column("Domain")
    table.add_column("User")
    table.add_column("Rate limit")
    for host in hosts:
        table.add_row(
            host.label,
            host.kind.value,
            host.domain,
            host.username or "-",
            _format_rate_limit(host.rate_limit),
        )
    console.print(table)


@app.command()
def info(label: str = typer.Argument(..., help="Host label")) -> None:
    """Show details for one host."""
    with handle_errors():
        host = HostService(common.get_context()).info(label)

    table = Table(title=f"Host {host.label}", show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("Kind", host.kind.value)
    table.add_row("API", host.api_url)
    table.add_row("Domain", host.domain)
    table.add_row("User", host.username or "-")
    table.add_row("Credential", host.credential_key)
    table.add_row("Rate limit", _format_rate_limit(host.rate_limit))
    table.add_row("Added", format_time(host.created_at))
    console.print(table)


@app.command()
def verify(label: str = typer.Argument(..., help="Host label")) -> None:
    """
    Check a host's token and refresh its rate-limit snapshot.

    Examples:
        forksync host verify gh
    """
    with handle_errors():
        result = HostService(common.get_context()).verify(label)
    console.print(
        f"[green]✓[/green] {result.host.label}: authenticated as [bold]{result.username}[/bold]"
    )
    console.print(f"[dim]Rate limit: {_format_rate_limit(result.rate_limit)}[/dim]")


@app.command()
def remove(
    label: str = typer.Argument(..., help="Host label"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Don't ask for confirmation"),
) -> None:
    """
    Remove a host, its repositories and its stored token.

    Sync history is kept.
    """
    if not yes:
        typer.confirm(f"Remove host '{label}' and all its repositories?", abort=True)
    with handle_errors():
        HostService(common.get_context()).remove(label)
    console.print(f"[green]✓[/green] Removed host {label}")


__all__ = ["app"]

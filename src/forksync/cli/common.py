"""
Shared CLI helpers: building the SyncContext and rendering values.
"""

from __future__ import annotations

from datetime import datetime

from forksync.core.config import load_config
from forksync.core.context import SyncContext
from forksync.core.models import SyncOutcome, SyncStatus

STATUS_STYLES = {
    SyncStatus.SYNCED: "[green]synced[/green]",
    SyncStatus.BEHIND: "[yellow]behind[/yellow]",
    SyncStatus.AHEAD: "[cyan]ahead[/cyan]",
    SyncStatus.DIVERGED: "[magenta]diverged[/magenta]",
    SyncStatus.ERROR: "[red]error[/red]",
    SyncStatus.UNKNOWN: "[dim]unknown[/dim]",
}

OUTCOME_STYLES = {
    SyncOutcome.SUCCESS: "[green]success[/green]",
    SyncOutcome.NEEDS_MANUAL_RESOLUTION: "[yellow]needs manual resolution[/yellow]",
    SyncOutcome.CONFLICT: "[magenta]conflict[/magenta]",
    SyncOutcome.ERROR: "[red]error[/red]",
    SyncOutcome.INTERRUPTED: "[dim]interrupted[/dim]",
}


def get_context() -> SyncContext:
    """Build the context from the layered config, the SQLite store and the OS keyring."""
    return SyncContext.from_config(load_config())


def format_time(value: datetime | None) -> str:
    if value is None:
        return "-"
    return value.astimezone().strftime("%Y-%m-%d %H:%M")


def format_count(value: int | None) -> str:
    return "-" if value is None else str(value)


def short_sha(sha: str | None) -> str:
    return sha[:8] if sha else "-"

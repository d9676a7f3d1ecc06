"""
Forksync CLI - Sync command.

Brings forks up to date with their upstream using the fast-forward,
merge or rebase strategy, with bounded parallelism.
"""

import threading

import typer
from rich.console import Console
from rich.table import Table

from forksync.cli import common
from forksync.cli.common import OUTCOME_STYLES, STATUS_STYLES, format_count, short_sha
from forksync.cli.errors import ExitCode, handle_errors
from forksync.core.models import MergeStrategy, TaskState
from forksync.core.services import SyncService
from forksync.core.sync import InterruptHandler, RunSummary, SyncScope, SyncTask, TaskResult

console = Console()


class ConsoleSyncCallback:
    """Prints one line per finished task as results arrive."""

    def __init__(self, out: Console) -> None:
        self.out = out
        self._lock = threading.Lock()
        self._done = 0
        self._total = 0

    def on_start(self, num_tasks: int, num_workers: int) -> None:
        self._total = num_tasks
        self.out.print(f"[blue]Syncing {num_tasks} fork(s) with {num_workers} worker(s)[/blue]")

    def on_task_start(self, task: SyncTask) -> None:
        pass

    def on_task_complete(self, result: TaskResult) -> None:
        with self._lock:
            self._done += 1
            progress = f"[dim][{self._done}/{self._total}][/dim]"
        if result.state == TaskState.COMPLETED:
            icon = "[green]✓[/green]"
        elif result.state == TaskState.INTERRUPTED:
            icon = "[dim]○[/dim]"
        else:
            icon = "[red]✗[/red]"
        line = f"{progress} {icon} {result.task}: {OUTCOME_STYLES[result.outcome]}"
        if result.message and result.state != TaskState.COMPLETED:
            line += f" [dim]({result.message})[/dim]"
        self.out.print(line)


def _render_summary(summary: RunSummary) -> None:
    title = "Dry run" if summary.dry_run else "Sync results"
    table = Table(title=title)
    table.add_column("Repository", style="cyan")
    table.add_column("Strategy")
    table.add_column("Outcome")
    table.add_column("Status")
    table.add_column("Ahead", justify="right")
    table.add_column("Behind", justify="right")
    table.add_column("Head")
    for result in summary.results:
        head = short_sha(result.after_sha or result.before_sha)
        if result.before_sha and result.after_sha and result.before_sha != result.after_sha:
            head = f"{short_sha(result.before_sha)} → {short_sha(result.after_sha)}"
        table.add_row(
            str(result.task),
            result.task.strategy.value,
            OUTCOME_STYLES[result.outcome],
            STATUS_STYLES[result.status],
            format_count(result.ahead),
            format_count(result.behind),
            head,
        )
    console.print(table)
    console.print(f"{summary.summary()} in {summary.duration_seconds:.1f}s")


def sync(
    target: str = typer.Argument(
        ...,
        help="'all', or one repo as id, owner/name or label:owner/name",
    ),
    dry_run: bool = typer.Option(
        False,
        "--dry-run",
        "-n",
        help="Fetch and report divergence without changing any branch",
    ),
    strategy: MergeStrategy | None = typer.Option(
        None,
        "--strategy",
        "-s",
        help="Override the configured merge strategy",
        case_sensitive=False,
    ),
    concurrency: int | None = typer.Option(
        None,
        "--concurrency",
        "-j",
        min=1,
        help="Maximum forks synced at once (default: sync_concurrency)",
    ),
    host: str | None = typer.Option(None, "--host", help="Only forks on this host label"),
    pattern: str | None = typer.Option(
        None, "--pattern", help="Only forks whose owner/name matches this glob"
    ),
) -> None:
    """
    Sync forks with their upstream repositories.

    Exit code is 0 when every task completed, 1 when any failed and 130
    when the run was interrupted.

    Examples:
        forksync sync all --dry-run
        forksync sync all --strategy merge --concurrency 4
        forksync sync gh:alice/widgets --strategy rebase
        forksync sync all --host gh --pattern 'acme/*'
    """
    scope = SyncScope.from_target(target, host_label=host, pattern=pattern)

    with handle_errors():
        service = SyncService(common.get_context())
        plan = service.plan_sync(scope, strategy)

    for skipped in plan.skipped:
        console.print(f"[yellow]⚠[/yellow]  Skipping {skipped.full_name}: {skipped.reason}")

    if not plan.tasks:
        console.print("[dim]Nothing to sync.[/dim]")
        raise typer.Exit(ExitCode.SUCCESS)

    with InterruptHandler() as handler, handle_errors():
        summary = service.execute_sync(
            plan.tasks,
            dry_run=dry_run,
            concurrency=concurrency,
            cancel_event=handler.cancel_event,
            callback=ConsoleSyncCallback(console),
        )

    console.print()
    _render_summary(summary)
    raise typer.Exit(summary.exit_code)


__all__ = ["sync", "ConsoleSyncCallback"]

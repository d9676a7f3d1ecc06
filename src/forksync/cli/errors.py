"""
Standardized error handling and exit codes for the forksync CLI.
"""

from collections.abc import Iterator
from contextlib import contextmanager
from enum import IntEnum

import typer
from rich.console import Console

from forksync.core.errors import ErrorKind, ForkSyncError

console = Console(stderr=True)


class ExitCode(IntEnum):
    """Standard exit codes for forksync operations."""

    SUCCESS = 0
    """Operation completed successfully."""

    GENERAL_ERROR = 1
    """A sync task failed or an operation errored."""

    USER_ERROR = 2
    """Configuration or input error (actionable by the user)."""

    SIGINT = 130
    """Interrupted by SIGINT (Ctrl+C) - Unix standard."""


_USER_ERROR_KINDS = frozenset({ErrorKind.CONFIG, ErrorKind.NOT_FOUND, ErrorKind.AUTH})

_SOLUTIONS = {
    ErrorKind.AUTH: "forksync host verify <label>  # or re-add the host with a new token",
    ErrorKind.RATE_LIMITED: "wait for the quota to reset: forksync host info <label>",
    ErrorKind.NOT_FOUND: "forksync scan  # refresh what forksync knows about",
    ErrorKind.CONFIG: "forksync config show",
    ErrorKind.STORE: "check permissions on the data directory (forksync config show)",
}


def print_error(
    problem: str,
    *,
    reason: str | None = None,
    solution: str | None = None,
) -> None:
    """
    Print a standardized error message with actionable guidance.

    Args:
        problem: Brief description of what went wrong
        reason: Optional explanation of why it happened
        solution: Optional command or action to fix it
    """
    console.print(f"[red]Error:[/red] {problem}")

    if reason:
        console.print(f"[dim]{reason}[/dim]")

    if solution:
        console.print(f"[cyan]→ Try:[/cyan] {solution}")


def exit_code_for(error: ForkSyncError) -> ExitCode:
    if error.kind in _USER_ERROR_KINDS:
        return ExitCode.USER_ERROR
    return ExitCode.GENERAL_ERROR


@contextmanager
def handle_errors() -> Iterator[None]:
    """Turn ForkSyncError into a printed message and a matching exit code."""
    try:
        yield
    except ForkSyncError as e:
        print_error(str(e), reason=f"kind: {e.kind.value}", solution=_SOLUTIONS.get(e.kind))
        raise typer.Exit(exit_code_for(e)) from e

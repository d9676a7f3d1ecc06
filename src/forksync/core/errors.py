"""
Error taxonomy for forksync.

Every failure the engine can report carries an ``ErrorKind`` so callers
branch on the kind, never on message text. The executor aggregates task
failures by kind and History records store the kind's value.

Exception Hierarchy:
    ForkSyncError (base)
    ├── AuthError
    ├── RateLimitedError (retry_after)
    ├── NetworkTransientError
    ├── NotFoundError
    ├── CloneError
    ├── LocalDirtyWorkingTreeError
    ├── NeedsManualResolutionError
    ├── MergeConflictError
    ├── PushRejectedError
    ├── ConfigError
    ├── StoreError
    └── GitCommandError (command, stderr)

Example:
    >>> try:
    ...     raise RateLimitedError("quota exhausted", retry_after=30.0, host="gh")
    ... except ForkSyncError as e:
    ...     print(e.kind, e.retry_after, e.context)
"""

from enum import Enum


class ErrorKind(str, Enum):
    """Machine-readable failure category."""

    AUTH = "auth"
    RATE_LIMITED = "rate_limited"
    NETWORK_TRANSIENT = "network_transient"
    NOT_FOUND = "not_found"
    CLONE = "clone"
    LOCAL_DIRTY = "local_dirty"
    NEEDS_MANUAL_RESOLUTION = "needs_manual_resolution"
    MERGE_CONFLICT = "merge_conflict"
    PUSH_REJECTED = "push_rejected"
    CONFIG = "config"
    STORE = "store"
    GIT = "git"
    INTERNAL = "internal"


class ForkSyncError(Exception):
    """
    Base exception for all forksync errors.

    Attributes:
        message: Human-readable error message
        context: Additional context passed as keyword arguments
        kind: Failure category (class attribute)
    """

    kind: ErrorKind = ErrorKind.INTERNAL

    def __init__(self, message: str, **context: object) -> None:
        super().__init__(message)
        self.message = message
        self.context = context

    def __str__(self) -> str:
        return self.message


class AuthError(ForkSyncError):
    """Credential missing or rejected by the provider."""

    kind = ErrorKind.AUTH


class RateLimitedError(ForkSyncError):
    """
    Provider quota exhausted.

    Attributes:
        retry_after: Seconds the provider asked us to wait, if it said so
    """

    kind = ErrorKind.RATE_LIMITED

    def __init__(self, message: str, retry_after: float | None = None, **context: object) -> None:
        super().__init__(message, retry_after=retry_after, **context)
        self.retry_after = retry_after


class NetworkTransientError(ForkSyncError):
    """Connection failure, timeout or 5xx response; safe to retry."""

    kind = ErrorKind.NETWORK_TRANSIENT


class NotFoundError(ForkSyncError):
    """Repository, host or record does not exist."""

    kind = ErrorKind.NOT_FOUND


class CloneError(ForkSyncError):
    """Cloning a fork into its local path failed."""

    kind = ErrorKind.CLONE


class LocalDirtyWorkingTreeError(ForkSyncError):
    """The working copy has uncommitted changes; refusing to touch it."""

    kind = ErrorKind.LOCAL_DIRTY


class NeedsManualResolutionError(ForkSyncError):
    """Fast-forward impossible because the fork has commits of its own."""

    kind = ErrorKind.NEEDS_MANUAL_RESOLUTION


class MergeConflictError(ForkSyncError):
    """Merge or rebase hit a conflict and was aborted."""

    kind = ErrorKind.MERGE_CONFLICT


class PushRejectedError(ForkSyncError):
    """Origin rejected the push (non-fast-forward or stale lease)."""

    kind = ErrorKind.PUSH_REJECTED


class ConfigError(ForkSyncError):
    """Invalid configuration or unsupported host kind."""

    kind = ErrorKind.CONFIG


class StoreError(ForkSyncError):
    """The persisted store failed to read or write."""

    kind = ErrorKind.STORE


class GitCommandError(ForkSyncError):
    """
    A git invocation failed in a way no more specific kind describes.

    Attributes:
        command: The full argv that was run
        stderr: Captured standard error output
    """

    kind = ErrorKind.GIT

    def __init__(
        self, message: str, command: list[str] | None = None, stderr: str = "", **context: object
    ) -> None:
        super().__init__(message, command=command, stderr=stderr, **context)
        self.command = command
        self.stderr = stderr

    def __str__(self) -> str:
        if self.stderr:
            return f"{self.message}: {self.stderr}"
        return self.message


def error_kind_of(exc: BaseException) -> ErrorKind:
    """Return the ErrorKind for any exception, INTERNAL for foreign ones."""
    if isinstance(exc, ForkSyncError):
        return exc.kind
    return ErrorKind.INTERNAL

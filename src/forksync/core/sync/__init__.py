"""Fork synchronization: git access, planning, state machine and executor."""

from .executor import RunSummary, SyncCallback, SyncExecutor
from .fork_sync import ForkSyncStateMachine, TaskResult
from .git import GitClient
from .interrupt import InterruptHandler
from .locks import RepoLockRegistry
from .planner import (
    SkippedRepo,
    SyncPlan,
    SyncScope,
    SyncTask,
    plan_sync,
    resolve_repo_ref,
    resolve_strategy,
)

__all__ = [
    "ForkSyncStateMachine",
    "GitClient",
    "InterruptHandler",
    "RepoLockRegistry",
    "RunSummary",
    "SkippedRepo",
    "SyncCallback",
    "SyncExecutor",
    "SyncPlan",
    "SyncScope",
    "SyncTask",
    "TaskResult",
    "plan_sync",
    "resolve_repo_ref",
    "resolve_strategy",
]

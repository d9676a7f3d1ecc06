"""
RepoStore capability.

The engine consumes this protocol; ``SqliteRepoStore`` is the shipped
implementation. Every method is atomic. ``record_sync`` is the one
multi-record unit: a task's SyncState update and its History append are
written together or not at all.
"""

from __future__ import annotations

import fnmatch
from dataclasses import dataclass
from enum import Enum
from typing import Protocol, runtime_checkable

from forksync.core.models import (
    HistoryRecord,
    Host,
    MergeStrategy,
    RateLimitInfo,
    Repo,
    SyncState,
)


class Upsert(str, Enum):
    """What an upsert did to the stored record."""

    CREATED = "created"
    UPDATED = "updated"
    UNCHANGED = "unchanged"


@dataclass(frozen=True)
class RepoFilter:
    """
    Selection criteria for ``RepoStore.list_repos``.

    ``pattern`` is a shell-style glob matched case-insensitively against
    ``owner/name``.
    """

    host_id: int | None = None
    forks_only: bool = False
    pattern: str | None = None
    with_local_path: bool | None = None

    def matches_name(self, full_name: str) -> bool:
        if not self.pattern:
            return True
        return fnmatch.fnmatchcase(full_name.lower(), self.pattern.lower())


@runtime_checkable
class RepoStore(Protocol):
    # Hosts
    def add_host(self, host: Host) -> Host: ...

    def get_host(self, host_id: int) -> Host | None: ...

    def get_host_by_label(self, label: str) -> Host | None: ...

    def list_hosts(self) -> list[Host]: ...

    def remove_host(self, label: str) -> bool: ...

    def update_host_rate_limit(self, host_id: int, info: RateLimitInfo) -> None: ...

    # Repos
    def upsert_repo(self, repo: Repo) -> tuple[Repo, Upsert]: ...

    def get_repo(self, repo_id: int) -> Repo | None: ...

    def find_repo(self, host_id: int, owner: str, name: str) -> Repo | None: ...

    def list_repos(self, repo_filter: RepoFilter | None = None) -> list[Repo]: ...

    # Sync state
    def get_sync_state(self, repo_id: int) -> SyncState | None: ...

    def list_sync_states(self) -> list[SyncState]: ...

    def update_sync_state(self, state: SyncState) -> None: ...

    def set_repo_strategy(self, repo_id: int, strategy: MergeStrategy | None) -> None: ...

    # History
    def append_history(self, record: HistoryRecord) -> HistoryRecord: ...

    def query_history(
        self, repo_id: int | None = None, limit: int | None = None
    ) -> list[HistoryRecord]: ...

    def record_sync(self, state: SyncState, record: HistoryRecord) -> HistoryRecord: ...

"""
Data models for local discovery and reconciliation results.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from forksync.core.hosts.models import RemoteRepo
from forksync.core.models import RepoKey


@dataclass(frozen=True)
class LocalRepo:
    """
    A working copy found on disk.

    ``key`` is None when the checkout has no origin remote or the URL
    can't be parsed. ``unknown_host`` marks keys whose host is not a
    registered Host.
    """

    path: Path
    remote_url: str | None
    key: RepoKey | None
    modified_at: datetime
    dirty: bool = False
    unknown_host: bool = False


@dataclass(frozen=True)
class MatchedRepo:
    local: LocalRepo
    remote: RemoteRepo

    @property
    def key(self) -> RepoKey:
        return self.remote.key


@dataclass(frozen=True)
class DuplicateLocal:
    """Two or more checkouts of the same repo; ``kept`` is the canonical one."""

    key: RepoKey
    kept: Path
    ignored: tuple[Path, ...]


@dataclass
class ReconciliationResult:
    """
    Partition of discovered repositories.

    Every discovered identity lands in exactly one of matched,
    local_only and remote_only. Duplicate checkouts are reported in
    ``conflicts`` and are not errors.
    """

    matched: list[MatchedRepo] = field(default_factory=list)
    local_only: list[LocalRepo] = field(default_factory=list)
    remote_only: list[RemoteRepo] = field(default_factory=list)
    conflicts: list[DuplicateLocal] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.matched) + len(self.local_only) + len(self.remote_only)

    def summary(self) -> str:
        text = (
            f"{len(self.matched)} matched, {len(self.local_only)} local-only, "
            f"{len(self.remote_only)} remote-only"
        )
        if self.conflicts:
            text += f", {len(self.conflicts)} duplicate checkout(s)"
        return text


@dataclass
class ApplyReport:
    """Store mutations made while applying a reconciliation."""

    created: int = 0
    updated: int = 0
    unchanged: int = 0
    parents_created: int = 0
    skipped_local: list[Path] = field(default_factory=list)

    @property
    def mutated(self) -> int:
        return self.created + self.updated + self.parents_created

"""Persisted state: hosts, repos, sync state and history."""

from .base import RepoFilter, RepoStore, Upsert
from .sqlite import SqliteRepoStore

__all__ = ["RepoFilter", "RepoStore", "SqliteRepoStore", "Upsert"]

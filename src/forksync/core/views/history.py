"""
Read-only history view over the append-only audit trail.
"""

from __future__ import annotations

from forksync.core.errors import ConfigError
from forksync.core.models import HistoryRecord
from forksync.core.store.base import RepoStore

DEFAULT_LIMIT = 20


class HistoryRecorder:
    """Filters History by repo and caps the number of entries, newest first."""

    def __init__(self, store: RepoStore) -> None:
        self.store = store

    def history(
        self, repo_id: int | None = None, limit: int = DEFAULT_LIMIT
    ) -> list[HistoryRecord]:
        if limit < 1:
            raise ConfigError("limit must be >= 1")
        return self.store.query_history(repo_id=repo_id, limit=limit)

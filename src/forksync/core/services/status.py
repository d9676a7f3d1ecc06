"""
Status service: grouped fork status and sync history.
"""

from __future__ import annotations

from forksync.core.context import SyncContext
from forksync.core.errors import NotFoundError
from forksync.core.models import HistoryRecord, Repo
from forksync.core.store.base import RepoFilter
from forksync.core.sync import resolve_repo_ref
from forksync.core.views import DEFAULT_LIMIT, HistoryRecorder, StatusAggregator, StatusView


class StatusService:
    def __init__(self, ctx: SyncContext) -> None:
        self.ctx = ctx
        self._status = StatusAggregator(ctx.store)
        self._history = HistoryRecorder(ctx.store)

    def status(self, host_label: str | None = None) -> StatusView:
        return self._status.status(host_label)

    def history(
        self, repo_ref: str | None = None, limit: int = DEFAULT_LIMIT
    ) -> list[HistoryRecord]:
        """History newest first, for one repo (id, owner/name or label:owner/name) or all."""
        repo_id = None
        if repo_ref is not None:
            repo_id = resolve_repo_ref(self.ctx.store, repo_ref).id
        return self._history.history(repo_id=repo_id, limit=limit)

    def repos(
        self, host_label: str | None = None, *, forks_only: bool = False, pattern: str | None = None
    ) -> list[Repo]:
        host_id = None
        if host_label is not None:
            host = self.ctx.store.get_host_by_label(host_label)
            if host is None:
                raise NotFoundError(f"Unknown host '{host_label}'")
            host_id = host.id
        return self.ctx.store.list_repos(
            RepoFilter(host_id=host_id, forks_only=forks_only, pattern=pattern)
        )

    def repo_names(self) -> dict[int, str]:
        """Repo id -> 'label:owner/name', for labelling history rows."""
        labels = {h.id: h.label for h in self.ctx.store.list_hosts()}
        return {
            r.id: f"{labels.get(r.host_id, '?')}:{r.full_name}"
            for r in self.ctx.store.list_repos()
            if r.id is not None
        }

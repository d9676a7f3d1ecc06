"""
Sync service: plan and execute fork syncs.

Usage:
    >>> service = SyncService(ctx)
    >>> plan = service.plan_sync(SyncScope.from_target("all"), MergeStrategy.MERGE)
    >>> summary = service.execute_sync(plan.tasks, dry_run=True)
    >>> summary.exit_code
    0
"""

from __future__ import annotations

import threading
from collections.abc import Sequence

from forksync.core.context import SyncContext
from forksync.core.models import MergeStrategy, Repo
from forksync.core.sync import (
    RunSummary,
    SyncCallback,
    SyncExecutor,
    SyncPlan,
    SyncScope,
    SyncTask,
    plan_sync,
    resolve_repo_ref,
)


class SyncService:
    def __init__(self, ctx: SyncContext) -> None:
        self.ctx = ctx

    def plan_sync(
        self, scope: SyncScope, strategy_override: MergeStrategy | None = None
    ) -> SyncPlan:
        return plan_sync(
            self.ctx.store,
            scope,
            default_strategy=self.ctx.config.default_merge_strategy,
            strategy_override=strategy_override,
        )

    def execute_sync(
        self,
        tasks: Sequence[SyncTask],
        *,
        dry_run: bool = False,
        concurrency: int | None = None,
        cancel_event: threading.Event | None = None,
        callback: SyncCallback | None = None,
    ) -> RunSummary:
        executor = SyncExecutor(self.ctx, concurrency=concurrency, callback=callback)
        return executor.run(tasks, dry_run=dry_run, cancel_event=cancel_event)

    def set_strategy(self, repo_ref: str, strategy: MergeStrategy | None) -> Repo:
        """Set (or with None, clear) a repo's configured merge strategy."""
        repo = resolve_repo_ref(self.ctx.store, repo_ref)
        assert repo.id is not None
        self.ctx.store.set_repo_strategy(repo.id, strategy)
        return repo

"""
Tests for the read-only status and history views.
"""

from __future__ import annotations

from datetime import timedelta

import pytest

from forksync.core.errors import ConfigError, NotFoundError
from forksync.core.models import (
    HistoryRecord,
    Host,
    HostKind,
    MergeStrategy,
    Repo,
    SyncOutcome,
    SyncPhase,
    SyncState,
    SyncStatus,
    TaskState,
    utcnow,
)
from forksync.core.views import HistoryRecorder, StatusAggregator


@pytest.fixture
def forks(store, host):
    gl = store.add_host(Host.create("gl", HostKind.GITLAB))
    repos = {}
    for host_id, name in ((host.id, "behind"), (host.id, "fresh"), (gl.id, "synced")):
        repos[name], _ = store.upsert_repo(
            Repo(host_id=host_id, owner="alice", name=name, is_fork=True)
        )
    store.upsert_repo(Repo(host_id=host.id, owner="acme", name="upstream"))
    store.update_sync_state(SyncState(repo_id=repos["behind"].id, ahead=0, behind=4))
    store.update_sync_state(SyncState(repo_id=repos["synced"].id, ahead=0, behind=0))
    return repos


class TestStatusAggregator:
    def test_groups_forks_by_host(self, store, forks):
        view = StatusAggregator(store).status()

        assert [h.host.label for h in view.hosts] == ["gh", "gl"]
        gh = view.hosts[0]
        assert {f.repo.name: f.status for f in gh.forks} == {
            "behind": SyncStatus.BEHIND,
            "fresh": SyncStatus.UNKNOWN,
        }
        assert view.total == 3
        assert view.counts == {
            SyncStatus.BEHIND: 1,
            SyncStatus.UNKNOWN: 1,
            SyncStatus.SYNCED: 1,
        }

    def test_single_host(self, store, forks):
        view = StatusAggregator(store).status("gl")
        assert [f.repo.name for h in view.hosts for f in h.forks] == ["synced"]

    def test_host_without_forks_is_listed(self, store, forks):
        store.add_host(Host.create("empty", HostKind.GITEA))
        view = StatusAggregator(store).status("empty")
        assert view.total == 0
        assert len(view.hosts) == 1

    def test_unknown_host(self, store, forks):
        with pytest.raises(NotFoundError):
            StatusAggregator(store).status("nope")


class TestHistoryRecorder:
    def _append(self, store, repo_id, n):
        start = utcnow()
        for i in range(n):
            store.append_history(
                HistoryRecord(
                    repo_id=repo_id,
                    started_at=start + timedelta(seconds=i),
                    ended_at=start + timedelta(seconds=i + 1),
                    strategy=MergeStrategy.FF,
                    phase=SyncPhase.RECORD_RESULT,
                    state=TaskState.COMPLETED,
                    outcome=SyncOutcome.SUCCESS,
                    message=f"run {i}",
                )
            )

    def test_limit_and_order(self, store):
        self._append(store, 1, 5)
        self._append(store, 2, 1)

        records = HistoryRecorder(store).history(repo_id=1, limit=2)

        assert [r.message for r in records] == ["run 4", "run 3"]

    def test_default_limit(self, store):
        self._append(store, 1, 25)
        assert len(HistoryRecorder(store).history()) == 20

    def test_invalid_limit(self, store):
        with pytest.raises(ConfigError):
            HistoryRecorder(store).history(limit=0)

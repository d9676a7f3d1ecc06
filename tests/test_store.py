"""
Tests for the SQLite state store.

Tests cover:
- Schema creation and versioning
- Host CRUD and cascade on removal
- Repo upsert identity and change detection
- SyncState writes (strategy preserved by record_sync)
- Append-only history ordering and limits
"""

from __future__ import annotations

import sqlite3
from datetime import timedelta
from pathlib import Path

import pytest

from forksync.core.errors import StoreError
from forksync.core.models import (
    HistoryRecord,
    Host,
    HostKind,
    MergeStrategy,
    RateLimitInfo,
    Repo,
    SyncOutcome,
    SyncPhase,
    SyncState,
    SyncStatus,
    TaskState,
    utcnow,
)
from forksync.core.store import SqliteRepoStore
from forksync.core.store.base import RepoFilter, RepoStore, Upsert
from forksync.core.store.connection import get_connection
from forksync.core.store.schema import SCHEMA_VERSION, get_schema_version


def make_record(repo_id: int, **overrides) -> HistoryRecord:
    now = utcnow()
    fields = {
        "repo_id": repo_id,
        "started_at": now,
        "ended_at": now + timedelta(seconds=2),
        "strategy": MergeStrategy.FF,
        "phase": SyncPhase.PUSH_ORIGIN,
        "state": TaskState.COMPLETED,
        "outcome": SyncOutcome.SUCCESS,
        "ahead": 0,
        "behind": 0,
    }
    fields.update(overrides)
    return HistoryRecord(**fields)


@pytest.fixture
def fork(store, host) -> Repo:
    parent, _ = store.upsert_repo(
        Repo(host_id=host.id, owner="acme", name="widgets", clone_url="https://x/acme/widgets")
    )
    repo, _ = store.upsert_repo(
        Repo(
            host_id=host.id,
            owner="alice",
            name="widgets",
            is_fork=True,
            parent_repo_id=parent.id,
            parent_full_name="acme/widgets",
        )
    )
    return repo


class TestSchema:
    def test_store_satisfies_protocol(self, store):
        assert isinstance(store, RepoStore)

    def test_schema_version_recorded(self, store):
        with get_connection(store.db_path) as conn:
            assert get_schema_version(conn) == SCHEMA_VERSION

    def test_reopening_keeps_data(self, store, host, tmp_path):
        reopened = SqliteRepoStore(store.db_path)
        assert reopened.get_host_by_label("gh") == host

    def test_unopenable_path_raises_store_error(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("not a directory")
        with pytest.raises(StoreError):
            SqliteRepoStore(blocker / "forksync.db")


class TestHosts:
    def test_add_and_get(self, store):
        host = store.add_host(Host.create("gl", HostKind.GITLAB))

        assert host.id is not None
        assert store.get_host(host.id) == host
        assert store.get_host_by_label("gl").api_url == "https://gitlab.com/api/v4"
        assert host.credential_key == "forksync:gl"

    def test_duplicate_label(self, store, host):
        with pytest.raises(StoreError):
            store.add_host(Host.create("gh", HostKind.GITHUB))

    def test_list_sorted_by_label(self, store):
        store.add_host(Host.create("zeta", HostKind.GITEA))
        store.add_host(Host.create("alpha", HostKind.GITHUB))
        assert [h.label for h in store.list_hosts()] == ["alpha", "zeta"]

    def test_rate_limit_snapshot(self, store, host):
        store.update_host_rate_limit(host.id, RateLimitInfo(limit=5000, remaining=12))

        info = store.get_host(host.id).rate_limit
        assert info.remaining == 12
        assert not info.exhausted

    def test_remove_cascades_but_keeps_history(self, store, host, fork):
        store.update_sync_state(SyncState(repo_id=fork.id, ahead=0, behind=1))
        store.append_history(make_record(fork.id))

        assert store.remove_host("gh")

        assert store.get_host_by_label("gh") is None
        assert store.list_repos() == []
        assert store.get_sync_state(fork.id) is None
        assert len(store.query_history(fork.id)) == 1
        assert not store.remove_host("gh")


class TestRepos:
    def test_upsert_creates_then_reports_unchanged(self, store, host):
        repo = Repo(host_id=host.id, owner="alice", name="notes", clone_url="u")

        created, first = store.upsert_repo(repo)
        again, second = store.upsert_repo(repo)

        assert first == Upsert.CREATED
        assert second == Upsert.UNCHANGED
        assert again.id == created.id
        assert again.created_at == created.created_at
        assert again.updated_at >= created.updated_at

    def test_upsert_updates_changed_content(self, store, host):
        created, _ = store.upsert_repo(Repo(host_id=host.id, owner="alice", name="notes"))

        updated, outcome = store.upsert_repo(
            Repo(host_id=host.id, owner="alice", name="notes", local_path=Path("/src/notes"))
        )

        assert outcome == Upsert.UPDATED
        assert updated.id == created.id
        assert updated.local_path == Path("/src/notes")

    def test_identity_is_case_insensitive(self, store, host):
        created, _ = store.upsert_repo(Repo(host_id=host.id, owner="Alice", name="Notes"))

        assert store.find_repo(host.id, "alice", "notes").id == created.id
        _, outcome = store.upsert_repo(Repo(host_id=host.id, owner="ALICE", name="notes"))
        assert outcome == Upsert.UNCHANGED

    def test_list_filters(self, store, host, fork):
        store.upsert_repo(Repo(host_id=host.id, owner="bob", name="tool", local_path=Path("/t")))

        assert [r.full_name for r in store.list_repos()] == [
            "acme/widgets",
            "alice/widgets",
            "bob/tool",
        ]
        assert [r.full_name for r in store.list_repos(RepoFilter(forks_only=True))] == [
            "alice/widgets"
        ]
        assert [r.full_name for r in store.list_repos(RepoFilter(pattern="*/widgets"))] == [
            "acme/widgets",
            "alice/widgets",
        ]
        assert [r.full_name for r in store.list_repos(RepoFilter(with_local_path=True))] == [
            "bob/tool"
        ]

    def test_removing_parent_clears_reference(self, store, host, fork):
        with get_connection(store.db_path) as conn:
            conn.execute("DELETE FROM repos WHERE id = ?", (fork.parent_repo_id,))

        assert store.get_repo(fork.id).parent_repo_id is None


class TestSyncState:
    def test_status_is_derived(self, store, fork):
        store.update_sync_state(SyncState(repo_id=fork.id, ahead=2, behind=3))

        state = store.get_sync_state(fork.id)
        assert state.status == SyncStatus.DIVERGED
        with get_connection(store.db_path) as conn:
            row = conn.execute("SELECT status FROM sync_state WHERE repo_id = ?", (fork.id,))
            assert row.fetchone()["status"] == "diverged"

    def test_record_sync_keeps_configured_strategy(self, store, fork):
        store.set_repo_strategy(fork.id, MergeStrategy.REBASE)

        record = store.record_sync(
            SyncState(repo_id=fork.id, ahead=0, behind=0, last_outcome=SyncOutcome.SUCCESS),
            make_record(fork.id),
        )

        state = store.get_sync_state(fork.id)
        assert state.strategy == MergeStrategy.REBASE
        assert state.status == SyncStatus.SYNCED
        assert record.seq is not None

    def test_clear_strategy(self, store, fork):
        store.set_repo_strategy(fork.id, MergeStrategy.MERGE)
        store.set_repo_strategy(fork.id, None)
        assert store.get_sync_state(fork.id).strategy is None

    def test_record_sync_is_atomic(self, store, fork, monkeypatch):
        """A failing history insert leaves the previous SyncState in place."""
        store.update_sync_state(SyncState(repo_id=fork.id, ahead=0, behind=5))

        def broken_insert(conn, record):
            raise sqlite3.OperationalError("disk I/O error")

        monkeypatch.setattr(SqliteRepoStore, "_insert_history", staticmethod(broken_insert))

        with pytest.raises(StoreError):
            store.record_sync(SyncState(repo_id=fork.id, ahead=0, behind=0), make_record(fork.id))

        assert store.get_sync_state(fork.id).behind == 5


class TestHistory:
    def test_newest_first_with_limit(self, store, fork):
        seqs = [store.append_history(make_record(fork.id, message=str(i))).seq for i in range(5)]

        records = store.query_history(fork.id, limit=3)

        assert [r.seq for r in records] == sorted(seqs, reverse=True)[:3]
        assert [r.message for r in records] == ["4", "3", "2"]

    def test_filter_by_repo(self, store, fork):
        store.append_history(make_record(fork.id))
        store.append_history(make_record(fork.id + 100))

        assert len(store.query_history()) == 2
        assert [r.repo_id for r in store.query_history(fork.id)] == [fork.id]

    def test_round_trip_fields(self, store, fork):
        original = make_record(
            fork.id,
            state=TaskState.FAILED,
            outcome=SyncOutcome.NEEDS_MANUAL_RESOLUTION,
            error_kind="needs_manual_resolution",
            dry_run=True,
            before_sha="a" * 40,
            ahead=1,
            behind=2,
        )

        stored = store.append_history(original)
        [loaded] = store.query_history(fork.id)

        assert loaded == stored
        assert loaded.duration_seconds == pytest.approx(2.0)

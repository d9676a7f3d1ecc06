"""
Tests for sync planning: scope resolution, strategy precedence, ordering
and skipped forks.
"""

from __future__ import annotations

import pytest

from forksync.core.errors import ConfigError, NotFoundError
from forksync.core.models import Host, HostKind, MergeStrategy, Repo
from forksync.core.sync.planner import SyncScope, plan_sync, resolve_repo_ref, resolve_strategy


@pytest.fixture
def tracked(store, host):
    """Two hosts, an upstream, three forks and one fork with no known upstream."""
    gl = store.add_host(Host.create("gl", HostKind.GITLAB))

    def add(host_id, owner, name, **fields):
        repo, _ = store.upsert_repo(Repo(host_id=host_id, owner=owner, name=name, **fields))
        return repo

    upstream = add(host.id, "acme", "widgets", clone_url="https://github.com/acme/widgets.git")
    repos = {
        "upstream": upstream,
        "widgets": add(host.id, "alice", "widgets", is_fork=True, parent_repo_id=upstream.id),
        "tools": add(
            host.id,
            "alice",
            "Tools",
            is_fork=True,
            parent_clone_url="https://github.com/acme/tools.git",
        ),
        "orphan": add(host.id, "alice", "orphan", is_fork=True),
        "gl_widgets": add(
            gl.id,
            "alice",
            "widgets",
            is_fork=True,
            parent_clone_url="https://gitlab.com/acme/widgets.git",
        ),
    }
    return repos


class TestScope:
    def test_all(self):
        scope = SyncScope.from_target("ALL", host_label="gh", pattern="alice/*")
        assert not scope.is_single
        assert (scope.host_label, scope.pattern) == ("gh", "alice/*")

    def test_single(self):
        scope = SyncScope.from_target(" alice/widgets ")
        assert scope.is_single
        assert scope.repo == "alice/widgets"


class TestResolveStrategy:
    def test_override_wins(self):
        assert (
            resolve_strategy(MergeStrategy.REBASE, MergeStrategy.MERGE, MergeStrategy.FF)
            == MergeStrategy.REBASE
        )

    def test_repo_beats_default(self):
        assert resolve_strategy(None, MergeStrategy.MERGE, MergeStrategy.REBASE) == (
            MergeStrategy.MERGE
        )

    def test_default_then_ff(self):
        assert resolve_strategy(None, None, MergeStrategy.REBASE) == MergeStrategy.REBASE
        assert resolve_strategy(None, None, None) == MergeStrategy.FF


class TestResolveRepoRef:
    def test_by_id(self, store, tracked):
        assert resolve_repo_ref(store, str(tracked["tools"].id)).name == "Tools"

    def test_by_label_and_name(self, store, tracked):
        repo = resolve_repo_ref(store, "gl:alice/widgets")
        assert repo.id == tracked["gl_widgets"].id

    def test_by_name_case_insensitive(self, store, tracked):
        assert resolve_repo_ref(store, "ALICE/tools").id == tracked["tools"].id

    def test_ambiguous_name(self, store, tracked):
        with pytest.raises(ConfigError, match="gh, gl"):
            resolve_repo_ref(store, "alice/widgets")

    @pytest.mark.parametrize("ref", ["999", "alice/nothing", "gh:acme/tools"])
    def test_not_found(self, store, tracked, ref):
        with pytest.raises(NotFoundError):
            resolve_repo_ref(store, ref)

    def test_malformed(self, store, tracked):
        with pytest.raises(ConfigError):
            resolve_repo_ref(store, "widgets")


class TestPlanSync:
    def test_all_forks_ordered_by_host_then_name(self, store, tracked):
        plan = plan_sync(store, SyncScope())

        assert [str(t) for t in plan] == ["gh:alice/Tools", "gh:alice/widgets", "gl:alice/widgets"]
        assert [s.full_name for s in plan.skipped] == ["alice/orphan"]
        assert len(plan) == 3

    def test_host_filter(self, store, tracked):
        plan = plan_sync(store, SyncScope(host_label="gl"))
        assert [t.repo_id for t in plan] == [tracked["gl_widgets"].id]

    def test_pattern_filter(self, store, tracked):
        plan = plan_sync(store, SyncScope(pattern="*/wid*"))
        assert [str(t) for t in plan] == ["gh:alice/widgets", "gl:alice/widgets"]

    def test_unknown_host(self, store, tracked):
        with pytest.raises(ConfigError):
            plan_sync(store, SyncScope(host_label="nope"))

    def test_single_repo(self, store, tracked):
        plan = plan_sync(store, SyncScope(repo="gh:alice/widgets"))
        assert [t.repo_id for t in plan] == [tracked["widgets"].id]

    def test_single_non_fork(self, store, tracked):
        with pytest.raises(NotFoundError, match="not a fork"):
            plan_sync(store, SyncScope(repo="acme/widgets"))

    def test_single_orphan_is_skipped(self, store, tracked):
        plan = plan_sync(store, SyncScope(repo="alice/orphan"))
        assert plan.tasks == []
        assert plan.skipped[0].reason.startswith("upstream unknown")

    def test_strategy_precedence(self, store, tracked):
        store.set_repo_strategy(tracked["tools"].id, MergeStrategy.MERGE)

        plan = plan_sync(store, SyncScope(), default_strategy=MergeStrategy.REBASE)
        strategies = {t.full_name.lower(): t.strategy for t in plan if t.host_label == "gh"}
        assert strategies == {
            "alice/tools": MergeStrategy.MERGE,
            "alice/widgets": MergeStrategy.REBASE,
        }

        overridden = plan_sync(
            store,
            SyncScope(),
            default_strategy=MergeStrategy.REBASE,
            strategy_override=MergeStrategy.FF,
        )
        assert {t.strategy for t in overridden} == {MergeStrategy.FF}

    def test_planning_does_not_write(self, store, tracked):
        plan_sync(store, SyncScope())
        assert store.list_sync_states() == []
        assert store.query_history() == []

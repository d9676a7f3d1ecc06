"""
Pytest configuration and shared fixtures.

Provides an isolated environment, an on-disk state store, an in-memory
credential store, and real git repositories laid out as an upstream, a
bare fork origin and a local working copy of the fork.
"""

from __future__ import annotations

import os
import subprocess
from dataclasses import dataclass
from pathlib import Path

import pytest

from forksync.core.config import ForkSyncConfig, clear_cache
from forksync.core.context import SyncContext
from forksync.core.credentials import MemoryCredentialStore
from forksync.core.models import Host, HostKind, MergeStrategy, Repo
from forksync.core.retry import RetryPolicy
from forksync.core.store import SqliteRepoStore
from forksync.core.sync.planner import SyncTask

# ==============================================================================
# Environment Fixtures
# ==============================================================================


@pytest.fixture(autouse=True)
def clean_env(tmp_path, monkeypatch):
    """
    Provide a clean environment without FORKSYNC_* env vars.

    HOME and the XDG directories point into tmp_path so no test reads
    the user's configuration, and git gets a fixed identity.
    """
    for key in list(os.environ.keys()):
        if key.startswith("FORKSYNC_") or key.startswith("GIT_"):
            monkeypatch.delenv(key, raising=False)

    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(home / ".config"))
    monkeypatch.setenv("XDG_DATA_HOME", str(home / ".local" / "share"))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    monkeypatch.setenv("GIT_AUTHOR_NAME", "Test User")
    monkeypatch.setenv("GIT_AUTHOR_EMAIL", "test@example.com")
    monkeypatch.setenv("GIT_COMMITTER_NAME", "Test User")
    monkeypatch.setenv("GIT_COMMITTER_EMAIL", "test@example.com")

    clear_cache()
    yield monkeypatch
    clear_cache()


# ==============================================================================
# Store / Context Fixtures
# ==============================================================================


@pytest.fixture
def store(tmp_path) -> SqliteRepoStore:
    return SqliteRepoStore(tmp_path / "data" / "forksync.db")


@pytest.fixture
def credentials() -> MemoryCredentialStore:
    return MemoryCredentialStore()


@pytest.fixture
def config(tmp_path) -> ForkSyncConfig:
    return ForkSyncConfig(
        data_dir=tmp_path / "data",
        clone_root=tmp_path / "clones",
        git_timeout_seconds=60,
    )


@pytest.fixture
def ctx(config, store, credentials) -> SyncContext:
    """Context with a no-retry policy so failures surface immediately."""
    return SyncContext(
        config=config,
        store=store,
        credentials=credentials,
        retry_policy=RetryPolicy.no_retry(),
    )


@pytest.fixture
def host(store, credentials) -> Host:
    """A registered GitHub host with a token in the credential store."""
    stored = store.add_host(Host.create("gh", HostKind.GITHUB, username="alice"))
    credentials.set(stored.credential_key, b"token-gh")
    return stored


# ==============================================================================
# Git Helpers
# ==============================================================================


def run_git(cwd: Path, *args: str) -> str:
    result = subprocess.run(
        ["git", *args], cwd=cwd, capture_output=True, text=True, check=True
    )
    return result.stdout.strip()


def init_repo(path: Path, *, bare: bool = False, branch: str = "main") -> Path:
    path.mkdir(parents=True, exist_ok=True)
    args = ["init", "-q", "-b", branch]
    if bare:
        args.append("--bare")
    run_git(path, *args)
    return path


def commit_file(repo: Path, name: str, content: str, message: str | None = None) -> str:
    """Write ``name`` in ``repo``, commit it, and return the new HEAD."""
    (repo / name).write_text(content)
    run_git(repo, "add", name)
    run_git(repo, "commit", "-q", "-m", message or f"update {name}")
    return run_git(repo, "rev-parse", "HEAD")


def make_checkout(path: Path, origin: str | None) -> Path:
    """A working copy with one commit and, optionally, an origin remote."""
    init_repo(path)
    commit_file(path, "README.md", "hello\n")
    if origin is not None:
        run_git(path, "remote", "add", "origin", origin)
    return path


@dataclass
class ForkWorld:
    """
    An upstream repository, a bare origin for the fork, and a local clone.

    ``parent`` and ``fork`` are the matching store records.
    """

    root: Path
    upstream: Path
    origin: Path
    local: Path
    ctx: SyncContext
    host: Host
    parent: Repo
    fork: Repo

    def upstream_commit(self, name: str, content: str | None = None) -> str:
        return commit_file(self.upstream, name, content or f"{name} from upstream\n")

    def local_commit(self, name: str, content: str | None = None, *, push: bool = True) -> str:
        sha = commit_file(self.local, name, content or f"{name} from fork\n")
        if push:
            run_git(self.local, "push", "-q", "origin", "main")
        return sha

    def origin_head(self) -> str:
        return run_git(self.origin, "rev-parse", "refs/heads/main")

    def upstream_head(self) -> str:
        return run_git(self.upstream, "rev-parse", "HEAD")

    def local_head(self) -> str:
        return run_git(self.local, "rev-parse", "HEAD")

    def is_ancestor(self, ancestor: str, descendant: str) -> bool:
        result = subprocess.run(
            ["git", "merge-base", "--is-ancestor", ancestor, descendant],
            cwd=self.local,
            capture_output=True,
        )
        return result.returncode == 0

    def task(self, strategy: MergeStrategy = MergeStrategy.FF) -> SyncTask:
        assert self.fork.id is not None
        return SyncTask(
            repo_id=self.fork.id,
            full_name=self.fork.full_name,
            host_label=self.host.label,
            strategy=strategy,
        )


@pytest.fixture
def fork_world(tmp_path, ctx, host) -> ForkWorld:
    root = tmp_path / "git"
    upstream = init_repo(root / "upstream")
    commit_file(upstream, "README.md", "# widgets\n", "initial commit")

    origin = root / "origin.git"
    run_git(root, "clone", "-q", "--bare", str(upstream), str(origin))

    local = root / "work" / "widgets"
    local.parent.mkdir(parents=True)
    run_git(root, "clone", "-q", str(origin), str(local))

    assert host.id is not None
    parent, _ = ctx.store.upsert_repo(
        Repo(host_id=host.id, owner="acme", name="widgets", clone_url=str(upstream))
    )
    fork, _ = ctx.store.upsert_repo(
        Repo(
            host_id=host.id,
            owner="alice",
            name="widgets",
            clone_url=str(origin),
            local_path=local,
            is_fork=True,
            parent_repo_id=parent.id,
            parent_full_name="acme/widgets",
        )
    )
    return ForkWorld(
        root=root,
        upstream=upstream,
        origin=origin,
        local=local,
        ctx=ctx,
        host=host,
        parent=parent,
        fork=fork,
    )

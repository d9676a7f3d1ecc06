"""
Sync planning.

Turns a scope (one repo, every fork, or forks filtered by host and name
pattern) into an ordered, de-duplicated task list. Planning only reads
the store.

Strategy precedence: explicit override > per-repo strategy > configured
default > ff.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from dataclasses import dataclass, field

from forksync.core.errors import ConfigError, NotFoundError
from forksync.core.models import Host, MergeStrategy, Repo
from forksync.core.store.base import RepoFilter, RepoStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SyncScope:
    """
    What to sync.

    ``repo`` names a single repo as an id, ``owner/name`` or
    ``label:owner/name``. Otherwise every fork is selected, narrowed by
    ``host_label`` and ``pattern`` (a glob over ``owner/name``).
    """

    repo: str | None = None
    host_label: str | None = None
    pattern: str | None = None

    @classmethod
    def from_target(
        cls, target: str, *, host_label: str | None = None, pattern: str | None = None
    ) -> SyncScope:
        if target.strip().lower() == "all":
            return cls(host_label=host_label, pattern=pattern)
        return cls(repo=target.strip(), host_label=host_label, pattern=pattern)

    @property
    def is_single(self) -> bool:
        return self.repo is not None


@dataclass(frozen=True)
class SyncTask:
    repo_id: int
    full_name: str
    host_label: str
    strategy: MergeStrategy

    def __str__(self) -> str:
        return f"{self.host_label}:{self.full_name}"


@dataclass(frozen=True)
class SkippedRepo:
    repo_id: int
    full_name: str
    reason: str


@dataclass
class SyncPlan:
    tasks: list[SyncTask] = field(default_factory=list)
    skipped: list[SkippedRepo] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.tasks)

    def __iter__(self) -> Iterator[SyncTask]:
        return iter(self.tasks)


def resolve_strategy(
    override: MergeStrategy | None,
    repo_strategy: MergeStrategy | None,
    default: MergeStrategy | None,
) -> MergeStrategy:
    return override or repo_strategy or default or MergeStrategy.FF


def resolve_repo_ref(store: RepoStore, ref: str, hosts: dict[int, Host] | None = None) -> Repo:
    """
    Find a tracked repo by id, owner/name or label:owner/name.

    Raises:
        NotFoundError: If nothing matches
        ConfigError: If the reference is malformed or matches repos on several hosts
    """
    if hosts is None:
        hosts = {h.id: h for h in store.list_hosts() if h.id is not None}
    if ref.isdigit():
        repo = store.get_repo(int(ref))
        if repo is None:
            raise NotFoundError(f"No repo with id {ref}")
        return repo

    label, sep, full_name = ref.partition(":")
    if not sep:
        label, full_name = "", ref
    owner, _, name = full_name.rpartition("/")
    if not owner or not name:
        raise ConfigError(f"Repo must be given as owner/name or host:owner/name, got '{ref}'")

    candidates = []
    for host in hosts.values():
        if label and host.label != label:
            continue
        assert host.id is not None
        if (repo := store.find_repo(host.id, owner, name)) is not None:
            candidates.append(repo)

    if not candidates:
        raise NotFoundError(f"Repo '{ref}' is not tracked; run 'forksync scan' first")
    if len(candidates) > 1:
        labels = ", ".join(sorted(hosts[r.host_id].label for r in candidates))
        raise ConfigError(f"Repo '{ref}' exists on several hosts ({labels}); use host:owner/name")
    return candidates[0]


def _upstream_known(store: RepoStore, repo: Repo) -> bool:
    if repo.parent_clone_url:
        return True
    if repo.parent_repo_id is not None:
        parent = store.get_repo(repo.parent_repo_id)
        return parent is not None and parent.clone_url is not None
    return False


def plan_sync(
    store: RepoStore,
    scope: SyncScope,
    *,
    default_strategy: MergeStrategy | None = None,
    strategy_override: MergeStrategy | None = None,
) -> SyncPlan:
    """
    Resolve a scope to an ordered task list.

    Tasks are ordered by host label, then owner/name. Forks whose upstream
    is unknown are reported in ``plan.skipped``.

    Raises:
        NotFoundError: If a single-repo scope names an unknown repo or a
            repo that isn't a fork
        ConfigError: If the host label is unknown or a repo name is ambiguous
    """
    hosts = {h.id: h for h in store.list_hosts() if h.id is not None}

    if scope.host_label is not None and not any(
        h.label == scope.host_label for h in hosts.values()
    ):
        raise ConfigError(f"Unknown host '{scope.host_label}'")

    if scope.is_single:
        assert scope.repo is not None
        repo = resolve_repo_ref(store, scope.repo, hosts)
        if not repo.is_fork:
            raise NotFoundError(f"Repo '{repo.full_name}' is not a fork")
        candidates = [repo]
    else:
        host_id = None
        if scope.host_label is not None:
            host_id = next(h.id for h in hosts.values() if h.label == scope.host_label)
        candidates = store.list_repos(
            RepoFilter(host_id=host_id, forks_only=True, pattern=scope.pattern)
        )

    plan = SyncPlan()
    seen: set[int] = set()
    for repo in sorted(candidates, key=lambda r: (hosts[r.host_id].label, r.full_name.lower())):
        assert repo.id is not None
        if repo.id in seen:
            continue
        seen.add(repo.id)

        if not _upstream_known(store, repo):
            plan.skipped.append(
                SkippedRepo(repo.id, repo.full_name, "upstream unknown; run 'forksync scan'")
            )
            continue

        state = store.get_sync_state(repo.id)
        strategy = resolve_strategy(
            strategy_override, state.strategy if state else None, default_strategy
        )
        plan.tasks.append(
            SyncTask(
                repo_id=repo.id,
                full_name=repo.full_name,
                host_label=hosts[repo.host_id].label,
                strategy=strategy,
            )
        )

    logger.debug("Planned %d task(s), skipped %d", len(plan.tasks), len(plan.skipped))
    return plan

"""
Reconciliation of provider listings with local working copies.

``reconcile`` is pure: it keys both inputs by RepoKey and partitions them
into matched, local-only and remote-only sets. ``apply_reconciliation``
writes a result into a RepoStore.

Re-running either with unchanged inputs produces the same partition and
leaves every stored record unchanged apart from its ``updated_at``.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from pathlib import Path

from forksync.core.discover.models import (
    ApplyReport,
    DuplicateLocal,
    LocalRepo,
    MatchedRepo,
    ReconciliationResult,
)
from forksync.core.hosts.models import RemoteRepo
from forksync.core.models import DiscoverySource, Host, Repo, RepoKey, SyncState
from forksync.core.store.base import RepoStore, Upsert

logger = logging.getLogger(__name__)


def _canonical_order(local: LocalRepo) -> tuple[float, str]:
    # newest first, then path for a stable tie-break
    return (-local.modified_at.timestamp(), str(local.path))


def reconcile(
    locals_: Iterable[LocalRepo], remotes: Iterable[RemoteRepo]
) -> ReconciliationResult:
    """
    Partition discovered repositories by identity.

    When several checkouts share a key, the most recently modified one is
    the canonical match and the others are reported as conflicts. Local
    repos without a key (no parseable origin) are local-only.

    Example:
        >>> result = reconcile(scanner.scan(), provider.list_repos())
        >>> result.summary()
        '12 matched, 1 local-only, 30 remote-only'
    """
    remote_by_key: dict[RepoKey, RemoteRepo] = {}
    for remote in remotes:
        remote_by_key[remote.key] = remote

    local_groups: dict[RepoKey, list[LocalRepo]] = {}
    unkeyed: list[LocalRepo] = []
    for local in locals_:
        if local.key is None:
            unkeyed.append(local)
        else:
            local_groups.setdefault(local.key, []).append(local)

    result = ReconciliationResult()
    local_by_key: dict[RepoKey, LocalRepo] = {}
    for key in sorted(local_groups):
        group = sorted(local_groups[key], key=_canonical_order)
        local_by_key[key] = group[0]
        if len(group) > 1:
            ignored = tuple(local.path for local in group[1:])
            logger.info("Duplicate checkouts of %s: keeping %s", key, group[0].path)
            result.conflicts.append(DuplicateLocal(key=key, kept=group[0].path, ignored=ignored))

    for key in sorted(local_by_key.keys() | remote_by_key.keys()):
        local = local_by_key.get(key)
        remote = remote_by_key.get(key)
        if local is not None and remote is not None:
            result.matched.append(MatchedRepo(local=local, remote=remote))
        elif local is not None:
            result.local_only.append(local)
        elif remote is not None:
            result.remote_only.append(remote)

    result.local_only.extend(sorted(unkeyed, key=lambda local: str(local.path)))
    return result


def _repo_from_remote(host: Host, remote: RemoteRepo, local_path: Path | None) -> Repo:
    return Repo(
        host_id=host.id,
        owner=remote.owner,
        name=remote.name,
        clone_url=remote.clone_url,
        local_path=local_path,
        is_fork=remote.is_fork,
        parent_full_name=remote.parent_full_name,
        parent_clone_url=remote.parent_clone_url,
        default_branch=remote.default_branch,
        visibility=remote.visibility,
        discovery_source=DiscoverySource.API,
    )


class _Applier:
    def __init__(
        self,
        store: RepoStore,
        hosts: Iterable[Host],
        listed_by: dict[RepoKey, Host] | None = None,
    ) -> None:
        self.store = store
        self.hosts_by_domain: dict[str, Host] = {}
        # several accounts may share a domain; the oldest host owns filesystem finds
        for host in sorted(hosts, key=lambda h: h.id or 0):
            self.hosts_by_domain.setdefault(host.domain.lower(), host)
        self.listed_by = listed_by or {}
        self.report = ApplyReport()

    def count(self, outcome: Upsert) -> None:
        if outcome == Upsert.CREATED:
            self.report.created += 1
        elif outcome == Upsert.UPDATED:
            self.report.updated += 1
        else:
            self.report.unchanged += 1

    def resolve_parent(self, host: Host, remote: RemoteRepo) -> int | None:
        """
        Return the parent's repo id, creating a partial record if needed.

        A partial record takes the parent's default branch from the listing,
        falling back to the fork's own default branch.
        """
        if not remote.is_fork or remote.parent_key is None:
            return None
        assert host.id is not None
        parent_owner, parent_name = remote.parent_owner or "", remote.parent_name or ""
        branch = remote.parent_default_branch or remote.default_branch
        existing = self.store.find_repo(host.id, parent_owner, parent_name)
        if existing is not None:
            if (
                existing.discovery_source == DiscoverySource.PARENT
                and existing.default_branch != branch
            ):
                existing.default_branch = branch
                self.store.upsert_repo(existing)
            return existing.id

        parent, _ = self.store.upsert_repo(
            Repo(
                host_id=host.id,
                owner=parent_owner,
                name=parent_name,
                clone_url=remote.parent_clone_url,
                default_branch=branch,
                discovery_source=DiscoverySource.PARENT,
            )
        )
        self.report.parents_created += 1
        return parent.id

    def upsert_remote(self, remote: RemoteRepo, local: LocalRepo | None) -> None:
        host = self.listed_by.get(remote.key) or self.hosts_by_domain[remote.domain.lower()]
        assert host.id is not None

        if local is not None:
            local_path = local.path
        else:
            existing = self.store.find_repo(host.id, remote.owner, remote.name)
            local_path = existing.local_path if existing else None

        repo = _repo_from_remote(host, remote, local_path)
        repo.parent_repo_id = self.resolve_parent(host, remote)
        stored, outcome = self.store.upsert_repo(repo)
        self.count(outcome)
        self.ensure_sync_state(stored)

    def upsert_local(self, local: LocalRepo) -> None:
        host = self.hosts_by_domain.get(local.key.host) if local.key else None
        if local.key is None or local.unknown_host or host is None:
            self.report.skipped_local.append(local.path)
            return
        assert host.id is not None

        existing = self.store.find_repo(host.id, local.key.owner, local.key.name)
        if existing is not None:
            repo = existing.model_copy(update={"local_path": local.path})
        else:
            repo = Repo(
                host_id=host.id,
                owner=local.key.owner,
                name=local.key.name,
                clone_url=local.remote_url,
                local_path=local.path,
                discovery_source=DiscoverySource.FILESYSTEM,
            )
        stored, outcome = self.store.upsert_repo(repo)
        self.count(outcome)
        self.ensure_sync_state(stored)

    def ensure_sync_state(self, repo: Repo) -> None:
        if repo.is_fork and repo.id is not None and self.store.get_sync_state(repo.id) is None:
            self.store.update_sync_state(SyncState(repo_id=repo.id))


def apply_reconciliation(
    result: ReconciliationResult,
    store: RepoStore,
    hosts: Iterable[Host],
    listed_by: dict[RepoKey, Host] | None = None,
) -> ApplyReport:
    """
    Upsert a reconciliation result into the store.

    Matched repos get remote metadata plus the canonical local path.
    Remote-only repos keep any local path already on record. Local-only
    repos on a registered host become partial records (or refresh the
    path of an existing one); local repos on unknown hosts are skipped.
    Fork parents missing from the store are created as partial records so
    every parent reference resolves.

    ``listed_by`` attributes each remote to the host whose provider listed
    it; otherwise remotes are attributed by domain.
    """
    applier = _Applier(store, hosts, listed_by)

    for matched in result.matched:
        applier.upsert_remote(matched.remote, matched.local)
    for remote in result.remote_only:
        applier.upsert_remote(remote, None)
    for local in result.local_only:
        applier.upsert_local(local)

    return applier.report

"""
Read-only status view: current fork SyncState grouped by host.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field

from forksync.core.errors import NotFoundError
from forksync.core.models import Host, Repo, SyncState, SyncStatus
from forksync.core.store.base import RepoFilter, RepoStore


@dataclass(frozen=True)
class ForkStatus:
    repo: Repo
    state: SyncState

    @property
    def status(self) -> SyncStatus:
        return self.state.status


@dataclass
class HostStatus:
    host: Host
    forks: list[ForkStatus] = field(default_factory=list)

    @property
    def counts(self) -> Counter[SyncStatus]:
        return Counter(f.status for f in self.forks)


@dataclass
class StatusView:
    hosts: list[HostStatus] = field(default_factory=list)

    @property
    def counts(self) -> Counter[SyncStatus]:
        total: Counter[SyncStatus] = Counter()
        for host in self.hosts:
            total.update(host.counts)
        return total

    @property
    def total(self) -> int:
        return sum(len(h.forks) for h in self.hosts)


class StatusAggregator:
    """
    Groups every tracked fork's SyncState by host.

    Forks that were never synced appear with status ``unknown``.
    """

    def __init__(self, store: RepoStore) -> None:
        self.store = store

    def status(self, host_label: str | None = None) -> StatusView:
        """
        Build the status view, optionally for one host.

        Raises:
            NotFoundError: If ``host_label`` names no registered host
        """
        hosts = self.store.list_hosts()
        if host_label is not None:
            hosts = [h for h in hosts if h.label == host_label]
            if not hosts:
                raise NotFoundError(f"Unknown host '{host_label}'")

        states = {s.repo_id: s for s in self.store.list_sync_states()}
        view = StatusView()
        for host in hosts:
            group = HostStatus(host=host)
            for repo in self.store.list_repos(RepoFilter(host_id=host.id, forks_only=True)):
                assert repo.id is not None
                state = states.get(repo.id) or SyncState(repo_id=repo.id)
                group.forks.append(ForkStatus(repo=repo, state=state))
            view.hosts.append(group)
        return view

"""
Scan service: discover repositories and reconcile them into the store.

Usage:
    >>> service = ScanService(ctx)
    >>> report = service.scan(ScanScope(host_labels=["gh"]))
    >>> print(report.result.summary())
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from forksync.core.context import SyncContext
from forksync.core.discover import (
    ApplyReport,
    LocalRepo,
    LocalScanner,
    ReconciliationResult,
    apply_reconciliation,
    reconcile,
)
from forksync.core.errors import NotFoundError
from forksync.core.hosts.models import RemoteRepo
from forksync.core.models import Host, RepoKey

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScanScope:
    """
    What to scan.

    Empty ``host_labels`` means every registered host; empty ``paths``
    means the configured scan paths.
    """

    host_labels: tuple[str, ...] = ()
    paths: tuple[Path, ...] = ()


@dataclass
class ScanReport:
    result: ReconciliationResult
    applied: ApplyReport
    hosts: list[Host] = field(default_factory=list)
    remote_count: int = 0
    local_count: int = 0


class ScanService:
    def __init__(self, ctx: SyncContext) -> None:
        self.ctx = ctx

    def _scoped_hosts(self, scope: ScanScope) -> list[Host]:
        hosts = self.ctx.store.list_hosts()
        if not scope.host_labels:
            return hosts
        by_label = {h.label: h for h in hosts}
        missing = [label for label in scope.host_labels if label not in by_label]
        if missing:
            raise NotFoundError(f"Unknown host(s): {', '.join(missing)}")
        return [by_label[label] for label in scope.host_labels]

    def _list_remotes(self, hosts: list[Host]) -> tuple[list[RemoteRepo], dict[RepoKey, Host]]:
        remotes: list[RemoteRepo] = []
        listed_by: dict[RepoKey, Host] = {}
        for host in hosts:
            provider = self.ctx.provider_for(host)
            count = 0
            try:
                provider.authenticate()
                for remote in provider.list_repos():
                    remotes.append(remote)
                    listed_by[remote.key] = host
                    count += 1
                if (snapshot := provider.last_rate_limit) is not None and host.id is not None:
                    self.ctx.store.update_host_rate_limit(host.id, snapshot)
            finally:
                provider.close()
            logger.info("%s: listed %d repositories", host.label, count)
        return remotes, listed_by

    def _scan_local(self, scope: ScanScope, hosts: list[Host]) -> list[LocalRepo]:
        roots = list(scope.paths) or list(self.ctx.config.scan_paths)
        if not roots:
            return []
        known = {h.domain for h in self.ctx.store.list_hosts()}
        scanner = LocalScanner(roots, self.ctx.config.max_scan_depth, known_domains=known)
        found = list(scanner.scan())
        if scope.host_labels:
            domains = {h.domain for h in hosts}
            found = [
                local for local in found if local.key is not None and local.key.host in domains
            ]
        return found

    def scan(self, scope: ScanScope | None = None) -> ScanReport:
        """
        List remote repositories, scan local working copies, reconcile and
        store the result.

        Raises:
            NotFoundError: If a scoped host label is unknown
            AuthError, RateLimitedError, NetworkTransientError: If a provider
                fails after retries
        """
        scope = scope or ScanScope()
        hosts = self._scoped_hosts(scope)
        remotes, listed_by = self._list_remotes(hosts)
        locals_ = self._scan_local(scope, hosts)

        result = reconcile(locals_, remotes)
        applied = apply_reconciliation(result, self.ctx.store, hosts, listed_by)
        logger.info("Scan: %s", result.summary())
        return ScanReport(
            result=result,
            applied=applied,
            hosts=hosts,
            remote_count=len(remotes),
            local_count=len(locals_),
        )

"""
Explicit context passed to services, the planner and the executor.

Bundles configuration, the state store, the credential store, the retry
policy and the shared per-repo lock registry so no component reaches for
process-wide state.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from forksync.core.config.models import ForkSyncConfig
from forksync.core.credentials import CredentialStore, KeyringCredentialStore
from forksync.core.hosts import HostProvider, create_provider
from forksync.core.models import Host
from forksync.core.retry import RetryPolicy
from forksync.core.store import RepoStore, SqliteRepoStore
from forksync.core.sync.git import GitClient
from forksync.core.sync.locks import RepoLockRegistry


@dataclass
class SyncContext:
    config: ForkSyncConfig
    store: RepoStore
    credentials: CredentialStore
    retry_policy: RetryPolicy = field(default_factory=RetryPolicy)
    locks: RepoLockRegistry = field(default_factory=RepoLockRegistry)
    provider_factory: Callable[[Host], HostProvider] | None = None

    @classmethod
    def from_config(
        cls,
        config: ForkSyncConfig,
        *,
        store: RepoStore | None = None,
        credentials: CredentialStore | None = None,
    ) -> SyncContext:
        """Build the production context: SQLite store under data_dir, OS keyring."""
        return cls(
            config=config,
            store=store or SqliteRepoStore(config.db_path),
            credentials=credentials or KeyringCredentialStore(),
            retry_policy=RetryPolicy.from_settings(config.retry),
        )

    def provider_for(self, host: Host) -> HostProvider:
        if self.provider_factory is not None:
            return self.provider_factory(host)
        return create_provider(host, self.credentials, self.retry_policy)

    def git_for(self, path: Path) -> GitClient:
        return GitClient(
            path, timeout=self.config.git_timeout_seconds, retry_policy=self.retry_policy
        )

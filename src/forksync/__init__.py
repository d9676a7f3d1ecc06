"""
forksync - keep forks in sync with their upstreams

Discovers repositories from hosting providers and the local filesystem,
reconciles the two views, and syncs many forks concurrently with durable
history.
"""

__version__ = "0.1.0"

# Re-export core models for convenience
from forksync.core.config.models import ForkSyncConfig
from forksync.core.models import Host, HostKind, MergeStrategy, Repo, SyncState, SyncStatus

__all__ = [
    "ForkSyncConfig",
    "Host",
    "HostKind",
    "MergeStrategy",
    "Repo",
    "SyncState",
    "SyncStatus",
    "__version__",
]

"""
Host providers.

Importing this package registers the GitHub, GitLab and Gitea providers.
"""

from forksync.core.hosts import gitea, github, gitlab  # noqa: F401  (registration)
from forksync.core.hosts.base import (
    HostProvider,
    create_provider,
    list_provider_kinds,
    register_provider,
)
from forksync.core.hosts.memory import MemoryProvider
from forksync.core.hosts.models import RemoteRepo

__all__ = [
    "HostProvider",
    "MemoryProvider",
    "RemoteRepo",
    "create_provider",
    "list_provider_kinds",
    "register_provider",
]

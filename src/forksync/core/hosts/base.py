"""
HostProvider protocol and registry.

Every hosting provider implements the same discovery contract. New
providers are added by implementing ``HostProvider`` and registering the
class for a ``HostKind``; shared logic never branches on the kind.

- HostProvider is a runtime_checkable Protocol
- Providers are registered with a decorator
- ``create_provider`` instantiates on demand, injecting the credential
  store and retry policy
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from typing import Protocol, runtime_checkable

from forksync.core.credentials import CredentialStore
from forksync.core.errors import ConfigError
from forksync.core.hosts.models import RemoteRepo
from forksync.core.models import Host, HostKind, RateLimitInfo
from forksync.core.retry import RetryPolicy


@runtime_checkable
class HostProvider(Protocol):
    """
    Discovery contract for one hosting account.

    Errors are raised as AuthError, RateLimitedError, NotFoundError or
    NetworkTransientError so callers can branch on kind.
    """

    host: Host

    def authenticate(self) -> str:
        """
        Validate the stored credential.

        Returns:
            The authenticated username

        Raises:
            AuthError: If the credential is missing or rejected
        """
        ...

    def list_repos(self) -> Iterator[RemoteRepo]:
        """
        Lazily yield every repository visible to the account.

        Pages are fetched on demand. Each call starts a fresh listing.
        """
        ...

    def get_repo(self, owner: str, name: str) -> RemoteRepo | None:
        """Fetch one repository, or None if it doesn't exist."""
        ...

    def get_rate_limit(self) -> RateLimitInfo:
        ...

    @property
    def last_rate_limit(self) -> RateLimitInfo | None:
        """Snapshot taken from the most recent response, if any."""
        ...

    def close(self) -> None:
        ...


ProviderFactory = Callable[..., HostProvider]

# Provider registry
_providers: dict[HostKind, ProviderFactory] = {}


def register_provider(kind: HostKind) -> Callable[[ProviderFactory], ProviderFactory]:
    """
    Decorator to register a provider implementation for a host kind.

    Usage:
        @register_provider(HostKind.GITHUB)
        class GitHubProvider(HttpHostProvider):
            ...

    Raises:
        ValueError: If the kind is already registered
    """

    def decorator(provider_class: ProviderFactory) -> ProviderFactory:
        if kind in _providers:
            raise ValueError(f"Provider for '{kind.value}' is already registered")
        _providers[kind] = provider_class
        return provider_class

    return decorator


def create_provider(
    host: Host,
    credentials: CredentialStore,
    retry_policy: RetryPolicy | None = None,
) -> HostProvider:
    """
    Instantiate the provider registered for ``host.kind``.

    Raises:
        ConfigError: If no provider implements this kind
    """
    provider_class = _providers.get(host.kind)
    if provider_class is None:
        available = ", ".join(k.value for k in list_provider_kinds()) or "none registered"
        raise ConfigError(
            f"Host kind '{host.kind.value}' is not supported yet. Available: {available}",
            host=host.label,
        )
    return provider_class(host, credentials, retry_policy=retry_policy)


def list_provider_kinds() -> list[HostKind]:
    return sorted(_providers.keys(), key=lambda k: k.value)

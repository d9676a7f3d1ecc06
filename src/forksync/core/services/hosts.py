"""
Host service: register, inspect, verify and remove hosting accounts.

Tokens go straight into the credential store under the host's
credential key; the state database only ever sees the key.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from forksync.core.context import SyncContext
from forksync.core.errors import ConfigError, ForkSyncError, NotFoundError
from forksync.core.models import Host, HostKind, RateLimitInfo

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HostVerification:
    host: Host
    username: str
    rate_limit: RateLimitInfo


class HostService:
    def __init__(self, ctx: SyncContext) -> None:
        self.ctx = ctx

    def _require(self, label: str) -> Host:
        host = self.ctx.store.get_host_by_label(label)
        if host is None:
            raise NotFoundError(f"Unknown host '{label}'")
        return host

    def add_host(
        self,
        label: str,
        kind: HostKind,
        token: str,
        *,
        api_url: str | None = None,
        domain: str | None = None,
        username: str | None = None,
        verify: bool = True,
    ) -> Host:
        """
        Register a host and store its token.

        With ``verify`` the token is checked against the provider first and
        the authenticated username is recorded.

        Raises:
            ConfigError: If the label is taken or the kind is unsupported
            AuthError: If verification rejects the token
        """
        if not label or ":" in label:
            raise ConfigError("Host label must be non-empty and contain no ':'")
        if self.ctx.store.get_host_by_label(label) is not None:
            raise ConfigError(f"Host '{label}' already exists")
        if not token:
            raise ConfigError("A token is required")

        host = Host.create(label, kind, api_url=api_url, domain=domain, username=username)
        self.ctx.credentials.set(host.credential_key, token.encode("utf-8"))

        try:
            if verify:
                provider = self.ctx.provider_for(host)
                try:
                    host.username = provider.authenticate()
                    host.rate_limit = provider.last_rate_limit
                finally:
                    provider.close()
            stored = self.ctx.store.add_host(host)
        except ForkSyncError:
            self.ctx.credentials.delete(host.credential_key)
            raise

        logger.info("Registered host %s (%s)", label, kind.value)
        return stored

    def list_hosts(self) -> list[Host]:
        return self.ctx.store.list_hosts()

    def info(self, label: str) -> Host:
        return self._require(label)

    def verify(self, label: str) -> HostVerification:
        """
        Check the stored token and refresh the rate-limit snapshot.

        Raises:
            NotFoundError: If the host doesn't exist
            AuthError: If the token is missing or rejected
        """
        host = self._require(label)
        provider = self.ctx.provider_for(host)
        try:
            username = provider.authenticate()
            rate_limit = provider.get_rate_limit()
        finally:
            provider.close()

        assert host.id is not None
        self.ctx.store.update_host_rate_limit(host.id, rate_limit)
        return HostVerification(host=host, username=username, rate_limit=rate_limit)

    def remove(self, label: str) -> None:
        """Remove a host, its repos and its stored token. History is kept."""
        host = self._require(label)
        self.ctx.store.remove_host(label)
        self.ctx.credentials.delete(host.credential_key)
        logger.info("Removed host %s", label)

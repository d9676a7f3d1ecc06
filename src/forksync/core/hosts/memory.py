"""
In-memory host provider.

Serves a fixed list of RemoteRepo descriptors with the same paging,
retry and error semantics as the REST providers. Failures can be
scripted per operation to exercise rate limiting and auth handling
without a network.

Example:
    >>> repo = RemoteRepo(domain="github.com", owner="me", name="x")
    >>> provider = MemoryProvider(host, repos=[repo])
    >>> provider.fail("list", RateLimitedError("slow down", retry_after=2), times=1)
    >>> [r.name for r in provider.list_repos()]
    ['x']
"""

from __future__ import annotations

import threading
from collections import defaultdict, deque
from collections.abc import Iterable, Iterator

from forksync.core.credentials import CredentialStore, MemoryCredentialStore, require_token
from forksync.core.hosts.models import RemoteRepo
from forksync.core.models import Host, RateLimitInfo
from forksync.core.retry import RetryPolicy


class MemoryProvider:
    """HostProvider over an in-memory repository list."""

    def __init__(
        self,
        host: Host,
        credentials: CredentialStore | None = None,
        retry_policy: RetryPolicy | None = None,
        *,
        repos: Iterable[RemoteRepo] = (),
        username: str = "tester",
        page_size: int = 100,
    ) -> None:
        self.host = host
        self._credentials = credentials
        self._retry = retry_policy or RetryPolicy.no_retry()
        self.repos = list(repos)
        self.username = username
        self.page_size = page_size
        self.calls: dict[str, int] = defaultdict(int)
        self._failures: dict[str, deque[Exception]] = defaultdict(deque)
        self._lock = threading.Lock()
        self._rate_limit = RateLimitInfo(limit=5000, remaining=5000)

    @classmethod
    def with_token(cls, host: Host, token: str = "secret", **kwargs: object) -> MemoryProvider:
        store = MemoryCredentialStore({host.credential_key: token.encode()})
        return cls(host, store, **kwargs)  # type: ignore[arg-type]

    def fail(self, operation: str, error: Exception, times: int = 1) -> None:
        """Make the next ``times`` calls of ``operation`` raise ``error``."""
        with self._lock:
            self._failures[operation].extend([error] * times)

    def _call(self, operation: str) -> None:
        with self._lock:
            self.calls[operation] += 1
            pending = self._failures[operation]
            error = pending.popleft() if pending else None
        if error is not None:
            raise error
        if self._credentials is not None:
            require_token(self._credentials, self.host.credential_key)

    @property
    def last_rate_limit(self) -> RateLimitInfo | None:
        return self._rate_limit

    def authenticate(self) -> str:
        self._retry.call(self._call, "authenticate", description="authenticate")
        return self.username

    def _page(self, index: int) -> list[RemoteRepo]:
        self._call("list")
        start = index * self.page_size
        return self.repos[start : start + self.page_size]

    def list_repos(self) -> Iterator[RemoteRepo]:
        index = 0
        while True:
            page = self._retry.call(self._page, index, description=f"list page {index + 1}")
            yield from page
            if len(page) < self.page_size:
                return
            index += 1

    def get_repo(self, owner: str, name: str) -> RemoteRepo | None:
        self._retry.call(self._call, "get_repo", description="get_repo")
        for repo in self.repos:
            if repo.owner.lower() == owner.lower() and repo.name.lower() == name.lower():
                return repo
        return None

    def get_rate_limit(self) -> RateLimitInfo:
        self._retry.call(self._call, "rate_limit", description="rate_limit")
        return self._rate_limit

    def close(self) -> None:
        pass

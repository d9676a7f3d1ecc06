"""
Shared HTTP plumbing for REST-based host providers.

Maps HTTP status codes and transport failures onto the error taxonomy,
captures rate-limit headers from every response, and runs each request
through the injected RetryPolicy.

Status mapping:
    401                                   -> AuthError
    403/429 with exhausted quota or
    a Retry-After header                  -> RateLimitedError(retry_after)
    other 403                             -> AuthError
    404                                   -> NotFoundError
    5xx, timeouts, connection errors      -> NetworkTransientError
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterator
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any

import httpx

from forksync import __version__
from forksync.core.credentials import CredentialStore, require_token
from forksync.core.errors import (
    AuthError,
    ForkSyncError,
    NetworkTransientError,
    NotFoundError,
    RateLimitedError,
)
from forksync.core.hosts.models import RemoteRepo
from forksync.core.models import Host, RateLimitInfo
from forksync.core.retry import RetryPolicy

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0
USER_AGENT = f"forksync/{__version__}"

# Header names differ per provider; first match wins
_LIMIT_HEADERS = ("x-ratelimit-limit", "ratelimit-limit")
_REMAINING_HEADERS = ("x-ratelimit-remaining", "ratelimit-remaining")
_RESET_HEADERS = ("x-ratelimit-reset", "ratelimit-reset")


def _header_int(headers: httpx.Headers, names: tuple[str, ...]) -> int | None:
    for name in names:
        if (value := headers.get(name)) is not None:
            try:
                return int(value)
            except ValueError:
                return None
    return None


def parse_rate_limit(headers: httpx.Headers) -> RateLimitInfo | None:
    """Build a snapshot from rate-limit headers, or None if there are none."""
    limit = _header_int(headers, _LIMIT_HEADERS)
    remaining = _header_int(headers, _REMAINING_HEADERS)
    reset = _header_int(headers, _RESET_HEADERS)
    if limit is None and remaining is None:
        return None
    reset_at = datetime.fromtimestamp(reset, tz=timezone.utc) if reset is not None else None
    return RateLimitInfo(limit=limit, remaining=remaining, reset_at=reset_at)


def parse_retry_after(headers: httpx.Headers, now: datetime | None = None) -> float | None:
    """
    Seconds to wait before retrying.

    Uses Retry-After (seconds or HTTP date), falling back to the
    rate-limit reset timestamp.
    """
    now = now or datetime.now(timezone.utc)

    if (value := headers.get("retry-after")) is not None:
        try:
            return max(0.0, float(value))
        except ValueError:
            try:
                when = parsedate_to_datetime(value)
            except (TypeError, ValueError):
                when = None
            if when is not None:
                return max(0.0, (when - now).total_seconds())

    if (reset := _header_int(headers, _RESET_HEADERS)) is not None:
        return max(0.0, reset - now.timestamp())
    return None


def raise_for_status(response: httpx.Response, host_label: str) -> None:
    """Raise the taxonomy error matching an unsuccessful response."""
    status = response.status_code
    if status < 400:
        return

    url = str(response.request.url) if response.request else ""
    context: dict[str, Any] = {"host": host_label, "status_code": status, "url": url}

    if status == 401:
        raise AuthError(f"{host_label}: credential rejected (HTTP 401)", **context)

    if status in (403, 429):
        remaining = _header_int(response.headers, _REMAINING_HEADERS)
        if status == 429 or remaining == 0 or "retry-after" in response.headers:
            retry_after = parse_retry_after(response.headers)
            raise RateLimitedError(
                f"{host_label}: rate limited (HTTP {status})", retry_after=retry_after, **context
            )
        raise AuthError(f"{host_label}: access forbidden (HTTP 403)", **context)

    if status == 404:
        raise NotFoundError(f"{host_label}: not found: {url}", **context)

    if status >= 500:
        raise NetworkTransientError(f"{host_label}: server error (HTTP {status})", **context)

    raise ForkSyncError(f"{host_label}: unexpected HTTP {status} from {url}", **context)


class HttpHostProvider(ABC):
    """
    Base class for REST host providers.

    Subclasses supply ``auth_headers`` and the discovery methods; requests
    go through ``_get`` which handles auth, retries and error mapping.
    """

    def __init__(
        self,
        host: Host,
        credentials: CredentialStore,
        retry_policy: RetryPolicy | None = None,
        *,
        client: httpx.Client | None = None,
        page_size: int = 100,
        max_pages: int = 1000,
    ) -> None:
        self.host = host
        self._credentials = credentials
        self._retry = retry_policy or RetryPolicy()
        self._client = client
        self._owns_client = client is None
        self.page_size = page_size
        self.max_pages = max_pages
        self._last_rate_limit: RateLimitInfo | None = None

    @abstractmethod
    def auth_headers(self, token: str) -> dict[str, str]:
        """Headers carrying the token, in the provider's scheme."""

    @abstractmethod
    def authenticate(self) -> str: ...

    @abstractmethod
    def list_repos(self) -> Iterator[RemoteRepo]: ...

    @abstractmethod
    def get_repo(self, owner: str, name: str) -> RemoteRepo | None: ...

    @abstractmethod
    def get_rate_limit(self) -> RateLimitInfo: ...

    @property
    def client(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(
                base_url=self.host.api_url,
                timeout=DEFAULT_TIMEOUT,
                follow_redirects=True,
                headers={"User-Agent": USER_AGENT},
            )
        return self._client

    @property
    def last_rate_limit(self) -> RateLimitInfo | None:
        return self._last_rate_limit

    def close(self) -> None:
        if self._client is not None and self._owns_client:
            self._client.close()
            self._client = None

    def _send(self, url: str, params: dict[str, Any] | None) -> httpx.Response:
        token = require_token(self._credentials, self.host.credential_key)
        headers = {"User-Agent": USER_AGENT, **self.auth_headers(token)}

        logger.debug("GET %s %s", url, params or "")
        try:
            response = self.client.get(url, params=params, headers=headers)
        except httpx.TimeoutException as e:
            raise NetworkTransientError(f"{self.host.label}: request timed out: {url}") from e
        except httpx.TransportError as e:
            raise NetworkTransientError(f"{self.host.label}: connection failed: {e}") from e

        if (snapshot := parse_rate_limit(response.headers)) is not None:
            self._last_rate_limit = snapshot

        raise_for_status(response, self.host.label)
        return response

    def _get(self, url: str, params: dict[str, Any] | None = None) -> httpx.Response:
        """GET with retries; ``url`` may be relative to the API base or absolute."""
        return self._retry.call(self._send, url, params, description=f"GET {url}")

    def _get_json(self, url: str, params: dict[str, Any] | None = None) -> Any:
        response = self._get(url, params)
        try:
            return response.json()
        except ValueError as e:
            raise ForkSyncError(f"{self.host.label}: invalid JSON from {url}") from e

"""
Tests for the REST host providers.

Requests are served by an httpx.MockTransport so paging, rate limiting
and error mapping run through the real client code.
"""

from __future__ import annotations

from datetime import datetime, timezone

import httpx
import pytest

from forksync.core.credentials import MemoryCredentialStore
from forksync.core.errors import (
    AuthError,
    ConfigError,
    NetworkTransientError,
    NotFoundError,
    RateLimitedError,
)
from forksync.core.hosts import create_provider, list_provider_kinds, register_provider
from forksync.core.hosts.gitea import GiteaProvider
from forksync.core.hosts.github import GitHubProvider
from forksync.core.hosts.gitlab import GitLabProvider
from forksync.core.hosts.http import (
    HttpHostProvider,
    parse_rate_limit,
    parse_retry_after,
    raise_for_status,
)
from forksync.core.models import Host, HostKind, Visibility
from forksync.core.retry import RetryPolicy


def gh_repo(owner: str, name: str, *, fork: bool = False, parent: dict | None = None) -> dict:
    item = {
        "owner": {"login": owner},
        "name": name,
        "fork": fork,
        "private": False,
        "default_branch": "main",
        "clone_url": f"https://github.com/{owner}/{name}.git",
    }
    if parent is not None:
        item["parent"] = parent
    return item


def make_provider(cls, kind: HostKind, handler, *, sleeps: list[float] | None = None, **kwargs):
    host = Host.create("test", kind, api_url="https://api.example.test", domain="example.test")
    credentials = MemoryCredentialStore({host.credential_key: b"tok"})
    policy = RetryPolicy(
        max_attempts=3,
        jitter_ratio=0.0,
        sleep=(sleeps.append if sleeps is not None else lambda _: None),
    )
    client = httpx.Client(transport=httpx.MockTransport(handler), base_url=host.api_url)
    return cls(host, credentials, retry_policy=policy, client=client, **kwargs)


class TestHeaderParsing:
    def test_rate_limit_headers(self):
        info = parse_rate_limit(
            httpx.Headers(
                {
                    "x-ratelimit-limit": "5000",
                    "x-ratelimit-remaining": "0",
                    "x-ratelimit-reset": "0",
                }
            )
        )

        assert info.limit == 5000
        assert info.exhausted
        assert info.reset_at == datetime(1970, 1, 1, tzinfo=timezone.utc)

    def test_gitlab_style_headers(self):
        headers = httpx.Headers({"ratelimit-limit": "600", "ratelimit-remaining": "5"})
        info = parse_rate_limit(headers)
        assert (info.limit, info.remaining) == (600, 5)

    def test_no_rate_limit_headers(self):
        assert parse_rate_limit(httpx.Headers({"content-type": "application/json"})) is None

    def test_retry_after_seconds(self):
        assert parse_retry_after(httpx.Headers({"retry-after": "12"})) == 12.0

    def test_retry_after_http_date(self):
        now = datetime(2026, 10, 21, 7, 27, 30, tzinfo=timezone.utc)
        headers = httpx.Headers({"retry-after": "Wed, 21 Oct 2026 07:28:00 GMT"})
        assert parse_retry_after(headers, now=now) == 30.0

    def test_retry_after_from_reset(self):
        now = datetime(2026, 10, 21, tzinfo=timezone.utc)
        headers = httpx.Headers({"x-ratelimit-reset": str(int(now.timestamp()) + 40)})
        assert parse_retry_after(headers, now=now) == pytest.approx(40.0)

    def test_retry_after_absent(self):
        assert parse_retry_after(httpx.Headers()) is None


class TestStatusMapping:
    def _response(self, status: int, headers: dict | None = None) -> httpx.Response:
        request = httpx.Request("GET", "https://api.example.test/user")
        return httpx.Response(status, headers=headers, request=request)

    @pytest.mark.parametrize(
        ("status", "headers", "error"),
        [
            (401, None, AuthError),
            (403, None, AuthError),
            (403, {"x-ratelimit-remaining": "0"}, RateLimitedError),
            (403, {"retry-after": "5"}, RateLimitedError),
            (429, None, RateLimitedError),
            (404, None, NotFoundError),
            (502, None, NetworkTransientError),
        ],
    )
    def test_errors(self, status, headers, error):
        with pytest.raises(error):
            raise_for_status(self._response(status, headers), "gh")

    def test_success_passes(self):
        raise_for_status(self._response(200), "gh")

    def test_rate_limited_carries_retry_after(self):
        with pytest.raises(RateLimitedError) as exc_info:
            raise_for_status(self._response(429, {"retry-after": "7"}), "gh")
        assert exc_info.value.retry_after == 7.0


class TestGitHubProvider:
    def test_authenticate_sends_bearer_token(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["auth"] = request.headers["authorization"]
            return httpx.Response(200, json={"login": "alice"})

        provider = make_provider(GitHubProvider, HostKind.GITHUB, handler)

        assert provider.authenticate() == "alice"
        assert seen["auth"] == "Bearer tok"

    def test_missing_token_is_auth_error(self):
        provider = make_provider(GitHubProvider, HostKind.GITHUB, lambda r: httpx.Response(200))
        provider._credentials = MemoryCredentialStore()

        with pytest.raises(AuthError):
            provider.authenticate()

    def test_list_follows_link_header_and_resolves_parents(self):
        parent = {
            "owner": {"login": "acme"},
            "name": "widgets",
            "clone_url": "https://github.com/acme/widgets.git",
        }

        def handler(request: httpx.Request) -> httpx.Response:
            path = request.url.path
            if path == "/user/repos" and request.url.params.get("page") != "2":
                return httpx.Response(
                    200,
                    json=[gh_repo("alice", "notes"), gh_repo("alice", "widgets", fork=True)],
                    headers={"link": '<https://api.example.test/user/repos?page=2>; rel="next"'},
                )
            if path == "/user/repos":
                return httpx.Response(200, json=[gh_repo("alice", "zzz")])
            if path == "/repos/alice/widgets":
                return httpx.Response(
                    200, json=gh_repo("alice", "widgets", fork=True, parent=parent)
                )
            return httpx.Response(404)

        provider = make_provider(GitHubProvider, HostKind.GITHUB, handler)
        repos = list(provider.list_repos())

        assert [r.full_name for r in repos] == ["alice/notes", "alice/widgets", "alice/zzz"]
        fork = repos[1]
        assert fork.is_fork
        assert fork.parent_full_name == "acme/widgets"
        assert fork.parent_clone_url == "https://github.com/acme/widgets.git"
        assert fork.domain == "example.test"
        assert fork.visibility == Visibility.PUBLIC

    def test_rate_limited_then_succeeds(self):
        responses = iter(
            [
                httpx.Response(
                    403,
                    headers={"x-ratelimit-remaining": "0", "retry-after": "3"},
                ),
                httpx.Response(
                    200,
                    json={"login": "alice"},
                    headers={"x-ratelimit-limit": "5000", "x-ratelimit-remaining": "4999"},
                ),
            ]
        )
        sleeps: list[float] = []
        provider = make_provider(
            GitHubProvider, HostKind.GITHUB, lambda r: next(responses), sleeps=sleeps
        )

        assert provider.authenticate() == "alice"
        assert sleeps == [3.0]
        assert provider.last_rate_limit.remaining == 4999

    def test_server_errors_exhaust_retries(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(503)

        provider = make_provider(GitHubProvider, HostKind.GITHUB, handler)

        with pytest.raises(NetworkTransientError):
            provider.authenticate()
        assert len(calls) == 3

    def test_auth_failure_not_retried(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(401)

        provider = make_provider(GitHubProvider, HostKind.GITHUB, handler)

        with pytest.raises(AuthError):
            provider.authenticate()
        assert len(calls) == 1

    def test_connection_error_is_transient(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        provider = make_provider(GitHubProvider, HostKind.GITHUB, handler)

        with pytest.raises(NetworkTransientError):
            provider.authenticate()

    def test_get_repo_missing_returns_none(self):
        provider = make_provider(GitHubProvider, HostKind.GITHUB, lambda r: httpx.Response(404))
        assert provider.get_repo("acme", "gone") is None

    def test_rate_limit_endpoint(self):
        body = {"resources": {"core": {"limit": 5000, "remaining": 42, "reset": 0}}}
        provider = make_provider(
            GitHubProvider, HostKind.GITHUB, lambda r: httpx.Response(200, json=body)
        )

        info = provider.get_rate_limit()
        assert (info.limit, info.remaining) == (5000, 42)


class TestGitLabProvider:
    def test_pages_with_next_page_header(self):
        pages = {
            "1": (
                [
                    {
                        "path_with_namespace": "team/sub/widgets",
                        "http_url_to_repo": "https://example.test/team/sub/widgets.git",
                        "visibility": "internal",
                        "forked_from_project": {
                            "path_with_namespace": "acme/widgets",
                            "http_url_to_repo": "https://example.test/acme/widgets.git",
                        },
                    }
                ],
                {"x-next-page": "2"},
            ),
            "2": ([{"path_with_namespace": "alice/notes"}], {"x-next-page": ""}),
        }

        def handler(request: httpx.Request) -> httpx.Response:
            assert request.headers["private-token"] == "tok"
            body, headers = pages[request.url.params["page"]]
            return httpx.Response(200, json=body, headers=headers)

        provider = make_provider(GitLabProvider, HostKind.GITLAB, handler)
        repos = list(provider.list_repos())

        assert [(r.owner, r.name) for r in repos] == [("team/sub", "widgets"), ("alice", "notes")]
        assert repos[0].is_fork
        assert repos[0].parent_full_name == "acme/widgets"
        assert repos[0].visibility == Visibility.INTERNAL
        assert not repos[1].is_fork

    def test_get_repo_url_encodes_path(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request.url.raw_path.decode())
            return httpx.Response(200, json={"path_with_namespace": "team/sub/widgets"})

        provider = make_provider(GitLabProvider, HostKind.GITLAB, handler)
        repo = provider.get_repo("team/sub", "widgets")

        assert repo.owner == "team/sub"
        assert seen == ["/projects/team%2Fsub%2Fwidgets"]


class TestGiteaProvider:
    def test_short_page_ends_listing(self):
        seen_pages = []

        def handler(request: httpx.Request) -> httpx.Response:
            page = int(request.url.params["page"])
            seen_pages.append(page)
            items = [gh_repo("alice", f"r{page}a"), gh_repo("alice", f"r{page}b")]
            return httpx.Response(200, json=items if page == 1 else items[:1])

        provider = make_provider(GiteaProvider, HostKind.GITEA, handler, page_size=2)
        names = [r.name for r in provider.list_repos()]

        assert names == ["r1a", "r1b", "r2a"]
        assert seen_pages == [1, 2]

    def test_rate_limit_is_unlimited(self):
        provider = make_provider(GiteaProvider, HostKind.GITEA, lambda r: httpx.Response(500))
        assert provider.get_rate_limit().remaining is None


class TestRegistry:
    def test_shipped_providers(self):
        assert list_provider_kinds() == [HostKind.GITEA, HostKind.GITHUB, HostKind.GITLAB]

    def test_incomplete_provider_cannot_be_built(self):
        class HeadersOnly(HttpHostProvider):
            def auth_headers(self, token):
                return {}

        with pytest.raises(TypeError):
            HeadersOnly(Host.create("x", HostKind.GITHUB), MemoryCredentialStore())

    def test_create_provider(self):
        host = Host.create("gh", HostKind.GITHUB)
        provider = create_provider(host, MemoryCredentialStore())
        assert isinstance(provider, GitHubProvider)
        provider.close()

    def test_unsupported_kind(self):
        host = Host.create("bb", HostKind.BITBUCKET)
        with pytest.raises(ConfigError, match="not supported"):
            create_provider(host, MemoryCredentialStore())

    def test_duplicate_registration(self):
        with pytest.raises(ValueError):
            register_provider(HostKind.GITHUB)(GitHubProvider)

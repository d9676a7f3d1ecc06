"""
GitHub host provider (REST API v3).

API Endpoints:
- Authenticate: GET /user
- List: GET /user/repos?per_page=100 (paged via the Link header)
- Repo: GET /repos/{owner}/{name} (includes ``parent`` for forks)
- Quota: GET /rate_limit

The listing endpoint omits ``parent``, so each fork costs one extra
request to resolve its upstream.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from datetime import datetime, timezone
from typing import Any

from forksync.core.errors import NotFoundError
from forksync.core.hosts.base import register_provider
from forksync.core.hosts.http import HttpHostProvider
from forksync.core.hosts.models import RemoteRepo
from forksync.core.models import HostKind, RateLimitInfo, Visibility

logger = logging.getLogger(__name__)


@register_provider(HostKind.GITHUB)
class GitHubProvider(HttpHostProvider):
    """Discovery against github.com or a GitHub Enterprise API URL."""

    def auth_headers(self, token: str) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }

    def authenticate(self) -> str:
        data = self._get_json("/user")
        return str(data["login"])

    def _to_remote(self, item: dict[str, Any]) -> RemoteRepo:
        parent = item.get("parent") or {}
        parent_owner = (parent.get("owner") or {}).get("login")
        visibility = item.get("visibility") or ("private" if item.get("private") else "public")
        return RemoteRepo(
            domain=self.host.domain,
            owner=item["owner"]["login"],
            name=item["name"],
            is_fork=bool(item.get("fork")),
            parent_owner=parent_owner,
            parent_name=parent.get("name"),
            parent_clone_url=parent.get("clone_url"),
            parent_default_branch=parent.get("default_branch"),
            default_branch=item.get("default_branch") or "main",
            clone_url=item.get("clone_url"),
            visibility=Visibility.parse(visibility),
        )

    def list_repos(self) -> Iterator[RemoteRepo]:
        url: str | None = "/user/repos"
        params: dict[str, Any] | None = {"per_page": self.page_size, "sort": "full_name"}
        pages = 0

        while url is not None:
            pages += 1
            if pages > self.max_pages:
                logger.warning("%s: stopping after %d pages", self.host.label, self.max_pages)
                return

            response = self._get(url, params)
            for item in response.json():
                if item.get("fork") and not item.get("parent"):
                    # listing omits the parent; fetch the full record
                    full = self.get_repo(item["owner"]["login"], item["name"])
                    if full is not None:
                        yield full
                        continue
                yield self._to_remote(item)

            url = response.links.get("next", {}).get("url")
            # the next link already carries the query string
            params = None

    def get_repo(self, owner: str, name: str) -> RemoteRepo | None:
        try:
            data = self._get_json(f"/repos/{owner}/{name}")
        except NotFoundError:
            return None
        return self._to_remote(data)

    def get_rate_limit(self) -> RateLimitInfo:
        data = self._get_json("/rate_limit")
        core = (data.get("resources") or {}).get("core") or data.get("rate") or {}
        reset = core.get("reset")
        return RateLimitInfo(
            limit=core.get("limit"),
            remaining=core.get("remaining"),
            reset_at=datetime.fromtimestamp(reset, tz=timezone.utc) if reset else None,
        )

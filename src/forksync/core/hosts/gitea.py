"""
Gitea host provider (REST API v1).

Gitea (and Forgejo) page by number with a ``limit`` parameter and do not
rate limit API tokens, so the quota snapshot is always unlimited.
"""

from __future__ import annotations

from collections.abc import Iterator
from typing import Any

from forksync.core.errors import NotFoundError
from forksync.core.hosts.base import register_provider
from forksync.core.hosts.http import HttpHostProvider
from forksync.core.hosts.models import RemoteRepo
from forksync.core.models import HostKind, RateLimitInfo, Visibility


@register_provider(HostKind.GITEA)
class GiteaProvider(HttpHostProvider):
    def __init__(self, *args: Any, **kwargs: Any) -> None:
        kwargs.setdefault("page_size", 50)
        super().__init__(*args, **kwargs)

    def auth_headers(self, token: str) -> dict[str, str]:
        return {"Authorization": f"token {token}", "Accept": "application/json"}

    def authenticate(self) -> str:
        data = self._get_json("/user")
        return str(data["login"])

    def _to_remote(self, item: dict[str, Any]) -> RemoteRepo:
        parent = item.get("parent") or {}
        return RemoteRepo(
            domain=self.host.domain,
            owner=item["owner"]["login"],
            name=item["name"],
            is_fork=bool(item.get("fork")),
            parent_owner=(parent.get("owner") or {}).get("login"),
            parent_name=parent.get("name"),
            parent_clone_url=parent.get("clone_url"),
            parent_default_branch=parent.get("default_branch"),
            default_branch=item.get("default_branch") or "main",
            clone_url=item.get("clone_url"),
            visibility=Visibility.PRIVATE if item.get("private") else Visibility.PUBLIC,
        )

    def list_repos(self) -> Iterator[RemoteRepo]:
        for page in range(1, self.max_pages + 1):
            items = self._get_json("/user/repos", {"page": page, "limit": self.page_size})
            for item in items:
                yield self._to_remote(item)
            if len(items) < self.page_size:
                return

    def get_repo(self, owner: str, name: str) -> RemoteRepo | None:
        try:
            data = self._get_json(f"/repos/{owner}/{name}")
        except NotFoundError:
            return None
        return self._to_remote(data)

    def get_rate_limit(self) -> RateLimitInfo:
        return RateLimitInfo()

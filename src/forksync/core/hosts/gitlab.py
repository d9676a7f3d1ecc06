"""
GitLab host provider (REST API v4).

Projects are listed with ``membership=true`` and paged via the
``X-Next-Page`` header. Owners are full namespace paths, so subgroup
projects key as (domain, "group/sub", name).
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from typing import Any
from urllib.parse import quote

from forksync.core.errors import NotFoundError
from forksync.core.hosts.base import register_provider
from forksync.core.hosts.http import HttpHostProvider
from forksync.core.hosts.models import RemoteRepo
from forksync.core.models import HostKind, RateLimitInfo, Visibility

logger = logging.getLogger(__name__)


def _split_path(path_with_namespace: str) -> tuple[str, str]:
    owner, _, name = path_with_namespace.rpartition("/")
    return owner, name


@register_provider(HostKind.GITLAB)
class GitLabProvider(HttpHostProvider):
    """Discovery against gitlab.com or a self-managed instance."""

    def auth_headers(self, token: str) -> dict[str, str]:
        return {"PRIVATE-TOKEN": token}

    def authenticate(self) -> str:
        data = self._get_json("/user")
        return str(data["username"])

    def _to_remote(self, item: dict[str, Any]) -> RemoteRepo:
        owner, name = _split_path(item["path_with_namespace"])
        parent = item.get("forked_from_project") or {}
        parent_owner, parent_name = (
            _split_path(parent["path_with_namespace"]) if parent else (None, None)
        )
        return RemoteRepo(
            domain=self.host.domain,
            owner=owner,
            name=name,
            is_fork=bool(parent),
            parent_owner=parent_owner,
            parent_name=parent_name,
            parent_clone_url=parent.get("http_url_to_repo"),
            parent_default_branch=parent.get("default_branch"),
            default_branch=item.get("default_branch") or "main",
            clone_url=item.get("http_url_to_repo"),
            visibility=Visibility.parse(item.get("visibility")),
        )

    def list_repos(self) -> Iterator[RemoteRepo]:
        page: str | None = "1"
        pages = 0

        while page:
            pages += 1
            if pages > self.max_pages:
                logger.warning("%s: stopping after %d pages", self.host.label, self.max_pages)
                return

            response = self._get(
                "/projects",
                {"membership": "true", "per_page": self.page_size, "page": page, "simple": "false"},
            )
            for item in response.json():
                yield self._to_remote(item)
            page = response.headers.get("x-next-page") or None

    def get_repo(self, owner: str, name: str) -> RemoteRepo | None:
        project_id = quote(f"{owner}/{name}", safe="")
        try:
            data = self._get_json(f"/projects/{project_id}")
        except NotFoundError:
            return None
        return self._to_remote(data)

    def get_rate_limit(self) -> RateLimitInfo:
        # GitLab has no quota endpoint; report what the last response said
        if self.last_rate_limit is None:
            self.authenticate()
        return self.last_rate_limit or RateLimitInfo()

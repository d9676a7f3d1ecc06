"""
Data models for provider discovery results.
"""

from pydantic import BaseModel, Field

from forksync.core.models import RepoKey, Visibility


class RemoteRepo(BaseModel):
    """
    A repository as listed by a hosting provider.

    ``domain`` is the host name used in clone URLs, so a descriptor can be
    keyed without knowing which Host produced it.
    """

    domain: str
    owner: str
    name: str
    is_fork: bool = False
    parent_owner: str | None = Field(default=None, description="Upstream owner, forks only")
    parent_name: str | None = None
    parent_clone_url: str | None = None
    parent_default_branch: str | None = None
    default_branch: str = "main"
    clone_url: str | None = None
    visibility: Visibility = Visibility.UNKNOWN

    @property
    def key(self) -> RepoKey:
        return RepoKey(self.domain, self.owner, self.name)

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"

    @property
    def parent_full_name(self) -> str | None:
        if self.parent_owner and self.parent_name:
            return f"{self.parent_owner}/{self.parent_name}"
        return None

    @property
    def parent_key(self) -> RepoKey | None:
        if self.parent_owner and self.parent_name:
            return RepoKey(self.domain, self.parent_owner, self.parent_name)
        return None

"""
Core data models for forksync.

Defines the persisted records (Host, Repo, SyncState, HistoryRecord), the
identity key used to match repositories across hosts and the filesystem,
and the enums shared by the planner, state machine and executor.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, computed_field

from forksync.core.errors import ErrorKind


def utcnow() -> datetime:
    """Timezone-aware current time; all stored timestamps are UTC."""
    return datetime.now(timezone.utc)


# ==============================================================================
# Hosts
# ==============================================================================


class HostKind(str, Enum):
    """Hosting provider variant."""

    GITHUB = "github"
    GITLAB = "gitlab"
    GITEA = "gitea"
    BITBUCKET = "bitbucket"
    AZURE_DEVOPS = "azure_devops"

    @property
    def default_api_url(self) -> str:
        return _DEFAULT_API_URLS[self]

    @property
    def default_domain(self) -> str:
        return _DEFAULT_DOMAINS[self]


_DEFAULT_API_URLS = {
    HostKind.GITHUB: "https://api.github.com",
    HostKind.GITLAB: "https://gitlab.com/api/v4",
    HostKind.GITEA: "https://gitea.com/api/v1",
    HostKind.BITBUCKET: "https://api.bitbucket.org/2.0",
    HostKind.AZURE_DEVOPS: "https://dev.azure.com",
}

_DEFAULT_DOMAINS = {
    HostKind.GITHUB: "github.com",
    HostKind.GITLAB: "gitlab.com",
    HostKind.GITEA: "gitea.com",
    HostKind.BITBUCKET: "bitbucket.org",
    HostKind.AZURE_DEVOPS: "dev.azure.com",
}


class RateLimitInfo(BaseModel):
    """Remaining provider quota as last reported."""

    limit: int | None = Field(default=None, description="Total requests per window")
    remaining: int | None = Field(default=None, description="Requests left in this window")
    reset_at: datetime | None = Field(default=None, description="When the window resets")
    observed_at: datetime = Field(default_factory=utcnow)

    @property
    def exhausted(self) -> bool:
        return self.remaining is not None and self.remaining <= 0


class Host(BaseModel):
    """
    A registered hosting account.

    The host never holds credential bytes, only ``credential_key``, the
    opaque handle a CredentialStore resolves to a token.
    """

    id: int | None = Field(default=None, description="Store-assigned id")
    label: str = Field(description="Unique user-chosen name, e.g. 'gh'")
    kind: HostKind
    api_url: str = Field(description="Base URL of the provider REST API")
    domain: str = Field(description="Host name appearing in clone URLs")
    username: str | None = None
    credential_key: str = Field(description="Secret id in the credential store")
    rate_limit: RateLimitInfo | None = None
    created_at: datetime = Field(default_factory=utcnow)

    @classmethod
    def create(
        cls,
        label: str,
        kind: HostKind,
        *,
        api_url: str | None = None,
        domain: str | None = None,
        username: str | None = None,
    ) -> Host:
        """Build a new host with provider defaults filled in."""
        return cls(
            label=label,
            kind=kind,
            api_url=(api_url or kind.default_api_url).rstrip("/"),
            domain=(domain or kind.default_domain).lower(),
            username=username,
            credential_key=credential_key_for(label),
        )


def credential_key_for(label: str) -> str:
    return f"forksync:{label}"


# ==============================================================================
# Repositories
# ==============================================================================


@dataclass(frozen=True, order=True)
class RepoKey:
    """
    Normalized identity of a repository: (host domain, owner, name).

    All parts are lower-cased. ``owner`` may contain slashes for GitLab
    subgroups.
    """

    host: str
    owner: str
    name: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "host", self.host.lower())
        object.__setattr__(self, "owner", self.owner.lower())
        object.__setattr__(self, "name", self.name.lower())

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"

    def __str__(self) -> str:
        return f"{self.host}/{self.owner}/{self.name}"


class Visibility(str, Enum):
    PUBLIC = "public"
    PRIVATE = "private"
    INTERNAL = "internal"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: str | None) -> Visibility:
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN


class DiscoverySource(str, Enum):
    """How a repo record first came to exist."""

    API = "api"
    FILESYSTEM = "filesystem"
    MANUAL = "manual"
    PARENT = "parent"


class Repo(BaseModel):
    """
    A repository known to the store.

    Identity is (host_id, owner, name). A record may be remote-only
    (no local_path) or local-only (discovered on disk, not in the
    provider listing).
    """

    id: int | None = None
    host_id: int
    owner: str
    name: str
    clone_url: str | None = None
    local_path: Path | None = None
    is_fork: bool = False
    parent_repo_id: int | None = Field(default=None, description="Upstream Repo id")
    parent_full_name: str | None = None
    parent_clone_url: str | None = None
    default_branch: str = "main"
    visibility: Visibility = Visibility.UNKNOWN
    discovery_source: DiscoverySource = DiscoverySource.API
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"


# ==============================================================================
# Sync
# ==============================================================================


class MergeStrategy(str, Enum):
    """How upstream changes are applied to a fork's default branch."""

    FF = "ff"
    MERGE = "merge"
    REBASE = "rebase"


class SyncStatus(str, Enum):
    """Fork status relative to its upstream."""

    SYNCED = "synced"
    BEHIND = "behind"
    AHEAD = "ahead"
    DIVERGED = "diverged"
    ERROR = "error"
    UNKNOWN = "unknown"


class SyncPhase(str, Enum):
    """Phases of a single fork sync, in execution order."""

    INIT = "init"
    ENSURE_LOCAL_CLONE = "ensure_local_clone"
    ENSURE_UPSTREAM_REMOTE = "ensure_upstream_remote"
    FETCH_UPSTREAM = "fetch_upstream"
    CHECKOUT_DEFAULT_BRANCH = "checkout_default_branch"
    COMPUTE_DIVERGENCE = "compute_divergence"
    APPLY_STRATEGY = "apply_strategy"
    PUSH_ORIGIN = "push_origin"
    RECORD_RESULT = "record_result"

    @property
    def order(self) -> int:
        return _PHASE_ORDER.index(self)


_PHASE_ORDER = list(SyncPhase)


class TaskState(str, Enum):
    """Terminal state of one sync task."""

    COMPLETED = "completed"
    FAILED = "failed"
    INTERRUPTED = "interrupted"


class SyncOutcome(str, Enum):
    """Outcome stored on History and SyncState."""

    SUCCESS = "success"
    NEEDS_MANUAL_RESOLUTION = "needs_manual_resolution"
    CONFLICT = "conflict"
    ERROR = "error"
    INTERRUPTED = "interrupted"


def outcome_for(state: TaskState, kind: ErrorKind | None = None) -> SyncOutcome:
    """Map a terminal state (and failure kind) to the recorded outcome."""
    if state == TaskState.COMPLETED:
        return SyncOutcome.SUCCESS
    if state == TaskState.INTERRUPTED:
        return SyncOutcome.INTERRUPTED
    if kind == ErrorKind.NEEDS_MANUAL_RESOLUTION:
        return SyncOutcome.NEEDS_MANUAL_RESOLUTION
    if kind == ErrorKind.MERGE_CONFLICT:
        return SyncOutcome.CONFLICT
    return SyncOutcome.ERROR


def derive_status(
    ahead: int | None, behind: int | None, outcome: SyncOutcome | None = None
) -> SyncStatus:
    """
    Classify a fork from its divergence counts and last outcome.

    This is the only place a SyncStatus is produced.

    Example:
        >>> derive_status(0, 3)
        <SyncStatus.BEHIND: 'behind'>
        >>> derive_status(2, 5, SyncOutcome.NEEDS_MANUAL_RESOLUTION)
        <SyncStatus.DIVERGED: 'diverged'>
    """
    if outcome == SyncOutcome.ERROR:
        return SyncStatus.ERROR
    if ahead is None or behind is None:
        return SyncStatus.UNKNOWN
    if ahead == 0 and behind == 0:
        return SyncStatus.SYNCED
    if ahead == 0:
        return SyncStatus.BEHIND
    if behind == 0:
        return SyncStatus.AHEAD
    return SyncStatus.DIVERGED


class SyncState(BaseModel):
    """
    Current sync state of one fork.

    ``status`` is computed from (ahead, behind, last_outcome) and cannot be
    assigned.
    """

    model_config = ConfigDict(frozen=True)

    repo_id: int
    ahead: int | None = Field(default=None, ge=0)
    behind: int | None = Field(default=None, ge=0)
    strategy: MergeStrategy | None = Field(
        default=None, description="Per-repo configured strategy, None means use the default"
    )
    last_outcome: SyncOutcome | None = None
    last_synced_at: datetime | None = None
    last_error: str | None = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def status(self) -> SyncStatus:
        return derive_status(self.ahead, self.behind, self.last_outcome)


class HistoryRecord(BaseModel):
    """One append-only audit entry for a sync task."""

    seq: int | None = Field(default=None, description="Store-assigned sequence number")
    repo_id: int
    started_at: datetime
    ended_at: datetime
    strategy: MergeStrategy
    dry_run: bool = False
    phase: SyncPhase = Field(description="Last phase reached")
    state: TaskState
    outcome: SyncOutcome
    error_kind: ErrorKind | None = None
    before_sha: str | None = None
    after_sha: str | None = None
    ahead: int | None = None
    behind: int | None = None
    message: str = ""

    @property
    def duration_seconds(self) -> float:
        return (self.ended_at - self.started_at).total_seconds()

"""
Configuration data models for forksync.

These models define the structure of .forksync.json and
~/.config/forksync/config.json, validated by Pydantic.
"""

import os
from pathlib import Path

from pydantic import BaseModel, Field, field_validator

from forksync.core.models import MergeStrategy


def get_xdg_data_home() -> Path:
    if xdg_home := os.environ.get("XDG_DATA_HOME"):
        return Path(xdg_home)
    return Path.home() / ".local" / "share"


class RetrySettings(BaseModel):
    """
    Retry policy for provider API calls and network git operations.

    Only NetworkTransient and RateLimited failures are retried.
    """

    max_attempts: int = Field(default=3, ge=1, description="Total attempts including the first")
    base_delay: float = Field(default=1.0, gt=0, description="Seconds before the first retry")
    multiplier: float = Field(default=2.0, ge=1.0, description="Backoff growth per attempt")
    max_delay: float = Field(
        default=60.0, gt=0, description="Upper bound on any single backoff wait"
    )
    max_retry_after: float = Field(
        default=3600.0,
        ge=0,
        description="Longest provider retry-after honored; longer waits fail immediately",
    )


class ForkSyncConfig(BaseModel):
    """Top-level configuration."""

    default_merge_strategy: MergeStrategy = Field(
        default=MergeStrategy.FF,
        description="Strategy used when neither the command nor the repo names one",
    )
    sync_concurrency: int = Field(
        default=8, ge=1, description="Maximum forks synced at the same time"
    )
    scan_paths: list[Path] = Field(
        default_factory=list, description="Filesystem roots searched for working copies"
    )
    max_scan_depth: int = Field(
        default=4, ge=0, description="How many directory levels below a root to search"
    )
    data_dir: Path = Field(
        default_factory=lambda: get_xdg_data_home() / "forksync",
        description="Where the state database lives",
    )
    clone_root: Path | None = Field(
        default=None,
        description="Where forks without a local path are cloned (default: <data_dir>/repos)",
    )
    git_timeout_seconds: int = Field(
        default=600, ge=1, description="Timeout for a single git invocation"
    )
    retry: RetrySettings = Field(default_factory=RetrySettings)

    @field_validator("scan_paths", mode="before")
    @classmethod
    def _split_scan_paths(cls, v: object) -> object:
        if isinstance(v, str):
            return [v]
        return v

    @field_validator("scan_paths")
    @classmethod
    def _expand_scan_paths(cls, v: list[Path]) -> list[Path]:
        return [p.expanduser() for p in v]

    @field_validator("data_dir", "clone_root")
    @classmethod
    def _expand_dir(cls, v: Path | None) -> Path | None:
        return v.expanduser() if v is not None else None

    @property
    def db_path(self) -> Path:
        return self.data_dir / "forksync.db"

    @property
    def resolved_clone_root(self) -> Path:
        return self.clone_root or (self.data_dir / "repos")

"""
Tests for core data models: status derivation, outcomes and hosts.
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from forksync.core.errors import ErrorKind
from forksync.core.models import (
    Host,
    HostKind,
    RepoKey,
    SyncOutcome,
    SyncPhase,
    SyncState,
    SyncStatus,
    TaskState,
    Visibility,
    derive_status,
    outcome_for,
)


class TestDeriveStatus:
    @pytest.mark.parametrize(
        ("ahead", "behind", "expected"),
        [
            (0, 0, SyncStatus.SYNCED),
            (0, 3, SyncStatus.BEHIND),
            (2, 0, SyncStatus.AHEAD),
            (2, 5, SyncStatus.DIVERGED),
            (None, 1, SyncStatus.UNKNOWN),
            (None, None, SyncStatus.UNKNOWN),
        ],
    )
    def test_counts(self, ahead, behind, expected):
        assert derive_status(ahead, behind) == expected

    def test_error_outcome_wins(self):
        assert derive_status(0, 0, SyncOutcome.ERROR) == SyncStatus.ERROR

    def test_manual_resolution_keeps_counts(self):
        """A refused fast-forward still reports the fork as diverged."""
        assert derive_status(1, 4, SyncOutcome.NEEDS_MANUAL_RESOLUTION) == SyncStatus.DIVERGED

    def test_interrupted_keeps_counts(self):
        assert derive_status(0, 2, SyncOutcome.INTERRUPTED) == SyncStatus.BEHIND


class TestOutcomeFor:
    def test_completed(self):
        assert outcome_for(TaskState.COMPLETED) == SyncOutcome.SUCCESS

    def test_interrupted(self):
        assert outcome_for(TaskState.INTERRUPTED, ErrorKind.NETWORK_TRANSIENT) == (
            SyncOutcome.INTERRUPTED
        )

    @pytest.mark.parametrize(
        ("kind", "expected"),
        [
            (ErrorKind.NEEDS_MANUAL_RESOLUTION, SyncOutcome.NEEDS_MANUAL_RESOLUTION),
            (ErrorKind.MERGE_CONFLICT, SyncOutcome.CONFLICT),
            (ErrorKind.PUSH_REJECTED, SyncOutcome.ERROR),
            (None, SyncOutcome.ERROR),
        ],
    )
    def test_failed(self, kind, expected):
        assert outcome_for(TaskState.FAILED, kind) == expected


class TestSyncState:
    def test_status_is_computed(self):
        state = SyncState(repo_id=1, ahead=0, behind=3)

        assert state.status == SyncStatus.BEHIND
        assert state.model_dump()["status"] == SyncStatus.BEHIND

    def test_status_cannot_be_assigned(self):
        state = SyncState(repo_id=1, ahead=0, behind=0)
        with pytest.raises(ValidationError):
            state.ahead = 4  # type: ignore[misc]

    def test_negative_counts_rejected(self):
        with pytest.raises(ValidationError):
            SyncState(repo_id=1, ahead=-1, behind=0)

    def test_fresh_state_is_unknown(self):
        assert SyncState(repo_id=1).status == SyncStatus.UNKNOWN


class TestHost:
    def test_create_fills_defaults(self):
        host = Host.create("gh", HostKind.GITHUB)

        assert host.api_url == "https://api.github.com"
        assert host.domain == "github.com"
        assert host.credential_key == "forksync:gh"
        assert host.id is None

    def test_create_normalizes_overrides(self):
        host = Host.create(
            "work",
            HostKind.GITLAB,
            api_url="https://git.example.com/api/v4/",
            domain="Git.Example.COM",
        )

        assert host.api_url == "https://git.example.com/api/v4"
        assert host.domain == "git.example.com"


class TestMisc:
    def test_repo_key_str(self):
        key = RepoKey("GitHub.com", "Alice", "Widgets")
        assert str(key) == "github.com/alice/widgets"
        assert key.full_name == "alice/widgets"

    def test_visibility_parse(self):
        assert Visibility.parse("private") == Visibility.PRIVATE
        assert Visibility.parse("secret") == Visibility.UNKNOWN
        assert Visibility.parse(None) == Visibility.UNKNOWN

    def test_phase_order(self):
        assert SyncPhase.INIT.order == 0
        assert SyncPhase.FETCH_UPSTREAM.order < SyncPhase.APPLY_STRATEGY.order
        assert SyncPhase.RECORD_RESULT.order == len(SyncPhase) - 1

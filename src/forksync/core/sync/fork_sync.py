"""
Per-fork sync state machine.

Phases run in a fixed order, each at most once:

    Init -> EnsureLocalClone -> EnsureUpstreamRemote -> FetchUpstream
         -> CheckoutDefaultBranch -> ComputeDivergence -> [dry-run stops]
         -> ApplyStrategy -> PushOrigin -> RecordResult

A task ends Completed, Failed(phase, kind) or Interrupted. RecordResult
always runs and writes SyncState and History in one store transaction,
including for partial-progress failures.

Dry-run fetches the upstream branch by URL into FETCH_HEAD and never
clones, adds remotes, checks out, or pushes.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING

from forksync.core.errors import (
    CloneError,
    ErrorKind,
    ForkSyncError,
    LocalDirtyWorkingTreeError,
    NeedsManualResolutionError,
    NotFoundError,
)
from forksync.core.models import (
    HistoryRecord,
    MergeStrategy,
    Repo,
    SyncOutcome,
    SyncPhase,
    SyncState,
    SyncStatus,
    TaskState,
    derive_status,
    outcome_for,
    utcnow,
)
from forksync.core.sync.git import GitClient
from forksync.core.sync.planner import SyncTask

if TYPE_CHECKING:
    from forksync.core.context import SyncContext

logger = logging.getLogger(__name__)

UPSTREAM_REMOTE = "upstream"
ORIGIN_REMOTE = "origin"

PhaseHook = Callable[[SyncTask, SyncPhase], None]


class _Interrupted(Exception):
    pass


class _Stop(Exception):
    """Ends the phase sequence early with a Completed result."""


@dataclass
class TaskResult:
    """Terminal result of one sync task."""

    task: SyncTask
    state: TaskState
    phase: SyncPhase
    outcome: SyncOutcome
    started_at: datetime
    ended_at: datetime
    dry_run: bool = False
    error_kind: ErrorKind | None = None
    message: str = ""
    before_sha: str | None = None
    after_sha: str | None = None
    ahead: int | None = None
    behind: int | None = None
    status: SyncStatus = SyncStatus.UNKNOWN
    history_seq: int | None = None
    pushed: bool = False
    phases: list[SyncPhase] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.state == TaskState.COMPLETED

    @property
    def duration_seconds(self) -> float:
        return (self.ended_at - self.started_at).total_seconds()


class ForkSyncStateMachine:
    """
    Drives one fork through the sync phases.

    Example:
        >>> machine = ForkSyncStateMachine(task, ctx, dry_run=True)
        >>> result = machine.run()
        >>> result.status, result.ahead, result.behind
        (<SyncStatus.BEHIND: 'behind'>, 0, 3)
    """

    def __init__(
        self,
        task: SyncTask,
        ctx: SyncContext,
        *,
        dry_run: bool = False,
        cancel_event: threading.Event | None = None,
        on_phase: PhaseHook | None = None,
    ) -> None:
        self.task = task
        self.ctx = ctx
        self.dry_run = dry_run
        self.cancel_event = cancel_event or threading.Event()
        self.on_phase = on_phase

        self.phase = SyncPhase.INIT
        self.phases: list[SyncPhase] = []
        self.repo: Repo | None = None
        self.previous: SyncState | None = None
        self.git: GitClient | None = None
        self.upstream_url: str | None = None
        self.branch = "main"
        self.upstream_branch = "main"
        self.local_ref = ""
        self.upstream_ref = ""
        self.before_sha: str | None = None
        self.after_sha: str | None = None
        self.ahead: int | None = None
        self.behind: int | None = None
        self.pushed = False
        self.notes: list[str] = []

    # ==========================================================================
    # Driver
    # ==========================================================================

    def _enter(self, phase: SyncPhase, *, check_cancel: bool = True) -> None:
        if check_cancel and self.cancel_event.is_set():
            raise _Interrupted()
        if phase != SyncPhase.INIT and phase.order <= self.phase.order:
            raise ForkSyncError(f"Phase {phase.value} cannot follow {self.phase.value}")
        self.phase = phase
        self.phases.append(phase)
        logger.debug("%s: entering %s", self.task, phase.value)
        if self.on_phase is not None:
            self.on_phase(self.task, phase)

    def _steps(self) -> list[tuple[SyncPhase, Callable[[], None]]]:
        steps = [
            (SyncPhase.ENSURE_LOCAL_CLONE, self._ensure_local_clone),
            (SyncPhase.ENSURE_UPSTREAM_REMOTE, self._ensure_upstream_remote),
            (SyncPhase.FETCH_UPSTREAM, self._fetch_upstream),
            (SyncPhase.CHECKOUT_DEFAULT_BRANCH, self._checkout_default_branch),
            (SyncPhase.COMPUTE_DIVERGENCE, self._compute_divergence),
        ]
        if not self.dry_run:
            steps += [
                (SyncPhase.APPLY_STRATEGY, self._apply_strategy),
                (SyncPhase.PUSH_ORIGIN, self._push_origin),
            ]
        return steps

    def run(self) -> TaskResult:
        """Run every phase and record the result; never raises for task failures."""
        started = utcnow()
        state = TaskState.COMPLETED
        kind: ErrorKind | None = None
        message = ""

        try:
            self._enter(SyncPhase.INIT)
            self._init()
            for phase, step in self._steps():
                self._enter(phase)
                step()
        except _Stop:
            pass
        except _Interrupted:
            state = TaskState.INTERRUPTED
            message = f"interrupted before {self._next_phase_name()}"
        except ForkSyncError as e:
            state, kind, message = TaskState.FAILED, e.kind, str(e)
            logger.warning("%s: failed in %s: %s", self.task, self.phase.value, e)
        except Exception as e:
            state, kind, message = TaskState.FAILED, ErrorKind.INTERNAL, f"{type(e).__name__}: {e}"
            logger.exception("%s: unexpected error in %s", self.task, self.phase.value)

        if state == TaskState.COMPLETED and not message:
            message = "; ".join(self.notes)
        return self._record(started, state, kind, message)

    def _next_phase_name(self) -> str:
        ordered = list(SyncPhase)
        index = ordered.index(self.phase) + 1
        return ordered[index].value if index < len(ordered) else "end"

    # ==========================================================================
    # Phases
    # ==========================================================================

    def _init(self) -> None:
        repo = self.ctx.store.get_repo(self.task.repo_id)
        if repo is None:
            raise NotFoundError(f"Repo {self.task.repo_id} no longer exists")
        self.repo = repo
        self.previous = self.ctx.store.get_sync_state(repo.id)  # type: ignore[arg-type]
        self.branch = repo.default_branch
        self.upstream_url, self.upstream_branch = self._resolve_upstream(repo)

    def _resolve_upstream(self, repo: Repo) -> tuple[str | None, str]:
        url = repo.parent_clone_url
        branch = repo.default_branch
        if repo.parent_repo_id is not None:
            parent = self.ctx.store.get_repo(repo.parent_repo_id)
            if parent is not None:
                url = parent.clone_url or url
                branch = parent.default_branch
        return url, branch

    def _ensure_local_clone(self) -> None:
        repo = self.repo
        assert repo is not None

        if repo.local_path is not None and (repo.local_path / ".git").exists():
            self.git = self.ctx.git_for(repo.local_path)
            return

        host = self.ctx.store.get_host(repo.host_id)
        dest = repo.local_path or self._default_clone_path(repo, host.domain if host else "")

        if self.dry_run:
            self.notes.append(f"would clone {repo.clone_url} into {dest}")
            raise _Stop()

        if not repo.clone_url:
            raise CloneError(f"{repo.full_name} has no clone URL")

        logger.info("Cloning %s into %s", repo.full_name, dest)
        self.git = GitClient.clone(
            repo.clone_url,
            dest,
            timeout=self.ctx.config.git_timeout_seconds,
            retry_policy=self.ctx.retry_policy,
        )
        self.repo, _ = self.ctx.store.upsert_repo(repo.model_copy(update={"local_path": dest}))
        self.notes.append(f"cloned into {dest}")

    def _default_clone_path(self, repo: Repo, domain: str) -> Path:
        return self.ctx.config.resolved_clone_root / domain / repo.owner / repo.name

    def _ensure_upstream_remote(self) -> None:
        if not self.upstream_url:
            raise NotFoundError(f"{self.task.full_name}: upstream repository is unknown")
        if self.dry_run:
            return
        assert self.git is not None
        if self.git.ensure_remote(UPSTREAM_REMOTE, self.upstream_url):
            logger.info("%s: upstream remote set to %s", self.task, self.upstream_url)

    def _fetch_upstream(self) -> None:
        assert self.git is not None and self.upstream_url is not None
        if self.dry_run:
            self.git.fetch_url(self.upstream_url, self.upstream_branch)
            self.upstream_ref = "FETCH_HEAD"
            return

        self.git.fetch(UPSTREAM_REMOTE, prune=True)
        self.git.fetch(ORIGIN_REMOTE, prune=True)
        self.upstream_ref = f"{UPSTREAM_REMOTE}/{self.upstream_branch}"
        if self.git.rev_parse(self.upstream_ref) is None:
            raise NotFoundError(f"Upstream branch {self.upstream_ref} does not exist")

    def _checkout_default_branch(self) -> None:
        assert self.git is not None
        origin_ref = f"{ORIGIN_REMOTE}/{self.branch}"

        if self.dry_run:
            self.local_ref = self.branch if self.git.has_local_branch(self.branch) else origin_ref
        else:
            if self.git.is_dirty():
                raise LocalDirtyWorkingTreeError(
                    f"{self.git.repo_path} has uncommitted changes", path=str(self.git.repo_path)
                )
            self.git.checkout(
                self.branch,
                start_point=origin_ref if self.git.rev_parse(origin_ref) else None,
            )
            self.local_ref = "HEAD"

        self.before_sha = self.git.rev_parse(self.local_ref)
        if self.before_sha is None:
            raise NotFoundError(f"Branch {self.branch} not found in {self.git.repo_path}")
        self.after_sha = self.before_sha

    def _compute_divergence(self) -> None:
        assert self.git is not None
        self.ahead, self.behind = self.git.ahead_behind(self.local_ref, self.upstream_ref)
        logger.debug("%s: ahead=%d behind=%d", self.task, self.ahead, self.behind)

    def _apply_strategy(self) -> None:
        assert self.git is not None and self.ahead is not None and self.behind is not None
        strategy = self.task.strategy

        if self.behind == 0:
            self.notes.append("already up to date with upstream")
            return

        if strategy == MergeStrategy.FF:
            if self.ahead > 0:
                raise NeedsManualResolutionError(
                    f"{self.task.full_name} has {self.ahead} commit(s) not in upstream; "
                    "fast-forward would discard them",
                    ahead=self.ahead,
                    behind=self.behind,
                )
            self.git.merge_ff_only(self.upstream_ref)
        elif strategy == MergeStrategy.MERGE:
            self.git.merge(self.upstream_ref)
        elif self.ahead == 0:
            self.git.merge_ff_only(self.upstream_ref)
        else:
            self.git.rebase(self.upstream_ref)

        self.after_sha = self.git.rev_parse("HEAD")
        self.ahead, self.behind = self.git.ahead_behind("HEAD", self.upstream_ref)

    def _push_origin(self) -> None:
        assert self.git is not None
        if self.after_sha == self.before_sha:
            return

        expected = None
        if self.task.strategy == MergeStrategy.REBASE:
            # history was rewritten; only replace the tip we started from
            expected = self.git.rev_parse(f"{ORIGIN_REMOTE}/{self.branch}") or self.before_sha
        self.git.push(ORIGIN_REMOTE, self.branch, expected_sha=expected)
        self.pushed = True

    # ==========================================================================
    # RecordResult
    # ==========================================================================

    def _record(
        self, started: datetime, state: TaskState, kind: ErrorKind | None, message: str
    ) -> TaskResult:
        reached = self.phase
        self._enter(SyncPhase.RECORD_RESULT, check_cancel=False)
        ended = utcnow()
        outcome = outcome_for(state, kind)

        previous = self.previous
        ahead = self.ahead if self.ahead is not None else (previous.ahead if previous else None)
        behind = self.behind if self.behind is not None else (previous.behind if previous else None)
        last_synced_at = previous.last_synced_at if previous else None
        if state == TaskState.COMPLETED and not self.dry_run:
            last_synced_at = ended

        sync_state = SyncState(
            repo_id=self.task.repo_id,
            ahead=ahead,
            behind=behind,
            strategy=previous.strategy if previous else None,
            last_outcome=outcome,
            last_synced_at=last_synced_at,
            last_error=message if state == TaskState.FAILED else None,
        )
        record = HistoryRecord(
            repo_id=self.task.repo_id,
            started_at=started,
            ended_at=ended,
            strategy=self.task.strategy,
            dry_run=self.dry_run,
            phase=reached,
            state=state,
            outcome=outcome,
            error_kind=kind,
            before_sha=self.before_sha,
            after_sha=self.after_sha,
            ahead=self.ahead,
            behind=self.behind,
            message=message[:1000],
        )

        history_seq = None
        try:
            history_seq = self.ctx.store.record_sync(sync_state, record).seq
        except ForkSyncError as e:
            logger.error("%s: could not record result: %s", self.task, e)
            if state == TaskState.COMPLETED:
                state, kind, message = TaskState.FAILED, e.kind, str(e)
                outcome = outcome_for(state, kind)

        return TaskResult(
            task=self.task,
            state=state,
            phase=reached,
            outcome=outcome,
            started_at=started,
            ended_at=ended,
            dry_run=self.dry_run,
            error_kind=kind,
            message=message,
            before_sha=self.before_sha,
            after_sha=self.after_sha,
            ahead=self.ahead,
            behind=self.behind,
            status=derive_status(ahead, behind, outcome),
            history_seq=history_seq,
            pushed=self.pushed,
            phases=list(self.phases),
        )

"""
Bounded-concurrency execution of sync tasks.

Tasks are submitted in planner order to a thread pool of ``concurrency``
workers. Each worker holds the repo's lock from the shared registry for
the whole state machine run, so one repo is never driven twice at once.
Every task's result is persisted by its own RecordResult phase as soon as
it finishes.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import Counter
from collections.abc import Callable, Sequence
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol

from forksync.core.errors import ErrorKind
from forksync.core.models import (
    HistoryRecord,
    SyncOutcome,
    SyncPhase,
    TaskState,
    utcnow,
)
from forksync.core.sync.fork_sync import ForkSyncStateMachine, PhaseHook, TaskResult
from forksync.core.sync.planner import SyncTask

if TYPE_CHECKING:
    from forksync.core.context import SyncContext

logger = logging.getLogger(__name__)

DEFAULT_CONCURRENCY = 8


class Runnable(Protocol):
    def run(self) -> TaskResult: ...


MachineFactory = Callable[..., Runnable]


class SyncCallback(Protocol):
    """Observer for executor progress."""

    def on_start(self, num_tasks: int, num_workers: int) -> None: ...

    def on_task_start(self, task: SyncTask) -> None: ...

    def on_task_complete(self, result: TaskResult) -> None: ...


class _NoOpCallback:
    def on_start(self, num_tasks: int, num_workers: int) -> None:
        pass

    def on_task_start(self, task: SyncTask) -> None:
        pass

    def on_task_complete(self, result: TaskResult) -> None:
        pass


@dataclass
class RunSummary:
    """
    Aggregate result of one executor run.

    ``results`` is in planner order regardless of completion order.
    """

    results: list[TaskResult] = field(default_factory=list)
    dry_run: bool = False
    concurrency: int = DEFAULT_CONCURRENCY
    peak_in_flight: int = 0
    duration_seconds: float = 0.0

    @property
    def counts(self) -> Counter[TaskState]:
        return Counter(r.state for r in self.results)

    @property
    def completed(self) -> int:
        return self.counts[TaskState.COMPLETED]

    @property
    def failed(self) -> int:
        return self.counts[TaskState.FAILED]

    @property
    def interrupted(self) -> int:
        return self.counts[TaskState.INTERRUPTED]

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def failures_by_kind(self) -> Counter[ErrorKind]:
        return Counter(
            r.error_kind for r in self.results if r.state == TaskState.FAILED and r.error_kind
        )

    @property
    def outcomes(self) -> Counter[SyncOutcome]:
        return Counter(r.outcome for r in self.results)

    @property
    def exit_code(self) -> int:
        """1 if any task failed, 130 if any was interrupted, else 0."""
        if self.failed:
            return 1
        if self.interrupted:
            return 130
        return 0

    def summary(self) -> str:
        parts = [f"{self.completed} completed", f"{self.failed} failed"]
        if self.interrupted:
            parts.append(f"{self.interrupted} interrupted")
        kinds = ", ".join(f"{k.value}={n}" for k, n in sorted(self.failures_by_kind.items()))
        text = f"{self.total} task(s): " + ", ".join(parts)
        return f"{text} ({kinds})" if kinds else text


class SyncExecutor:
    """
    Runs many fork syncs with bounded parallelism.

    Example:
        >>> executor = SyncExecutor(ctx, concurrency=8)
        >>> summary = executor.run(plan.tasks)
        >>> summary.summary()
        '20 task(s): 19 completed, 1 failed (needs_manual_resolution=1)'
    """

    def __init__(
        self,
        ctx: SyncContext,
        *,
        concurrency: int | None = None,
        callback: SyncCallback | None = None,
        machine_factory: MachineFactory | None = None,
    ) -> None:
        concurrency = concurrency if concurrency is not None else ctx.config.sync_concurrency
        if concurrency < 1:
            raise ValueError("concurrency must be >= 1")
        self.ctx = ctx
        self.concurrency = concurrency
        self.callback = callback or _NoOpCallback()
        self.machine_factory = machine_factory or ForkSyncStateMachine

        self._lock = threading.Lock()
        self._in_flight = 0
        self._peak = 0

    @property
    def in_flight(self) -> int:
        with self._lock:
            return self._in_flight

    def _started(self) -> None:
        with self._lock:
            self._in_flight += 1
            self._peak = max(self._peak, self._in_flight)

    def _finished(self) -> None:
        with self._lock:
            self._in_flight -= 1

    def _run_one(
        self, task: SyncTask, dry_run: bool, cancel_event: threading.Event
    ) -> TaskResult:
        with self.ctx.locks.hold(task.repo_id):
            self._started()
            try:
                self.callback.on_task_start(task)
                on_phase: PhaseHook | None = getattr(self.callback, "on_phase", None)
                machine = self.machine_factory(
                    task,
                    self.ctx,
                    dry_run=dry_run,
                    cancel_event=cancel_event,
                    on_phase=on_phase,
                )
                return machine.run()
            finally:
                self._finished()

    def _record_crash(self, task: SyncTask, dry_run: bool, error: BaseException) -> TaskResult:
        """Close a task whose worker raised, so it still gets a History entry."""
        now = utcnow()
        message = f"{type(error).__name__}: {error}"
        result = TaskResult(
            task=task,
            state=TaskState.FAILED,
            phase=SyncPhase.INIT,
            outcome=SyncOutcome.ERROR,
            started_at=now,
            ended_at=now,
            dry_run=dry_run,
            error_kind=ErrorKind.INTERNAL,
            message=message,
        )
        try:
            record = self.ctx.store.append_history(
                HistoryRecord(
                    repo_id=task.repo_id,
                    started_at=now,
                    ended_at=now,
                    strategy=task.strategy,
                    dry_run=dry_run,
                    phase=SyncPhase.INIT,
                    state=TaskState.FAILED,
                    outcome=SyncOutcome.ERROR,
                    error_kind=ErrorKind.INTERNAL,
                    message=message,
                )
            )
            result.history_seq = record.seq
        except Exception:
            logger.exception("Could not record crash of %s", task)
        return result

    def run(
        self,
        tasks: Sequence[SyncTask],
        *,
        dry_run: bool = False,
        cancel_event: threading.Event | None = None,
    ) -> RunSummary:
        """
        Execute ``tasks`` and return the aggregated summary.

        One task's failure never stops the others. Once ``cancel_event`` is
        set, running tasks stop at their next phase boundary and tasks that
        haven't started are recorded as interrupted.
        """
        cancel_event = cancel_event or threading.Event()
        start = time.monotonic()
        self._peak = 0
        results: dict[int, TaskResult] = {}

        self.callback.on_start(len(tasks), self.concurrency)
        logger.info("Syncing %d fork(s) with %d worker(s)", len(tasks), self.concurrency)

        with ThreadPoolExecutor(
            max_workers=self.concurrency, thread_name_prefix="forksync"
        ) as pool:
            futures: dict[Future[TaskResult], tuple[int, SyncTask]] = {
                pool.submit(self._run_one, task, dry_run, cancel_event): (index, task)
                for index, task in enumerate(tasks)
            }

            for future in as_completed(futures):
                index, task = futures[future]
                try:
                    result = future.result()
                except Exception as e:
                    logger.exception("Worker for %s raised", task)
                    result = self._record_crash(task, dry_run, e)
                results[index] = result
                self.callback.on_task_complete(result)

        summary = RunSummary(
            results=[results[i] for i in range(len(tasks))],
            dry_run=dry_run,
            concurrency=self.concurrency,
            peak_in_flight=self._peak,
            duration_seconds=time.monotonic() - start,
        )
        logger.info("Sync finished: %s", summary.summary())
        return summary
